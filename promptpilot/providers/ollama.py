# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Local Ollama provider (OpenAI-compatible endpoint)."""
from promptpilot.providers.openai import OpenAIProvider


class OllamaProvider(OpenAIProvider):
    """Ollama provider using the OpenAI-compatible API endpoint."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = "http://localhost:11434/v1",
        temperature: float = 0.7,
        max_tokens: int = 2048,
        timeout: float = 120.0,
        api_key: str = "ollama",  # Ollama doesn't need a real key
    ) -> None:
        super().__init__(
            api_key=api_key or "ollama",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            base_url=base_url,
            timeout=timeout,
        )
