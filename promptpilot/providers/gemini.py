# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Google Gemini provider (OpenAI-compatible endpoint)."""
from typing import Optional

from promptpilot.providers.openai import OpenAIProvider

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GeminiProvider(OpenAIProvider):
    """Gemini models through Google's OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        temperature: float = 0.7,
        max_tokens: int = 2048,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(
            api_key=api_key,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            base_url=base_url or GEMINI_OPENAI_BASE_URL,
            timeout=timeout,
        )
