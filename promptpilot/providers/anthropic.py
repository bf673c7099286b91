# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Anthropic provider."""
import logging
from typing import Any, Dict, Optional

from promptpilot.errors import classify_error
from promptpilot.models import Generation, UsageStats
from promptpilot.providers.base import LLMProvider, mask_key

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude messages provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5-20251001",
        temperature: float = 0.7,
        max_tokens: int = 2048,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self.default_model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._client = None

    def __repr__(self) -> str:
        return "AnthropicProvider(model={!r}, api_key={!r})".format(
            self.default_model, mask_key(self._api_key),
        )

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> Generation:
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key, timeout=self._timeout)
        client = self._client
        model_id = self._model_for(model)

        create_kwargs: Dict[str, Any] = {
            "model": model_id,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        # No native JSON mode; the prompt itself asks for JSON.
        if system_prompt:
            create_kwargs["system"] = system_prompt

        try:
            response = await client.messages.create(**create_kwargs)
        except Exception as e:
            logger.debug("Anthropic call failed for %s: %s", model_id, e)
            raise classify_error(e, model_id) from e

        text_parts = [block.text for block in response.content if block.type == "text"]
        input_tokens = getattr(response.usage, "input_tokens", 0) or 0
        output_tokens = getattr(response.usage, "output_tokens", 0) or 0
        return Generation(
            text="\n".join(text_parts),
            model=response.model or model_id,
            usage=UsageStats(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            finish_reason=response.stop_reason,
        )
