# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""OpenAI and OpenAI-compatible provider."""
import logging
from typing import Any, Dict, List, Optional

from promptpilot.errors import classify_error
from promptpilot.models import Generation, UsageStats
from promptpilot.providers.base import LLMProvider, mask_key

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 2048,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self.default_model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._base_url = base_url
        self._timeout = timeout
        self._client = None

    def __repr__(self) -> str:
        return "{}(model={!r}, api_key={!r})".format(
            type(self).__name__, self.default_model, mask_key(self._api_key),
        )

    def _make_client(self):
        if self._client is None:
            import openai
            kwargs: Dict[str, Any] = {"api_key": self._api_key, "timeout": self._timeout}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = openai.AsyncOpenAI(**kwargs)
        return self._client

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> Generation:
        model_id = self._model_for(model)
        client = self._make_client()

        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        create_kwargs: Dict[str, Any] = {
            "model": model_id,
            "messages": messages,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        if json_mode:
            create_kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.completions.create(**create_kwargs)
        except Exception as e:
            logger.debug("OpenAI call failed for %s: %s", model_id, e)
            raise classify_error(e, model_id) from e

        choice = response.choices[0] if response.choices else None
        usage = response.usage
        return Generation(
            text=(choice.message.content or "") if choice else "",
            model=response.model or model_id,
            usage=UsageStats(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            ),
            finish_reason=choice.finish_reason if choice else None,
        )
