# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Tests for provider registry and SDK response mapping (clients mocked)."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from promptpilot.config import PilotConfig
from promptpilot.errors import CapabilityFailure, RateLimitedError
from promptpilot.providers import create_provider, provider_from_config
from promptpilot.providers.anthropic import AnthropicProvider
from promptpilot.providers.base import mask_key
from promptpilot.providers.gemini import GEMINI_OPENAI_BASE_URL, GeminiProvider
from promptpilot.providers.ollama import OllamaProvider
from promptpilot.providers.openai import OpenAIProvider


class TestRegistry:

    def test_create_by_name(self):
        assert isinstance(create_provider("openai", api_key="k"), OpenAIProvider)
        assert isinstance(create_provider("anthropic", api_key="k"), AnthropicProvider)
        assert isinstance(create_provider("ollama"), OllamaProvider)

    def test_unknown_falls_back_to_openai(self):
        assert type(create_provider("mystery", api_key="k")) is OpenAIProvider

    def test_gemini_uses_openai_compatible_endpoint(self):
        p = create_provider("gemini", api_key="g")
        assert isinstance(p, GeminiProvider)
        assert p._base_url == GEMINI_OPENAI_BASE_URL
        assert p.default_model == "gemini-1.5-flash"

    def test_from_config(self):
        p = provider_from_config(PilotConfig(provider="anthropic", api_key="sk-ant", max_tokens=512))
        assert isinstance(p, AnthropicProvider)
        assert p.default_model == "claude-haiku-4-5-20251001"
        assert p._max_tokens == 512

    def test_from_config_ollama(self):
        p = provider_from_config(PilotConfig(provider="ollama", api_key="ollama"))
        assert isinstance(p, OllamaProvider)
        assert p._base_url == "http://localhost:11434/v1"

    def test_repr_masks_key(self):
        p = OpenAIProvider(api_key="sk-secret-value")
        assert "secret" not in repr(p)
        assert mask_key("") == "***"


def _openai_response(text="Hello", total=7):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=total - 3, total_tokens=total),
        model="gpt-4o-mini",
    )


class TestOpenAIProvider:

    @pytest.mark.asyncio
    async def test_generate_maps_response(self):
        p = OpenAIProvider(api_key="k")
        p._client = MagicMock()
        p._client.chat.completions.create = AsyncMock(return_value=_openai_response())

        gen = await p.generate("Hi", model="gpt-4o", system_prompt="Be brief", json_mode=True)

        assert gen.text == "Hello"
        assert gen.usage.total_tokens == 7
        assert gen.finish_reason == "stop"
        kwargs = p._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief"}
        assert kwargs["messages"][1] == {"role": "user", "content": "Hi"}
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_default_model_and_no_json_mode(self):
        p = OpenAIProvider(api_key="k", model="gpt-4o-mini")
        p._client = MagicMock()
        p._client.chat.completions.create = AsyncMock(return_value=_openai_response())
        await p.generate("Hi")
        kwargs = p._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert "response_format" not in kwargs
        assert len(kwargs["messages"]) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_classified(self):
        p = OpenAIProvider(api_key="k")
        p._client = MagicMock()
        p._client.chat.completions.create = AsyncMock(side_effect=Exception("Error code: 429"))
        with pytest.raises(RateLimitedError):
            await p.generate("Hi")

    @pytest.mark.asyncio
    async def test_other_error_classified(self):
        p = OpenAIProvider(api_key="k")
        p._client = MagicMock()
        p._client.chat.completions.create = AsyncMock(side_effect=ConnectionError("reset"))
        with pytest.raises(CapabilityFailure) as exc:
            await p.generate("Hi")
        assert exc.value.code == "capability_failure"


class TestAnthropicProvider:

    @pytest.mark.asyncio
    async def test_generate_maps_response(self):
        p = AnthropicProvider(api_key="k")
        p._client = MagicMock()
        p._client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Hi there")],
            usage=SimpleNamespace(input_tokens=4, output_tokens=6),
            model="claude-haiku-4-5-20251001",
            stop_reason="end_turn",
        ))

        gen = await p.generate("Hello", system_prompt="Judge")

        assert gen.text == "Hi there"
        assert gen.usage.total_tokens == 10
        kwargs = p._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Judge"
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_error_classified(self):
        p = AnthropicProvider(api_key="k")
        p._client = MagicMock()
        p._client.messages.create = AsyncMock(side_effect=Exception("overloaded"))
        with pytest.raises(CapabilityFailure):
            await p.generate("Hello")
