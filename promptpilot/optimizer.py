# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Prompt optimizer — ask an LLM to rewrite a prompt."""
import logging
import re

from promptpilot.errors import CapabilityFailure, EmptyInputError
from promptpilot.models import OptimizationSuggestion
from promptpilot.prompts import OPTIMIZER_SYSTEM, build_optimizer_prompt
from promptpilot.providers.base import LLMProvider
from promptpilot.validation import extract_json_object, first_present

logger = logging.getLogger(__name__)


class PromptOptimizer:
    """Produce an advisory rewrite of a prompt on the user's chosen model."""

    def __init__(self, provider: LLMProvider) -> None:
        self._provider = provider

    async def optimize(self, prompt_text: str, model_id: str) -> OptimizationSuggestion:
        if not prompt_text or not prompt_text.strip():
            raise EmptyInputError()

        generation = await self._provider.generate(
            build_optimizer_prompt(prompt_text),
            model=model_id or None,
            system_prompt=OPTIMIZER_SYSTEM,
            json_mode=True,
        )
        return parse_suggestion(generation.text, model=model_id)


def parse_suggestion(content: str, model: str = "") -> OptimizationSuggestion:
    """Parse optimizer output; malformed output is a capability failure."""
    data = extract_json_object(content)
    if data is None:
        logger.warning("Optimizer returned non-JSON output: %s", content[:200])
        raise CapabilityFailure("Optimizer returned malformed output", model=model)

    optimized = first_present(data, "optimizedPrompt", "optimized_prompt", "prompt")
    if not isinstance(optimized, str) or not optimized.strip():
        raise CapabilityFailure("Optimizer returned no optimized prompt", model=model)

    # Strip code fences if present
    text = re.sub(r'^```\w*\n?', '', optimized.strip())
    text = re.sub(r'\n?```$', '', text)
    return OptimizationSuggestion(
        optimized_prompt_text=text.strip(),
        explanation=str(first_present(data, "explanation", "notes") or ""),
    )
