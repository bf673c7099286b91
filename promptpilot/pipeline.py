# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Execution pipeline — generate, time, optionally evaluate, assemble."""
import logging
import time
from typing import Callable, Optional

from promptpilot.errors import EmptyInputError
from promptpilot.evaluator import QualityEvaluator
from promptpilot.models import ExecutionResult
from promptpilot.providers.base import LLMProvider

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class ExecutionPipeline:
    """Run one prompt against the generation capability.

    Latency covers the generation call only; evaluation time is excluded.
    Any failure, including a failed evaluation, propagates and no partial
    result is produced.
    """

    def __init__(
        self,
        provider: LLMProvider,
        evaluator: Optional[QualityEvaluator] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._provider = provider
        self._evaluator = evaluator
        self._clock = clock

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    @property
    def evaluator(self) -> Optional[QualityEvaluator]:
        return self._evaluator

    async def execute(
        self,
        prompt_text: str,
        model_id: str,
        evaluation_criteria: Optional[str] = None,
    ) -> ExecutionResult:
        if not prompt_text or not prompt_text.strip():
            raise EmptyInputError()

        t0 = self._clock()
        generation = await self._provider.generate(prompt_text, model=model_id or None)
        latency_ms = max(0, int(round((self._clock() - t0) * 1000)))

        text = generation.text or ""
        quality = None
        criteria = (evaluation_criteria or "").strip()
        if criteria and text and self._evaluator is not None:
            quality = await self._evaluator.evaluate(prompt_text, text, criteria)
        elif criteria and text:
            logger.debug("Evaluation criteria given but no evaluator configured")

        logger.info(
            "Executed prompt on %s: %d chars, %d ms, %d tokens",
            model_id or self._provider.default_model, len(text), latency_ms,
            generation.usage.total_tokens,
        )
        return ExecutionResult(
            text=text,
            quality_score=quality,
            latency_ms=latency_ms,
            token_count=max(0, generation.usage.total_tokens),
        )
