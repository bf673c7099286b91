# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""LLM judge that scores a generated result against user criteria."""
import logging

from pydantic import ValidationError

from promptpilot.errors import CapabilityFailure
from promptpilot.models import QualityScore
from promptpilot.prompts import EVALUATOR_SYSTEM, build_evaluator_prompt
from promptpilot.providers.base import LLMProvider
from promptpilot.validation import extract_json_object, first_present

logger = logging.getLogger(__name__)


class QualityEvaluator:
    """Score generated text 1-5 with an explanation.

    Always runs on ``model``, a fixed fast model, independent of the model
    that produced the text. Unlike a best-effort judge, a failed or
    unparseable evaluation raises ``CapabilityFailure``.
    """

    def __init__(self, provider: LLMProvider, model: str) -> None:
        self._provider = provider
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    async def evaluate(self, original_prompt: str, generated_text: str, criteria: str) -> QualityScore:
        judge_prompt = build_evaluator_prompt(original_prompt, generated_text, criteria)
        generation = await self._provider.generate(
            judge_prompt, model=self._model, system_prompt=EVALUATOR_SYSTEM, json_mode=True,
        )
        return parse_quality(generation.text, model=self._model)


def parse_quality(content: str, model: str = "") -> QualityScore:
    """Parse judge output into a QualityScore.

    Integral floats ("4.0") are accepted; anything outside 1..5 is rejected.
    """
    data = extract_json_object(content)
    if data is None:
        logger.warning("Evaluator returned non-JSON output: %s", content[:200])
        raise CapabilityFailure("Evaluator returned malformed output", model=model)

    raw_score = first_present(data, "score", "quality", "rating")
    if isinstance(raw_score, float) and raw_score.is_integer():
        raw_score = int(raw_score)
    try:
        return QualityScore(
            score=raw_score,
            explanation=str(first_present(data, "explanation", "reason", "notes") or ""),
        )
    except ValidationError as e:
        logger.warning("Evaluator returned invalid score %r: %s", raw_score, e)
        raise CapabilityFailure("Evaluator returned invalid score: {!r}".format(raw_score), model=model) from e
