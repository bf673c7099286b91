# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Prompt collection — ordered prompt cards with per-card run state."""
import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from promptpilot.errors import (
    CardBusyError, CardNotFoundError, EmptyInputError, PromptPilotError,
    classify_error, user_message_for,
)
from promptpilot.models import (
    ActionResponse, AnalyticsPoint, CardState, ExecutionResult,
    OptimizationSuggestion, PromptVariation, SavedPromptVariation,
)
from promptpilot.prompts import EXAMPLE_PROMPT

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"prompt_text", "evaluation_criteria", "model_id", "result"})


def project_analytics(variations: Iterable[PromptVariation]) -> List[AnalyticsPoint]:
    """Metrics for every variation holding a result, in list order."""
    return [
        AnalyticsPoint(
            id=v.id,
            latency_ms=v.result.latency_ms,
            length_chars=v.result.length_chars,
            token_count=v.result.token_count,
            quality_score=v.result.quality_score,
        )
        for v in variations
        if v.result is not None
    ]


class PromptCollection:
    """The active set of prompt variations for one session.

    Ids come from a counter owned by the collection and are never reused,
    even after deletions. Run and optimize are mutually exclusive per card;
    different cards may be in flight at the same time. A result or
    suggestion that arrives for a card deleted mid-flight is dropped.
    """

    def __init__(
        self,
        pipeline=None,
        optimizer=None,
        default_model: str = "",
    ) -> None:
        self._pipeline = pipeline
        self._optimizer = optimizer
        self._default_model = default_model
        self._variations: List[PromptVariation] = []
        self._next_id = 1
        self._states: Dict[int, CardState] = {}
        self._suggestions: Dict[int, OptimizationSuggestion] = {}

    @classmethod
    def from_config(cls, config, provider=None) -> "PromptCollection":
        """Wire provider → evaluator/optimizer → pipeline from a PilotConfig."""
        from promptpilot.evaluator import QualityEvaluator
        from promptpilot.optimizer import PromptOptimizer
        from promptpilot.pipeline import ExecutionPipeline
        from promptpilot.providers import provider_from_config

        provider = provider or provider_from_config(config)
        evaluator = QualityEvaluator(provider, model=config.resolved_eval_model)
        collection = cls(
            pipeline=ExecutionPipeline(provider, evaluator=evaluator),
            optimizer=PromptOptimizer(provider),
            default_model=config.resolved_model,
        )
        if config.seed_example:
            collection.seed_example()
        return collection

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def variations(self) -> List[PromptVariation]:
        return list(self._variations)

    def __len__(self) -> int:
        return len(self._variations)

    # ── Card CRUD ─────────────────────────────────────────────

    def add(self, **fields: Any) -> PromptVariation:
        """Append a new card with a freshly allocated id."""
        self._check_fields(fields)
        data = {"model_id": self._default_model}
        data.update(fields)
        data["id"] = self._next_id
        self._next_id += 1
        variation = PromptVariation.model_validate(data)
        self._variations.append(variation)
        return variation

    def seed_example(self) -> PromptVariation:
        return self.add(prompt_text=EXAMPLE_PROMPT)

    def get(self, variation_id: int) -> Optional[PromptVariation]:
        for v in self._variations:
            if v.id == variation_id:
                return v
        return None

    def update(self, variation_id: int, **fields: Any) -> Optional[PromptVariation]:
        """Shallow-merge fields into a card. Returns None if the id is absent."""
        self._check_fields(fields)
        for i, current in enumerate(self._variations):
            if current.id != variation_id:
                continue
            merged = current.model_dump()
            merged.update(fields)
            merged["id"] = variation_id
            updated = PromptVariation.model_validate(merged)
            self._variations[i] = updated
            return updated
        return None

    def remove(self, variation_id: int) -> bool:
        """Delete a card. Returns True if it existed."""
        before = len(self._variations)
        self._variations = [v for v in self._variations if v.id != variation_id]
        self._states.pop(variation_id, None)
        self._suggestions.pop(variation_id, None)
        return len(self._variations) != before

    def load_saved(self, variation_id: int, saved: SavedPromptVariation) -> Optional[PromptVariation]:
        """Copy a library entry's fields into a card, keeping its id and result."""
        return self.update(
            variation_id,
            prompt_text=saved.prompt_text,
            evaluation_criteria=saved.evaluation_criteria,
            model_id=saved.model_id,
        )

    def state(self, variation_id: int) -> CardState:
        return self._states.get(variation_id, CardState.IDLE)

    def analytics(self) -> List[AnalyticsPoint]:
        return project_analytics(self._variations)

    @staticmethod
    def _check_fields(fields: Dict[str, Any]) -> None:
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError("Unknown prompt fields: {}".format(", ".join(sorted(unknown))))

    # ── Run ───────────────────────────────────────────────────

    async def run(self, variation_id: int) -> ActionResponse:
        """Execute one card and attach the result on success.

        Failures never raise: they come back as ``ok=False`` with the
        error code, and the card's previous result is left as it was.
        """
        variation = self.get(variation_id)
        precheck = self._precheck(variation_id, variation, "run")
        if precheck is not None:
            return precheck
        if self._pipeline is None:
            raise RuntimeError("PromptCollection has no execution pipeline configured")

        model_id = variation.model_id or self._default_model
        self._states[variation_id] = CardState.RUNNING
        t0 = time.monotonic()
        try:
            result: ExecutionResult = await self._pipeline.execute(
                variation.prompt_text, model_id, variation.evaluation_criteria,
            )
        except Exception as e:
            error = e if isinstance(e, PromptPilotError) else classify_error(e, model_id)
            logger.warning("Run failed for prompt %d: %s", variation_id, e)
            self._emit_audit("run", variation, model_id, t0, error=error)
            return self._failure(variation_id, error, "run")
        finally:
            self._states.pop(variation_id, None)

        updated = self.update(variation_id, result=result)
        if updated is None:
            logger.debug("Prompt %d was deleted while running; result dropped", variation_id)
        self._emit_audit("run", variation, model_id, t0, result=result)
        return ActionResponse(ok=True, variation_id=variation_id, variation=updated)

    async def run_many(self, variation_ids: Optional[Iterable[int]] = None) -> List[ActionResponse]:
        """Run several cards concurrently (all cards by default)."""
        ids = list(variation_ids) if variation_ids is not None else [v.id for v in self._variations]
        return list(await asyncio.gather(*(self.run(i) for i in ids)))

    # ── Optimize ──────────────────────────────────────────────

    async def optimize(self, variation_id: int) -> ActionResponse:
        """Ask for an optimized prompt and hold it for review."""
        variation = self.get(variation_id)
        precheck = self._precheck(variation_id, variation, "optimize")
        if precheck is not None:
            return precheck
        if self._optimizer is None:
            raise RuntimeError("PromptCollection has no optimizer configured")

        model_id = variation.model_id or self._default_model
        self._states[variation_id] = CardState.OPTIMIZING
        t0 = time.monotonic()
        try:
            suggestion = await self._optimizer.optimize(variation.prompt_text, model_id)
        except Exception as e:
            error = e if isinstance(e, PromptPilotError) else classify_error(e, model_id)
            logger.warning("Optimize failed for prompt %d: %s", variation_id, e)
            self._emit_audit("optimize", variation, model_id, t0, error=error)
            return self._failure(variation_id, error, "optimize")
        finally:
            self._states.pop(variation_id, None)

        self._emit_audit("optimize", variation, model_id, t0)
        if self.get(variation_id) is None:
            logger.debug("Prompt %d was deleted while optimizing; suggestion dropped", variation_id)
            return ActionResponse(ok=True, variation_id=variation_id, suggestion=suggestion)
        self._suggestions[variation_id] = suggestion
        return ActionResponse(
            ok=True, variation_id=variation_id,
            variation=self.get(variation_id), suggestion=suggestion,
        )

    def pending_suggestion(self, variation_id: int) -> Optional[OptimizationSuggestion]:
        return self._suggestions.get(variation_id)

    def apply_optimization(self, variation_id: int) -> Optional[PromptVariation]:
        """Replace the card's prompt with the pending suggestion and discard it."""
        suggestion = self._suggestions.pop(variation_id, None)
        if suggestion is None:
            return None
        return self.update(variation_id, prompt_text=suggestion.optimized_prompt_text)

    def dismiss_optimization(self, variation_id: int) -> bool:
        return self._suggestions.pop(variation_id, None) is not None

    # ── Helpers ───────────────────────────────────────────────

    def _precheck(
        self, variation_id: int, variation: Optional[PromptVariation], action: str,
    ) -> Optional[ActionResponse]:
        if variation is None:
            return self._failure(variation_id, CardNotFoundError(), action)
        if self.state(variation_id) != CardState.IDLE:
            return self._failure(variation_id, CardBusyError(), action, variation)
        if not variation.prompt_text.strip():
            return self._failure(variation_id, EmptyInputError(), action, variation)
        return None

    def _failure(
        self,
        variation_id: int,
        error: PromptPilotError,
        action: str,
        variation: Optional[PromptVariation] = None,
    ) -> ActionResponse:
        return ActionResponse(
            ok=False,
            variation_id=variation_id,
            variation=variation or self.get(variation_id),
            error=error.code,
            message=user_message_for(error, action),
        )

    def _emit_audit(
        self,
        action: str,
        variation: PromptVariation,
        model_id: str,
        t0: float,
        result: Optional[ExecutionResult] = None,
        error: Optional[PromptPilotError] = None,
    ) -> None:
        """Emit a structured audit log entry (best-effort)."""
        try:
            from promptpilot.audit import ActionAuditEntry
            evaluator = getattr(self._pipeline, "evaluator", None)
            entry = ActionAuditEntry(
                action=action,
                variation_id=variation.id,
                prompt_text=variation.prompt_text,
                model=model_id,
                eval_model=evaluator.model if evaluator is not None and variation.evaluation_criteria else "",
                duration_ms=int((time.monotonic() - t0) * 1000),
                ok=error is None,
                error=error.code if error is not None else None,
            )
            if result is not None:
                entry.latency_ms = result.latency_ms
                entry.length_chars = result.length_chars
                entry.token_count = result.token_count
                if result.quality_score is not None:
                    entry.quality_score = result.quality_score.score
            entry.emit()
        except Exception as e:
            logger.debug("Audit emit failed: %s", e)
