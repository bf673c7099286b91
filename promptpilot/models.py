# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Pydantic models for prompt variations, runs and results."""
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CardState(str, Enum):
    """Execution lifecycle of a single prompt card."""
    IDLE = "idle"
    RUNNING = "running"
    OPTIMIZING = "optimizing"


class UsageStats(BaseModel):
    """Token usage reported by a provider for one call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Generation(BaseModel):
    """Raw output of one generation call."""
    text: str = ""
    model: str = ""
    usage: UsageStats = Field(default_factory=UsageStats)
    finish_reason: Optional[str] = None


class QualityScore(BaseModel):
    """LLM-judged quality of a generated result."""
    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=1, le=5)
    explanation: str = ""


class ExecutionResult(BaseModel):
    """Outcome of one prompt run.

    ``length_chars`` is derived from ``text`` and always recomputed.
    """
    model_config = ConfigDict(frozen=True)

    text: str = ""
    quality_score: Optional[QualityScore] = None
    length_chars: int = 0
    latency_ms: int = Field(0, ge=0)
    token_count: int = Field(0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _derive_length(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["length_chars"] = len(data.get("text") or "")
        return data


class OptimizationSuggestion(BaseModel):
    """A proposed rewrite of a prompt, pending user review."""
    optimized_prompt_text: str
    explanation: str = ""


class PromptVariation(BaseModel):
    """One prompt card in the active collection."""
    id: int
    prompt_text: str = ""
    evaluation_criteria: str = ""
    model_id: str = ""
    result: Optional[ExecutionResult] = None


class SavedPromptVariation(BaseModel):
    """Library snapshot of a prompt card, independent of any run result."""
    id: int
    prompt_text: str = ""
    evaluation_criteria: str = ""
    model_id: str = ""


class AnalyticsPoint(BaseModel):
    """Per-card metrics row for comparison charts."""
    id: int
    latency_ms: int
    length_chars: int
    token_count: int
    quality_score: Optional[QualityScore] = None


class ActionResponse(BaseModel):
    """Outcome of a run/optimize action on one card."""
    ok: bool
    variation_id: int
    variation: Optional[PromptVariation] = None
    suggestion: Optional[OptimizationSuggestion] = None
    error: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
