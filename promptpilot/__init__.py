# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""promptpilot — Run, score and compare prompt variations against hosted LLMs."""
from promptpilot.collection import PromptCollection
from promptpilot.config import PilotConfig
from promptpilot.models import (
    ActionResponse, AnalyticsPoint, CardState, ExecutionResult,
    OptimizationSuggestion, PromptVariation, QualityScore, SavedPromptVariation,
)

__version__ = "0.3.0"
__all__ = [
    "PromptCollection", "PilotConfig",
    "ActionResponse", "AnalyticsPoint", "CardState", "ExecutionResult",
    "OptimizationSuggestion", "PromptVariation", "QualityScore", "SavedPromptVariation",
    "create_collection",
    "__version__",
]


def create_collection(
    provider: str = "",
    api_key: str = "",
    model: str = "",
    **kwargs,
) -> PromptCollection:
    """Convenience factory for creating a PromptCollection."""
    config = PilotConfig(provider=provider, api_key=api_key, model=model, **kwargs)
    return PromptCollection.from_config(config)
