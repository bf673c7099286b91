# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Shared fixtures — a scripted in-memory provider, no network."""
import asyncio
import json
from typing import Dict, List, Optional

import pytest

from promptpilot.collection import PromptCollection
from promptpilot.evaluator import QualityEvaluator
from promptpilot.models import Generation, UsageStats
from promptpilot.optimizer import PromptOptimizer
from promptpilot.pipeline import ExecutionPipeline
from promptpilot.prompts import EVALUATOR_SYSTEM, OPTIMIZER_SYSTEM
from promptpilot.providers.base import LLMProvider


class FakeProvider(LLMProvider):
    """Provider that answers from fixed strings and records every call.

    Calls are tagged ``generate``, ``evaluate`` or ``optimize`` by their
    system prompt. ``errors[kind]`` is raised for that kind; ``gate``
    (an asyncio.Event) holds every call until it is set.
    """

    def __init__(
        self,
        text: str = "Rise and shine with Morning Star!",
        judge_output: Optional[str] = None,
        optimizer_output: Optional[str] = None,
        total_tokens: int = 12,
    ) -> None:
        self.default_model = "fake-model"
        self.text = text
        self.judge_output = judge_output or json.dumps({"score": 4, "explanation": "Upbeat and short"})
        self.optimizer_output = optimizer_output or json.dumps({
            "optimizedPrompt": "Write one upbeat, five-word slogan for Morning Star coffee.",
            "explanation": "Added length and tone constraints.",
        })
        self.total_tokens = total_tokens
        self.delay = 0.0
        self.errors: Dict[str, BaseException] = {}
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[dict] = []

    def calls_of(self, kind: str) -> List[dict]:
        return [c for c in self.calls if c["kind"] == kind]

    async def generate(self, prompt, model=None, system_prompt=None, json_mode=False):
        if system_prompt == EVALUATOR_SYSTEM:
            kind, text = "evaluate", self.judge_output
        elif system_prompt == OPTIMIZER_SYSTEM:
            kind, text = "optimize", self.optimizer_output
        else:
            kind, text = "generate", self.text
        model_id = self._model_for(model)
        self.calls.append({"kind": kind, "prompt": prompt, "model": model_id, "json_mode": json_mode})

        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if kind in self.errors:
            raise self.errors[kind]
        return Generation(text=text, model=model_id, usage=UsageStats(total_tokens=self.total_tokens))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def collection(provider):
    """Empty collection wired to the fake provider, judge on 'judge-model'."""
    evaluator = QualityEvaluator(provider, model="judge-model")
    return PromptCollection(
        pipeline=ExecutionPipeline(provider, evaluator=evaluator),
        optimizer=PromptOptimizer(provider),
        default_model="fake-model",
    )


async def wait_for_calls(provider: FakeProvider, count: int, timeout: float = 1.0) -> None:
    """Spin the loop until the provider has seen ``count`` calls."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(provider.calls) < count:
        if loop.time() > deadline:
            raise AssertionError("provider saw {} calls, expected {}".format(len(provider.calls), count))
        await asyncio.sleep(0.001)
