# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Tests for PromptCollection — card CRUD, run/optimize state machine, analytics."""
import asyncio
import json
import logging

import pytest

from conftest import FakeProvider, wait_for_calls
from promptpilot.config import PilotConfig
from promptpilot.collection import PromptCollection, project_analytics
from promptpilot.errors import GENERIC_RUN_MESSAGE, RATE_LIMIT_MESSAGE
from promptpilot.models import (
    CardState, ExecutionResult, PromptVariation, QualityScore, SavedPromptVariation,
)
from promptpilot.prompts import EXAMPLE_PROMPT


class RateLimitError(Exception):
    status_code = 429


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestCards:

    def test_add_uses_default_model(self, collection):
        v = collection.add(prompt_text="Hi")
        assert v.id == 1
        assert v.model_id == "fake-model"
        assert v.result is None

    def test_ids_never_reused(self, collection):
        a = collection.add()
        b = collection.add()
        assert collection.remove(b.id)
        c = collection.add()
        assert (a.id, b.id, c.id) == (1, 2, 3)
        assert [v.id for v in collection.variations] == [1, 3]

    def test_update_merges_fields(self, collection):
        v = collection.add(prompt_text="Hi", evaluation_criteria="short")
        updated = collection.update(v.id, model_id="gpt-4o")
        assert updated.prompt_text == "Hi"
        assert updated.evaluation_criteria == "short"
        assert updated.model_id == "gpt-4o"
        assert collection.get(v.id) == updated

    def test_update_missing_is_noop(self, collection):
        collection.add(prompt_text="Hi")
        assert collection.update(99, prompt_text="x") is None
        assert collection.variations[0].prompt_text == "Hi"

    def test_update_cannot_change_id(self, collection):
        v = collection.add()
        with pytest.raises(ValueError):
            collection.update(v.id, id=42)

    def test_remove_missing(self, collection):
        assert collection.remove(7) is False

    def test_variations_is_a_copy(self, collection):
        collection.add()
        collection.variations.clear()
        assert len(collection) == 1

    def test_load_saved_keeps_id_and_result(self, collection):
        v = collection.add(prompt_text="old")
        collection.update(v.id, result=ExecutionResult(text="out"))
        saved = SavedPromptVariation(id=50, prompt_text="new", evaluation_criteria="crit", model_id="m2")
        loaded = collection.load_saved(v.id, saved)
        assert loaded.id == v.id
        assert loaded.prompt_text == "new"
        assert loaded.evaluation_criteria == "crit"
        assert loaded.model_id == "m2"
        assert loaded.result.text == "out"

    def test_from_config_seeds_example(self, provider):
        c = PromptCollection.from_config(PilotConfig(provider="openai", api_key="k"), provider=provider)
        assert len(c) == 1
        assert c.variations[0].prompt_text == EXAMPLE_PROMPT
        assert c.variations[0].model_id == "gpt-4o-mini"

    def test_from_config_without_seed(self, provider):
        c = PromptCollection.from_config(PilotConfig(seed_example=False), provider=provider)
        assert len(c) == 0


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class TestAnalytics:

    def test_only_cards_with_results_in_order(self):
        variations = [
            PromptVariation(id=1, result=ExecutionResult(text="aa", latency_ms=5, token_count=2)),
            PromptVariation(id=2),
            PromptVariation(id=4, result=ExecutionResult(
                text="bbbb", latency_ms=9, token_count=3, quality_score=QualityScore(score=2),
            )),
        ]
        points = project_analytics(variations)
        assert [p.id for p in points] == [1, 4]
        assert points[0].length_chars == 2
        assert points[1].quality_score.score == 2

    def test_empty(self, collection):
        collection.add()
        assert collection.analytics() == []


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

class TestRun:

    @pytest.mark.asyncio
    async def test_success_attaches_result(self, collection, provider):
        v = collection.add(prompt_text="Slogan", evaluation_criteria="Upbeat")
        resp = await collection.run(v.id)
        assert resp.ok is True
        assert resp.variation.result.text == provider.text
        assert resp.variation.result.quality_score.score == 4
        assert collection.get(v.id).result == resp.variation.result
        assert collection.state(v.id) == CardState.IDLE
        assert [p.id for p in collection.analytics()] == [v.id]

    @pytest.mark.asyncio
    async def test_uses_card_model(self, collection, provider):
        v = collection.add(prompt_text="Hi", model_id="gpt-4o")
        await collection.run(v.id)
        assert provider.calls_of("generate")[0]["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_empty_prompt(self, collection, provider):
        v = collection.add(prompt_text="   ")
        resp = await collection.run(v.id)
        assert resp.ok is False
        assert resp.error == "empty_input"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_blank_card_never_reaches_provider(self, collection, provider):
        v = collection.add()
        assert v.prompt_text == ""
        resp = await collection.run(v.id)
        assert resp.error == "empty_input"
        assert provider.calls == []
        assert collection.get(v.id).result is None

    @pytest.mark.asyncio
    async def test_unknown_card(self, collection):
        resp = await collection.run(99)
        assert resp.ok is False
        assert resp.error == "not_found"

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_result(self, collection, provider):
        v = collection.add(prompt_text="Hi")
        first = await collection.run(v.id)
        provider.errors["generate"] = RuntimeError("connection reset")
        resp = await collection.run(v.id)
        assert resp.ok is False
        assert resp.error == "capability_failure"
        assert resp.message == GENERIC_RUN_MESSAGE
        assert collection.get(v.id).result == first.variation.result
        assert collection.state(v.id) == CardState.IDLE

    @pytest.mark.asyncio
    async def test_rate_limit_message(self, collection, provider):
        v = collection.add(prompt_text="Hi")
        first = await collection.run(v.id)
        provider.errors["generate"] = RateLimitError("slow down")
        resp = await collection.run(v.id)
        assert resp.ok is False
        assert collection.get(v.id).result == first.variation.result
        assert resp.error == "rate_limited"
        assert resp.message == RATE_LIMIT_MESSAGE

    @pytest.mark.asyncio
    async def test_evaluation_failure_fails_run(self, collection, provider):
        provider.judge_output = "not json at all"
        v = collection.add(prompt_text="Hi", evaluation_criteria="Upbeat")
        resp = await collection.run(v.id)
        assert resp.ok is False
        assert collection.get(v.id).result is None

    @pytest.mark.asyncio
    async def test_busy_while_running(self, collection, provider):
        provider.gate = asyncio.Event()
        v = collection.add(prompt_text="Hi")
        task = asyncio.ensure_future(collection.run(v.id))
        await wait_for_calls(provider, 1)
        assert collection.state(v.id) == CardState.RUNNING

        again = await collection.run(v.id)
        assert again.error == "busy"
        opt = await collection.optimize(v.id)
        assert opt.error == "busy"
        assert len(provider.calls) == 1

        provider.gate.set()
        resp = await task
        assert resp.ok is True
        assert collection.state(v.id) == CardState.IDLE

    @pytest.mark.asyncio
    async def test_result_for_deleted_card_dropped(self, collection, provider):
        provider.gate = asyncio.Event()
        keep = collection.add(prompt_text="keep")
        doomed = collection.add(prompt_text="doomed")
        task = asyncio.ensure_future(collection.run(doomed.id))
        await wait_for_calls(provider, 1)

        assert collection.remove(doomed.id)
        provider.gate.set()
        await task

        assert [v.id for v in collection.variations] == [keep.id]
        assert collection.get(keep.id).result is None
        assert collection.analytics() == []

    @pytest.mark.asyncio
    async def test_run_many_concurrent(self, collection, provider):
        provider.gate = asyncio.Event()
        ids = [collection.add(prompt_text="p{}".format(i)).id for i in range(3)]
        task = asyncio.ensure_future(collection.run_many())
        await wait_for_calls(provider, 3)
        assert all(collection.state(i) == CardState.RUNNING for i in ids)
        provider.gate.set()
        responses = await task
        assert [r.variation_id for r in responses] == ids
        assert all(r.ok for r in responses)

    @pytest.mark.asyncio
    async def test_audit_entry_emitted(self, collection, caplog):
        v = collection.add(prompt_text="Hi", evaluation_criteria="Upbeat")
        with caplog.at_level(logging.INFO, logger="promptpilot.audit"):
            await collection.run(v.id)
        records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "promptpilot.audit"]
        assert records[-1]["event"] == "run_audit"
        assert records[-1]["ok"] is True
        assert records[-1]["eval_model"] == "judge-model"
        assert records[-1]["quality_score"] == 4


# ---------------------------------------------------------------------------
# Optimize
# ---------------------------------------------------------------------------

class TestOptimize:

    @pytest.mark.asyncio
    async def test_suggestion_held_for_review(self, collection):
        v = collection.add(prompt_text="Write a slogan")
        resp = await collection.optimize(v.id)
        assert resp.ok is True
        assert resp.suggestion.explanation == "Added length and tone constraints."
        # Advisory only: the card is untouched until applied.
        assert collection.get(v.id).prompt_text == "Write a slogan"
        assert collection.pending_suggestion(v.id) == resp.suggestion

    @pytest.mark.asyncio
    async def test_apply(self, collection):
        v = collection.add(prompt_text="Write a slogan")
        resp = await collection.optimize(v.id)
        updated = collection.apply_optimization(v.id)
        assert updated.prompt_text == resp.suggestion.optimized_prompt_text
        assert collection.pending_suggestion(v.id) is None
        assert collection.apply_optimization(v.id) is None

    @pytest.mark.asyncio
    async def test_dismiss(self, collection):
        v = collection.add(prompt_text="Write a slogan")
        await collection.optimize(v.id)
        assert collection.dismiss_optimization(v.id) is True
        assert collection.get(v.id).prompt_text == "Write a slogan"
        assert collection.dismiss_optimization(v.id) is False

    @pytest.mark.asyncio
    async def test_empty_prompt(self, collection, provider):
        v = collection.add(prompt_text="")
        resp = await collection.optimize(v.id)
        assert resp.error == "empty_input"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_failure(self, collection, provider):
        provider.optimizer_output = "sorry, cannot help"
        v = collection.add(prompt_text="Write a slogan")
        resp = await collection.optimize(v.id)
        assert resp.ok is False
        assert resp.error == "capability_failure"
        assert collection.pending_suggestion(v.id) is None
        assert collection.state(v.id) == CardState.IDLE

    @pytest.mark.asyncio
    async def test_suggestion_for_deleted_card_dropped(self, collection, provider):
        provider.gate = asyncio.Event()
        v = collection.add(prompt_text="Write a slogan")
        task = asyncio.ensure_future(collection.optimize(v.id))
        await wait_for_calls(provider, 1)
        assert collection.state(v.id) == CardState.OPTIMIZING
        collection.remove(v.id)
        provider.gate.set()
        await task
        assert collection.pending_suggestion(v.id) is None
        assert len(collection) == 0
