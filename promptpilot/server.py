# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""JSON HTTP API over a prompt collection, for the browser client."""
import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from promptpilot.collection import PromptCollection
from promptpilot.export import EXPORT_FILENAME, export_csv
from promptpilot.library import PromptLibrary
from promptpilot.models import ActionResponse

logger = logging.getLogger(__name__)

COLLECTION_KEY = web.AppKey("collection", PromptCollection)
LIBRARY_KEY = web.AppKey("library", PromptLibrary)
CONFIG_KEY = web.AppKey("config", object)

# Action error code → HTTP status
ERROR_STATUS = {
    "empty_input": 400,
    "not_found": 404,
    "busy": 409,
    "rate_limited": 429,
    "capability_failure": 502,
}


def _json(data: Any, status: int = 200) -> web.Response:
    return web.json_response(
        data, status=status,
        dumps=lambda obj: json.dumps(obj, ensure_ascii=False, default=str),
    )


def _error(code: str, message: str, status: Optional[int] = None) -> web.Response:
    return _json({"ok": False, "error": code, "message": message}, status or ERROR_STATUS.get(code, 400))


def _action(response: ActionResponse) -> web.Response:
    status = 200 if response.ok else ERROR_STATUS.get(response.error or "", 400)
    return _json(response.to_dict(), status)


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"ok": False, "error": "invalid_json", "message": message}),
        content_type="application/json",
    )


async def _read_json(request: web.Request) -> Dict[str, Any]:
    if not request.body_exists:
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise _bad_request("Body is not valid JSON")
    if not isinstance(body, dict):
        raise _bad_request("Body must be a JSON object")
    return body


def _card_fields(body: Dict[str, Any]) -> Dict[str, Any]:
    """Accept both camelCase (browser) and snake_case field names."""
    aliases = {
        "prompt_text": ("prompt_text", "promptText", "prompt"),
        "evaluation_criteria": ("evaluation_criteria", "evaluationCriteria", "criteria"),
        "model_id": ("model_id", "modelId", "model"),
    }
    fields = {}
    for field, names in aliases.items():
        for name in names:
            if name in body:
                value = body[name]
                fields[field] = "" if value is None else str(value)
                break
    return fields


def _variation_id(request: web.Request) -> int:
    return int(request.match_info["id"])


def _body_variation_id(body: Dict[str, Any]) -> Optional[int]:
    """Card id from ``variation_id`` / ``variationId``, or None when absent."""
    value = body.get("variation_id", body.get("variationId"))
    if value is None:
        return None
    if isinstance(value, bool):
        raise _bad_request("variation_id must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise _bad_request("variation_id must be an integer")


# ── Handlers ──────────────────────────────────────────────────

async def health(request: web.Request) -> web.Response:
    return _json({"ok": True, "status": "ready"})


async def list_models(request: web.Request) -> web.Response:
    config = request.app.get(CONFIG_KEY)
    collection = request.app[COLLECTION_KEY]
    if config is None:
        return _json({"default": collection.default_model, "models": []})
    return _json({
        "provider": config.resolved_provider,
        "default": config.resolved_model,
        "eval_model": config.resolved_eval_model,
        "models": config.available_models(),
    })


async def list_prompts(request: web.Request) -> web.Response:
    collection = request.app[COLLECTION_KEY]
    return _json({
        "prompts": [
            dict(v.model_dump(mode="json"), state=collection.state(v.id).value)
            for v in collection.variations
        ],
    })


async def add_prompt(request: web.Request) -> web.Response:
    body = await _read_json(request)
    variation = request.app[COLLECTION_KEY].add(**_card_fields(body))
    return _json(variation.model_dump(mode="json"), 201)


async def update_prompt(request: web.Request) -> web.Response:
    body = await _read_json(request)
    updated = request.app[COLLECTION_KEY].update(_variation_id(request), **_card_fields(body))
    if updated is None:
        return _error("not_found", "Prompt not found.")
    return _json(updated.model_dump(mode="json"))


async def delete_prompt(request: web.Request) -> web.Response:
    if not request.app[COLLECTION_KEY].remove(_variation_id(request)):
        return _error("not_found", "Prompt not found.")
    return _json({"ok": True})


async def run_prompt(request: web.Request) -> web.Response:
    return _action(await request.app[COLLECTION_KEY].run(_variation_id(request)))


async def run_all(request: web.Request) -> web.Response:
    responses = await request.app[COLLECTION_KEY].run_many()
    return _json({
        "ok": all(r.ok for r in responses),
        "results": [r.to_dict() for r in responses],
    })


async def optimize_prompt(request: web.Request) -> web.Response:
    return _action(await request.app[COLLECTION_KEY].optimize(_variation_id(request)))


async def apply_optimization(request: web.Request) -> web.Response:
    updated = request.app[COLLECTION_KEY].apply_optimization(_variation_id(request))
    if updated is None:
        return _error("not_found", "No pending optimization for this prompt.")
    return _json(updated.model_dump(mode="json"))


async def dismiss_optimization(request: web.Request) -> web.Response:
    if not request.app[COLLECTION_KEY].dismiss_optimization(_variation_id(request)):
        return _error("not_found", "No pending optimization for this prompt.")
    return _json({"ok": True})


async def analytics(request: web.Request) -> web.Response:
    points = request.app[COLLECTION_KEY].analytics()
    return _json({"points": [p.model_dump(mode="json") for p in points]})


async def export(request: web.Request) -> web.Response:
    body = export_csv(request.app[COLLECTION_KEY].variations)
    return web.Response(
        text=body,
        content_type="text/csv",
        charset="utf-8",
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(EXPORT_FILENAME)},
    )


async def list_library(request: web.Request) -> web.Response:
    entries = await request.app[LIBRARY_KEY].list()
    return _json({"entries": [e.model_dump() for e in entries]})


async def save_to_library(request: web.Request) -> web.Response:
    """Save a card snapshot (``{"variation_id": n}``) or explicit fields."""
    body = await _read_json(request)
    library = request.app[LIBRARY_KEY]
    source_id = _body_variation_id(body)
    if source_id is not None:
        variation = request.app[COLLECTION_KEY].get(source_id)
        if variation is None:
            return _error("not_found", "Prompt not found.")
        entry = await library.save_variation(variation)
    else:
        fields = _card_fields(body)
        if not fields.get("prompt_text", "").strip():
            return _error("empty_input", "Please enter a prompt before saving.")
        entry = await library.save(**fields)
    return _json(entry.model_dump(), 201)


async def delete_from_library(request: web.Request) -> web.Response:
    if not await request.app[LIBRARY_KEY].delete(_variation_id(request)):
        return _error("not_found", "Library entry not found.")
    return _json({"ok": True})


async def load_from_library(request: web.Request) -> web.Response:
    """Load an entry into a card (``{"variation_id": n}``) or into a new card."""
    body = await _read_json(request)
    target_id = _body_variation_id(body)
    entry = await request.app[LIBRARY_KEY].get(_variation_id(request))
    if entry is None:
        return _error("not_found", "Library entry not found.")

    collection = request.app[COLLECTION_KEY]
    if target_id is None:
        variation = collection.add()
        target_id = variation.id
    updated = collection.load_saved(target_id, entry)
    if updated is None:
        return _error("not_found", "Prompt not found.")
    return _json(updated.model_dump(mode="json"))


# ── App ───────────────────────────────────────────────────────

async def _close_library(app: web.Application) -> None:
    library = app.get(LIBRARY_KEY)
    if library is not None:
        await library.close()


def create_app(
    collection: PromptCollection,
    library: Optional[PromptLibrary] = None,
    config=None,
) -> web.Application:
    """Build the aiohttp application. The library is opened lazily."""
    app = web.Application()
    app[COLLECTION_KEY] = collection
    app[LIBRARY_KEY] = library or PromptLibrary(
        config.library_db_path if config is not None else "~/.promptpilot/library.db",
    )
    if config is not None:
        app[CONFIG_KEY] = config
    app.on_cleanup.append(_close_library)

    r = app.router
    r.add_get("/health", health)
    r.add_get("/api/models", list_models)
    r.add_get("/api/prompts", list_prompts)
    r.add_post("/api/prompts", add_prompt)
    r.add_post("/api/prompts/run", run_all)
    r.add_patch(r"/api/prompts/{id:\d+}", update_prompt)
    r.add_delete(r"/api/prompts/{id:\d+}", delete_prompt)
    r.add_post(r"/api/prompts/{id:\d+}/run", run_prompt)
    r.add_post(r"/api/prompts/{id:\d+}/optimize", optimize_prompt)
    r.add_delete(r"/api/prompts/{id:\d+}/optimize", dismiss_optimization)
    r.add_post(r"/api/prompts/{id:\d+}/optimize/apply", apply_optimization)
    r.add_get("/api/analytics", analytics)
    r.add_get("/api/export.csv", export)
    r.add_get("/api/library", list_library)
    r.add_post("/api/library", save_to_library)
    r.add_delete(r"/api/library/{id:\d+}", delete_from_library)
    r.add_post(r"/api/library/{id:\d+}/load", load_from_library)
    return app
