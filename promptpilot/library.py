# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Prompt library — saved prompt snapshots in SQLite, prompt sets from YAML."""
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite
import yaml

from promptpilot.models import PromptVariation, SavedPromptVariation

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS saved_prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prompt_text TEXT NOT NULL DEFAULT '',
    evaluation_criteria TEXT NOT NULL DEFAULT '',
    model_id TEXT NOT NULL DEFAULT '',
    created_at REAL,
    updated_at REAL
);
"""

_COLUMNS = ("prompt_text", "evaluation_criteria", "model_id")


def _row_to_saved(row) -> SavedPromptVariation:
    return SavedPromptVariation(
        id=row[0], prompt_text=row[1], evaluation_criteria=row[2], model_id=row[3],
    )


class PromptLibrary:
    """Async SQLite store of saved prompt variations.

    Entries are snapshots: editing an entry never touches an active card,
    and editing a card never touches the entry it was saved from.
    """

    def __init__(self, db_path: str = "~/.promptpilot/library.db") -> None:
        self._db_path = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    async def init(self) -> None:
        """Open database and create tables."""
        parent = os.path.dirname(self._db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.init()
        return self._db

    async def save(
        self,
        prompt_text: str,
        evaluation_criteria: str = "",
        model_id: str = "",
    ) -> SavedPromptVariation:
        """Store a new library entry and return it with its id."""
        db = await self._ensure_db()
        now = time.time()
        cursor = await db.execute(
            "INSERT INTO saved_prompts (prompt_text, evaluation_criteria, model_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (prompt_text, evaluation_criteria, model_id, now, now),
        )
        await db.commit()
        logger.info("Saved prompt %d to library", cursor.lastrowid)
        return SavedPromptVariation(
            id=cursor.lastrowid,
            prompt_text=prompt_text,
            evaluation_criteria=evaluation_criteria,
            model_id=model_id,
        )

    async def save_variation(self, variation: PromptVariation) -> SavedPromptVariation:
        """Snapshot a card's form fields (not its result)."""
        return await self.save(
            variation.prompt_text, variation.evaluation_criteria, variation.model_id,
        )

    async def get(self, entry_id: int) -> Optional[SavedPromptVariation]:
        db = await self._ensure_db()
        cursor = await db.execute(
            "SELECT id, prompt_text, evaluation_criteria, model_id FROM saved_prompts WHERE id = ?",
            (entry_id,),
        )
        row = await cursor.fetchone()
        return _row_to_saved(row) if row else None

    async def list(self) -> List[SavedPromptVariation]:
        """All entries, newest first."""
        db = await self._ensure_db()
        cursor = await db.execute(
            "SELECT id, prompt_text, evaluation_criteria, model_id FROM saved_prompts "
            "ORDER BY id DESC",
        )
        rows = await cursor.fetchall()
        return [_row_to_saved(r) for r in rows]

    async def update(self, entry_id: int, **fields: Any) -> Optional[SavedPromptVariation]:
        """Edit an entry's fields. Returns None if it doesn't exist."""
        unknown = set(fields) - set(_COLUMNS)
        if unknown:
            raise ValueError("Unknown library fields: {}".format(", ".join(sorted(unknown))))
        if not fields:
            return await self.get(entry_id)

        db = await self._ensure_db()
        assignments = ", ".join("{} = ?".format(k) for k in fields)
        cursor = await db.execute(
            "UPDATE saved_prompts SET {}, updated_at = ? WHERE id = ?".format(assignments),
            (*fields.values(), time.time(), entry_id),
        )
        await db.commit()
        if cursor.rowcount == 0:
            return None
        return await self.get(entry_id)

    async def delete(self, entry_id: int) -> bool:
        """Delete an entry. Returns True if deleted."""
        db = await self._ensure_db()
        cursor = await db.execute("DELETE FROM saved_prompts WHERE id = ?", (entry_id,))
        await db.commit()
        return cursor.rowcount > 0


def _entry_text(item: Dict[str, Any], *keys: str) -> str:
    """First non-null value among ``keys``; a bare ``key:`` in YAML is null."""
    for key in keys:
        value = item.get(key)
        if value is not None:
            return str(value)
    return ""


def load_prompt_set(path: str) -> List[Dict[str, str]]:
    """Load prompt variations from a YAML file.

    Expected shape::

        prompts:
          - prompt: "Say hi"
            criteria: "Friendly and short"
            model: gpt-4o-mini

    A bare string entry is taken as the prompt text. Returned dicts use
    the card field names (prompt_text, evaluation_criteria, model_id).
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError("Prompt set not found: {}".format(path))

    with open(p, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    items = data.get("prompts", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ValueError("Prompt set must be a list under 'prompts': {}".format(path))

    variations = []
    for item in items:
        if isinstance(item, str):
            item = {"prompt": item}
        if not isinstance(item, dict):
            raise ValueError("Invalid prompt entry: {!r}".format(item))
        fields = {
            "prompt_text": _entry_text(item, "prompt", "prompt_text"),
            "evaluation_criteria": _entry_text(item, "criteria", "evaluation_criteria"),
        }
        model = _entry_text(item, "model", "model_id")
        if model:
            fields["model_id"] = model
        variations.append(fields)
    return variations
