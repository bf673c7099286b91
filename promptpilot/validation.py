# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""JSON extraction from model output."""
import json
import re
from typing import Any, Dict, Optional

_JSON_BLOCK_RE = re.compile(r'```(?:json)?\s*\n(.*?)```', re.DOTALL)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Extract the first JSON object from an AI response.

    Tries, in order: the whole text, a fenced ```json block, and the span
    from the first ``{`` to the last ``}``. Returns None when nothing parses
    to a dict.
    """
    if not text:
        return None

    candidates = [text.strip()]
    match = _JSON_BLOCK_RE.search(text)
    if match:
        candidates.append(match.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def first_present(data: Dict[str, Any], *keys: str) -> Any:
    """Return the value of the first key present in ``data``."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None
