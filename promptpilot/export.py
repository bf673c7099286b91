# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""CSV export of prompt variations and their latest results."""
import csv
import io
from pathlib import Path
from typing import Iterable, List, Union

from promptpilot.models import PromptVariation

EXPORT_FILENAME = "prompt_pilot_results.csv"

CSV_COLUMNS = [
    "id",
    "prompt",
    "evaluation_criteria",
    "model",
    "result",
    "quality_score",
    "quality_explanation",
    "length",
    "latency_ms",
    "tokens",
]


def _row(v: PromptVariation) -> List[Union[str, int]]:
    result = v.result
    quality = result.quality_score if result else None
    return [
        v.id,
        v.prompt_text,
        v.evaluation_criteria,
        v.model_id,
        result.text if result else "",
        quality.score if quality else "",
        quality.explanation if quality else "",
        result.length_chars if result else "",
        result.latency_ms if result else "",
        result.token_count if result else "",
    ]


def export_csv(variations: Iterable[PromptVariation]) -> str:
    """One row per variation; cards without a result get empty metric cells.

    Text cells are always double-quoted, numbers never are. The header
    row is bare.
    """
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(CSV_COLUMNS)
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for v in variations:
        writer.writerow(_row(v))
    return buf.getvalue()


def write_csv(variations: Iterable[PromptVariation], path: Union[str, Path, None] = None) -> Path:
    """Write the export to ``path`` (default: ./prompt_pilot_results.csv)."""
    target = Path(path) if path else Path(EXPORT_FILENAME)
    if target.is_dir():
        target = target / EXPORT_FILENAME
    target.write_text(export_csv(variations), encoding="utf-8")
    return target
