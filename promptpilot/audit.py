# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Structured audit logging for prompt runs and optimizations."""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger("promptpilot.audit")


@dataclass
class ActionAuditEntry:
    """One run/optimize action audit record.

    Emitted as structured JSON to the ``promptpilot.audit`` logger at INFO level.
    """
    action: str = "run"
    variation_id: int = 0
    timestamp: float = field(default_factory=time.time)
    prompt_text: str = ""
    model: str = ""
    eval_model: str = ""
    duration_ms: int = 0
    latency_ms: int = 0
    length_chars: int = 0
    token_count: int = 0
    quality_score: Optional[int] = None
    ok: bool = True
    error: Optional[str] = None

    def emit(self) -> None:
        """Emit this entry as a structured JSON log line."""
        record = {
            "event": "{}_audit".format(self.action),
            "ts": self.timestamp,
            "variation_id": self.variation_id,
            "prompt": self.prompt_text[:200],
            "model": self.model,
            "duration_ms": self.duration_ms,
            "ok": self.ok,
        }
        if self.action == "run":
            record.update({
                "eval_model": self.eval_model,
                "latency_ms": self.latency_ms,
                "length_chars": self.length_chars,
                "tokens": self.token_count,
            })
            if self.quality_score is not None:
                record["quality_score"] = self.quality_score
        if self.error:
            record["error"] = self.error
        logger.info(json.dumps(record, ensure_ascii=False))
