# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""PromptPilot configuration."""
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Models offered in the model picker, per provider. Any other model id is
# still accepted and passed straight through to the provider.
MODEL_CATALOGUE: Dict[str, List[Dict[str, str]]] = {
    "openai": [
        {"value": "gpt-4o-mini", "label": "GPT-4o mini"},
        {"value": "gpt-4o", "label": "GPT-4o"},
        {"value": "gpt-4.1-mini", "label": "GPT-4.1 mini"},
    ],
    "anthropic": [
        {"value": "claude-haiku-4-5-20251001", "label": "Claude Haiku 4.5"},
        {"value": "claude-sonnet-4-5-20250929", "label": "Claude Sonnet 4.5"},
    ],
    "gemini": [
        {"value": "gemini-1.5-flash", "label": "Gemini 1.5 Flash"},
        {"value": "gemini-1.5-pro", "label": "Gemini 1.5 Pro"},
        {"value": "gemini-2.0-flash", "label": "Gemini 2.0 Flash"},
    ],
    "ollama": [
        {"value": "llama3.2", "label": "Llama 3.2"},
        {"value": "qwen2.5:7b", "label": "Qwen 2.5 7B"},
        {"value": "mistral", "label": "Mistral"},
    ],
}

# Evaluation always runs on a fast, cheap model regardless of the model
# chosen for generation.
DEFAULT_EVAL_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-haiku-4-5-20251001",
    "gemini": "gemini-1.5-flash",
    "ollama": "llama3.2",
}

_API_KEY_ENV = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}

DEFAULT_LIBRARY_DB = "~/.promptpilot/library.db"


@dataclass
class PilotConfig:
    """Configuration for providers, evaluation and the prompt library.

    Can be created directly, from a dict, a YAML file, or environment variables.
    """
    provider: str = ""
    api_key: str = ""
    model: str = ""
    eval_model: str = ""
    temperature: float = 0.7
    max_tokens: int = 2048
    base_url: Optional[str] = None
    timeout: float = 120.0

    library_db_path: str = DEFAULT_LIBRARY_DB
    seed_example: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "PilotConfig":
        return cls(
            provider=data.get("provider", ""),
            api_key=data.get("api_key", ""),
            model=data.get("model", ""),
            eval_model=data.get("eval_model", ""),
            temperature=data.get("temperature", 0.7),
            max_tokens=data.get("max_tokens", 2048),
            base_url=data.get("base_url") or None,
            timeout=data.get("timeout", 120.0),
            library_db_path=data.get("library_db_path", DEFAULT_LIBRARY_DB),
            seed_example=data.get("seed_example", True),
        )

    @classmethod
    def from_file(cls, path: str) -> "PilotConfig":
        """Load config from a YAML file (top-level mapping of field names)."""
        import yaml

        p = Path(path).expanduser()
        if not p.exists():
            raise FileNotFoundError("Config file not found: {}".format(path))
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping: {}".format(path))
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "PilotConfig":
        """Create config from environment variables.

        Reads PROMPTPILOT_PROVIDER, PROMPTPILOT_API_KEY, PROMPTPILOT_MODEL, etc.
        Falls back to OPENAI_API_KEY / ANTHROPIC_API_KEY / GEMINI_API_KEY when
        no explicit key is set, picking the provider from whichever is found.
        """
        provider = os.getenv("PROMPTPILOT_PROVIDER", "")
        api_key = os.getenv("PROMPTPILOT_API_KEY", "")

        if not api_key:
            candidates = [provider] if provider else ["openai", "anthropic", "gemini"]
            for name in candidates:
                for var in _API_KEY_ENV.get(name, ()):
                    api_key = os.getenv(var, "")
                    if api_key:
                        provider = provider or name
                        break
                if api_key:
                    break

        # Ollama: no key needed
        if not api_key and provider == "ollama":
            api_key = "ollama"

        return cls(
            provider=provider,
            api_key=api_key,
            model=os.getenv("PROMPTPILOT_MODEL", ""),
            eval_model=os.getenv("PROMPTPILOT_EVAL_MODEL", ""),
            temperature=float(os.getenv("PROMPTPILOT_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("PROMPTPILOT_MAX_TOKENS", "2048")),
            base_url=os.getenv("PROMPTPILOT_BASE_URL") or None,
            timeout=float(os.getenv("PROMPTPILOT_TIMEOUT", "120")),
            library_db_path=os.getenv("PROMPTPILOT_LIBRARY_DB", DEFAULT_LIBRARY_DB),
            seed_example=os.getenv("PROMPTPILOT_SEED_EXAMPLE", "true").lower() != "false",
        )

    def __post_init__(self):
        """Validate config values."""
        if self.temperature < 0.0:
            logger.warning("temperature %s < 0, clamping to 0.0", self.temperature)
            self.temperature = 0.0
        elif self.temperature > 2.0:
            logger.warning("temperature %s > 2.0, clamping to 2.0", self.temperature)
            self.temperature = 2.0

        if self.max_tokens < 1:
            logger.warning("max_tokens %s < 1, setting to 1", self.max_tokens)
            self.max_tokens = 1
        elif self.max_tokens > 200_000:
            logger.warning("max_tokens %s > 200000, clamping to 200000", self.max_tokens)
            self.max_tokens = 200_000

        if self.base_url:
            from promptpilot.policies import validate_base_url
            if not validate_base_url(self.base_url):
                logger.warning(
                    "base_url %s not in SSRF allowlist, clearing",
                    self.base_url,
                )
                self.base_url = None

    @property
    def resolved_provider(self) -> str:
        return self.provider or "openai"

    @property
    def resolved_model(self) -> str:
        """Return the generation model with sensible defaults per provider."""
        if self.model:
            return self.model
        return MODEL_CATALOGUE[self._catalogue_key][0]["value"]

    @property
    def resolved_eval_model(self) -> str:
        """Return the fixed evaluation model."""
        if self.eval_model:
            return self.eval_model
        return DEFAULT_EVAL_MODELS[self._catalogue_key]

    @property
    def _catalogue_key(self) -> str:
        provider = self.resolved_provider
        return provider if provider in MODEL_CATALOGUE else "openai"

    def available_models(self) -> List[Dict[str, str]]:
        """Models offered for the configured provider."""
        models = list(MODEL_CATALOGUE[self._catalogue_key])
        if self.model and all(m["value"] != self.model for m in models):
            models.insert(0, {"value": self.model, "label": self.model})
        return models

    def redacted(self) -> Dict[str, Any]:
        """Config as a dict, safe to print or return over HTTP."""
        data = asdict(self)
        key = data.get("api_key") or ""
        data["api_key"] = "{}...".format(key[:4]) if len(key) > 8 else ("***" if key else "")
        data["resolved_model"] = self.resolved_model
        data["resolved_eval_model"] = self.resolved_eval_model
        return data
