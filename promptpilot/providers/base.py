# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Abstract LLM provider interface."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from promptpilot.models import Generation

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """Abstract base class for LLM providers (OpenAI, Anthropic, etc.).

    A provider is a single-turn text generator: one prompt in, one
    completion out. Errors from the underlying SDK are converted by
    ``promptpilot.errors.classify_error`` before they leave ``generate``.
    """

    #: Model used when ``generate`` is called without one.
    default_model: str = ""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> Generation:
        """Generate a completion for ``prompt``.

        Parameters
        ----------
        model : str, optional
            Per-call model override; falls back to ``default_model``.
        system_prompt : str, optional
            Instructions sent ahead of the prompt.
        json_mode : bool
            Ask the backend for a JSON object where it supports that.
        """

    def _model_for(self, model: Optional[str]) -> str:
        return model or self.default_model


def mask_key(api_key: str) -> str:
    """Short, log-safe hint of an API key."""
    if api_key and len(api_key) > 4:
        return "{}...".format(api_key[:4])
    return "***"
