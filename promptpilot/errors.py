# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Error taxonomy for prompt runs and provider failures."""
from typing import Optional

GENERIC_RUN_MESSAGE = "Failed to get a result from the AI."
GENERIC_OPTIMIZE_MESSAGE = "Failed to optimize the prompt."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment before trying again."
EMPTY_RUN_MESSAGE = "Please enter a prompt before running."
EMPTY_OPTIMIZE_MESSAGE = "Please enter a prompt to optimize."

_RATE_LIMIT_INDICATORS = (
    "429",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "quota exceeded",
    "resource_exhausted",
    "resource exhausted",
)


class PromptPilotError(Exception):
    """Base error. ``code`` is a stable machine-readable tag."""
    code = "error"
    user_message = GENERIC_RUN_MESSAGE

    def __init__(self, message: str = "", model: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)
        self.model = model


class EmptyInputError(PromptPilotError):
    """Prompt text was empty; the request never left the process."""
    code = "empty_input"
    user_message = EMPTY_RUN_MESSAGE


class CardNotFoundError(PromptPilotError):
    code = "not_found"
    user_message = "Prompt not found."


class CardBusyError(PromptPilotError):
    """Another run or optimize call is already in flight for the card."""
    code = "busy"
    user_message = "This prompt is already being processed."


class CapabilityFailure(PromptPilotError):
    """Any failure surfaced by generation, evaluation or optimization."""
    code = "capability_failure"
    user_message = GENERIC_RUN_MESSAGE


class RateLimitedError(CapabilityFailure):
    code = "rate_limited"
    user_message = RATE_LIMIT_MESSAGE


def is_rate_limit(error: BaseException) -> bool:
    """Check whether an exception carries a rate-limit indicator."""
    if isinstance(error, RateLimitedError):
        return True
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return True
    if type(error).__name__ == "RateLimitError":
        return True
    text = str(error).lower()
    return any(ind in text for ind in _RATE_LIMIT_INDICATORS)


def classify_error(error: BaseException, model: Optional[str] = None) -> CapabilityFailure:
    """Map a provider/SDK exception onto the capability error taxonomy."""
    if isinstance(error, CapabilityFailure):
        return error
    if is_rate_limit(error):
        return RateLimitedError(
            "Rate limit exceeded for model {}: {}".format(model, error), model=model,
        )
    return CapabilityFailure(
        "API error for model {}: {}".format(model, error), model=model,
    )


def user_message_for(error: BaseException, action: str = "run") -> str:
    """Return the message shown to the user for a failed action."""
    if isinstance(error, RateLimitedError):
        return RATE_LIMIT_MESSAGE
    if isinstance(error, EmptyInputError):
        return EMPTY_OPTIMIZE_MESSAGE if action == "optimize" else EMPTY_RUN_MESSAGE
    if isinstance(error, (CardNotFoundError, CardBusyError)):
        return error.user_message
    return GENERIC_OPTIMIZE_MESSAGE if action == "optimize" else GENERIC_RUN_MESSAGE
