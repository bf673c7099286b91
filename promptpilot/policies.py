# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Provider endpoint allowlist — pure logic, no I/O."""
from typing import Iterable, Optional, Set
from urllib.parse import urlparse

# SSRF protection: base_url domain allowlist
BASE_URL_ALLOWED_DOMAINS = frozenset({
    "api.openai.com",
    "api.anthropic.com",
    "generativelanguage.googleapis.com",
    "openrouter.ai",
    "api.groq.com",
    "api.together.xyz",
    "api.mistral.ai",
    "api.deepseek.com",
    "api.fireworks.ai",
})

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})


def validate_base_url(url: str, allowed_domains: Optional[Iterable[str]] = None) -> bool:
    """Validate base_url against the domain allowlist.

    HTTPS required for remote hosts. Loopback hosts are always allowed
    (Ollama, vLLM, etc. run locally).
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    host = (parsed.hostname or "").lower().rstrip(".")
    scheme = (parsed.scheme or "").lower()

    if not host or scheme not in ("http", "https"):
        return False
    if host in _LOCAL_HOSTS:
        return True
    if scheme != "https":
        return False

    allowed: Set[str] = set(allowed_domains) if allowed_domains is not None else set(BASE_URL_ALLOWED_DOMAINS)
    if host in allowed:
        return True

    # Azure OpenAI wildcard
    return host.endswith(".openai.azure.com")
