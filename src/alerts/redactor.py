"""Secret redaction for alert payloads and log events.

Messages are scrubbed with an ordered set of case-insensitive rules combined
into one alternation, so matches never overlap and the earliest rule wins at
any given position.  Metadata is structured, so denylisted keys are dropped
outright instead of being rewritten.
"""

from __future__ import annotations

import re
from collections.abc import MutableMapping
from typing import Any

REDACTED = "[REDACTED]"

_RULES: tuple[str, ...] = (
    r"password\s*=\s*\S+",
    r"token\s*=\s*\S+",
    r"key\s*=\s*\S+",
    r"secret\s*=\s*\S+",
    r"api_key\s*=\s*\S+",
    r"sk-[a-z0-9]+",
)

_SECRET_RE = re.compile("|".join(f"(?:{rule})" for rule in _RULES), re.IGNORECASE)

SENSITIVE_METADATA_KEYS: frozenset[str] = frozenset(
    {"password", "secret", "token", "apikey", "api_key", "key"}
)


def redact(message: str) -> str:
    """Replace every secret-shaped substring of *message* with the sentinel."""
    return _SECRET_RE.sub(REDACTED, message)


def redact_metadata(metadata: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return a copy of *metadata* without denylisted keys (any casing)."""
    if metadata is None:
        return None
    return {
        k: v for k, v in metadata.items()
        if str(k).lower() not in SENSITIVE_METADATA_KEYS
    }


def redact_event_dict(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that scrubs string values and nested metadata dicts."""
    for k, v in list(event_dict.items()):
        if isinstance(v, str):
            event_dict[k] = redact(v)
        elif isinstance(v, dict):
            event_dict[k] = redact_metadata(v)
    return event_dict
