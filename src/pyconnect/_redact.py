"""Helpers for safe debug logging.

State values frequently carry auth tokens (``_auth:token``) and record
payloads coming off live feeds can be large. Both go through the same
walk: a mapping entry is masked when its key names a secret, either as a
whole (``password``) or in its last ``:`` segment (``_auth:token``), and
long strings are truncated.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_REDACTED = "<redacted>"
_MAX_DEPTH = 20

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "passwordconfirm",
        "token",
        "accesstoken",
        "refreshtoken",
        "authorization",
        "cookie",
        "secret",
    }
)


def is_sensitive_key(key: str) -> bool:
    """Return ``True`` when *key* names a secret.

    Matches the whole key case-insensitively, or its last ``:`` segment so
    namespaced state keys such as ``_auth:token`` are covered too.
    """
    lowered = key.lower()
    return lowered in _SENSITIVE_KEYS or lowered.rsplit(":", 1)[-1] in _SENSITIVE_KEYS


def _truncate(text: str, max_string: int) -> str:
    if len(text) <= max_string:
        return text
    return f"{text[:max_string]}…<truncated>"


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _truncate(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {
            str(k): _REDACTED if is_sensitive_key(str(k)) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return _truncate(repr(value), max_string)


def redact_state_value(key: str, value: Any) -> Any:
    """Redact the value stored under state *key* for logging."""
    if value is None:
        return None
    return redact_for_log({key: value})[key]
