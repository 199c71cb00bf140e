"""Stored entry models and the persisted record codec.

Persistent tiers hold JSON-encoded :class:`PersistedRecord` payloads.
Decoding never raises: :func:`decode_record` returns ``None`` for
anything that is not a valid record, and the caller purges it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic_core import PydanticSerializationError


class Tier(StrEnum):
    MEMORY = "memory"
    SESSION = "session"
    LOCAL = "local"


PERSISTENT_TIERS: tuple[Tier, ...] = (Tier.SESSION, Tier.LOCAL)


class PersistedRecord(BaseModel):
    """Wire shape of a value written to a persistent tier."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    value: Any
    expiry: int | None = None


class StateEntry(BaseModel):
    """An entry as seen by the store, regardless of tier."""

    model_config = ConfigDict(extra="forbid")

    value: Any = None
    expiry: int | None = None
    tier: Tier = Tier.MEMORY


class StateKey(BaseModel):
    """A listed key and the tier holding it."""

    model_config = ConfigDict(frozen=True)

    key: str
    tier: Tier


@dataclass(frozen=True, slots=True)
class StateChange:
    """Payload of the ``state:{key}`` change event.

    ``value`` is ``None`` when the key was removed.
    """

    key: str
    value: Any
    old_value: Any


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def compute_expiry(now: datetime, ttl: timedelta | float | None) -> int | None:
    """Absolute expiry in epoch milliseconds, or ``None`` without a ttl."""
    if ttl is None:
        return None
    delta = ttl if isinstance(ttl, timedelta) else timedelta(seconds=float(ttl))
    return to_epoch_ms(now + delta)


def is_expired(expiry: int | None, now_ms: int) -> bool:
    return expiry is not None and now_ms > expiry


def encode_record(record: PersistedRecord) -> bytes | None:
    """Serialize *record*; ``None`` when the value is not JSON-encodable."""
    try:
        return record.model_dump_json().encode("utf-8")
    except PydanticSerializationError:
        return None


def decode_record(raw: bytes) -> PersistedRecord | None:
    """Parse a persisted payload; ``None`` when it is malformed."""
    try:
        return PersistedRecord.model_validate_json(raw)
    except ValidationError:
        return None
