"""Layered key/value store with per-entry expiry.

Lookup order is memory, then session, then local. Expired entries are
swept lazily by the read that observes them; there is no background timer.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pyconnect._constants import STATE_EVENT_PREFIX, STORAGE_PREFIX
from pyconnect._redact import redact_state_value
from pyconnect.exceptions import ConnectError, StorageUnavailableError
from pyconnect.state.records import (
    PERSISTENT_TIERS,
    PersistedRecord,
    StateChange,
    StateEntry,
    StateKey,
    Tier,
    compute_expiry,
    decode_record,
    encode_record,
    is_expired,
    to_epoch_ms,
)
from pyconnect.state.storage import Storage

if TYPE_CHECKING:
    from pyconnect.events.bus import EventBus, Listener, Subscription

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StateStore:
    """Key/value store over a memory tier and two optional persistent tiers.

    Every ``set`` and every effective ``remove`` emits ``state:{key}`` on the
    bus with a :class:`StateChange`. ``clear`` is silent.

    Storage failures never escape: a tier that raises is treated as empty on
    read and drops writes.
    """

    def __init__(
        self,
        *,
        bus: EventBus | None = None,
        session: Storage | None = None,
        local: Storage | None = None,
        clock: Callable[[], datetime] = _utcnow,
        prefix: str = STORAGE_PREFIX,
        event_prefix: str = STATE_EVENT_PREFIX,
    ) -> None:
        self._bus = bus
        self._clock = clock
        self._prefix = prefix
        self._event_prefix = event_prefix
        self._memory: dict[str, StateEntry] = {}
        self._tiers: dict[Tier, Storage | None] = {Tier.SESSION: session, Tier.LOCAL: local}

    def storage(self, tier: Tier) -> Storage | None:
        """Backend for a persistent tier (``None`` when the host lacks it)."""
        return self._tiers.get(tier)

    def event_name(self, key: str) -> str:
        return f"{self._event_prefix}{key}"

    def _now_ms(self) -> int:
        return to_epoch_ms(self._clock())

    # ------------------------------------------------------------------
    # Guarded storage access
    # ------------------------------------------------------------------

    def _read_raw(self, tier: Tier, key: str) -> bytes | None:
        storage = self._tiers.get(tier)
        if storage is None:
            return None
        try:
            return storage.read(f"{self._prefix}{key}")
        except (StorageUnavailableError, OSError):
            _logger.debug("Storage read failed tier=%s key=%s", tier, key, exc_info=True)
            return None

    def _write_raw(self, tier: Tier, key: str, data: bytes) -> None:
        storage = self._tiers.get(tier)
        if storage is None:
            _logger.debug("Dropping write for key=%s: tier %s unavailable", key, tier)
            return
        try:
            storage.write(f"{self._prefix}{key}", data)
        except (StorageUnavailableError, OSError):
            _logger.debug("Storage write failed tier=%s key=%s", tier, key, exc_info=True)

    def _remove_raw(self, tier: Tier, raw_key: str) -> None:
        storage = self._tiers.get(tier)
        if storage is None:
            return
        try:
            storage.remove(raw_key)
        except (StorageUnavailableError, OSError):
            _logger.debug("Storage remove failed tier=%s key=%s", tier, raw_key, exc_info=True)

    def _raw_keys(self, tier: Tier) -> list[str]:
        storage = self._tiers.get(tier)
        if storage is None:
            return []
        try:
            return [k for k in storage.keys() if k.startswith(self._prefix)]
        except (StorageUnavailableError, OSError):
            _logger.debug("Storage enumerate failed tier=%s", tier, exc_info=True)
            return []

    def _load_persisted(self, tier: Tier, key: str, now_ms: int) -> PersistedRecord | None:
        """Read a live record from *tier*, purging expired or corrupt payloads."""
        raw = self._read_raw(tier, key)
        if raw is None:
            return None
        record = decode_record(raw)
        if record is None:
            _logger.debug("Purging undecodable entry tier=%s key=%s", tier, key)
            self._remove_raw(tier, f"{self._prefix}{key}")
            return None
        if is_expired(record.expiry, now_ms):
            _logger.debug("Purging expired entry tier=%s key=%s", tier, key)
            self._remove_raw(tier, f"{self._prefix}{key}")
            return None
        return record

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def lookup(self, key: str) -> StateEntry | None:
        """Resolve *key* across tiers, returning the winning entry."""
        now_ms = self._now_ms()

        entry = self._memory.get(key)
        if entry is not None:
            if not is_expired(entry.expiry, now_ms):
                return entry
            _logger.debug("Purging expired entry tier=memory key=%s", key)
            del self._memory[key]

        for tier in PERSISTENT_TIERS:
            record = self._load_persisted(tier, key, now_ms)
            if record is not None:
                return StateEntry(value=record.value, expiry=record.expiry, tier=tier)
        return None

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, checking memory, then session, then local storage."""
        entry = self.lookup(key)
        if entry is None:
            return default
        if entry.tier == Tier.MEMORY:
            return copy.deepcopy(entry.value)
        return entry.value

    def has(self, key: str) -> bool:
        return self.lookup(key) is not None

    def set(
        self,
        key: str,
        value: Any,
        *,
        tier: Tier = Tier.MEMORY,
        ttl: timedelta | float | None = None,
    ) -> None:
        """Store *value* in *tier* and emit ``state:{key}``.

        Writing to a persistent tier drops any memory copy of the key. A copy
        held by the other persistent tier is left in place.
        """
        tier = Tier(tier)
        old_value = self.get(key)
        expiry = compute_expiry(self._clock(), ttl)

        if tier == Tier.MEMORY:
            self._memory[key] = StateEntry(value=copy.deepcopy(value), expiry=expiry, tier=tier)
        else:
            data = encode_record(PersistedRecord(value=value, expiry=expiry))
            if data is None:
                _logger.error("Failed to save to storage: %s (value is not JSON serializable)", key)
            else:
                self._write_raw(tier, key, data)
            self._memory.pop(key, None)

        _logger.debug(
            "State set key=%s tier=%s expiry=%s value=%s",
            key,
            tier,
            expiry,
            redact_state_value(key, value),
        )
        self._emit(StateChange(key=key, value=value, old_value=old_value))

    def remove(self, key: str) -> None:
        """Delete *key* from every tier. No-op (and no event) if absent."""
        entry = self.lookup(key)
        if entry is None:
            return
        old_value = entry.value

        self._memory.pop(key, None)
        for tier in PERSISTENT_TIERS:
            self._remove_raw(tier, f"{self._prefix}{key}")

        _logger.debug("State removed key=%s", key)
        self._emit(StateChange(key=key, value=None, old_value=old_value))

    def list(self) -> list[StateKey]:
        """List live keys grouped by tier (memory, session, local)."""
        now_ms = self._now_ms()
        result: list[StateKey] = []

        for key, entry in list(self._memory.items()):
            if is_expired(entry.expiry, now_ms):
                del self._memory[key]
                continue
            result.append(StateKey(key=key, tier=Tier.MEMORY))

        for tier in PERSISTENT_TIERS:
            for raw_key in self._raw_keys(tier):
                key = raw_key[len(self._prefix) :]
                if self._load_persisted(tier, key, now_ms) is not None:
                    result.append(StateKey(key=key, tier=tier))

        return result

    def clear(self) -> None:
        """Drop every entry in every tier without emitting change events."""
        self._memory.clear()
        for tier in PERSISTENT_TIERS:
            for raw_key in self._raw_keys(tier):
                self._remove_raw(tier, raw_key)
        _logger.debug("State cleared")

    def watch(self, key: str, listener: Listener) -> Subscription:
        """Subscribe to ``state:{key}`` change events."""
        if self._bus is None:
            raise ConnectError("StateStore has no event bus to watch")
        return self._bus.on(self.event_name(key), listener)

    def _emit(self, change: StateChange) -> None:
        if self._bus is not None:
            self._bus.emit(self.event_name(change.key), change)
