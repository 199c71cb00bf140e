"""State/store layer.

Layered key/value storage (memory, session, local) with lazy expiry.
Mutations are announced on the event bus as ``state:{key}`` events.
"""

from pyconnect.state.records import PersistedRecord, StateChange, StateEntry, StateKey, Tier
from pyconnect.state.storage import JsonFileStorage, MemoryStorage, Storage
from pyconnect.state.store import StateStore

__all__ = [
    "JsonFileStorage",
    "MemoryStorage",
    "PersistedRecord",
    "StateChange",
    "StateEntry",
    "StateKey",
    "StateStore",
    "Storage",
    "Tier",
]
