"""Application metadata (environment, page/site info, feature flags)."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


def _default_meta() -> dict[str, Any]:
    return {"env": "production", "page": {}, "site": {}, "features": {}}


class MetaStore:
    """Nested metadata addressed with dot paths.

    Usage::

        meta.init({"env": "staging", "features": {"beta": True}})
        meta.get("features.beta")   # True
        meta.has("features.alpha")  # False
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data = _default_meta()
        if data:
            self.init(data)

    def init(self, data: Mapping[str, Any]) -> None:
        """Shallow-merge *data* over the current metadata."""
        self._data.update(copy.deepcopy(dict(data)))

    def get(self, key: str, default: Any = None) -> Any:
        if "." not in key:
            return self._data.get(key, default)
        current: Any = self._data
        for part in key.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return default
            current = current[part]
        return current

    def has(self, key: str) -> bool:
        """``True`` when the value exists and is neither ``None`` nor ``False``."""
        value = self.get(key)
        return value is not None and value is not False

    def set(self, key: str, value: Any) -> None:
        """Set a value, creating intermediate dicts along a dot path."""
        *parents, last = key.split(".")
        current = self._data
        for part in parents:
            child = current.get(part)
            if not isinstance(child, dict):
                child = {}
                current[part] = child
            current = child
        current[last] = value

    def get_all(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)
