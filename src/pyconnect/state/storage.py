"""Host storage capability and built-in backends.

A tier the host does not provide is represented by ``None`` and is
treated by the store as permanently empty.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from pyconnect.exceptions import StorageUnavailableError

_logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Structural storage interface implemented by the host.

    Implementations raise :class:`StorageUnavailableError` (or ``OSError``)
    when the backing store refuses an operation.
    """

    def read(self, key: str) -> bytes | None:
        ...

    def write(self, key: str, data: bytes) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys(self) -> Iterable[str]:
        ...


class MemoryStorage:
    """Dict-backed storage. Lives as long as the process."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._items: dict[str, bytes] = dict(initial or {})

    def read(self, key: str) -> bytes | None:
        return self._items.get(key)

    def write(self, key: str, data: bytes) -> None:
        self._items[key] = bytes(data)

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class JsonFileStorage:
    """Storage persisted as a single JSON object file.

    The file is loaded lazily on first access and rewritten atomically
    (temp file + rename) on every mutation.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._items: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._items is not None:
            return self._items
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._items = {}
            return self._items
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot read {self._path}: {exc}") from exc

        try:
            loaded = json.loads(text)
        except json.JSONDecodeError:
            _logger.warning("Ignoring corrupt storage file %s", self._path)
            loaded = {}
        if not isinstance(loaded, dict):
            _logger.warning("Ignoring storage file %s: top level is not an object", self._path)
            loaded = {}
        self._items = {str(k): v for k, v in loaded.items() if isinstance(v, str)}
        return self._items

    def _flush(self, items: dict[str, str]) -> None:
        """Write *items* atomically; the cache is only replaced on success."""
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle, separators=(",", ":"))
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise StorageUnavailableError(f"Cannot write {self._path}: {exc}") from exc
        self._items = items

    def read(self, key: str) -> bytes | None:
        value = self._load().get(key)
        if value is None:
            return None
        return value.encode("utf-8", errors="surrogateescape")

    def write(self, key: str, data: bytes) -> None:
        items = {**self._load(), key: data.decode("utf-8", errors="surrogateescape")}
        self._flush(items)

    def remove(self, key: str) -> None:
        current = self._load()
        if key not in current:
            return
        self._flush({k: v for k, v in current.items() if k != key})

    def keys(self) -> list[str]:
        return list(self._load())
