"""Reference-counted acquisition of live feeds.

Every resource key (a collection, or a single item of a collection) has a
:class:`ResourceRefcount`. Subscribing increments it, unsubscribing
decrements it; crossing zero drives ``enable``/``disable`` calls on the
injected :class:`ResourceBinding`.

At most one binding call is in flight per key. When a call completes the
driver compares the desired state (``count > 0``) with the actual one and
issues the next call only if they still differ. Consequences:

* a second ``enable`` is never issued while one is pending;
* ``disable`` is only issued for a feed whose ``enable`` completed;
* dropping to zero while enabling yields exactly one ``disable`` once the
  ``enable`` resolves, and the key is never reported as live in between.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from pyconnect.events.models import ResourceState
from pyconnect.events.names import ResourceKey
from pyconnect.exceptions import ConnectError, ResourceBindingError

_logger = logging.getLogger(__name__)


class ResourceBinding(Protocol):
    """Capability that acquires and releases live feeds.

    Implemented by the backend client; see
    :class:`pyconnect._mqtt.MqttResourceBinding` for the MQTT flavour.
    """

    async def enable(self, resource_id: str) -> None:
        ...

    async def disable(self, resource_id: str) -> None:
        ...

    async def enable_item(self, resource_id: str, sub_id: str) -> None:
        ...

    async def disable_item(self, resource_id: str, sub_id: str) -> None:
        ...


class _Operation(StrEnum):
    ENABLE = "enable"
    DISABLE = "disable"


@dataclass(slots=True)
class ResourceRefcount:
    """Bookkeeping for one resource key.

    ``live`` mirrors the release token of the feed: it is set once an
    ``enable`` completed and cleared once the matching ``disable`` completed.
    """

    key: ResourceKey
    count: int = 0
    live: bool = False
    operation: _Operation | None = None
    pending: asyncio.Task[None] | None = None
    failure: ResourceBindingError | None = None

    @property
    def state(self) -> ResourceState:
        if self.operation == _Operation.ENABLE:
            return ResourceState.ENABLING
        if self.operation == _Operation.DISABLE:
            return ResourceState.DISABLING
        if self.live:
            return ResourceState.LIVE
        return ResourceState.IDLE


def _retrieve_failure(future: asyncio.Future[None]) -> None:
    """Log a failed transition and mark its exception as retrieved."""
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        _logger.warning("Live feed transition failed: %s", exc)


class ResourceLifecycle:
    """Refcount table and transition driver for resource-backed events."""

    def __init__(self, binding: ResourceBinding | None = None) -> None:
        self._binding = binding
        self._refcounts: dict[ResourceKey, ResourceRefcount] = {}

    @property
    def binding(self) -> ResourceBinding | None:
        return self._binding

    def refcount(self, key: ResourceKey) -> ResourceRefcount | None:
        return self._refcounts.get(key)

    def refcounts(self) -> list[ResourceRefcount]:
        return list(self._refcounts.values())

    def state(self, key: ResourceKey) -> ResourceState:
        rc = self._refcounts.get(key)
        return rc.state if rc is not None else ResourceState.IDLE

    # ------------------------------------------------------------------
    # Count mutation
    # ------------------------------------------------------------------

    def require_loop(self) -> None:
        """Raise unless feed transitions can be scheduled.

        Without a binding no transition is ever scheduled, so any thread or
        loop state is fine. Called before a count is touched so a refused
        call leaves the table unchanged.
        """
        if self._binding is None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError as exc:
            raise ConnectError(
                "Resource subscriptions with a live-feed binding need a running event loop"
            ) from exc

    def acquire(self, key: ResourceKey) -> asyncio.Future[None] | None:
        """Count one more subscriber for *key*.

        Returns a future that settles with the feed (``None`` without a
        binding).
        """
        self.require_loop()
        rc = self._refcounts.get(key)
        if rc is None:
            rc = ResourceRefcount(key=key)
            self._refcounts[key] = rc
        rc.count += 1
        _logger.debug("Resource %s acquired count=%d state=%s", key, rc.count, rc.state)

        if self._binding is None:
            return None
        if rc.count == 1:
            return self._reconcile(rc)
        if rc.pending is not None:
            return self._join(rc, rc.pending)
        return self._settled(rc.failure if not rc.live else None)

    def release(self, key: ResourceKey, amount: int = 1) -> asyncio.Future[None] | None:
        """Count *amount* fewer subscribers for *key*."""
        rc = self._refcounts.get(key)
        if rc is None or rc.count == 0:
            return None
        self.require_loop()
        rc.count = max(0, rc.count - amount)
        _logger.debug("Resource %s released count=%d state=%s", key, rc.count, rc.state)

        if self._binding is None:
            self._forget_if_idle(rc)
            return None
        if rc.count > 0:
            return self._settled(None)
        transition = self._reconcile(rc)
        self._forget_if_idle(rc)
        return transition

    async def settle(self) -> None:
        """Wait until no transition is in flight."""
        while True:
            pending = [rc.pending for rc in self._refcounts.values() if rc.pending is not None]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Transition driver
    # ------------------------------------------------------------------

    def _settled(self, failure: ResourceBindingError | None) -> asyncio.Future[None]:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if failure is None:
            future.set_result(None)
        else:
            future.set_exception(failure)
            future.exception()
        return future

    def _join(self, rc: ResourceRefcount, task: asyncio.Task[None]) -> asyncio.Future[None]:
        """Future for one caller waiting on *task*.

        It settles by what the key looks like once the driver stops: success
        when the feed matches the current count, otherwise the driver's
        failure. A subscriber that joined while a ``disable`` was failing
        therefore sees a live feed, not the disable error.
        """
        joined: asyncio.Future[None] = task.get_loop().create_future()

        def _on_done(done: asyncio.Task[None]) -> None:
            if joined.done():
                return
            if (rc.count > 0) == rc.live:
                joined.set_result(None)
                return
            if done.cancelled():
                joined.cancel()
                return
            error = done.exception() or rc.failure
            if error is None:
                joined.set_result(None)
                return
            joined.set_exception(error)
            joined.exception()

        task.add_done_callback(_on_done)
        return joined

    def _forget_if_idle(self, rc: ResourceRefcount) -> None:
        if rc.count == 0 and not rc.live and rc.pending is None and self._refcounts.get(rc.key) is rc:
            del self._refcounts[rc.key]

    def _reconcile(self, rc: ResourceRefcount) -> asyncio.Future[None]:
        if rc.pending is not None:
            # The running driver re-checks the count when its call completes.
            return self._join(rc, rc.pending)

        desired = rc.count > 0
        if desired == rc.live:
            return self._settled(None)

        rc.operation = _Operation.ENABLE if desired else _Operation.DISABLE
        task = asyncio.get_running_loop().create_task(self._drive(rc))
        task.add_done_callback(_retrieve_failure)
        rc.pending = task
        return self._join(rc, task)

    async def _drive(self, rc: ResourceRefcount) -> None:
        try:
            while rc.operation is not None:
                operation = rc.operation
                try:
                    await self._call(rc.key, operation)
                except ResourceBindingError as exc:
                    self._record_failure(rc, operation, exc)
                    raise
                except Exception as exc:
                    error = ResourceBindingError(
                        f"{operation} failed for resource {rc.key}: {exc}",
                        resource_id=rc.key.resource_id,
                        sub_id=rc.key.sub_id,
                        operation=operation,
                    )
                    self._record_failure(rc, operation, error)
                    raise error from exc

                rc.live = operation == _Operation.ENABLE
                rc.failure = None
                desired = rc.count > 0
                if desired == rc.live:
                    rc.operation = None
                else:
                    rc.operation = _Operation.ENABLE if desired else _Operation.DISABLE
                    _logger.debug("Resource %s count changed during %s, issuing %s", rc.key, operation, rc.operation)
        finally:
            rc.operation = None
            rc.pending = None
            self._forget_if_idle(rc)

    @staticmethod
    def _record_failure(rc: ResourceRefcount, operation: _Operation, error: ResourceBindingError) -> None:
        # A failed enable leaves the feed down; a failed disable leaves it up.
        rc.failure = error if operation == _Operation.ENABLE else None
        rc.operation = None

    async def _call(self, key: ResourceKey, operation: _Operation) -> None:
        binding = self._binding
        assert binding is not None  # noqa: S101
        _logger.debug("Resource %s %s", key, operation)
        if key.sub_id is None:
            if operation == _Operation.ENABLE:
                await binding.enable(key.resource_id)
            else:
                await binding.disable(key.resource_id)
        elif operation == _Operation.ENABLE:
            await binding.enable_item(key.resource_id, key.sub_id)
        else:
            await binding.disable_item(key.resource_id, key.sub_id)
