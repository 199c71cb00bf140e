from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest


@dataclass
class FakeClock:
    now: datetime = field(default_factory=lambda: datetime(2026, 1, 1, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@dataclass
class FakeBinding:
    """Records binding calls.

    With ``manual=True`` every call blocks until the test resolves it with
    :meth:`resolve` or :meth:`reject`, which makes enable/disable races
    reproducible.
    """

    manual: bool = False
    fail_enable: bool = False
    fail_disable: bool = False
    calls: list[tuple[str, ...]] = field(default_factory=list)
    _pending: list[asyncio.Future[None]] = field(default_factory=list)

    async def _step(self, *call: str) -> None:
        self.calls.append(call)
        if self.manual:
            future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._pending.append(future)
            await future
        if call[0].startswith("enable") and self.fail_enable:
            raise RuntimeError("feed unavailable")
        if call[0].startswith("disable") and self.fail_disable:
            raise RuntimeError("feed stuck")

    async def enable(self, resource_id: str) -> None:
        await self._step("enable", resource_id)

    async def disable(self, resource_id: str) -> None:
        await self._step("disable", resource_id)

    async def enable_item(self, resource_id: str, sub_id: str) -> None:
        await self._step("enable_item", resource_id, sub_id)

    async def disable_item(self, resource_id: str, sub_id: str) -> None:
        await self._step("disable_item", resource_id, sub_id)

    async def _next(self) -> asyncio.Future[None]:
        for _ in range(100):
            if self._pending:
                return self._pending.pop(0)
            await asyncio.sleep(0)
        raise AssertionError("no binding call is pending")

    async def resolve(self) -> None:
        (await self._next()).set_result(None)

    async def reject(self, exc: Exception) -> None:
        (await self._next()).set_exception(exc)

    @property
    def waiting(self) -> int:
        return len(self._pending)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_binding() -> Callable[..., FakeBinding]:
    def _make(**kwargs: Any) -> FakeBinding:
        return FakeBinding(**kwargs)

    return _make
