"""Per-application context wiring the bus, the state store and metadata."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pyconnect._mqtt import MqttResourceBinding
from pyconnect.config import ConnectConfig
from pyconnect.dom import DomRoot
from pyconnect.events.bus import EventBus, ListenerErrorHook
from pyconnect.events.lifecycle import ResourceBinding
from pyconnect.meta import MetaStore
from pyconnect.state.storage import JsonFileStorage, MemoryStorage, Storage
from pyconnect.state.store import StateStore

_logger = logging.getLogger(__name__)

_DEFAULT = object()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConnectContext:
    """Everything one application instance needs, with no module globals.

    Usage::

        async with ConnectContext(ConnectConfig.from_env()) as cc:
            cc.state.set("theme", "dark", tier=Tier.LOCAL)
            sub = cc.bus.on("resource:posts:create", on_post)
            await sub.ready

    Parameters
    ----------
    config : ConnectConfig
        Application configuration.
    binding : ResourceBinding or None
        Live-feed binding. When omitted and ``config.mqtt_enabled`` is set,
        an :class:`MqttResourceBinding` is created and started on enter.
    dom_root : DomRoot or None
        Root for delegated DOM events.
    session_storage, local_storage : Storage or None
        Persistent tiers. By default the session tier is an in-process
        :class:`MemoryStorage` and the local tier is a
        :class:`JsonFileStorage` at ``config.local_storage_path`` (disabled
        when no path is configured). Pass ``None`` to disable a tier.
    """

    def __init__(
        self,
        config: ConnectConfig | None = None,
        *,
        binding: ResourceBinding | None = None,
        dom_root: DomRoot | None = None,
        session_storage: Any = _DEFAULT,
        local_storage: Any = _DEFAULT,
        clock: Callable[[], datetime] = _utcnow,
        on_listener_error: ListenerErrorHook | None = None,
    ) -> None:
        self._config = config or ConnectConfig()
        self._owned_binding: MqttResourceBinding | None = None
        if binding is None and self._config.mqtt_enabled:
            self._owned_binding = MqttResourceBinding(self._config, resource_prefix=self._config.resource_prefix)
            binding = self._owned_binding

        self.bus = EventBus(
            binding=binding,
            dom_root=dom_root,
            resource_prefix=self._config.resource_prefix,
            on_listener_error=on_listener_error,
        )
        if self._owned_binding is not None:
            self._owned_binding.attach(self.bus.emit)

        session: Storage | None = MemoryStorage() if session_storage is _DEFAULT else session_storage
        local: Storage | None
        if local_storage is _DEFAULT:
            path = self._config.local_storage_path
            local = JsonFileStorage(path) if path else None
        else:
            local = local_storage

        self.state = StateStore(
            bus=self.bus,
            session=session,
            local=local,
            clock=clock,
            prefix=self._config.storage_prefix,
            event_prefix=self._config.state_event_prefix,
        )
        self.meta = MetaStore()

    @property
    def config(self) -> ConnectConfig:
        return self._config

    async def __aenter__(self) -> ConnectContext:
        if self._owned_binding is not None:
            await self._owned_binding.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release every subscription (disabling live feeds) and stop MQTT."""
        await self.bus.close()
        if self._owned_binding is not None:
            await self._owned_binding.stop()
        _logger.debug("Context closed")
