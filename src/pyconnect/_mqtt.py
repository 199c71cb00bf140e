"""MQTT-backed live feeds.

Records are published on ``{topic_prefix}/{resource_id}/{record_id}`` with
a JSON payload ``{"action": "create", "record": {...}}``. A collection
feed subscribes to ``{topic_prefix}/{resource_id}/+`` and an item feed to
``{topic_prefix}/{resource_id}/{record_id}``.

Incoming records are re-emitted on the event bus as
``resource:{id}:{action}`` (collection feed enabled) and
``resource:{id}:{action}:{record_id}`` (item feed enabled).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pyconnect._constants import RESOURCE_PREFIX
from pyconnect._redact import redact_for_log
from pyconnect.config import ConnectConfig
from pyconnect.events.names import resource_event_name
from pyconnect.exceptions import ResourceBindingError

Emitter = Callable[[str, Any], Any]


class RecordMessage(BaseModel):
    """JSON payload of a record change message."""

    model_config = ConfigDict(extra="ignore")

    action: str = Field(min_length=1)
    record: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class MqttEvent:
    """Normalized record change received from the broker."""

    resource_id: str
    record_id: str
    action: str
    record: dict[str, Any]
    topic: str


def collection_topic(prefix: str, resource_id: str) -> str:
    return f"{prefix}/{resource_id}/+"


def item_topic(prefix: str, resource_id: str, record_id: str) -> str:
    return f"{prefix}/{resource_id}/{record_id}"


def parse_record_topic(topic: str, prefix: str) -> tuple[str, str] | None:
    """Split ``{prefix}/{resource_id}/{record_id}``; ``None`` if it does not fit."""
    head = f"{prefix}/"
    if not topic.startswith(head):
        return None
    parts = topic[len(head) :].split("/")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def decode_record_message(topic: str, payload: bytes, prefix: str) -> MqttEvent | None:
    """Build an :class:`MqttEvent`; ``None`` for foreign topics or bad payloads."""
    location = parse_record_topic(topic, prefix)
    if location is None:
        return None
    try:
        message = RecordMessage.model_validate_json(payload)
    except ValidationError:
        return None
    resource_id, record_id = location
    return MqttEvent(
        resource_id=resource_id,
        record_id=record_id,
        action=message.action,
        record=message.record,
        topic=topic,
    )


class MqttRuntime:
    """Threaded paho-mqtt runtime that hands events and acks to an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        config: ConnectConfig,
        on_event: Callable[[MqttEvent], None],
        on_ack: Callable[[int, bool], None],
        on_connected: Callable[[], None],
        client_factory: Callable[[], mqtt.Client] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._config = config
        self._on_event = on_event
        self._on_ack = on_ack
        self._on_connected = on_connected
        self._client_factory = client_factory
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def _build_client(self) -> mqtt.Client:
        if self._client_factory is not None:
            return self._client_factory()
        return mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )

    def start(self) -> None:
        """Connect to the broker and start the network thread (blocking)."""
        self.stop()
        config = self._config
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s prefix=%s",
            config.mqtt_host,
            config.mqtt_port,
            config.mqtt_topic_prefix,
        )

        client = self._build_client()
        client.enable_logger(self._logger)
        if config.mqtt_username:
            client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_tls:
            client.tls_set()

        def on_connect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected successfully reason=%s", reason_code)
            self._loop.call_soon_threadsafe(self._on_connected)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            event = decode_record_message(msg.topic, msg.payload, config.mqtt_topic_prefix)
            if event is None:
                self._logger.debug("MQTT payload parse failure topic=%s", msg.topic)
                return
            self._logger.debug(
                "Received PUBLISH topic=%s action=%s record=%s",
                msg.topic,
                event.action,
                redact_for_log(event.record),
            )
            self._loop.call_soon_threadsafe(self._on_event, event)

        def on_ack(
            _c: mqtt.Client,
            _userdata: Any,
            mid: int,
            reason_codes: list[Any],
            _properties: Any,
        ) -> None:
            ok = not any(getattr(rc, "is_failure", False) for rc in reason_codes)
            self._loop.call_soon_threadsafe(self._on_ack, mid, ok)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_subscribe = on_ack
        client.on_unsubscribe = on_ack
        client.on_disconnect = on_disconnect

        client.connect(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def subscribe(self, topic: str) -> int:
        """Queue a SUBSCRIBE and return its message id."""
        return self._send(topic, subscribe=True)

    def unsubscribe(self, topic: str) -> int:
        """Queue an UNSUBSCRIBE and return its message id."""
        return self._send(topic, subscribe=False)

    def _send(self, topic: str, *, subscribe: bool) -> int:
        client = self._client
        if client is None or not self._running:
            raise RuntimeError("MQTT runtime is not running")
        if subscribe:
            result, mid = client.subscribe(topic, qos=0)
        else:
            result, mid = client.unsubscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise RuntimeError(f"MQTT {'subscribe' if subscribe else 'unsubscribe'} rejected: rc={result}")
        if mid is None:
            raise RuntimeError("MQTT client returned no message id")
        return int(mid)


class MqttResourceBinding:
    """:class:`~pyconnect.events.lifecycle.ResourceBinding` over MQTT.

    Usage::

        binding = MqttResourceBinding(config)
        bus = EventBus(binding=binding)
        binding.attach(bus.emit)
        await binding.start()
    """

    def __init__(
        self,
        config: ConnectConfig,
        *,
        emit: Emitter | None = None,
        resource_prefix: str = RESOURCE_PREFIX,
        client_factory: Callable[[], mqtt.Client] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._emit = emit
        self._resource_prefix = resource_prefix
        self._client_factory = client_factory
        self._logger = logger or logging.getLogger(__name__)
        self._runtime: MqttRuntime | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._acks: dict[int, asyncio.Future[bool]] = {}
        self._collections: set[str] = set()
        self._items: set[tuple[str, str]] = set()

    @property
    def runtime(self) -> MqttRuntime | None:
        return self._runtime

    @property
    def is_running(self) -> bool:
        return self._runtime is not None and self._runtime.is_running

    def attach(self, emit: Emitter) -> None:
        """Route incoming record changes to *emit* (usually ``bus.emit``)."""
        self._emit = emit

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        runtime = MqttRuntime(
            loop=loop,
            config=self._config,
            on_event=self._on_event,
            on_ack=self._on_ack,
            on_connected=self._on_connected,
            client_factory=self._client_factory,
            logger=self._logger,
        )
        previous = self._runtime
        await loop.run_in_executor(None, runtime.start)
        self._loop = loop
        self._runtime = runtime
        if previous is not None:
            await loop.run_in_executor(None, previous.stop)

    async def stop(self) -> None:
        runtime = self._runtime
        self._runtime = None
        for future in self._acks.values():
            if not future.done():
                future.set_result(False)
        self._acks.clear()
        if runtime is None:
            return
        try:
            await asyncio.get_running_loop().run_in_executor(None, runtime.stop)
        except Exception:
            self._logger.debug("MQTT runtime stop failed", exc_info=True)

    # ------------------------------------------------------------------
    # ResourceBinding
    # ------------------------------------------------------------------

    async def enable(self, resource_id: str) -> None:
        await self._request(collection_topic(self._config.mqtt_topic_prefix, resource_id), resource_id, None, True)
        self._collections.add(resource_id)

    async def disable(self, resource_id: str) -> None:
        self._collections.discard(resource_id)
        await self._request(collection_topic(self._config.mqtt_topic_prefix, resource_id), resource_id, None, False)

    async def enable_item(self, resource_id: str, sub_id: str) -> None:
        topic = item_topic(self._config.mqtt_topic_prefix, resource_id, sub_id)
        await self._request(topic, resource_id, sub_id, True)
        self._items.add((resource_id, sub_id))

    async def disable_item(self, resource_id: str, sub_id: str) -> None:
        self._items.discard((resource_id, sub_id))
        topic = item_topic(self._config.mqtt_topic_prefix, resource_id, sub_id)
        await self._request(topic, resource_id, sub_id, False)

    async def _request(self, topic: str, resource_id: str, sub_id: str | None, subscribe: bool) -> None:
        operation = "subscribe" if subscribe else "unsubscribe"
        runtime = self._runtime
        loop = self._loop
        if runtime is None or loop is None or not runtime.is_running:
            raise ResourceBindingError(
                f"Cannot {operation} {topic}: MQTT runtime is not running",
                resource_id=resource_id,
                sub_id=sub_id,
                operation=operation,
            )

        future: asyncio.Future[bool] = loop.create_future()
        try:
            mid = runtime.subscribe(topic) if subscribe else runtime.unsubscribe(topic)
        except RuntimeError as exc:
            raise ResourceBindingError(
                f"Cannot {operation} {topic}: {exc}",
                resource_id=resource_id,
                sub_id=sub_id,
                operation=operation,
            ) from exc
        # Acks are delivered through call_soon_threadsafe, so registering
        # right after the call cannot miss them.
        self._acks[mid] = future
        try:
            ok = await asyncio.wait_for(future, self._config.mqtt_ack_timeout)
        except TimeoutError as exc:
            raise ResourceBindingError(
                f"Timed out waiting for {operation} ack on {topic}",
                resource_id=resource_id,
                sub_id=sub_id,
                operation=operation,
            ) from exc
        finally:
            self._acks.pop(mid, None)
        if not ok:
            raise ResourceBindingError(
                f"Broker refused {operation} on {topic}",
                resource_id=resource_id,
                sub_id=sub_id,
                operation=operation,
            )
        self._logger.debug("MQTT %s acknowledged topic=%s", operation, topic)

    # ------------------------------------------------------------------
    # Runtime callbacks (event loop thread)
    # ------------------------------------------------------------------

    def _on_ack(self, mid: int, ok: bool) -> None:
        future = self._acks.get(mid)
        if future is not None and not future.done():
            future.set_result(ok)

    def _on_connected(self) -> None:
        runtime = self._runtime
        if runtime is None:
            return
        prefix = self._config.mqtt_topic_prefix
        topics = [collection_topic(prefix, r) for r in sorted(self._collections)]
        topics += [item_topic(prefix, r, s) for r, s in sorted(self._items)]
        for topic in topics:
            try:
                runtime.subscribe(topic)
            except RuntimeError:
                self._logger.debug("MQTT resubscribe failed topic=%s", topic, exc_info=True)

    def _on_event(self, event: MqttEvent) -> None:
        emit = self._emit
        if emit is None:
            return
        payload = {"record": event.record}
        if event.resource_id in self._collections:
            emit(
                resource_event_name(event.resource_id, event.action, prefix=self._resource_prefix),
                payload,
            )
        if (event.resource_id, event.record_id) in self._items:
            emit(
                resource_event_name(event.resource_id, event.action, event.record_id, prefix=self._resource_prefix),
                payload,
            )
