"""Application configuration for pyconnect."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyconnect._constants import MQTT_TOPIC_PREFIX, RESOURCE_PREFIX, STATE_EVENT_PREFIX, STORAGE_PREFIX
from pyconnect.exceptions import ConnectConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, raw: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConnectConfigError(f"{env_key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class ConnectConfig:
    """Application configuration.

    Parameters
    ----------
    storage_prefix : str
        Prefix applied to every key written to a persistent tier.
    state_event_prefix : str
        Prefix of the change events emitted by the state store
        (``state:{key}`` by default).
    resource_prefix : str
        First segment of resource-backed event names
        (``resource:{id}:{action}``).
    local_storage_path : str or None
        JSON file backing the local tier. ``None`` keeps the local tier
        disabled unless a storage backend is passed explicitly.
    mqtt_enabled : bool
        Whether a context should start an MQTT live-feed binding.
    mqtt_host : str
        Broker host name.
    mqtt_port : int
        Broker port.
    mqtt_username : str or None
        Broker user name.
    mqtt_password : str or None
        Broker password.
    mqtt_tls : bool
        Enable TLS for the broker connection.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_topic_prefix : str
        Topic prefix under which records are published
        (``{prefix}/{resource_id}/{record_id}``).
    mqtt_ack_timeout : float
        Seconds to wait for a SUBACK/UNSUBACK before failing the transition.
    """

    storage_prefix: str = STORAGE_PREFIX
    state_event_prefix: str = STATE_EVENT_PREFIX
    resource_prefix: str = RESOURCE_PREFIX
    local_storage_path: str | None = None
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_tls: bool = False
    mqtt_keepalive: int = 60
    mqtt_topic_prefix: str = MQTT_TOPIC_PREFIX
    mqtt_ack_timeout: float = 10.0

    def __post_init__(self) -> None:
        if not self.resource_prefix or ":" in self.resource_prefix:
            raise ConnectConfigError("resource_prefix must be non-empty and must not contain ':'")
        if self.mqtt_ack_timeout <= 0:
            raise ConnectConfigError("mqtt_ack_timeout must be positive")
        if not 0 < self.mqtt_port < 65536:
            raise ConnectConfigError(f"mqtt_port out of range: {self.mqtt_port}")

    @classmethod
    def from_env(cls, **overrides: Any) -> ConnectConfig:
        """Create configuration from ``CC_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ConnectConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CC_STORAGE_PREFIX": "storage_prefix",
            "CC_STATE_EVENT_PREFIX": "state_event_prefix",
            "CC_RESOURCE_PREFIX": "resource_prefix",
            "CC_LOCAL_STORAGE_PATH": "local_storage_path",
            "CC_MQTT_HOST": "mqtt_host",
            "CC_MQTT_USERNAME": "mqtt_username",
            "CC_MQTT_PASSWORD": "mqtt_password",
            "CC_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        port_env = env.get("CC_MQTT_PORT")
        if port_env is not None and "mqtt_port" not in overrides:
            config_kwargs["mqtt_port"] = _env_number("CC_MQTT_PORT", port_env, int)

        keepalive_env = env.get("CC_MQTT_KEEPALIVE")
        if keepalive_env is not None and "mqtt_keepalive" not in overrides:
            config_kwargs["mqtt_keepalive"] = _env_number("CC_MQTT_KEEPALIVE", keepalive_env, int)

        timeout_env = env.get("CC_MQTT_ACK_TIMEOUT")
        if timeout_env is not None and "mqtt_ack_timeout" not in overrides:
            config_kwargs["mqtt_ack_timeout"] = _env_number("CC_MQTT_ACK_TIMEOUT", timeout_env, float)

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("CC_MQTT_ENABLED"), False)
        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("CC_MQTT_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
