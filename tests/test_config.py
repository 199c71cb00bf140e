from __future__ import annotations

import pytest

from pyconnect.config import ConnectConfig
from pyconnect.exceptions import ConnectConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CC_STORAGE_PREFIX",
        "CC_RESOURCE_PREFIX",
        "CC_LOCAL_STORAGE_PATH",
        "CC_MQTT_ENABLED",
        "CC_MQTT_HOST",
        "CC_MQTT_PORT",
        "CC_MQTT_TLS",
        "CC_MQTT_ACK_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = ConnectConfig()
    assert config.storage_prefix == "cc:"
    assert config.state_event_prefix == "state:"
    assert config.resource_prefix == "resource"
    assert config.local_storage_path is None
    assert config.mqtt_enabled is False


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CC_STORAGE_PREFIX", "app:")
    monkeypatch.setenv("CC_LOCAL_STORAGE_PATH", "/tmp/state.json")
    monkeypatch.setenv("CC_MQTT_ENABLED", "yes")
    monkeypatch.setenv("CC_MQTT_HOST", "broker.local")
    monkeypatch.setenv("CC_MQTT_PORT", "8883")
    monkeypatch.setenv("CC_MQTT_TLS", "on")
    monkeypatch.setenv("CC_MQTT_ACK_TIMEOUT", "2.5")

    config = ConnectConfig.from_env()

    assert config.storage_prefix == "app:"
    assert config.local_storage_path == "/tmp/state.json"
    assert config.mqtt_enabled is True
    assert config.mqtt_host == "broker.local"
    assert config.mqtt_port == 8883
    assert config.mqtt_tls is True
    assert config.mqtt_ack_timeout == 2.5


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CC_MQTT_HOST", "from-env")
    monkeypatch.setenv("CC_MQTT_PORT", "not-a-number")
    monkeypatch.setenv("CC_MQTT_ENABLED", "1")

    config = ConnectConfig.from_env(mqtt_host="explicit", mqtt_port=1884, mqtt_enabled=False)

    assert config.mqtt_host == "explicit"
    assert config.mqtt_port == 1884
    assert config.mqtt_enabled is False


def test_invalid_number_in_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CC_MQTT_PORT", "eighty")
    with pytest.raises(ConnectConfigError, match="CC_MQTT_PORT"):
        ConnectConfig.from_env()


def test_unknown_bool_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CC_MQTT_TLS", "maybe")
    assert ConnectConfig.from_env().mqtt_tls is False


@pytest.mark.parametrize(
    "kwargs",
    [
        {"resource_prefix": ""},
        {"resource_prefix": "a:b"},
        {"mqtt_ack_timeout": 0},
        {"mqtt_port": 0},
        {"mqtt_port": 70000},
    ],
)
def test_validation(kwargs: dict[str, object]) -> None:
    with pytest.raises(ConnectConfigError):
        ConnectConfig(**kwargs)
