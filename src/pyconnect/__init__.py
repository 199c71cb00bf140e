"""pyconnect - layered state store and event bus with refcounted live feeds."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyconnect")
except PackageNotFoundError:
    __version__ = "0+local"
from pyconnect._mqtt import MqttResourceBinding
from pyconnect.actions import ApiResponse, api, delay
from pyconnect.config import ConnectConfig
from pyconnect.context import ConnectContext
from pyconnect.dom import Element, Event
from pyconnect.events import (
    EventBus,
    ResourceBinding,
    ResourceState,
    Subscription,
    SubscriptionInfo,
    SubscriptionKind,
)
from pyconnect.exceptions import (
    ActionError,
    ActionTimeoutError,
    ConnectConfigError,
    ConnectError,
    DomUnavailableError,
    ResourceBindingError,
    StorageUnavailableError,
)
from pyconnect.meta import MetaStore
from pyconnect.state import (
    JsonFileStorage,
    MemoryStorage,
    StateChange,
    StateKey,
    StateStore,
    Storage,
    Tier,
)

__all__ = [
    "__version__",
    "ActionError",
    "ActionTimeoutError",
    "ApiResponse",
    "ConnectConfig",
    "ConnectConfigError",
    "ConnectContext",
    "ConnectError",
    "DomUnavailableError",
    "Element",
    "Event",
    "EventBus",
    "JsonFileStorage",
    "MemoryStorage",
    "MetaStore",
    "MqttResourceBinding",
    "ResourceBinding",
    "ResourceBindingError",
    "ResourceState",
    "StateChange",
    "StateKey",
    "StateStore",
    "Storage",
    "StorageUnavailableError",
    "Subscription",
    "SubscriptionInfo",
    "SubscriptionKind",
    "Tier",
    "api",
    "delay",
]
