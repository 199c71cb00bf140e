"""Event bus layer: custom, DOM-delegated and resource-backed events."""

from pyconnect.events.bus import EventBus, Listener, ListenerErrorHook
from pyconnect.events.dom import DomDelegator
from pyconnect.events.lifecycle import ResourceBinding, ResourceLifecycle, ResourceRefcount
from pyconnect.events.models import ResourceState, Subscription, SubscriptionInfo, SubscriptionKind
from pyconnect.events.names import ResourceKey, ResourceName, parse_resource_name, resource_event_name

__all__ = [
    "DomDelegator",
    "EventBus",
    "Listener",
    "ListenerErrorHook",
    "ResourceBinding",
    "ResourceKey",
    "ResourceLifecycle",
    "ResourceName",
    "ResourceRefcount",
    "ResourceState",
    "Subscription",
    "SubscriptionInfo",
    "SubscriptionKind",
    "parse_resource_name",
    "resource_event_name",
]
