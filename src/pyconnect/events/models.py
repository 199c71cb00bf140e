"""Subscription handles and introspection models."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class SubscriptionKind(StrEnum):
    CUSTOM = "custom"
    DOM = "dom"
    RESOURCE = "resource"


class ResourceState(StrEnum):
    IDLE = "idle"
    ENABLING = "enabling"
    LIVE = "live"
    DISABLING = "disabling"


@dataclass(frozen=True, slots=True)
class Subscription:
    """Opaque subscription token returned by ``on``/``once``.

    ``ready`` is only set for resource-backed subscriptions: it resolves once
    the live feed for the resource has settled and raises
    :class:`~pyconnect.exceptions.ResourceBindingError` if enabling failed.
    """

    id: int
    event_name: str
    kind: SubscriptionKind = SubscriptionKind.CUSTOM
    selector: str | None = None
    ready: asyncio.Future[None] | None = field(default=None, compare=False, repr=False)


class SubscriptionInfo(BaseModel):
    """Introspection record returned by ``EventBus.list()``."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: SubscriptionKind
    listeners: int
    selector: str | None = None
    resource_id: str | None = None
    sub_id: str | None = None
