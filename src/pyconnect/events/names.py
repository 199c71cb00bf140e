"""Event name grammar.

Resource-backed names look like ``resource:{id}:{action}`` (collection
feed) or ``resource:{id}:{action}:{sub_id}`` (single item feed). Every
other string is an opaque custom name; the dispatcher itself only does
exact matching.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from pyconnect._constants import COLLECTION_SEGMENTS, ITEM_SEGMENTS, RESOURCE_PREFIX


class ResourceKey(BaseModel):
    """Refcount key: a collection (``sub_id is None``) or a single item."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    sub_id: str | None = None

    @property
    def is_item(self) -> bool:
        return self.sub_id is not None

    def __str__(self) -> str:
        if self.sub_id is None:
            return self.resource_id
        return f"{self.resource_id}:{self.sub_id}"


class ResourceName(BaseModel):
    """A parsed resource-backed event name."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    action: str
    sub_id: str | None = None

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(resource_id=self.resource_id, sub_id=self.sub_id)


def parse_resource_name(event_name: str, *, prefix: str = RESOURCE_PREFIX) -> ResourceName | None:
    """Parse *event_name*; ``None`` when it is not a resource-backed name."""
    parts = event_name.split(":")
    if len(parts) not in (COLLECTION_SEGMENTS, ITEM_SEGMENTS) or parts[0] != prefix:
        return None
    if not all(parts[1:]):
        return None
    if len(parts) == COLLECTION_SEGMENTS:
        return ResourceName(resource_id=parts[1], action=parts[2])
    return ResourceName(resource_id=parts[1], action=parts[2], sub_id=parts[3])


def resource_event_name(
    resource_id: str,
    action: str,
    sub_id: str | None = None,
    *,
    prefix: str = RESOURCE_PREFIX,
) -> str:
    """Build the event name emitted for a live-feed record change."""
    if sub_id is None:
        return f"{prefix}:{resource_id}:{action}"
    return f"{prefix}:{resource_id}:{action}:{sub_id}"
