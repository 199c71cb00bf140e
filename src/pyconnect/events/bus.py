"""Central event dispatcher.

Three families share one API:

* custom events: opaque names, dispatched by :meth:`EventBus.emit`;
* DOM-delegated events: ``on(type, cb, selector=...)``, dispatched by the
  host through one native listener per type and root;
* resource-backed events: ``resource:{id}:{action}[:{sub_id}]`` names whose
  subscriptions acquire and release a live feed through a
  :class:`~pyconnect.events.lifecycle.ResourceBinding`.

Dispatch is synchronous and exact-name only.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pyconnect._constants import RESOURCE_PREFIX
from pyconnect.dom import DomRoot
from pyconnect.events.dom import DomCallback, DomDelegator
from pyconnect.events.lifecycle import ResourceBinding, ResourceLifecycle
from pyconnect.events.models import ResourceState, Subscription, SubscriptionInfo, SubscriptionKind
from pyconnect.events.names import ResourceKey, ResourceName, parse_resource_name

_logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]
ListenerErrorHook = Callable[[str, Exception], None]


@dataclass(slots=True)
class _Registration:
    subscription: Subscription
    callback: Listener
    once: bool
    resource: ResourceName | None = None
    active: bool = True


class EventBus:
    """Single-process dispatcher for custom, DOM and resource-backed events.

    Parameters
    ----------
    binding : ResourceBinding or None
        Acquires/releases live feeds for resource-backed names. Without it
        those names are still counted but no feed is started.
    dom_root : DomRoot or None
        Default root for delegated DOM subscriptions.
    resource_prefix : str
        First segment of resource-backed event names.
    on_listener_error : callable or None
        Diagnostic hook called with ``(event_name, exc)`` whenever a listener
        raises. Failures are always logged as well.
    """

    def __init__(
        self,
        *,
        binding: ResourceBinding | None = None,
        dom_root: DomRoot | None = None,
        resource_prefix: str = RESOURCE_PREFIX,
        on_listener_error: ListenerErrorHook | None = None,
    ) -> None:
        self._ids = itertools.count(1)
        self._listeners: dict[str, dict[int, _Registration]] = {}
        self._resource_prefix = resource_prefix
        self._on_listener_error = on_listener_error
        self._lifecycle = ResourceLifecycle(binding)
        self._dom = DomDelegator(dom_root, invoke=self._invoke)

    @property
    def dom(self) -> DomDelegator:
        return self._dom

    @property
    def lifecycle(self) -> ResourceLifecycle:
        return self._lifecycle

    def parse(self, event_name: str) -> ResourceName | None:
        return parse_resource_name(event_name, prefix=self._resource_prefix)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def on(
        self,
        event_name: str,
        listener: Callable[..., Any],
        *,
        selector: str | None = None,
        root: DomRoot | None = None,
    ) -> Subscription:
        """Subscribe *listener* to *event_name*.

        With *selector*, *event_name* is a DOM event type and *listener* is
        called as ``listener(event, matched_element)``.
        """
        return self._subscribe(event_name, listener, selector=selector, root=root, once=False)

    def once(
        self,
        event_name: str,
        listener: Callable[..., Any],
        *,
        selector: str | None = None,
        root: DomRoot | None = None,
    ) -> Subscription:
        """Like :meth:`on`, but unsubscribes before the first invocation."""
        return self._subscribe(event_name, listener, selector=selector, root=root, once=True)

    def _subscribe(
        self,
        event_name: str,
        listener: Callable[..., Any],
        *,
        selector: str | None,
        root: DomRoot | None,
        once: bool,
    ) -> Subscription:
        subscription_id = next(self._ids)
        if selector is not None:
            dom_callback: DomCallback = listener
            return self._dom.on(subscription_id, event_name, selector, dom_callback, root=root, once=once)

        resource = self.parse(event_name)
        ready: asyncio.Future[None] | None = None
        if resource is not None:
            ready = self._lifecycle.acquire(resource.key)

        subscription = Subscription(
            id=subscription_id,
            event_name=event_name,
            kind=SubscriptionKind.RESOURCE if resource is not None else SubscriptionKind.CUSTOM,
            ready=ready,
        )
        registrations = self._listeners.setdefault(event_name, {})
        registrations[subscription_id] = _Registration(
            subscription=subscription,
            callback=listener,
            once=once,
            resource=resource,
        )
        return subscription

    def off(self, subscription: Subscription) -> asyncio.Future[None] | None:
        """Remove *subscription*.

        For resource-backed names returns the future of the feed transition
        this removal caused (or a resolved one); otherwise ``None``.
        Unknown or already removed handles are ignored.
        """
        if subscription.kind == SubscriptionKind.DOM:
            self._dom.off(subscription)
            return None

        registrations = self._listeners.get(subscription.event_name)
        if not registrations or subscription.id not in registrations:
            return None
        if registrations[subscription.id].resource is not None:
            self._lifecycle.require_loop()
        registration = registrations.pop(subscription.id)
        registration.active = False
        if not registrations:
            del self._listeners[subscription.event_name]

        if registration.resource is not None:
            return self._lifecycle.release(registration.resource.key)
        return None

    def clear(self, event_name: str | None = None) -> None:
        """Remove every listener for *event_name*, or for all names.

        Each affected resource is released once for all of its removed
        listeners, so a feed is disabled at most once per call.
        """
        names = list(self._listeners) if event_name is None else [event_name]
        if any(self.parse(name) is not None for name in names if name in self._listeners):
            self._lifecycle.require_loop()
        released: dict[ResourceKey, int] = {}
        for name in names:
            registrations = self._listeners.pop(name, None)
            if not registrations:
                continue
            for registration in registrations.values():
                registration.active = False
                if registration.resource is not None:
                    key = registration.resource.key
                    released[key] = released.get(key, 0) + 1

        for key, amount in released.items():
            self._lifecycle.release(key, amount)
        self._dom.clear(event_name)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def emit(self, event_name: str, payload: Any = None) -> int:
        """Call every listener of *event_name* in subscription order.

        Returns the number of listeners invoked. Listener exceptions are
        reported and never reach the caller.
        """
        registrations = self._listeners.get(event_name)
        if not registrations:
            return 0

        invoked = 0
        for registration in list(registrations.values()):
            if not registration.active:
                continue
            if registration.once:
                self.off(registration.subscription)
            self._invoke(event_name, registration.callback, payload)
            invoked += 1
        return invoked

    def _invoke(self, event_name: str, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as exc:
            _logger.exception("Error in event handler for %r", event_name)
            self._report(event_name, exc)

    def _report(self, event_name: str, exc: Exception) -> None:
        hook = self._on_listener_error
        if hook is None:
            return
        try:
            hook(event_name, exc)
        except Exception:
            _logger.exception("Listener error hook failed for %r", event_name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def list(self) -> list[SubscriptionInfo]:
        """Describe every subscribed name."""
        infos: list[SubscriptionInfo] = []
        for name, registrations in self._listeners.items():
            resource = self.parse(name)
            infos.append(
                SubscriptionInfo(
                    name=name,
                    kind=SubscriptionKind.RESOURCE if resource is not None else SubscriptionKind.CUSTOM,
                    listeners=len(registrations),
                    resource_id=resource.resource_id if resource is not None else None,
                    sub_id=resource.sub_id if resource is not None else None,
                )
            )
        infos.extend(self._dom.describe())
        return infos

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def resource_state(self, resource_id: str, sub_id: str | None = None) -> ResourceState:
        return self._lifecycle.state(ResourceKey(resource_id=resource_id, sub_id=sub_id))

    def resource_count(self, resource_id: str, sub_id: str | None = None) -> int:
        rc = self._lifecycle.refcount(ResourceKey(resource_id=resource_id, sub_id=sub_id))
        return rc.count if rc is not None else 0

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def settle(self) -> None:
        """Wait for every in-flight feed transition to finish."""
        await self._lifecycle.settle()

    async def close(self) -> None:
        """Drop all subscriptions and wait for the feeds to be released."""
        self.clear()
        await self.settle()
