"""Delegated DOM event bindings.

One native listener is attached per ``(event type, root)`` pair no matter
how many selectors are bound to it. Targets are matched against the
selector when the event fires, so elements inserted after subscribing
are picked up.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pyconnect.dom import DomEvent, DomNode, DomRoot, NativeListener
from pyconnect.events.models import Subscription, SubscriptionInfo, SubscriptionKind
from pyconnect.exceptions import DomUnavailableError

_logger = logging.getLogger(__name__)

DomCallback = Callable[[DomEvent, DomNode], Any]
_Pair = tuple[str, DomRoot]


@dataclass(slots=True)
class _DomBinding:
    subscription: Subscription
    callback: DomCallback
    once: bool
    active: bool = True


def find_delegate(target: DomNode | None, selector: str, root: DomRoot) -> DomNode | None:
    """Nearest node from *target* up to *root* (inclusive) matching *selector*."""
    node = target
    while node is not None:
        if node.matches(selector):
            return node
        if node is root:
            return None
        node = node.parent
    return None


class DomDelegator:
    """Owns delegated bindings and the native listeners backing them."""

    def __init__(
        self,
        root: DomRoot | None,
        *,
        invoke: Callable[..., None],
    ) -> None:
        self._root = root
        self._invoke = invoke
        self._bindings: dict[_Pair, dict[int, _DomBinding]] = {}
        self._native: dict[_Pair, NativeListener] = {}
        self._index: dict[int, _Pair] = {}

    @property
    def root(self) -> DomRoot | None:
        return self._root

    def attached(self) -> list[tuple[str, DomRoot]]:
        """Pairs that currently have a native listener attached."""
        return list(self._native)

    def on(
        self,
        subscription_id: int,
        event_type: str,
        selector: str,
        callback: DomCallback,
        *,
        root: DomRoot | None = None,
        once: bool = False,
    ) -> Subscription:
        target_root = root if root is not None else self._root
        if target_root is None:
            raise DomUnavailableError(f"Cannot delegate {event_type!r} for {selector!r}: no DOM root configured")

        pair: _Pair = (event_type, target_root)
        subscription = Subscription(
            id=subscription_id,
            event_name=event_type,
            kind=SubscriptionKind.DOM,
            selector=selector,
        )
        bindings = self._bindings.setdefault(pair, {})
        bindings[subscription_id] = _DomBinding(subscription=subscription, callback=callback, once=once)
        self._index[subscription_id] = pair

        if pair not in self._native:
            native = functools.partial(self._dispatch, pair)
            self._native[pair] = native
            target_root.add_event_listener(event_type, native)
            _logger.debug("Attached native %r listener on %r", event_type, target_root)
        return subscription

    def off(self, subscription: Subscription) -> None:
        pair = self._index.pop(subscription.id, None)
        if pair is None:
            return
        bindings = self._bindings.get(pair, {})
        binding = bindings.pop(subscription.id, None)
        if binding is not None:
            binding.active = False
        if not bindings:
            self._detach(pair)

    def clear(self, event_type: str | None = None) -> None:
        for pair in list(self._bindings):
            if event_type is not None and pair[0] != event_type:
                continue
            for sub_id, binding in self._bindings[pair].items():
                binding.active = False
                self._index.pop(sub_id, None)
            self._bindings[pair].clear()
            self._detach(pair)

    def describe(self) -> list[SubscriptionInfo]:
        counts: dict[tuple[str, str], int] = {}
        for (event_type, _root), bindings in self._bindings.items():
            for binding in bindings.values():
                key = (event_type, binding.subscription.selector or "")
                counts[key] = counts.get(key, 0) + 1
        return [
            SubscriptionInfo(name=event_type, kind=SubscriptionKind.DOM, listeners=n, selector=selector)
            for (event_type, selector), n in counts.items()
        ]

    def _detach(self, pair: _Pair) -> None:
        self._bindings.pop(pair, None)
        native = self._native.pop(pair, None)
        if native is None:
            return
        event_type, root = pair
        root.remove_event_listener(event_type, native)
        _logger.debug("Detached native %r listener from %r", event_type, root)

    def _dispatch(self, pair: _Pair, event: DomEvent) -> None:
        event_type, root = pair
        for binding in list(self._bindings.get(pair, {}).values()):
            if not binding.active:
                continue
            selector = binding.subscription.selector or ""
            try:
                matched = find_delegate(event.target, selector, root)
            except ValueError:
                _logger.exception("Invalid delegated selector %r for %r", selector, event_type)
                continue
            if matched is None:
                continue
            if binding.once:
                self.off(binding.subscription)
            self._invoke(event_type, binding.callback, event, matched)
