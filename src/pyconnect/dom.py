"""DOM host capability.

The event bus only needs three things from a document: nodes that know
their parent and can test a selector, a root that accepts native
listeners, and events carrying a type and a target. Those are the
:class:`DomNode`, :class:`DomRoot` and :class:`DomEvent` protocols.

:class:`Element` and :class:`Event` are a small in-memory host that
satisfies them, used for headless runs and tests. Supported selectors:
type (``li``), universal (``*``), ``#id``, ``.class``, ``[attr]``,
``[attr=value]``, compounds of those, selector lists (``a, b``) and the
descendant (``a b``) and child (``a > b``) combinators.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

NativeListener = Callable[[Any], None]


class DomNode(Protocol):
    @property
    def parent(self) -> DomNode | None:
        ...

    def matches(self, selector: str) -> bool:
        ...


class DomRoot(DomNode, Protocol):
    """A node native listeners can be attached to. Must be hashable."""

    def add_event_listener(self, event_type: str, listener: NativeListener) -> None:
        ...

    def remove_event_listener(self, event_type: str, listener: NativeListener) -> None:
        ...


class DomEvent(Protocol):
    @property
    def type(self) -> str:
        ...

    @property
    def target(self) -> DomNode | None:
        ...


# ---------------------------------------------------------------------------
# Selector parsing
# ---------------------------------------------------------------------------

_TAG_RE = re.compile(r"^(\*|[A-Za-z][\w-]*)")
_SIMPLE_RE = re.compile(r"#[\w-]+|\.[\w-]+|\[[^\]]*\]")
_ATTR_RE = re.compile(r"""^\[\s*([\w-]+)\s*(?:=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'\]]+))\s*)?\]$""")


@dataclass(frozen=True, slots=True)
class _Compound:
    tag: str | None = None
    ident: str | None = None
    classes: frozenset[str] = frozenset()
    attrs: tuple[tuple[str, str | None], ...] = ()

    def test(self, node: Element) -> bool:
        if self.tag is not None and node.tag != self.tag:
            return False
        if self.ident is not None and node.id != self.ident:
            return False
        if not self.classes <= node.classes:
            return False
        for name, expected in self.attrs:
            actual = node.get_attribute(name)
            if actual is None:
                return False
            if expected is not None and actual != expected:
                return False
        return True


@dataclass(frozen=True, slots=True)
class _Complex:
    compounds: tuple[_Compound, ...]
    # combinators[i] joins compounds[i] and compounds[i + 1]: " " or ">".
    combinators: tuple[str, ...] = field(default=())

    def test(self, node: Element) -> bool:
        return self._test_at(node, len(self.compounds) - 1)

    def _test_at(self, node: Element, index: int) -> bool:
        if not self.compounds[index].test(node):
            return False
        if index == 0:
            return True
        ancestor = node.parent
        if self.combinators[index - 1] == ">":
            return ancestor is not None and self._test_at(ancestor, index - 1)
        while ancestor is not None:
            if self._test_at(ancestor, index - 1):
                return True
            ancestor = ancestor.parent
        return False


def _parse_compound(text: str, selector: str) -> _Compound:
    tag: str | None = None
    match = _TAG_RE.match(text)
    if match:
        tag = None if match.group(1) == "*" else match.group(1).lower()
        text = text[match.end() :]

    simples = _SIMPLE_RE.findall(text)
    if "".join(simples) != text:
        raise ValueError(f"Unsupported selector: {selector!r}")

    ident: str | None = None
    classes: set[str] = set()
    attrs: list[tuple[str, str | None]] = []
    for simple in simples:
        if simple.startswith("#"):
            ident = simple[1:]
        elif simple.startswith("."):
            classes.add(simple[1:])
        else:
            attr = _ATTR_RE.match(simple)
            if attr is None:
                raise ValueError(f"Unsupported attribute selector {simple!r} in {selector!r}")
            name, dq, sq, bare = attr.groups()
            value = next((v for v in (dq, sq, bare) if v is not None), None)
            attrs.append((name.lower(), value))
    return _Compound(tag=tag, ident=ident, classes=frozenset(classes), attrs=tuple(attrs))


@functools.lru_cache(maxsize=256)
def parse_selector(selector: str) -> tuple[_Complex, ...]:
    """Parse a selector list. Raises ``ValueError`` for unsupported syntax."""
    complexes: list[_Complex] = []
    for part in selector.split(","):
        tokens = re.sub(r"\s*>\s*", " > ", part.strip()).split()
        if not tokens or tokens[0] == ">" or tokens[-1] == ">":
            raise ValueError(f"Invalid selector: {selector!r}")
        compounds: list[_Compound] = []
        combinators: list[str] = []
        pending = " "
        for token in tokens:
            if token == ">":
                pending = ">"
                continue
            if compounds:
                combinators.append(pending)
            compounds.append(_parse_compound(token, selector))
            pending = " "
        complexes.append(_Complex(compounds=tuple(compounds), combinators=tuple(combinators)))
    return tuple(complexes)


# ---------------------------------------------------------------------------
# In-memory host
# ---------------------------------------------------------------------------


class Event:
    """A bubbling event dispatched through :meth:`Element.dispatch_event`."""

    def __init__(self, event_type: str, *, detail: Any = None, bubbles: bool = True) -> None:
        self.type = event_type
        self.detail = detail
        self.bubbles = bubbles
        self.target: Element | None = None
        self.current_target: Element | None = None
        self.propagation_stopped = False
        self.default_prevented = False

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    def prevent_default(self) -> None:
        self.default_prevented = True

    def __repr__(self) -> str:
        return f"Event({self.type!r}, target={self.target!r})"


class Element:
    """Minimal element node: tag, id, classes, attributes and children."""

    def __init__(
        self,
        tag: str = "div",
        *,
        id: str | None = None,  # noqa: A002
        classes: Iterable[str] | str = (),
        attrs: dict[str, str] | None = None,
        children: Iterable[Element] = (),
    ) -> None:
        self.tag = tag.lower()
        self.id = id
        self.classes: set[str] = set(classes.split() if isinstance(classes, str) else classes)
        self.attributes: dict[str, str] = {k.lower(): v for k, v in (attrs or {}).items()}
        self._parent: Element | None = None
        self.children: list[Element] = []
        self._listeners: dict[str, list[NativeListener]] = {}
        for child in children:
            self.append(child)

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        classes = "".join(f".{c}" for c in sorted(self.classes))
        return f"<{self.tag}{ident}{classes}>"

    @property
    def parent(self) -> Element | None:
        return self._parent

    def get_attribute(self, name: str) -> str | None:
        if name == "id":
            return self.id
        if name == "class":
            return " ".join(sorted(self.classes)) if self.classes else None
        return self.attributes.get(name)

    # Tree ----------------------------------------------------------------

    def append(self, child: Element) -> Element:
        if child._parent is not None:
            child.remove()
        child._parent = self
        self.children.append(child)
        return child

    def remove(self) -> None:
        parent = self._parent
        if parent is None:
            return
        parent.children.remove(self)
        self._parent = None

    def iter_descendants(self) -> Iterator[Element]:
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def matches(self, selector: str) -> bool:
        return any(c.test(self) for c in parse_selector(selector))

    def closest(self, selector: str) -> Element | None:
        node: Element | None = self
        while node is not None:
            if node.matches(selector):
                return node
            node = node.parent
        return None

    def query(self, selector: str) -> Element | None:
        return next((el for el in self.iter_descendants() if el.matches(selector)), None)

    def query_all(self, selector: str) -> list[Element]:
        return [el for el in self.iter_descendants() if el.matches(selector)]

    # Events --------------------------------------------------------------

    def add_event_listener(self, event_type: str, listener: NativeListener) -> None:
        listeners = self._listeners.setdefault(event_type, [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, event_type: str, listener: NativeListener) -> None:
        listeners = self._listeners.get(event_type)
        if listeners and listener in listeners:
            listeners.remove(listener)
            if not listeners:
                del self._listeners[event_type]

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, ()))

    def dispatch_event(self, event: Event) -> bool:
        """Dispatch *event* at this node and bubble it to the ancestors.

        Returns ``False`` when a listener called ``prevent_default``.
        """
        event.target = self
        node: Element | None = self
        while node is not None:
            event.current_target = node
            for listener in list(node._listeners.get(event.type, ())):
                listener(event)
            if event.propagation_stopped or not event.bubbles:
                break
            node = node.parent
        event.current_target = None
        return not event.default_prevented
