"""Scopes hold contextual data applied to events; a stack of them backs a hub."""

from __future__ import annotations

import contextlib
import copy
import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from errtrack.performance import Span, Transaction
from errtrack.protocol import Breadcrumb, Event, Level, User

logger = logging.getLogger(__name__)

EventProcessor = Callable[[Event], "Event | None"]

_DEFAULT_FINGERPRINTS = ("{{ default }}", "{{default}}")


class _SessionSlot:
    """A shared, lockable holder for the session of a scope and its copies.

    When the last reference to the slot goes away, the session it still
    holds is finished and handed to its client.
    """

    def __init__(self, session: Any = None) -> None:
        self.lock = threading.Lock()
        self.session = session

    def take(self) -> Any:
        with self.lock:
            session, self.session = self.session, None
        return session

    def __del__(self) -> None:
        session = self.__dict__.get("session")
        if session is None:
            return
        self.session = None
        try:
            session.finish()
        except Exception:  # the interpreter may be shutting down
            pass


class Scope:
    """Contextual data (breadcrumbs, tags, user, ...) that is applied to events."""

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.level: Level | None = None
        self.fingerprint: tuple[str, ...] | None = None
        self.transaction: str | None = None
        self.breadcrumbs: deque[Breadcrumb] = deque()
        self.user: User | None = None
        self.extra: dict[str, Any] = {}
        self.tags: dict[str, str] = {}
        self.contexts: dict[str, Any] = {}
        self.event_processors: list[EventProcessor] = []
        self.span: Transaction | Span | None = None
        self._session = _SessionSlot()

    def copy(self) -> Scope:
        """Return a copy with its own containers; the session and span are shared."""
        new = Scope()
        new.level = self.level
        new.fingerprint = self.fingerprint
        new.transaction = self.transaction
        new.breadcrumbs = deque(self.breadcrumbs)
        new.user = self.user
        new.extra = dict(self.extra)
        new.tags = dict(self.tags)
        new.contexts = dict(self.contexts)
        new.event_processors = list(self.event_processors)
        new.span = self.span
        new._session = self._session
        return new

    __copy__ = copy

    def clear(self) -> None:
        """Wipe all data held by the scope, including the session."""
        self._reset()

    def clear_breadcrumbs(self) -> None:
        self.breadcrumbs = deque()

    def set_level(self, level: Level | None) -> None:
        """Set a level that overrides the level of captured events."""
        self.level = level

    def set_fingerprint(self, fingerprint: Iterable[str] | None) -> None:
        self.fingerprint = None if fingerprint is None else tuple(fingerprint)

    def set_transaction(self, transaction: str | None) -> None:
        """Set the transaction name, renaming the active transaction too."""
        self.transaction = transaction
        if transaction is None:
            return
        span = self.span
        if isinstance(span, Span):
            trx = span.transaction
        elif isinstance(span, Transaction):
            trx = span
        else:
            return
        with trx._lock:
            if trx.data is not None:
                trx.data.name = transaction

    def set_user(self, user: User | None) -> None:
        self.user = user

    def set_tag(self, key: str, value: Any) -> None:
        self.tags[key] = str(value)

    def remove_tag(self, key: str) -> None:
        self.tags.pop(key, None)

    def set_context(self, key: str, value: Any) -> None:
        self.contexts[key] = value

    def remove_context(self, key: str) -> None:
        self.contexts.pop(key, None)

    def set_extra(self, key: str, value: Any) -> None:
        self.extra[key] = value

    def remove_extra(self, key: str) -> None:
        self.extra.pop(key, None)

    def add_event_processor(self, processor: EventProcessor) -> None:
        """Add a callable that may change an event or return None to drop it."""
        self.event_processors.append(processor)

    def apply_to_event(self, event: Event) -> Event | None:
        """Fill the event with the scope's data; return None if a processor drops it."""
        if self.level is not None:
            event.level = self.level
        if event.user is None and self.user is not None:
            event.user = copy.deepcopy(self.user)

        event.breadcrumbs.extend(copy.deepcopy(b) for b in self.breadcrumbs)
        event.extra.update(self.extra)
        event.tags.update(self.tags)
        event.contexts.update(self.contexts)

        if self.span is not None:
            self.span.apply_to_event(event)

        if event.transaction is None and self.transaction is not None:
            event.transaction = self.transaction

        if (
            len(event.fingerprint) == 1
            and event.fingerprint[0] in _DEFAULT_FINGERPRINTS
            and self.fingerprint is not None
        ):
            event.fingerprint = list(self.fingerprint)

        for processor in self.event_processors:
            event_id = event.event_id
            result = processor(event)
            if result is None:
                logger.debug("event processor dropped event %s", event_id)
                return None
            event = result
        return event

    def set_span(self, span: Transaction | Span | None) -> None:
        """Set the active transaction or span."""
        self.span = span

    def get_span(self) -> Transaction | Span | None:
        return self.span

    def update_session_from_event(self, event: Event) -> None:
        """Let the current session, if any, count the event."""
        slot = self._session
        with slot.lock:
            if slot.session is not None:
                slot.session.update_from_event(event)

    def _replace_session(self, session: Any) -> None:
        # a new slot, so the session is inherited forwards but never backwards
        self._session = _SessionSlot(session)

    def _take_session(self) -> Any:
        return self._session.take()

    def _session_envelope_item(self) -> Any:
        slot = self._session
        with slot.lock:
            if slot.session is None:
                return None
            return slot.session.create_envelope_item()

    def __repr__(self) -> str:
        return (
            f"Scope(level={self.level!r}, fingerprint={self.fingerprint!r}, "
            f"transaction={self.transaction!r}, breadcrumbs={list(self.breadcrumbs)!r}, "
            f"user={self.user!r}, extra={self.extra!r}, tags={self.tags!r}, "
            f"contexts={self.contexts!r}, "
            f"event_processors={len(self.event_processors)}, "
            f"session={self._session.session!r})"
        )


@dataclass
class StackLayer:
    client: Any = None
    scope: Scope = field(default_factory=Scope)


class Stack:
    """A non-empty stack of client and scope layers."""

    def __init__(self, client: Any = None, scope: Scope | None = None) -> None:
        self._layers = [StackLayer(client, scope if scope is not None else Scope())]

    def push(self) -> None:
        """Push a layer with the same client and a copy of the top scope."""
        top = self._layers[-1]
        self._layers.append(StackLayer(top.client, top.scope.copy()))

    def pop(self) -> None:
        if len(self._layers) <= 1:
            raise RuntimeError("Pop from empty stack")
        self._layers.pop()

    def top(self) -> StackLayer:
        return self._layers[-1]

    def depth(self) -> int:
        return len(self._layers)

    def __repr__(self) -> str:
        return f"Stack(depth={self.depth()})"


class ScopeGuard:
    """Pops a pushed scope when closed or when its ``with`` block ends."""

    def __init__(
        self, stack: Stack | None = None, depth: int = 0, lock: Any = None
    ) -> None:
        self._stack = stack
        self._depth = depth
        self._lock = lock if lock is not None else contextlib.nullcontext()

    def close(self) -> None:
        """Pop the guarded scope; raise RuntimeError if guards are closed out of order."""
        stack, self._stack = self._stack, None
        if stack is None:
            return
        with self._lock:
            if stack.depth() != self._depth:
                raise RuntimeError("Tried to pop guards out of order")
            stack.pop()

    def __enter__(self) -> ScopeGuard:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return "ScopeGuard"