"""Module-level functions that act on the current thread's hub."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from errtrack.hub import Hub
from errtrack.performance import Transaction, TransactionContext
from errtrack.protocol import NIL_UUID, Event, Level, SessionStatus
from errtrack.scope import Scope

R = TypeVar("R")


def capture_event(event: Event) -> uuid.UUID:
    """Capture an assembled event; return its id, or the nil UUID if it was discarded."""
    return Hub.with_active(lambda hub: hub.capture_event(event), NIL_UUID)


def capture_message(msg: str, level: Level) -> uuid.UUID:
    """Capture a plain message at the given level."""
    return Hub.with_active(lambda hub: hub.capture_message(msg, level), NIL_UUID)


def capture_error(error: BaseException) -> uuid.UUID:
    """Capture an exception together with its chain of causes."""
    return Hub.with_active(lambda hub: hub.capture_error(error), NIL_UUID)


def add_breadcrumb(breadcrumb: Any) -> None:
    """Record breadcrumbs on the current scope.

    Accepts a breadcrumb, an iterable of them, None, or a callable returning
    one of those; the callable is only called when a client is active.
    """
    Hub.with_active(lambda hub: hub.add_breadcrumb(breadcrumb))


def configure_scope(f: Callable[[Scope], R], default: Any = None) -> R | Any:
    """Let ``f`` modify the current scope; return ``default`` if no client is active."""
    return Hub.with_active(lambda hub: hub.configure_scope(f, default), default)


def with_scope(scope_config: Callable[[Scope], Any], callback: Callable[[], R]) -> R:
    """Run ``callback`` in a temporary scope configured by ``scope_config``."""
    hub = Hub.current()
    if hub.is_active_and_usage_safe():
        return hub.with_scope(scope_config, callback)
    return callback()


def with_integration(
    cls: type, f: Callable[[Any, Hub], R], default: Any = None
) -> R | Any:
    """Call ``f(integration, hub)`` with the first active integration of class ``cls``."""
    return Hub.with_active(
        lambda hub: hub.with_integration(cls, lambda integration: f(integration, hub), default),
        default,
    )


def last_event_id() -> uuid.UUID | None:
    """Return the id of the last event captured on the current hub, if any."""
    return Hub.current().last_event_id()


def start_session() -> None:
    """Start a new release-health session."""
    Hub.with_active(lambda hub: hub.start_session())


def end_session() -> None:
    """End the current release-health session as exited."""
    end_session_with_status(SessionStatus.EXITED)


def end_session_with_status(status: SessionStatus) -> None:
    """End the current release-health session with the given status."""
    Hub.with_active(lambda hub: hub.end_session_with_status(status))


def start_transaction(ctx: TransactionContext) -> Transaction:
    """Start a performance transaction; it must be finished explicitly."""
    client = Hub.with_active(lambda hub: hub.client())
    return Transaction(client, ctx)