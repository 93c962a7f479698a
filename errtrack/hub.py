"""The hub manages a stack of scopes and the client bound to them."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from errtrack.errors import event_from_error
from errtrack.performance import Transaction, TransactionContext
from errtrack.protocol import NIL_UUID, Event, Level, SessionStatus, into_breadcrumbs
from errtrack.scope import Scope, ScopeGuard, Stack
from errtrack.session import Session

R = TypeVar("R")

_local = threading.local()


class Hub:
    """Manages scopes and a client; captures events and breadcrumbs.

    Every thread has its own current hub, derived from the main hub on first
    use. ``Hub.run`` binds another hub to the current thread for one call.
    """

    def __init__(self, client: Any = None, scope: Scope | None = None) -> None:
        self._lock = threading.RLock()
        self._stack = Stack(client, scope if scope is not None else Scope())
        self._last_event_id: uuid.UUID | None = None

    @classmethod
    def new_from_top(cls, other: Hub) -> Hub:
        """Create a hub with the client and top scope of another hub."""
        with other._lock:
            top = other._stack.top()
            return cls(top.client, top.scope)

    @classmethod
    def current(cls) -> Hub:
        """Return the hub bound to the current thread."""
        if _use_process_hub():
            return _PROCESS_HUB
        return _thread_hub()

    @classmethod
    def main(cls) -> Hub:
        """Return the main thread's hub."""
        return _PROCESS_HUB

    @staticmethod
    def run(hub: Hub, f: Callable[[], R]) -> R:
        """Call ``f`` with ``hub`` bound as the current hub, restoring the previous one after."""
        previous = _thread_hub()
        if previous is hub:
            return f()
        restore_process_hub = False
        if _use_process_hub():
            restore_process_hub = True
            _local.use_process_hub = False
        _local.hub = hub
        try:
            return f()
        finally:
            _local.hub = previous
            if restore_process_hub:
                _local.use_process_hub = True

    @classmethod
    def with_active(cls, f: Callable[[Hub], R], default: Any = None) -> R | Any:
        """Call ``f`` with the current hub if it has an enabled client, else return ``default``."""
        hub = cls.current()
        if hub.is_active_and_usage_safe():
            return f(hub)
        return default

    def with_integration(
        self, cls: type, f: Callable[[Any], R], default: Any = None
    ) -> R | Any:
        """Call ``f`` with the first integration of class ``cls`` on the bound client."""
        client = self.client()
        if client is not None:
            integration = client.get_integration(cls)
            if integration is not None:
                return f(integration)
        return default

    def last_event_id(self) -> uuid.UUID | None:
        return self._last_event_id

    def capture_event(self, event: Event) -> uuid.UUID:
        """Send an event through the bound client with the current scope."""
        with self._lock:
            top = self._stack.top()
            if top.client is None:
                return NIL_UUID
            event_id = top.client.capture_event(event, top.scope)
            self._last_event_id = event_id
            return event_id

    def capture_message(self, msg: str, level: Level) -> uuid.UUID:
        """Capture a plain message at the given level."""
        with self._lock:
            if self._stack.top().client is None:
                return NIL_UUID
            return self.capture_event(Event(message=msg, level=level))

    def capture_error(self, error: BaseException) -> uuid.UUID:
        """Capture an exception together with its chain of causes."""
        with self._lock:
            if self._stack.top().client is None:
                return NIL_UUID
            return self.capture_event(event_from_error(error))

    def client(self) -> Any:
        with self._lock:
            return self._stack.top().client

    def bind_client(self, client: Any) -> None:
        with self._lock:
            self._stack.top().client = client

    def start_session(self) -> None:
        """Start a new release-health session on the top scope."""
        with self._lock:
            top = self._stack.top()
            session = Session.from_layer(top)
            if session is not None:
                top.scope = top.scope.copy()
                top.scope._replace_session(session)

    def end_session(self) -> None:
        self.end_session_with_status(SessionStatus.EXITED)

    def end_session_with_status(self, status: SessionStatus) -> None:
        """Close the current session with ``status`` and queue its final update."""
        with self._lock:
            session = self._stack.top().scope._take_session()
        if session is not None:
            session.close(status)
            session.finish()

    def push_scope(self) -> ScopeGuard:
        """Push a copy of the top scope; the returned guard pops it again."""
        with self._lock:
            self._stack.push()
            return ScopeGuard(self._stack, self._stack.depth(), self._lock)

    def with_scope(
        self, scope_config: Callable[[Scope], Any], callback: Callable[[], R]
    ) -> R:
        """Run ``callback`` in a temporary scope configured by ``scope_config``."""
        with self.push_scope():
            self.configure_scope(scope_config)
            return callback()

    def configure_scope(self, f: Callable[[Scope], R], default: Any = None) -> R | Any:
        """Let ``f`` modify the top scope; return its result, or ``default`` if it returned None."""
        with self._lock:
            new_scope = self._stack.top().scope.copy()
        rv = f(new_scope)
        with self._lock:
            self._stack.top().scope = new_scope
        return default if rv is None else rv

    def add_breadcrumb(self, breadcrumb: Any) -> None:
        """Record breadcrumbs on the top scope, keeping at most ``max_breadcrumbs``."""
        with self._lock:
            top = self._stack.top()
            client = top.client
            if client is None:
                return
            options = client.options
            scope = top.scope.copy()
            top.scope = scope
            for crumb in into_breadcrumbs(breadcrumb):
                if options.before_breadcrumb is not None:
                    crumb = options.before_breadcrumb(crumb)
                if crumb is not None:
                    scope.breadcrumbs.append(crumb)
                while len(scope.breadcrumbs) > options.max_breadcrumbs:
                    scope.breadcrumbs.popleft()

    def is_active_and_usage_safe(self) -> bool:
        client = self.client()
        return client is not None and client.is_enabled()

    def start_transaction(self, ctx: TransactionContext) -> Transaction:
        """Start a transaction on the bound client."""
        return Transaction(self.client(), ctx)

    def __repr__(self) -> str:
        with self._lock:
            return f"Hub(stack={self._stack!r}, last_event_id={self._last_event_id!r})"


_PROCESS_HUB = Hub()
_PROCESS_THREAD = threading.main_thread().ident


def _use_process_hub() -> bool:
    value = getattr(_local, "use_process_hub", None)
    if value is None:
        value = threading.get_ident() == _PROCESS_THREAD
        _local.use_process_hub = value
    return value


def _thread_hub() -> Hub:
    hub = getattr(_local, "hub", None)
    if hub is None:
        hub = Hub.new_from_top(_PROCESS_HUB)
        _local.hub = hub
    return hub