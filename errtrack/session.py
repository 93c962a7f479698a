"""Release-health sessions and the background flusher that batches their updates."""

from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from errtrack.options import SessionMode
from errtrack.protocol import (
    Envelope,
    Event,
    Level,
    SessionAggregateItem,
    SessionAggregates,
    SessionAttributes,
    SessionStatus,
    SessionUpdate,
)
from errtrack.transport import Transport

logger = logging.getLogger(__name__)

MAX_SESSION_ITEMS = 100
FLUSH_INTERVAL = 60.0


class Session:
    """A single release-health session bound to a client."""

    def __init__(self, client: Any, session_update: SessionUpdate) -> None:
        self.client = client
        self.session_update = session_update
        self._started = time.monotonic()
        self.dirty = True
        self._finished = False

    @classmethod
    def from_layer(cls, layer: Any) -> Session | None:
        """Start a session from a stack layer's client and scope.

        Returns None when no client is bound or no release is configured.
        """
        client = layer.client
        if client is None:
            return None
        options = client.options
        if options.release is None:
            return None
        user = getattr(layer.scope, "user", None)
        distinct_id = None
        if user is not None:
            distinct_id = user.id or user.email or user.username
        update = SessionUpdate(
            session_id=uuid.uuid4(),
            distinct_id=distinct_id,
            attributes=SessionAttributes(
                release=options.release,
                environment=options.environment,
            ),
            started=datetime.now(timezone.utc),
            init=True,
            status=SessionStatus.OK,
            errors=0,
        )
        return cls(client, update)

    def update_from_event(self, event: Event) -> None:
        """Count errors and detect crashes from a captured event."""
        if self.session_update.status != SessionStatus.OK:
            # terminal sessions receive no further updates
            return
        has_error = event.level >= Level.ERROR
        is_crash = False
        for exc in event.exception:
            has_error = True
            if exc.mechanism is not None and exc.mechanism.handled is False:
                is_crash = True
                break
        if is_crash:
            self.session_update.status = SessionStatus.CRASHED
        if has_error:
            self.session_update.errors += 1
            self.dirty = True

    def close(self, status: SessionStatus) -> None:
        """Move an open session into a terminal state."""
        if self.session_update.status != SessionStatus.OK:
            return
        if status == SessionStatus.OK:
            status = SessionStatus.EXITED
        self.session_update.duration = time.monotonic() - self._started
        self.session_update.status = status
        self.dirty = True

    def create_envelope_item(self) -> SessionUpdate | None:
        """Return a snapshot of the update if it changed since the last one."""
        if not self.dirty:
            return None
        item = copy.deepcopy(self.session_update)
        self.session_update.init = False
        self.dirty = False
        return item

    def finish(self) -> None:
        """Close the session as exited and hand any pending update to the client."""
        if self._finished:
            return
        self._finished = True
        self.close(SessionStatus.EXITED)
        if self.dirty:
            self.dirty = False
            self.client.enqueue_session(copy.deepcopy(self.session_update))

    def __repr__(self) -> str:
        return f"Session({self.session_update!r}, dirty={self.dirty})"


@dataclass
class _AggregationCounts:
    exited: int = 0
    errored: int = 0
    abnormal: int = 0
    crashed: int = 0


@dataclass
class _AggregatedSessions:
    attributes: SessionAttributes
    buckets: dict[tuple[datetime, str | None], _AggregationCounts] = field(
        default_factory=dict
    )

    def to_item(self) -> SessionAggregates:
        aggregates = [
            SessionAggregateItem(
                started=started,
                distinct_id=distinct_id,
                exited=counts.exited,
                errored=counts.errored,
                abnormal=counts.abnormal,
                crashed=counts.crashed,
            )
            for (started, distinct_id), counts in self.buckets.items()
        ]
        return SessionAggregates(aggregates=aggregates, attributes=self.attributes)


def _truncate_to_minute(moment: datetime) -> datetime:
    seconds = int(moment.timestamp()) // 60 * 60
    return datetime.fromtimestamp(seconds, timezone.utc)


class SessionFlusher:
    """Queues session updates and sends them in batches.

    A background thread flushes the queue once every ``flush_interval`` seconds.
    In request mode, initial session updates are aggregated into per-minute buckets.
    """

    def __init__(
        self,
        get_transport: Callable[[], Transport | None],
        mode: SessionMode,
        flush_interval: float = FLUSH_INTERVAL,
    ) -> None:
        self._get_transport = get_transport
        self.mode = mode
        self.flush_interval = flush_interval
        self._lock = threading.Lock()
        self._individual: list[SessionUpdate] = []
        self._aggregated: _AggregatedSessions | None = None
        self._stop = threading.Event()
        self._closed = False
        self._worker = threading.Thread(
            target=self._run, name="session-flusher", daemon=True
        )
        self._worker.start()

    def _run(self) -> None:
        last_flush = time.monotonic()
        while True:
            remaining = max(0.0, self.flush_interval - (time.monotonic() - last_flush))
            if self._stop.wait(remaining):
                return
            if time.monotonic() - last_flush < self.flush_interval:
                continue
            self.flush()
            last_flush = time.monotonic()

    def enqueue(self, session_update: SessionUpdate) -> None:
        """Queue a session update, aggregating it in request mode when possible."""
        with self._lock:
            if self.mode == SessionMode.APPLICATION or not session_update.init:
                self._individual.append(session_update)
                full = len(self._individual) >= MAX_SESSION_ITEMS
                if not full:
                    return
            else:
                self._aggregate(session_update)
                return
        self.flush()

    def _aggregate(self, session_update: SessionUpdate) -> None:
        if self._aggregated is None:
            self._aggregated = _AggregatedSessions(
                attributes=copy.deepcopy(session_update.attributes)
            )
        key = (_truncate_to_minute(session_update.started), session_update.distinct_id)
        bucket = self._aggregated.buckets.setdefault(key, _AggregationCounts())
        status = session_update.status
        if status == SessionStatus.EXITED:
            if session_update.errors > 0:
                bucket.errored += 1
            else:
                bucket.exited += 1
        elif status == SessionStatus.CRASHED:
            bucket.crashed += 1
        elif status == SessionStatus.ABNORMAL:
            bucket.abnormal += 1
        else:
            logger.debug("unreachable: only closed sessions will be enqueued")

    def flush(self) -> None:
        """Send everything queued so far to the transport."""
        with self._lock:
            individual, self._individual = self._individual, []
            aggregated, self._aggregated = self._aggregated, None

        if aggregated is not None:
            transport = self._get_transport()
            if transport is not None:
                envelope = Envelope()
                envelope.add_item(aggregated.to_item())
                transport.send_envelope(envelope)

        for start in range(0, len(individual), MAX_SESSION_ITEMS):
            envelope = Envelope()
            for update in individual[start : start + MAX_SESSION_ITEMS]:
                envelope.add_item(update)
            transport = self._get_transport()
            if transport is not None:
                transport.send_envelope(envelope)

    def shutdown(self) -> None:
        """Stop the background thread and flush what remains."""
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        if self._worker is not threading.current_thread():
            self._worker.join()
        self.flush()

    def __enter__(self) -> SessionFlusher:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.shutdown()