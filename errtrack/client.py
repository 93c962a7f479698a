"""The client processes events and hands them to the configured transport."""

from __future__ import annotations

import copy
import dataclasses
import random
import sys
import threading
from typing import Any

from errtrack.options import ClientOptions, Integration, SessionMode
from errtrack.protocol import (
    NIL_UUID,
    ClientSdkInfo,
    Envelope,
    Event,
    SessionUpdate,
)
from errtrack.scope import Scope
from errtrack.session import SessionFlusher
from errtrack.transport import Transport, create_transport

import uuid


class Client:
    """Processes events and sends them through a transport.

    The client is enabled only when both a DSN and a transport are configured.
    """

    def __init__(self, options: ClientOptions) -> None:
        options = dataclasses.replace(options)
        options.integrations = list(options.integrations)
        self._transport_lock = threading.RLock()
        self._transport: Transport | None = None
        if options.dsn is not None and options.transport is not None:
            self._transport = create_transport(options.transport, options)

        self.sdk_info = ClientSdkInfo.default()
        # duplicates are kept on purpose
        self.integrations: list[Integration] = list(options.integrations)
        for integration in self.integrations:
            integration.setup(options)
            self.sdk_info.integrations.append(integration.name())

        self.options = options
        self._flusher_lock = threading.Lock()
        self._session_flusher: SessionFlusher | None = SessionFlusher(
            self._current_transport, options.session_mode
        )

    @classmethod
    def from_config(cls, config: Any) -> Client:
        """Create a client from options, a DSN, or a ``(dsn, options)`` pair."""
        return cls(ClientOptions.from_config(config))

    def copy(self) -> Client:
        """Return a client with the same options and transport but its own flusher."""
        new = Client.__new__(Client)
        new._transport_lock = threading.RLock()
        new._transport = self._current_transport()
        new.sdk_info = copy.deepcopy(self.sdk_info)
        new.integrations = list(self.integrations)
        new.options = self.options
        new._flusher_lock = threading.Lock()
        new._session_flusher = SessionFlusher(
            new._current_transport, new.options.session_mode
        )
        return new

    def _current_transport(self) -> Transport | None:
        with self._transport_lock:
            return self._transport

    def _debug(self, message: str) -> None:
        if self.options.debug:
            print(f"[errtrack] {message}", file=sys.stderr)

    def get_integration(self, cls: type) -> Any:
        """Return the first integration of exactly the given class, or None."""
        return next((i for i in self.integrations if type(i) is cls), None)

    def dsn(self) -> str | None:
        return self.options.dsn

    def is_enabled(self) -> bool:
        return self.options.dsn is not None and self._current_transport() is not None

    def _sample_should_send(self) -> bool:
        rate = self.options.sample_rate
        return rate >= 1.0 or random.random() <= rate

    def sample_traces_should_send(self) -> bool:
        """Return True with the probability given by ``traces_sample_rate``."""
        rate = self.options.traces_sample_rate
        return rate >= 1.0 or random.random() <= rate

    def _prepare_event(self, event: Event, scope: Scope | None) -> Event | None:
        if scope is not None:
            scope.update_session_from_event(event)

        if not self._sample_should_send():
            return None

        # set before processors run so they can inspect these fields
        if event.event_id == NIL_UUID:
            event.event_id = uuid.uuid4()
        if event.sdk is None:
            event.sdk = copy.deepcopy(self.sdk_info)

        if scope is not None:
            scoped = scope.apply_to_event(event)
            if scoped is None:
                return None
            event = scoped

        for integration in self.integrations:
            event_id = event.event_id
            processed = integration.process_event(event, self.options)
            if processed is None:
                self._debug(f"integration dropped event {event_id}")
                return None
            event = processed

        if event.release is None:
            event.release = self.options.release
        if event.environment is None:
            event.environment = self.options.environment
        if event.server_name is None:
            event.server_name = self.options.server_name
        if event.platform == "other":
            event.platform = "python"

        before_send = self.options.before_send
        if before_send is None:
            return event
        self._debug("invoking before_send callback")
        event_id = event.event_id
        result = before_send(event)
        if result is None:
            self._debug(f"before_send dropped event {event_id}")
        return result

    def capture_event(self, event: Event, scope: Scope | None = None) -> uuid.UUID:
        """Process and send an event; return its id, or the nil UUID if it was dropped."""
        with self._transport_lock:
            transport = self._transport
            if transport is None:
                return NIL_UUID
            prepared = self._prepare_event(event, scope)
            if prepared is None:
                return NIL_UUID
            envelope = Envelope()
            envelope.add_item(prepared)
            # request-mode sessions are aggregated instead of sent early
            if self.options.session_mode == SessionMode.APPLICATION and scope is not None:
                item = scope._session_envelope_item()
                if item is not None:
                    envelope.add_item(item)
            transport.send_envelope(envelope)
            return prepared.event_id

    def send_envelope(self, envelope: Envelope) -> None:
        with self._transport_lock:
            if self._transport is not None:
                self._transport.send_envelope(envelope)

    def enqueue_session(self, session_update: SessionUpdate) -> None:
        with self._flusher_lock:
            flusher = self._session_flusher
        if flusher is not None:
            flusher.enqueue(session_update)

    def flush(self, timeout: float | None = None) -> bool:
        """Send pending sessions and drain the transport without shutting down."""
        with self._flusher_lock:
            flusher = self._session_flusher
        if flusher is not None:
            flusher.flush()
        transport = self._current_transport()
        if transport is None:
            return True
        return transport.flush(
            timeout if timeout is not None else self.options.shutdown_timeout
        )

    def close(self, timeout: float | None = None) -> bool:
        """Drain and shut down the transport, then detach it.

        Returns whether the queue was drained within the timeout.
        """
        with self._flusher_lock:
            flusher, self._session_flusher = self._session_flusher, None
        if flusher is not None:
            flusher.shutdown()
        with self._transport_lock:
            transport, self._transport = self._transport, None
        if transport is None:
            self._debug("client close; no transport to shut down")
            return True
        self._debug("client close; request transport to shut down")
        return transport.shutdown(
            timeout if timeout is not None else self.options.shutdown_timeout
        )

    def __repr__(self) -> str:
        return f"Client(dsn={self.dsn()!r}, options={self.options!r})"