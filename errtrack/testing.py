"""Helpers for tests: a transport that collects envelopes and capture helpers."""

from __future__ import annotations

import dataclasses
import gc
import threading
from collections.abc import Callable
from typing import Any

from errtrack.client import Client
from errtrack.hub import Hub
from errtrack.options import ClientOptions
from errtrack.protocol import Envelope, Event
from errtrack.scope import Scope
from errtrack.transport import Transport

TEST_DSN = "https://public@example.com/1"


class TestTransport(Transport):
    """Collects envelopes instead of sending them."""

    __test__ = False

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collected: list[Envelope] = []

    def send_envelope(self, envelope: Envelope) -> None:
        with self._lock:
            self._collected.append(envelope)

    def fetch_and_clear_events(self) -> list[Event]:
        """Return the events of all collected envelopes and clear them."""
        return [
            event
            for envelope in self.fetch_and_clear_envelopes()
            if (event := envelope.event()) is not None
        ]

    def fetch_and_clear_envelopes(self) -> list[Envelope]:
        """Return all collected envelopes and clear them."""
        with self._lock:
            collected, self._collected = self._collected, []
        return collected


def with_captured_events(f: Callable[[], Any]) -> list[Event]:
    """Run ``f`` with a test hub and return the events it captured."""
    return with_captured_events_options(f, ClientOptions())


def with_captured_events_options(f: Callable[[], Any], options: Any) -> list[Event]:
    """Run ``f`` with a test hub built from ``options`` and return the captured events."""
    return [
        event
        for envelope in with_captured_envelopes_options(f, options)
        if (event := envelope.event()) is not None
    ]


def with_captured_envelopes(f: Callable[[], Any]) -> list[Envelope]:
    """Run ``f`` with a test hub and return the envelopes it sent."""
    return with_captured_envelopes_options(f, ClientOptions())


def with_captured_envelopes_options(f: Callable[[], Any], options: Any) -> list[Envelope]:
    """Run ``f`` with a fresh hub whose client sends to a ``TestTransport``.

    A test DSN is used when the options have none. After ``f`` returns, open
    sessions are ended and everything queued is flushed before the envelopes
    are returned.
    """
    transport = TestTransport()
    options = dataclasses.replace(ClientOptions.from_config(options))
    if options.dsn is None:
        options.dsn = TEST_DSN
    options.transport = transport
    client = Client(options)
    hub = Hub(client, Scope())
    try:
        Hub.run(hub, f)
    finally:
        # dropping the hub finishes the sessions its scopes still hold
        del hub
        gc.collect()
        client.close()
    return transport.fetch_and_clear_envelopes()