"""Performance monitoring: transactions, spans and distributed trace headers."""

from __future__ import annotations

import copy
import dataclasses
import json
import string
import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from errtrack.protocol import (
    ClientSdkInfo,
    Envelope,
    Event,
    Request,
    SpanData,
    SpanStatus,
    TraceContext,
    TransactionData,
    new_trace_id,
)

MAX_SPANS = 1_000
TRACE_HEADER = "sentry-trace"

_HEX_DIGITS = frozenset(string.hexdigits)


def _parse_hex_id(text: str, length: int) -> str | None:
    if len(text) != length or not all(c in _HEX_DIGITS for c in text):
        return None
    return text.lower()


@dataclass(frozen=True)
class SentryTrace:
    """The content of a ``sentry-trace`` header."""

    trace_id: str
    span_id: str
    sampled: bool | None = None

    def __str__(self) -> str:
        text = f"{self.trace_id}-{self.span_id}"
        if self.sampled is not None:
            text += "-1" if self.sampled else "-0"
        return text


def parse_sentry_trace(header: str) -> SentryTrace | None:
    """Parse a ``sentry-trace`` header value; return None if it is malformed."""
    parts = header.strip().split("-", 2)
    if len(parts) < 2:
        return None
    trace_id = _parse_hex_id(parts[0], 32)
    span_id = _parse_hex_id(parts[1], 16)
    if trace_id is None or span_id is None:
        return None
    sampled = None
    if len(parts) == 3:
        sampled = {"1": True, "0": False}.get(parts[2])
    return SentryTrace(trace_id, span_id, sampled)


def _trace_headers(trace: SentryTrace) -> Iterator[tuple[str, str]]:
    return iter([(TRACE_HEADER, str(trace))])


class TransactionContext:
    """Metadata for starting a transaction, and the link to a distributed trace."""

    def __init__(self, name: str, op: str) -> None:
        self.name = name
        self.op = op
        self.trace_id: str = new_trace_id()
        self.parent_span_id: str | None = None
        self.sampled: bool | None = None

    @classmethod
    def continue_from_headers(
        cls,
        name: str,
        op: str,
        headers: Mapping[str, str] | Iterable[tuple[str, str]],
    ) -> TransactionContext:
        """Create a context continuing the trace given by a ``sentry-trace`` header."""
        pairs = headers.items() if isinstance(headers, Mapping) else headers
        trace = None
        for key, value in pairs:
            if key.lower() == TRACE_HEADER:
                trace = parse_sentry_trace(value)
        ctx = cls(name, op)
        if trace is not None:
            ctx.trace_id = trace.trace_id
            ctx.parent_span_id = trace.span_id
            ctx.sampled = trace.sampled
        return ctx

    @classmethod
    def continue_from_span(
        cls, name: str, op: str, span: Transaction | Span | None
    ) -> TransactionContext:
        """Create a context whose parent is an existing transaction or span."""
        ctx = cls(name, op)
        if span is None:
            return ctx
        if isinstance(span, Transaction):
            with span._lock:
                ctx.trace_id = span.context.trace_id
                ctx.parent_span_id = span.context.span_id
                ctx.sampled = span.sampled
        else:
            with span._lock:
                ctx.trace_id = span.data.trace_id
                ctx.parent_span_id = span.data.span_id
                ctx.sampled = span.sampled
        return ctx

    def set_sampled(self, sampled: bool | None) -> None:
        """Set an explicit sampling decision, or None to use the sample rate."""
        self.sampled = sampled

    def __repr__(self) -> str:
        return (
            f"TransactionContext(name={self.name!r}, op={self.op!r}, "
            f"trace_id={self.trace_id!r}, parent_span_id={self.parent_span_id!r}, "
            f"sampled={self.sampled!r})"
        )


def _new_child(parent_trace_id: str, parent_span_id: str, op: str, description: str) -> SpanData:
    return SpanData(
        trace_id=parent_trace_id,
        parent_span_id=parent_span_id,
        op=op,
        description=description or None,
    )


class Transaction:
    """A running transaction; the root span of its span tree.

    It must be finished explicitly, otherwise nothing is sent.
    """

    def __init__(self, client: Any, ctx: TransactionContext) -> None:
        self._lock = threading.Lock()
        self.context = TraceContext(
            trace_id=ctx.trace_id,
            parent_span_id=ctx.parent_span_id,
            op=ctx.op,
        )
        data: TransactionData | None
        if client is not None:
            sampled = (
                ctx.sampled
                if ctx.sampled is not None
                else client.sample_traces_should_send()
            )
            data = TransactionData(name=ctx.name)
        else:
            sampled = bool(ctx.sampled)
            data = None
        if not sampled:
            # nothing will be sent on finish
            data = None
            client = None
        self.sampled: bool = sampled
        self.data: TransactionData | None = data
        self._client = client

    def set_data(self, key: str, value: Any) -> None:
        """Attach extra data to the transaction."""
        with self._lock:
            if self.data is not None:
                self.data.extra[key] = value

    def get_status(self) -> SpanStatus | None:
        with self._lock:
            return self.context.status

    def set_status(self, status: SpanStatus) -> None:
        with self._lock:
            self.context.status = status

    def set_request(self, request: Request) -> None:
        """Attach HTTP request information."""
        with self._lock:
            if self.data is not None:
                self.data.request = request

    def iter_headers(self) -> Iterator[tuple[str, str]]:
        """Yield the headers needed to continue this trace elsewhere."""
        with self._lock:
            trace = SentryTrace(self.context.trace_id, self.context.span_id, self.sampled)
        return _trace_headers(trace)

    def finish(self) -> None:
        """Record the end time and send the transaction with its finished spans."""
        with self._lock:
            data, self.data = self.data, None
            client, self._client = self._client, None
            if data is None or client is None:
                return
            data.finish()
            data.contexts["trace"] = dataclasses.replace(self.context)
        options = client.options
        data.release = options.release
        data.environment = options.environment
        data.sdk = copy.deepcopy(getattr(client, "sdk_info", None) or ClientSdkInfo.default())
        envelope = Envelope()
        envelope.add_item(data)
        client.send_envelope(envelope)

    def start_child(self, op: str, description: str) -> Span:
        """Start a child span; it must be finished explicitly."""
        with self._lock:
            child = _new_child(self.context.trace_id, self.context.span_id, op, description)
            sampled = self.sampled
        return Span(self, sampled, child)

    def apply_to_event(self, event: Event) -> None:
        """Add this transaction's trace context to the event unless it has one."""
        if "trace" in event.contexts:
            return
        with self._lock:
            event.contexts["trace"] = dataclasses.replace(self.context)

    def __repr__(self) -> str:
        return f"Transaction(context={self.context!r}, sampled={self.sampled!r})"


class Span:
    """A running span inside a transaction."""

    def __init__(self, transaction: Transaction, sampled: bool, data: SpanData) -> None:
        self._lock = threading.Lock()
        self.transaction = transaction
        self.sampled = sampled
        self.data = data

    def set_data(self, key: str, value: Any) -> None:
        with self._lock:
            self.data.data[key] = value

    def get_status(self) -> SpanStatus | None:
        with self._lock:
            return self.data.status

    def set_status(self, status: SpanStatus) -> None:
        with self._lock:
            self.data.status = status

    def set_request(self, request: Request) -> None:
        """Copy HTTP request information into the span's data."""
        with self._lock:
            values = self.data.data
            if request.method is not None:
                values["method"] = request.method
            if request.url is not None:
                values["url"] = str(request.url)
            if request.data is not None:
                try:
                    values["data"] = json.loads(request.data)
                except ValueError:
                    values["data"] = request.data
            if request.query_string is not None:
                values["query_string"] = request.query_string
            if request.cookies is not None:
                values["cookies"] = request.cookies
            if request.headers:
                values["headers"] = dict(request.headers)
            if request.env:
                values["env"] = dict(request.env)

    def iter_headers(self) -> Iterator[tuple[str, str]]:
        """Yield the headers needed to continue this trace elsewhere."""
        with self._lock:
            trace = SentryTrace(self.data.trace_id, self.data.span_id, self.sampled)
        return _trace_headers(trace)

    def finish(self) -> None:
        """Record the end time and add the span to its transaction, once."""
        with self._lock:
            if self.data.timestamp is not None:
                return
            self.data.finish()
            with self.transaction._lock:
                trx = self.transaction.data
                if trx is not None and len(trx.spans) <= MAX_SPANS:
                    trx.spans.append(copy.deepcopy(self.data))

    def start_child(self, op: str, description: str) -> Span:
        """Start a child span; it must be finished explicitly."""
        with self._lock:
            child = _new_child(self.data.trace_id, self.data.span_id, op, description)
        return Span(self.transaction, self.sampled, child)

    def apply_to_event(self, event: Event) -> None:
        """Add this span's trace context to the event unless it has one."""
        if "trace" in event.contexts:
            return
        with self._lock:
            event.contexts["trace"] = TraceContext(
                span_id=self.data.span_id, trace_id=self.data.trace_id
            )

    def __repr__(self) -> str:
        return f"Span(data={self.data!r}, sampled={self.sampled!r})"