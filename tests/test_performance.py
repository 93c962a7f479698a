import pytest

from errtrack.options import ClientOptions
from errtrack.performance import (
    MAX_SPANS,
    SentryTrace,
    Span,
    Transaction,
    TransactionContext,
    parse_sentry_trace,
)
from errtrack.protocol import (
    ClientSdkInfo,
    Event,
    Request,
    SpanStatus,
    TraceContext,
    TransactionData,
)

TRACE_ID = "09e04486820349518ac7b5d2adbf6ba5"
SPAN_ID = "9cf635fa5b870b3a"


class FakeClient:
    def __init__(self, sample=True):
        self.options = ClientOptions(release="rel-1", environment="staging")
        self.sdk_info = ClientSdkInfo.default()
        self.sample = sample
        self.envelopes = []

    def sample_traces_should_send(self):
        return self.sample

    def send_envelope(self, envelope):
        self.envelopes.append(envelope)


def test_parses_sentry_trace():
    trace = parse_sentry_trace(f"{TRACE_ID}-{SPAN_ID}-0")
    assert trace == SentryTrace(TRACE_ID, SPAN_ID, False)


def test_default_trace_roundtrip():
    ctx = TransactionContext("a", "b")
    trace = SentryTrace(ctx.trace_id, SPAN_ID, None)
    assert parse_sentry_trace(str(trace)) == trace


def test_disabled_forwards_trace_id():
    headers = [("SenTrY-TRAce", f"{TRACE_ID}-{SPAN_ID}-1")]
    ctx = TransactionContext.continue_from_headers("noop", "noop", headers)
    trx = Transaction(None, ctx)
    span = trx.start_child("noop", "noop")
    name, header = next(span.iter_headers())
    assert name == "sentry-trace"
    parsed = parse_sentry_trace(header)
    assert parsed.trace_id == TRACE_ID
    assert parsed.sampled is True


@pytest.mark.parametrize(
    "header",
    ["", "nonsense", f"{TRACE_ID}", f"xyz-{SPAN_ID}", f"{TRACE_ID}-abc"],
)
def test_invalid_headers(header):
    assert parse_sentry_trace(header) is None


def test_unknown_sampled_flag_is_none():
    assert parse_sentry_trace(f"  {TRACE_ID}-{SPAN_ID}-x  ").sampled is None


def test_sentry_trace_str():
    assert str(SentryTrace(TRACE_ID, SPAN_ID, True)) == f"{TRACE_ID}-{SPAN_ID}-1"
    assert str(SentryTrace(TRACE_ID, SPAN_ID)) == f"{TRACE_ID}-{SPAN_ID}"


def test_continue_from_headers_mapping():
    ctx = TransactionContext.continue_from_headers(
        "n", "o", {"sentry-trace": f"{TRACE_ID}-{SPAN_ID}-0"}
    )
    assert ctx.trace_id == TRACE_ID
    assert ctx.parent_span_id == SPAN_ID
    assert ctx.sampled is False


def test_continue_without_header_has_no_parent():
    ctx = TransactionContext.continue_from_headers("n", "o", [("other", "x")])
    assert ctx.parent_span_id is None
    assert ctx.sampled is None
    assert len(ctx.trace_id) == 32


def test_no_client_unsampled_by_default():
    trx = Transaction(None, TransactionContext("n", "o"))
    assert trx.sampled is False
    assert trx.data is None


def test_continue_from_transaction_and_span():
    ctx = TransactionContext("n", "o")
    ctx.set_sampled(True)
    trx = Transaction(None, ctx)
    child = TransactionContext.continue_from_span("c", "o", trx)
    assert child.trace_id == trx.context.trace_id
    assert child.parent_span_id == trx.context.span_id
    assert child.sampled is True

    span = trx.start_child("op", "desc")
    from_span = TransactionContext.continue_from_span("c", "o", span)
    assert from_span.parent_span_id == span.data.span_id
    assert from_span.trace_id == trx.context.trace_id

    fresh = TransactionContext.continue_from_span("c", "o", None)
    assert fresh.parent_span_id is None


def test_finish_sends_transaction_with_spans():
    client = FakeClient()
    trx = Transaction(client, TransactionContext("checkout", "http"))
    trx.set_data("k", 1)
    span = trx.start_child("db", "")
    assert span.data.description is None
    assert span.data.parent_span_id == trx.context.span_id
    span.finish()
    span.finish()
    trx.set_status(SpanStatus.OK)
    trx.finish()

    assert len(client.envelopes) == 1
    item = next(client.envelopes[0].items())
    assert isinstance(item, TransactionData)
    assert item.name == "checkout"
    assert item.release == "rel-1"
    assert item.environment == "staging"
    assert item.extra == {"k": 1}
    assert len(item.spans) == 1
    assert item.contexts["trace"].status == SpanStatus.OK
    assert item.timestamp is not None

    trx.finish()
    assert len(client.envelopes) == 1


def test_unsampled_client_sends_nothing():
    client = FakeClient(sample=False)
    trx = Transaction(client, TransactionContext("n", "o"))
    trx.start_child("a", "b").finish()
    trx.finish()
    assert client.envelopes == []


def test_explicit_sampled_overrides_client():
    client = FakeClient(sample=True)
    ctx = TransactionContext("n", "o")
    ctx.set_sampled(False)
    trx = Transaction(client, ctx)
    trx.finish()
    assert trx.sampled is False
    assert client.envelopes == []


def test_span_limit():
    client = FakeClient()
    trx = Transaction(client, TransactionContext("n", "o"))
    for _ in range(MAX_SPANS + 5):
        trx.start_child("op", "d").finish()
    assert len(trx.data.spans) == MAX_SPANS + 1


def test_nested_span_shares_trace():
    trx = Transaction(FakeClient(), TransactionContext("n", "o"))
    outer = trx.start_child("a", "b")
    inner = outer.start_child("c", "d")
    assert isinstance(inner, Span)
    assert inner.data.parent_span_id == outer.data.span_id
    assert inner.data.trace_id == trx.context.trace_id
    assert inner.transaction is trx


def test_span_status_and_data():
    span = Transaction(None, TransactionContext("n", "o")).start_child("a", "b")
    assert span.get_status() is None
    span.set_status(SpanStatus.NOT_FOUND)
    assert span.get_status() == SpanStatus.NOT_FOUND
    span.set_data("x", [1, 2])
    assert span.data.data["x"] == [1, 2]


def test_span_set_request():
    span = Transaction(None, TransactionContext("n", "o")).start_child("a", "b")
    span.set_request(
        Request(
            url="http://localhost/x",
            method="POST",
            data='{"a": 1}',
            query_string="q=1",
            headers={"Accept": "text/plain"},
        )
    )
    values = span.data.data
    assert values["method"] == "POST"
    assert values["url"] == "http://localhost/x"
    assert values["data"] == {"a": 1}
    assert values["query_string"] == "q=1"
    assert values["headers"] == {"Accept": "text/plain"}
    assert "env" not in values


def test_span_set_request_non_json_data():
    span = Transaction(None, TransactionContext("n", "o")).start_child("a", "b")
    span.set_request(Request(data="not json"))
    assert span.data.data["data"] == "not json"


def test_transaction_set_request():
    trx = Transaction(FakeClient(), TransactionContext("n", "o"))
    request = Request(method="GET")
    trx.set_request(request)
    assert trx.data.request is request


def test_apply_to_event():
    trx = Transaction(None, TransactionContext("n", "o"))
    event = Event()
    trx.apply_to_event(event)
    assert event.contexts["trace"].span_id == trx.context.span_id

    span = trx.start_child("a", "b")
    other = Event()
    span.apply_to_event(other)
    assert other.contexts["trace"].span_id == span.data.span_id
    assert other.contexts["trace"].trace_id == trx.context.trace_id


def test_apply_to_event_keeps_existing_trace():
    existing = TraceContext()
    event = Event(contexts={"trace": existing})
    Transaction(None, TransactionContext("n", "o")).apply_to_event(event)
    assert event.contexts["trace"] is existing


def test_transaction_iter_headers_yields_once():
    ctx = TransactionContext("n", "o")
    ctx.set_sampled(True)
    trx = Transaction(None, ctx)
    headers = list(trx.iter_headers())
    assert headers == [
        ("sentry-trace", f"{trx.context.trace_id}-{trx.context.span_id}-1")
    ]