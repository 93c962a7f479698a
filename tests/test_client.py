import pytest

from errtrack.client import Client
from errtrack.options import ClientOptions, Integration, SessionMode
from errtrack.protocol import (
    NIL_UUID,
    SDK_NAME,
    Event,
    Level,
    SessionAttributes,
    SessionUpdate,
)
from errtrack.scope import Scope, StackLayer
from errtrack.session import Session
from errtrack.transport import Transport

import uuid

DSN = "https://public@example.com/1"


class RecordingTransport(Transport):
    def __init__(self):
        self.envelopes = []
        self.shutdown_timeouts = []

    def send_envelope(self, envelope):
        self.envelopes.append(envelope)

    def shutdown(self, timeout):
        self.shutdown_timeouts.append(timeout)
        return True


class EnvIntegration(Integration):
    def setup(self, options):
        options.environment = "my_env"

    def process_event(self, event, options):
        event.level = Level.ERROR
        return event


class DroppingIntegration(Integration):
    def name(self):
        return "dropping"

    def process_event(self, event, options):
        return None


@pytest.fixture
def transport():
    return RecordingTransport()


def make_client(transport, **kwargs):
    return Client(ClientOptions(dsn=DSN, transport=transport, **kwargs))


def test_disabled_without_dsn(transport):
    client = Client(ClientOptions(transport=transport))
    try:
        assert client.is_enabled() is False
        assert client.capture_event(Event()) == NIL_UUID
        assert transport.envelopes == []
    finally:
        client.close()


def test_enabled_with_dsn_and_transport(transport):
    client = make_client(transport)
    try:
        assert client.is_enabled() is True
        assert client.dsn() == DSN
    finally:
        client.close()


def test_capture_fills_event(transport):
    client = make_client(transport, release="1.0", environment="prod", server_name="host")
    try:
        event_id = client.capture_event(Event(message="hi"))
        assert event_id != NIL_UUID
        sent = transport.envelopes[0].event()
        assert sent.event_id == event_id
        assert sent.message == "hi"
        assert sent.sdk.name == SDK_NAME
        assert sent.release == "1.0"
        assert sent.environment == "prod"
        assert sent.server_name == "host"
    finally:
        client.close()


def test_existing_event_id_kept(transport):
    client = make_client(transport)
    try:
        given = uuid.uuid4()
        assert client.capture_event(Event(event_id=given)) == given
    finally:
        client.close()


def test_before_send_can_drop(transport):
    client = make_client(transport, before_send=lambda event: None)
    try:
        assert client.capture_event(Event()) == NIL_UUID
        assert transport.envelopes == []
    finally:
        client.close()


def test_integration_setup_and_processing(transport):
    options = ClientOptions(dsn=DSN, transport=transport).add_integration(EnvIntegration())
    client = Client(options)
    try:
        client.capture_event(Event(level=Level.INFO))
        sent = transport.envelopes[0].event()
        assert sent.level == Level.ERROR
        assert sent.environment == "my_env"
        assert client.sdk_info.integrations == [EnvIntegration().name()]
        assert options.environment is None
    finally:
        client.close()


def test_integration_can_drop(transport):
    options = ClientOptions(dsn=DSN, transport=transport).add_integration(DroppingIntegration())
    client = Client(options)
    try:
        assert client.capture_event(Event()) == NIL_UUID
        assert client.sdk_info.integrations == ["dropping"]
    finally:
        client.close()


def test_get_integration(transport):
    first = EnvIntegration()
    options = ClientOptions(dsn=DSN, transport=transport)
    options.add_integration(first).add_integration(EnvIntegration())
    client = Client(options)
    try:
        assert client.get_integration(EnvIntegration) is first
        assert client.get_integration(DroppingIntegration) is None
    finally:
        client.close()


def test_scope_is_applied(transport):
    client = make_client(transport)
    try:
        scope = Scope()
        scope.set_tag("key", "value")
        client.capture_event(Event(), scope)
        assert transport.envelopes[0].event().tags == {"key": "value"}
    finally:
        client.close()


def test_scope_processor_drops(transport):
    client = make_client(transport)
    try:
        scope = Scope()
        scope.add_event_processor(lambda event: None)
        assert client.capture_event(Event(), scope) == NIL_UUID
        assert transport.envelopes == []
    finally:
        client.close()


def test_sample_rate_zero_drops(transport):
    client = make_client(transport, sample_rate=0.0)
    try:
        assert client.capture_event(Event()) == NIL_UUID
    finally:
        client.close()


def test_sample_traces(transport):
    client = make_client(transport, traces_sample_rate=1.0)
    try:
        assert client.sample_traces_should_send() is True
    finally:
        client.close()


def test_session_item_attached_in_application_mode(transport):
    client = make_client(transport, release="some-release")
    try:
        scope = Scope()
        session = Session.from_layer(StackLayer(client, scope))
        scope._replace_session(session)
        client.capture_event(Event(level=Level.ERROR), scope)
        items = list(transport.envelopes[0].items())
        assert isinstance(items[0], Event)
        update = items[1]
        assert isinstance(update, SessionUpdate)
        assert update.errors == 1
        assert update.init is True
        assert update.attributes.release == "some-release"
        assert len(items) == 2
    finally:
        client.close()


def test_no_session_item_in_request_mode(transport):
    client = make_client(transport, release="some-release", session_mode=SessionMode.REQUEST)
    try:
        scope = Scope()
        scope._replace_session(Session.from_layer(StackLayer(client, scope)))
        client.capture_event(Event(level=Level.ERROR), scope)
        assert len(transport.envelopes[0]) == 1
    finally:
        client.close()


def test_flush_sends_enqueued_sessions(transport):
    client = make_client(transport)
    try:
        update = SessionUpdate(
            session_id=uuid.uuid4(),
            distinct_id=None,
            attributes=SessionAttributes(release="r"),
            init=False,
        )
        client.enqueue_session(update)
        assert client.flush() is True
        assert list(transport.envelopes[0].items()) == [update]
    finally:
        client.close()


def test_close_shuts_down_transport(transport):
    client = make_client(transport)
    assert client.close() is True
    assert transport.shutdown_timeouts == [2.0]
    assert client.is_enabled() is False
    assert client.capture_event(Event()) == NIL_UUID
    assert client.close() is True
    assert transport.shutdown_timeouts == [2.0]


def test_close_with_explicit_timeout(transport):
    client = make_client(transport)
    client.close(5.0)
    assert transport.shutdown_timeouts == [5.0]


def test_transport_factory_called_with_options():
    created = []

    def factory(options):
        created.append(options.dsn)
        return RecordingTransport()

    client = Client(ClientOptions(dsn=DSN, transport=factory))
    try:
        assert created == [DSN]
        assert client.is_enabled() is True
    finally:
        client.close()


def test_from_config():
    client = Client.from_config(DSN)
    try:
        assert client.dsn() == DSN
        assert client.is_enabled() is False
    finally:
        client.close()
    with pytest.raises(ValueError):
        Client.from_config("not a dsn")


def test_from_config_pair(transport):
    client = Client.from_config((DSN, ClientOptions(transport=transport)))
    try:
        assert client.is_enabled() is True
    finally:
        client.close()


def test_copy_has_own_transport_holder(transport):
    client = make_client(transport)
    duplicate = client.copy()
    try:
        assert duplicate.options is client.options
        duplicate.close()
        assert duplicate.is_enabled() is False
        assert client.is_enabled() is True
    finally:
        client.close()