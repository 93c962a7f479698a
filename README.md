# errtrack

`errtrack` records errors, messages and breadcrumbs and groups them into
events. It also tracks release-health sessions and performance transactions.
Finished envelopes go to a transport that you provide.

The main pieces are:

- `errtrack.client.Client` prepares events and passes envelopes to a
  `errtrack.transport.Transport`.
- `errtrack.hub.Hub` holds a stack of scopes and the client bound to them.
  Each thread has its own current hub. A thread's hub starts out as a copy of
  the top of the main hub (`Hub.main()`).
- `errtrack.scope.Scope` holds the level, tags, extras, contexts, user,
  fingerprint, breadcrumbs and event processors that are applied to every
  captured event.
- `errtrack.api` provides module-level functions that act on the current hub.

The package has no dependencies outside the standard library.

## Installation

```
pip install errtrack
```

## Capturing events

```python
from errtrack import api
from errtrack.client import Client
from errtrack.hub import Hub
from errtrack.options import ClientOptions
from errtrack.protocol import Level
from errtrack.testing import TestTransport

transport = TestTransport()
options = ClientOptions(
    dsn="https://public@example.com/1",
    transport=transport,
    release="my-app@1.0.0",
)
Hub.current().bind_client(Client(options))

api.configure_scope(lambda scope: scope.set_tag("component", "billing"))
api.capture_message("something happened", Level.INFO)

try:
    int("NaN")
except ValueError as err:
    api.capture_error(err)

print(len(transport.fetch_and_clear_events()))  # 2
```

A client is enabled only when it has both a DSN and a transport. If the
current hub has no enabled client, the `api` functions do nothing, and the
capture functions return the nil UUID.

`capture_error` records the exception and every exception in its
`__cause__`/`__context__` chain, ordered from the oldest cause to the error
itself. `errtrack.errors.event_from_error` builds such an event without
sending it.

Before an event is sent, the client:

1. applies the scope;
2. runs each integration's `process_event`;
3. fills in `release`, `environment` and `server_name` from the options;
4. calls `before_send`.

Each integration's `process_event` and the `before_send` callback may return
`None` to drop the event. `sample_rate` drops events at random.

`ClientOptions.from_config` and `Client.from_config` accept any of these:

- a `ClientOptions`
- a DSN string (an empty string or `None` gives no DSN)
- a `(dsn, options)` pair

An invalid DSN raises `ValueError`.

## Transports

Subclass `errtrack.transport.Transport` and implement `send_envelope`. You can
also override `flush` and `shutdown`.

The `transport` option accepts any of the following:

- a transport instance
- an object with a `create_transport(options)` method
- a callable that takes the options and returns a transport

`Client.flush()` sends pending session updates and drains the transport.
`Client.close()` also shuts the transport down and detaches it.

## Temporary scopes

```python
api.with_scope(
    lambda scope: scope.set_level(Level.WARNING),
    lambda: api.capture_message("sent as a warning", Level.INFO),
)
```

`Hub.push_scope()` returns a `ScopeGuard` that you can use as a context
manager. It pops the scope again when the block ends. If guards are closed out
of order, it raises `RuntimeError`.

## Breadcrumbs

`api.add_breadcrumb` accepts any of the following:

- a single `Breadcrumb`
- an iterable of breadcrumbs
- `None`
- a callable that returns one of the above

The callable is only called when a client is active. The `before_breadcrumb`
option can change or drop each breadcrumb. The scope keeps at most
`max_breadcrumbs` breadcrumbs (100 by default); the oldest ones are dropped
first.

## Sessions

```python
api.start_session()
# errors captured here are counted by the session
api.end_session()
```

A session starts only when the client's options set a `release`. Sessions
behave as follows:

- **Counting errors.** An event at `Level.ERROR` or above, or an event with an
  exception, counts as an error.
- **Crashes.** An exception whose mechanism has `handled=False` marks the
  session as crashed.
- **Ending with a status.** `api.end_session_with_status` ends the session
  with a given status, such as `SessionStatus.ABNORMAL`.
- **`SessionMode.APPLICATION`.** Each captured event carries the current
  session update.
- **`SessionMode.REQUEST`.** Initial session updates are aggregated into
  per-minute buckets instead of being sent one by one.

Queued updates are sent in envelopes of at most 100 items. A background
thread sends them every 60 seconds, and they are also sent when the client is
flushed or closed.

## Transactions

```python
from errtrack import api
from errtrack.performance import TransactionContext

incoming = "09e04486820349518ac7b5d2adbf6ba5-9cf635fa5b870b3a-1"
ctx = TransactionContext.continue_from_headers(
    "checkout", "http.server", [("sentry-trace", incoming)]
)
transaction = api.start_transaction(ctx)
span = transaction.start_child("db", "select orders")
span.finish()
transaction.finish()
```

Header names are matched case-insensitively. How a transaction is sampled:

- If the context carries no sampling decision, the transaction is sampled
  with the probability given by `traces_sample_rate`, which is 0.0 by default.
- An unsampled transaction sends nothing.
- Without a client, a transaction is sampled only when the context explicitly
  says so.

`iter_headers()` on a transaction or span yields the `("sentry-trace", value)`
header to forward to downstream services. `errtrack.performance.parse_sentry_trace`
parses such a header.

When you set a transaction or span on the scope with `Scope.set_span`, its
trace context is added to captured events.

## Async code

`errtrack.futures.bind_hub(awaitable, hub)` returns a coroutine that runs the
awaitable with `hub` as the current hub during each step. Scope changes made
in one task then stay separate from other tasks:

```python
import asyncio
from errtrack.futures import bind_hub
from errtrack.hub import Hub

async def task():
    api.configure_scope(lambda scope: scope.set_transaction("task"))

async def main():
    await bind_hub(task(), Hub.new_from_top(Hub.current()))

asyncio.run(main())
```

## Logging

```python
import logging
from errtrack.loghandler import SentryHandler

logging.getLogger().addHandler(SentryHandler())
```

By default, log records are handled as follows:

| Log level     | What is recorded   |
|---------------|--------------------|
| error and up  | an exception event |
| warning, info | a breadcrumb       |
| lower levels  | nothing            |

Exception events carry the record's message; they do not carry an exception
type or stack trace.

You can change this mapping in two ways:

- Pass a `filter` that returns a `LogFilter` for each record.
- Pass a `mapper` that returns a `Breadcrumb`, an `Event` or `None` for each
  record. A mapper takes precedence over the filter.

## Testing helpers

`errtrack.testing` provides these helpers:

- `with_captured_events(f)` runs `f` with a fresh hub whose client stores
  envelopes in a `TestTransport`, and returns the captured events.
- `with_captured_events_options(f, options)` does the same with the options
  you give.
- `with_captured_envelopes(f)` and `with_captured_envelopes_options(f, options)`
  return whole envelopes, including session updates.

When the options have no DSN, a test DSN is used. After `f` returns, open
sessions are ended and the client is closed.

## What it does not do

`errtrack` does not:

- send anything over the network itself, because it has no HTTP transport;
- capture stack traces or information about loaded libraries;
- install a hook for uncaught exceptions.

Events reach a server only through a transport that you write.