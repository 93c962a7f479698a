"""Data model for events, breadcrumbs, sessions, spans and envelopes."""

from __future__ import annotations

import enum
import secrets
import uuid
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union
from urllib.parse import urlsplit

VERSION = "0.1.0"
SDK_NAME = "errtrack.python"
USER_AGENT = f"{SDK_NAME}/{VERSION}"

NIL_UUID = uuid.UUID(int=0)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_trace_id() -> str:
    """Return a fresh random trace id as 32 lowercase hex characters."""
    return uuid.uuid4().hex


def new_span_id() -> str:
    """Return a fresh random span id as 16 lowercase hex characters."""
    return secrets.token_hex(8)


class Level(enum.IntEnum):
    """Severity of an event or breadcrumb, ordered from least to most severe."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    FATAL = 4

    def __str__(self) -> str:
        return self.name.lower()


@dataclass
class Breadcrumb:
    ty: str = "default"
    category: str | None = None
    level: Level = Level.INFO
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)


@dataclass
class User:
    id: str | None = None
    email: str | None = None
    ip_address: str | None = None
    username: str | None = None
    other: dict[str, Any] = field(default_factory=dict)


@dataclass
class Mechanism:
    ty: str = ""
    description: str | None = None
    handled: bool | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExceptionInfo:
    """A single exception in an event's exception chain."""

    ty: str = ""
    value: str | None = None
    module: str | None = None
    stacktrace: Any = None
    mechanism: Mechanism | None = None


@dataclass
class ClientSdkPackage:
    name: str
    version: str


@dataclass
class ClientSdkInfo:
    name: str
    version: str
    integrations: list[str] = field(default_factory=list)
    packages: list[ClientSdkPackage] = field(default_factory=list)

    @classmethod
    def default(cls) -> ClientSdkInfo:
        """Return a fresh copy of this library's own SDK description."""
        return cls(
            name=SDK_NAME,
            version=VERSION,
            packages=[ClientSdkPackage(name="pypi:errtrack", version=VERSION)],
        )


@dataclass
class Request:
    url: str | None = None
    method: str | None = None
    data: str | None = None
    query_string: str | None = None
    cookies: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)


class SpanStatus(str, enum.Enum):
    OK = "ok"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    INVALID_ARGUMENT = "invalid_argument"
    UNIMPLEMENTED = "unimplemented"
    UNAVAILABLE = "unavailable"
    INTERNAL_ERROR = "internal_error"
    UNKNOWN_ERROR = "unknown_error"
    CANCELLED = "cancelled"
    ALREADY_EXISTS = "already_exists"
    FAILED_PRECONDITION = "failed_precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out_of_range"
    DATA_LOSS = "data_loss"


@dataclass
class TraceContext:
    span_id: str = field(default_factory=new_span_id)
    trace_id: str = field(default_factory=new_trace_id)
    parent_span_id: str | None = None
    op: str | None = None
    description: str | None = None
    status: SpanStatus | None = None


@dataclass
class SpanData:
    span_id: str = field(default_factory=new_span_id)
    trace_id: str = field(default_factory=new_trace_id)
    parent_span_id: str | None = None
    op: str | None = None
    description: str | None = None
    status: SpanStatus | None = None
    data: dict[str, Any] = field(default_factory=dict)
    start_timestamp: datetime = field(default_factory=_now)
    timestamp: datetime | None = None

    def finish(self) -> None:
        """Record the end timestamp."""
        self.timestamp = _now()


@dataclass
class TransactionData:
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)
    name: str | None = None
    release: str | None = None
    environment: str | None = None
    sdk: ClientSdkInfo | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    request: Request | None = None
    contexts: dict[str, Any] = field(default_factory=dict)
    spans: list[SpanData] = field(default_factory=list)
    start_timestamp: datetime = field(default_factory=_now)
    timestamp: datetime | None = None

    def finish(self) -> None:
        """Record the end timestamp."""
        self.timestamp = _now()


@dataclass
class Event:
    event_id: uuid.UUID = NIL_UUID
    level: Level = Level.ERROR
    fingerprint: list[str] = field(default_factory=lambda: ["{{ default }}"])
    message: str | None = None
    logger: str | None = None
    transaction: str | None = None
    server_name: str | None = None
    release: str | None = None
    environment: str | None = None
    user: User | None = None
    request: Request | None = None
    contexts: dict[str, Any] = field(default_factory=dict)
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
    exception: list[ExceptionInfo] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    sdk: ClientSdkInfo | None = None
    platform: str = "other"
    timestamp: datetime = field(default_factory=_now)


class SessionStatus(str, enum.Enum):
    OK = "ok"
    EXITED = "exited"
    CRASHED = "crashed"
    ABNORMAL = "abnormal"


@dataclass
class SessionAttributes:
    release: str
    environment: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class SessionUpdate:
    session_id: uuid.UUID
    distinct_id: str | None
    attributes: SessionAttributes
    started: datetime = field(default_factory=_now)
    sequence: int | None = None
    timestamp: datetime | None = None
    init: bool = True
    duration: float | None = None
    status: SessionStatus = SessionStatus.OK
    errors: int = 0


@dataclass
class SessionAggregateItem:
    started: datetime
    distinct_id: str | None = None
    exited: int = 0
    errored: int = 0
    abnormal: int = 0
    crashed: int = 0


@dataclass
class SessionAggregates:
    aggregates: list[SessionAggregateItem]
    attributes: SessionAttributes


EnvelopeItem = Union[Event, SessionUpdate, SessionAggregates, TransactionData]


@dataclass
class Envelope:
    """A container of items sent together to the server."""

    _items: list[Any] = field(default_factory=list)

    def add_item(self, item: Any) -> None:
        self._items.append(item)

    def items(self) -> Iterator[Any]:
        return iter(self._items)

    def event(self) -> Event | None:
        """Return the first event item, if any."""
        return next((item for item in self._items if isinstance(item, Event)), None)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


def into_breadcrumbs(value: Any) -> Iterator[Breadcrumb]:
    """Turn a breadcrumb, a sequence of them, None or a callable producing those into an iterator."""
    if value is None:
        return iter(())
    if isinstance(value, Breadcrumb):
        return iter((value,))
    if callable(value):
        return into_breadcrumbs(value())
    if isinstance(value, Iterable):
        return iter(list(value))
    raise TypeError(f"cannot convert {type(value).__name__} into breadcrumbs")


def _validate_dsn(text: str) -> str:
    try:
        parts = urlsplit(text)
        parts.port
    except ValueError as exc:
        raise ValueError(f"invalid value for DSN: {exc}") from exc
    if parts.scheme not in ("http", "https"):
        raise ValueError(f"invalid value for DSN: unsupported scheme {parts.scheme!r}")
    if not parts.username:
        raise ValueError("invalid value for DSN: missing public key")
    if not parts.hostname:
        raise ValueError("invalid value for DSN: missing host")
    project_id = parts.path.rstrip("/").rpartition("/")[2]
    if not project_id:
        raise ValueError("invalid value for DSN: missing project id")
    return text


def into_dsn(value: Any) -> str | None:
    """Convert a value into a validated DSN string, or None when it is empty or None.

    Raises ValueError when the value cannot be parsed as a DSN.
    """
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="replace")
    if not isinstance(value, str):
        raise TypeError(f"cannot convert {type(value).__name__} into a DSN")
    if value == "":
        return None
    return _validate_dsn(value)