"""A logging handler that turns log records into breadcrumbs and events."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable

from errtrack import api
from errtrack.protocol import Breadcrumb, Event, Level


class LogFilter(enum.Enum):
    """What to do with a log record."""

    IGNORE = "ignore"
    BREADCRUMB = "breadcrumb"
    EVENT = "event"
    EXCEPTION = "exception"


def convert_log_level(levelno: int) -> Level:
    """Map a standard logging level number to an event level."""
    if levelno >= logging.ERROR:
        return Level.ERROR
    if levelno >= logging.WARNING:
        return Level.WARNING
    if levelno >= logging.INFO:
        return Level.INFO
    return Level.DEBUG


def breadcrumb_from_record(record: logging.LogRecord) -> Breadcrumb:
    """Create a breadcrumb from a log record."""
    return Breadcrumb(
        ty="log",
        level=convert_log_level(record.levelno),
        category=record.name,
        message=record.getMessage(),
    )


def event_from_record(record: logging.LogRecord) -> Event:
    """Create a message event from a log record."""
    return Event(
        logger=record.name,
        level=convert_log_level(record.levelno),
        message=record.getMessage(),
    )


def exception_from_record(record: logging.LogRecord) -> Event:
    """Create an exception event from a log record."""
    # a record carries no exception type or value to group by, so this is
    # the same as a message event
    return event_from_record(record)


def default_filter(record: logging.LogRecord) -> LogFilter:
    """Errors become exception events, warnings and infos breadcrumbs, the rest is ignored."""
    if record.levelno >= logging.ERROR:
        return LogFilter.EXCEPTION
    if record.levelno >= logging.INFO:
        return LogFilter.BREADCRUMB
    return LogFilter.IGNORE


Mapper = Callable[[logging.LogRecord], "Breadcrumb | Event | None"]


class SentryHandler(logging.Handler):
    """Records log records as breadcrumbs or captures them as events.

    A ``mapper`` returning a breadcrumb, an event or None (to ignore the
    record) takes precedence over the ``filter``.
    """

    def __init__(
        self,
        filter: Callable[[logging.LogRecord], LogFilter] | None = None,
        mapper: Mapper | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self._classify = filter if filter is not None else default_filter
        self._mapper = mapper

    def _map(self, record: logging.LogRecord) -> Breadcrumb | Event | None:
        if self._mapper is not None:
            return self._mapper(record)
        action = self._classify(record)
        if action == LogFilter.BREADCRUMB:
            return breadcrumb_from_record(record)
        if action == LogFilter.EVENT:
            return event_from_record(record)
        if action == LogFilter.EXCEPTION:
            return exception_from_record(record)
        return None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            item = self._map(record)
            if isinstance(item, Breadcrumb):
                api.add_breadcrumb(item)
            elif isinstance(item, Event):
                api.capture_event(item)
        except Exception:
            self.handleError(record)