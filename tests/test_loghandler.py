import logging

import pytest

from errtrack.loghandler import (
    LogFilter,
    SentryHandler,
    breadcrumb_from_record,
    convert_log_level,
    default_filter,
    event_from_record,
    exception_from_record,
)
from errtrack.protocol import Breadcrumb, Level
from errtrack.testing import with_captured_events


def _record(levelno, msg, name="app.module"):
    return logging.makeLogRecord(
        {
            "name": name,
            "levelno": levelno,
            "levelname": logging.getLevelName(levelno),
            "msg": msg,
        }
    )


def _run_logged(handler, body):
    logger = logging.getLogger("errtrack.tests.loghandler")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(handler)
    try:
        return with_captured_events(lambda: body(logger))
    finally:
        logger.removeHandler(handler)


@pytest.mark.parametrize(
    "levelno, expected",
    [
        (logging.CRITICAL, Level.ERROR),
        (logging.ERROR, Level.ERROR),
        (logging.WARNING, Level.WARNING),
        (logging.INFO, Level.INFO),
        (logging.DEBUG, Level.DEBUG),
        (5, Level.DEBUG),
    ],
)
def test_convert_log_level(levelno, expected):
    assert convert_log_level(levelno) == expected


@pytest.mark.parametrize(
    "levelno, expected",
    [
        (logging.ERROR, LogFilter.EXCEPTION),
        (logging.WARNING, LogFilter.BREADCRUMB),
        (logging.INFO, LogFilter.BREADCRUMB),
        (logging.DEBUG, LogFilter.IGNORE),
    ],
)
def test_default_filter(levelno, expected):
    assert default_filter(_record(levelno, "msg")) == expected


def test_breadcrumb_from_record():
    crumb = breadcrumb_from_record(_record(logging.WARNING, "disk low"))
    assert crumb.ty == "log"
    assert crumb.level == Level.WARNING
    assert crumb.category == "app.module"
    assert crumb.message == "disk low"


def test_event_from_record():
    event = event_from_record(_record(logging.ERROR, "failed"))
    assert event.logger == "app.module"
    assert event.level == Level.ERROR
    assert event.message == "failed"


def test_exception_from_record_matches_message_event():
    record = _record(logging.ERROR, "failed")
    exc_event = exception_from_record(record)
    msg_event = event_from_record(record)
    assert (exc_event.logger, exc_event.level, exc_event.message) == (
        msg_event.logger,
        msg_event.level,
        msg_event.message,
    )


def test_handler_default_filter():
    def body(logger):
        logger.debug("ignored")
        logger.info("first")
        logger.error("boom")

    events = _run_logged(SentryHandler(), body)
    assert len(events) == 1
    assert events[0].message == "boom"
    assert events[0].level == Level.ERROR
    assert [b.message for b in events[0].breadcrumbs] == ["first"]


def test_handler_custom_filter():
    def body(logger):
        logger.warning("warned")

    events = _run_logged(SentryHandler(filter=lambda record: LogFilter.EVENT), body)
    assert [e.message for e in events] == ["warned"]
    assert events[0].level == Level.WARNING


def test_handler_mapper_ignores_everything():
    def body(logger):
        logger.error("boom")
        logger.critical("worse")

    events = _run_logged(SentryHandler(mapper=lambda record: None), body)
    assert events == []


def test_handler_mapper_breadcrumb():
    def body(logger):
        logger.error("mapped")
        logger.getChild("x")  # no effect on capture
        from errtrack.api import capture_message

        capture_message("done", Level.INFO)

    handler = SentryHandler(mapper=lambda record: Breadcrumb(message=record.getMessage()))
    events = _run_logged(handler, body)
    assert len(events) == 1
    assert [b.message for b in events[0].breadcrumbs] == ["mapped"]


def test_handler_respects_level():
    def body(logger):
        logger.info("below threshold")
        logger.error("boom")

    events = _run_logged(SentryHandler(level=logging.ERROR), body)
    assert len(events) == 1
    assert events[0].breadcrumbs == []