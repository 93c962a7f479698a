"""Turning exceptions, including their cause chains, into events."""

from __future__ import annotations

import re
from typing import Any

from errtrack.protocol import Event, ExceptionInfo, Level

_TYPE_TERMINATORS = re.compile(r"[ ({\r\n]")


def parse_type_from_debug(d: str) -> str:
    """Return the type name at the start of a debug representation.

    The name ends at the first space, opening parenthesis or brace, or line break.
    """
    return _TYPE_TERMINATORS.split(d, maxsplit=1)[0].strip()


def exception_from_error(err: Any) -> ExceptionInfo:
    """Describe a single error as an exception entry.

    When the representation of the error is just the quoted message, there is
    no type to recover and the generic ``Error`` is used.
    """
    dbg = repr(err)
    value = str(err)
    if dbg == repr(value):
        ty = "Error"
    else:
        ty = parse_type_from_debug(dbg)
    return ExceptionInfo(ty=ty, value=value)


def _source_of(err: Any) -> Any:
    cause = getattr(err, "__cause__", None)
    if cause is not None:
        return cause
    if getattr(err, "__suppress_context__", False):
        return None
    return getattr(err, "__context__", None)


def event_from_error(err: Any) -> Event:
    """Create an error event from an exception and its chain of causes.

    The exceptions are ordered from the oldest cause to the error itself.
    """
    exceptions = []
    seen: set[int] = set()
    current = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        exceptions.append(exception_from_error(current))
        current = _source_of(current)
    exceptions.reverse()
    return Event(exception=exceptions, level=Level.ERROR)