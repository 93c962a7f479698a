"""Transports deliver envelopes; factories create them from options."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from errtrack.options import ClientOptions
    from errtrack.protocol import Envelope


class Transport(abc.ABC):
    """Sends envelopes to the server."""

    @abc.abstractmethod
    def send_envelope(self, envelope: Envelope) -> None:
        """Send one envelope."""

    def flush(self, timeout: float) -> bool:
        """Drain any queue; return True if it was emptied within ``timeout`` seconds."""
        return True

    def shutdown(self, timeout: float) -> bool:
        """Shut the transport down, draining it first."""
        return self.flush(timeout)


def create_transport(factory: Any, options: ClientOptions) -> Transport:
    """Create a transport from a factory.

    The factory may be a transport itself (which is reused as is), an object
    with a ``create_transport(options)`` method, or a callable taking options.
    """
    if isinstance(factory, Transport):
        return factory
    method = getattr(factory, "create_transport", None)
    if callable(method):
        return method(options)
    if callable(factory):
        return factory(options)
    raise TypeError(f"{type(factory).__name__} is not a transport factory")