"""Client configuration and the integration interface."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from errtrack.protocol import USER_AGENT, Breadcrumb, Event, into_dsn


class SessionMode(enum.Enum):
    """How release-health sessions are tracked."""

    APPLICATION = "application"
    REQUEST = "request"


class Integration:
    """Base class for integrations that configure the client or process events."""

    def name(self) -> str:
        cls = type(self)
        return f"{cls.__module__}.{cls.__qualname__}"

    def setup(self, options: ClientOptions) -> None:
        """Called when the integration is attached to a client."""

    def process_event(self, event: Event, options: ClientOptions) -> Event | None:
        """Process an event; return None to drop it."""
        return event


@dataclass(repr=False)
class ClientOptions:
    dsn: str | None = None
    debug: bool = False
    release: str | None = None
    environment: str | None = None
    sample_rate: float = 1.0
    traces_sample_rate: float = 0.0
    max_breadcrumbs: int = 100
    attach_stacktrace: bool = False
    send_default_pii: bool = False
    server_name: str | None = None
    in_app_include: list[str] = field(default_factory=list)
    in_app_exclude: list[str] = field(default_factory=list)
    integrations: list[Integration] = field(default_factory=list)
    default_integrations: bool = True
    before_send: Callable[[Event], Event | None] | None = None
    before_breadcrumb: Callable[[Breadcrumb], Breadcrumb | None] | None = None
    transport: Any = None
    http_proxy: str | None = None
    https_proxy: str | None = None
    shutdown_timeout: float = 2.0
    auto_session_tracking: bool = False
    session_mode: SessionMode = SessionMode.APPLICATION
    extra_border_frames: list[str] = field(default_factory=list)
    trim_backtraces: bool = True
    user_agent: str = USER_AGENT

    def add_integration(self, integration: Integration) -> ClientOptions:
        """Append an integration and return the options for chaining."""
        self.integrations.append(integration)
        return self

    @classmethod
    def from_config(cls, config: Any) -> ClientOptions:
        """Build options from options, a DSN, or a ``(dsn, options)`` pair.

        Raises ValueError for an invalid DSN.
        """
        if isinstance(config, ClientOptions):
            return config
        if isinstance(config, tuple):
            dsn_value, options = config
            return dataclasses.replace(options, dsn=into_dsn(dsn_value))
        return cls(dsn=into_dsn(config))

    def __repr__(self) -> str:
        shown = []
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.name == "integrations":
                value = [i.name() for i in value]
            elif f.name in ("before_send", "before_breadcrumb"):
                value = None if value is None else "<callback>"
            elif f.name == "transport":
                value = None if value is None else "<transport factory>"
            shown.append(f"{f.name}={value!r}")
        return f"ClientOptions({', '.join(shown)})"