"""Error and event tracking core: hubs, scopes, clients, sessions, transactions and a logging handler."""

__version__ = "0.1.0"