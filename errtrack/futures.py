"""Binding a hub to the execution of an awaitable."""

from __future__ import annotations

from collections.abc import Awaitable, Coroutine, Generator
from typing import Any, TypeVar

from errtrack.hub import Hub

T = TypeVar("T")


class _HubBound:
    """Drives an awaitable with a hub bound around every step it takes."""

    def __init__(self, awaitable: Awaitable[T], hub: Hub) -> None:
        self._awaitable = awaitable
        self._hub = hub

    def __await__(self) -> Generator[Any, Any, T]:
        steps = self._awaitable.__await__()
        hub = self._hub
        to_send: Any = None
        to_throw: BaseException | None = None
        while True:
            try:
                if to_throw is None:
                    yielded = Hub.run(hub, lambda: steps.send(to_send))
                else:
                    yielded = Hub.run(hub, lambda: steps.throw(to_throw))
            except StopIteration as stop:
                return stop.value
            try:
                to_send = yield yielded
                to_throw = None
            except GeneratorExit:
                close = getattr(steps, "close", None)
                if close is not None:
                    Hub.run(hub, close)
                raise
            except BaseException as exc:
                to_send = None
                to_throw = exc


def bind_hub(awaitable: Awaitable[T], hub: Hub) -> Coroutine[Any, Any, T]:
    """Return a coroutine that runs ``awaitable`` with ``hub`` as the current hub."""

    async def bound() -> T:
        return await _HubBound(awaitable, hub)

    return bound()