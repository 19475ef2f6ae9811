"""In-process event bus for notifying read-side consumers of snapshot changes."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Awaitable, Callable

from buildledger.common.logging import get_logger

logger = get_logger("events")

Handler = Callable[[str, str, dict], Awaitable[None]]

_subscribers: dict[str, list[Handler]] = defaultdict(list)


def subscribe(event: str, handler: Handler) -> None:
    _subscribers[event].append(handler)


def unsubscribe(event: str, handler: Handler) -> None:
    if handler in _subscribers.get(event, []):
        _subscribers[event].remove(handler)


async def emit(project_id: str, event: str, data: dict) -> None:
    """Deliver an event to every subscriber of ``event``.

    Safe to call from anywhere – a failing subscriber never breaks the caller.
    """
    for handler in list(_subscribers.get(event, [])):
        try:
            await handler(project_id, event, data)
        except Exception as e:
            logger.debug("Event handler for %s failed (non-critical): %s", event, e)
