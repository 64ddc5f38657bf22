"""Fan-out dispatcher for decoded stream events.

Multiplexes one publish call to N subscribers, each error-isolated.
One subscriber failing does not affect others.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class EventFanout:
    """Delivers each published event to every registered subscriber."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[Any], Awaitable[None]]] = []

    def subscribe(self, callback: Callable[[Any], Awaitable[None]]) -> Callable[[], None]:
        """Register *callback* and return a function that removes it again."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: Callable[[Any], Awaitable[None]]) -> bool:
        """Remove *callback*.  Returns ``True`` if it was registered."""
        try:
            self._subscribers.remove(callback)
        except ValueError:
            return False
        return True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def has_subscribers(self) -> bool:
        return len(self._subscribers) > 0

    async def publish(self, event: Any) -> None:
        """Dispatch *event* to all subscribers registered at call time.

        If a subscriber raises, the exception is logged and the remaining
        subscribers still receive the event.
        """
        for callback in tuple(self._subscribers):
            try:
                await callback(event)
            except Exception:
                logger.warning("Subscriber %s failed for event", callback, exc_info=True)
