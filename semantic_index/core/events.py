"""
Business lifecycle events and the in-process domain event bus.

Publishing is fire-and-forget: each subscribed handler runs as its own asyncio task,
and a failing handler is logged without reaching the publisher.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Set, Union

from ..util.logging import logger


@dataclass(frozen=True)
class BusinessCreated:
    business_id: str
    slug: Optional[str] = None


@dataclass(frozen=True)
class BusinessUpdated:
    business_id: str
    slug: Optional[str] = None


@dataclass(frozen=True)
class BusinessVerified:
    business_id: str
    slug: Optional[str] = None


@dataclass(frozen=True)
class BusinessDeleted:
    business_id: str
    slug: Optional[str] = None


BusinessChanged = Union[BusinessCreated, BusinessUpdated, BusinessVerified, BusinessDeleted]

_EVENT_TYPES = {
    "created": BusinessCreated,
    "updated": BusinessUpdated,
    "verified": BusinessVerified,
    "deleted": BusinessDeleted,
}

OPERATIONS = tuple(_EVENT_TYPES)

BusinessChangedHandler = Callable[[BusinessChanged], Awaitable[None]]


def business_changed(business_id: str, operation: str, slug: Optional[str] = None) -> BusinessChanged:
    """Build the typed event for a wire-level ``{businessId, operation}`` payload."""
    try:
        event_type = _EVENT_TYPES[operation]
    except KeyError:
        raise ValueError(f"operation must be one of: {list(OPERATIONS)}") from None
    return event_type(business_id=business_id, slug=slug)


class DomainEventBus:
    """Single-topic bus for business lifecycle events."""

    def __init__(self):
        self._handlers: List[BusinessChangedHandler] = []
        self._pending: Set[asyncio.Task] = set()

    def on_business_changed(self, handler: BusinessChangedHandler) -> None:
        self._handlers.append(handler)

    def publish_business_changed(self, event: BusinessChanged) -> None:
        """Schedule every handler on the running loop and return immediately."""
        loop = asyncio.get_running_loop()
        for handler in self._handlers:
            task = loop.create_task(self._run_handler(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run_handler(self, handler: BusinessChangedHandler, event: BusinessChanged) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.warning(f"business.changed handler failed for {event.business_id} ({e})")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled handler, including ones scheduled while waiting."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
