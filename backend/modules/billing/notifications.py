"""
Billing notification dispatchers.

Services emit a BillingEvent after each committed change and hand it
to an INotificationDispatcher through notify_safely(), which never lets
a delivery failure reach the caller.
"""

import logging
from typing import Optional

from .interfaces import INotificationDispatcher
from .models import BillingEvent, BillingEventType

logger = logging.getLogger(__name__)


class LoggingNotificationDispatcher:
    """Dispatcher that writes events to the log. Used when nothing else is wired."""

    async def dispatch(self, event: BillingEvent) -> None:
        logger.info(
            f"Billing event {event.type.value} for tenant {event.tenant_id}: "
            f"{event.entity_id}"
        )


class RecordingNotificationDispatcher:
    """
    Dispatcher that keeps events in memory.

    For tests and local development.
    """

    def __init__(self):
        self.events: list[BillingEvent] = []

    async def dispatch(self, event: BillingEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: BillingEventType) -> list[BillingEvent]:
        """Events of one type, in dispatch order."""
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        self.events.clear()


async def notify_safely(
    dispatcher: Optional[INotificationDispatcher],
    event: BillingEvent,
) -> None:
    """
    Deliver an event, logging and discarding any failure.

    The billing change has already been committed when this runs.
    """
    if dispatcher is None:
        return
    try:
        await dispatcher.dispatch(event)
    except Exception as e:
        logger.warning(
            f"Failed to dispatch {event.type.value} for {event.entity_id} "
            f"(tenant {event.tenant_id}): {e}"
        )
