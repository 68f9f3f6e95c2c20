"""
Event bus for billing domain events.

Synchronous in-process pub/sub. Handlers run in the publisher's thread,
after the financial transaction has committed. Handler errors (an email
gateway outage, say) are logged and reported back as a count but never
propagate: the invoice change stands.
"""

import logging
from typing import Callable, Dict, List, Type

from core.events import BillingEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for billing domain events.

    Subscribe by event class (or its name); subscribing to a base class such
    as InvoiceEvent receives every subclass. Handlers are called in
    subscription order, most specific event type first.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str | Type[BillingEvent], callback: Callable) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event class or its name (e.g. 'InvoiceSent')
            callback: Function to call with the event
        """
        name = event_type if isinstance(event_type, str) else event_type.__name__
        self._subscribers.setdefault(name, []).append(callback)

    def unsubscribe(self, event_type: str | Type[BillingEvent], callback: Callable) -> bool:
        """Remove a callback. Returns False if it wasn't subscribed."""
        name = event_type if isinstance(event_type, str) else event_type.__name__
        callbacks = self._subscribers.get(name, [])
        if callback not in callbacks:
            return False
        callbacks.remove(callback)
        return True

    def _callbacks_for(self, event: BillingEvent) -> List[Callable]:
        callbacks = []
        for cls in type(event).__mro__:
            callbacks.extend(self._subscribers.get(cls.__name__, []))
            if cls is BillingEvent:
                break
        return callbacks

    def publish(self, event: BillingEvent) -> int:
        """
        Deliver an event to its subscribers.

        Args:
            event: BillingEvent instance to publish

        Returns:
            Number of handlers that raised (0 when all succeeded)
        """
        failures = 0
        event_type = type(event).__name__

        for callback in self._callbacks_for(event):
            try:
                callback(event)
            except Exception:
                failures += 1
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )

        return failures
