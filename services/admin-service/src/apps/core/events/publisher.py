"""
Event Publisher

In-process event dispatch with documented fire-and-forget semantics:

- ``publish`` never blocks the caller on delivery and never raises because
  of a subscriber.
- Subscribers run sequentially, in registration order, after the current
  transaction commits. An event from a rolled back transaction is dropped.
- A subscriber failure is logged and the (event, subscriber) pair is stored
  in the EventOutbox, from where the outbox task retries it with backoff.
"""

import logging
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from django.conf import settings
from django.db import transaction

from .types import BaseEvent, event_from_dict

logger = logging.getLogger(__name__)

Handler = Callable[[BaseEvent], Any]


def handler_name(handler: Handler) -> str:
    return f"{handler.__module__}.{handler.__qualname__}"


class EventPublisher:
    """
    Event publisher and subscriber registry.

    Usage:
        publisher = EventPublisher()
        publisher.subscribe(EventType.USER_LOGIN, on_login)
        publisher.publish(UserLoginEvent(user_id='123', email='a@b.c'))
    """

    def __init__(self, backend: Optional[str] = None):
        """
        Args:
            backend: Delivery backend. Defaults to settings.EVENT_BACKEND
        """
        self.backend = backend or getattr(settings, 'EVENT_BACKEND', 'memory')
        if self.backend != 'memory':
            logger.warning(f"Unknown event backend: {self.backend}, using memory")
            self.backend = 'memory'
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    # ==================== SUBSCRIPTIONS ====================

    def subscribe(self, event_type: str, handler: Handler = None):
        """
        Register ``handler`` for ``event_type``. Usable as a decorator.
        Registering the same handler twice has no effect.
        """
        event_type = getattr(event_type, 'value', event_type)

        def register(func: Handler) -> Handler:
            if func not in self._subscribers[event_type]:
                self._subscribers[event_type].append(func)
            return func

        if handler is not None:
            return register(handler)
        return register

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        event_type = getattr(event_type, 'value', event_type)
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)

    def get_subscribers(self, event_type: str) -> List[Handler]:
        return list(self._subscribers.get(getattr(event_type, 'value', event_type), []))

    # ==================== PUBLISHING ====================

    def publish(self, event: BaseEvent) -> None:
        """Queue ``event`` for dispatch once the current transaction commits."""
        self._publish_memory(event)
        transaction.on_commit(lambda: self.dispatch(event))

    def dispatch(self, event: BaseEvent) -> int:
        """
        Deliver ``event`` to its subscribers now.

        Returns:
            Number of subscribers that handled the event successfully
        """
        delivered = 0
        for handler in self.get_subscribers(event.event_type):
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Subscriber {handler_name(handler)} failed for event {event.event_type}: {e}",
                    exc_info=True
                )
                self._store_in_outbox(event, handler, str(e))
        return delivered

    # ==================== IN-MEMORY BACKEND ====================

    # Published events, kept for inspection when settings.RECORD_EVENTS is on
    MAX_RECORDED_EVENTS = 1000
    _memory_events: Deque[Dict[str, Any]] = deque(maxlen=MAX_RECORDED_EVENTS)

    def _publish_memory(self, event: BaseEvent) -> None:
        logger.debug(f"Published event {event.event_type}")
        if not getattr(settings, 'RECORD_EVENTS', False):
            return
        EventPublisher._memory_events.append({
            'event': event.to_dict(),
            'timestamp': datetime.now(timezone.utc).isoformat(),
        })

    @classmethod
    def get_memory_events(cls, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get published events (for testing)."""
        if event_type:
            event_type = getattr(event_type, 'value', event_type)
            return [e for e in cls._memory_events if e['event']['event_type'] == event_type]
        return list(cls._memory_events)

    @classmethod
    def clear_memory_events(cls):
        """Clear published events (for testing)."""
        cls._memory_events.clear()

    # ==================== OUTBOX PATTERN ====================

    def _store_in_outbox(self, event: BaseEvent, handler: Handler, error: str) -> None:
        """Park a failed delivery for later retry."""
        from apps.core.models import EventOutbox

        try:
            EventOutbox.objects.update_or_create(
                event_id=event.event_id,
                handler=handler_name(handler),
                defaults={
                    'event_type': event.event_type,
                    'payload': event.to_dict(),
                    'last_error': error,
                    'status': EventOutbox.Status.PENDING,
                }
            )
            logger.info(f"Stored event {event.event_id} in outbox for retry")
        except Exception as e:
            logger.error(f"Failed to store event in outbox: {e}")

    def _find_handler(self, event_type: str, name: str) -> Optional[Handler]:
        for handler in self.get_subscribers(event_type):
            if handler_name(handler) == name:
                return handler
        return None

    def retry_outbox(self, limit: int = 100) -> Dict[str, int]:
        """
        Re-deliver pending outbox entries whose backoff has elapsed.

        Returns:
            Dict with processed, completed and failed counts
        """
        from apps.core.models import EventOutbox

        results = {'processed': 0, 'completed': 0, 'failed': 0}

        for entry in EventOutbox.get_pending_events(limit=limit):
            results['processed'] += 1
            handler = self._find_handler(entry.event_type, entry.handler)
            if handler is None:
                entry.mark_failed(f"Subscriber {entry.handler} is no longer registered")
                results['failed'] += 1
                continue

            try:
                handler(event_from_dict(entry.payload))
            except Exception as e:
                logger.warning(f"Outbox retry failed for {entry.event_id} -> {entry.handler}: {e}")
                entry.mark_failed(str(e))
                results['failed'] += 1
            else:
                entry.mark_completed()
                results['completed'] += 1

        return results


# Singleton publisher instance
_publisher: Optional[EventPublisher] = None


def get_publisher() -> EventPublisher:
    """Get or create the singleton publisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher


def publish_event(event: BaseEvent) -> None:
    """Publish an event using the singleton publisher."""
    get_publisher().publish(event)


def subscriber(event_type: str):
    """Decorator registering a function with the singleton publisher."""
    return get_publisher().subscribe(event_type)
