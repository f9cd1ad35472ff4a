"""
Domain events system

Domain events represent important business events that can be published
and subscribed to by multiple parts of the system. Booking operations
publish only after their transaction commits, so subscribers never observe
state that could still be rolled back.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import uuid
import structlog

logger = structlog.get_logger(__name__)


class DomainEvent:
    """Base class for domain events"""

    def __init__(self, event_id: uuid.UUID = None):
        self.event_id = event_id or uuid.uuid4()
        self.occurred_at = datetime.now(timezone.utc).replace(tzinfo=None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "event_type": self.__class__.__name__
        }


class AppointmentEvent(DomainEvent):
    """Base for events about a single appointment"""

    def __init__(
        self,
        appointment_id: uuid.UUID,
        tenant_id: uuid.UUID,
        worker_id: uuid.UUID,
        starts_at: datetime,
        ends_at: datetime,
        status: str,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.appointment_id = appointment_id
        self.tenant_id = tenant_id
        self.worker_id = worker_id
        self.starts_at = starts_at
        self.ends_at = ends_at
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "appointment_id": str(self.appointment_id),
            "tenant_id": str(self.tenant_id),
            "worker_id": str(self.worker_id),
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "status": self.status
        })
        return data


class AppointmentCreated(AppointmentEvent):
    """Event fired when a new appointment row is committed"""


class AppointmentConfirmed(AppointmentEvent):
    """Event fired when an appointment reaches confirmed status

    Reminder scheduling and calendar sync hang off this event.
    """


class AppointmentCancelled(AppointmentEvent):
    """Event fired the first time an appointment is cancelled"""


class AppointmentRescheduled(AppointmentEvent):
    """Event fired when an appointment moves to a new time or worker"""

    def __init__(
        self,
        appointment_id: uuid.UUID,
        tenant_id: uuid.UUID,
        worker_id: uuid.UUID,
        starts_at: datetime,
        ends_at: datetime,
        status: str,
        previous_starts_at: datetime,
        previous_ends_at: datetime,
        event_id: uuid.UUID = None
    ):
        super().__init__(
            appointment_id, tenant_id, worker_id, starts_at, ends_at, status, event_id
        )
        self.previous_starts_at = previous_starts_at
        self.previous_ends_at = previous_ends_at

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "previous_starts_at": self.previous_starts_at.isoformat(),
            "previous_ends_at": self.previous_ends_at.isoformat()
        })
        return data


class ParticipantEvent(DomainEvent):
    """Base for events about a participant of a group appointment"""

    def __init__(
        self,
        appointment_id: uuid.UUID,
        tenant_id: uuid.UUID,
        customer_id: uuid.UUID,
        participant_status: Optional[str],
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.appointment_id = appointment_id
        self.tenant_id = tenant_id
        self.customer_id = customer_id
        self.participant_status = participant_status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "appointment_id": str(self.appointment_id),
            "tenant_id": str(self.tenant_id),
            "customer_id": str(self.customer_id),
            "participant_status": self.participant_status
        })
        return data


class ParticipantJoined(ParticipantEvent):
    """Event fired when a customer joins a group appointment or its waitlist"""


class ParticipantRemoved(ParticipantEvent):
    """Event fired when a customer leaves a group appointment"""


class ParticipantPromoted(ParticipantEvent):
    """Event fired when a waitlisted customer is moved into a confirmed seat"""


class EventBus:
    """Simple in-memory event bus for publishing domain events"""

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, handler: Callable):
        """Subscribe to a specific event type"""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed handler to event type: {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable):
        """Unsubscribe from an event type"""
        if event_type in self._subscribers:
            self._subscribers[event_type].remove(handler)
            logger.debug(f"Unsubscribed handler from event type: {event_type}")

    def publish(self, event: DomainEvent):
        """Publish an event to all subscribers

        Handler failures are logged and never propagate to the publisher.
        """
        event_type = event.__class__.__name__
        handlers = list(self._subscribers.get(event_type, []))

        if not handlers:
            logger.debug(f"No subscribers for event type: {event_type}")
            return

        logger.info(f"Publishing event {event_type}: {event.event_id}")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event_type}: {e}", exc_info=True)

    def publish_all(self, events: List[DomainEvent]):
        """Publish a batch of events in order"""
        for event in events:
            self.publish(event)

    def clear_subscribers(self):
        """Clear all subscribers (useful for testing)"""
        self._subscribers.clear()
        logger.debug("Cleared all event subscribers")


# Global event bus instance
event_bus = EventBus()
