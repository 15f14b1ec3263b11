from __future__ import annotations

from fleetdesk.models.events import DomainEventType


EVENT_TOPIC_MAP = {
    DomainEventType.RESERVATION_CREATED: "reservation.lifecycle",
    DomainEventType.RESERVATION_UPDATED: "reservation.lifecycle",
    DomainEventType.RESERVATION_CANCELLED: "reservation.lifecycle",
    DomainEventType.RESERVATION_VEHICLE_ASSIGNED: "reservation.dispatch",
    DomainEventType.RESERVATION_DEPARTED: "reservation.dispatch",
    DomainEventType.RESERVATION_RETURNED: "reservation.dispatch",
    DomainEventType.RESERVATION_SETTLED: "reservation.settlement",
    DomainEventType.RESERVATION_APPROVED: "reservation.approval",
    DomainEventType.RESERVATION_REJECTED: "reservation.approval",
}
