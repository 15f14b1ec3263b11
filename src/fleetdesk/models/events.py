from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from fleetdesk.models.entities import Payment, Reservation


class DomainEventType(str, Enum):
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_UPDATED = "reservation.updated"
    RESERVATION_CANCELLED = "reservation.cancelled"
    RESERVATION_VEHICLE_ASSIGNED = "reservation.vehicleAssigned"
    RESERVATION_DEPARTED = "reservation.departed"
    RESERVATION_RETURNED = "reservation.returned"
    RESERVATION_SETTLED = "reservation.settled"
    RESERVATION_APPROVED = "reservation.approved"
    RESERVATION_REJECTED = "reservation.rejected"


class ReservationEventPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    reservation: Reservation
    user_id: str


class ReservationSettledPayload(ReservationEventPayload):
    payment: Payment


EVENT_PAYLOADS: dict[DomainEventType, type[ReservationEventPayload]] = {
    DomainEventType.RESERVATION_CREATED: ReservationEventPayload,
    DomainEventType.RESERVATION_UPDATED: ReservationEventPayload,
    DomainEventType.RESERVATION_CANCELLED: ReservationEventPayload,
    DomainEventType.RESERVATION_VEHICLE_ASSIGNED: ReservationEventPayload,
    DomainEventType.RESERVATION_DEPARTED: ReservationEventPayload,
    DomainEventType.RESERVATION_RETURNED: ReservationEventPayload,
    DomainEventType.RESERVATION_SETTLED: ReservationSettledPayload,
    DomainEventType.RESERVATION_APPROVED: ReservationEventPayload,
    DomainEventType.RESERVATION_REJECTED: ReservationEventPayload,
}
