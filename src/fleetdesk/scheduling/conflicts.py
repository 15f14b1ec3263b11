"""
Double-booking detection for vehicle assignment.

Intervals are half-open: a reservation returning at 10:00 does not clash
with one picking the same vehicle up at 10:00.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from fleetdesk.models.entities import Reservation, ReservationStatus

# Statuses that still hold a claim on the assigned vehicle.
ACTIVE_STATUSES = frozenset(
    {ReservationStatus.RESERVED, ReservationStatus.CONFIRMED, ReservationStatus.DEPARTED}
)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not self.start < self.end:
            raise ValueError("Interval start must be before end")

    def overlaps(self, other: Interval) -> bool:
        return intervals_overlap(self.start, self.end, other.start, other.end)

    def precedes(self, other: Interval) -> bool:
        return self.end <= other.start


def find_conflict(
    vehicle_id: str,
    pickup_date: datetime,
    return_date: datetime,
    bookings: Iterable[Reservation],
    exclude_id: str | None = None,
) -> Reservation | None:
    for booking in bookings:
        if booking.id == exclude_id or booking.vehicle_id != vehicle_id:
            continue
        if booking.status not in ACTIVE_STATUSES:
            continue
        if intervals_overlap(pickup_date, return_date, booking.pickup_date, booking.return_date):
            return booking
    return None
