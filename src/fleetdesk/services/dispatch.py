from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from fleetdesk.errors import ValidationError
from fleetdesk.models.entities import Reservation, ReservationData, ensure_utc
from fleetdesk.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingChange:
    reservation_id: str
    reservation_code: str
    original_pickup_date: datetime
    original_return_date: datetime
    new_pickup_date: datetime
    new_return_date: datetime


class PendingChangeBuffer:
    """Unsaved interval moves from the dispatch board.

    Nothing is written until ``commit``, which saves the whole batch or
    nothing. Staging the same reservation twice keeps the original interval
    from the first stage.
    """

    def __init__(self) -> None:
        self._changes: dict[str, PendingChange] = {}

    def __len__(self) -> int:
        return len(self._changes)

    def stage(self, reservation: Reservation, pickup_date: datetime, return_date: datetime) -> PendingChange:
        previous = self._changes.get(reservation.id)
        change = PendingChange(
            reservation_id=reservation.id,
            reservation_code=reservation.reservation_code,
            original_pickup_date=previous.original_pickup_date if previous else reservation.pickup_date,
            original_return_date=previous.original_return_date if previous else reservation.return_date,
            new_pickup_date=ensure_utc(pickup_date),
            new_return_date=ensure_utc(return_date),
        )
        if (
            change.new_pickup_date == change.original_pickup_date
            and change.new_return_date == change.original_return_date
        ):
            self._changes.pop(reservation.id, None)
        else:
            self._changes[reservation.id] = change
        return change

    def discard(self, reservation_id: str | None = None) -> None:
        if reservation_id is None:
            self._changes.clear()
        else:
            self._changes.pop(reservation_id, None)

    def changes(self) -> list[PendingChange]:
        return list(self._changes.values())

    async def commit(self, service: ReservationService) -> list[Reservation]:
        invalid = {
            change.reservation_code: ["Return must be after pickup"]
            for change in self._changes.values()
            if change.new_pickup_date >= change.new_return_date
        }
        if invalid:
            raise ValidationError("Some pending changes have an invalid interval", invalid)

        edits: list[tuple[str, ReservationData]] = []
        for change in self._changes.values():
            current = service.get(change.reservation_id)
            data = ReservationData.model_validate(
                {
                    **current.model_dump(include=set(ReservationData.model_fields)),
                    "pickup_date": change.new_pickup_date,
                    "return_date": change.new_return_date,
                }
            )
            edits.append((change.reservation_id, data))

        updated = await service.edit_batch(edits)
        self._changes.clear()
        logger.info("Committed %d dispatch board changes", len(updated))
        return updated
