from __future__ import annotations

import logging

from fleetdesk.auth import Role
from fleetdesk.errors import NotFoundError, StateConflictError, ValidationError
from fleetdesk.models.entities import ApprovalStatus, Reservation
from fleetdesk.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

_DECISIONS = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED})


class ApprovalService:
    def __init__(self, reservations: ReservationService) -> None:
        self.reservations = reservations

    def pending_count(self) -> int:
        return len(self.list_pending())

    def list_pending(self) -> list[Reservation]:
        return self.reservations.list_reservations(approval_status=ApprovalStatus.PENDING)

    async def decide(self, reservation_id: str, status: ApprovalStatus | str, comment: str | None = None) -> Reservation:
        decision = self._decision(status)
        if decision == ApprovalStatus.APPROVED:
            return await self.reservations.approve(reservation_id, comment)
        return await self.reservations.reject(reservation_id, comment)

    async def bulk_decide(
        self, reservation_ids: list[str], status: ApprovalStatus | str, comment: str | None = None
    ) -> int:
        """Approve or reject many reservations; already decided ones are skipped.

        Returns the number of reservations whose decision was recorded.
        """
        self.reservations.require_role(Role.MANAGER, "Approving or rejecting requires MANAGER role or higher")
        decision = self._decision(status)
        if not reservation_ids:
            raise ValidationError("Select at least one reservation", {"ids": ["At least one id is required"]})

        count = 0
        for reservation_id in dict.fromkeys(reservation_ids):
            try:
                await self.decide(reservation_id, decision, comment)
            except (NotFoundError, StateConflictError):
                logger.debug("Skipping reservation %s: missing or already decided", reservation_id)
                continue
            count += 1
        return count

    @staticmethod
    def _decision(status: ApprovalStatus | str) -> ApprovalStatus:
        try:
            decision = ApprovalStatus(status)
        except ValueError as exc:
            raise ValidationError("Unknown decision", {"status": [f"Unsupported value {status!r}"]}) from exc
        if decision not in _DECISIONS:
            raise ValidationError("Decision must be APPROVED or REJECTED", {"status": ["Must be APPROVED or REJECTED"]})
        return decision
