"""
Reservation lifecycle.

Every transition checks the actor's role, re-reads the reservation, checks
the status guard and only then writes. All writes of a transition share one
unit of work; the domain event is emitted after that unit of work commits.

    RESERVED --assign--> CONFIRMED --depart--> DEPARTED --return--> RETURNED --settle--> SETTLED
       ^                    |
       +-----unassign-------+
    RESERVED / CONFIRMED --cancel--> CANCELLED
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from fleetdesk.audit.trail import AuditStore
from fleetdesk.auth import Actor, ActorProvider, Role, has_role, stub_actor_provider
from fleetdesk.bus.event_bus import EventBus
from fleetdesk.db.repositories import ReservationRepository, UnitOfWork, VehicleRepository
from fleetdesk.db.sequences import RESERVATION_CODE_PREFIX, next_code
from fleetdesk.errors import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from fleetdesk.models.entities import (
    ApprovalStatus,
    PaymentCategory,
    Reservation,
    ReservationData,
    ReservationStatus,
    Vehicle,
    VehicleStatus,
    ensure_utc,
)
from fleetdesk.models.events import DomainEventType, ReservationEventPayload, ReservationSettledPayload
from fleetdesk.scheduling.conflicts import find_conflict
from fleetdesk.settlement.engine import SettlementEngine, revenue_date_for

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = frozenset({ReservationStatus.RESERVED, ReservationStatus.CONFIRMED})
CANCELLABLE_STATUSES = EDITABLE_STATUSES


class BookingConflictError(ValidationError):
    def __init__(self, message: str, conflicting_code: str) -> None:
        super().__init__(message, {"vehicle_id": [message]})
        self.conflicting_code = conflicting_code


def to_field_errors(exc: PydanticValidationError) -> dict[str, list[str]]:
    field_errors: dict[str, list[str]] = {}
    for issue in exc.errors():
        path = ".".join(str(part) for part in issue["loc"])
        field_errors.setdefault(path, []).append(issue["msg"])
    return field_errors


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReservationService:
    def __init__(
        self,
        bus: EventBus,
        actor_provider: ActorProvider = stub_actor_provider,
        reservations: ReservationRepository | None = None,
        vehicles: VehicleRepository | None = None,
        settlement: SettlementEngine | None = None,
        audit_store: AuditStore | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.bus = bus
        self.actor_provider = actor_provider
        self.reservations = reservations or ReservationRepository()
        self.vehicles = vehicles or VehicleRepository()
        self.settlement = settlement or SettlementEngine()
        self.audit_store = audit_store
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, reservation_id: str) -> Reservation:
        return self._require(reservation_id)

    def list_reservations(
        self,
        status: ReservationStatus | None = None,
        approval_status: ApprovalStatus | None = None,
        vehicle_id: str | None = None,
    ) -> list[Reservation]:
        rows = self.reservations.list_by_vehicle(vehicle_id) if vehicle_id else self.reservations.list_all()
        reservations = [Reservation.model_validate(row) for row in rows]
        if status:
            reservations = [item for item in reservations if item.status == status]
        if approval_status:
            reservations = [item for item in reservations if item.approval_status == approval_status]
        reservations.sort(key=lambda item: item.created_at, reverse=True)
        return reservations

    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        row = self.vehicles.get(vehicle_id)
        if not row:
            raise NotFoundError("Vehicle not found")
        return Vehicle.model_validate(row)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create(self, data: ReservationData | dict[str, Any]) -> Reservation:
        actor = self.require_role(Role.MEMBER)
        parsed = self._parse(data)

        now = self.clock()
        reservation = Reservation(
            **parsed.model_dump(),
            reservation_code=next_code(RESERVATION_CODE_PREFIX, self.reservations.max_code()),
            created_at=now,
            updated_at=now,
        )
        with UnitOfWork() as uow:
            row = self.reservations.insert(reservation.model_dump(mode="json"), uow=uow)
        created = Reservation.model_validate(row)

        self._log_transition(created, actor, "create", None, created.status)
        await self._publish(DomainEventType.RESERVATION_CREATED, created, actor)
        return created

    async def edit(self, reservation_id: str, data: ReservationData | dict[str, Any]) -> Reservation:
        [updated] = await self.edit_batch([(reservation_id, data)])
        return updated

    async def edit_batch(
        self, changes: Iterable[tuple[str, ReservationData | dict[str, Any]]]
    ) -> list[Reservation]:
        """Edit several reservations as one unit.

        Every change is parsed, guarded and conflict-checked against the
        stored bookings with the other changes of the batch applied before
        anything is written. A failing change saves nothing.
        """
        actor = self.require_role(Role.MEMBER)
        planned: list[tuple[Reservation, ReservationData]] = []
        for reservation_id, data in changes:
            parsed = self._parse(data)
            existing = self._require(reservation_id)
            self._guard(existing, EDITABLE_STATUSES, "edited")
            planned.append((existing, parsed))

        proposed = {existing.id: existing.model_copy(update=parsed.model_dump()) for existing, parsed in planned}
        for existing, parsed in planned:
            if not existing.vehicle_id:
                continue
            vehicle = self.get_vehicle(existing.vehicle_id)
            if vehicle.vehicle_class_id != parsed.vehicle_class_id:
                raise ValidationError(
                    "The assigned vehicle does not belong to the requested vehicle class; unassign it first",
                    {"vehicle_class_id": ["Does not match the assigned vehicle"]},
                )
            self._check_conflict(
                existing.id, existing.vehicle_id, parsed.pickup_date, parsed.return_date, proposed
            )

        with UnitOfWork() as uow:
            updated = [self._update(uow, existing, parsed.model_dump()) for existing, parsed in planned]

        for (existing, _), reservation in zip(planned, updated):
            self._log_transition(reservation, actor, "edit", existing.status, reservation.status)
        for reservation in updated:
            await self._publish(DomainEventType.RESERVATION_UPDATED, reservation, actor)
        return updated

    async def cancel(self, reservation_id: str) -> Reservation:
        actor = self.require_role(Role.MEMBER)
        existing = self._require(reservation_id)
        self._guard(existing, CANCELLABLE_STATUSES, "cancelled")

        # The vehicle has not left yet, so its status is untouched.
        with UnitOfWork() as uow:
            updated = self._update(uow, existing, {"status": ReservationStatus.CANCELLED, "vehicle_id": None})

        self._log_transition(updated, actor, "cancel", existing.status, updated.status)
        await self._publish(DomainEventType.RESERVATION_CANCELLED, updated, actor)
        return updated

    async def assign_vehicle(self, reservation_id: str, vehicle_id: str) -> Reservation:
        actor = self.require_role(Role.MEMBER)
        existing = self._require(reservation_id)
        self._guard(existing, {ReservationStatus.RESERVED}, "assigned a vehicle")

        vehicle = self.get_vehicle(vehicle_id)
        if vehicle.vehicle_class_id != existing.vehicle_class_id:
            raise ValidationError(
                "This vehicle does not belong to the reservation's vehicle class",
                {"vehicle_id": ["Vehicle class mismatch"]},
            )
        self._check_conflict(existing.id, vehicle.id, existing.pickup_date, existing.return_date)

        # Vehicle status only changes at departure.
        with UnitOfWork() as uow:
            updated = self._update(
                uow, existing, {"vehicle_id": vehicle.id, "status": ReservationStatus.CONFIRMED}
            )

        self._log_transition(
            updated, actor, "assign_vehicle", existing.status, updated.status, {"vehicle_id": vehicle.id}
        )
        await self._publish(DomainEventType.RESERVATION_VEHICLE_ASSIGNED, updated, actor)
        return updated

    async def unassign_vehicle(self, reservation_id: str) -> Reservation:
        actor = self.require_role(Role.MEMBER)
        existing = self._require(reservation_id)
        self._guard(existing, {ReservationStatus.CONFIRMED}, "unassigned")

        with UnitOfWork() as uow:
            updated = self._update(uow, existing, {"vehicle_id": None, "status": ReservationStatus.RESERVED})

        self._log_transition(
            updated, actor, "unassign_vehicle", existing.status, updated.status, {"vehicle_id": existing.vehicle_id}
        )
        return updated

    async def depart(self, reservation_id: str, actual_pickup_date: datetime, departure_odometer: int) -> Reservation:
        actor = self.require_role(Role.MEMBER)
        if departure_odometer < 0:
            raise ValidationError(
                "Odometer reading cannot be negative", {"departure_odometer": ["Must be 0 or greater"]}
            )
        existing = self._require(reservation_id)
        self._guard(existing, {ReservationStatus.CONFIRMED}, "departed")
        if not existing.vehicle_id:
            raise ValidationError("No vehicle is assigned; assign a vehicle before departure")
        vehicle = self.get_vehicle(existing.vehicle_id)

        with UnitOfWork() as uow:
            updated = self._update(
                uow,
                existing,
                {
                    "status": ReservationStatus.DEPARTED,
                    "actual_pickup_date": ensure_utc(actual_pickup_date),
                    "departure_odometer": departure_odometer,
                },
            )
            self.vehicles.update(
                vehicle.id,
                {"status": VehicleStatus.RENTED.value, "mileage": departure_odometer},
                uow=uow,
            )

        self._log_transition(
            updated, actor, "depart", existing.status, updated.status, {"odometer": departure_odometer}
        )
        await self._publish(DomainEventType.RESERVATION_DEPARTED, updated, actor)
        return updated

    async def return_vehicle(
        self,
        reservation_id: str,
        actual_return_date: datetime,
        return_odometer: int,
        fuel_level: str | None = None,
    ) -> Reservation:
        actor = self.require_role(Role.MEMBER)
        existing = self._require(reservation_id)
        self._guard(existing, {ReservationStatus.DEPARTED}, "returned")
        if not existing.vehicle_id:
            raise ValidationError("No vehicle is assigned")
        if existing.departure_odometer is not None and return_odometer < existing.departure_odometer:
            raise ValidationError(
                "Return odometer must be greater than or equal to the departure odometer",
                {"return_odometer": [f"Must be at least {existing.departure_odometer}"]},
            )
        vehicle = self.get_vehicle(existing.vehicle_id)

        with UnitOfWork() as uow:
            updated = self._update(
                uow,
                existing,
                {
                    "status": ReservationStatus.RETURNED,
                    "actual_return_date": ensure_utc(actual_return_date),
                    "return_odometer": return_odometer,
                    "fuel_level_at_return": fuel_level,
                },
            )
            self.vehicles.update(
                vehicle.id,
                {"status": VehicleStatus.IN_STOCK.value, "mileage": return_odometer},
                uow=uow,
            )

        self._log_transition(
            updated, actor, "return", existing.status, updated.status, {"odometer": return_odometer}
        )
        await self._publish(DomainEventType.RESERVATION_RETURNED, updated, actor)
        return updated

    async def settle(
        self,
        reservation_id: str,
        actual_amount: Decimal | int | str,
        payment_category: PaymentCategory | str | None = None,
        note: str | None = None,
    ) -> Reservation:
        actor = self.require_role(Role.MEMBER)
        existing = self._require(reservation_id)
        self._guard(existing, {ReservationStatus.RETURNED}, "settled")

        try:
            amount = Decimal(str(actual_amount))
        except InvalidOperation as exc:
            raise ValidationError(
                "Settlement amount must be a number", {"actual_amount": ["Must be a number"]}
            ) from exc
        if not amount.is_finite():
            raise ValidationError(
                "Settlement amount must be a number", {"actual_amount": ["Must be a finite number"]}
            )
        if amount < 0:
            raise ValidationError(
                "Settlement amount must be 0 or greater", {"actual_amount": ["Must be 0 or greater"]}
            )
        try:
            category = PaymentCategory(payment_category) if payment_category else None
        except ValueError as exc:
            raise ValidationError(
                "Unknown payment category", {"payment_category": [f"Unsupported value {payment_category!r}"]}
            ) from exc

        now = self.clock()
        values: dict[str, Any] = {
            "status": ReservationStatus.SETTLED,
            "actual_amount": amount,
            "settled_at": now,
            "note": note if note is not None else existing.note,
        }
        revenue_date = revenue_date_for(existing, now)
        if revenue_date is not None:
            values["revenue_date"] = revenue_date

        with UnitOfWork() as uow:
            updated = self._update(uow, existing, values)
            payment = self.settlement.record_payment(uow, updated, amount, category, paid_at=now)

        self._log_transition(
            updated,
            actor,
            "settle",
            existing.status,
            updated.status,
            {"actual_amount": str(amount), "payment_number": payment.payment_number},
        )
        await self.bus.emit(
            DomainEventType.RESERVATION_SETTLED,
            ReservationSettledPayload(reservation=updated, payment=payment, user_id=actor.id),
        )
        return updated

    async def approve(self, reservation_id: str, comment: str | None = None) -> Reservation:
        return await self._decide(reservation_id, ApprovalStatus.APPROVED, comment)

    async def reject(self, reservation_id: str, comment: str | None = None) -> Reservation:
        return await self._decide(reservation_id, ApprovalStatus.REJECTED, comment)

    async def _decide(self, reservation_id: str, decision: ApprovalStatus, comment: str | None) -> Reservation:
        actor = self.require_role(Role.MANAGER, "Approving or rejecting requires MANAGER role or higher")
        existing = self._require(reservation_id)
        if existing.approval_status != ApprovalStatus.PENDING:
            raise StateConflictError(
                f"Reservation {existing.reservation_code} has already been "
                f"{existing.approval_status.value.lower()}",
                existing.approval_status.value,
            )

        with UnitOfWork() as uow:
            updated = self._update(
                uow,
                existing,
                {
                    "approval_status": decision,
                    "approved_by_id": actor.id,
                    "approved_at": self.clock(),
                    "approval_comment": comment,
                },
            )

        self._log_transition(
            updated,
            actor,
            "approve" if decision == ApprovalStatus.APPROVED else "reject",
            existing.approval_status,
            decision,
            {"comment": comment},
        )
        event_type = (
            DomainEventType.RESERVATION_APPROVED
            if decision == ApprovalStatus.APPROVED
            else DomainEventType.RESERVATION_REJECTED
        )
        await self._publish(event_type, updated, actor)
        return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def require_role(self, minimum: Role, message: str = "You do not have permission for this operation") -> Actor:
        actor = self.actor_provider()
        if not has_role(actor, minimum):
            raise PermissionDeniedError(message)
        return actor

    def _require(self, reservation_id: str) -> Reservation:
        row = self.reservations.get(reservation_id)
        if not row:
            raise NotFoundError("Reservation not found")
        return Reservation.model_validate(row)

    @staticmethod
    def _guard(reservation: Reservation, allowed: Iterable[ReservationStatus], action: str) -> None:
        if reservation.status not in allowed:
            allowed_names = ", ".join(sorted(status.value for status in allowed))
            raise StateConflictError(
                f"A reservation in status {reservation.status.value} cannot be {action} "
                f"(allowed: {allowed_names})",
                reservation.status.value,
            )

    @staticmethod
    def _parse(data: ReservationData | dict[str, Any]) -> ReservationData:
        try:
            parsed = data if isinstance(data, ReservationData) else ReservationData.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError("The input contains errors", to_field_errors(exc)) from exc
        if not parsed.customer_name.strip():
            raise ValidationError("The input contains errors", {"customer_name": ["Customer name is required"]})
        if parsed.pickup_date >= parsed.return_date:
            raise ValidationError(
                "The input contains errors", {"return_date": ["Return must be after pickup"]}
            )
        if parsed.estimated_amount is not None and parsed.estimated_amount < 0:
            raise ValidationError("The input contains errors", {"estimated_amount": ["Must be 0 or greater"]})
        return parsed

    def _check_conflict(
        self,
        reservation_id: str,
        vehicle_id: str,
        pickup_date: datetime,
        return_date: datetime,
        pending: Mapping[str, Reservation] | None = None,
    ) -> None:
        pending = pending or {}
        stored = [Reservation.model_validate(row) for row in self.reservations.list_by_vehicle(vehicle_id)]
        bookings = [pending.get(booking.id, booking) for booking in stored]
        conflict = find_conflict(vehicle_id, pickup_date, return_date, bookings, exclude_id=reservation_id)
        if conflict:
            raise BookingConflictError(
                f"This vehicle is already booked by {conflict.reservation_code}", conflict.reservation_code
            )

    def _update(self, uow: UnitOfWork, reservation: Reservation, values: dict[str, Any]) -> Reservation:
        changed = reservation.model_copy(update={**values, "updated_at": self.clock()})
        row = changed.model_dump(mode="json")
        stored = self.reservations.update(
            reservation.id, {key: row[key] for key in [*values, "updated_at"]}, uow=uow
        )
        return Reservation.model_validate(stored)

    def _log_transition(
        self,
        reservation: Reservation,
        actor: Actor,
        action: str,
        from_status: Any,
        to_status: Any,
        detail: dict[str, Any] | None = None,
    ) -> None:
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        logger.info("Reservation %s: %s %s -> %s", reservation.reservation_code, action, from_value, to_value)
        if not self.audit_store:
            return
        # Runs after commit, so a failed audit write is only logged.
        try:
            self.audit_store.log(
                action=f"reservation_{action}",
                component="reservation_service",
                reservation_code=reservation.reservation_code,
                user_id=actor.id,
                from_status=from_value,
                to_status=to_value,
                detail=detail or {},
            )
        except Exception:
            logger.exception("Audit write failed for %s %s", reservation.reservation_code, action)

    async def _publish(self, event_type: DomainEventType, reservation: Reservation, actor: Actor) -> None:
        await self.bus.emit(event_type, ReservationEventPayload(reservation=reservation, user_id=actor.id))
