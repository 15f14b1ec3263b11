from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fleetdesk.config import configure_logging
from fleetdesk.errors import (
    FleetDeskError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from fleetdesk.models.entities import (
    ApprovalStatus,
    PaymentCategory,
    Reservation,
    ReservationStatus,
    Vehicle,
)
from fleetdesk.runtime import FleetDeskRuntime
from fleetdesk.services.dispatch import PendingChangeBuffer


class AssignVehicleRequest(BaseModel):
    vehicle_id: str


class DepartRequest(BaseModel):
    actual_pickup_date: datetime
    departure_odometer: int


class ReturnRequest(BaseModel):
    actual_return_date: datetime
    return_odometer: int
    fuel_level_at_return: str | None = None


class SettleRequest(BaseModel):
    actual_amount: Decimal
    payment_category: PaymentCategory | None = None
    note: str | None = None


class ApprovalRequest(BaseModel):
    status: ApprovalStatus
    comment: str | None = None


class BulkApprovalRequest(ApprovalRequest):
    ids: list[str]


class DispatchChange(BaseModel):
    reservation_id: str
    pickup_date: datetime
    return_date: datetime


class DispatchBatchRequest(BaseModel):
    changes: list[DispatchChange]


def _error_response(exc: FleetDeskError) -> JSONResponse:
    body: dict[str, Any] = {"detail": str(exc)}
    status_code = 500
    if isinstance(exc, ValidationError):
        status_code = 400
        if exc.field_errors:
            body["field_errors"] = exc.field_errors
    elif isinstance(exc, PermissionDeniedError):
        status_code = 403
    elif isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, StateConflictError):
        status_code = 409
        body["current_status"] = exc.current_status
    return JSONResponse(status_code=status_code, content=body)


def _dump(reservation: Reservation) -> dict[str, Any]:
    return reservation.model_dump(mode="json")


def create_app(runtime: FleetDeskRuntime | None = None) -> FastAPI:
    runtime = runtime or FleetDeskRuntime()
    configure_logging(runtime.settings.log_level)
    app = FastAPI(title="FleetDesk API", version="0.1.0")
    app.state.runtime = runtime
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(runtime.settings.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FleetDeskError)
    async def handle_fleetdesk_error(_: Request, exc: FleetDeskError) -> JSONResponse:
        return _error_response(exc)

    service = runtime.reservations

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/vehicles", status_code=201)
    def register_vehicle(payload: Vehicle) -> dict[str, Any]:
        return runtime.register_vehicle(payload).model_dump(mode="json")

    @app.get("/api/reservations")
    def list_reservations(
        status: ReservationStatus | None = None,
        approval_status: ApprovalStatus | None = None,
        vehicle_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return [
            _dump(item)
            for item in service.list_reservations(status=status, approval_status=approval_status, vehicle_id=vehicle_id)
        ]

    @app.post("/api/reservations", status_code=201)
    async def create_reservation(payload: dict[str, Any]) -> dict[str, Any]:
        return _dump(await service.create(payload))

    @app.get("/api/reservations/{reservation_id}")
    def get_reservation(reservation_id: str) -> dict[str, Any]:
        return _dump(service.get(reservation_id))

    @app.put("/api/reservations/{reservation_id}")
    async def edit_reservation(reservation_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return _dump(await service.edit(reservation_id, payload))

    @app.post("/api/reservations/{reservation_id}/cancel")
    async def cancel_reservation(reservation_id: str) -> dict[str, Any]:
        return _dump(await service.cancel(reservation_id))

    @app.post("/api/reservations/{reservation_id}/assign")
    async def assign_vehicle(reservation_id: str, payload: AssignVehicleRequest) -> dict[str, Any]:
        return _dump(await service.assign_vehicle(reservation_id, payload.vehicle_id))

    @app.post("/api/reservations/{reservation_id}/unassign")
    async def unassign_vehicle(reservation_id: str) -> dict[str, Any]:
        return _dump(await service.unassign_vehicle(reservation_id))

    @app.post("/api/reservations/{reservation_id}/depart")
    async def depart(reservation_id: str, payload: DepartRequest) -> dict[str, Any]:
        return _dump(await service.depart(reservation_id, payload.actual_pickup_date, payload.departure_odometer))

    @app.post("/api/reservations/{reservation_id}/return")
    async def return_vehicle(reservation_id: str, payload: ReturnRequest) -> dict[str, Any]:
        reservation = await service.return_vehicle(
            reservation_id,
            payload.actual_return_date,
            payload.return_odometer,
            payload.fuel_level_at_return,
        )
        return _dump(reservation)

    @app.post("/api/reservations/{reservation_id}/settle")
    async def settle(reservation_id: str, payload: SettleRequest) -> dict[str, Any]:
        reservation = await service.settle(
            reservation_id, payload.actual_amount, payload.payment_category, payload.note
        )
        return _dump(reservation)

    @app.post("/api/reservations/{reservation_id}/approve")
    async def decide(reservation_id: str, payload: ApprovalRequest) -> dict[str, Any]:
        return _dump(await runtime.approvals.decide(reservation_id, payload.status, payload.comment))

    @app.get("/api/reservations/{reservation_id}/payments")
    def reservation_payments(reservation_id: str) -> list[dict[str, Any]]:
        service.get(reservation_id)
        return [payment.model_dump(mode="json") for payment in runtime.settlement.payments_for(reservation_id)]

    @app.get("/api/approvals")
    def pending_approvals() -> dict[str, Any]:
        pending = runtime.approvals.list_pending()
        return {"count": len(pending), "reservations": [_dump(item) for item in pending]}

    @app.post("/api/approvals/bulk")
    async def bulk_approve(payload: BulkApprovalRequest) -> dict[str, int]:
        count = await runtime.approvals.bulk_decide(payload.ids, payload.status, payload.comment)
        return {"count": count}

    @app.post("/api/dispatch/batch-update")
    async def dispatch_batch_update(payload: DispatchBatchRequest) -> dict[str, int]:
        if not payload.changes:
            raise ValidationError("At least one change is required", {"changes": ["Must not be empty"]})
        buffer = PendingChangeBuffer()
        for change in payload.changes:
            buffer.stage(service.get(change.reservation_id), change.pickup_date, change.return_date)
        updated = await buffer.commit(service)
        return {"updated": len(updated)}

    @app.get("/api/audit/{reservation_code}")
    def audit_history(reservation_code: str) -> list[dict[str, Any]]:
        return [record.to_row() for record in runtime.audit.get_history(reservation_code)]

    return app


app = create_app()
