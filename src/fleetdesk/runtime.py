from __future__ import annotations

import logging
from typing import Any

import httpx

from fleetdesk.audit.trail import AuditStore
from fleetdesk.auth import ActorProvider, stub_actor_provider
from fleetdesk.bus.event_bus import EventBus
from fleetdesk.config import Settings
from fleetdesk.db.repositories import (
    ReservationRepository,
    VehicleRepository,
    get_storage_backend,
    reset_memory_backend,
)
from fleetdesk.handlers import register_default_handlers
from fleetdesk.models.entities import Vehicle
from fleetdesk.services.approval_service import ApprovalService
from fleetdesk.services.reservation_service import ReservationService
from fleetdesk.settlement.engine import SettlementEngine

logger = logging.getLogger(__name__)


class FleetDeskRuntime:
    """Composition root: one bus and one set of services per process."""

    def __init__(
        self,
        settings: Settings | None = None,
        actor_provider: ActorProvider = stub_actor_provider,
        transport: httpx.AsyncBaseTransport | None = None,
        register_handlers: bool = True,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.bus = EventBus()
        self.audit = AuditStore()
        self.vehicle_repo = VehicleRepository()
        self.reservation_repo = ReservationRepository()
        self.settlement = SettlementEngine()
        self.reservations = ReservationService(
            self.bus,
            actor_provider=actor_provider,
            reservations=self.reservation_repo,
            vehicles=self.vehicle_repo,
            settlement=self.settlement,
            audit_store=self.audit,
        )
        self.approvals = ApprovalService(self.reservations)
        self.handlers: list[Any] = (
            register_default_handlers(self.bus, self.settings, transport=transport) if register_handlers else []
        )
        logger.info(
            "FleetDesk runtime ready (storage=%s, handlers=%s)",
            get_storage_backend().value,
            [kind.value for kind in self.bus.registered_kinds()],
        )

    def reset(self) -> None:
        if get_storage_backend().value == "memory":
            reset_memory_backend()
            return
        # Payments and audit rows reference reservations.
        self.settlement.reset()
        self.audit.reset()
        self.reservation_repo.reset()
        self.vehicle_repo.reset()

    def register_vehicle(self, vehicle: Vehicle) -> Vehicle:
        row = self.vehicle_repo.insert(vehicle.model_dump(mode="json"))
        return Vehicle.model_validate(row)

    def close(self) -> None:
        for handler in self.handlers:
            close = getattr(handler, "close", None)
            if callable(close):
                close()
