from .repositories import (
    AuditRepository,
    PaymentRepository,
    ReservationRepository,
    StorageBackend,
    UnitOfWork,
    VehicleRepository,
    get_storage_backend,
    reset_memory_backend,
)

__all__ = [
    "AuditRepository",
    "PaymentRepository",
    "ReservationRepository",
    "StorageBackend",
    "UnitOfWork",
    "VehicleRepository",
    "get_storage_backend",
    "reset_memory_backend",
]
