from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class ReservationStatus(str, Enum):
    RESERVED = "RESERVED"
    CONFIRMED = "CONFIRMED"
    DEPARTED = "DEPARTED"
    RETURNED = "RETURNED"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class VehicleStatus(str, Enum):
    IN_STOCK = "IN_STOCK"
    RENTED = "RENTED"
    LEASED = "LEASED"
    IN_MAINTENANCE = "IN_MAINTENANCE"
    RETIRED = "RETIRED"


class PaymentCategory(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    QR_PAYMENT = "QR_PAYMENT"
    OTHER = "OTHER"


class PaymentStatus(str, Enum):
    UNALLOCATED = "UNALLOCATED"
    PARTIALLY_ALLOCATED = "PARTIALLY_ALLOCATED"
    ALLOCATED = "ALLOCATED"


class EntityType(int, Enum):
    INDIVIDUAL = 1
    CORPORATE = 2


class ReservationData(BaseModel):
    """Caller-supplied fields for create and edit."""

    vehicle_class_id: str
    customer_name: str
    customer_name_kana: str = ""
    customer_phone: str = ""
    customer_email: str | None = None
    pickup_date: UtcDatetime
    return_date: UtcDatetime
    pickup_office_id: str | None = None
    return_office_id: str | None = None
    estimated_amount: Decimal | None = None
    note: str | None = None
    customer_code: str | None = None
    entity_type: EntityType | None = None
    company_code: str | None = None
    channel: str | None = None
    account_id: str | None = None


class Reservation(ReservationData):
    id: str = Field(default_factory=lambda: str(uuid4()))
    reservation_code: str
    vehicle_id: str | None = None
    status: ReservationStatus = ReservationStatus.RESERVED
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by_id: str | None = None
    approved_at: UtcDatetime | None = None
    approval_comment: str | None = None
    actual_pickup_date: UtcDatetime | None = None
    actual_return_date: UtcDatetime | None = None
    departure_odometer: int | None = None
    return_odometer: int | None = None
    fuel_level_at_return: str | None = None
    actual_amount: Decimal | None = None
    settled_at: UtcDatetime | None = None
    revenue_date: UtcDatetime | None = None
    created_at: UtcDatetime = Field(default_factory=_now)
    updated_at: UtcDatetime = Field(default_factory=_now)


class Vehicle(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(default_factory=lambda: str(uuid4()))
    vehicle_code: str
    vehicle_class_id: str
    maker: str = ""
    model_name: str = ""
    plate_number: str | None = None
    mileage: int = 0
    status: VehicleStatus = VehicleStatus.IN_STOCK


class Payment(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    payment_number: str
    payment_date: UtcDatetime = Field(default_factory=_now)
    amount: Decimal
    payment_category: PaymentCategory = PaymentCategory.CASH
    payer_name: str
    status: PaymentStatus = PaymentStatus.UNALLOCATED
    reservation_id: str | None = None
    created_at: UtcDatetime = Field(default_factory=_now)
