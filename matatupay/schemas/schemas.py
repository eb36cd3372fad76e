from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from matatupay.models.enums import (
    AlertType, CallbackStatus, FareType, PaymentStatus, Role, TripStatus,
)
from matatupay.models.matatu import DEFAULT_CAPACITY


# ---------------------------------------------------------------------------
# Users & matatus
# ---------------------------------------------------------------------------

class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    phone_number: str = Field(..., min_length=9, max_length=20)
    role: Role

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value):
        return Role.parse(value) if isinstance(value, str) else value


class UserResponse(BaseModel):
    id: str
    name: str
    phone_number: str
    role: Role
    created_at: datetime

    model_config = {"from_attributes": True}


class MatatuCreateRequest(BaseModel):
    plate_number: str = Field(..., min_length=3, max_length=20)
    model: Optional[str] = Field(default=None, max_length=100)
    capacity: int = Field(default=DEFAULT_CAPACITY, gt=0, le=100)


class MatatuResponse(BaseModel):
    id: str
    plate_number: str
    model: Optional[str] = None
    capacity: int
    owner_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Routes & fares
# ---------------------------------------------------------------------------

class FareRuleIn(BaseModel):
    fare_type: FareType
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class FareRuleResponse(BaseModel):
    fare_type: FareType
    amount: Decimal

    model_config = {"from_attributes": True}


class RouteCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    origin: str = Field(..., min_length=2, max_length=255)
    destination: str = Field(..., min_length=2, max_length=255)
    distance_km: Optional[Decimal] = Field(default=None, gt=0)
    fare_rules: list[FareRuleIn] = Field(default_factory=list)


class RouteResponse(BaseModel):
    id: str
    name: str
    origin: str
    destination: str
    distance_km: Optional[Decimal] = None
    fare_rules: list[FareRuleResponse] = []

    model_config = {"from_attributes": True}


class FareLookupResponse(BaseModel):
    route_id: str
    fare_type: FareType
    amount: Decimal


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------

class TripCreateRequest(BaseModel):
    route_id: str
    matatu_id: str
    driver_id: str
    fare_type: FareType

    @field_validator("fare_type", mode="before")
    @classmethod
    def _normalise_fare_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class TripResponse(BaseModel):
    id: str
    route_id: str
    matatu_id: str
    conductor_id: str
    driver_id: str
    fare_type: FareType
    fare_amount: Decimal
    passenger_count: int
    total_amount: Decimal
    status: TripStatus
    driver_confirmed: bool
    trip_date: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------------

class RevenueSplitResponse(BaseModel):
    id: str
    trip_id: str
    total_amount: Decimal
    owner_amount: Decimal
    driver_amount: Decimal
    conductor_amount: Decimal
    sacco_amount: Decimal
    maintenance_amount: Decimal
    owner_id: str
    driver_id: str
    conductor_id: str
    integrity_hash: str
    verified: Optional[bool] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AlertResponse(BaseModel):
    id: str
    type: AlertType
    message: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class PaymentInitiateRequest(BaseModel):
    trip_id: str
    phone_number: str = Field(..., min_length=9, max_length=20)


class PaymentInitiateResponse(BaseModel):
    payment_id: str
    session_id: Optional[str] = None
    message: str = "Payment request sent. Please check your phone to complete the payment."


class PaymentResponse(BaseModel):
    id: str
    trip_id: str
    amount: Decimal
    phone_number: str
    status: PaymentStatus
    provider_ref: Optional[str] = None
    checkout_request_id: Optional[str] = None
    receipt_code: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CallbackAck(BaseModel):
    ack: bool = True


class CallbackJobResponse(BaseModel):
    id: str
    status: CallbackStatus
    outcome: Optional[str] = None
    payment_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int
    received_at: datetime
    processed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
