import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from matatupay.database import Base, utcnow
from matatupay.models.enums import FareType, TripStatus, enum_column


class Trip(Base):
    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    route_id: Mapped[str] = mapped_column(String, ForeignKey("routes.id"), nullable=False)
    matatu_id: Mapped[str] = mapped_column(String, ForeignKey("matatus.id"), nullable=False, index=True)
    conductor_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    driver_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)

    fare_type: Mapped[FareType] = mapped_column(enum_column(FareType), nullable=False)
    # Snapshotted at creation; never recomputed.
    fare_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    passenger_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[TripStatus] = mapped_column(
        enum_column(TripStatus), nullable=False, default=TripStatus.pending, index=True
    )
    driver_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    trip_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
