import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from matatupay.database import Base, utcnow


class RevenueSplit(Base):
    """Ledger record. Written once per trip, never updated."""

    __tablename__ = "revenue_splits"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_id: Mapped[str] = mapped_column(String, ForeignKey("trips.id"), unique=True, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    owner_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    driver_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    conductor_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    sacco_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    maintenance_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Payees as they were when the split was written.
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    driver_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    conductor_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)

    integrity_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
