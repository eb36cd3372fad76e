import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, ForeignKey, JSON, func
from sqlalchemy.orm import Mapped, mapped_column
from matatupay.database import Base, utcnow
from matatupay.models.enums import PaymentStatus, enum_column


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_id: Mapped[str] = mapped_column(String, ForeignKey("trips.id"), nullable=False, index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    # pending | received | failed
    status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus), nullable=False, default=PaymentStatus.pending, index=True
    )
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_ref: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    checkout_request_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    receipt_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    provider_raw: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
