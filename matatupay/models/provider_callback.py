import uuid
from typing import Any
from datetime import datetime
from sqlalchemy import String, Integer, Text, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column
from matatupay.database import Base, utcnow
from matatupay.models.enums import CallbackStatus, enum_column


class ProviderCallback(Base):
    """
    Raw gateway callback, queued for reconciliation after the provider has been
    acknowledged. Failed rows stay around for an operator to retry.
    """

    __tablename__ = "provider_callbacks"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    payload: Mapped[Any] = mapped_column(JSON, nullable=True)
    # queued | processed | failed
    status: Mapped[CallbackStatus] = mapped_column(
        enum_column(CallbackStatus), nullable=False, default=CallbackStatus.queued, index=True
    )
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
