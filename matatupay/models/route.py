import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from matatupay.database import Base, utcnow
from matatupay.models.enums import FareType, enum_column


class Route(Base):
    __tablename__ = "routes"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    origin: Mapped[str] = mapped_column(String(255), nullable=False)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)
    distance_km: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    fare_rules: Mapped[list["FareRule"]] = relationship(
        back_populates="route", lazy="selectin", cascade="all, delete-orphan"
    )


class FareRule(Base):
    __tablename__ = "fare_rules"
    __table_args__ = (UniqueConstraint("route_id", "fare_type", name="uq_fare_rules_route_fare_type"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    route_id: Mapped[str] = mapped_column(String, ForeignKey("routes.id"), nullable=False, index=True)
    fare_type: Mapped[FareType] = mapped_column(enum_column(FareType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    route: Mapped[Route] = relationship(back_populates="fare_rules")
