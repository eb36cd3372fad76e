import enum

from sqlalchemy import Enum as SAEnum


class Role(str, enum.Enum):
    conductor = "conductor"
    driver = "driver"
    owner = "owner"
    sacco = "sacco"
    admin = "admin"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Normalise a role string coming from outside (tokens, payloads)."""
        return cls(str(value).strip().lower())

    @property
    def is_staff(self) -> bool:
        return self in (Role.sacco, Role.admin)


class FareType(str, enum.Enum):
    normal = "normal"
    rush_hour = "rush_hour"
    off_peak = "off_peak"
    rain = "rain"


class TripStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    received = "received"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.pending


class AlertType(str, enum.Enum):
    revenue_split = "revenue_split"
    payment = "payment"


class CallbackStatus(str, enum.Enum):
    queued = "queued"
    processed = "processed"
    failed = "failed"


def enum_column(enum_cls: type[enum.Enum]) -> SAEnum:
    """Store enum members by their lowercase value, not by name."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )
