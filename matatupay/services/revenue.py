"""
Revenue split: partitions a trip's fare among its stakeholders.

Allocation (must total 100%):
  owner 40% | driver 25% | conductor 15% | sacco 15% | maintenance 5%

Rounding: owner, driver, conductor and sacco shares are rounded half-up to the
cent; maintenance takes whatever is left, so the five shares always add up to
the trip total exactly.
"""
import hashlib
import json
import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.errors import AlreadyExists, Forbidden, NotFound
from matatupay.middleware.auth import Principal
from matatupay.models.enums import AlertType, Role
from matatupay.models.matatu import Matatu
from matatupay.models.revenue_split import RevenueSplit
from matatupay.models.trip import Trip
from matatupay.services.notifications import emit_many

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

SHARES: dict[str, Decimal] = {
    "owner": Decimal("0.40"),
    "driver": Decimal("0.25"),
    "conductor": Decimal("0.15"),
    "sacco": Decimal("0.15"),
    "maintenance": Decimal("0.05"),
}
REMAINDER_PAYEE = "maintenance"


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_shares(total_amount: Decimal) -> dict[str, Decimal]:
    """Split ``total_amount`` into the five payee shares."""
    total = to_money(total_amount)
    shares = {
        payee: (total * pct).quantize(CENT, rounding=ROUND_HALF_UP)
        for payee, pct in SHARES.items()
        if payee != REMAINDER_PAYEE
    }
    shares[REMAINDER_PAYEE] = total - sum(shares.values())
    return shares


def split_fingerprint(trip_id: str, total_amount: Decimal, shares: dict[str, Decimal]) -> str:
    """SHA-256 over trip id and all six amounts, keys sorted."""
    data = {"trip_id": trip_id, "total_amount": f"{to_money(total_amount):.2f}"}
    for payee, amount in shares.items():
        data[f"{payee}_amount"] = f"{to_money(amount):.2f}"
    serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def split_amounts(split: RevenueSplit) -> dict[str, Decimal]:
    return {
        "owner": split.owner_amount,
        "driver": split.driver_amount,
        "conductor": split.conductor_amount,
        "sacco": split.sacco_amount,
        "maintenance": split.maintenance_amount,
    }


def verify_split(split: RevenueSplit) -> bool:
    """True if the stored row still matches its fingerprint."""
    expected = split_fingerprint(split.trip_id, split.total_amount, split_amounts(split))
    return expected == split.integrity_hash


async def create_split(db: AsyncSession, trip_id: str) -> RevenueSplit:
    """
    Write the split for a trip and queue payee alerts. Flushes but does not
    commit: the caller owns the transaction.
    """
    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise NotFound("Trip not found")
    matatu = await db.get(Matatu, trip.matatu_id)
    if matatu is None:
        raise NotFound("Matatu not found")

    existing = await db.execute(select(RevenueSplit.id).where(RevenueSplit.trip_id == trip_id))
    if existing.scalar_one_or_none():
        raise AlreadyExists(f"Revenue split already exists for trip {trip_id}")

    shares = compute_shares(trip.total_amount)
    split = RevenueSplit(
        trip_id=trip.id,
        total_amount=to_money(trip.total_amount),
        owner_amount=shares["owner"],
        driver_amount=shares["driver"],
        conductor_amount=shares["conductor"],
        sacco_amount=shares["sacco"],
        maintenance_amount=shares["maintenance"],
        owner_id=matatu.owner_id,
        driver_id=trip.driver_id,
        conductor_id=trip.conductor_id,
        integrity_hash=split_fingerprint(trip.id, trip.total_amount, shares),
    )
    db.add(split)
    try:
        await db.flush()
    except IntegrityError:
        raise AlreadyExists(f"Revenue split already exists for trip {trip_id}")

    logger.info("Revenue split %s written for trip %s (total=%s)", split.id, trip.id, split.total_amount)

    try:
        async with db.begin_nested():
            await emit_many(
                db,
                [
                    (split.owner_id, f"Revenue split completed: KES {split.owner_amount:.2f}"),
                    (split.driver_id, f"Revenue split completed: KES {split.driver_amount:.2f}"),
                    (split.conductor_id, f"Revenue split completed: KES {split.conductor_amount:.2f}"),
                ],
                AlertType.revenue_split,
            )
    except Exception as exc:
        logger.error("Failed to queue revenue alerts for trip %s: %s", trip.id, exc, exc_info=True)

    return split


def _visibility_filter(query, principal: Principal):
    if principal.role is Role.owner:
        return query.where(RevenueSplit.owner_id == principal.user_id)
    if principal.role is Role.driver:
        return query.where(RevenueSplit.driver_id == principal.user_id)
    if principal.role is Role.conductor:
        return query.where(RevenueSplit.conductor_id == principal.user_id)
    return query


async def list_splits_for_user(db: AsyncSession, principal: Principal) -> list[RevenueSplit]:
    query = _visibility_filter(select(RevenueSplit), principal)
    result = await db.execute(query.order_by(RevenueSplit.created_at.desc()))
    return list(result.scalars().all())


async def get_split(db: AsyncSession, principal: Principal, split_id: str) -> RevenueSplit:
    split = await db.get(RevenueSplit, split_id)
    if split is None:
        raise NotFound("Revenue split not found")
    payees = {split.owner_id, split.driver_id, split.conductor_id}
    if not principal.role.is_staff and principal.user_id not in payees:
        raise Forbidden("Forbidden")
    return split
