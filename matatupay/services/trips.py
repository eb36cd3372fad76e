"""
Trip engine: creation, driver confirmation and visibility.

  pending --(assigned driver confirms)--> confirmed --(split written)--> completed
  pending/confirmed --(payment received)--> completed
  completed, unconfirmed --(assigned driver confirms)--> split written, stays completed
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.errors import AlreadyExists, Forbidden, InvalidFareType, NotFound
from matatupay.middleware.auth import Principal
from matatupay.models.enums import FareType, Role, TripStatus
from matatupay.models.matatu import Matatu
from matatupay.models.route import Route
from matatupay.models.trip import Trip
from matatupay.models.user import User
from matatupay.services.fares import lookup_fare
from matatupay.services.revenue import create_split, to_money

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.pending: {TripStatus.confirmed, TripStatus.completed},
    TripStatus.confirmed: {TripStatus.completed},
    TripStatus.completed: set(),
}


def can_transition(current: TripStatus, next_state: TripStatus) -> bool:
    return next_state in VALID_TRANSITIONS.get(current, set())


async def create_trip(
    db: AsyncSession,
    principal: Principal,
    route_id: str,
    matatu_id: str,
    driver_id: str,
    fare_type: FareType,
) -> Trip:
    if principal.role is not Role.conductor:
        raise Forbidden("Only conductors can create trips")

    matatu = await db.get(Matatu, matatu_id)
    if matatu is None:
        raise NotFound("Matatu not found")

    route = await db.get(Route, route_id)
    if route is None:
        raise NotFound("Route not found")

    try:
        fare = await lookup_fare(db, route_id, fare_type)
    except NotFound:
        raise InvalidFareType(f"Route {route.name} has no {fare_type.value} fare")

    driver = await db.get(User, driver_id)
    if driver is None or driver.role is not Role.driver:
        raise NotFound("Driver not found")

    # Passenger count always comes from the vehicle.
    passenger_count = matatu.capacity
    trip = Trip(
        route_id=route.id,
        matatu_id=matatu.id,
        conductor_id=principal.user_id,
        driver_id=driver.id,
        fare_type=fare_type,
        fare_amount=to_money(fare),
        passenger_count=passenger_count,
        total_amount=to_money(fare * passenger_count),
        status=TripStatus.pending,
        driver_confirmed=False,
    )
    db.add(trip)
    await db.commit()
    await db.refresh(trip)
    logger.info(
        "Trip %s created: route=%s matatu=%s fare=%s x %d = %s",
        trip.id, route.id, matatu.id, fare_type.value, passenger_count, trip.total_amount,
    )
    return trip


async def confirm_trip(db: AsyncSession, principal: Principal, trip_id: str) -> Trip:
    """
    Driver confirmation. Confirmation, revenue split and completion are one
    transaction: readers see either the pending trip or the completed one with
    its split.
    """
    result = await db.execute(select(Trip).where(Trip.id == trip_id).with_for_update())
    trip = result.scalar_one_or_none()
    if trip is None:
        raise NotFound("Trip not found")

    if principal.role is not Role.driver:
        raise Forbidden("Only drivers can confirm trips")
    if trip.driver_id != principal.user_id:
        raise Forbidden("You can only confirm trips assigned to you")

    # A trip paid before confirmation is already completed but has no split yet.
    if trip.driver_confirmed:
        raise AlreadyExists(f"Trip is already confirmed ({trip.status.value})")

    try:
        trip.driver_confirmed = True
        if can_transition(trip.status, TripStatus.confirmed):
            trip.status = TripStatus.confirmed
        await db.flush()

        await create_split(db, trip.id)

        trip.status = TripStatus.completed
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(trip)
    logger.info("Trip %s confirmed by driver %s and completed", trip.id, principal.user_id)
    return trip


async def mark_trip_completed(db: AsyncSession, trip_id: str) -> bool:
    """Move a trip to completed. Returns False if it already was. Does not commit."""
    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise NotFound("Trip not found")
    if trip.status is TripStatus.completed:
        return False
    trip.status = TripStatus.completed
    await db.flush()
    return True


def _visibility_filter(query, principal: Principal):
    if principal.role is Role.conductor:
        return query.where(Trip.conductor_id == principal.user_id)
    if principal.role is Role.driver:
        return query.where(Trip.driver_id == principal.user_id)
    if principal.role is Role.owner:
        return query.join(Matatu, Matatu.id == Trip.matatu_id).where(Matatu.owner_id == principal.user_id)
    return query


async def list_trips_for_user(db: AsyncSession, principal: Principal) -> list[Trip]:
    query = _visibility_filter(select(Trip), principal)
    result = await db.execute(query.order_by(Trip.created_at.desc()))
    return list(result.scalars().all())


async def get_trip(db: AsyncSession, principal: Principal, trip_id: str) -> Trip:
    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise NotFound("Trip not found")

    if principal.role is Role.conductor and trip.conductor_id != principal.user_id:
        raise Forbidden("Unauthorized")
    if principal.role is Role.driver and trip.driver_id != principal.user_id:
        raise Forbidden("Unauthorized")
    if principal.role is Role.owner:
        matatu = await db.get(Matatu, trip.matatu_id)
        if matatu is None or matatu.owner_id != principal.user_id:
            raise Forbidden("Unauthorized")
    return trip
