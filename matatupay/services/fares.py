"""
Fare catalog: routes and their per-fare-type prices.

Fare type is always picked by the conductor. Nothing here looks at the clock
or the weather.
"""
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.errors import AlreadyExists, Forbidden, InvalidAmount, NotFound
from matatupay.middleware.auth import Principal
from matatupay.models.enums import FareType
from matatupay.models.route import FareRule, Route


async def lookup_fare(db: AsyncSession, route_id: str, fare_type: FareType) -> Decimal:
    result = await db.execute(
        select(FareRule.amount).where(FareRule.route_id == route_id, FareRule.fare_type == fare_type)
    )
    amount = result.scalar_one_or_none()
    if amount is None:
        raise NotFound(f"No {fare_type.value} fare for route {route_id}")
    return Decimal(amount)


async def create_route(
    db: AsyncSession,
    principal: Principal,
    name: str,
    origin: str,
    destination: str,
    distance_km: Optional[Decimal] = None,
    fare_rules: Iterable[tuple[FareType, Decimal]] = (),
) -> Route:
    if not principal.role.is_staff:
        raise Forbidden("Only SACCO admins can create routes")

    route = Route(name=name, origin=origin, destination=destination, distance_km=distance_km)
    seen: set[FareType] = set()
    for fare_type, amount in fare_rules:
        if fare_type in seen:
            raise AlreadyExists(f"Duplicate {fare_type.value} fare rule")
        if Decimal(amount) <= 0:
            raise InvalidAmount(f"{fare_type.value} fare must be positive")
        seen.add(fare_type)
        route.fare_rules.append(FareRule(fare_type=fare_type, amount=Decimal(amount)))

    db.add(route)
    await db.commit()
    await db.refresh(route, attribute_names=["fare_rules"])
    return route


async def list_routes(db: AsyncSession) -> list[Route]:
    result = await db.execute(select(Route).order_by(Route.name))
    return list(result.scalars().all())


async def get_route(db: AsyncSession, route_id: str) -> Route:
    route = await db.get(Route, route_id)
    if route is None:
        raise NotFound("Route not found")
    return route
