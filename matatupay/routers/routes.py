"""
Routes router — fare catalog. POST/GET /v1/routes, GET /v1/routes/{id}/fares/{fare_type}
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.database import get_db
from matatupay.middleware.auth import Principal, get_current_principal
from matatupay.models.enums import FareType
from matatupay.schemas.schemas import FareLookupResponse, RouteCreateRequest, RouteResponse
from matatupay.services.fares import create_route, get_route, list_routes, lookup_fare

router = APIRouter(prefix="/v1/routes", tags=["Routes"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=RouteResponse)
async def create_route_endpoint(
    payload: RouteCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    route = await create_route(
        db,
        principal,
        name=payload.name,
        origin=payload.origin,
        destination=payload.destination,
        distance_km=payload.distance_km,
        fare_rules=[(rule.fare_type, rule.amount) for rule in payload.fare_rules],
    )
    return RouteResponse.model_validate(route)


@router.get("", response_model=list[RouteResponse])
async def list_routes_endpoint(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return [RouteResponse.model_validate(r) for r in await list_routes(db)]


@router.get("/{route_id}/fares/{fare_type}", response_model=FareLookupResponse)
async def lookup_fare_endpoint(
    route_id: str,
    fare_type: FareType,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    await get_route(db, route_id)
    amount = await lookup_fare(db, route_id, fare_type)
    return FareLookupResponse(route_id=route_id, fare_type=fare_type, amount=amount)
