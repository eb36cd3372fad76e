"""
Trips router — POST /v1/trips, POST /v1/trips/{id}/confirm, GET /v1/trips, GET /v1/trips/{id}
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.database import get_db
from matatupay.middleware.auth import Principal, get_current_principal
from matatupay.schemas.schemas import TripCreateRequest, TripResponse
from matatupay.services.trips import confirm_trip, create_trip, get_trip, list_trips_for_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/trips", tags=["Trips"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TripResponse)
async def create_trip_endpoint(
    payload: TripCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Conductor records a trip. Passenger count comes from the matatu's
    capacity; the fare is snapshotted from the route's fare rule.
    """
    trip = await create_trip(
        db,
        principal,
        route_id=payload.route_id,
        matatu_id=payload.matatu_id,
        driver_id=payload.driver_id,
        fare_type=payload.fare_type,
    )
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/confirm", response_model=TripResponse)
async def confirm_trip_endpoint(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Assigned driver confirms the trip:
      1. pending -> confirmed
      2. Revenue split written (once per trip)
      3. confirmed -> completed
    All three commit together or not at all. A trip already completed by its
    payment gets its split and stays completed.
    """
    trip = await confirm_trip(db, principal, trip_id)
    return TripResponse.model_validate(trip)


@router.get("", response_model=list[TripResponse])
async def list_trips_endpoint(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    trips = await list_trips_for_user(db, principal)
    return [TripResponse.model_validate(t) for t in trips]


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip_endpoint(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return TripResponse.model_validate(await get_trip(db, principal, trip_id))
