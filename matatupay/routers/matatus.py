"""
Matatus router — POST /v1/matatus, GET /v1/matatus
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.database import get_db
from matatupay.middleware.auth import Principal, get_current_principal
from matatupay.schemas.schemas import MatatuCreateRequest, MatatuResponse
from matatupay.services.directory import list_matatus, register_matatu

router = APIRouter(prefix="/v1/matatus", tags=["Matatus"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=MatatuResponse)
async def register_matatu_endpoint(
    payload: MatatuCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    matatu = await register_matatu(db, principal, payload.plate_number, payload.capacity, payload.model)
    return MatatuResponse.model_validate(matatu)


@router.get("", response_model=list[MatatuResponse])
async def list_matatus_endpoint(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return [MatatuResponse.model_validate(m) for m in await list_matatus(db, principal)]
