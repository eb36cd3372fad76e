"""
Revenue router — GET /v1/revenue, GET /v1/revenue/{id}
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.database import get_db
from matatupay.middleware.auth import Principal, get_current_principal
from matatupay.schemas.schemas import RevenueSplitResponse
from matatupay.services.revenue import get_split, list_splits_for_user, verify_split

router = APIRouter(prefix="/v1/revenue", tags=["Revenue"])


@router.get("", response_model=list[RevenueSplitResponse])
async def list_splits_endpoint(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    splits = await list_splits_for_user(db, principal)
    return [RevenueSplitResponse.model_validate(s) for s in splits]


@router.get("/{split_id}", response_model=RevenueSplitResponse)
async def get_split_endpoint(
    split_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Single split, with ``verified`` telling whether the row still matches its hash."""
    split = await get_split(db, principal, split_id)
    response = RevenueSplitResponse.model_validate(split)
    response.verified = verify_split(split)
    return response
