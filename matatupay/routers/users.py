"""
Users router — POST /v1/users, GET /v1/users
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.database import get_db
from matatupay.middleware.auth import Principal, get_current_principal, require_roles
from matatupay.models.enums import Role
from matatupay.schemas.schemas import UserCreateRequest, UserResponse
from matatupay.services.directory import create_user, list_users

router = APIRouter(prefix="/v1/users", tags=["Users"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
async def create_user_endpoint(
    payload: UserCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(Role.sacco, Role.admin, Role.owner)),
):
    """Staff onboarding. Owners may add drivers and conductors."""
    user = await create_user(db, principal, payload.name, payload.phone_number, payload.role)
    return UserResponse.model_validate(user)


@router.get("", response_model=list[UserResponse])
async def list_users_endpoint(
    role: Optional[Role] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    users = await list_users(db, role)
    return [UserResponse.model_validate(u) for u in users]
