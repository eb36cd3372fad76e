"""
Users and vehicles: the records trips point at.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.errors import AlreadyExists, Forbidden
from matatupay.middleware.auth import Principal
from matatupay.models.enums import Role
from matatupay.models.matatu import DEFAULT_CAPACITY, Matatu
from matatupay.models.user import User
from matatupay.services.phone import normalize_phone

logger = logging.getLogger(__name__)

# Roles each creator may hand out.
_CREATABLE_ROLES: dict[Role, set[Role]] = {
    Role.admin: set(Role),
    Role.sacco: set(Role),
    Role.owner: {Role.driver, Role.conductor},
}


async def create_user(
    db: AsyncSession,
    principal: Principal,
    name: str,
    phone_number: str,
    role: Role,
) -> User:
    if role not in _CREATABLE_ROLES.get(principal.role, set()):
        raise Forbidden(f"A {principal.role.value} cannot create {role.value} accounts")

    phone = normalize_phone(phone_number)
    existing = await db.execute(select(User.id).where(User.phone_number == phone))
    if existing.scalar_one_or_none():
        raise AlreadyExists("A user with this phone number already exists")

    user = User(name=name.strip(), phone_number=phone, role=role, created_by=principal.user_id)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyExists("A user with this phone number already exists")
    await db.refresh(user)
    logger.info("User %s (%s) created by %s", user.id, role.value, principal.user_id)
    return user


async def list_users(db: AsyncSession, role: Optional[Role] = None) -> list[User]:
    query = select(User)
    if role is not None:
        query = query.where(User.role == role)
    result = await db.execute(query.order_by(User.name))
    return list(result.scalars().all())


async def register_matatu(
    db: AsyncSession,
    principal: Principal,
    plate_number: str,
    capacity: int = DEFAULT_CAPACITY,
    model: Optional[str] = None,
) -> Matatu:
    if principal.role is not Role.owner:
        raise Forbidden("Only owners can register matatus")

    plate = " ".join(plate_number.upper().split())
    existing = await db.execute(select(Matatu.id).where(Matatu.plate_number == plate))
    if existing.scalar_one_or_none():
        raise AlreadyExists(f"Matatu {plate} is already registered")

    matatu = Matatu(plate_number=plate, capacity=capacity, model=model, owner_id=principal.user_id)
    db.add(matatu)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyExists(f"Matatu {plate} is already registered")
    await db.refresh(matatu)
    return matatu


async def list_matatus(db: AsyncSession, principal: Principal) -> list[Matatu]:
    query = select(Matatu)
    if principal.role is Role.owner:
        query = query.where(Matatu.owner_id == principal.user_id)
    result = await db.execute(query.order_by(Matatu.plate_number))
    return list(result.scalars().all())
