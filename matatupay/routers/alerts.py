"""
Alerts router — GET /v1/alerts, POST /v1/alerts/{id}/read
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.database import get_db
from matatupay.middleware.auth import Principal, get_current_principal
from matatupay.schemas.schemas import AlertResponse
from matatupay.services.notifications import list_alerts, mark_read

router = APIRouter(prefix="/v1/alerts", tags=["Alerts"])


@router.get("", response_model=list[AlertResponse])
async def list_alerts_endpoint(
    unread_only: bool = False,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return [AlertResponse.model_validate(a) for a in await list_alerts(db, principal, unread_only)]


@router.post("/{alert_id}/read", response_model=AlertResponse)
async def mark_read_endpoint(
    alert_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return AlertResponse.model_validate(await mark_read(db, principal, alert_id))
