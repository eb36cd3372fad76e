"""
In-app alerts for payees and payers.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matatupay.errors import NotFound
from matatupay.middleware.auth import Principal
from matatupay.models.alert import Alert
from matatupay.models.enums import AlertType

logger = logging.getLogger(__name__)


async def emit(db: AsyncSession, user_id: str, message: str, type: AlertType) -> Alert:
    """Queue an alert on the session. The caller commits."""
    alert = Alert(user_id=user_id, message=message, type=type)
    db.add(alert)
    return alert


async def emit_many(db: AsyncSession, alerts: list[tuple[str, str]], type: AlertType) -> None:
    for user_id, message in alerts:
        await emit(db, user_id, message, type)
    await db.flush()
    logger.info("Queued %d %s alerts", len(alerts), type.value)


async def list_alerts(db: AsyncSession, principal: Principal, unread_only: bool = False) -> list[Alert]:
    query = select(Alert).where(Alert.user_id == principal.user_id)
    if unread_only:
        query = query.where(Alert.is_read.is_(False))
    result = await db.execute(query.order_by(Alert.created_at.desc()))
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, principal: Principal, alert_id: str) -> Alert:
    alert = await db.get(Alert, alert_id)
    if alert is None or alert.user_id != principal.user_id:
        raise NotFound("Alert not found")
    alert.is_read = True
    await db.commit()
    return alert
