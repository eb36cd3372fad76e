"""
Payments router — POST /v1/payments/initiate, POST /v1/payments/callback,
                  GET /v1/payments/{reference}, callback queue admin endpoints
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matatupay.database import get_db, get_session_factory
from matatupay.middleware.auth import Principal, get_current_principal, require_roles
from matatupay.middleware.idempotency import check_idempotency, store_idempotency_result
from matatupay.models.enums import CallbackStatus, Role
from matatupay.schemas.schemas import (
    CallbackAck, CallbackJobResponse, PaymentInitiateRequest, PaymentInitiateResponse, PaymentResponse,
)
from matatupay.services.reconciliation import (
    enqueue_callback,
    get_callback_job,
    get_payment_status,
    initiate_payment,
    list_callback_jobs,
    process_callback_job,
    process_callback_payload,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/payments", tags=["Payments"])


@router.post("/initiate", response_model=PaymentInitiateResponse)
async def initiate_payment_endpoint(
    payload: PaymentInitiateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    """
    Send a mobile-money prompt for a trip's fare.
    - Amount is always the trip's snapshotted total (never client supplied).
    - A second request for the same trip + phone within the debounce window
      answers 409 with the pending payment's id instead of charging again.
    - Optional Idempotency-Key replays the first response.
    """
    if idempotency_key:
        cached = await check_idempotency(principal.user_id, idempotency_key)
        if cached:
            return cached

    result = await initiate_payment(db, principal, payload.trip_id, payload.phone_number)
    response = PaymentInitiateResponse(payment_id=result.payment_id, session_id=result.session_id)

    if idempotency_key:
        await store_idempotency_result(principal.user_id, idempotency_key, 200, response.model_dump())

    return response


@router.post("/callback", response_model=CallbackAck)
async def provider_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Gateway webhook. Always answers 200 {"ack": true}; the payload is queued
    and reconciled after the response is sent.
    """
    try:
        payload = await request.json()
    except ValueError:
        body = await request.body()
        payload = body.decode("utf-8", errors="replace")

    logger.info("Gateway callback received: %s", str(payload)[:500])

    try:
        job = await enqueue_callback(db, payload)
    except Exception:
        logger.exception("Could not queue gateway callback; reconciling without a job row")
        await db.rollback()
        background_tasks.add_task(process_callback_payload, session_factory, payload)
    else:
        background_tasks.add_task(process_callback_job, session_factory, job.id)

    return CallbackAck()


@router.get("/callbacks", response_model=list[CallbackJobResponse])
async def list_callbacks_endpoint(
    status: Optional[CallbackStatus] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(Role.sacco, Role.admin)),
):
    return [CallbackJobResponse.model_validate(j) for j in await list_callback_jobs(db, status)]


@router.post("/callbacks/{job_id}/retry", response_model=CallbackJobResponse)
async def retry_callback_endpoint(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    principal: Principal = Depends(require_roles(Role.sacco, Role.admin)),
):
    """Re-run reconciliation for a stored callback (operator action)."""
    job = await get_callback_job(db, job_id)
    # End the read so the refresh below sees the worker's commit.
    await db.commit()
    logger.info("Callback job %s retried by %s", job_id, principal.user_id)
    await process_callback_job(session_factory, job_id)
    await db.refresh(job)
    return CallbackJobResponse.model_validate(job)


@router.get("/{reference}", response_model=PaymentResponse)
async def payment_status_endpoint(
    reference: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Look up by payment id, gateway session id or provider reference."""
    return PaymentResponse.model_validate(await get_payment_status(db, reference))
