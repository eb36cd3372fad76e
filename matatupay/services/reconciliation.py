"""
Payment reconciliation.

Initiation:  trip + phone -> Payment(pending) -> gateway charge request.
Callback:    provider payload -> ProviderCallback(queued) -> ack -> reconcile
             in a background task -> Payment(received|failed) -> Trip(completed).

A payment's first terminal status wins. Later callbacks that disagree are
logged as anomalies and ignored.
"""
import enum
import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matatupay.config import get_settings
from matatupay.database import utcnow
from matatupay.errors import AlreadyPaid, DuplicateRequest, InvalidAmount, NotFound, UpstreamFailure
from matatupay.middleware.auth import Principal
from matatupay.models.enums import AlertType, CallbackStatus, PaymentStatus
from matatupay.models.payment import Payment
from matatupay.models.provider_callback import ProviderCallback
from matatupay.models.trip import Trip
from matatupay.redis_client import acquire_lock, get_redis, release_lock
from matatupay.services.mobile_money import initiate_charge
from matatupay.services.notifications import emit
from matatupay.services.phone import normalize_phone
from matatupay.services.trips import mark_trip_completed

logger = logging.getLogger(__name__)
settings = get_settings()

_REFERENCE_RE = re.compile(r"^trip-(?P<trip_id>.+)-(?P<ts>\d+)$")

# Field names tried in order; gateway payloads are not schema-guaranteed.
PROVIDER_REF_FIELDS = (
    "providerReference", "providerRefId", "transactionId", "providerReferenceId", "transactionReference",
)
SESSION_FIELDS = ("checkoutRequestId", "requestId", "checkoutRequest")
REFERENCE_FIELDS = ("metadata.reference", "metadata.referenceId", "reference")
STATUS_FIELDS = ("status", "transactionStatus", "resultCode")
RECEIPT_FIELDS = ("receiptNumber", "mpesaReceiptNumber")

SUCCESS_CODES = {"0", "00"}


class ReconcileOutcome(str, enum.Enum):
    UPDATED = "updated"
    DUPLICATE = "duplicate"
    ANOMALY = "anomaly"
    UNMATCHED = "unmatched"
    UNRESOLVED = "unresolved"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class CallbackRecord:
    status: PaymentStatus
    provider_ref: Optional[str] = None
    session_id: Optional[str] = None
    reference: Optional[str] = None
    receipt_code: Optional[str] = None
    raw_status: Optional[str] = None


@dataclass(frozen=True)
class InitiatedPayment:
    payment_id: str
    session_id: Optional[str]
    reference: str


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

def build_reference(trip_id: str, now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    return f"trip-{trip_id}-{millis}"


def parse_trip_reference(text: Optional[str]) -> Optional[str]:
    """Trip id embedded in ``trip-<tripId>-<unixMillis>``, else None."""
    if not text:
        return None
    match = _REFERENCE_RE.match(str(text).strip())
    return match.group("trip_id") if match else None


# ---------------------------------------------------------------------------
# Callback parsing (pure)
# ---------------------------------------------------------------------------

def _lookup(payload: dict, dotted: str) -> Any:
    value: Any = payload
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _first_present(payload: dict, fields: tuple[str, ...]) -> Optional[str]:
    for name in fields:
        value = _lookup(payload, name)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def normalize_status(raw: Optional[str]) -> PaymentStatus:
    token = (raw or "").strip().lower()
    if not token:
        return PaymentStatus.pending
    if "success" in token or token in SUCCESS_CODES:
        return PaymentStatus.received
    if "fail" in token or "error" in token or "cancel" in token:
        return PaymentStatus.failed
    return PaymentStatus.pending


def extract_callback(payload: Any) -> Optional[CallbackRecord]:
    """
    Best-effort read of a gateway callback. Returns None when the payload is
    not an object or carries no identifier we could match on.
    """
    if not isinstance(payload, dict):
        return None

    provider_ref = _first_present(payload, PROVIDER_REF_FIELDS)
    session_id = _first_present(payload, SESSION_FIELDS)
    reference = _first_present(payload, REFERENCE_FIELDS)
    if not (provider_ref or session_id or reference):
        return None

    raw_status = _first_present(payload, STATUS_FIELDS)
    return CallbackRecord(
        status=normalize_status(raw_status),
        provider_ref=provider_ref,
        session_id=session_id,
        reference=reference,
        receipt_code=_first_present(payload, RECEIPT_FIELDS),
        raw_status=raw_status,
    )


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------

def _debounce_key(trip_id: str, phone: str) -> str:
    return f"payment:debounce:{trip_id}:{phone}"


async def _recent_pending(db: AsyncSession, trip_id: str, phone: str) -> Optional[Payment]:
    cutoff = utcnow() - timedelta(seconds=settings.payment_debounce_seconds)
    result = await db.execute(
        select(Payment)
        .where(
            Payment.trip_id == trip_id,
            Payment.phone_number == phone,
            Payment.status == PaymentStatus.pending,
            Payment.created_at >= cutoff,
        )
        .order_by(Payment.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def initiate_payment(
    db: AsyncSession,
    principal: Principal,
    trip_id: str,
    phone_number: str,
) -> InitiatedPayment:
    phone = normalize_phone(phone_number)

    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise NotFound("Trip not found")

    paid = await db.execute(
        select(Payment.id).where(Payment.trip_id == trip_id, Payment.status == PaymentStatus.received).limit(1)
    )
    if paid.scalar_one_or_none():
        raise AlreadyPaid("Trip has already been paid")

    if trip.total_amount is None or trip.total_amount <= 0:
        raise InvalidAmount("Invalid trip amount")

    redis = await get_redis()
    lock_key = _debounce_key(trip_id, phone)
    lock_token = f"{principal.user_id}:{uuid.uuid4()}"
    lock_ttl_ms = (settings.gateway_timeout_seconds + 5) * 1000
    if not await acquire_lock(redis, lock_key, lock_token, lock_ttl_ms):
        existing = await _recent_pending(db, trip_id, phone)
        raise DuplicateRequest(
            "A payment request for this trip is already in progress",
            payment_id=existing.id if existing else None,
        )

    try:
        existing = await _recent_pending(db, trip_id, phone)
        if existing is not None:
            raise DuplicateRequest(
                "A payment request is already pending for this trip. Please check your phone.",
                payment_id=existing.id,
            )

        reference = build_reference(trip_id)
        payment = Payment(
            trip_id=trip_id,
            amount=trip.total_amount,
            phone_number=phone,
            status=PaymentStatus.pending,
            reference=reference,
        )
        db.add(payment)
        await db.commit()

        result = await initiate_charge(phone, trip.total_amount, reference)

        if not result.success:
            payment.status = PaymentStatus.failed
            payment.failure_reason = (result.error or "Charge request failed")[:500]
            payment.provider_raw = result.raw or None
            await db.commit()
            logger.warning("Charge initiation failed: payment=%s trip=%s error=%s", payment.id, trip_id, result.error)
            raise UpstreamFailure(result.error or "Charge request failed")

        payment.provider_ref = result.provider_transaction_id or reference
        payment.checkout_request_id = result.session_id
        await db.commit()
    finally:
        await release_lock(redis, lock_key, lock_token)

    logger.info("Charge requested: payment=%s trip=%s session=%s", payment.id, trip_id, payment.checkout_request_id)
    return InitiatedPayment(payment_id=payment.id, session_id=payment.checkout_request_id, reference=reference)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def _locked(query):
    return query.with_for_update().execution_options(populate_existing=True)


async def find_payment(db: AsyncSession, record: CallbackRecord) -> Optional[Payment]:
    """
    Provider reference, then session id, then the trip id embedded in the
    reference. The matched row stays locked until the caller commits or rolls
    back, so concurrent callbacks for one payment are applied one at a time.
    """
    if record.provider_ref:
        result = await db.execute(
            _locked(
                select(Payment)
                .where(or_(Payment.provider_ref == record.provider_ref, Payment.checkout_request_id == record.provider_ref))
                .limit(1)
            )
        )
        payment = result.scalar_one_or_none()
        if payment:
            return payment

    if record.session_id:
        result = await db.execute(
            _locked(select(Payment).where(Payment.checkout_request_id == record.session_id).limit(1))
        )
        payment = result.scalar_one_or_none()
        if payment:
            return payment

    trip_id = parse_trip_reference(record.reference)
    if trip_id:
        cutoff = utcnow() - timedelta(hours=settings.callback_match_window_hours)
        result = await db.execute(
            _locked(
                select(Payment)
                .where(
                    Payment.trip_id == trip_id,
                    Payment.status == PaymentStatus.pending,
                    Payment.created_at >= cutoff,
                )
                .order_by(Payment.created_at.desc())
                .limit(1)
            )
        )
        return result.scalar_one_or_none()

    return None


def _backfill(payment: Payment, record: CallbackRecord) -> None:
    if record.provider_ref and not payment.provider_ref:
        payment.provider_ref = record.provider_ref
    if record.session_id and not payment.checkout_request_id:
        payment.checkout_request_id = record.session_id
    if record.receipt_code and not payment.receipt_code:
        payment.receipt_code = record.receipt_code


async def reconcile(db: AsyncSession, payload: Any) -> tuple[ReconcileOutcome, Optional[str]]:
    """
    Apply one provider callback. Returns the outcome and the matched payment id.
    Commits on success; raises only on storage errors.
    """
    record = extract_callback(payload)
    if record is None:
        logger.warning("Callback discarded: no usable fields (type=%s)", type(payload).__name__)
        return ReconcileOutcome.MALFORMED, None

    payment = await find_payment(db, record)
    if payment is None:
        logger.warning(
            "Callback discarded: no matching payment provider_ref=%s session=%s reference=%s",
            record.provider_ref, record.session_id, record.reference,
        )
        return ReconcileOutcome.UNMATCHED, None

    if payment.status.is_terminal:
        if record.status is payment.status:
            logger.info("Duplicate %s callback for payment %s ignored", record.status.value, payment.id)
            return ReconcileOutcome.DUPLICATE, payment.id
        if record.status.is_terminal:
            logger.warning(
                "Anomaly: payment %s is %s but callback says %s; keeping %s",
                payment.id, payment.status.value, record.status.value, payment.status.value,
            )
            return ReconcileOutcome.ANOMALY, payment.id
        logger.info("Non-terminal callback for settled payment %s ignored", payment.id)
        return ReconcileOutcome.DUPLICATE, payment.id

    payment.provider_raw = payload
    _backfill(payment, record)

    if record.status is PaymentStatus.pending:
        await db.commit()
        logger.info("Callback for payment %s left unresolved (status=%r)", payment.id, record.raw_status)
        return ReconcileOutcome.UNRESOLVED, payment.id

    if record.status is PaymentStatus.received:
        other = await db.execute(
            select(Payment.id).where(
                Payment.trip_id == payment.trip_id,
                Payment.status == PaymentStatus.received,
                Payment.id != payment.id,
            ).limit(1)
        )
        if other.scalar_one_or_none():
            logger.warning("Anomaly: trip %s received a second payment %s", payment.trip_id, payment.id)

    payment.status = record.status
    payment.confirmed_at = utcnow()

    if record.status is PaymentStatus.received:
        completed = await mark_trip_completed(db, payment.trip_id)
        trip = await db.get(Trip, payment.trip_id)
        await emit(
            db,
            trip.conductor_id,
            f"Payment of KES {payment.amount:.2f} received from {payment.phone_number}",
            AlertType.payment,
        )
        if completed:
            logger.info("Trip %s marked completed by payment %s", payment.trip_id, payment.id)

    await db.commit()
    logger.info("Payment %s updated to %s", payment.id, payment.status.value)
    return ReconcileOutcome.UPDATED, payment.id


# ---------------------------------------------------------------------------
# Callback queue
# ---------------------------------------------------------------------------

async def enqueue_callback(db: AsyncSession, payload: Any) -> ProviderCallback:
    job = ProviderCallback(payload=payload, status=CallbackStatus.queued)
    db.add(job)
    await db.commit()
    return job


async def process_callback_job(session_factory: async_sessionmaker, job_id: str) -> None:
    """
    Background task body. Never raises: failures are logged and recorded on
    the job row for an operator to retry.
    """
    try:
        async with session_factory() as db:
            job = await db.get(ProviderCallback, job_id)
            if job is None:
                logger.error("Callback job %s vanished before processing", job_id)
                return
            payload = job.payload

        async with session_factory() as db:
            try:
                outcome, payment_id = await reconcile(db, payload)
            except Exception as exc:
                await db.rollback()
                logger.exception("Reconciliation failed for callback job %s", job_id)
                await _finish_job(db, job_id, CallbackStatus.failed, error=repr(exc))
                return
            await _finish_job(db, job_id, CallbackStatus.processed, outcome=outcome, payment_id=payment_id)
    except Exception:
        logger.exception("Callback job %s could not be recorded", job_id)


async def process_callback_payload(session_factory: async_sessionmaker, payload: Any) -> None:
    """Reconcile a payload that never made it into the queue table. Never raises."""
    try:
        async with session_factory() as db:
            outcome, payment_id = await reconcile(db, payload)
            logger.info("Unqueued callback reconciled: outcome=%s payment=%s", outcome.value, payment_id)
    except Exception:
        logger.exception("Reconciliation failed for unqueued callback")


async def _finish_job(
    db: AsyncSession,
    job_id: str,
    status: CallbackStatus,
    outcome: Optional[ReconcileOutcome] = None,
    payment_id: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    job = await db.get(ProviderCallback, job_id)
    job.status = status
    job.outcome = outcome.value if outcome else None
    job.payment_id = payment_id
    job.error = error
    job.attempts += 1
    job.processed_at = utcnow()
    await db.commit()


async def list_callback_jobs(db: AsyncSession, status: Optional[CallbackStatus] = None) -> list[ProviderCallback]:
    query = select(ProviderCallback)
    if status is not None:
        query = query.where(ProviderCallback.status == status)
    result = await db.execute(query.order_by(ProviderCallback.received_at.desc()).limit(200))
    return list(result.scalars().all())


async def get_callback_job(db: AsyncSession, job_id: str) -> ProviderCallback:
    job = await db.get(ProviderCallback, job_id)
    if job is None:
        raise NotFound("Callback not found")
    return job


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

async def get_payment_status(db: AsyncSession, reference: str) -> Payment:
    """Find a payment by its id, gateway session id or provider reference."""
    result = await db.execute(
        select(Payment)
        .where(
            or_(
                Payment.id == reference,
                Payment.checkout_request_id == reference,
                Payment.provider_ref == reference,
            )
        )
        .order_by(Payment.created_at.desc())
        .limit(1)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound("Payment not found")
    return payment
