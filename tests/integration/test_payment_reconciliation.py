"""
Payment initiation and callback reconciliation, with the gateway replaced by a
recording fake.
"""
import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select

from matatupay.errors import AlreadyPaid, DuplicateRequest, InvalidPhoneNumber, NotFound, UpstreamFailure
from matatupay.models import Alert, Payment, ProviderCallback, Trip
from matatupay.models.enums import AlertType, CallbackStatus, FareType, PaymentStatus, TripStatus
from matatupay.services import reconciliation
from matatupay.services.mobile_money import ChargeResult
from matatupay.services.reconciliation import (
    ReconcileOutcome,
    enqueue_callback,
    get_payment_status,
    initiate_payment,
    process_callback_job,
    reconcile,
)
from matatupay.services.trips import create_trip

PAYER = "0712345678"


class FakeGateway:
    def __init__(self, result: ChargeResult):
        self.result = result
        self.calls = []

    async def __call__(self, phone_number, amount, reference, client=None):
        self.calls.append((phone_number, amount, reference))
        return self.result


@pytest.fixture
def gateway(monkeypatch):
    fake = FakeGateway(ChargeResult(success=True, provider_transaction_id="ATPid_1", session_id="ws_CO_1"))
    monkeypatch.setattr(reconciliation, "initiate_charge", fake)
    return fake


@pytest_asyncio.fixture
async def trip(db, world):
    return await create_trip(
        db, world.as_conductor, world.route.id, world.matatu.id, world.driver.id, FareType.rush_hour
    )


async def _payment(session_factory, payment_id) -> Payment:
    async with session_factory() as fresh:
        return await fresh.get(Payment, payment_id)


class TestInitiatePayment:
    async def test_creates_pending_payment(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, "+254 712 345 678")

        assert initiated.session_id == "ws_CO_1"
        assert initiated.reference.startswith(f"trip-{trip.id}-")
        assert len(gateway.calls) == 1
        phone, amount, reference = gateway.calls[0]
        assert phone == PAYER
        assert amount == Decimal("2100.00")
        assert reference == initiated.reference

        payment = await _payment(session_factory, initiated.payment_id)
        assert payment.status is PaymentStatus.pending
        assert payment.phone_number == PAYER
        assert payment.amount == Decimal("2100.00")
        assert payment.provider_ref == "ATPid_1"
        assert payment.checkout_request_id == "ws_CO_1"

    async def test_second_request_is_debounced(self, db, world, trip, gateway):
        first = await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        with pytest.raises(DuplicateRequest) as excinfo:
            await initiate_payment(db, world.as_conductor, trip.id, "0712 345 678")

        assert excinfo.value.payment_id == first.payment_id
        assert len(gateway.calls) == 1

    async def test_request_in_flight_is_debounced(self, db, world, trip, gateway, fake_redis):
        fake_redis.store[f"payment:debounce:{trip.id}:{PAYER}"] = "someone-else"

        with pytest.raises(DuplicateRequest) as excinfo:
            await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        assert excinfo.value.payment_id is None
        assert gateway.calls == []

    async def test_lock_released_after_request(self, db, world, trip, gateway, fake_redis):
        await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        assert f"payment:debounce:{trip.id}:{PAYER}" not in fake_redis.store

    async def test_invalid_phone(self, db, world, trip, gateway):
        with pytest.raises(InvalidPhoneNumber):
            await initiate_payment(db, world.as_conductor, trip.id, "12345")
        assert gateway.calls == []

    async def test_unknown_trip(self, db, world, gateway):
        with pytest.raises(NotFound):
            await initiate_payment(db, world.as_conductor, "no-such-trip", PAYER)

    async def test_gateway_failure_marks_payment_failed(self, db, session_factory, world, trip, monkeypatch):
        fake = FakeGateway(ChargeResult(success=False, error="Gateway unreachable: timed out"))
        monkeypatch.setattr(reconciliation, "initiate_charge", fake)

        with pytest.raises(UpstreamFailure):
            await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        async with session_factory() as fresh:
            payments = (await fresh.execute(select(Payment))).scalars().all()
        assert len(payments) == 1
        assert payments[0].status is PaymentStatus.failed
        assert payments[0].failure_reason == "Gateway unreachable: timed out"

    async def test_failed_attempt_does_not_block_retry(self, db, world, trip, monkeypatch):
        monkeypatch.setattr(
            reconciliation, "initiate_charge", FakeGateway(ChargeResult(success=False, error="declined"))
        )
        with pytest.raises(UpstreamFailure):
            await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        retry = FakeGateway(ChargeResult(success=True, provider_transaction_id="ATPid_2"))
        monkeypatch.setattr(reconciliation, "initiate_charge", retry)
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        assert initiated.payment_id
        assert len(retry.calls) == 1

    async def test_paid_trip_rejects_new_charge(self, db, world, trip, gateway):
        await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        await reconcile(db, {"providerReference": "ATPid_1", "status": "Success"})

        with pytest.raises(AlreadyPaid):
            await initiate_payment(db, world.as_conductor, trip.id, "0722000000")


class TestReconcile:
    async def test_success_callback_settles_payment_and_trip(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        outcome, payment_id = await reconcile(
            db, {"providerReference": "ATPid_1", "status": "Success", "receiptNumber": "QWE123RTY"}
        )

        assert outcome is ReconcileOutcome.UPDATED
        assert payment_id == initiated.payment_id
        payment = await _payment(session_factory, payment_id)
        assert payment.status is PaymentStatus.received
        assert payment.receipt_code == "QWE123RTY"
        assert payment.confirmed_at is not None
        assert payment.provider_raw["receiptNumber"] == "QWE123RTY"

        async with session_factory() as fresh:
            assert (await fresh.get(Trip, trip.id)).status is TripStatus.completed
            alerts = (
                await fresh.execute(select(Alert).where(Alert.type == AlertType.payment))
            ).scalars().all()
        assert [a.user_id for a in alerts] == [world.as_conductor.user_id]
        assert alerts[0].message == f"Payment of KES 2100.00 received from {PAYER}"

    async def test_unknown_reference_changes_nothing(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        outcome, payment_id = await reconcile(db, {"providerReference": "ATPid_unknown", "status": "Success"})

        assert outcome is ReconcileOutcome.UNMATCHED
        assert payment_id is None
        assert (await _payment(session_factory, initiated.payment_id)).status is PaymentStatus.pending

    async def test_malformed_payload(self, db):
        assert await reconcile(db, "not json") == (ReconcileOutcome.MALFORMED, None)
        assert await reconcile(db, {"status": "Success"}) == (ReconcileOutcome.MALFORMED, None)

    async def test_duplicate_callback_is_idempotent(self, db, session_factory, world, trip, gateway):
        await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        payload = {"providerReference": "ATPid_1", "status": "Success"}

        first, _ = await reconcile(db, payload)
        second, _ = await reconcile(db, payload)

        assert first is ReconcileOutcome.UPDATED
        assert second is ReconcileOutcome.DUPLICATE
        async with session_factory() as fresh:
            alerts = (await fresh.execute(select(Alert).where(Alert.type == AlertType.payment))).scalars().all()
        assert len(alerts) == 1

    async def test_first_terminal_status_wins(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        await reconcile(db, {"providerReference": "ATPid_1", "status": "Success"})

        outcome, _ = await reconcile(db, {"providerReference": "ATPid_1", "status": "Failed"})

        assert outcome is ReconcileOutcome.ANOMALY
        assert (await _payment(session_factory, initiated.payment_id)).status is PaymentStatus.received

    async def test_pending_callback_backfills_only(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        outcome, _ = await reconcile(
            db, {"checkoutRequestId": "ws_CO_1", "status": "PendingConfirmation", "receiptNumber": "R1"}
        )

        assert outcome is ReconcileOutcome.UNRESOLVED
        payment = await _payment(session_factory, initiated.payment_id)
        assert payment.status is PaymentStatus.pending
        assert payment.confirmed_at is None
        assert payment.receipt_code == "R1"

    async def test_match_by_session_id(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        outcome, payment_id = await reconcile(db, {"checkoutRequestId": "ws_CO_1", "resultCode": "0"})

        assert outcome is ReconcileOutcome.UPDATED
        assert payment_id == initiated.payment_id

    async def test_match_by_trip_reference(self, db, session_factory, world, trip, monkeypatch):
        monkeypatch.setattr(reconciliation, "initiate_charge", FakeGateway(ChargeResult(success=True)))
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        outcome, payment_id = await reconcile(
            db,
            {
                "transactionId": "ATPid_late",
                "metadata": {"reference": f"trip-{trip.id}-1700000000000"},
                "status": "Failed",
            },
        )

        assert outcome is ReconcileOutcome.UPDATED
        assert payment_id == initiated.payment_id
        payment = await _payment(session_factory, payment_id)
        assert payment.status is PaymentStatus.failed
        # provider_ref was already set to the reference at initiation
        assert payment.provider_ref == initiated.reference

    async def test_failed_callback_leaves_trip_open(self, db, session_factory, world, trip, gateway):
        await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        await reconcile(db, {"providerReference": "ATPid_1", "status": "Failed"})

        async with session_factory() as fresh:
            assert (await fresh.get(Trip, trip.id)).status is TripStatus.pending


class TestCallbackQueue:
    async def test_job_processed(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        job = await enqueue_callback(db, {"providerReference": "ATPid_1", "status": "Success"})
        assert job.status is CallbackStatus.queued

        await process_callback_job(session_factory, job.id)

        async with session_factory() as fresh:
            done = await fresh.get(ProviderCallback, job.id)
        assert done.status is CallbackStatus.processed
        assert done.outcome == "updated"
        assert done.payment_id == initiated.payment_id
        assert done.attempts == 1
        assert done.processed_at is not None
        assert (await _payment(session_factory, initiated.payment_id)).status is PaymentStatus.received

    async def test_garbage_is_processed_as_malformed(self, db, session_factory):
        job = await enqueue_callback(db, "<xml>nope</xml>")

        await process_callback_job(session_factory, job.id)

        async with session_factory() as fresh:
            done = await fresh.get(ProviderCallback, job.id)
        assert done.status is CallbackStatus.processed
        assert done.outcome == "malformed"

    async def test_reconcile_error_marks_job_failed(self, db, session_factory, monkeypatch):
        async def boom(db, payload):
            raise RuntimeError("database went away")

        monkeypatch.setattr(reconciliation, "reconcile", boom)
        job = await enqueue_callback(db, {"providerReference": "ATPid_1", "status": "Success"})

        await process_callback_job(session_factory, job.id)

        async with session_factory() as fresh:
            done = await fresh.get(ProviderCallback, job.id)
        assert done.status is CallbackStatus.failed
        assert "database went away" in done.error
        assert done.attempts == 1

    async def test_concurrent_conflicting_callbacks_settle_once(self, db, session_factory, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)
        success = await enqueue_callback(db, {"providerReference": "ATPid_1", "status": "Success"})
        failure = await enqueue_callback(db, {"providerReference": "ATPid_1", "status": "Failed"})

        await asyncio.gather(
            process_callback_job(session_factory, success.id),
            process_callback_job(session_factory, failure.id),
        )

        async with session_factory() as fresh:
            jobs = {job_id: await fresh.get(ProviderCallback, job_id) for job_id in (success.id, failure.id)}
        updated = [job_id for job_id, job in jobs.items() if job.outcome == "updated"]
        assert len(updated) == 1

        expected = PaymentStatus.received if updated[0] == success.id else PaymentStatus.failed
        assert (await _payment(session_factory, initiated.payment_id)).status is expected

        [loser] = [job for job_id, job in jobs.items() if job_id != updated[0]]
        assert loser.outcome in (None, "anomaly")

    async def test_missing_job_does_not_raise(self, session_factory):
        await process_callback_job(session_factory, "no-such-job")


class TestPaymentStatus:
    async def test_lookup_by_any_identifier(self, db, world, trip, gateway):
        initiated = await initiate_payment(db, world.as_conductor, trip.id, PAYER)

        for key in (initiated.payment_id, "ws_CO_1", "ATPid_1"):
            assert (await get_payment_status(db, key)).id == initiated.payment_id

    async def test_unknown_reference(self, db):
        with pytest.raises(NotFound):
            await get_payment_status(db, "nothing")
