"""
Unit tests for provider callback extraction, status normalisation and the
trip reference format.
"""
import pytest

from matatupay.models.enums import PaymentStatus
from matatupay.services.reconciliation import (
    build_reference,
    extract_callback,
    normalize_status,
    parse_trip_reference,
)

TRIP_ID = "3f2b8a9e-1c4d-4e5f-9a0b-123456789abc"


class TestNormalizeStatus:
    @pytest.mark.parametrize("raw", ["Success", "SUCCESS", "PaymentSuccess", "success", "0"])
    def test_success_tokens(self, raw):
        assert normalize_status(raw) is PaymentStatus.received

    @pytest.mark.parametrize("raw", ["Failed", "failure", "InternalError", "Cancelled", "user_cancel"])
    def test_failure_tokens(self, raw):
        assert normalize_status(raw) is PaymentStatus.failed

    @pytest.mark.parametrize("raw", [None, "", "PendingConfirmation", "Queued", "1032x"])
    def test_everything_else_unresolved(self, raw):
        assert normalize_status(raw) is PaymentStatus.pending


class TestExtractCallback:
    def test_non_object_payloads(self):
        assert extract_callback(None) is None
        assert extract_callback("Success") is None
        assert extract_callback([{"transactionId": "x"}]) is None

    def test_payload_without_identifiers(self):
        assert extract_callback({"status": "Success", "amount": 100}) is None

    def test_africas_talking_shape(self):
        record = extract_callback(
            {
                "transactionId": "ATPid_9a8b",
                "status": "Success",
                "requestMetadata": {"agent": "x"},
                "providerRefId": "RKT12ABC",
                "metadata": {"reference": f"trip-{TRIP_ID}-1700000000000"},
                "receiptNumber": "QWE123RTY",
            }
        )
        # providerRefId is earlier in the priority list than transactionId
        assert record.provider_ref == "RKT12ABC"
        assert record.reference == f"trip-{TRIP_ID}-1700000000000"
        assert record.status is PaymentStatus.received
        assert record.receipt_code == "QWE123RTY"

    def test_field_priority(self):
        record = extract_callback(
            {
                "providerReference": "first",
                "transactionId": "second",
                "checkoutRequestId": "ws_CO_1",
                "requestId": "req-2",
                "reference": "top-level",
                "metadata": {"referenceId": "nested"},
            }
        )
        assert record.provider_ref == "first"
        assert record.session_id == "ws_CO_1"
        assert record.reference == "nested"

    def test_numeric_result_code(self):
        record = extract_callback({"checkoutRequestId": "ws_CO_1", "resultCode": 0})
        assert record.status is PaymentStatus.received
        assert record.provider_ref is None

    def test_status_field_order(self):
        record = extract_callback(
            {"requestId": "r1", "status": "Failed", "transactionStatus": "Success"}
        )
        assert record.status is PaymentStatus.failed

    def test_blank_values_skipped(self):
        record = extract_callback({"providerReference": "  ", "transactionId": "T1", "status": ""})
        assert record.provider_ref == "T1"
        assert record.status is PaymentStatus.pending

    def test_mpesa_receipt_fallback(self):
        record = extract_callback({"transactionId": "T1", "mpesaReceiptNumber": "NLJ7RT61SV"})
        assert record.receipt_code == "NLJ7RT61SV"


class TestTripReference:
    def test_build_format(self):
        assert build_reference("abc", now=1700000000.5) == "trip-abc-1700000000500"

    def test_round_trip_with_hyphenated_ids(self):
        assert parse_trip_reference(build_reference(TRIP_ID)) == TRIP_ID

    @pytest.mark.parametrize("text", [None, "", "order-123-456", "trip-abc", "trip--123", "trip-abc-notanumber"])
    def test_unparseable(self, text):
        assert parse_trip_reference(text) is None
