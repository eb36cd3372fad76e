"""
Mobile-money gateway adapter (Africa's Talking mobile checkout / M-Pesa STK push).

One attempt per call, bounded by ``gateway_timeout_seconds``. Anything other
than a 2xx answer is reported back as ``success=False``; retrying is the
caller's decision.
"""
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

import httpx

from matatupay.config import get_settings
from matatupay.services.phone import to_international

logger = logging.getLogger(__name__)
settings = get_settings()

CHECKOUT_PATH = "/mobile/checkout/request"


@dataclass
class ChargeResult:
    success: bool
    provider_transaction_id: Optional[str] = None
    session_id: Optional[str] = None
    error: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


def _base_url(username: str) -> str:
    if username.lower() == "sandbox":
        return "https://payments.sandbox.africastalking.com"
    return "https://payments.africastalking.com"


def _first(data: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return str(value)
    return None


async def initiate_charge(
    phone_number: str,
    amount: Decimal,
    reference: str,
    client: Optional[httpx.AsyncClient] = None,
) -> ChargeResult:
    """Ask the gateway to push a payment prompt to ``phone_number``."""
    if not settings.at_username or not settings.at_api_key:
        return ChargeResult(success=False, error="Mobile money gateway is not configured")

    whole_amount = int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if whole_amount < 1:
        return ChargeResult(success=False, error="Minimum amount is KES 1")

    form = {
        "username": settings.at_username,
        "productName": settings.at_product_name,
        "phoneNumber": "+" + to_international(phone_number),
        "currencyCode": settings.at_currency_code,
        "amount": str(whole_amount),
        "metadata": json.dumps({"reference": reference}),
    }
    url = _base_url(settings.at_username) + CHECKOUT_PATH
    headers = {"apiKey": settings.at_api_key, "Accept": "application/json"}

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.gateway_timeout_seconds)
    try:
        resp = await client.post(url, data=form, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("Gateway request failed: reference=%s error=%r", reference, exc)
        return ChargeResult(success=False, error=f"Gateway unreachable: {exc}")
    finally:
        if owns_client:
            await client.aclose()

    try:
        body = resp.json()
    except ValueError:
        body = {"text": resp.text}
    if not isinstance(body, dict):
        body = {"body": body}

    if resp.status_code >= 400:
        error = _first(body, "errorMessage", "error", "description") or f"Gateway error {resp.status_code}"
        logger.error("Gateway rejected charge: reference=%s status=%s error=%s", reference, resp.status_code, error)
        return ChargeResult(success=False, error=error, raw=body)

    status_text = (_first(body, "status") or "").lower()
    if "fail" in status_text or "invalid" in status_text:
        error = _first(body, "description", "errorMessage") or f"Gateway status {status_text}"
        logger.warning("Gateway declined charge: reference=%s status=%s", reference, status_text)
        return ChargeResult(success=False, error=error, raw=body)

    result = ChargeResult(
        success=True,
        provider_transaction_id=_first(body, "transactionId", "providerReferenceId", "transactionReference"),
        session_id=_first(body, "checkoutRequestId", "requestId"),
        raw=body,
    )
    logger.info(
        "Gateway accepted charge: reference=%s amount=%s txn=%s",
        reference, whole_amount, result.provider_transaction_id,
    )
    return result
