# app/x402/facilitator.py
"""
Facilitator RPC client.

The facilitator verifies payment credentials and settles them on-chain.
It is treated as an unreliable remote service: network errors, timeouts,
non-2xx statuses and malformed bodies are all folded into a failed
VerifyResponse / SettleResponse carrying a diagnostic reason. Nothing
raises past this module.

Wire format (both endpoints):
    POST {facilitator}/verify
    POST {facilitator}/settle
    {"payment": <decoded X-PAYMENT PaymentPayload>, "details": <PaymentRequirements>}

The SDK's own FacilitatorClient posts a different body
({x402Version, paymentPayload, paymentRequirements}), so the transport here
is requests; the request and response bodies are still the SDK models.
"""
import logging
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException
from starlette.concurrency import run_in_threadpool
from x402.types import PaymentPayload, PaymentRequirements, SettleResponse, VerifyResponse

from app.x402.types import credential_payer

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class FacilitatorClient(Protocol):
    """Interface the payment gate needs from a facilitator."""

    async def verify(
        self, payment: PaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        ...

    async def settle(
        self, payment: PaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        ...


def rejected(reason: str, payer: Optional[str] = None) -> VerifyResponse:
    return VerifyResponse(is_valid=False, invalid_reason=reason, payer=payer)


def unsettled(reason: str, network: Optional[str] = None) -> SettleResponse:
    return SettleResponse(success=False, error_reason=reason, network=network)


class HTTPFacilitatorClient:
    """FacilitatorClient backed by the facilitator's HTTP API."""

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout

    def _post(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST to a facilitator operation and return the JSON object body.

        Raises:
            RequestException: On network failure, timeout or non-2xx status
            ValueError: If the body is not a JSON object
        """
        api_url = urljoin(self.base_url, operation)
        response = requests.post(
            api_url,
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        if not response.ok:
            raise RequestException(
                f"{operation} returned HTTP {response.status_code}: {response.text[:500]}"
            )

        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"{operation} returned a non-object body: {type(body).__name__}")
        return body

    @staticmethod
    def _request_body(
        payment: PaymentPayload, requirements: PaymentRequirements
    ) -> Dict[str, Any]:
        return {
            "payment": payment.model_dump(by_alias=True),
            "details": requirements.model_dump(by_alias=True, exclude_none=True),
        }

    def verify_sync(
        self, payment: PaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        try:
            body = self._post("verify", self._request_body(payment, requirements))
            # payer is optional on the wire
            body.setdefault("payer", None)
            verification = VerifyResponse.model_validate(body)
        except RequestException as e:
            logger.error(f"Facilitator verify error ({self.base_url}): {e}")
            return rejected(str(e))
        except ValueError as e:
            logger.error(f"Malformed facilitator verify response: {e}")
            return rejected(f"Malformed facilitator response: {e}")

        if not verification.is_valid and not verification.invalid_reason:
            verification.invalid_reason = "Payment rejected by facilitator"
        if verification.payer is None:
            verification.payer = credential_payer(payment)
        return verification

    def settle_sync(
        self, payment: PaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        try:
            body = self._post("settle", self._request_body(payment, requirements))
            settlement = SettleResponse.model_validate(body)
        except RequestException as e:
            logger.error(f"Facilitator settle error ({self.base_url}): {e}")
            return unsettled(str(e))
        except ValueError as e:
            logger.error(f"Malformed facilitator settle response: {e}")
            return unsettled(f"Malformed facilitator response: {e}")

        if not settlement.success:
            settlement.error_reason = settlement.error_reason or "Settlement rejected by facilitator"
            return settlement

        settlement.network = settlement.network or requirements.network
        settlement.payer = settlement.payer or credential_payer(payment)
        return settlement

    async def verify(
        self, payment: PaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        return await run_in_threadpool(self.verify_sync, payment, requirements)

    async def settle(
        self, payment: PaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        return await run_in_threadpool(self.settle_sync, payment, requirements)
