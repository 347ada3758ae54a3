# app/x402/middleware.py
"""
FastAPI middleware for x402 payment gating.

For every protected endpoint the middleware runs one request through:
1. Challenge: no X-PAYMENT header -> 402 with the payment requirements
2. Decode: X-PAYMENT header -> PaymentPayload (undecodable -> 402)
3. Verify: facilitator /verify (invalid or unreachable -> 402)
4. Execute: the protected handler, exactly once
5. Settle: facilitator /settle, only if the handler produced a result

A handler that raises or answers with a 5xx is never settled, and neither
is a 4xx the framework produced before the endpoint function was entered
(an unparseable body, for instance). A settlement failure does not change
the response: the result is still delivered, just without the
X-PAYMENT-RESPONSE header, and the discrepancy is logged.

Uses the official x402 Python SDK for the wire models and header encoding.
"""
import json
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from x402.encoding import safe_base64_decode, safe_base64_encode
from x402.types import (
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    x402PaymentRequiredResponse,
)

from app.core.config import GateConfig
from app.x402.audit import AuditEventType, AuditLog, generate_request_id
from app.x402.errors import (
    HandlerFailed,
    MalformedCredential,
    MissingCredential,
    SettlementFailed,
    VerificationRejected,
)
from app.x402.facilitator import (
    FacilitatorClient,
    HTTPFacilitatorClient,
    rejected,
    unsettled,
)
from app.x402.requirements import build_payment_requirement, resolve_base_url
from app.x402.types import EndpointConfig, GateOutcome, GateStage

logger = logging.getLogger(__name__)

# x402 protocol constants
X402_VERSION = 1
X_PAYMENT_HEADER = "X-PAYMENT"
X_PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"
PAYMENT_REQUIRED_ERROR = "X-PAYMENT header is required"
HANDLER_FAILED_ERROR = "Request processing failed"


def match_endpoint(config: GateConfig, method: str, path: str) -> Optional[EndpointConfig]:
    """Return the priced endpoint for a request, or None if it is free."""
    normalized = path.rstrip("/") or "/"
    for endpoint in config.endpoints:
        if method.upper() == endpoint.method and normalized == (endpoint.path.rstrip("/") or "/"):
            return endpoint
    return None


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def mark_handler_entered(request: Request) -> Optional[GateOutcome]:
    """
    Record that the protected endpoint function itself is running.

    Endpoints call this first thing. A 4xx answered before it was called
    came from request parsing, not from the handler, and is never settled.

    Returns:
        The request's GateOutcome, or None if the request was not gated
    """
    outcome = getattr(request.state, "payment", None)
    if outcome is not None:
        outcome.handler_entered = True
    return outcome


def create_402_response(
    requirements: PaymentRequirements,
    error_message: str = PAYMENT_REQUIRED_ERROR,
    verification_error: Optional[str] = None,
) -> JSONResponse:
    """
    Create an HTTP 402 Payment Required response.

    The body is a function of its arguments only, so the same requirements
    always produce the same bytes.

    Args:
        requirements: The payment requirements to advertise
        error_message: Generic error marker for the response
        verification_error: Why a payment attempt was rejected, if there was one

    Returns:
        JSONResponse with 402 status and payment details
    """
    response_body = x402PaymentRequiredResponse(
        x402_version=X402_VERSION,
        accepts=[requirements],
        error=error_message,
    ).model_dump(by_alias=True)
    if verification_error is not None:
        response_body["verificationError"] = verification_error

    return JSONResponse(
        status_code=402,
        content=response_body,
        headers={"Content-Type": "application/json"}
    )


def decode_payment_header(header_value: str) -> PaymentPayload:
    """
    Decode the X-PAYMENT header into a PaymentPayload.

    Args:
        header_value: Base64-encoded payment payload

    Raises:
        MalformedCredential: If the header is not base64-encoded JSON of a payment payload
    """
    if not header_value or not header_value.strip():
        raise MalformedCredential("Empty X-PAYMENT header")

    try:
        # safe_base64_decode returns str, not bytes
        payload_dict = json.loads(safe_base64_decode(header_value.strip()))
    except ValueError as e:
        raise MalformedCredential(f"Invalid X-PAYMENT header encoding: {e}") from e

    if not isinstance(payload_dict, dict):
        raise MalformedCredential("Invalid X-PAYMENT header: expected a JSON object")

    try:
        return PaymentPayload.model_validate(payload_dict)
    except ValueError as e:
        raise MalformedCredential(f"Invalid X-PAYMENT payload: {e}") from e


def encode_payment_response(settle_response: SettleResponse) -> str:
    """
    Encode a settlement response for the X-PAYMENT-RESPONSE header.

    Returns:
        Base64-encoded JSON string
    """
    response_dict = settle_response.model_dump(by_alias=True, exclude_none=True)
    return safe_base64_encode(json.dumps(response_dict).encode("utf-8"))


class PaymentGateMiddleware(BaseHTTPMiddleware):
    """
    x402 payment gate for FastAPI.

    Configuration is injected as an immutable GateConfig. The facilitator is
    any FacilitatorClient; when none is given an HTTPFacilitatorClient is
    created from the config on first use.
    """

    def __init__(
        self,
        app,
        config: GateConfig,
        facilitator_client: Optional[FacilitatorClient] = None,
        audit_log: Optional[AuditLog] = None,
    ):
        super().__init__(app)
        self.config = config
        self._facilitator_client = facilitator_client
        self.audit = audit_log or AuditLog(config.audit_log_path, enabled=config.audit_enabled)

    @property
    def facilitator_client(self) -> FacilitatorClient:
        """Lazy initialization of facilitator client."""
        if self._facilitator_client is None:
            self._facilitator_client = HTTPFacilitatorClient(
                base_url=self.config.facilitator_url,
                timeout=self.config.facilitator_timeout,
            )
        return self._facilitator_client

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        if not self.config.enabled:
            return await call_next(request)

        endpoint = match_endpoint(self.config, request.method, request.url.path)
        if endpoint is None:
            return await call_next(request)

        client_ip = get_client_ip(request)
        logger.info(f"x402: Processing protected request from {client_ip}: {request.method} {request.url.path}")

        # The requirements are built once and reused by every later stage
        try:
            requirements = build_payment_requirement(
                endpoint,
                self.config,
                resolve_base_url(self.config, str(request.base_url)),
            )
        except ValueError as e:
            logger.error(f"x402: Failed to build payment requirements: {e}")
            return JSONResponse(
                status_code=503,
                content={"error": "Service temporarily unavailable", "detail": str(e)}
            )

        outcome = GateOutcome(
            request_id=generate_request_id(),
            endpoint=endpoint,
            requirement=requirements,
            payment_header=request.headers.get(X_PAYMENT_HEADER),
        )
        request.state.payment = outcome

        try:
            await self._authorize(outcome)
        except MissingCredential as e:
            outcome.advance(e.stage)
            logger.info(f"x402: No X-PAYMENT header, returning 402 for {requirements.max_amount_required} units")
            await self.audit.record_async(
                AuditEventType.PAYMENT_REQUIRED_SENT,
                {
                    "client_ip": client_ip,
                    "resource": requirements.resource,
                    "amount": requirements.max_amount_required,
                    "network": requirements.network,
                    "pay_to": requirements.pay_to,
                },
                request_id=outcome.request_id,
            )
            return create_402_response(requirements)
        except (MalformedCredential, VerificationRejected) as e:
            outcome.advance(e.stage, e.detail)
            logger.warning(f"x402: Payment rejected for {client_ip}: {e.detail}")
            await self.audit.record_async(
                AuditEventType.PAYMENT_REJECTED,
                {"client_ip": client_ip, "reason": e.detail, "error": type(e).__name__},
                request_id=outcome.request_id,
                wallet_address=outcome.payer,
            )
            return create_402_response(
                requirements,
                error_message="Payment verification failed",
                verification_error=e.detail or "Unknown reason",
            )

        try:
            response = await self._execute(request, call_next, outcome)
        except HandlerFailed as e:
            await self._record_handler_failure(outcome, e)
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": HANDLER_FAILED_ERROR}
            )

        if response.status_code >= 500:
            await self._record_handler_failure(outcome, HandlerFailed(f"Handler returned HTTP {response.status_code}"))
            return response

        if response.status_code >= 400:
            if not outcome.handler_entered:
                await self._record_handler_failure(
                    outcome, HandlerFailed(f"Request rejected with HTTP {response.status_code} before the handler ran")
                )
                return response
            if not self.config.settle_on_client_error:
                logger.info(f"x402: Handler returned HTTP {response.status_code}, not settling")
                return response

        return await self._settle(response, outcome)

    async def _authorize(self, outcome: GateOutcome) -> None:
        """
        Decode and verify the credential.

        Raises:
            MissingCredential: No X-PAYMENT header
            MalformedCredential: Header could not be decoded
            VerificationRejected: Facilitator rejected the payment or failed
        """
        if not outcome.payment_header:
            raise MissingCredential()

        outcome.credential = decode_payment_header(outcome.payment_header)
        outcome.advance(GateStage.VERIFYING)

        try:
            verification = await self.facilitator_client.verify(outcome.credential, outcome.requirement)
        except Exception as e:
            logger.exception("x402: Facilitator client raised during verify")
            verification = rejected(f"Facilitator error: {e}")

        if not verification.is_valid:
            raise VerificationRejected(verification.invalid_reason or "Payment rejected by facilitator")

        outcome.advance(GateStage.VERIFIED)
        payer = verification.payer or outcome.payer
        logger.info(f"x402: Payment verified for payer {payer}")
        await self.audit.record_async(
            AuditEventType.PAYMENT_VERIFIED,
            {
                "resource": outcome.requirement.resource,
                "amount": outcome.requirement.max_amount_required,
            },
            request_id=outcome.request_id,
            wallet_address=payer,
        )

    async def _execute(self, request: Request, call_next, outcome: GateOutcome) -> Response:
        """Run the protected handler once. Raises HandlerFailed if it raises."""
        outcome.advance(GateStage.EXECUTING)
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"x402: Protected handler failed for {request.url.path}")
            raise HandlerFailed(f"{type(e).__name__}: {e}") from e
        outcome.advance(GateStage.EXECUTED)
        return response

    async def _settle(self, response: Response, outcome: GateOutcome) -> Response:
        """Settle the payment and attach the settlement proof when it succeeds."""
        outcome.advance(GateStage.SETTLING)
        try:
            settlement = await self.facilitator_client.settle(outcome.credential, outcome.requirement)
        except Exception as e:
            logger.exception("x402: Facilitator client raised during settle")
            settlement = unsettled(f"Facilitator error: {e}")

        if not settlement.success:
            error = SettlementFailed(settlement.error_reason or "Settlement failed")
            outcome.advance(error.stage, error.detail)
            # Result is delivered anyway; the payment was verified but not collected
            logger.error(
                f"x402: Settlement failed after successful response [{outcome.request_id}] "
                f"payer={outcome.payer} resource={outcome.requirement.resource}: {error.detail}"
            )
            await self.audit.record_async(
                AuditEventType.SETTLEMENT_FAILED,
                {
                    "resource": outcome.requirement.resource,
                    "amount": outcome.requirement.max_amount_required,
                    "status_code": response.status_code,
                    "reason": error.detail,
                },
                request_id=outcome.request_id,
                wallet_address=outcome.payer,
            )
            return response

        outcome.advance(GateStage.SETTLED)
        outcome.transaction = settlement.transaction
        logger.info(f"x402: Payment settled successfully (tx {settlement.transaction})")
        await self.audit.record_async(
            AuditEventType.PAYMENT_SETTLED,
            {
                "transaction_hash": settlement.transaction,
                "network": settlement.network,
                "amount": outcome.requirement.max_amount_required,
            },
            request_id=outcome.request_id,
            wallet_address=settlement.payer or outcome.payer,
        )

        if not settlement.transaction:
            return response

        # Create new response with header added
        # Note: We need to read the body and create a new response
        body = b""
        async for chunk in response.body_iterator:
            body += chunk

        new_response = Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type
        )
        new_response.headers[X_PAYMENT_RESPONSE_HEADER] = encode_payment_response(settlement)
        return new_response

    async def _record_handler_failure(self, outcome: GateOutcome, error: HandlerFailed) -> None:
        outcome.advance(error.stage, error.detail)
        logger.error(f"x402: Handler failed, payment not settled [{outcome.request_id}]: {error.detail}")
        await self.audit.record_async(
            AuditEventType.HANDLER_FAILED,
            {"resource": outcome.requirement.resource, "reason": error.detail},
            request_id=outcome.request_id,
            wallet_address=outcome.payer,
        )
