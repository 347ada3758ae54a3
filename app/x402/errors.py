# app/x402/errors.py
"""
Error taxonomy for the payment gate.

MissingCredential, MalformedCredential and VerificationRejected stop the
request before the handler runs. HandlerFailed ends the request without a
settlement. SettlementFailed is reported after the response has already been
decided and never changes it.
"""
from typing import Optional

from app.x402.types import GateStage


class PaymentGateError(Exception):
    """Base class for payment gate failures."""
    stage = GateStage.FAILED_VERIFICATION

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(detail or self.__class__.__name__)


class MissingCredential(PaymentGateError):
    stage = GateStage.CHALLENGED


class MalformedCredential(PaymentGateError):
    pass


class VerificationRejected(PaymentGateError):
    pass


class HandlerFailed(PaymentGateError):
    stage = GateStage.FAILED_EXECUTION


class SettlementFailed(PaymentGateError):
    stage = GateStage.FAILED_SETTLEMENT
