# app/x402/types.py
"""
Data model for the x402 payment gate.

The wire models (PaymentRequirements, PaymentPayload, VerifyResponse,
SettleResponse) come from the x402 SDK. This module adds the static
per-endpoint pricing and the request-scoped gate state.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from x402.types import HTTPInputSchema, PaymentPayload, PaymentRequirements

AMOUNT_PATTERN = re.compile(r"[0-9]+")


def is_positive_amount(value: str) -> bool:
    """True if value is an ASCII integer string greater than zero."""
    return bool(AMOUNT_PATTERN.fullmatch(value)) and int(value) > 0


class EndpointConfig(BaseModel):
    """
    Static pricing for one protected route.

    `input_schema` and `output_example` are discovery metadata: they are
    published in the challenge's `outputSchema` so payer agents can learn
    how to call the route.
    """
    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    amount: str = Field(..., description="Price in the asset's smallest unit, as an integer string.")
    description: str
    mime_type: str = "application/json"
    input_schema: Optional[HTTPInputSchema] = None
    output_example: Optional[Dict[str, Any]] = None
    discoverable: bool = True

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive_integer(cls, v: str) -> str:
        if not is_positive_amount(v):
            raise ValueError(f"amount must be a positive integer string, got {v!r}")
        return v

    @field_validator("method")
    @classmethod
    def method_upper(cls, v: str) -> str:
        return v.upper()

    def discovery_schema(self) -> Dict[str, Any]:
        """Request/response description carried as the requirement's outputSchema."""
        request_shape = {"type": "http", "method": self.method, "discoverable": self.discoverable}
        if self.input_schema is not None:
            request_shape.update(self.input_schema.model_dump(by_alias=True, exclude_none=True))
        return {
            "input": request_shape,
            "output": {"example": self.output_example} if self.output_example else None,
        }


def credential_payer(credential: Optional[PaymentPayload]) -> Optional[str]:
    """Payer address from the signed authorization, if there is one."""
    if credential is None:
        return None
    return credential.payload.authorization.from_


class GateStage(Enum):
    """Last protocol stage reached by a request."""
    CHALLENGED = "challenged"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    EXECUTING = "executing"
    EXECUTED = "executed"
    SETTLING = "settling"
    SETTLED = "settled"
    FAILED_VERIFICATION = "failed_verification"
    FAILED_EXECUTION = "failed_execution"
    FAILED_SETTLEMENT = "failed_settlement"


@dataclass
class GateOutcome:
    """Per-request gate state. Owned by one dispatch call and never retained."""
    request_id: str
    endpoint: EndpointConfig
    requirement: PaymentRequirements
    payment_header: Optional[str] = None
    credential: Optional[PaymentPayload] = None
    stage: GateStage = GateStage.CHALLENGED
    detail: Optional[str] = None
    transaction: Optional[str] = None
    # Set by the endpoint function; framework-level rejections leave it False
    handler_entered: bool = False
    history: List[GateStage] = field(default_factory=list)

    def advance(self, stage: GateStage, detail: Optional[str] = None) -> None:
        self.stage = stage
        self.history.append(stage)
        if detail is not None:
            self.detail = detail

    @property
    def payer(self) -> Optional[str]:
        return credential_payer(self.credential)
