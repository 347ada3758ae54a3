# tests/conftest.py
"""
Shared fixtures for the payment gate tests.
"""
import json
from base64 import b64encode
from typing import Optional

import pytest

from x402.types import SettleResponse, VerifyResponse

from app.core.config import GateConfig
from app.x402.types import EndpointConfig

PAY_TO = "0xab70558cd349229FbF03f5E3C50F99Df65969e5c"
PAYER = "0x1234567890abcdef1234567890abcdef12345678"
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
BASE_URL = "https://research.example.com"
FACILITATOR_URL = "https://facilitator.example.com"


def make_gate_config(**overrides) -> GateConfig:
    """Create a GateConfig with a single /research endpoint priced at 20000."""
    values = dict(
        pay_to=PAY_TO,
        facilitator_url=FACILITATOR_URL,
        base_url=BASE_URL,
        network="base",
        asset=USDC_BASE,
        asset_name="USDC",
        asset_version="2",
        audit_enabled=False,
        endpoints=(
            EndpointConfig(
                method="POST",
                path="/research",
                amount="20000",
                description="AI-powered research assistant",
            ),
        ),
    )
    values.update(overrides)
    return GateConfig(**values)


def make_payment_payload(payer: str = PAYER, amount: str = "20000", network: str = "base") -> dict:
    return {
        "x402Version": 1,
        "scheme": "exact",
        "network": network,
        "payload": {
            "signature": "0x" + "ab" * 65,
            "authorization": {
                "from": payer,
                "to": PAY_TO,
                "value": amount,
                "validAfter": "0",
                "validBefore": "9999999999",
                "nonce": "0x" + "01" * 32,
            },
        },
    }


def make_payment_header(payload: Optional[dict] = None) -> str:
    """Create a base64-encoded X-PAYMENT header."""
    return b64encode(json.dumps(payload or make_payment_payload()).encode()).decode()


class StubFacilitator:
    """
    In-memory FacilitatorClient recording every call it receives.
    """

    def __init__(
        self,
        verification: Optional[VerifyResponse] = None,
        settlement: Optional[SettleResponse] = None,
        verify_error: Optional[Exception] = None,
        settle_error: Optional[Exception] = None,
    ):
        self.verification = verification or VerifyResponse(is_valid=True, payer=PAYER)
        self.settlement = settlement or SettleResponse(
            success=True, transaction="0xabc123def456", network="base", payer=PAYER
        )
        self.verify_error = verify_error
        self.settle_error = settle_error
        self.verify_calls = []
        self.settle_calls = []

    async def verify(self, credential, requirement):
        self.verify_calls.append((credential, requirement))
        if self.verify_error:
            raise self.verify_error
        return self.verification

    async def settle(self, credential, requirement):
        self.settle_calls.append((credential, requirement))
        if self.settle_error:
            raise self.settle_error
        return self.settlement


@pytest.fixture
def gate_config() -> GateConfig:
    return make_gate_config()


@pytest.fixture
def facilitator() -> StubFacilitator:
    return StubFacilitator()
