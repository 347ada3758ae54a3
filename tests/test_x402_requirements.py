# tests/test_x402_requirements.py
"""
Unit tests for payment requirement construction.
"""
import pytest
from pydantic import ValidationError

from app.x402.requirements import build_payment_requirement, format_price, resolve_base_url
from app.x402.types import EndpointConfig

from conftest import BASE_URL, PAY_TO, USDC_BASE, make_gate_config


class TestBuildPaymentRequirement:
    """Test requirement mapping from endpoint pricing."""

    def test_build_requirement(self, gate_config):
        requirement = build_payment_requirement(gate_config.endpoints[0], gate_config, BASE_URL)

        assert requirement.scheme == "exact"
        assert requirement.network == "base"
        assert requirement.max_amount_required == "20000"
        assert requirement.resource == "https://research.example.com/research"
        assert requirement.description == "AI-powered research assistant"
        assert requirement.mime_type == "application/json"
        assert requirement.pay_to == PAY_TO
        assert requirement.asset == USDC_BASE
        assert requirement.max_timeout_seconds == 300
        assert requirement.extra == {"name": "USDC", "version": "2"}

    def test_wire_format_uses_camel_case(self, gate_config):
        wire = build_payment_requirement(gate_config.endpoints[0], gate_config, BASE_URL).model_dump(by_alias=True)

        assert wire["maxAmountRequired"] == "20000"
        assert wire["payTo"] == PAY_TO
        assert wire["mimeType"] == "application/json"
        assert wire["maxTimeoutSeconds"] == 300
        assert "max_amount_required" not in wire

    def test_deterministic(self, gate_config):
        endpoint = gate_config.endpoints[0]
        assert build_payment_requirement(endpoint, gate_config, BASE_URL) == \
            build_payment_requirement(endpoint, gate_config, BASE_URL)

    def test_trailing_slash_in_base_url(self, gate_config):
        requirement = build_payment_requirement(gate_config.endpoints[0], gate_config, BASE_URL + "/")
        assert requirement.resource == "https://research.example.com/research"

    def test_request_shape_without_input_schema(self, gate_config):
        requirement = build_payment_requirement(gate_config.endpoints[0], gate_config, BASE_URL)

        assert requirement.output_schema == {
            "input": {"type": "http", "method": "POST", "discoverable": True},
            "output": None,
        }

    def test_non_ascii_digit_amount_rejected(self, gate_config):
        # model_construct skips the EndpointConfig validator
        endpoint = EndpointConfig.model_construct(
            method="POST", path="/research", amount="\u0663", description="Research"
        )
        with pytest.raises(ValueError):
            build_payment_requirement(endpoint, gate_config, BASE_URL)

    def test_empty_recipient_rejected(self):
        config = make_gate_config(pay_to="")
        with pytest.raises(ValueError):
            build_payment_requirement(config.endpoints[0], config, BASE_URL)


class TestEndpointConfig:
    """Test endpoint price validation."""

    def test_valid_amount(self):
        endpoint = EndpointConfig(method="post", path="/summarize", amount="10000", description="Summaries")
        assert endpoint.amount == "10000"
        assert endpoint.method == "POST"

    @pytest.mark.parametrize("amount", ["0", "-5", "0.02", "$0.02", "", "\u0663", "\uff11\uff10"])
    def test_invalid_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            EndpointConfig(method="POST", path="/research", amount=amount, description="Research")


class TestResolveBaseUrl:
    """Test public base URL selection."""

    def test_configured_base_url_wins(self, gate_config):
        assert resolve_base_url(gate_config, "http://internal:4021/") == BASE_URL

    def test_request_base_url_fallback(self):
        config = make_gate_config(base_url=None)
        assert resolve_base_url(config, "http://testserver/") == "http://testserver"


class TestFormatPrice:
    """Test display price formatting."""

    def test_research_price(self):
        assert format_price("20000") == "$0.02"

    def test_summarize_price(self):
        assert format_price("10000") == "$0.01"

    def test_sub_cent_price(self):
        assert format_price("5000") == "$0.005"

    def test_whole_dollars(self):
        assert format_price("1000000") == "$1.00"
        assert format_price("10000000") == "$10.00"

    def test_custom_decimals(self):
        assert format_price("150", decimals=2) == "$1.50"
