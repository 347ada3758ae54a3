# app/x402/requirements.py
"""
Payment requirement construction.

Pure functions: no I/O and no configuration lookups beyond the GateConfig
passed in. The requirement built here is the single source for the 402
challenge and for the verify/settle request bodies of the same request.
"""
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from x402.types import PaymentRequirements

from app.x402.types import EndpointConfig, is_positive_amount

if TYPE_CHECKING:
    from app.core.config import GateConfig


def resolve_base_url(config: "GateConfig", request_base_url: Optional[str] = None) -> str:
    """Return the public base URL: the configured one wins over the request's."""
    base_url = config.base_url or request_base_url or ""
    return base_url.rstrip("/")


def build_payment_requirement(
    endpoint: EndpointConfig,
    config: "GateConfig",
    base_url: str,
) -> PaymentRequirements:
    """
    Map an endpoint's static pricing to x402 PaymentRequirements.

    Args:
        endpoint: Route, price and description of the protected endpoint
        config: Gate configuration (recipient, asset, network)
        base_url: Public base URL the resource field is built from

    Returns:
        PaymentRequirements for the x402 challenge and facilitator calls

    Raises:
        ValueError: If the amount is not a positive integer or no recipient is configured
    """
    if not is_positive_amount(endpoint.amount):
        raise ValueError(f"Invalid amount for {endpoint.path}: {endpoint.amount!r}")
    if not config.pay_to:
        raise ValueError("Payment recipient address is not configured")

    return PaymentRequirements(
        scheme="exact",
        network=config.network,
        max_amount_required=endpoint.amount,
        resource=f"{base_url.rstrip('/')}{endpoint.path}",
        description=endpoint.description,
        mime_type=endpoint.mime_type,
        pay_to=config.pay_to,
        max_timeout_seconds=config.max_timeout_seconds,
        output_schema=endpoint.discovery_schema(),
        asset=config.asset,
        extra={"name": config.asset_name, "version": config.asset_version},
    )


def format_price(amount: str, decimals: int = 6) -> str:
    """Format an amount in smallest units as a dollar string ("20000" -> "$0.02")."""
    value = Decimal(int(amount)) / (Decimal(10) ** decimals)
    text = format(value.normalize(), "f")
    if "." not in text:
        text += ".00"
    elif len(text.split(".")[1]) < 2:
        text += "0"
    return f"${text}"
