# app/main.py
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from app.core.config import GateConfig, Settings, ZERO_ADDRESS, settings as default_settings
from app.api.endpoints import research
from app.api.models.research import EndpointInfo, HealthResponse
from app.x402.facilitator import FacilitatorClient
from app.x402.middleware import PaymentGateMiddleware
from app.x402.requirements import format_price
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    facilitator_client: Optional[FacilitatorClient] = None,
) -> FastAPI:
    """
    Build the Research API.

    Settings are turned into an immutable GateConfig once, here; the payment
    gate and the health listing both read from that object.
    """
    settings = settings or default_settings
    gate_config = GateConfig.from_settings(settings)

    if gate_config.pay_to == ZERO_ADDRESS:
        logger.warning("X402_PAY_TO_ADDRESS not configured, payments go to the zero address")

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.SERVICE_VERSION)

    app.include_router(research.router, tags=["research"])

    # GET /health is not a priced endpoint, so the gate lets it through
    app.add_middleware(
        PaymentGateMiddleware,
        config=gate_config,
        facilitator_client=facilitator_client,
    )

    @app.get("/health", summary="Health Check", tags=["default"], response_model=HealthResponse)
    def health() -> HealthResponse:
        """ Free health check listing the priced endpoints. """
        return HealthResponse(
            status="healthy",
            service=settings.PROJECT_NAME,
            version=settings.SERVICE_VERSION,
            protocol="x402 v1",
            aiModel=settings.LLM_MODEL,
            facilitator=gate_config.facilitator_url,
            timestamp=datetime.now(timezone.utc).isoformat(),
            network=gate_config.network,
            endpoints=[
                EndpointInfo(
                    path=endpoint.path,
                    method=endpoint.method,
                    price=format_price(endpoint.amount, gate_config.asset_decimals),
                    amount=endpoint.amount,
                    description=endpoint.description,
                )
                for endpoint in gate_config.endpoints
            ],
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting {default_settings.PROJECT_NAME} v{default_settings.SERVICE_VERSION} on port {default_settings.PORT}")
    uvicorn.run(app, host="0.0.0.0", port=default_settings.PORT)
