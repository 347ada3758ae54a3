# app/core/config.py
from typing import Optional, Tuple
from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl, BaseModel, ConfigDict
from functools import lru_cache
from dotenv import load_dotenv

from x402.networks import SupportedNetworks
from x402.types import HTTPInputSchema

from app.x402.types import EndpointConfig

# Load .env file if it exists
load_dotenv()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# USDC on Base mainnet
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

# Discovery metadata published with each challenge
RESEARCH_INPUT = HTTPInputSchema(
    body_type="json",
    body_fields={
        "query": {
            "type": "string",
            "required": True,
            "description": "Research question or topic (2-500 characters)",
        },
        "depth": {
            "type": "string",
            "required": False,
            "description": "Research depth: 'quick' (default), 'standard', or 'deep'",
        },
    },
)
RESEARCH_OUTPUT_EXAMPLE = {
    "success": True,
    "query": "What is x402?",
    "summary": "x402 is an open payment protocol...",
    "keyPoints": ["Point 1", "Point 2"],
    "insights": "Based on the research...",
    "confidence": 0.85,
    "processingTimeMs": 1234,
}

SUMMARIZE_INPUT = HTTPInputSchema(
    body_type="json",
    body_fields={
        "text": {
            "type": "string",
            "required": True,
            "description": "Text to summarize (100-10000 characters)",
        },
        "style": {
            "type": "string",
            "required": False,
            "description": "Summary style: 'bullet' (default), 'paragraph', 'executive'",
        },
    },
)
SUMMARIZE_OUTPUT_EXAMPLE = {
    "success": True,
    "summary": "Main summary...",
    "keyPoints": ["Key point 1", "Key point 2"],
    "wordCount": {"original": 1500, "summary": 150},
}


class Settings(BaseSettings):
    PROJECT_NAME: str = "OpenClaw Research API"
    SERVICE_VERSION: str = "1.2.0"
    PORT: int = 4021

    # x402 payment gate
    X402_ENABLED: bool = True
    X402_PAY_TO_ADDRESS: str = ZERO_ADDRESS
    X402_FACILITATOR_URL: AnyHttpUrl = "https://facilitator.x402.rs"
    X402_BASE_URL: Optional[str] = None  # public URL used in the resource field
    X402_NETWORK: str = "base"
    X402_ASSET: str = USDC_BASE
    X402_ASSET_NAME: str = "USDC"
    X402_ASSET_VERSION: str = "2"
    X402_ASSET_DECIMALS: int = 6
    X402_MAX_TIMEOUT_SECONDS: int = 300
    X402_FACILITATOR_TIMEOUT_SECONDS: float = 10.0
    X402_SETTLE_ON_CLIENT_ERROR: bool = True

    # Prices in the asset's smallest unit ($0.02 = 20000 for USDC)
    X402_RESEARCH_PRICE: str = "20000"
    X402_SUMMARIZE_PRICE: str = "10000"

    X402_AUDIT_ENABLED: bool = True
    X402_AUDIT_LOG_PATH: str = "logs/x402_audit.jsonl"

    # LLM backend (OpenAI-compatible chat completions)
    LLM_API_URL: AnyHttpUrl = "https://api.groq.com/openai/v1/chat/completions"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TIMEOUT_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env


class GateConfig(BaseModel):
    """
    Immutable payment gate configuration.

    Built once at startup and injected into the middleware, so the gate never
    reads process-wide settings while handling a request.
    """
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    pay_to: str
    facilitator_url: str
    base_url: Optional[str] = None
    network: SupportedNetworks
    asset: str
    asset_name: str
    asset_version: str
    asset_decimals: int = 6
    max_timeout_seconds: int = 300
    facilitator_timeout: float = 10.0
    settle_on_client_error: bool = True
    audit_enabled: bool = True
    audit_log_path: str = "logs/x402_audit.jsonl"
    endpoints: Tuple[EndpointConfig, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GateConfig":
        return cls(
            enabled=settings.X402_ENABLED,
            pay_to=settings.X402_PAY_TO_ADDRESS,
            facilitator_url=str(settings.X402_FACILITATOR_URL).rstrip("/"),
            base_url=settings.X402_BASE_URL,
            network=settings.X402_NETWORK,
            asset=settings.X402_ASSET,
            asset_name=settings.X402_ASSET_NAME,
            asset_version=settings.X402_ASSET_VERSION,
            asset_decimals=settings.X402_ASSET_DECIMALS,
            max_timeout_seconds=settings.X402_MAX_TIMEOUT_SECONDS,
            facilitator_timeout=settings.X402_FACILITATOR_TIMEOUT_SECONDS,
            settle_on_client_error=settings.X402_SETTLE_ON_CLIENT_ERROR,
            audit_enabled=settings.X402_AUDIT_ENABLED,
            audit_log_path=settings.X402_AUDIT_LOG_PATH,
            endpoints=(
                EndpointConfig(
                    method="POST",
                    path="/research",
                    amount=settings.X402_RESEARCH_PRICE,
                    description="AI-powered research assistant",
                    input_schema=RESEARCH_INPUT,
                    output_example=RESEARCH_OUTPUT_EXAMPLE,
                ),
                EndpointConfig(
                    method="POST",
                    path="/summarize",
                    amount=settings.X402_SUMMARIZE_PRICE,
                    description="Text summarization service",
                    input_schema=SUMMARIZE_INPUT,
                    output_example=SUMMARIZE_OUTPUT_EXAMPLE,
                ),
            ),
        )


@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
