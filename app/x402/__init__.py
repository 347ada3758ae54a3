# app/x402/__init__.py
"""
x402 Payment Protocol Integration Module.

This module gates the Research API endpoints behind x402 micropayments:
every paid request is challenged, verified, executed and then settled.

Key components:
- middleware: FastAPI middleware running the payment gate state machine
- requirements: Payment requirement construction from endpoint pricing
- facilitator: Facilitator client for payment verification and settlement
- types: Endpoint pricing and per-request gate state (wire models come from the x402 SDK)
- errors: Gate error taxonomy
- audit: Transaction audit logging

Configuration is loaded once from environment variables via app.core.config
and handed to the middleware as an immutable GateConfig.
"""

__version__ = "0.1.0"
