# app/x402/audit.py
"""
Audit logging for x402 payment gate events.

Every protected request leaves a trail of JSON lines keyed by request id,
so a settlement that failed after the response was delivered can be
reconciled later.

Log format: JSON lines (one event per line)
Log location: GateConfig.audit_log_path (X402_AUDIT_LOG_PATH)

Events logged:
- 402 challenge sent (resource, amount, network, pay_to)
- Payment rejected (malformed credential or failed verification)
- Payment verified (payer)
- Handler failed (no settlement attempted)
- Payment settled (transaction reference)
- Settlement failed (response delivered without settlement proof)
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional
from enum import Enum

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    PAYMENT_REQUIRED_SENT = "payment_required_sent"
    PAYMENT_REJECTED = "payment_rejected"
    PAYMENT_VERIFIED = "payment_verified"
    HANDLER_FAILED = "handler_failed"
    PAYMENT_SETTLED = "payment_settled"
    SETTLEMENT_FAILED = "settlement_failed"


def generate_request_id() -> str:
    """Generate a unique request ID for tracking."""
    return str(uuid.uuid4())[:8]


class AuditLog:
    """Append-only JSON lines audit log."""

    def __init__(self, path: str, enabled: bool = True):
        self.path = Path(path)
        self.enabled = enabled

    def record(
        self,
        event_type: AuditEventType,
        data: Dict[str, Any],
        request_id: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> Optional[str]:
        """
        Append an audit event.

        Write failures are logged and never propagated to the request.

        Returns:
            The request_id used for this event, or None if nothing was written
        """
        if not self.enabled:
            return None

        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "request_id": request_id or generate_request_id(),
            "wallet_address": wallet_address,
            "data": data,
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(event) + "\n")

            logger.debug(f"Audit event logged: {event_type.value} [{event['request_id']}]")
            return event["request_id"]

        except OSError as e:
            logger.error(f"Failed to write audit event: {e}")
            return None

    async def record_async(
        self,
        event_type: AuditEventType,
        data: Dict[str, Any],
        request_id: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> Optional[str]:
        """Append an audit event from async code without blocking the event loop."""
        if not self.enabled:
            return None
        return await run_in_threadpool(self.record, event_type, data, request_id, wallet_address)

    def read(
        self,
        max_entries: int = 100,
        event_type: Optional[AuditEventType] = None,
        request_id: Optional[str] = None,
    ) -> list:
        """
        Read entries from the audit log.

        Returns:
            List of audit events (most recent first)
        """
        if not self.path.exists():
            return []

        events = []
        with open(self.path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type and event.get("event_type") != event_type.value:
                    continue
                if request_id and event.get("request_id") != request_id:
                    continue
                events.append(event)

        return list(reversed(events))[:max_entries]
