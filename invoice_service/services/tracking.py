"""
Per-request tracking identifiers for log correlation.

A TrackingContext is created at the edge of each request (or task run) and
passed explicitly to the services, which fill it in as ids become known.
"""
import uuid
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class TrackingContext:
    """Identifiers attached to every log line of one unit of work."""
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    invoice_id: Optional[str] = None
    customer_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    subscription_id: Optional[str] = None

    @classmethod
    def from_header(cls, correlation_id: Optional[str]) -> "TrackingContext":
        """Reuse an incoming correlation id, or start a new one."""
        if correlation_id:
            return cls(correlation_id=correlation_id)
        return cls()

    def tracking_info(self) -> str:
        """Log prefix like "[correlation=..., userId=..., invoiceId=...]"."""
        parts = [f"correlation={self.correlation_id}"]
        if self.user_id:
            parts.append(f"userId={self.user_id}")
        if self.invoice_id:
            parts.append(f"invoiceId={self.invoice_id}")
        return "[" + ", ".join(parts) + "]"

