"""
Pydantic schemas for invoices, payment requests and queue messages.
"""
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class SubscriptionCreate(BaseModel):
    """Request to create a Stripe subscription and its invoice."""

    user_id: str = Field(..., alias="userId", min_length=1, description="User ID for the subscription")
    email: EmailStr = Field(..., description="Customer email")
    items: List[Dict[str, Any]] = Field(..., min_length=1, description="Line items, e.g. [{\"price\": \"price_123\"}]")
    payment_method: str = Field(..., min_length=1, description="Stripe payment method, e.g. pm_card_visa")
    job_id: Optional[str] = Field(None, alias="jobId", description="Job the subscription pays for")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Plan metadata (selected features)")

    model_config = ConfigDict(populate_by_name=True)


class PaymentCreate(BaseModel):
    """Request to create a one-time payment and its invoice."""

    user_id: str = Field(..., alias="userId", min_length=1, description="User ID for the payment")
    email: EmailStr = Field(..., description="Customer email")
    full_name: str = Field(..., min_length=1, max_length=100, description="Customer full name")
    items: List[Dict[str, Any]] = Field(..., min_length=1, description="Line items to be paid for")
    payment_method: str = Field(..., min_length=1, description="Stripe payment method")
    currency: str = Field("usd", min_length=3, max_length=3, description="ISO currency code")
    job_id: Optional[str] = Field(None, description="Job the payment is for")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Plan metadata (selected features)")

    model_config = ConfigDict(populate_by_name=True)


class InvoiceResponse(BaseModel):
    """Invoice as returned by the API."""

    id: UUID
    user_id: str
    customer_id: str
    customer_email: str
    customer_full_name: Optional[str] = None
    items: Any = None
    subscription_id: Optional[str] = None
    job_id: Optional[str] = None
    payment_kind: str
    status: str
    last_payment_intent_id: Optional[str] = None
    invoice_id_provided_by_stripe: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ResponseAPI(BaseModel, Generic[T]):
    """Envelope used by every JSON endpoint."""

    status: str
    message: str
    data: Optional[T] = None


class PlanMessage(BaseModel):
    """
    Message for the plan service.

    duration_in_days is only set on creation; status updates leave it out.
    """

    user_id: str
    invoice_id: UUID
    description: str
    items: Any = None
    is_active: bool
    status: str
    duration_in_days: Optional[int] = None
    job_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationMessage(BaseModel):
    """User notification, wrapped in a {pattern, data} envelope when published."""

    user_id: str
    user_email: str
    full_name: Optional[str] = None
    notification_type: str = "payment"
    topic: str
    body: str
    read: bool = False
    event_type: str
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def to_message(model: BaseModel) -> Dict[str, Any]:
    """Serialize a message model into a JSON-ready camelCase dict."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)
