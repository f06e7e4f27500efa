"""
Invoice API routes.

Endpoints:
- GET  /invoice/all - List invoices
- POST /invoice/create-subscription - Create subscription and invoice
- POST /invoice/create-payment - Create one-time payment and invoice
- POST /invoice/stripe_webhooks - Stripe webhook (no auth, verified via signature)
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from invoice_service.api.deps import (
    get_invoice_service,
    get_token_claims,
    get_tracking_context,
)
from invoice_service.schemas.invoice import (
    InvoiceResponse,
    PaymentCreate,
    ResponseAPI,
    SubscriptionCreate,
)
from invoice_service.services.errors import InvoiceServiceError
from invoice_service.services.invoices import InvoiceService
from invoice_service.services.tracking import TrackingContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoice", tags=["invoice"])


def _serialize_result(result: dict) -> dict[str, Any]:
    """Replace the Invoice model in a service result with its API representation."""
    data = dict(result)
    data["data"] = InvoiceResponse.model_validate(result["data"]).model_dump(
        mode="json", by_alias=True
    )
    return data


def _error_response(e: InvoiceServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ResponseAPI[Any](status="error", message=str(e), data=None).model_dump(),
    )


@router.get(
    "/all",
    response_model=list[InvoiceResponse],
    dependencies=[Depends(get_token_claims)],
)
async def get_all_invoices(
    service: InvoiceService = Depends(get_invoice_service),
):
    """List all stored invoices, newest first."""
    invoices = await service.list_invoices()
    return [InvoiceResponse.model_validate(invoice) for invoice in invoices]


@router.post(
    "/create-subscription",
    response_model=ResponseAPI[dict[str, Any]],
    dependencies=[Depends(get_token_claims)],
)
async def create_subscription(
    data: SubscriptionCreate,
    service: InvoiceService = Depends(get_invoice_service),
    ctx: TrackingContext = Depends(get_tracking_context),
):
    """Create a Stripe subscription, its invoice and a pending plan."""
    try:
        result = await service.create_subscription_and_invoice(data, ctx)
    except InvoiceServiceError as e:
        logger.error(f"{ctx.tracking_info()} Subscription creation failed: {e}")
        return _error_response(e)

    return ResponseAPI[dict[str, Any]](
        status="succeeded",
        message="Subscription created successfully.",
        data=_serialize_result(result),
    )


@router.post(
    "/create-payment",
    response_model=ResponseAPI[dict[str, Any]],
    dependencies=[Depends(get_token_claims)],
)
async def create_payment(
    data: PaymentCreate,
    service: InvoiceService = Depends(get_invoice_service),
    ctx: TrackingContext = Depends(get_tracking_context),
):
    """Charge the items once and create the invoice and plan."""
    try:
        result = await service.create_one_time_payment_and_invoice(data, ctx)
    except InvoiceServiceError as e:
        logger.error(f"{ctx.tracking_info()} One-time payment failed: {e}")
        return _error_response(e)

    return ResponseAPI[dict[str, Any]](
        status="succeeded",
        message="Payment created successfully.",
        data=_serialize_result(result),
    )


@router.post("/stripe_webhooks", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    service: InvoiceService = Depends(get_invoice_service),
    ctx: TrackingContext = Depends(get_tracking_context),
):
    """
    Stripe webhook endpoint.

    No authentication required - verified via Stripe signature.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        await service.handle_webhook(payload, signature, ctx)
    except Exception as e:
        # Any failure is a 400 so Stripe retries the delivery
        logger.error(f"{ctx.tracking_info()} Webhook error: {e}")
        return PlainTextResponse(
            f"Webhook Error: {e}",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    return PlainTextResponse("Webhook processed successfully")
