import logging
from dataclasses import asdict
from typing import Any, Dict, Literal, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import EmailStr, Field
from starlette.concurrency import run_in_threadpool

import config
from dependencies import Services, get_current_user, get_services
from errors import AppError
from routers.common import Payload, ok
from schemas import ApiResponse, CheckoutOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


class PaymentRequest(Payload):
    description: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    payer_email: Optional[EmailStr] = None
    external_reference: Optional[str] = None


class SubscriptionRequest(Payload):
    reason: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    frequency: int = Field(1, ge=1)
    frequency_type: Literal["day", "week", "month", "year"] = "month"
    payer_email: Optional[EmailStr] = None
    external_reference: Optional[str] = None


def _to_frontend(outcome: str, payment_id: Optional[str], status: Optional[str], order_id: Optional[str]):
    params = {"payment": outcome, "paymentId": payment_id or "", "status": status or "", "orderId": order_id or ""}
    return RedirectResponse(f"{config.FRONTEND_URL.rstrip('/')}/shop?{urlencode(params)}", status_code=302)


@router.post("/webhook")
async def webhook(request: Request, services: Services = Depends(get_services)):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    return await run_in_threadpool(services.payments.receive_webhook, payload, signature)


@router.get("/success")
def payment_success(
    session_id: Optional[str] = None,
    order_id: Optional[str] = None,
    services: Services = Depends(get_services),
):
    payment_id, status = None, None
    if session_id:
        try:
            result = services.payments.verify_checkout_session(session_id)
        except AppError as e:
            logger.warning("Could not verify checkout session %s on return: %s", session_id, e)
        else:
            payment_id, status = result["payment_id"], result["status"]
            order_id = order_id or result["order_id"]
    return _to_frontend("success", payment_id, status, order_id)


@router.get("/failure")
def payment_failure(order_id: Optional[str] = None):
    return _to_frontend("failure", None, "cancelled", order_id)


@router.get("/pending")
def payment_pending(payment_id: Optional[str] = None, order_id: Optional[str] = None):
    return _to_frontend("pending", payment_id, "pending", order_id)


@router.post("/checkout", status_code=201, response_model=ApiResponse[CheckoutOut])
def create_payment(
    payload: PaymentRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    checkout = services.gateway.create_payment(
        payload.description,
        payload.amount,
        payer_email=payload.payer_email or user["email"],
        external_reference=payload.external_reference,
    )
    return ok(checkout, "Payment created")


@router.post("/subscriptions", status_code=201, response_model=ApiResponse[CheckoutOut])
def create_subscription(
    payload: SubscriptionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    checkout = services.gateway.create_subscription(
        payload.reason,
        payload.amount,
        payload.frequency,
        payload.frequency_type,
        payer_email=payload.payer_email or user["email"],
        external_reference=payload.external_reference,
    )
    return ok(checkout, "Subscription created")


@router.get(
    "/subscriptions/{subscription_id}",
    response_model=ApiResponse[Dict[str, Any]],
    dependencies=[Depends(get_current_user)],
)
def get_subscription(subscription_id: str, services: Services = Depends(get_services)):
    return ok(services.gateway.get_subscription(subscription_id))


@router.delete(
    "/subscriptions/{subscription_id}",
    response_model=ApiResponse[Dict[str, Any]],
    dependencies=[Depends(get_current_user)],
)
def cancel_subscription(subscription_id: str, services: Services = Depends(get_services)):
    return ok(services.gateway.cancel_subscription(subscription_id), "Subscription cancelled")


@router.get("/{payment_id}", response_model=ApiResponse[Dict[str, Any]], dependencies=[Depends(get_current_user)])
def get_payment(payment_id: str, services: Services = Depends(get_services)):
    return ok(asdict(services.gateway.get_payment(payment_id)))
