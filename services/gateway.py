"""
Stripe integration.

Stripe Checkout is the hosted payment page. The PaymentIntent behind a
checkout is the authoritative payment record. Its status is normalized to
PaymentStatus so the rest of the code does not depend on Stripe's names.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import stripe

from errors import BadRequestError, PaymentGatewayError
from schemas import PaymentStatus

logger = logging.getLogger(__name__)

# Webhook event types that carry a payment worth reconciling.
PAYMENT_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "payment_intent.canceled",
    "payment_intent.processing",
    "charge.refunded",
    "charge.dispute.created",
}

SUBSCRIPTION_INTERVALS = {"day", "week", "month", "year"}


@dataclass
class GatewayPayment:
    id: str
    status: str
    raw_status: str
    order_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None


def _plain(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def normalize_status(intent: Dict[str, Any]) -> str:
    raw = intent.get("status") or ""
    charge = intent.get("latest_charge")
    charge = charge if isinstance(charge, dict) else {}
    if raw == "succeeded":
        if charge.get("disputed"):
            return PaymentStatus.CHARGED_BACK.value
        if charge.get("refunded"):
            return PaymentStatus.REFUNDED.value
        return PaymentStatus.APPROVED.value
    if raw == "processing":
        return PaymentStatus.IN_PROCESS.value
    if raw == "requires_capture":
        return PaymentStatus.AUTHORIZED.value
    if raw == "canceled":
        return PaymentStatus.CANCELLED.value
    if raw == "requires_payment_method" and intent.get("last_payment_error"):
        return PaymentStatus.REJECTED.value
    return PaymentStatus.PENDING.value


def payment_id_from_event(event: Dict[str, Any]) -> Optional[str]:
    """Pull the PaymentIntent id out of a webhook event, if it has one.

    Raises ValueError when the event, its ``data`` or its ``data.object``
    is not a JSON object.
    """
    if not isinstance(event, dict):
        raise ValueError("webhook event is not an object")
    data = event.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError("webhook event data is not an object")
    obj = data.get("object") or {}
    if not isinstance(obj, dict):
        raise ValueError("webhook event data.object is not an object")
    event_type = event.get("type", "")
    if event_type not in PAYMENT_EVENTS:
        return None
    if event_type.startswith("payment_intent."):
        return obj.get("id")
    intent = obj.get("payment_intent")
    if isinstance(intent, dict):
        return intent.get("id")
    return intent


class StripeGateway:
    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str],
        currency: str = "usd",
        timeout: int = 5,
        backend_origin: str = "http://localhost:8000",
    ):
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.backend_origin = backend_origin.rstrip("/")
        self.configured = bool(api_key)
        if api_key:
            stripe.api_key = api_key
            stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def _require_config(self) -> None:
        if not self.configured:
            raise PaymentGatewayError("configuration", "Stripe not configured. Set STRIPE_SECRET_KEY.")

    @staticmethod
    def _cents(amount: float) -> int:
        return int(round(amount * 100))

    def _return_urls(self, order_id: Optional[str] = None) -> Dict[str, str]:
        base = f"{self.backend_origin}/api/payments"
        suffix = f"&order_id={order_id}" if order_id else ""
        return {
            "success_url": f"{base}/success?session_id={{CHECKOUT_SESSION_ID}}{suffix}",
            "cancel_url": f"{base}/failure?session_id={{CHECKOUT_SESSION_ID}}{suffix}",
        }

    def create_order_checkout(self, order: Dict[str, Any], customer_email: Optional[str] = None) -> Dict[str, Any]:
        self._require_config()
        order_id = str(order["_id"])
        line_items: List[Dict[str, Any]] = []
        for item in order["items"]:
            line_items.append({
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": item["name"], "metadata": {"product_id": item["product_id"]}},
                    "unit_amount": self._cents(item["price"]),
                },
                "quantity": item["quantity"],
            })
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=line_items,
                client_reference_id=order_id,
                customer_email=customer_email,
                metadata={"order_id": order_id},
                payment_intent_data={"metadata": {"order_id": order_id}},
                **self._return_urls(order_id),
            )
        except stripe.StripeError as e:
            logger.error("Checkout creation failed for order %s: %s", order_id, e)
            raise PaymentGatewayError("checkout creation", str(e))
        logger.info("Checkout session %s created for order %s", session.id, order_id)
        return {"id": session.id, "url": session.url, "status": "pending", "order_id": order_id}

    def create_payment(
        self,
        description: str,
        amount: float,
        payer_email: Optional[str] = None,
        external_reference: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_config()
        metadata = {"external_reference": external_reference} if external_reference else {}
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": description},
                        "unit_amount": self._cents(amount),
                    },
                    "quantity": 1,
                }],
                customer_email=payer_email,
                client_reference_id=external_reference,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                **self._return_urls(),
            )
        except stripe.StripeError as e:
            raise PaymentGatewayError("payment creation", str(e))
        return {"id": session.id, "url": session.url, "status": "pending"}

    def create_subscription(
        self,
        reason: str,
        amount: float,
        frequency: int,
        frequency_type: str,
        payer_email: Optional[str] = None,
        external_reference: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_config()
        if frequency_type not in SUBSCRIPTION_INTERVALS:
            raise BadRequestError(f"frequency_type must be one of: {', '.join(sorted(SUBSCRIPTION_INTERVALS))}")
        metadata = {"external_reference": external_reference} if external_reference else {}
        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": reason},
                        "unit_amount": self._cents(amount),
                        "recurring": {"interval": frequency_type, "interval_count": frequency},
                    },
                    "quantity": 1,
                }],
                customer_email=payer_email,
                client_reference_id=external_reference,
                metadata=metadata,
                subscription_data={"metadata": metadata},
                **self._return_urls(),
            )
        except stripe.StripeError as e:
            raise PaymentGatewayError("subscription creation", str(e))
        return {"id": session.id, "url": session.url, "status": "pending"}

    def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self._require_config()
        try:
            return _plain(stripe.Subscription.retrieve(subscription_id))
        except stripe.StripeError as e:
            raise PaymentGatewayError("subscription lookup", str(e))

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self._require_config()
        try:
            sub = _plain(stripe.Subscription.cancel(subscription_id))
        except stripe.StripeError as e:
            raise PaymentGatewayError("subscription cancellation", str(e))
        logger.info("Subscription %s cancelled", subscription_id)
        return {"id": sub.get("id", subscription_id), "status": sub.get("status", "canceled")}

    def get_payment(self, payment_id: str) -> GatewayPayment:
        self._require_config()
        try:
            intent = _plain(stripe.PaymentIntent.retrieve(payment_id, expand=["latest_charge"]))
        except stripe.StripeError as e:
            raise PaymentGatewayError("payment lookup", str(e))
        metadata = intent.get("metadata") or {}
        amount = intent.get("amount")
        return GatewayPayment(
            id=intent.get("id", payment_id),
            status=normalize_status(intent),
            raw_status=intent.get("status") or "",
            order_id=metadata.get("order_id"),
            amount=amount / 100 if amount is not None else None,
            currency=intent.get("currency"),
        )

    def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        self._require_config()
        try:
            session = _plain(stripe.checkout.Session.retrieve(session_id))
        except stripe.StripeError as e:
            raise PaymentGatewayError("checkout lookup", str(e))
        intent = session.get("payment_intent")
        if isinstance(intent, dict):
            intent = intent.get("id")
        metadata = session.get("metadata") or {}
        return {
            "id": session.get("id", session_id),
            "payment_id": intent,
            "order_id": metadata.get("order_id") or session.get("client_reference_id"),
            "status": session.get("status"),
            "payment_status": session.get("payment_status"),
        }

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe signature (when a secret is set) and decode the event."""
        if self.webhook_secret:
            stripe.WebhookSignature.verify_header(payload.decode("utf-8"), signature, self.webhook_secret)
        else:
            logger.warning("STRIPE_WEBHOOK_SECRET not set, accepting unsigned webhook")
        return json.loads(payload)
