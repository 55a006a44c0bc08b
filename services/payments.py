"""
Payment reconciliation.

Webhooks only record the gateway payment id in the ``payment_events``
outbox; PaymentWorker (services/payment_worker.py) drains it. Webhook
reconciliation and the synchronous verify path both end in apply_payment(),
which writes through the order's version counter and never moves a paid
order backwards. Deliveries may arrive in any order or more than once and
the result is the same.
"""
import logging
from typing import Any, Dict, Optional

import stripe

from database import utc_now
from errors import AppError, BadRequestError
from repositories import OrderRepository, PaymentEventRepository
from schemas import OrderStatus, PaymentStatus
from services.gateway import GatewayPayment, payment_id_from_event
from services.order_state import can_transition
from services.orders import MAX_WRITE_RETRIES, OrderService

logger = logging.getLogger(__name__)

# Gateway statuses that do not supersede an approved payment.
_NON_FINAL = {PaymentStatus.PENDING.value, PaymentStatus.IN_PROCESS.value, PaymentStatus.AUTHORIZED.value}
_FAILED = {PaymentStatus.REJECTED.value, PaymentStatus.CANCELLED.value}


class PaymentService:
    def __init__(
        self,
        gateway,
        orders: OrderRepository,
        events: PaymentEventRepository,
        order_service: OrderService,
        max_attempts: int = 8,
    ):
        self.gateway = gateway
        self.orders = orders
        self.events = events
        self.order_service = order_service
        self.max_attempts = max_attempts

    # ---------------------- Checkout ----------------------

    def create_order_checkout(self, order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        order = self.order_service.get_order(order_id, user)
        if order.get("is_paid"):
            raise BadRequestError("Order is already paid")
        if order["status"] == OrderStatus.CANCELLED.value:
            raise BadRequestError("Cannot pay for a cancelled order")
        checkout = self.gateway.create_order_checkout(order, customer_email=user.get("email"))
        self.orders.update(order["_id"], {"checkout_session_id": checkout["id"]})
        return checkout

    # ---------------------- Reconciliation ----------------------

    def _changes(self, order: Dict[str, Any], payment: GatewayPayment) -> Optional[Dict[str, Any]]:
        """Fields to write for ``payment``, or None when the order is already up to date."""
        current = order["status"]
        if order.get("is_paid"):
            if order.get("payment_id") and order["payment_id"] != payment.id:
                logger.warning(
                    "Order %s already paid by %s, ignoring payment %s", order["_id"], order["payment_id"], payment.id
                )
                return None
            if payment.status in _NON_FINAL or payment.status in _FAILED:
                return None

        fields: Dict[str, Any] = {"payment_id": payment.id, "payment_status": payment.status}
        if payment.status == PaymentStatus.APPROVED.value:
            if not order.get("is_paid"):
                fields["is_paid"] = True
                fields["paid_at"] = utc_now()
            if current != OrderStatus.CONFIRMED.value and can_transition(current, OrderStatus.CONFIRMED.value):
                fields["status"] = OrderStatus.CONFIRMED.value
            elif current == OrderStatus.CANCELLED.value:
                logger.warning("Payment %s approved for cancelled order %s", payment.id, order["_id"])
        elif payment.status in _FAILED:
            if current != OrderStatus.CANCELLED.value and can_transition(current, OrderStatus.CANCELLED.value):
                fields["status"] = OrderStatus.CANCELLED.value

        if "paid_at" not in fields and all(order.get(k) == v for k, v in fields.items()):
            return None
        return fields

    def apply_payment(self, payment: GatewayPayment) -> Optional[Dict[str, Any]]:
        order = None
        if payment.order_id:
            order = self.orders.find_by_id(payment.order_id)
        if order is None:
            order = self.orders.find_by_payment_id(payment.id)
        if order is None:
            logger.warning("No order found for payment %s (order ref %s)", payment.id, payment.order_id)
            return None

        for _ in range(MAX_WRITE_RETRIES):
            fields = self._changes(order, payment)
            if fields is None:
                return order
            updated = self.orders.update_versioned(order["_id"], order.get("version", 0), fields)
            if updated is not None:
                logger.info(
                    "Order %s reconciled with payment %s: status=%s payment_status=%s",
                    updated["_id"], payment.id, updated["status"], updated["payment_status"],
                )
                if fields.get("status") == OrderStatus.CANCELLED.value:
                    self.order_service.release_stock(updated)
                return updated
            order = self.orders.find_by_id(order["_id"])
        raise AppError(f"Order {order['_id']} kept changing while applying payment {payment.id}")

    def reconcile(self, payment_id: str) -> Optional[Dict[str, Any]]:
        return self.apply_payment(self.gateway.get_payment(payment_id))

    def verify_payment(self, order_id: str, user: Dict[str, Any], payment_id: Optional[str] = None) -> Dict[str, Any]:
        """Synchronous check when the buyer comes back from checkout."""
        order = self.order_service.get_order(order_id, user)
        if payment_id is None and order.get("checkout_session_id"):
            payment_id = self.gateway.get_checkout_session(order["checkout_session_id"])["payment_id"]
        payment_id = payment_id or order.get("payment_id")
        if not payment_id:
            raise BadRequestError("No payment has been started for this order")
        payment = self.gateway.get_payment(payment_id)
        if payment.order_id and payment.order_id != str(order["_id"]):
            raise BadRequestError("Payment does not belong to this order")
        if payment.order_id is None:
            payment.order_id = str(order["_id"])
        return self.apply_payment(payment) or order

    def verify_checkout_session(self, session_id: str) -> Dict[str, Any]:
        """Reconcile from the success redirect. Returns redirect parameters."""
        session = self.gateway.get_checkout_session(session_id)
        result = {"payment_id": session.get("payment_id"), "order_id": session.get("order_id"), "status": None}
        if not session.get("payment_id"):
            return result
        payment = self.gateway.get_payment(session["payment_id"])
        if payment.order_id is None:
            payment.order_id = session.get("order_id")
        result["status"] = payment.status
        self.apply_payment(payment)
        return result

    # ---------------------- Webhook & outbox ----------------------

    def receive_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Record the notification in the outbox. Never raises."""
        try:
            event = self.gateway.parse_webhook(payload, signature)
            payment_id = payment_id_from_event(event)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Rejected webhook payload: %s", e)
            return {"received": False}
        if not payment_id:
            logger.debug("Ignoring webhook event %s (%s)", event.get("id"), event.get("type"))
            return {"received": True}
        try:
            self.events.enqueue(payment_id, source=event.get("type", "webhook"))
        except Exception:
            logger.exception("Could not store webhook event for payment %s", payment_id)
            return {"received": False}
        logger.info("Webhook %s queued payment %s", event.get("type"), payment_id)
        return {"received": True, "payment_id": payment_id}

    def process_next(self) -> bool:
        """Reconcile one queued payment. Returns False when the outbox is empty."""
        event = self.events.claim_next()
        if event is None:
            return False
        try:
            self.reconcile(event["payment_id"])
        except AppError as e:
            state = self.events.mark_failed(event, str(e), self.max_attempts)
            logger.warning(
                "Reconciling payment %s failed (attempt %s, now %s): %s",
                event["payment_id"], event["attempts"], state, e,
            )
        except Exception as e:
            state = self.events.mark_failed(event, str(e), self.max_attempts)
            logger.exception(
                "Unexpected error reconciling payment %s (attempt %s, now %s)",
                event["payment_id"], event["attempts"], state,
            )
        else:
            self.events.mark_done(event)
        return True

