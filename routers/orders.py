from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Body, Depends
from pydantic import Field

from dependencies import Services, get_current_user, get_services
from routers.common import Payload, ok
from schemas import ApiResponse, CheckoutOut, OrderOut, ShippingAddress

router = APIRouter(prefix="/orders", tags=["orders"])


class OrderLine(Payload):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class ItemsOrder(Payload):
    """Order built from the lines in the request."""

    source: Literal["items"]
    items: List[OrderLine] = Field(..., min_length=1)
    shipping_address: Optional[ShippingAddress] = None


class CartOrder(Payload):
    """Order built from the caller's cart, which is emptied afterwards."""

    source: Literal["cart"]
    shipping_address: Optional[ShippingAddress] = None


class FromCartRequest(Payload):
    shipping_address: Optional[ShippingAddress] = None


class VerifyPaymentRequest(Payload):
    payment_id: Optional[str] = None


OrderRequest = Annotated[Union[ItemsOrder, CartOrder], Body(discriminator="source")]


def _address(payload) -> Optional[Dict[str, Any]]:
    return payload.shipping_address.model_dump() if payload and payload.shipping_address else None


@router.post("", status_code=201, response_model=ApiResponse[OrderOut])
def create_order(
    payload: OrderRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    user_id = str(user["_id"])
    if isinstance(payload, CartOrder):
        order = services.orders.create_order_from_cart(user_id, _address(payload))
    else:
        lines = [line.model_dump() for line in payload.items]
        order = services.orders.create_order(user_id, lines, _address(payload))
    return ok(order, "Order created")


@router.post("/from-cart", status_code=201, response_model=ApiResponse[OrderOut])
def create_order_from_cart(
    payload: Optional[FromCartRequest] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(services.orders.create_order_from_cart(str(user["_id"]), _address(payload)), "Order created")


@router.get("", response_model=ApiResponse[List[OrderOut]])
def list_orders(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.orders.list_orders(user))


@router.get("/{order_id}", response_model=ApiResponse[OrderOut])
def get_order(order_id: str, user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.orders.get_order(order_id, user))


@router.post("/{order_id}/payment", response_model=ApiResponse[CheckoutOut])
def create_payment(
    order_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(services.payments.create_order_checkout(order_id, user), "Checkout created")


@router.post("/{order_id}/verify-payment", response_model=ApiResponse[OrderOut])
def verify_payment(
    order_id: str,
    payload: Optional[VerifyPaymentRequest] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    payment_id = payload.payment_id if payload else None
    return ok(services.payments.verify_payment(order_id, user, payment_id))
