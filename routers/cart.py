from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import Field

from dependencies import Services, get_current_user, get_services
from routers.common import Payload, ok
from schemas import ApiResponse, CartOut

router = APIRouter(prefix="/cart", tags=["cart"])


class CartItemAdd(Payload):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class CartItemUpdate(Payload):
    quantity: int = Field(..., ge=1)


@router.get("", response_model=ApiResponse[CartOut])
def get_cart(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.cart.get_cart(str(user["_id"])))


@router.post("/items", response_model=ApiResponse[CartOut])
def add_item(
    payload: CartItemAdd,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    cart = services.cart.add_item(str(user["_id"]), payload.product_id, payload.quantity)
    return ok(cart, "Product added to cart")


@router.put("/items/{product_id}", response_model=ApiResponse[CartOut])
def update_item(
    product_id: str,
    payload: CartItemUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(services.cart.update_item(str(user["_id"]), product_id, payload.quantity), "Cart updated")


@router.delete("/items/{product_id}", response_model=ApiResponse[CartOut])
def remove_item(
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(services.cart.remove_item(str(user["_id"]), product_id), "Product removed from cart")


@router.delete("", response_model=ApiResponse[CartOut])
def clear_cart(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.cart.clear(str(user["_id"])), "Cart emptied")
