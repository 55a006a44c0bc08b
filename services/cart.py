from typing import Any, Dict, List

from errors import BadRequestError, NotFoundError
from repositories import CartRepository, ProductRepository
from schemas import RecordStatus


class CartService:
    def __init__(self, carts: CartRepository, products: ProductRepository):
        self.carts = carts
        self.products = products

    def _active_product(self, product_id: str) -> Dict[str, Any]:
        product = self.products.find_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def view(self, cart: Dict[str, Any]) -> Dict[str, Any]:
        """Price the stored lines with the current catalog.

        Lines whose product was deleted stay in the cart but are flagged
        unavailable and do not count towards the total.
        """
        products = self.products.find_by_ids([i["product_id"] for i in cart.get("items", [])])
        lines: List[Dict[str, Any]] = []
        total = 0.0
        for item in cart.get("items", []):
            product = products.get(item["product_id"])
            available = product is not None and product.get("record_status") == RecordStatus.ACTIVE.value
            line = {"product_id": item["product_id"], "quantity": item["quantity"], "available": available}
            if product is not None:
                line.update(
                    name=product["name"],
                    price=product["price"],
                    image=(product.get("images") or [None])[0],
                    stock=product.get("stock", 0),
                )
            if available:
                line["subtotal"] = round(product["price"] * item["quantity"], 2)
                total += line["subtotal"]
            lines.append(line)
        return {
            "_id": cart.get("_id"),
            "user_id": cart["user_id"],
            "items": lines,
            "total_amount": round(total, 2),
            "updated_at": cart.get("updated_at"),
        }

    def get_cart(self, user_id: str) -> Dict[str, Any]:
        return self.view(self.carts.get_or_create(user_id))

    def add_item(self, user_id: str, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        product = self._active_product(product_id)
        items = list(self.carts.get_or_create(user_id).get("items", []))
        for item in items:
            if item["product_id"] == product_id:
                quantity += item["quantity"]
                item["quantity"] = quantity
                break
        else:
            items.append({"product_id": product_id, "quantity": quantity})
        if quantity > product.get("stock", 0):
            raise BadRequestError(f"Only {product.get('stock', 0)} units of '{product['name']}' in stock")
        return self.view(self.carts.save_items(user_id, items))

    def update_item(self, user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        items = list(self.carts.get_or_create(user_id).get("items", []))
        line = next((i for i in items if i["product_id"] == product_id), None)
        if line is None:
            raise NotFoundError("Cart item", product_id)
        product = self._active_product(product_id)
        if quantity > product.get("stock", 0):
            raise BadRequestError(f"Only {product.get('stock', 0)} units of '{product['name']}' in stock")
        line["quantity"] = quantity
        return self.view(self.carts.save_items(user_id, items))

    def remove_item(self, user_id: str, product_id: str) -> Dict[str, Any]:
        items = self.carts.get_or_create(user_id).get("items", [])
        remaining = [i for i in items if i["product_id"] != product_id]
        if len(remaining) == len(items):
            raise NotFoundError("Cart item", product_id)
        return self.view(self.carts.save_items(user_id, remaining))

    def clear(self, user_id: str) -> Dict[str, Any]:
        return self.view(self.carts.clear(user_id))
