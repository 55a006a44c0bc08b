import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from database import as_utc
from errors import AppError, BadRequestError, ForbiddenError, NotFoundError
from repositories import CartRepository, OrderRepository, ProductRepository, UserRepository
from schemas import Order, OrderItem, OrderStatus, RecordStatus, Role, ShippingAddress
from services.order_state import check_transition

logger = logging.getLogger(__name__)

MAX_WRITE_RETRIES = 5


class OrderService:
    """Order creation (direct or from the cart), lookup and status changes."""

    def __init__(
        self,
        orders: OrderRepository,
        products: ProductRepository,
        carts: CartRepository,
        users: UserRepository,
        restore_stock_on_cancel: bool = False,
    ):
        self.orders = orders
        self.products = products
        self.carts = carts
        self.users = users
        self.restore_stock_on_cancel = restore_stock_on_cancel

    # ---------------------- Creation ----------------------

    def _price_lines(self, lines: List[Dict[str, Any]]) -> List[OrderItem]:
        """Validate every line before anything is written.

        Lines for the same product are merged. Inactive products and short
        stock are collected and reported together.
        """
        wanted: "OrderedDict[str, int]" = OrderedDict()
        for line in lines:
            wanted[line["product_id"]] = wanted.get(line["product_id"], 0) + int(line["quantity"])

        products = self.products.find_by_ids(list(wanted.keys()))
        items: List[OrderItem] = []
        problems: List[str] = []
        for product_id, quantity in wanted.items():
            product = products.get(product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            if product.get("record_status") != RecordStatus.ACTIVE.value:
                problems.append(f"Product '{product['name']}' is no longer available")
                continue
            if product.get("stock", 0) < quantity:
                problems.append(
                    f"Insufficient stock for '{product['name']}' (requested {quantity}, available {product.get('stock', 0)})"
                )
                continue
            price = float(product["price"])
            items.append(OrderItem(
                product_id=product_id,
                name=product["name"],
                quantity=quantity,
                price=price,
                subtotal=round(price * quantity, 2),
            ))
        if problems:
            raise BadRequestError("Some items cannot be ordered", errors=problems)
        return items

    def create_order(
        self,
        user_id: str,
        lines: List[Dict[str, Any]],
        shipping_address: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not lines:
            raise BadRequestError("An order needs at least one item")
        items = self._price_lines(lines)
        order = self.orders.create(Order(
            user_id=user_id,
            items=items,
            total_amount=round(sum(i.subtotal for i in items), 2),
            shipping_address=ShippingAddress(**shipping_address) if shipping_address else None,
        ))
        for item in items:
            if not self.products.decrement_stock(item.product_id, item.quantity):
                logger.warning(
                    "Stock for product %s ran out while placing order %s", item.product_id, order["_id"]
                )
        logger.info("Order %s created for user %s, total %.2f", order["_id"], user_id, order["total_amount"])
        return order

    def create_order_from_cart(self, user_id: str, shipping_address: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        cart = self.carts.get_or_create(user_id)
        if not cart.get("items"):
            raise BadRequestError("Cart is empty")
        order = self.create_order(user_id, cart["items"], shipping_address)
        self.carts.clear(user_id)
        return order

    # ---------------------- Queries ----------------------

    def get_order(self, order_id: str, user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        order = self.orders.find_by_id(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if user is not None and user["role"] != Role.ADMIN.value and order["user_id"] != str(user["_id"]):
            raise ForbiddenError("You do not have access to this order")
        return order

    def list_orders(self, user: Dict[str, Any]) -> List[Dict[str, Any]]:
        if user["role"] == Role.ADMIN.value:
            return self.with_users(self.orders.find(sort=[("created_at", -1)]))
        return self.orders.find_by_user(str(user["_id"]))

    def with_users(self, orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        users = self.users.find_by_ids([o["user_id"] for o in orders])
        for order in orders:
            owner = users.get(order["user_id"])
            if owner:
                order["user"] = {"_id": owner["_id"], "name": owner["name"], "email": owner["email"]}
        return orders

    def search(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        min_amount: Optional[float] = None,
        max_amount: Optional[float] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if user_id:
            query["user_id"] = user_id
        if min_amount is not None or max_amount is not None:
            query["total_amount"] = {}
            if min_amount is not None:
                query["total_amount"]["$gte"] = min_amount
            if max_amount is not None:
                query["total_amount"]["$lte"] = max_amount
        if start_date or end_date:
            query["created_at"] = {}
            if start_date:
                query["created_at"]["$gte"] = as_utc(start_date)
            if end_date:
                query["created_at"]["$lte"] = as_utc(end_date)
        result = self.orders.paginate(query, sort=[("created_at", -1)], page=page, limit=limit)
        self.with_users(result["items"])
        return result

    def recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.with_users(self.orders.find(sort=[("created_at", -1)], limit=limit))

    def stats(self) -> Dict[str, Any]:
        revenue = self.orders.revenue_summary()
        return {
            "total_orders": self.orders.count(),
            "orders_by_status": self.orders.count_by_status(),
            "total_revenue": revenue["total"],
            "average_order_value": revenue["average"],
            "completed_orders": revenue["count"],
        }

    # ---------------------- Status ----------------------

    def update_status(self, order_id: str, new_status: str) -> Dict[str, Any]:
        for _ in range(MAX_WRITE_RETRIES):
            order = self.get_order(order_id)
            if not check_transition(order["status"], new_status):
                return order
            updated = self.orders.update_versioned(order["_id"], order.get("version", 0), {"status": new_status})
            if updated is None:
                # Changed under us; re-validate against the fresh state.
                continue
            logger.info("Order %s moved from %s to %s", order_id, order["status"], new_status)
            if new_status == OrderStatus.CANCELLED.value:
                self.release_stock(updated)
            return updated
        raise AppError(f"Order {order_id} kept changing while updating its status")

    def release_stock(self, order: Dict[str, Any]) -> None:
        if not self.restore_stock_on_cancel:
            return
        for item in order["items"]:
            self.products.restock(item["product_id"], item["quantity"])
        logger.info("Stock returned for cancelled order %s", order["_id"])
