import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from database import as_utc
from errors import ConflictError, ForbiddenError, NotFoundError
from repositories import OrderRepository, ProductRepository, ReviewRepository, UserRepository
from schemas import RecordStatus, Review, Role

logger = logging.getLogger(__name__)


def _one_decimal(value: float) -> float:
    """Round half up to one decimal place, so 2.25 becomes 2.3."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), ROUND_HALF_UP))


def _distribution(counts: Dict[int, int]) -> Dict[str, int]:
    return {str(star): counts.get(star, 0) for star in range(5, 0, -1)}


class ReviewService:
    """Product reviews and the rating aggregate kept on each product.

    ``average_rating`` and ``reviews_count`` on the product are recomputed
    from all active reviews after every create, edit, delete or status
    change.
    """

    def __init__(
        self,
        reviews: ReviewRepository,
        products: ProductRepository,
        orders: OrderRepository,
        users: UserRepository,
    ):
        self.reviews = reviews
        self.products = products
        self.orders = orders
        self.users = users

    def refresh_rating(self, product_id: str) -> Dict[str, Any]:
        summary = self.reviews.rating_summary(product_id)
        average = _one_decimal(summary["average"]) if summary["count"] else 0.0
        self.products.set_rating(product_id, average, summary["count"])
        return {"average_rating": average, "reviews_count": summary["count"]}

    def with_users(self, reviews: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        users = self.users.find_by_ids([r["user_id"] for r in reviews])
        for review in reviews:
            author = users.get(review["user_id"])
            if author:
                review["user"] = {"_id": author["_id"], "name": author["name"], "email": author["email"]}
        return reviews

    def _product(self, product_id: str) -> Dict[str, Any]:
        product = self.products.find_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    # ---------------------- Public ----------------------

    def create(
        self,
        user_id: str,
        product_id: str,
        rating: int,
        comment: str,
        order_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._product(product_id)
        if self.reviews.find_by_product_and_user(product_id, user_id) is not None:
            raise ConflictError("You have already reviewed this product")
        review = self.reviews.create(Review(
            product_id=product_id,
            user_id=user_id,
            order_id=order_id,
            rating=rating,
            comment=comment.strip(),
        ))
        self.refresh_rating(product_id)
        logger.info("Review %s created for product %s", review["_id"], product_id)
        return review

    def get(self, review_id: str, include_deleted: bool = False) -> Dict[str, Any]:
        review = self.reviews.find_by_id(review_id, include_deleted=include_deleted)
        if review is None:
            raise NotFoundError("Review", review_id)
        return review

    def by_product(self, product_id: str) -> List[Dict[str, Any]]:
        self._product(product_id)
        return self.with_users(self.reviews.find_by_product(product_id))

    def by_user(self, user_id: str) -> List[Dict[str, Any]]:
        return self.reviews.find_by_user(user_id)

    def update(self, review_id: str, user_id: str, rating: Optional[int] = None, comment: Optional[str] = None) -> Dict[str, Any]:
        review = self.get(review_id)
        if review["user_id"] != user_id:
            raise ForbiddenError("You can only edit your own reviews")
        fields: Dict[str, Any] = {}
        if rating is not None:
            fields["rating"] = rating
        if comment is not None:
            fields["comment"] = comment.strip()
        if not fields:
            return review
        updated = self.reviews.update(review["_id"], fields)
        self.refresh_rating(review["product_id"])
        return updated

    def delete(self, review_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        review = self.get(review_id)
        if user["role"] != Role.ADMIN.value and review["user_id"] != str(user["_id"]):
            raise ForbiddenError("You can only delete your own reviews")
        deleted = self.reviews.soft_delete_by_id(review["_id"])
        self.refresh_rating(review["product_id"])
        return deleted

    def product_stats(self, product_id: str) -> Dict[str, Any]:
        self._product(product_id)
        summary = self.reviews.rating_summary(product_id)
        return {
            "average_rating": _one_decimal(summary["average"]) if summary["count"] else 0.0,
            "total_reviews": summary["count"],
            "distribution": _distribution(self.reviews.rating_distribution(product_id)),
        }

    def eligibility(self, user_id: str, product_id: str) -> Dict[str, Any]:
        """Delivered orders of the user that contain the product and have no review yet."""
        self._product(product_id)
        delivered = self.orders.delivered_for_user(user_id, product_id)
        if not delivered:
            return {
                "can_review": False,
                "reason": "The product must be purchased and delivered before it can be reviewed",
                "available_orders": [],
            }
        reviewed = {r.get("order_id") for r in self.reviews.find_by_user(user_id) if r["product_id"] == product_id}
        available = [str(o["_id"]) for o in delivered if str(o["_id"]) not in reviewed]
        if not available or self.reviews.find_by_product_and_user(product_id, user_id):
            return {"can_review": False, "reason": "You have already reviewed this product", "available_orders": []}
        return {"can_review": True, "reason": "You can review this product", "available_orders": available}

    def reviewable(self, user_id: str) -> List[Dict[str, Any]]:
        reviewed = {r["product_id"] for r in self.reviews.find_by_user(user_id)}
        out: List[Dict[str, Any]] = []
        seen = set()
        for order in self.orders.delivered_for_user(user_id):
            for item in order["items"]:
                if item["product_id"] in reviewed or item["product_id"] in seen:
                    continue
                seen.add(item["product_id"])
                out.append({
                    "order_id": str(order["_id"]),
                    "order_date": order.get("created_at"),
                    "product_id": item["product_id"],
                    "name": item["name"],
                    "quantity": item["quantity"],
                    "price": item["price"],
                })
        return out

    # ---------------------- Admin ----------------------

    def search(
        self,
        page: int = 1,
        limit: int = 10,
        rating: Optional[int] = None,
        product_id: Optional[str] = None,
        user_id: Optional[str] = None,
        record_status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if rating:
            query["rating"] = rating
        if product_id:
            query["product_id"] = product_id
        if user_id:
            query["user_id"] = user_id
        if record_status:
            query["record_status"] = record_status
        if start_date or end_date:
            query["created_at"] = {}
            if start_date:
                query["created_at"]["$gte"] = as_utc(start_date)
            if end_date:
                query["created_at"]["$lte"] = as_utc(end_date)
        result = self.reviews.paginate(
            query, sort=[("created_at", -1)], page=page, limit=limit, include_deleted=True
        )
        self.with_users(result["items"])
        return result

    def recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.with_users(self.reviews.find(sort=[("created_at", -1)], limit=limit, include_deleted=True))

    def stats(self) -> Dict[str, Any]:
        total = self.reviews.count(include_deleted=True)
        active = self.reviews.count()
        return {
            "total_reviews": total,
            "active_reviews": active,
            "deleted_reviews": total - active,
            "average_rating": round(self.reviews.average_rating(), 2),
            "reviews_by_rating": _distribution(self.reviews.rating_distribution(active_only=False)),
        }

    def set_status(self, review_id: str, record_status: str) -> Dict[str, Any]:
        review = self.get(review_id, include_deleted=True)
        if record_status == RecordStatus.DELETED.value:
            updated = self.reviews.soft_delete_by_id(review["_id"]) or review
        else:
            active = self.reviews.find_by_product_and_user(review["product_id"], review["user_id"])
            if active is not None and active["_id"] != review["_id"]:
                raise ConflictError("The author already has an active review for this product")
            updated = self.reviews.restore_by_id(review["_id"])
        self.refresh_rating(review["product_id"])
        return updated

    def admin_delete(self, review_id: str) -> Dict[str, Any]:
        return self.set_status(review_id, RecordStatus.DELETED.value)
