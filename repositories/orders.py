from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from database import to_object_id, utc_now
from repositories.base import MongoRepository
from schemas import SALE_STATUSES, OrderStatus


class OrderRepository(MongoRepository):
    collection_name = "orders"

    def find_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        return self.find({"user_id": user_id}, sort=[("created_at", -1)])

    def find_by_payment_id(self, payment_id: str) -> Optional[Dict[str, Any]]:
        return self.find_one({"payment_id": payment_id})

    def update_versioned(self, order_id: Any, version: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply ``fields`` only if nobody wrote the order since ``version`` was read."""
        changes = dict(fields)
        changes["updated_at"] = utc_now()
        return self.collection.find_one_and_update(
            {"_id": to_object_id(order_id), "version": version},
            {"$set": changes, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )

    def delivered_for_user(self, user_id: str, product_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"user_id": user_id, "status": OrderStatus.DELIVERED.value}
        if product_id:
            query["items.product_id"] = product_id
        return self.find(query, sort=[("created_at", -1)])

    def count_by_status(self) -> Dict[str, int]:
        rows = self.collection.aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
        return {row["_id"]: row["count"] for row in rows}

    def revenue_summary(self) -> Dict[str, float]:
        rows = list(self.collection.aggregate([
            {"$match": {"status": {"$in": SALE_STATUSES}}},
            {"$group": {"_id": None, "total": {"$sum": "$total_amount"}, "count": {"$sum": 1}}},
        ]))
        if not rows:
            return {"total": 0.0, "count": 0, "average": 0.0}
        total, count = rows[0]["total"], rows[0]["count"]
        return {"total": total, "count": count, "average": total / count if count else 0.0}

    def top_products(self, limit: int = 5) -> List[Dict[str, Any]]:
        return list(self.collection.aggregate([
            {"$match": {"status": {"$in": SALE_STATUSES}}},
            {"$unwind": "$items"},
            {"$group": {
                "_id": "$items.product_id",
                "name": {"$first": "$items.name"},
                "total_sold": {"$sum": "$items.quantity"},
                "revenue": {"$sum": "$items.subtotal"},
            }},
            {"$sort": {"total_sold": -1}},
            {"$limit": limit},
        ]))

    def sales_between(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        return self.find(
            {"created_at": {"$gte": start, "$lte": end}, "status": {"$in": SALE_STATUSES}},
            sort=[("created_at", 1)],
        )
