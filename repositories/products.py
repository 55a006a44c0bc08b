from typing import Any, Dict, Optional

from database import to_object_id, utc_now
from repositories.base import MongoRepository
from schemas import RecordStatus


class ProductRepository(MongoRepository):
    collection_name = "products"
    soft_delete = True

    def decrement_stock(self, product_id: Any, quantity: int) -> bool:
        """Take ``quantity`` units out of stock and count them as sold.

        The filter refuses to drive stock below zero; False means another
        request got there first.
        """
        res = self.collection.update_one(
            {"_id": to_object_id(product_id), "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity, "sold_count": quantity}, "$set": {"updated_at": utc_now()}},
        )
        return res.modified_count == 1

    def restock(self, product_id: Any, quantity: int) -> None:
        self.collection.update_one(
            {"_id": to_object_id(product_id)},
            {"$inc": {"stock": quantity, "sold_count": -quantity}, "$set": {"updated_at": utc_now()}},
        )

    def set_rating(self, product_id: Any, average: float, count: int) -> None:
        self.collection.update_one(
            {"_id": to_object_id(product_id)},
            {"$set": {"average_rating": average, "reviews_count": count, "updated_at": utc_now()}},
        )

    def push_image(self, product_id: Any, url: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(product_id)
        self.collection.update_one(
            self._scope({"_id": oid}),
            {"$push": {"images": url}, "$set": {"updated_at": utc_now()}},
        )
        return self.find_by_id(oid)

    def count_by_category(self) -> Dict[str, int]:
        rows = self.collection.aggregate([
            {"$match": {"record_status": RecordStatus.ACTIVE.value}},
            {"$group": {"_id": "$category_id", "count": {"$sum": 1}}},
        ])
        return {row["_id"]: row["count"] for row in rows if row["_id"]}
