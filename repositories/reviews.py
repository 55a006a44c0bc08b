from typing import Any, Dict, List, Optional

from repositories.base import MongoRepository
from schemas import RecordStatus


class ReviewRepository(MongoRepository):
    collection_name = "reviews"
    soft_delete = True

    def find_by_product(self, product_id: str) -> List[Dict[str, Any]]:
        return self.find({"product_id": product_id}, sort=[("created_at", -1)])

    def find_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        return self.find({"user_id": user_id}, sort=[("created_at", -1)])

    def find_by_product_and_user(self, product_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return self.find_one({"product_id": product_id, "user_id": user_id})

    def rating_summary(self, product_id: str) -> Dict[str, float]:
        rows = list(self.collection.aggregate([
            {"$match": {"product_id": product_id, "record_status": RecordStatus.ACTIVE.value}},
            {"$group": {"_id": None, "average": {"$avg": "$rating"}, "count": {"$sum": 1}}},
        ]))
        if not rows:
            return {"average": 0.0, "count": 0}
        return {"average": rows[0]["average"] or 0.0, "count": rows[0]["count"]}

    def rating_distribution(self, product_id: Optional[str] = None, active_only: bool = True) -> Dict[int, int]:
        match: Dict[str, Any] = {}
        if product_id:
            match["product_id"] = product_id
        if active_only:
            match["record_status"] = RecordStatus.ACTIVE.value
        rows = self.collection.aggregate([
            {"$match": match},
            {"$group": {"_id": "$rating", "count": {"$sum": 1}}},
        ])
        return {int(row["_id"]): row["count"] for row in rows}

    def average_rating(self) -> float:
        rows = list(self.collection.aggregate([
            {"$group": {"_id": None, "average": {"$avg": "$rating"}}},
        ]))
        return (rows[0]["average"] or 0.0) if rows else 0.0
