from typing import Any, Dict, List

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import utc_now
from repositories.base import MongoRepository
from schemas import Cart


class CartRepository(MongoRepository):
    collection_name = "carts"

    def get_or_create(self, user_id: str) -> Dict[str, Any]:
        cart = self.collection.find_one({"user_id": user_id})
        if cart is not None:
            return cart
        try:
            return self.create(Cart(user_id=user_id))
        except DuplicateKeyError:
            # Lost the race against a concurrent first access.
            return self.collection.find_one({"user_id": user_id})

    def save_items(self, user_id: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        self.get_or_create(user_id)
        return self.collection.find_one_and_update(
            {"user_id": user_id},
            {"$set": {"items": items, "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )

    def clear(self, user_id: str) -> Dict[str, Any]:
        return self.save_items(user_id, [])
