from datetime import timedelta
from typing import Any, Dict, Optional

from pymongo import ReturnDocument

from database import utc_now
from repositories.base import MongoRepository

PENDING = "pending"
PROCESSING = "processing"
DONE = "done"
FAILED = "failed"


class PaymentEventRepository(MongoRepository):
    """Outbox of payment ids the gateway told us about.

    There is one document per gateway payment id. Re-notifying an id puts
    it back to pending, so every notification leads to at least one
    reconciliation after it was received.
    """

    collection_name = "payment_events"

    def enqueue(self, payment_id: str, source: str) -> Dict[str, Any]:
        now = utc_now()
        return self.collection.find_one_and_update(
            {"payment_id": payment_id},
            {
                "$set": {"state": PENDING, "source": source, "available_at": now, "updated_at": now},
                "$setOnInsert": {"attempts": 0, "created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    def claim_next(self, lock_timeout: float = 60) -> Optional[Dict[str, Any]]:
        now = utc_now()
        stale = now - timedelta(seconds=lock_timeout)
        return self.collection.find_one_and_update(
            {"$or": [
                {"state": PENDING, "available_at": {"$lte": now}},
                {"state": PROCESSING, "locked_at": {"$lt": stale}},
            ]},
            {"$set": {"state": PROCESSING, "locked_at": now, "updated_at": now}, "$inc": {"attempts": 1}},
            sort=[("available_at", 1)],
            return_document=ReturnDocument.AFTER,
        )

    def mark_done(self, event: Dict[str, Any]) -> None:
        self.collection.update_one(
            {"_id": event["_id"], "state": PROCESSING},
            {"$set": {"state": DONE, "last_error": None, "locked_at": None, "updated_at": utc_now()}},
        )

    def mark_failed(self, event: Dict[str, Any], error: str, max_attempts: int) -> str:
        attempts = event.get("attempts", 1)
        now = utc_now()
        if attempts >= max_attempts:
            state = FAILED
            available_at = now
        else:
            state = PENDING
            available_at = now + timedelta(seconds=min(2 ** attempts, 300))
        self.collection.update_one(
            {"_id": event["_id"], "state": PROCESSING},
            {"$set": {
                "state": state,
                "last_error": error[:500],
                "locked_at": None,
                "available_at": available_at,
                "updated_at": now,
            }},
        )
        return state
