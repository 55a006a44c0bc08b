from typing import Any, Dict, Optional

from database import to_object_id, utc_now
from repositories.base import MongoRepository
from schemas import RecordStatus, Role


class UserRepository(MongoRepository):
    collection_name = "users"
    soft_delete = True

    def find_by_email(self, email: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        return self.find_one({"email": email.strip().lower()}, include_deleted=include_deleted)

    def find_by_reset_token(self, digest: str) -> Optional[Dict[str, Any]]:
        return self.find_one({"password_reset_token": digest, "password_reset_expires": {"$gt": utc_now()}})

    def find_by_verification_token(self, digest: str) -> Optional[Dict[str, Any]]:
        return self.find_one({
            "email_verification_token": digest,
            "email_verification_expires": {"$gt": utc_now()},
        })

    def count_other_admins(self, user_id: Any, active_only: bool = True) -> int:
        query: Dict[str, Any] = {"role": Role.ADMIN.value, "_id": {"$ne": to_object_id(user_id)}}
        if active_only:
            query["is_active"] = True
        return self.count(query)

    def count_by_role(self) -> Dict[str, int]:
        rows = self.collection.aggregate([
            {"$match": {"record_status": RecordStatus.ACTIVE.value}},
            {"$group": {"_id": "$role", "count": {"$sum": 1}}},
        ])
        return {row["_id"]: row["count"] for row in rows}
