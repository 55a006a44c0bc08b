import logging
import re
from typing import Any, Dict, Optional

from errors import BadRequestError, ConflictError, NotFoundError
from repositories import UserRepository
from schemas import RecordStatus, Role

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {"name", "phone", "birth_date", "gender", "address"}
ADMIN_EDITABLE_FIELDS = {"name", "email", "phone", "address"}


class UserService:
    """Profile management for the signed-in user and user administration.

    The last active admin can never be demoted, deactivated or deleted.
    """

    def __init__(self, users: UserRepository, media=None):
        self.users = users
        self.media = media

    def get(self, user_id: str, include_deleted: bool = False) -> Dict[str, Any]:
        user = self.users.find_by_id(user_id, include_deleted=include_deleted)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    # ---------------------- Profile ----------------------

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        user = self.get(user_id)
        changes = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
        if not changes:
            return user
        return self.users.update(user["_id"], changes)

    def upload_avatar(self, user_id: str, content: bytes, filename: str, content_type: Optional[str]) -> Dict[str, Any]:
        user = self.get(user_id)
        uploaded = self.media.upload(content, filename, content_type, folder="avatars")
        return self.users.update(user["_id"], {"avatar": uploaded["url"]})

    # ---------------------- Admin ----------------------

    def search(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        deleted: bool = False,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {
            "record_status": RecordStatus.DELETED.value if deleted else RecordStatus.ACTIVE.value
        }
        if role:
            query["role"] = role
        if is_active is not None:
            query["is_active"] = is_active
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"email": pattern}]
        sort = [("deleted_at", -1)] if deleted else [("created_at", -1)]
        return self.users.paginate(query, sort=sort, page=page, limit=limit)

    def stats(self) -> Dict[str, Any]:
        total = self.users.count()
        active = self.users.count({"is_active": True})
        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "admin_users": self.users.count({"role": Role.ADMIN.value}),
            "deleted_users": self.users.count({"record_status": RecordStatus.DELETED.value}),
            "users_by_role": self.users.count_by_role(),
        }

    def _guard_last_admin(self, user: Dict[str, Any], action: str) -> None:
        if user["role"] == Role.ADMIN.value and user.get("is_active", True):
            if self.users.count_other_admins(user["_id"]) == 0:
                raise ConflictError(f"Cannot {action} the only active administrator")

    def set_role(self, user_id: str, role: str) -> Dict[str, Any]:
        user = self.get(user_id)
        if role == user["role"]:
            return user
        if role == Role.USER.value:
            self._guard_last_admin(user, "demote")
        logger.info("User %s role changed to %s", user_id, role)
        return self.users.update(user["_id"], {"role": role})

    def set_active(self, user_id: str, is_active: bool) -> Dict[str, Any]:
        user = self.get(user_id)
        if not is_active:
            self._guard_last_admin(user, "deactivate")
        return self.users.update(user["_id"], {"is_active": is_active})

    def admin_update(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        user = self.get(user_id)
        changes = {k: v for k, v in fields.items() if k in ADMIN_EDITABLE_FIELDS}
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
            other = self.users.find_by_email(changes["email"], include_deleted=True)
            if other is not None and other["_id"] != user["_id"]:
                raise ConflictError("E-mail already in use by another user")
        if not changes:
            return user
        return self.users.update(user["_id"], changes)

    def delete(self, user_id: str) -> Dict[str, Any]:
        user = self.get(user_id)
        self._guard_last_admin(user, "delete")
        self.users.update(user["_id"], {"is_active": False})
        logger.info("User %s deleted", user_id)
        return self.users.soft_delete_by_id(user["_id"])

    def restore(self, user_id: str) -> Dict[str, Any]:
        user = self.get(user_id, include_deleted=True)
        if user.get("record_status") != RecordStatus.DELETED.value:
            raise BadRequestError("User is not deleted")
        self.users.restore_by_id(user["_id"])
        return self.users.update(user["_id"], {"is_active": True})
