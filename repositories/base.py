import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

from database import to_object_id, utc_now
from schemas import RecordStatus

Sort = Sequence[Tuple[str, int]]


class MongoRepository:
    """Shared CRUD helpers over one collection.

    Repositories with ``soft_delete = True`` only see ``record_status ==
    "active"`` documents unless a caller passes ``include_deleted=True``.
    """

    collection_name = ""
    soft_delete = False

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def _scope(self, query: Optional[Dict[str, Any]] = None, include_deleted: bool = False) -> Dict[str, Any]:
        q = dict(query or {})
        if self.soft_delete and not include_deleted and "record_status" not in q:
            q["record_status"] = RecordStatus.ACTIVE.value
        return q

    def create(self, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
        doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
        now = utc_now()
        doc["created_at"] = now
        doc["updated_at"] = now
        inserted_id = self.collection.insert_one(doc).inserted_id
        return self.collection.find_one({"_id": inserted_id})

    def find_by_id(self, doc_id: Any, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return self.collection.find_one(self._scope({"_id": oid}, include_deleted))

    def find_one(self, query: Dict[str, Any], include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        return self.collection.find_one(self._scope(query, include_deleted))

    def find(
        self,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[Sort] = None,
        limit: int = 0,
        include_deleted: bool = False,
    ) -> List[Dict[str, Any]]:
        cursor = self.collection.find(self._scope(query, include_deleted))
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def find_by_ids(self, ids: Sequence[Any], include_deleted: bool = True) -> Dict[str, Dict[str, Any]]:
        oids = [oid for oid in (to_object_id(i) for i in ids) if oid is not None]
        if not oids:
            return {}
        docs = self.collection.find(self._scope({"_id": {"$in": oids}}, include_deleted))
        return {str(d["_id"]): d for d in docs}

    def count(self, query: Optional[Dict[str, Any]] = None, include_deleted: bool = False) -> int:
        return self.collection.count_documents(self._scope(query, include_deleted))

    def paginate(
        self,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[Sort] = None,
        page: int = 1,
        limit: int = 10,
        include_deleted: bool = False,
    ) -> Dict[str, Any]:
        q = self._scope(query, include_deleted)
        cursor = self.collection.find(q)
        if sort:
            cursor = cursor.sort(list(sort))
        items = list(cursor.skip((page - 1) * limit).limit(limit))
        total = self.collection.count_documents(q)
        return {
            "items": items,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    def update(self, doc_id: Any, fields: Dict[str, Any], include_deleted: bool = True) -> Optional[Dict[str, Any]]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        changes = dict(fields)
        changes["updated_at"] = utc_now()
        return self.collection.find_one_and_update(
            self._scope({"_id": oid}, include_deleted),
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )

    def soft_delete_by_id(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        return self.update(
            doc_id,
            {"record_status": RecordStatus.DELETED.value, "deleted_at": utc_now()},
            include_deleted=False,
        )

    def restore_by_id(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        return self.update(doc_id, {"record_status": RecordStatus.ACTIVE.value, "deleted_at": None})
