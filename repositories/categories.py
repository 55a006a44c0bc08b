import re
from typing import Any, Dict, List, Optional

from repositories.base import MongoRepository


class CategoryRepository(MongoRepository):
    collection_name = "categories"
    soft_delete = True

    def find_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        # Deleted categories keep their name reserved.
        return self.find_one({"name_key": name.strip().lower()}, include_deleted=True)

    def search(self, term: str) -> List[Dict[str, Any]]:
        pattern = {"$regex": re.escape(term), "$options": "i"}
        return self.find({"$or": [{"name": pattern}, {"description": pattern}]}, sort=[("name", 1)])
