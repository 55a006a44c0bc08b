import logging
from typing import Any, Dict, List, Optional

from errors import BadRequestError, ConflictError, NotFoundError
from repositories import CategoryRepository, ProductRepository
from schemas import Category, RecordStatus

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, categories: CategoryRepository, products: ProductRepository):
        self.categories = categories
        self.products = products

    def list(self) -> List[Dict[str, Any]]:
        return self.categories.find(sort=[("name", 1)])

    def search(self, term: str) -> List[Dict[str, Any]]:
        term = (term or "").strip()
        if not term:
            raise BadRequestError("Search term is required")
        return self.categories.search(term)

    def get(self, category_id: str) -> Dict[str, Any]:
        category = self.categories.find_by_id(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def products_of(self, category_id: str) -> List[Dict[str, Any]]:
        category = self.get(category_id)
        return self.products.find({"category_id": str(category["_id"])}, sort=[("name", 1)])

    def _check_name_free(self, name: str, current_id: Optional[Any] = None) -> None:
        existing = self.categories.find_by_name(name)
        if existing is not None and existing["_id"] != current_id:
            raise ConflictError(f"A category named '{name.strip()}' already exists")

    def create(self, name: str, description: str = "") -> Dict[str, Any]:
        self._check_name_free(name)
        category = self.categories.create(Category(
            name=name.strip(),
            name_key=name.strip().lower(),
            description=(description or "").strip(),
        ))
        logger.info("Category %s created", category["name"])
        return category

    def update(self, category_id: str, name: Optional[str] = None, description: Optional[str] = None) -> Dict[str, Any]:
        category = self.get(category_id)
        fields: Dict[str, Any] = {}
        if name and name.strip() != category["name"]:
            self._check_name_free(name, category["_id"])
            fields["name"] = name.strip()
            fields["name_key"] = name.strip().lower()
        if description is not None:
            fields["description"] = description.strip()
        if not fields:
            return category
        return self.categories.update(category["_id"], fields)

    def delete(self, category_id: str) -> Dict[str, Any]:
        category = self.get(category_id)
        in_use = self.products.count({"category_id": str(category["_id"])})
        if in_use:
            raise ConflictError(f"Category still has {in_use} active product(s)")
        logger.info("Category %s deleted", category["name"])
        return self.categories.soft_delete_by_id(category["_id"])

    def stats(self) -> Dict[str, Any]:
        per_category = self.products.count_by_category()
        categories = self.categories.find(sort=[("name", 1)])
        return {
            "total_categories": len(categories),
            "deleted_categories": self.categories.count({"record_status": RecordStatus.DELETED.value}),
            "products_per_category": [
                {"id": str(c["_id"]), "name": c["name"], "products": per_category.get(str(c["_id"]), 0)}
                for c in categories
            ],
        }
