import logging
import re
from typing import Any, Dict, Optional

from errors import BadRequestError, NotFoundError
from repositories import CategoryRepository, ProductRepository
from schemas import Product

logger = logging.getLogger(__name__)

SORT_FIELDS = {"name", "price", "created_at", "sold_count", "average_rating", "stock"}


class ProductService:
    def __init__(self, products: ProductRepository, categories: CategoryRepository, media=None):
        self.products = products
        self.categories = categories
        self.media = media

    def _check_category(self, category_id: Optional[str]) -> None:
        if category_id and self.categories.find_by_id(category_id) is None:
            raise BadRequestError(f"Category does not exist: {category_id}")

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._check_category(data.get("category_id"))
        product = self.products.create(Product(**data))
        logger.info("Product %s created (%s)", product["_id"], product["name"])
        return product

    def get(self, product_id: str) -> Dict[str, Any]:
        product = self.products.find_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def list(
        self,
        category: Optional[str] = None,
        name: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        in_stock: bool = False,
        sort_by: str = "name",
        sort_order: str = "asc",
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        if page < 1:
            raise BadRequestError("page must be a positive integer")
        if limit < 1 or limit > 100:
            raise BadRequestError("limit must be between 1 and 100")
        if min_price is not None and max_price is not None and min_price > max_price:
            raise BadRequestError("min_price cannot be greater than max_price")
        if sort_by not in SORT_FIELDS:
            raise BadRequestError(f"sort_by must be one of: {', '.join(sorted(SORT_FIELDS))}")

        query: Dict[str, Any] = {}
        if category:
            query["category_id"] = category
        if name:
            query["name"] = {"$regex": re.escape(name), "$options": "i"}
        if min_price is not None or max_price is not None:
            query["price"] = {}
            if min_price is not None:
                query["price"]["$gte"] = min_price
            if max_price is not None:
                query["price"]["$lte"] = max_price
        if in_stock:
            query["stock"] = {"$gt": 0}
        direction = -1 if sort_order == "desc" else 1
        return self.products.paginate(query, sort=[(sort_by, direction)], page=page, limit=limit)

    def update(self, product_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        product = self.get(product_id)
        if "category_id" in fields:
            self._check_category(fields["category_id"])
        # Validate the merged document before writing.
        merged = {k: v for k, v in product.items() if k in Product.model_fields}
        merged.update(fields)
        Product(**merged)
        if not fields:
            return product
        return self.products.update(product["_id"], fields)

    def delete(self, product_id: str) -> Dict[str, Any]:
        product = self.get(product_id)
        logger.info("Product %s deleted", product["_id"])
        return self.products.soft_delete_by_id(product["_id"])

    def upload_image(self, product_id: str, content: bytes, filename: str, content_type: Optional[str]) -> Dict[str, Any]:
        product = self.get(product_id)
        uploaded = self.media.upload(content, filename, content_type, folder="products")
        return self.products.push_image(product["_id"], uploaded["url"])
