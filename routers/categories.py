from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from dependencies import Services, get_services, require_admin
from routers.common import Payload, ok
from schemas import ApiResponse, CategoryOut, ProductOut

router = APIRouter(prefix="/categories", tags=["categories"])


class CategoryCreate(Payload):
    name: str = Field(..., min_length=2, max_length=50)
    description: str = Field("", max_length=200)


class CategoryUpdate(Payload):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=200)


@router.get("", response_model=ApiResponse[List[CategoryOut]])
def list_categories(services: Services = Depends(get_services)):
    return ok(services.categories.list())


@router.get("/search", response_model=ApiResponse[List[CategoryOut]])
def search_categories(q: str = Query(..., min_length=1), services: Services = Depends(get_services)):
    return ok(services.categories.search(q))


@router.get("/stats", response_model=ApiResponse[Dict[str, Any]], dependencies=[Depends(require_admin)])
def category_stats(services: Services = Depends(get_services)):
    return ok(services.categories.stats())


@router.get("/{category_id}", response_model=ApiResponse[CategoryOut])
def get_category(category_id: str, services: Services = Depends(get_services)):
    return ok(services.categories.get(category_id))


@router.get("/{category_id}/products", response_model=ApiResponse[List[ProductOut]])
def category_products(category_id: str, services: Services = Depends(get_services)):
    return ok(services.categories.products_of(category_id))


@router.post("", status_code=201, response_model=ApiResponse[CategoryOut], dependencies=[Depends(require_admin)])
def create_category(payload: CategoryCreate, services: Services = Depends(get_services)):
    return ok(services.categories.create(payload.name, payload.description), "Category created")


@router.put("/{category_id}", response_model=ApiResponse[CategoryOut], dependencies=[Depends(require_admin)])
def update_category(category_id: str, payload: CategoryUpdate, services: Services = Depends(get_services)):
    updated = services.categories.update(category_id, payload.name, payload.description)
    return ok(updated, "Category updated")


@router.delete("/{category_id}", response_model=ApiResponse[CategoryOut], dependencies=[Depends(require_admin)])
def delete_category(category_id: str, services: Services = Depends(get_services)):
    return ok(services.categories.delete(category_id), "Category deleted")
