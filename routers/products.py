from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import Field

from dependencies import Services, get_services, require_admin
from routers.common import Payload, ok
from schemas import ApiResponse, Page, ProductOut

router = APIRouter(prefix="/products", tags=["products"])


class ProductCreate(Payload):
    name: str = Field(..., min_length=1, max_length=100)
    sku: Optional[str] = None
    description: str = Field("", max_length=2000)
    price: float = Field(..., gt=0)
    category_id: Optional[str] = None
    stock: int = Field(0, ge=0)
    images: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class ProductUpdate(Payload):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    sku: Optional[str] = None
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[float] = Field(None, gt=0)
    category_id: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    tags: Optional[List[str]] = None


@router.get("", response_model=ApiResponse[Page[ProductOut]])
def list_products(
    category: Optional[str] = None,
    name: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: bool = False,
    sort_by: str = "name",
    sort_order: Literal["asc", "desc"] = "asc",
    page: int = 1,
    limit: int = 10,
    services: Services = Depends(get_services),
):
    return ok(services.products.list(
        category=category,
        name=name,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    ))


@router.get("/{product_id}", response_model=ApiResponse[ProductOut])
def get_product(product_id: str, services: Services = Depends(get_services)):
    return ok(services.products.get(product_id))


@router.post("", status_code=201, response_model=ApiResponse[ProductOut], dependencies=[Depends(require_admin)])
def create_product(payload: ProductCreate, services: Services = Depends(get_services)):
    return ok(services.products.create(payload.model_dump()), "Product created")


@router.put("/{product_id}", response_model=ApiResponse[ProductOut], dependencies=[Depends(require_admin)])
def update_product(product_id: str, payload: ProductUpdate, services: Services = Depends(get_services)):
    updated = services.products.update(product_id, payload.model_dump(exclude_unset=True))
    return ok(updated, "Product updated")


@router.delete("/{product_id}", response_model=ApiResponse[ProductOut], dependencies=[Depends(require_admin)])
def delete_product(product_id: str, services: Services = Depends(get_services)):
    return ok(services.products.delete(product_id), "Product deleted")


@router.post("/{product_id}/images", response_model=ApiResponse[ProductOut], dependencies=[Depends(require_admin)])
def upload_product_image(product_id: str, file: UploadFile = File(...), services: Services = Depends(get_services)):
    updated = services.products.upload_image(product_id, file.file.read(), file.filename, file.content_type)
    return ok(updated, "Image uploaded")
