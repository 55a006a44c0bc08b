from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from dependencies import Services, get_current_user, get_services, require_admin
from routers.common import Payload, ok
from schemas import ApiResponse, Page, RecordStatus, ReviewOut

router = APIRouter(prefix="/reviews", tags=["reviews"])


class ReviewCreate(Payload):
    product_id: str = Field(..., min_length=1)
    order_id: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


class ReviewUpdate(Payload):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1, max_length=500)


@router.get("/product/{product_id}", response_model=ApiResponse[List[ReviewOut]])
def product_reviews(product_id: str, services: Services = Depends(get_services)):
    return ok(services.reviews.by_product(product_id))


@router.get("/product/{product_id}/stats", response_model=ApiResponse[Dict[str, Any]])
def product_rating_stats(product_id: str, services: Services = Depends(get_services)):
    return ok(services.reviews.product_stats(product_id))


@router.get("/product/{product_id}/eligibility", response_model=ApiResponse[Dict[str, Any]])
def review_eligibility(
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(services.reviews.eligibility(str(user["_id"]), product_id))


@router.get("/reviewable", response_model=ApiResponse[List[Dict[str, Any]]])
def reviewable_products(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.reviews.reviewable(str(user["_id"])))


@router.post("", status_code=201, response_model=ApiResponse[ReviewOut])
def create_review(
    payload: ReviewCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    review = services.reviews.create(
        str(user["_id"]), payload.product_id, payload.rating, payload.comment, order_id=payload.order_id
    )
    return ok(review, "Review created")


@router.get("/my-reviews", response_model=ApiResponse[List[ReviewOut]])
def my_reviews(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.reviews.by_user(str(user["_id"])))


@router.get("", response_model=ApiResponse[Page[ReviewOut]], dependencies=[Depends(require_admin)])
def list_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    rating: Optional[int] = Query(None, ge=1, le=5),
    product_id: Optional[str] = None,
    user_id: Optional[str] = None,
    record_status: Optional[RecordStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    services: Services = Depends(get_services),
):
    return ok(services.reviews.search(
        page=page,
        limit=limit,
        rating=rating,
        product_id=product_id,
        user_id=user_id,
        record_status=record_status.value if record_status else None,
        start_date=start_date,
        end_date=end_date,
    ))


@router.get("/{review_id}", response_model=ApiResponse[ReviewOut])
def get_review(review_id: str, services: Services = Depends(get_services)):
    return ok(services.reviews.get(review_id))


@router.put("/{review_id}", response_model=ApiResponse[ReviewOut])
def update_review(
    review_id: str,
    payload: ReviewUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    updated = services.reviews.update(review_id, str(user["_id"]), payload.rating, payload.comment)
    return ok(updated, "Review updated")


@router.delete("/{review_id}", response_model=ApiResponse[ReviewOut])
def delete_review(
    review_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return ok(services.reviews.delete(review_id, user), "Review deleted")
