from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import EmailStr, Field

from dependencies import Services, get_services, require_admin
from routers.common import Payload, ok
from schemas import Address, ApiResponse, OrderOut, OrderStatus, Page, RecordStatus, ReviewOut, Role, UserOut

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class RoleUpdate(Payload):
    role: Role


class ActiveUpdate(Payload):
    is_active: bool


class UserUpdate(Payload):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[Address] = None


class OrderStatusUpdate(Payload):
    status: OrderStatus


class ReviewStatusUpdate(Payload):
    record_status: RecordStatus


# ---------------------- Dashboard ----------------------

@router.get("/dashboard", response_model=ApiResponse[Dict[str, Any]])
def dashboard(services: Services = Depends(get_services)):
    return ok(services.dashboard.general_stats())


@router.get("/sales-report", response_model=ApiResponse[Dict[str, Any]])
def sales_report(
    period: Literal["day", "week", "month", "year"] = "month",
    services: Services = Depends(get_services),
):
    return ok(services.dashboard.sales_report(period))


# ---------------------- Users ----------------------

@router.get("/users/stats", response_model=ApiResponse[Dict[str, Any]])
def user_stats(services: Services = Depends(get_services)):
    return ok(services.user_admin.stats())


@router.get("/users/deleted", response_model=ApiResponse[Page[UserOut]])
def deleted_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    services: Services = Depends(get_services),
):
    return ok(services.user_admin.search(page=page, limit=limit, search=search, deleted=True))


@router.get("/users", response_model=ApiResponse[Page[UserOut]])
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[Role] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    services: Services = Depends(get_services),
):
    return ok(services.user_admin.search(
        page=page, limit=limit, role=role.value if role else None, is_active=is_active, search=search
    ))


@router.get("/users/{user_id}", response_model=ApiResponse[UserOut])
def get_user(user_id: str, services: Services = Depends(get_services)):
    return ok(services.user_admin.get(user_id, include_deleted=True))


@router.put("/users/{user_id}/role", response_model=ApiResponse[UserOut])
def update_user_role(user_id: str, payload: RoleUpdate, services: Services = Depends(get_services)):
    return ok(services.user_admin.set_role(user_id, payload.role), "Role updated")


@router.put("/users/{user_id}/status", response_model=ApiResponse[UserOut])
def update_user_status(user_id: str, payload: ActiveUpdate, services: Services = Depends(get_services)):
    return ok(services.user_admin.set_active(user_id, payload.is_active), "Status updated")


@router.put("/users/{user_id}", response_model=ApiResponse[UserOut])
def update_user(user_id: str, payload: UserUpdate, services: Services = Depends(get_services)):
    return ok(services.user_admin.admin_update(user_id, payload.model_dump(exclude_unset=True)), "User updated")


@router.delete("/users/{user_id}", response_model=ApiResponse[UserOut])
def delete_user(user_id: str, services: Services = Depends(get_services)):
    return ok(services.user_admin.delete(user_id), "User deleted")


@router.post("/users/{user_id}/restore", response_model=ApiResponse[UserOut])
def restore_user(user_id: str, services: Services = Depends(get_services)):
    return ok(services.user_admin.restore(user_id), "User restored")


# ---------------------- Orders ----------------------

@router.get("/orders/stats", response_model=ApiResponse[Dict[str, Any]])
def order_stats(services: Services = Depends(get_services)):
    return ok(services.orders.stats())


@router.get("/orders/recent", response_model=ApiResponse[List[OrderOut]])
def recent_orders(limit: int = Query(10, ge=1, le=100), services: Services = Depends(get_services)):
    return ok(services.orders.recent(limit))


@router.get("/orders", response_model=ApiResponse[Page[OrderOut]])
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    user_id: Optional[str] = None,
    min_amount: Optional[float] = Query(None, ge=0),
    max_amount: Optional[float] = Query(None, ge=0),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    services: Services = Depends(get_services),
):
    return ok(services.orders.search(
        page=page,
        limit=limit,
        status=status.value if status else None,
        user_id=user_id,
        min_amount=min_amount,
        max_amount=max_amount,
        start_date=start_date,
        end_date=end_date,
    ))


@router.get("/orders/{order_id}", response_model=ApiResponse[OrderOut])
def get_order(order_id: str, services: Services = Depends(get_services)):
    return ok(services.orders.with_users([services.orders.get_order(order_id)])[0])


@router.put("/orders/{order_id}/status", response_model=ApiResponse[OrderOut])
def update_order_status(order_id: str, payload: OrderStatusUpdate, services: Services = Depends(get_services)):
    return ok(services.orders.update_status(order_id, payload.status), "Order status updated")


# ---------------------- Reviews ----------------------

@router.get("/reviews/stats", response_model=ApiResponse[Dict[str, Any]])
def review_stats(services: Services = Depends(get_services)):
    return ok(services.reviews.stats())


@router.get("/reviews/recent", response_model=ApiResponse[List[ReviewOut]])
def recent_reviews(limit: int = Query(10, ge=1, le=100), services: Services = Depends(get_services)):
    return ok(services.reviews.recent(limit))


@router.get("/reviews", response_model=ApiResponse[Page[ReviewOut]])
def list_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    rating: Optional[int] = Query(None, ge=1, le=5),
    product_id: Optional[str] = None,
    user_id: Optional[str] = None,
    record_status: Optional[RecordStatus] = None,
    services: Services = Depends(get_services),
):
    return ok(services.reviews.search(
        page=page,
        limit=limit,
        rating=rating,
        product_id=product_id,
        user_id=user_id,
        record_status=record_status.value if record_status else None,
    ))


@router.get("/reviews/{review_id}", response_model=ApiResponse[ReviewOut])
def get_review(review_id: str, services: Services = Depends(get_services)):
    review = services.reviews.get(review_id, include_deleted=True)
    return ok(services.reviews.with_users([review])[0])


@router.put("/reviews/{review_id}/status", response_model=ApiResponse[ReviewOut])
def update_review_status(review_id: str, payload: ReviewStatusUpdate, services: Services = Depends(get_services)):
    return ok(services.reviews.set_status(review_id, payload.record_status), "Review status updated")


@router.delete("/reviews/{review_id}", response_model=ApiResponse[ReviewOut])
def delete_review(review_id: str, services: Services = Depends(get_services)):
    return ok(services.reviews.admin_delete(review_id), "Review deleted")
