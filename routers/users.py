from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import Field

from dependencies import Services, get_current_user, get_services, require_admin
from routers.common import Payload, ok
from schemas import Address, ApiResponse, Gender, Page, Role, UserOut

router = APIRouter(prefix="/users", tags=["users"])


class ProfileUpdate(Payload):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    birth_date: Optional[datetime] = None
    gender: Optional[Gender] = None
    address: Optional[Address] = None


@router.get("/profile", response_model=ApiResponse[UserOut])
def get_profile(user: Dict[str, Any] = Depends(get_current_user)):
    return ok(user)


@router.put("/profile", response_model=ApiResponse[UserOut])
def update_profile(
    payload: ProfileUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    updated = services.user_admin.update_profile(str(user["_id"]), payload.model_dump(exclude_unset=True))
    return ok(updated, "Profile updated")


@router.post("/profile/avatar", response_model=ApiResponse[UserOut])
def upload_avatar(
    file: UploadFile = File(...),
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    updated = services.user_admin.upload_avatar(str(user["_id"]), file.file.read(), file.filename, file.content_type)
    return ok(updated, "Avatar updated")


@router.get("", response_model=ApiResponse[Page[UserOut]], dependencies=[Depends(require_admin)])
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[Role] = None,
    search: Optional[str] = None,
    services: Services = Depends(get_services),
):
    return ok(services.user_admin.search(page=page, limit=limit, role=role.value if role else None, search=search))
