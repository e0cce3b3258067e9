from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from linkauth.routers.deps import get_current_admin, http_error
from linkauth.schemas.auth import MessageResponse
from linkauth.schemas.users import (
    SetActiveRequest,
    StatsResponse,
    UpdateRoleRequest,
    UserDetailResponse,
    UserListResponse,
    UserResponse,
    UserRole,
)
from linkauth.services.admin import admin_service
from linkauth.services.errors import AuthError
from linkauth.services.gate import CurrentIdentity
from linkauth.services.users import user_store

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: Optional[str] = Query(default=None, max_length=255),
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    _: CurrentIdentity = Depends(get_current_admin),
) -> UserListResponse:
    return user_store.list_users(
        page=page, limit=limit, search=search, role=role, is_active=is_active
    )


@router.get("/users/{user_id}", response_model=UserDetailResponse)
def get_user(
    user_id: int, _: CurrentIdentity = Depends(get_current_admin)
) -> UserDetailResponse:
    try:
        return user_store.get_detail(user_id)
    except AuthError as exc:
        raise http_error(exc) from exc


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: int,
    payload: UpdateRoleRequest,
    admin: CurrentIdentity = Depends(get_current_admin),
) -> UserResponse:
    try:
        return admin_service.update_role(admin, user_id, payload.role)
    except AuthError as exc:
        raise http_error(exc) from exc


@router.put("/users/{user_id}/active", response_model=UserResponse)
def set_user_active(
    user_id: int,
    payload: SetActiveRequest,
    admin: CurrentIdentity = Depends(get_current_admin),
) -> UserResponse:
    try:
        return admin_service.set_active(admin, user_id, payload.is_active)
    except AuthError as exc:
        raise http_error(exc) from exc


@router.post("/users/{user_id}/toggle-status", response_model=UserResponse)
def toggle_user_status(
    user_id: int, admin: CurrentIdentity = Depends(get_current_admin)
) -> UserResponse:
    try:
        return admin_service.toggle_status(admin, user_id)
    except AuthError as exc:
        raise http_error(exc) from exc


@router.delete(
    "/users/{user_id}", response_model=MessageResponse, status_code=status.HTTP_200_OK
)
def delete_user(
    user_id: int, admin: CurrentIdentity = Depends(get_current_admin)
) -> MessageResponse:
    try:
        admin_service.delete_user(admin, user_id)
    except AuthError as exc:
        raise http_error(exc) from exc
    return MessageResponse(message="User deleted successfully")


@router.get("/stats", response_model=StatsResponse)
def get_stats(_: CurrentIdentity = Depends(get_current_admin)) -> StatsResponse:
    return user_store.stats()
