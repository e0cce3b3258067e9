from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

UserRole = Literal["user", "admin"]


class UserResponse(BaseModel):
    id: int
    email: str
    role: UserRole
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserDetailResponse(UserResponse):
    session_count: int = 0


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class UpdateRoleRequest(BaseModel):
    role: UserRole


class SetActiveRequest(BaseModel):
    is_active: bool


class SessionsCountResponse(BaseModel):
    count: int


class StatsResponse(BaseModel):
    total_users: int
    active_users: int
    inactive_users: int
    admins: int
    regular_users: int
    recent_logins: int

