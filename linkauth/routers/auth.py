from fastapi import APIRouter, Depends, HTTPException, status

from linkauth.routers.deps import get_current_identity, http_error
from linkauth.schemas.auth import (
    AuthResponse,
    MagicLinkRequest,
    MagicLinkVerifyRequest,
    MessageResponse,
)
from linkauth.schemas.tokens import LogoutRequest, TokenRefreshRequest, TokenRefreshResponse
from linkauth.schemas.users import UserResponse
from linkauth.services.auth import auth_service
from linkauth.services.errors import AuthError
from linkauth.services.gate import CurrentIdentity
from linkauth.services.users import user_store

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/magic-link/request", response_model=MessageResponse)
def request_magic_link(payload: MagicLinkRequest) -> MessageResponse:
    return auth_service.request_magic_link(payload.email)


@router.post("/magic-link/verify", response_model=AuthResponse)
def verify_magic_link(payload: MagicLinkVerifyRequest) -> AuthResponse:
    try:
        return auth_service.verify_magic_link(payload.token)
    except AuthError as exc:
        raise http_error(exc) from exc


@router.post("/refresh", response_model=TokenRefreshResponse)
def refresh_tokens(payload: TokenRefreshRequest) -> TokenRefreshResponse:
    try:
        return auth_service.refresh(payload.refresh_token)
    except AuthError as exc:
        raise http_error(exc) from exc


@router.post("/logout", response_model=MessageResponse)
def logout(payload: LogoutRequest) -> MessageResponse:
    return auth_service.logout(payload.refresh_token)


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(identity: CurrentIdentity = Depends(get_current_identity)) -> MessageResponse:
    return auth_service.logout_all(identity.user_id)


@router.get("/me", response_model=UserResponse)
def me(identity: CurrentIdentity = Depends(get_current_identity)) -> UserResponse:
    user = user_store.get_user(identity.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user
