from fastapi import APIRouter, Depends, HTTPException, status

from linkauth.routers.deps import get_current_identity
from linkauth.schemas.users import SessionsCountResponse, UserResponse
from linkauth.services.gate import CurrentIdentity
from linkauth.services.sessions import session_store
from linkauth.services.users import user_store

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
def get_profile(identity: CurrentIdentity = Depends(get_current_identity)) -> UserResponse:
    user = user_store.get_user(identity.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/me/sessions/count", response_model=SessionsCountResponse)
def get_sessions_count(
    identity: CurrentIdentity = Depends(get_current_identity),
) -> SessionsCountResponse:
    return SessionsCountResponse(count=session_store.count_active(identity.user_id))
