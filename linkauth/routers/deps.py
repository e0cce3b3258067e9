from fastapi import Depends, Header, HTTPException

from linkauth.services.errors import AuthError
from linkauth.services.gate import (
    AccessTier,
    CurrentIdentity,
    authorize,
    resolve_identity,
)


def http_error(exc: AuthError) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": str(exc)},
        headers=headers,
    )


def get_current_identity_optional(
    authorization: str | None = Header(default=None),
) -> CurrentIdentity | None:
    return resolve_identity(authorization)


def get_current_identity(
    identity: CurrentIdentity | None = Depends(get_current_identity_optional),
) -> CurrentIdentity:
    try:
        return authorize(identity, AccessTier.AUTHENTICATED)
    except AuthError as exc:
        raise http_error(exc) from exc


def get_current_admin(
    identity: CurrentIdentity | None = Depends(get_current_identity_optional),
) -> CurrentIdentity:
    try:
        return authorize(identity, AccessTier.ADMIN)
    except AuthError as exc:
        raise http_error(exc) from exc
