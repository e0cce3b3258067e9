from datetime import datetime, timedelta, timezone
import logging
import secrets

import jwt

from linkauth.config import settings
from linkauth.schemas.tokens import AccessTokenData, RefreshTokenData, TokenPair

LOGGER = logging.getLogger(__name__)

ACCESS_TYPE = "access"
REFRESH_TYPE = "refresh"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_link_token() -> str:
    return secrets.token_hex(32)


def sign_access(
    user_id: int,
    email: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> tuple[str, datetime]:
    now = _utcnow()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expires_at = now + expires_delta
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "type": ACCESS_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


def sign_refresh(
    user_id: int, expires_delta: timedelta | None = None
) -> tuple[str, datetime]:
    now = _utcnow()
    if expires_delta is None:
        expires_delta = timedelta(days=settings.refresh_token_expire_days)
    expires_at = now + expires_delta
    payload = {
        "sub": str(user_id),
        # Unique per token so a rotation never reissues an identical string.
        "jti": secrets.token_hex(16),
        "type": REFRESH_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(
        payload, settings.jwt_refresh_secret, algorithm=settings.jwt_algorithm
    )
    return token, expires_at


def sign_pair(user_id: int, email: str, role: str) -> TokenPair:
    access_token, access_expires_at = sign_access(user_id, email, role)
    refresh_token, refresh_expires_at = sign_refresh(user_id)
    return TokenPair(
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
    )


def verify_access(token: str | None) -> AccessTokenData | None:
    payload = _decode_token(token, settings.jwt_secret, expected_type=ACCESS_TYPE)
    if payload is None:
        return None
    user_id = _parse_subject(payload)
    email = payload.get("email")
    role = payload.get("role")
    if user_id is None or not isinstance(email, str) or not isinstance(role, str):
        return None
    return AccessTokenData(user_id=user_id, email=email, role=role)


def verify_refresh(token: str | None) -> RefreshTokenData | None:
    payload = _decode_token(
        token, settings.jwt_refresh_secret, expected_type=REFRESH_TYPE
    )
    if payload is None:
        return None
    user_id = _parse_subject(payload)
    token_id = payload.get("jti")
    if user_id is None or not isinstance(token_id, str):
        return None
    return RefreshTokenData(user_id=user_id, token_id=token_id)


def _decode_token(token: str | None, secret: str, expected_type: str) -> dict | None:
    if not token or not isinstance(token, str):
        return None
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            leeway=settings.clock_skew_seconds,
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError:
        LOGGER.debug("Rejected expired %s token", expected_type)
        return None
    except jwt.InvalidTokenError as exc:
        LOGGER.debug("Rejected invalid %s token: %s", expected_type, exc)
        return None
    if payload.get("type") != expected_type:
        return None
    return payload


def _parse_subject(payload: dict) -> int | None:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
