"""Per-request authorization.

Resolves the bearer credential on a request into an identity and checks it
against an access tier. Nothing here touches storage: an access credential
is trusted on signature and expiry alone until it lapses.
"""

from dataclasses import dataclass
from enum import Enum

from linkauth.services.errors import Forbidden, Unauthorized
from linkauth.services.tokens import verify_access
from linkauth.services.users import ROLE_ADMIN


class AccessTier(str, Enum):
    OPEN = "open"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


@dataclass(frozen=True)
class CurrentIdentity:
    user_id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        return None
    return token


def resolve_identity(authorization: str | None) -> CurrentIdentity | None:
    """Return the caller's identity, or None for an anonymous caller.

    Missing, malformed, expired and forged credentials all resolve to
    None so callers cannot tell why authentication failed.
    """
    token = parse_bearer(authorization)
    if token is None:
        return None
    access_data = verify_access(token)
    if access_data is None:
        return None
    return CurrentIdentity(
        user_id=access_data.user_id, email=access_data.email, role=access_data.role
    )


def authorize(identity: CurrentIdentity | None, tier: AccessTier) -> CurrentIdentity | None:
    if tier is AccessTier.OPEN:
        return identity
    if identity is None:
        raise Unauthorized()
    if tier is AccessTier.ADMIN and not identity.is_admin:
        raise Forbidden()
    return identity
