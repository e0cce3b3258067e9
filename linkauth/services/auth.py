import logging

from linkauth.config import settings
from linkauth.schemas.auth import AuthResponse, MessageResponse
from linkauth.schemas.tokens import TokenRefreshResponse
from linkauth.services.email import deliver_magic_link
from linkauth.services.magic_links import magic_link_store
from linkauth.services.sessions import session_store

LOGGER = logging.getLogger(__name__)

LINK_REQUESTED_MESSAGE = (
    "If an account exists, a magic link has been sent to your email."
)


def _expires_in() -> tuple[int, int]:
    return (
        settings.access_token_expire_minutes * 60,
        settings.refresh_token_expire_days * 86400,
    )


class AuthService:
    def request_magic_link(self, email: str) -> MessageResponse:
        # The response never depends on whether the address has an account
        # or whether delivery worked.
        record = magic_link_store.create_link(email)
        delivered = deliver_magic_link(record.email, record.token)
        LOGGER.info(
            "Magic link requested for %s (known=%s, delivered=%s)",
            record.email,
            record.user_id is not None,
            delivered,
        )
        return MessageResponse(message=LINK_REQUESTED_MESSAGE)

    def verify_magic_link(self, token: str) -> AuthResponse:
        redemption = magic_link_store.redeem(token)
        user = redemption.user
        access_in, refresh_in = _expires_in()
        LOGGER.info("User %s logged in successfully", user.email)
        return AuthResponse(
            access_token=redemption.tokens.access_token,
            refresh_token=redemption.tokens.refresh_token,
            expires_in_seconds=access_in,
            refresh_expires_in_seconds=refresh_in,
            user=user,
        )

    def refresh(self, refresh_token: str) -> TokenRefreshResponse:
        pair = session_store.rotate(refresh_token)
        access_in, refresh_in = _expires_in()
        return TokenRefreshResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in_seconds=access_in,
            refresh_expires_in_seconds=refresh_in,
        )

    def logout(self, refresh_token: str) -> MessageResponse:
        session_store.revoke(refresh_token)
        return MessageResponse(message="Logged out successfully")

    def logout_all(self, user_id: int) -> MessageResponse:
        session_store.revoke_all(user_id)
        return MessageResponse(message="All sessions logged out successfully")


auth_service = AuthService()
