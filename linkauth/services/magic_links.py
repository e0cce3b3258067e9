from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import delete, select, update

from linkauth.config import settings
from linkauth.database import session_scope
from linkauth.models.schema.magic_link import MagicLinkEntry
from linkauth.models.schema.session import SessionEntry
from linkauth.models.schema.user import UserEntry
from linkauth.schemas.tokens import TokenPair
from linkauth.schemas.users import UserResponse
from linkauth.services.errors import AccountDeactivated, AlreadyUsed, Expired, NotFound
from linkauth.services.tokens import generate_link_token, sign_pair
from linkauth.services.users import (
    normalize_email,
    resolve_or_create,
    touch_last_login,
    user_store,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MagicLinkRecord:
    token: str
    email: str
    expires_at: datetime
    user_id: int | None


@dataclass(frozen=True)
class Redemption:
    tokens: TokenPair
    user_id: int
    user: UserResponse
    created_account: bool


class MagicLinkStore:
    def __init__(self, ttl_minutes: int, retention_hours: int) -> None:
        self._ttl_minutes = ttl_minutes
        self._retention_hours = retention_hours

    def create_link(self, email: str) -> MagicLinkRecord:
        now = datetime.now(timezone.utc)
        key = normalize_email(email)
        token = generate_link_token()
        expires_at = now + timedelta(minutes=self._ttl_minutes)
        # Expired links are kept for a while so late redemptions report
        # Expired rather than NotFound.
        horizon = now - timedelta(hours=self._retention_hours)

        with session_scope() as session:
            session.execute(
                delete(MagicLinkEntry).where(MagicLinkEntry.expires_at <= horizon)
            )
            existing = session.execute(
                select(UserEntry.id).where(UserEntry.email == key)
            ).scalar_one_or_none()
            session.add(
                MagicLinkEntry(
                    token=token,
                    email=key,
                    expires_at=expires_at,
                    consumed_at=None,
                    user_id=existing,
                    created_at=now,
                )
            )
        return MagicLinkRecord(
            token=token, email=key, expires_at=expires_at, user_id=existing
        )

    def redeem(self, token: str) -> Redemption:
        """Consume a magic link and open a session for its account.

        Runs in a single transaction. The conditional update on
        ``consumed_at`` is the linearization point: of two concurrent
        redemptions only one sees a matched row, the other fails with
        AlreadyUsed. Any later failure rolls the claim back.
        """
        now = datetime.now(timezone.utc)
        with session_scope() as session:
            link = session.execute(
                select(MagicLinkEntry).where(MagicLinkEntry.token == token)
            ).scalar_one_or_none()
            if link is None:
                raise NotFound()
            if link.expires_at <= now:
                raise Expired()
            if link.consumed_at is not None:
                raise AlreadyUsed()

            claimed = session.execute(
                update(MagicLinkEntry)
                .where(
                    MagicLinkEntry.id == link.id,
                    MagicLinkEntry.consumed_at.is_(None),
                )
                .values(consumed_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise AlreadyUsed()

            account, created = resolve_or_create(session, link.email)
            if not account.is_active:
                raise AccountDeactivated()

            session.execute(
                update(MagicLinkEntry)
                .where(MagicLinkEntry.id == link.id)
                .values(user_id=account.id)
                .execution_options(synchronize_session=False)
            )

            tokens = sign_pair(account.id, account.email, account.role)
            session.add(
                SessionEntry(
                    refresh_token=tokens.refresh_token,
                    user_id=account.id,
                    expires_at=tokens.refresh_expires_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            touch_last_login(account, now)
            session.flush()
            user = user_store._to_response(account)

        LOGGER.info("Magic link redeemed for account %s", user.id)
        return Redemption(
            tokens=tokens, user_id=user.id, user=user, created_account=created
        )


magic_link_store = MagicLinkStore(
    settings.magic_link_expire_minutes, settings.magic_link_retention_hours
)
