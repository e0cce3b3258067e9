from datetime import datetime, timezone
import logging

from sqlalchemy import delete, select, update

from linkauth.database import read_with_retry, session_scope
from linkauth.models.db_operation import _count_records, _delete_records
from linkauth.models.schema.session import SessionEntry
from linkauth.models.schema.user import UserEntry
from linkauth.schemas.tokens import TokenPair
from linkauth.services.errors import (
    AccountDeactivated,
    InvalidCredential,
    SessionExpired,
    SessionNotFound,
)
from linkauth.services.tokens import sign_pair, verify_refresh

LOGGER = logging.getLogger(__name__)


class SessionStore:
    def rotate(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh credential for a new pair, rotating in place.

        The session row keeps its id; only the credential string and expiry
        change. The update is conditional on the old credential, so a
        concurrent rotation with the same (stale) credential matches no row
        and fails with SessionNotFound instead of overwriting the winner.
        """
        refresh_data = verify_refresh(refresh_token)
        if refresh_data is None:
            raise InvalidCredential()

        now = datetime.now(timezone.utc)
        expired = False
        deactivated = False
        with session_scope() as session:
            entry = session.execute(
                select(SessionEntry).where(SessionEntry.refresh_token == refresh_token)
            ).scalar_one_or_none()
            if entry is None or entry.user_id != refresh_data.user_id:
                raise SessionNotFound()
            if entry.expires_at <= now:
                session.delete(entry)
                expired = True
            else:
                account = session.get(UserEntry, entry.user_id)
                if account is None or not account.is_active:
                    session.delete(entry)
                    deactivated = True
                else:
                    tokens = sign_pair(account.id, account.email, account.role)
                    rotated = session.execute(
                        update(SessionEntry)
                        .where(
                            SessionEntry.id == entry.id,
                            SessionEntry.refresh_token == refresh_token,
                        )
                        .values(
                            refresh_token=tokens.refresh_token,
                            expires_at=tokens.refresh_expires_at,
                            updated_at=now,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if rotated.rowcount != 1:
                        LOGGER.warning(
                            "Lost refresh rotation race on session %s", entry.id
                        )
                        raise SessionNotFound()
        # Raised outside the transaction so the row deletions above commit.
        if expired:
            raise SessionExpired()
        if deactivated:
            raise AccountDeactivated()
        return tokens

    def revoke(self, refresh_token: str) -> bool:
        return _delete_records("session", refresh_token=refresh_token) > 0

    def revoke_all(self, user_id: int) -> int:
        removed = _delete_records("session", user_id=user_id)
        LOGGER.info("Revoked %s session(s) for account %s", removed, user_id)
        return removed

    def count_active(self, user_id: int) -> int:
        now = datetime.now(timezone.utc)
        return read_with_retry(
            lambda: _count_records("session", user_id=user_id, expires_at=(">", now))
        )

    def purge_expired(self) -> int:
        now = datetime.now(timezone.utc)
        with session_scope() as session:
            result = session.execute(
                delete(SessionEntry).where(SessionEntry.expires_at <= now)
            )
            return result.rowcount


session_store = SessionStore()
