from datetime import datetime, timedelta, timezone
import logging
import math

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkauth.database import read_with_retry, session_scope
from linkauth.models.db_operation import _count_records
from linkauth.models.schema.magic_link import MagicLinkEntry
from linkauth.models.schema.session import SessionEntry
from linkauth.models.schema.user import UserEntry
from linkauth.schemas.users import (
    StatsResponse,
    UserDetailResponse,
    UserListResponse,
    UserResponse,
)
from linkauth.services.errors import UserNotFound

LOGGER = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_entry(email: str, role: str, now: datetime) -> UserEntry:
    return UserEntry(
        email=email,
        role=role,
        is_active=True,
        last_login_at=None,
        created_at=now,
        updated_at=now,
    )


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def touch_last_login(entry: UserEntry, now: datetime) -> None:
    entry.last_login_at = now
    entry.updated_at = now


def resolve_or_create(session: Session, email: str) -> tuple[UserEntry, bool]:
    """Find the account for ``email`` inside ``session``, creating it if absent.

    Returns the entry and whether this call created it.

    A concurrent request may insert the same address first; the unique
    constraint then fails inside a savepoint and the winner's row is used.
    """
    key = normalize_email(email)
    entry = session.execute(
        select(UserEntry).where(UserEntry.email == key)
    ).scalar_one_or_none()
    if entry is not None:
        return entry, False
    try:
        with session.begin_nested():
            entry = _new_entry(key, ROLE_USER, _utcnow())
            session.add(entry)
            session.flush()
    except IntegrityError:
        entry = session.execute(
            select(UserEntry).where(UserEntry.email == key)
        ).scalar_one()
        return entry, False
    LOGGER.info("Created account %s for %s", entry.id, key)
    return entry, True


class UserStore:
    def find_by_email(self, email: str) -> UserResponse | None:
        key = normalize_email(email)

        def _read() -> UserResponse | None:
            with session_scope() as session:
                entry = session.execute(
                    select(UserEntry).where(UserEntry.email == key)
                ).scalar_one_or_none()
                return self._to_response(entry) if entry else None

        return read_with_retry(_read)

    def get_user(self, user_id: int) -> UserResponse | None:
        def _read() -> UserResponse | None:
            with session_scope() as session:
                entry = session.get(UserEntry, user_id)
                return self._to_response(entry) if entry else None

        return read_with_retry(_read)

    def get_detail(self, user_id: int) -> UserDetailResponse:
        now = _utcnow()

        def _read() -> UserDetailResponse | None:
            with session_scope() as session:
                entry = session.get(UserEntry, user_id)
                if entry is None:
                    return None
                count = session.execute(
                    select(func.count())
                    .select_from(SessionEntry)
                    .where(
                        SessionEntry.user_id == user_id,
                        SessionEntry.expires_at > now,
                    )
                ).scalar_one()
                return UserDetailResponse(
                    **self._to_response(entry).model_dump(), session_count=count
                )

        detail = read_with_retry(_read)
        if detail is None:
            raise UserNotFound()
        return detail

    def create_user(self, email: str, role: str = ROLE_USER) -> UserResponse:
        if role not in ROLES:
            raise ValueError(f"Unknown role '{role}'")
        key = normalize_email(email)
        with session_scope() as session:
            entry = _new_entry(key, role, _utcnow())
            session.add(entry)
            session.flush()
            return self._to_response(entry)

    def ensure_admin(self, email: str) -> UserResponse:
        key = normalize_email(email)
        now = _utcnow()
        with session_scope() as session:
            entry = session.execute(
                select(UserEntry).where(UserEntry.email == key)
            ).scalar_one_or_none()
            if entry is None:
                entry = _new_entry(key, ROLE_ADMIN, now)
                session.add(entry)
                LOGGER.info("Seeded admin account %s", key)
            elif entry.role != ROLE_ADMIN:
                entry.role = ROLE_ADMIN
                entry.updated_at = now
                LOGGER.info("Promoted existing account %s to admin", key)
            session.flush()
            return self._to_response(entry)

    def set_role(self, user_id: int, role: str) -> UserResponse:
        if role not in ROLES:
            raise ValueError(f"Unknown role '{role}'")
        with session_scope() as session:
            entry = session.get(UserEntry, user_id)
            if entry is None:
                raise UserNotFound()
            if entry.role != role:
                entry.role = role
                entry.updated_at = _utcnow()
            session.flush()
            return self._to_response(entry)

    def set_active(self, user_id: int, is_active: bool) -> UserResponse:
        with session_scope() as session:
            entry = session.get(UserEntry, user_id)
            if entry is None:
                raise UserNotFound()
            entry.is_active = is_active
            entry.updated_at = _utcnow()
            if not is_active:
                result = session.execute(
                    delete(SessionEntry).where(SessionEntry.user_id == user_id)
                )
                LOGGER.info(
                    "Deactivated account %s and purged %s session(s)",
                    user_id,
                    result.rowcount,
                )
            session.flush()
            return self._to_response(entry)

    def delete_user(self, user_id: int) -> None:
        with session_scope() as session:
            entry = session.get(UserEntry, user_id)
            if entry is None:
                raise UserNotFound()
            session.execute(delete(SessionEntry).where(SessionEntry.user_id == user_id))
            session.execute(
                update(MagicLinkEntry)
                .where(MagicLinkEntry.user_id == user_id)
                .values(user_id=None)
            )
            session.delete(entry)
        LOGGER.info("Deleted account %s", user_id)

    def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        role: str | None = None,
        is_active: bool | None = None,
    ) -> UserListResponse:
        conditions = []
        if search:
            pattern = _escape_like(search.strip())
            conditions.append(UserEntry.email.ilike(f"%{pattern}%", escape="\\"))
        if role is not None:
            conditions.append(UserEntry.role == role)
        if is_active is not None:
            conditions.append(UserEntry.is_active == is_active)

        def _read() -> UserListResponse:
            with session_scope() as session:
                total = session.execute(
                    select(func.count()).select_from(UserEntry).where(*conditions)
                ).scalar_one()
                entries = session.execute(
                    select(UserEntry)
                    .where(*conditions)
                    .order_by(UserEntry.created_at.desc(), UserEntry.id.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                ).scalars().all()
                return UserListResponse(
                    users=[self._to_response(entry) for entry in entries],
                    total=total,
                    page=page,
                    limit=limit,
                    total_pages=math.ceil(total / limit),
                )

        return read_with_retry(_read)

    def stats(self) -> StatsResponse:
        since = _utcnow() - timedelta(hours=24)

        def _read() -> StatsResponse:
            total = _count_records("user")
            active = _count_records("user", is_active=True)
            admins = _count_records("user", role=ROLE_ADMIN)
            recent = _count_records("user", last_login_at=(">=", since))
            return StatsResponse(
                total_users=total,
                active_users=active,
                inactive_users=total - active,
                admins=admins,
                regular_users=total - admins,
                recent_logins=recent,
            )

        return read_with_retry(_read)

    def _to_response(self, entry: UserEntry) -> UserResponse:
        return UserResponse(
            id=entry.id,
            email=entry.email,
            role=entry.role,
            is_active=bool(entry.is_active),
            last_login_at=entry.last_login_at,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )


user_store = UserStore()
