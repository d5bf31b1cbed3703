import logging
from datetime import UTC, datetime

from sqlalchemy.engine import Engine
from sqlmodel import select

from nyaybooker.core.db import engine as default_engine
from nyaybooker.core.db import get_session, init_db
from nyaybooker.models.stored_session import StoredSession
from nyaybooker.models.user import UserIdentity

logger = logging.getLogger(__name__)

_SESSION_ROW_ID = 1


def _utc_naive() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class SessionStore:
    """Persisted tokens and minimal identity. Reads hit the store every time, no caching,
    so a token written by another process is picked up at the next connection setup."""

    def __init__(self, bind: Engine | None = None) -> None:
        self._bind = bind or default_engine
        init_db(self._bind)

    def _load(self) -> StoredSession | None:
        with get_session(self._bind) as session:
            return session.exec(
                select(StoredSession).where(StoredSession.id == _SESSION_ROW_ID)
            ).first()

    def _save(self, **fields: object) -> None:
        with get_session(self._bind) as session:
            row = session.get(StoredSession, _SESSION_ROW_ID)
            if row is None:
                row = StoredSession(id=_SESSION_ROW_ID)
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = _utc_naive()
            session.add(row)

    def get_access_token(self) -> str | None:
        row = self._load()
        return row.access_token if row else None

    def get_refresh_token(self) -> str | None:
        row = self._load()
        return row.refresh_token if row else None

    def set_tokens(self, access_token: str, refresh_token: str | None = None) -> None:
        fields: dict[str, object] = {"access_token": access_token}
        if refresh_token:
            fields["refresh_token"] = refresh_token
        self._save(**fields)

    def clear_tokens(self) -> None:
        self._save(access_token=None, refresh_token=None)
        logger.debug("Cleared stored tokens")

    def get_identity(self) -> UserIdentity | None:
        row = self._load()
        if not row or not row.user_id:
            return None
        return UserIdentity(
            id=row.user_id, email=row.user_email, name=row.user_name, role=row.user_role
        )

    def set_identity(self, user: UserIdentity | None) -> None:
        if user is None:
            self._save(user_id=None, user_email=None, user_name=None, user_role=None)
            return
        self._save(
            user_id=user.id, user_email=user.email, user_name=user.name, user_role=user.role
        )

    def clear(self) -> None:
        self._save(
            access_token=None,
            refresh_token=None,
            user_id=None,
            user_email=None,
            user_name=None,
            user_role=None,
        )
