from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for SQLite DATETIME columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class StoredSession(SQLModel, table=True):
    """Persisted client credentials. Only one row (id=1) is ever used."""

    __tablename__ = "client_sessions"
    id: int | None = Field(default=None, primary_key=True)
    access_token: str | None = None
    refresh_token: str | None = None
    user_id: str | None = Field(default=None, index=True)
    user_email: str | None = None
    user_name: str | None = None
    user_role: str | None = None
    updated_at: datetime = Field(default_factory=_utc_naive_now)
