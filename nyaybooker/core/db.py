from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from nyaybooker.core.config import settings


def make_engine(url: str | None = None) -> Engine:
    """Engine for the local session store. SQLite needs check_same_thread off for the facade."""
    url = url or settings.session_db_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = make_engine()


@contextmanager
def get_session(bind: Engine | None = None) -> Iterator[Session]:
    with Session(bind or engine, expire_on_commit=False) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def init_db(bind: Engine | None = None) -> None:
    """Create the local tables. There is no migration history for client-side state."""
    import nyaybooker.models  # noqa: F401 - register tables

    SQLModel.metadata.create_all(bind or engine)
