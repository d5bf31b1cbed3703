import pytest

from nyaybooker.core.db import make_engine
from nyaybooker.services.session_store import SessionStore


@pytest.fixture
def store(tmp_path):
    return SessionStore(make_engine(f"sqlite:///{tmp_path / 'session.db'}"))
