"""
Pytest fixtures for Code Tutor tests.

Settings come from the environment, so the test environment is pinned
here before any application module is imported. Each test gets a fresh
in-memory SQLite database and fresh token/session singletons.
"""

import os
import sys
import time

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["BCRYPT_ROUNDS"] = "10"
os.environ["JWT_SECRET_KEY"] = "test-access-signing-key-0123456789abcdefghij"
os.environ["REFRESH_TOKEN_SECRET_KEY"] = "test-refresh-signing-key-9876543210zyxwvuts"
os.environ["GITHUB_CLIENT_ID"] = "test-client-id"
os.environ["GITHUB_CLIENT_SECRET"] = "test-client-secret"
os.environ["GITHUB_CALLBACK_URL"] = "http://testserver/api/auth/github/callback"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["REVOCATION_BACKEND"] = "memory"
os.environ["SESSION_BACKEND"] = "memory"
os.environ.pop("TOKEN_ENCRYPTION_KEY", None)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.append(PROJECT_ROOT)

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core import models  # noqa: E402,F401
from core.cache import InMemoryStore  # noqa: E402
from core.config import get_settings  # noqa: E402
from core.db import Base  # noqa: E402
from core.repositories import UserRepository  # noqa: E402
from core.security.encryption import reset_encryption_service  # noqa: E402
from core.security.passwords import hash_password  # noqa: E402
from core.security.revocation import RevocationList  # noqa: E402
from core.security.tokens import TokenService, set_token_service  # noqa: E402
from core.sessions import set_session_store  # noqa: E402

STRONG_PASSWORD = "Str0ng!Passw0rd"


class FakeClock:
    """Callable epoch-seconds clock that tests move forward by hand."""

    def __init__(self, start: float | None = None):
        self.now = time.time() if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_singletons():
    """Fresh settings, token service, session store and encryption per test."""
    get_settings.cache_clear()
    set_token_service(None)
    set_session_store(None)
    reset_encryption_service()
    yield
    set_token_service(None)
    set_session_store(None)
    reset_encryption_service()
    get_settings.cache_clear()


@pytest.fixture(scope="function")
def test_db():
    """Create a fresh in-memory database for each test."""
    db_url = "sqlite://"
    engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )

    yield db_url, TestingSessionLocal, engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_session(test_db):
    """Get a test session from the test database."""
    _, TestingSessionLocal, _ = test_db
    session = TestingSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def revocations(clock):
    return RevocationList(InMemoryStore(clock=clock), clock=clock)


@pytest.fixture
def token_service(settings, revocations, clock):
    return TokenService(settings, revocations, clock=clock)


def _create_password_user(session, username="ada", email="ada@example.com", password=STRONG_PASSWORD, **fields):
    repo = UserRepository(session)
    user = repo.create_user(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=fields.pop("role", "student"),
    )
    for key, value in fields.items():
        setattr(user, key, value)
    session.commit()
    return user


@pytest.fixture
def make_user(test_session):
    """Factory fixture: create and commit a password account."""

    def factory(**kwargs):
        return _create_password_user(test_session, **kwargs)

    return factory


@pytest.fixture
def sample_user(make_user):
    return make_user()


@pytest.fixture
def strong_password():
    return STRONG_PASSWORD
