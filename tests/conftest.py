"""Shared fixtures: an in-memory database and a configured environment."""

import os

# Must be set before any application module reads the settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["NEXT_PUBLIC_SUPABASE_URL"] = "https://project.supabase.co"
os.environ["NEXT_PUBLIC_SUPABASE_ANON_KEY"] = "test-anon-key-0123456789-abcdefghijklmnop"
os.environ["SUPABASE_JWT_SECRET"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["COOKIE_SECURE"] = "false"
os.environ["DEBUG"] = "false"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  (registers every table on Base.metadata)
from database import Base, get_db
from middleware import session as session_middleware
from services.auth_service import AuthApiError, AuthSession, AuthUser, SessionLookup
from services.supabase_client import get_optional_supabase, get_supabase


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_settings(monkeypatch):
    """Build Settings from explicit values only, ignoring the Supabase env vars."""
    from config import Settings

    for name in (
        "NEXT_PUBLIC_SUPABASE_URL",
        "SUPABASE_URL",
        "NEXT_PUBLIC_SUPABASE_ANON_KEY",
        "SUPABASE_ANON_KEY",
        "NEXT_PUBLIC_SITE_URL",
        "SITE_URL",
        "NODE_ENV",
        "APP_ENV",
        "ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)

    def make(**values) -> Settings:
        return Settings(**values)

    return make


class FakeAuth:
    """Stands in for GoTrue: the access token is the user id."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, str]] = {}  # email -> (user id, password)
        self.signed_out: list[str] = []
        self.sign_out_error: Exception | None = None
        self.recovery_emails: list[tuple[str, str | None]] = []
        self.passwords: dict[str, str] = {}  # recovery token -> new password

    async def get_session_user(self, access_token, refresh_token):
        if not access_token:
            return SessionLookup()
        return SessionLookup(user=AuthUser(id=access_token))

    async def sign_in_with_password(self, email, password):
        account = self.accounts.get(email)
        if account is None or account[1] != password:
            raise AuthApiError("Invalid login credentials", 400)
        return AuthSession(access_token=account[0], refresh_token="refresh", user=AuthUser(id=account[0], email=email))

    async def sign_up(self, email, password, user_metadata=None):
        if email in self.accounts:
            raise AuthApiError("User already registered", 422)
        user_id = "0b9a4a3e-1111-4000-8000-00000000beef"
        self.accounts[email] = (user_id, password)
        return AuthUser(id=user_id, email=email, user_metadata=user_metadata)

    async def sign_out(self, access_token):
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.signed_out.append(access_token)

    async def recover(self, email, redirect_to=None):
        self.recovery_emails.append((email, redirect_to))

    async def update_user(self, access_token, data):
        if access_token == "expired-recovery-token":
            raise AuthApiError("Invalid JWT", 401)
        self.passwords[access_token] = data["password"]
        return AuthUser(id=access_token)


class FakeSupabase:
    def __init__(self, auth: FakeAuth):
        self.auth = auth


@pytest.fixture
def fake_auth():
    return FakeAuth()


@pytest.fixture
async def api(session_factory, fake_auth, monkeypatch):
    """HTTP client for the app, backed by the test database and the fake auth provider."""
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    supabase = FakeSupabase(fake_auth)
    monkeypatch.setattr(session_middleware, "create_client", lambda: supabase)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_supabase] = lambda: supabase
    app.dependency_overrides[get_optional_supabase] = lambda: supabase

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
