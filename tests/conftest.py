"""Shared test fixtures for the gamification engine.

Provides:
- Real SQLite databases (temp files, one per test) with the production
  transaction setup, for ledger and concurrency tests
- Async FastAPI test client, with a mock session or a real one
- Auth helpers (token generation for authenticated requests)
- Deterministic bonus rolls and a controllable "today"
"""
import os

# Settings are read at import time; configure them before importing the app
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./clevercourse-test.db")
os.environ.setdefault("SEED_ACHIEVEMENTS_ON_STARTUP", "false")

import random
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clevercourse.core.database import build_engine
from clevercourse.models import AchievementDefinition, Base, User
from clevercourse.services.rewards import BonusRoller


class FakeClock:
    """Callable "today" that tests can move forward."""

    def __init__(self, start: date = date(2026, 3, 2)):
        self.current = start

    def __call__(self) -> date:
        return self.current

    def advance(self, days: int = 1) -> date:
        self.current += timedelta(days=days)
        return self.current


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine so several sessions can race for real."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'gamification.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def create_user(session_factory):
    """Insert a user row and return its id."""
    counter = {"n": 0}

    async def _create(**overrides) -> int:
        counter["n"] += 1
        values = {
            "email": f"learner{counter['n']}@example.com",
            "full_name": f"Learner {counter['n']}",
            "is_active": True,
        }
        values.update(overrides)
        async with session_factory() as session:
            user = User(**values)
            session.add(user)
            await session.commit()
            return user.id

    return _create


@pytest.fixture
async def user_id(create_user):
    return await create_user()


@pytest.fixture
def add_achievement(session_factory):
    """Insert a single achievement definition."""

    async def _add(
        achievement_id: str,
        metric_type: str,
        threshold: float,
        xp_reward: int = 0,
        sparks_reward: int = 0,
        is_hidden: bool = False,
        category: str = "learning",
    ) -> None:
        async with session_factory() as session:
            session.add(
                AchievementDefinition(
                    id=achievement_id,
                    name=achievement_id.replace("_", " ").title(),
                    description=f"Reach {threshold:g} {metric_type}",
                    icon_name="Award",
                    category=category,
                    rarity="common",
                    xp_reward=xp_reward,
                    sparks_reward=sparks_reward,
                    metric_type=metric_type,
                    threshold=threshold,
                    tier=1,
                    is_hidden=is_hidden,
                )
            )
            await session.commit()

    return _add


@pytest.fixture
def no_bonus():
    """Bonus roller that never fires."""
    return BonusRoller(rng=random.Random(7), chance=0.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_db():
    """Mock async database session."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
async def client():
    """Async HTTP test client for FastAPI app.

    Uses httpx AsyncClient with ASGI transport. The database dependency is
    overridden with a mock; patch services for behaviour.
    """
    from clevercourse.core.database import get_db
    from clevercourse.main import app

    mock_session = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.flush = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.add = MagicMock()

    async def override_get_db():
        yield mock_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac._mock_db = mock_session  # expose for test access
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def db_client(session_factory):
    """Test client backed by the real per-test SQLite database."""
    from clevercourse.core.database import get_db
    from clevercourse.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_token():
    """Generate a valid JWT token for authenticated test requests."""
    from clevercourse.services.auth import create_access_token
    return create_access_token(user_id=1)


@pytest.fixture
def auth_headers(auth_token):
    """Authorization headers with a valid bearer token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def headers_for():
    """Build bearer headers for an arbitrary user id."""
    from clevercourse.services.auth import create_access_token

    def _headers(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id=user_id)}"}

    return _headers

