import os
import tempfile
from datetime import datetime
from typing import Optional

# Point the app at a throwaway SQLite file before anything imports its config
_DB_DIR = tempfile.mkdtemp(prefix="sleeptracker-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256-keys"
os.environ["FRONTEND_ORIGIN"] = "http://localhost:5173"
os.environ["FEED_CACHE_TTL_SECONDS"] = "0"

import pytest
from httpx import ASGITransport, AsyncClient

from sleeptracker.auth import hash_password, issue_token
from sleeptracker.database import AsyncSessionLocal, engine
from sleeptracker.main import app, feed_cache
from sleeptracker.models import Base, SleepRecord, User

PASSWORD = "password123"


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    feed_cache.clear()
    yield
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def make_user(db):
    async def _make_user(name: str, email: Optional[str] = None, password: str = PASSWORD) -> User:
        user = User(
            name=name,
            email=email or f"{name.split()[0].lower()}@example.com",
            password_hash=hash_password(password),
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def add_record(db):
    async def _add_record(user: User, clock_in: datetime, clock_out: Optional[datetime] = None, created_at: Optional[datetime] = None) -> SleepRecord:
        record = SleepRecord(user_id=user.id, clock_in=clock_in, clock_out=clock_out)
        if created_at is not None:
            record.created_at = created_at
        db.add(record)
        await db.commit()
        await db.refresh(record)
        return record

    return _add_record


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {issue_token(user.id)}"}

    return _auth_headers
