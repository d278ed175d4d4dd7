"""
System smoke test: full API flow in-process with SQLite.
Verifies health, auth, lessons, learning, reviews, burning, XP and reset.
Uses a temp file DB so all connections share the same database.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

# Use file-based SQLite so all connections share the same DB (in-memory is per-connection)
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["RATE_LIMIT_ENABLED"] = "false"
# Force config reload so the rate limiter sees the flag
from src.config import get_settings
get_settings.cache_clear()

from src.api.deps import get_clock, get_db
from src.engines.srs.clock import FixedClock
from src.kernel.identity.jwt import create_access_token
from src.kernel.models import Base
from src.kernel.models.content import Character, Lesson, Word
from src.kernel.models.user import User, UserRole
from src.main import app

WEDNESDAY = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)

TEST_ENGINE = create_async_engine(
    f"sqlite+aiosqlite:///{TEST_DB_PATH}",
    echo=False,
    connect_args={"check_same_thread": False},
)
TEST_SESSION_MAKER = async_sessionmaker(
    TEST_ENGINE,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

CLOCK = FixedClock(WEDNESDAY)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TEST_SESSION_MAKER() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def _seed() -> dict:
    """One user and two levels; returns ids and a bearer header."""
    async with TEST_SESSION_MAKER() as session:
        user = User(
            id=uuid.uuid4(),
            email="smoke@example.com",
            username="smoke",
            role=UserRole.LEARNER.value,
        )
        first = Lesson(id=uuid.uuid4(), level=1, title="Numbers")
        second = Lesson(id=uuid.uuid4(), level=2, title="Nature")
        ichi = Character(
            id=uuid.uuid4(),
            lesson_id=first.id,
            character="一",
            meanings=["one"],
            primary_meaning="one",
            kun_readings=["ひと"],
            on_readings=["イチ"],
        )
        hitotsu = Word(
            id=uuid.uuid4(),
            lesson_id=first.id,
            word="一つ",
            reading="ひとつ",
            meanings=["one thing"],
            primary_meaning="one thing",
        )
        yama = Character(
            id=uuid.uuid4(),
            lesson_id=second.id,
            character="山",
            meanings=["mountain"],
            primary_meaning="mountain",
            kun_readings=["やま"],
            on_readings=["サン"],
        )
        session.add_all([user, first, second])
        await session.flush()
        session.add_all([ichi, hitotsu, yama])
        await session.commit()

    token, _, _ = create_access_token(user.id, user.email, UserRole.LEARNER.value)
    return {
        "headers": {"Authorization": f"Bearer {token}"},
        "ichi": str(ichi.id),
        "hitotsu": str(hitotsu.id),
        "yama": str(yama.id),
    }


@pytest_asyncio.fixture
async def client():
    """Async client with a fresh test DB, a pinned clock and rate limit disabled."""
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    CLOCK.set(WEDNESDAY)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: CLOCK
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_clock, None)


@pytest_asyncio.fixture
async def seeded(client) -> dict:
    return await _seed()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    """Health endpoint responds and reaches the database."""
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert "version" in data


@pytest.mark.asyncio
async def test_requires_bearer_token(client: AsyncClient):
    r = await client.get("/api/v1/reviews")
    assert r.status_code == 401

    r = await client.get("/api/v1/reviews", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 401

    r = await client.get("/api/v1/reviews", headers={"Origin": "http://localhost:3000"})
    assert r.status_code == 401
    assert r.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert r.json()["detail"] == "Not authenticated"


@pytest.mark.asyncio
async def test_request_id_echoed(client: AsyncClient):
    r = await client.get("/health", headers={"X-Request-ID": "smoke-123"})
    assert r.headers["X-Request-ID"] == "smoke-123"


@pytest.mark.asyncio
async def test_full_flow(client: AsyncClient, seeded: dict):
    """Lessons -> learn -> reviews -> burn/unburn -> XP -> leaderboard -> reset."""
    headers = seeded["headers"]

    r = await client.get("/api/v1/lessons", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["current_level"] == 1
    assert [lesson["level"] for lesson in r.json()["lessons"]] == [1, 2]

    r = await client.get("/api/v1/lessons/2", headers=headers)
    assert r.status_code == 403
    assert r.json()["code"] == "level_locked"

    r = await client.post(
        "/api/v1/progress/learn",
        headers=headers,
        json={
            "items": [
                {"item_id": seeded["ichi"], "kind": "character", "question_count": 2},
                {"item_id": seeded["hitotsu"], "kind": "word", "question_count": 2},
            ]
        },
    )
    assert r.status_code == 200, r.text
    learned = r.json()
    assert learned["created"] == 2
    assert learned["xp_awarded"] == 40

    r = await client.get("/api/v1/lessons", headers=headers)
    assert r.json()["current_level"] == 2

    r = await client.get("/api/v1/reviews", headers=headers)
    assert r.json()["total_pending"] == 0

    CLOCK.advance(timedelta(hours=4))
    r = await client.get("/api/v1/reviews", headers=headers)
    assert r.status_code == 200
    assert r.json()["total_pending"] == 2

    r = await client.get("/api/v1/reviews/session", headers=headers, params={"size": 1})
    assert r.status_code == 200
    assert len(r.json()["questions"]) == 2

    r = await client.post(
        "/api/v1/reviews/check",
        headers=headers,
        json={
            "item_id": seeded["ichi"],
            "kind": "character",
            "question_type": "reading",
            "answer": "ichi",
        },
    )
    assert r.status_code == 200
    assert r.json()["correct"] is True

    ichi_progress = next(i["progress_id"] for i in learned["items"] if i["item_id"] == seeded["ichi"])
    r = await client.post(
        "/api/v1/reviews",
        headers=headers,
        json={
            "progress_id": ichi_progress,
            "kind": "character",
            "question_type": "meaning",
            "correct": True,
        },
    )
    assert r.status_code == 200, r.text
    assert r.json()["new_stage"] == 2
    assert r.json()["xp_awarded"] == 10

    r = await client.post(
        "/api/v1/burned",
        headers=headers,
        json={"item_id": seeded["ichi"], "kind": "character"},
    )
    assert r.status_code == 200
    assert r.json()["progress"]["stage"] == 9

    r = await client.post(
        "/api/v1/reviews",
        headers=headers,
        json={
            "progress_id": ichi_progress,
            "kind": "character",
            "question_type": "meaning",
            "correct": True,
        },
    )
    assert r.status_code == 403
    assert r.json()["code"] == "forbidden"

    r = await client.get("/api/v1/burned", headers=headers)
    assert r.json()["total"] == 1

    r = await client.post(
        "/api/v1/burned/unburn",
        headers=headers,
        json={"item_id": seeded["ichi"], "kind": "character"},
    )
    assert r.status_code == 200
    assert r.json()["stage"] == 1

    r = await client.get("/api/v1/progress/weekly-xp", headers=headers)
    assert r.json()["xp"] == 50
    assert r.json()["week_start"] == "2026-03-09"

    r = await client.get("/api/v1/leaderboard", headers=headers)
    assert r.status_code == 200
    board = r.json()
    assert board["top"][0]["display_name"] == "smoke"
    assert board["current_user"]["rank"] == 1

    r = await client.get("/api/v1/progress", headers=headers)
    assert r.status_code == 200
    assert r.json()["characters_learned"] == 1

    r = await client.post("/api/v1/progress/reset", headers=headers)
    assert r.status_code == 200
    assert r.json()["progress_deleted"] == 2

    r = await client.get("/api/v1/progress/weekly-xp", headers=headers)
    assert r.json()["xp"] == 0


@pytest.mark.asyncio
async def test_validation_errors(client: AsyncClient, seeded: dict):
    headers = seeded["headers"]

    r = await client.post(
        "/api/v1/progress/learn",
        headers=headers,
        json={"items": [{"item_id": seeded["ichi"], "kind": "character", "question_count": 3}]},
    )
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"
    assert r.json()["errors"][0]["field"].endswith("question_count")
    assert "request_id" in r.json()

    r = await client.post("/api/v1/progress/learn", headers=headers, json={"items": []})
    assert r.status_code == 422

    r = await client.post(
        "/api/v1/progress/learn",
        headers=headers,
        json={"items": [{"item_id": seeded["ichi"], "kind": "character", "question_count": 1}]},
    )
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_unknown_progress_record(client: AsyncClient, seeded: dict):
    r = await client.post(
        "/api/v1/reviews",
        headers=seeded["headers"],
        json={
            "progress_id": str(uuid.uuid4()),
            "kind": "character",
            "question_type": "meaning",
            "correct": True,
        },
    )
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_skip_to_level(client: AsyncClient, seeded: dict):
    headers = seeded["headers"]
    r = await client.post("/api/v1/lessons/skip-to/2", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["characters_burned"] == 1
    assert r.json()["words_burned"] == 1

    r = await client.get("/api/v1/lessons/2", headers=headers)
    assert r.status_code == 200
    assert r.json()["characters"][0]["item"]["text"] == "山"


@pytest.mark.asyncio
async def test_rate_limit(client: AsyncClient, monkeypatch):
    from src.api.middleware import rate_limit
    from src.config import Settings

    limited = Settings(rate_limit_enabled=True, rate_limit_api_per_minute=2)
    monkeypatch.setattr(rate_limit, "get_settings", lambda: limited)
    rate_limit.get_store().clear()
    try:
        statuses = [(await client.get("/api/v1/reviews")).status_code for _ in range(3)]
        assert statuses == [401, 401, 429]

        r = await client.get("/health")
        assert r.status_code == 200
    finally:
        rate_limit.get_store().clear()


@pytest.mark.asyncio
async def test_disabled_account_rejected(client: AsyncClient, seeded: dict):
    async with TEST_SESSION_MAKER() as session:
        user = (await session.execute(select(User).where(User.email == "smoke@example.com"))).scalar_one()
        user.is_active = False
        await session.commit()

    r = await client.get("/api/v1/progress", headers=seeded["headers"])
    assert r.status_code == 403
    assert r.json()["detail"] == "User account is disabled"
