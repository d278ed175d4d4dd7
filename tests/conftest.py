"""
Pytest fixtures for Kanji SRS tests.
"""

import os
import tempfile

# The application engine is built at import time; point it at a throwaway
# SQLite file before anything under src is imported.
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_tmp.name}")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.engines.srs.access import BetaAccessPolicy
from src.engines.srs.clock import BonusCalendar, FixedClock
from src.kernel.identity.jwt import JWTManager
from src.kernel.models import Base
from src.kernel.models.content import Character, Lesson, Word
from src.kernel.models.user import User, UserRole

# A Wednesday, far from any DST switch
WEDNESDAY = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)

TEST_SECRET = "test-secret-key-for-testing-only"


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """A fresh SQLite file per test so upserts run against a real dialect."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'srs.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(WEDNESDAY)


@pytest.fixture
def calendar() -> BonusCalendar:
    return BonusCalendar("Europe/Paris")


@pytest.fixture
def beta_policy() -> BetaAccessPolicy:
    return BetaAccessPolicy()


async def make_user(
    session: AsyncSession,
    email: str,
    username: Optional[str] = None,
    role: UserRole = UserRole.LEARNER,
    subscription_status: Optional[str] = None,
    username_hidden: bool = False,
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        username=username,
        username_hidden=username_hidden,
        role=role.value,
        subscription_status=subscription_status,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def make_lesson(
    session: AsyncSession,
    level: int,
    characters: List[tuple] = (),
    words: List[tuple] = (),
) -> Lesson:
    """
    Seed one level.

    characters: (character, meanings, kun_readings, on_readings)
    words: (word, reading, meanings)
    """
    lesson = Lesson(id=uuid.uuid4(), level=level, title=f"Level {level}")
    session.add(lesson)
    await session.flush()
    for position, (char, meanings, kun, on) in enumerate(characters):
        session.add(
            Character(
                id=uuid.uuid4(),
                lesson_id=lesson.id,
                character=char,
                meanings=list(meanings),
                primary_meaning=meanings[0],
                kun_readings=list(kun),
                on_readings=list(on),
                sort_order=position,
            )
        )
    for position, (text, reading, meanings) in enumerate(words):
        session.add(
            Word(
                id=uuid.uuid4(),
                lesson_id=lesson.id,
                word=text,
                reading=reading,
                meanings=list(meanings),
                primary_meaning=meanings[0],
                sort_order=position,
            )
        )
    await session.commit()
    return lesson


async def seed_curriculum(session: AsyncSession) -> dict:
    """
    Three small levels:

    1: 一, 二 and the word 一つ
    2: 山 and the kana-only word すし
    3: 川
    """
    await make_lesson(
        session,
        1,
        characters=[
            ("一", ["one"], ["ひと"], ["イチ", "イツ"]),
            ("二", ["two"], ["ふた"], ["ニ"]),
        ],
        words=[("一つ", "ひとつ", ["one thing", "one"])],
    )
    await make_lesson(
        session,
        2,
        characters=[("山", ["mountain"], ["やま"], ["サン"])],
        words=[("すし", "すし", ["sushi"])],
    )
    await make_lesson(session, 3, characters=[("川", ["river"], ["かわ"], ["セン"])])

    items = {}
    for model, field in ((Character, "character"), (Word, "word")):
        result = await session.execute(select(model))
        for row in result.scalars().all():
            items[getattr(row, field)] = row
    return items


@pytest_asyncio.fixture
async def learner(db_session: AsyncSession) -> User:
    return await make_user(db_session, "learner@example.com", username="learner")


@pytest_asyncio.fixture
async def curriculum(db_session: AsyncSession) -> dict:
    return await seed_curriculum(db_session)


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(
        secret_key=TEST_SECRET,
        algorithm="HS256",
        access_token_expire_minutes=30,
    )


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Create extra users in the test session: await user_factory(email, username=...)."""

    async def factory(email: str, **kwargs) -> User:
        return await make_user(db_session, email, **kwargs)

    return factory
