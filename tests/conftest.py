"""Shared pytest fixtures for the Moai match engine tests.

Service tests run against an in-memory SQLite database (aiosqlite) built
from ``Base.metadata``; the ON CONFLICT and SAVEPOINT paths used in
production are exercised through SQLite's own support for both.
"""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from moai.database import Base
from moai.models import IntakeProfile, MatchCandidate, PreferenceSet, Profile
from moai.services.opener_service import OpenerResult

SF_LAT = 37.7749
SF_LNG = -122.4194

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)  # a Monday
BATCH_WEEK = datetime(2026, 10, 18).date()                # its Sunday


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's implicit transactions swallow SAVEPOINT; hand control to
    # SQLAlchemy so begin_nested() behaves as it does on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def file_session_factory(tmp_path):
    """Sessions on a file database, one pooled connection each, for tests
    that run several transactions at once."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'moai.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    # SQLite has no row locks; taking the write lock at BEGIN makes a second
    # writer wait for the first to commit, as SELECT ... FOR UPDATE does.
    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_profile(db):
    """Factory for onboarded profiles. Defaults give two profiles created with
    no overrides a perfect score at zero distance."""

    async def _make(
        name="Alex",
        lat=SF_LAT,
        lng=SF_LNG,
        radius_km=15.0,
        city="San Francisco",
        languages=("en",),
        hobbies=("hiking", "coffee"),
        slots=None,
        embedding=(1.0, 0.0, 0.0),
        with_preferences=True,
        with_intake=True,
        complete=True,
        is_active=True,
        is_paused=False,
        profile_id=None,
    ):
        profile = Profile(
            id=profile_id or uuid.uuid4(),
            display_name=name,
            city=city,
            lat=lat,
            lng=lng,
            radius_km=radius_km,
            is_active=is_active,
            is_paused=is_paused,
        )
        profile.preferences = (
            PreferenceSet(
                languages=list(languages),
                availability_slots=slots if slots is not None else {"sat_morning": True},
            )
            if with_preferences
            else None
        )
        profile.intake = (
            IntakeProfile(
                answers={},
                hobbies=list(hobbies),
                topics=[],
                embedding=list(embedding) if embedding is not None else None,
                completed_at=NOW - timedelta(days=30) if complete else None,
            )
            if with_intake
            else None
        )
        db.add(profile)
        await db.flush()
        return profile

    return _make


@pytest.fixture
def fake_opener():
    """Opener collaborator that answers instantly with a canned message."""
    opener = AsyncMock()
    opener.generate_opener.return_value = OpenerResult(
        text="Hello you two! What are you up to this weekend?",
        source="gemini",
        model="gemini-2.5-flash",
    )
    return opener


@pytest.fixture
def make_candidate(db):
    """Factory for a persisted candidate row between two existing profiles."""

    async def _make(
        user_a,
        user_b,
        batch_week=BATCH_WEEK,
        created_at=NOW,
        ttl=timedelta(days=6),
        status="pending",
        score=0.82,
        reasons=None,
    ):
        candidate = MatchCandidate(
            id=uuid.uuid4(),
            batch_week=batch_week,
            user_a=user_a,
            user_b=user_b,
            score=score,
            reasons=reasons or {
                "overlaps": ["speak common languages", "share hobbies"],
                "complement": "complementary personalities",
            },
            status=status,
            created_at=created_at,
            expires_at=created_at + ttl,
        )
        db.add(candidate)
        await db.flush()
        return candidate

    return _make


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def batch_week():
    return BATCH_WEEK
