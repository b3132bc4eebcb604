"""Shared test fixtures for the GST practice test suite."""

import asyncio
from datetime import datetime, timezone

import pytest

from app.core.db import build_engine, build_session_factory
from app.domain.models.compliance import ActorContext, EntityKind
from app.domain.services.compliance_engine import ComplianceEngine
from app.infrastructure.db import models  # noqa: F401
from app.infrastructure.db.base import Base
from app.infrastructure.db.repositories.user_repository import UserRepository

FIXED_NOW = datetime(2025, 4, 20, 10, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def event_loop():
    """Use a single event loop for the entire test session."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def session_factory(event_loop, tmp_path):
    """Fresh SQLite database file per test, schema created from the models."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'practice.db'}")

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    event_loop.run_until_complete(_create())
    yield build_session_factory(engine)
    event_loop.run_until_complete(engine.dispose())


def _make_user(event_loop, session_factory, email: str) -> ActorContext:
    async def _create():
        async with session_factory() as session:
            user = await UserRepository(session).get_or_create_by_email(email, name=email.split("@")[0])
            await session.commit()
            return ActorContext(user_id=user.id)

    return event_loop.run_until_complete(_create())


@pytest.fixture
def actor(event_loop, session_factory) -> ActorContext:
    return _make_user(event_loop, session_factory, "practitioner@example.com")


@pytest.fixture
def other_actor(event_loop, session_factory) -> ActorContext:
    return _make_user(event_loop, session_factory, "someone.else@example.com")


@pytest.fixture
def trigger():
    """Notification trigger stand-in; tests that care about alerts inspect its calls."""
    from unittest.mock import AsyncMock, MagicMock

    mock = MagicMock()
    mock.on_committed = AsyncMock(return_value=0)
    return mock


@pytest.fixture
def engine(session_factory, trigger) -> ComplianceEngine:
    return ComplianceEngine(session_factory, trigger=trigger, clock=lambda: FIXED_NOW)


@pytest.fixture
def client_id(event_loop, engine, actor):
    state = event_loop.run_until_complete(
        engine.create(
            actor,
            EntityKind.CLIENT,
            {"business_name": "ABC Traders Pvt Ltd", "gstin": "36AABCU9603R1ZM", "pan": "AABCU9603R"},
        )
    )
    return state.entity_id
