"""Shared pytest fixtures and test helpers for the CareerNet tests."""

from __future__ import annotations

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from careernet.core.database import build_engine, build_session_factory, init_models
from careernet.models import Connection, ConnectionRequest, Profile, User
from careernet.schemas.connection import ConnectionStatus
from careernet.services.connection_requests import ConnectionRequestService
from careernet.services.graph import ConnectionGraph
from careernet.services.status import ConnectionStatusService
from careernet.services.suggestions import SuggestionService


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncEngine:
    """SQLite engine on a temp file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'careernet.db'}")
    await init_models(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture
async def users(session_factory: async_sessionmaker[AsyncSession]) -> list[int]:
    """Five users with profiles: an employee, employer, recruiter and two more employees."""
    roles = ["employee", "employer", "recruiter", "employee", "employee"]
    ids = []
    async with session_factory() as session:
        for index, role in enumerate(roles, start=1):
            ids.append(await create_user(session, f"User {index}", role))
        await session.commit()
    return ids


@pytest.fixture
def network(session_factory: async_sessionmaker[AsyncSession]) -> "Network":
    return Network(session_factory)


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


async def create_user(session: AsyncSession, name: str, role: str = "employee", with_profile: bool = True) -> int:
    """Insert a user (and profile) and return its id, without committing."""
    user = User(name=name, email=f"{name.lower().replace(' ', '.')}@example.com", role=role)
    session.add(user)
    await session.flush()
    if with_profile:
        session.add(Profile(user_id=user.id, headline=f"{name} headline", location="Remote"))
        await session.flush()
    return user.id


class Network:
    """Runs every operation in its own session, one per simulated HTTP request."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def send(self, from_user_id: int, to_user_id: Optional[int], message: Optional[str] = None) -> int:
        async with self.session_factory() as session:
            response = await ConnectionRequestService(session).send(from_user_id, to_user_id, message)
        return response.request_id

    async def accept(self, request_id: int, user_id: int) -> None:
        async with self.session_factory() as session:
            await ConnectionRequestService(session).accept(request_id, user_id)

    async def reject(self, request_id: int, user_id: int) -> None:
        async with self.session_factory() as session:
            await ConnectionRequestService(session).reject(request_id, user_id)

    async def withdraw(self, request_id: int, user_id: int) -> None:
        async with self.session_factory() as session:
            await ConnectionRequestService(session).withdraw(request_id, user_id)

    async def connect(self, from_user_id: int, to_user_id: int) -> int:
        """Send and accept in one go."""
        request_id = await self.send(from_user_id, to_user_id)
        await self.accept(request_id, to_user_id)
        return request_id

    async def remove(self, user_id: int, other_user_id: int, acting_user_id: Optional[int] = None) -> None:
        actor = user_id if acting_user_id is None else acting_user_id
        async with self.session_factory() as session:
            await ConnectionGraph(session).remove(user_id, other_user_id, actor)

    async def status(self, user_id: int, other_user_id: int) -> ConnectionStatus:
        async with self.session_factory() as session:
            return await ConnectionStatusService(session).status(user_id, other_user_id)

    async def suggestion_ids(self, user_id: int, limit: int = 12) -> list[int]:
        async with self.session_factory() as session:
            result = await SuggestionService(session).suggest(user_id, limit)
        return [user.id for user in result.suggestions]

    async def count(self, user_id: int) -> int:
        async with self.session_factory() as session:
            return await ConnectionGraph(session).get_connections_count(user_id)

    async def set_count(self, user_id: int, value: int) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Profile).where(Profile.user_id == user_id).values(connections_count=value)
            )
            await session.commit()

    async def request_status(self, request_id: int) -> str:
        async with self.session_factory() as session:
            request = await session.get(ConnectionRequest, request_id)
            return request.status

    async def edges(self) -> list[tuple[int, int]]:
        async with self.session_factory() as session:
            result = await session.execute(select(Connection.user_a_id, Connection.user_b_id))
            return [tuple(row) for row in result.all()]

    async def request_count(self) -> int:
        async with self.session_factory() as session:
            return (await session.execute(select(func.count(ConnectionRequest.id)))).scalar_one()


@pytest.fixture
def make_user(session_factory: async_sessionmaker[AsyncSession]):
    """Factory committing one extra user per call."""

    async def _make_user(name: str, role: str = "employee", with_profile: bool = True) -> int:
        async with session_factory() as session:
            user_id = await create_user(session, name, role, with_profile)
            await session.commit()
        return user_id

    return _make_user


@pytest.fixture
def restore_logging():
    """Restore root logger state after a test reconfigures logging."""
    import logging

    import structlog

    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    app_logger = logging.getLogger("careernet")
    app_level = app_logger.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    app_logger.setLevel(app_level)
    structlog.contextvars.clear_contextvars()
