"""Shared test fixtures."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from genpipe.db.base import utcnow
from genpipe.db.engine import create_db_engine, create_session_factory, create_tables
from genpipe.db.models.generation_result import GenerationResultRow
from genpipe.services.dispatcher import Dispatcher
from genpipe.services.result_store import ResultStore
from genpipe.workers.queue import InProcessEventBus

@pytest.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite async engine for testing.

    A file database gives every session its own connection, so concurrent
    workers and pollers do not share one transaction.
    """
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'genpipe_test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)

@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session

@pytest.fixture
def store(session_factory):
    return ResultStore(session_factory)

@pytest.fixture
def bus():
    return InProcessEventBus()

@pytest.fixture
def dispatcher(store, bus):
    return Dispatcher(store, bus)

@pytest.fixture
def backdate(session_factory):
    """Move a result's created_at into the past."""

    async def _backdate(result_id: str, age: timedelta) -> None:
        async with session_factory() as session:
            await session.execute(
                update(GenerationResultRow)
                .where(GenerationResultRow.id == result_id)
                .values(created_at=utcnow() - age)
            )
            await session.commit()

    return _backdate

@pytest.fixture
def app(db_engine, session_factory, store, bus, dispatcher):
    """Create a test application instance wired to the test database."""
    from genpipe.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.redis = None
    _app.state.result_store = store
    _app.state.event_bus = bus
    _app.state.dispatcher = dispatcher
    return _app

@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
