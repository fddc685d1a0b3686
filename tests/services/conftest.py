"""Service test fixtures — async DB, fake broker registry, workflow and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager patched so the readiness probe sees the test engine
    - app.state is populated by hand: the lifespan does not run under ASGITransport

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
    - Real ToolRegistry + real ChecklistGuard; only handlers and the model are faked
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from tradepilot.core.checklist_guard import ChecklistGuard
from tradepilot.core.daily_loss import DailyLossTracker
from tradepilot.core.domain_types import TradingMode
from tradepilot.db.base import Base
from tradepilot.infrastructure.checklist_config import load_checklist_config
from tradepilot.infrastructure.database import get_db, DatabaseSessionManager
import tradepilot.infrastructure.database as db_module
from tradepilot.main import app
from tradepilot.services.phased_workflow import PhasedWorkflow
from tradepilot.services.tool_catalog import build_registry

from tests.services.fake_handlers import FakeBroker
from tests.services.mock_anthropic import MockAnthropicClient

READY_CONTEXT = {
    "market_open": True,
    "websocket_connected": True,
    "broker_authenticated": True,
}


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def registry(broker):
    """Dry-run registry with every catalogue tool bound to the fake broker."""
    return build_registry(broker.handlers(), dry_run=True)


@pytest.fixture
def guard():
    return ChecklistGuard(load_checklist_config())


@pytest.fixture
def ready_context():
    return dict(READY_CONTEXT)


@pytest.fixture
def alerts():
    """Collects (message, details) pairs sent to the alert sink."""
    return []


@pytest.fixture
def make_workflow(registry, guard, alerts):
    """Factory: PhasedWorkflow over a scripted MockAnthropicClient."""
    def _make(responses, mode=TradingMode.SWING_LONG, **kwargs):
        client = MockAnthropicClient(responses)
        workflow = PhasedWorkflow(
            client, registry, guard, mode=mode,
            alert_sink=lambda message, details: alerts.append((message, details)),
            **kwargs,
        )
        return workflow, client
    return _make


@pytest.fixture
async def client(test_engine, test_session_factory, registry, guard, alerts):
    """FastAPI test client with DB dependency overridden and app.state populated."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    tracker = DailyLossTracker(max_daily_loss=5_000.0)
    app.state.registry = registry
    app.state.loss_tracker = tracker
    app.state.workflow = PhasedWorkflow(
        MockAnthropicClient([]), registry, guard,
        mode=TradingMode.SWING_LONG,
        kill_state_provider=tracker.kill_switch_fields,
        alert_sink=lambda message, details: alerts.append((message, details)),
    )

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
