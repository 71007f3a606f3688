"""Shared test fixtures and configuration."""
import pytest
import os
from unittest.mock import AsyncMock, Mock
import httpx
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("TELNYX_API_KEY", "test-key")
os.environ.setdefault("TELNYX_CONNECTION_ID", "test-connection")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from app.main import app
from app.db.database import Base, get_db
from app.core.dependencies import get_event_buffer, get_orchestrator
from app.services.agents.directory import AgentConfig, AgentDirectory
from app.services.correlation.store import CorrelationStore
from app.services.events.buffer import EventBuffer
from app.services.notifications.supervisor import SupervisorNotifier
from app.services.orchestration.orchestrator import CallOrchestrator
from app.services.persistence.calls import CallHistory
from app.services.telephony.agent_platform import AgentCallResult, AgentPlatformClient
from app.services.telephony.call_control import CallControlClient, CallControlResult


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def agent():
    """The single configured test agent."""
    return AgentConfig(
        phone_number="+1AGENT",
        phone_number_id="phnum_test",
        agent_id="agent_test",
        agent_name="Test Assistant",
    )


@pytest.fixture
def agent_directory(agent):
    return AgentDirectory.from_agents([agent])


@pytest.fixture
def store():
    return CorrelationStore(transcript_buffer_size=5)


@pytest.fixture
def mock_call_control():
    """Call-control client whose every action succeeds."""
    client = Mock(spec=CallControlClient)
    client.answer = AsyncMock(return_value=CallControlResult(success=True))
    client.create_conference = AsyncMock(
        return_value=CallControlResult(success=True, conference_id="C1")
    )
    client.join_conference = AsyncMock(return_value=CallControlResult(success=True))
    client.dial_sip = AsyncMock(
        return_value=CallControlResult(success=True, call_control_id="L2")
    )
    client.dial = AsyncMock(
        return_value=CallControlResult(success=True, call_control_id="L3")
    )
    client.start_transcription = AsyncMock(return_value=CallControlResult(success=True))
    return client


@pytest.fixture
def mock_notifier():
    """Notifier recording calls instead of posting."""
    return Mock(spec=SupervisorNotifier)


@pytest.fixture
def mock_agent_platform():
    client = Mock(spec=AgentPlatformClient)
    client.outbound_call = AsyncMock(
        return_value=AgentCallResult(success=True, conversation_id="conv_1", sip_call_id="sip_1")
    )
    return client


@pytest.fixture
def orchestrator(store, mock_call_control, agent_directory, mock_notifier, mock_agent_platform):
    """Orchestrator without call history."""
    return CallOrchestrator(
        store=store,
        call_control=mock_call_control,
        agents=agent_directory,
        notifier=mock_notifier,
        agent_platform=mock_agent_platform,
        sip_host="sip.test:5061",
        expected_callback_ttl=60.0,
    )


@pytest.fixture
def orchestrator_with_history(
    store, mock_call_control, agent_directory, mock_notifier, test_session_factory
):
    """Orchestrator writing call history to the test database."""
    return CallOrchestrator(
        store=store,
        call_control=mock_call_control,
        agents=agent_directory,
        notifier=mock_notifier,
        history=CallHistory(test_session_factory),
        sip_host="sip.test:5061",
    )


@pytest.fixture
def event_buffer():
    return EventBuffer(max_events=10)


@pytest.fixture
def override_get_db(test_db):
    """Override get_db dependency with test database."""
    async def _override_get_db():
        yield test_db
    return _override_get_db


@pytest.fixture
async def api_client(orchestrator, event_buffer, override_get_db):
    """Async HTTP client against the app with overrides.

    Runs on the test event loop, so background tasks and the test database
    share it.
    """
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_event_buffer] = lambda: event_buffer

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
def make_webhook():
    """Build a Telnyx webhook body; pass ``from_`` for the from address."""
    def _make_webhook(event_type: str, **payload) -> dict:
        if "from_" in payload:
            payload["from"] = payload.pop("from_")
        return {"data": {"event_type": event_type, "payload": payload}}
    return _make_webhook
