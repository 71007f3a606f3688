"""FastAPI dependencies."""
import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import Settings
from app.services.agents.directory import AgentDirectory
from app.services.correlation.store import CorrelationStore
from app.services.events.buffer import EventBuffer
from app.services.notifications.supervisor import SupervisorNotifier
from app.services.orchestration.orchestrator import CallOrchestrator
from app.services.persistence.calls import CallHistory
from app.services.telephony.agent_platform import AgentPlatformClient
from app.services.telephony.call_control import CallControlClient


def create_orchestrator(
    settings: Settings,
    http_client: httpx.AsyncClient,
    session_factory: async_sessionmaker,
) -> CallOrchestrator:
    """Wire the orchestrator and its collaborators from settings."""
    return CallOrchestrator(
        store=CorrelationStore(transcript_buffer_size=settings.transcript_buffer_size),
        call_control=CallControlClient(
            http_client,
            api_key=settings.telnyx_api_key,
            connection_id=settings.telnyx_connection_id,
            base_url=settings.telnyx_api_base,
        ),
        agents=AgentDirectory(settings.agents_file),
        notifier=SupervisorNotifier(
            http_client,
            supervisor_url=settings.supervisor_webhook_url,
            forward_url=settings.forward_webhook_url,
        ),
        agent_platform=AgentPlatformClient(
            http_client,
            api_key=settings.elevenlabs_api_key,
            base_url=settings.elevenlabs_api_base,
        ),
        history=CallHistory(session_factory),
        sip_host=settings.elevenlabs_sip_host,
        expected_callback_ttl=settings.expected_callback_ttl_seconds,
        transcribe_outbound_calls=settings.transcribe_outbound_calls,
        ended_leg_retention=settings.ended_leg_retention_seconds,
    )


def get_orchestrator(request: Request) -> CallOrchestrator:
    """Get the process-wide orchestrator."""
    return request.app.state.orchestrator


def get_event_buffer(request: Request) -> EventBuffer:
    """Get the diagnostic event buffer."""
    return request.app.state.event_buffer
