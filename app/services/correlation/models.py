"""Correlation records tracked between webhooks."""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.services.agents.directory import AgentConfig
from app.services.orchestration.stages import ConversationDirection, ConversationStage


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingCall(BaseModel):
    """Leg we answered that still needs a conference."""

    call_control_id: str
    caller: Optional[str] = None
    agent_number: str
    agent: AgentConfig
    flow: str = "inbound"  # inbound, agent_callback
    contact: Optional[str] = None  # Who the AI asked to reach (agent_callback)
    created_at: datetime = Field(default_factory=utcnow)


class ActiveConversation(BaseModel):
    """Conference bridging a caller/contact leg, an AI leg and maybe a human."""

    anchor_call_control_id: str
    conference_id: str
    conference_name: str
    direction: ConversationDirection = ConversationDirection.INBOUND
    stage: ConversationStage = ConversationStage.CONFERENCE_CREATED
    agent_number: Optional[str] = None
    agent_name: Optional[str] = None
    counterpart: Optional[str] = None  # Caller or contact address
    caller_call_control_id: Optional[str] = None
    ai_call_control_id: Optional[str] = None
    human_call_control_id: Optional[str] = None
    ai_connected: bool = False
    human_joined: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    def participant_role(self, call_control_id: str) -> Optional[str]:
        """Role of a leg in this conversation, if any."""
        if call_control_id == self.caller_call_control_id:
            return "caller"
        if call_control_id == self.ai_call_control_id:
            return "ai"
        if call_control_id == self.human_call_control_id:
            return "human"
        return None


class ExpectedCallback(BaseModel):
    """A leg we expect to appear shortly, keyed by direction and address pair."""

    key: str
    record: Any = None  # Client-state record to apply to the leg
    created_at: datetime = Field(default_factory=utcnow)


class OutboundAttempt(BaseModel):
    """Outbound leg toward a plain number, seen on ``call.initiated``."""

    call_control_id: str
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    record: Any = None
    created_at: datetime = Field(default_factory=utcnow)


class TranscriptEntry(BaseModel):
    """One finalized utterance in a conversation."""

    speaker: str  # agent, caller
    text: str
    call_control_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


def address_key(direction: str, from_address: Optional[str], to_address: Optional[str]) -> str:
    """Correlation key for a leg we have not seen yet, e.g. ``outbound:+1555|+1666``."""
    return f"{direction}:{(from_address or '').strip()}|{(to_address or '').strip()}"
