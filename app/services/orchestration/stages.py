"""Conversation stage enumeration."""
from enum import Enum


class ConversationStage(str, Enum):
    """Stages a bridged conversation moves through."""

    INITIATED = "initiated"  # Leg seen, nothing done yet
    ANSWERED_PENDING_CONFERENCE = "answered_pending_conference"
    CONFERENCE_CREATED = "conference_created"
    AI_DIALED = "ai_dialed"  # Waiting for the AI leg to answer
    BRIDGED = "bridged"  # Caller/contact and AI share the conference
    HUMAN_JOINED = "human_joined"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        """Return the string value of the stage."""
        return self.value


class ConversationDirection(str, Enum):
    """Which side started the conversation."""

    INBOUND = "inbound"  # Caller dialed an agent number
    OUTBOUND = "outbound"  # We dialed a contact, then the AI
    AGENT_OUTBOUND = "agent_outbound"  # AI platform dialed out through our trunk

    def __str__(self) -> str:
        return self.value
