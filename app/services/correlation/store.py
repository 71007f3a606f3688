"""In-process correlation store.

Webhook handlers for different legs of the same conversation run
concurrently, so every read-then-delete here happens under the owning
table's lock. Locks are held only for dictionary operations, never across
an ``await``; unrelated conversations never wait on each other's remote
calls.
"""
import logging
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional

from app.services.correlation.models import (
    ActiveConversation,
    ExpectedCallback,
    OutboundAttempt,
    PendingCall,
    TranscriptEntry,
    utcnow,
)

logger = logging.getLogger(__name__)


class CorrelationStore:
    """Keyed tables mapping legs and derived keys to orchestration context."""

    def __init__(self, transcript_buffer_size: int = 200):
        self.transcript_buffer_size = transcript_buffer_size

        self._pending: Dict[str, PendingCall] = {}
        self._pending_lock = threading.Lock()

        self._conversations: Dict[str, ActiveConversation] = {}
        self._conversations_lock = threading.Lock()

        self._callbacks: Dict[str, ExpectedCallback] = {}
        self._callbacks_lock = threading.Lock()

        self._attempts: Dict[str, OutboundAttempt] = {}
        self._attempts_lock = threading.Lock()

        # Leg id -> claim time; ended legs keep their claim until swept
        self._claimed_legs: Dict[str, datetime] = {}
        self._ended_legs: Dict[str, datetime] = {}
        self._legs_lock = threading.Lock()

        self._transcripts: Dict[str, Deque[TranscriptEntry]] = {}
        self._transcripts_lock = threading.Lock()

    # Pending calls

    def put_pending(self, pending: PendingCall) -> bool:
        """Insert unless the leg is already pending; False on a duplicate."""
        with self._pending_lock:
            if pending.call_control_id in self._pending:
                return False
            self._pending[pending.call_control_id] = pending
            return True

    def take_pending(self, call_control_id: str) -> Optional[PendingCall]:
        """Remove and return a pending call; only one caller ever gets it."""
        with self._pending_lock:
            return self._pending.pop(call_control_id, None)

    def has_pending(self, call_control_id: str) -> bool:
        with self._pending_lock:
            return call_control_id in self._pending

    # Active conversations

    def put_conversation(self, conversation: ActiveConversation) -> None:
        with self._conversations_lock:
            self._conversations[conversation.anchor_call_control_id] = conversation

    def get_conversation_by_anchor(self, anchor_call_control_id: str) -> Optional[ActiveConversation]:
        with self._conversations_lock:
            conversation = self._conversations.get(anchor_call_control_id)
            return conversation.model_copy() if conversation else None

    def find_conversation_by_conference_id(self, conference_id: str) -> Optional[ActiveConversation]:
        """Linear scan; conversations are few and short-lived."""
        with self._conversations_lock:
            for conversation in self._conversations.values():
                if conversation.conference_id == conference_id:
                    return conversation.model_copy()
        return None

    def find_conversation_by_participant(self, call_control_id: str) -> Optional[ActiveConversation]:
        """Conversation in which a leg is the anchor or any participant."""
        with self._conversations_lock:
            conversation = self._conversations.get(call_control_id)
            if conversation:
                return conversation.model_copy()
            for conversation in self._conversations.values():
                if conversation.participant_role(call_control_id):
                    return conversation.model_copy()
        return None

    def update_conversation(self, conference_id: str, **changes) -> Optional[ActiveConversation]:
        """Apply field changes to the conversation for a conference in place."""
        with self._conversations_lock:
            for conversation in self._conversations.values():
                if conversation.conference_id == conference_id:
                    for field, value in changes.items():
                        setattr(conversation, field, value)
                    return conversation.model_copy()
        return None

    def clear_participant(self, call_control_id: str) -> Optional[ActiveConversation]:
        """Empty the slot a non-anchor leg holds; the conversation stays."""
        with self._conversations_lock:
            for conversation in self._conversations.values():
                role = conversation.participant_role(call_control_id)
                if role == "caller":
                    conversation.caller_call_control_id = None
                elif role == "ai":
                    conversation.ai_call_control_id = None
                    conversation.ai_connected = False
                elif role == "human":
                    conversation.human_call_control_id = None
                    conversation.human_joined = False
                else:
                    continue
                return conversation.model_copy()
        return None

    def delete_conversation(self, anchor_call_control_id: str) -> Optional[ActiveConversation]:
        """Remove and return the conversation anchored on a leg."""
        with self._conversations_lock:
            return self._conversations.pop(anchor_call_control_id, None)

    def list_conversations(self) -> List[ActiveConversation]:
        with self._conversations_lock:
            return [c.model_copy() for c in self._conversations.values()]

    # Expected callbacks

    def put_expected_callback(self, callback: ExpectedCallback) -> None:
        with self._callbacks_lock:
            self._callbacks[callback.key] = callback

    def take_expected_callback(self, key: str, ttl_seconds: Optional[float] = None) -> Optional[ExpectedCallback]:
        """Remove and return a callback; expired entries are dropped, not returned."""
        with self._callbacks_lock:
            callback = self._callbacks.pop(key, None)
        if callback and ttl_seconds is not None and _is_expired(callback.created_at, ttl_seconds):
            return None
        return callback

    def sweep_expired(self, ttl_seconds: float, now: Optional[datetime] = None) -> int:
        """Drop expected callbacks older than the TTL. Returns how many were dropped."""
        with self._callbacks_lock:
            expired = [
                key for key, callback in self._callbacks.items()
                if _is_expired(callback.created_at, ttl_seconds, now)
            ]
            for key in expired:
                del self._callbacks[key]
        if expired:
            logger.debug(f"[STORE] Swept {len(expired)} expired callback(s)")
        return len(expired)

    def callback_count(self) -> int:
        with self._callbacks_lock:
            return len(self._callbacks)

    # Outbound attempts

    def put_outbound_attempt(self, attempt: OutboundAttempt) -> None:
        with self._attempts_lock:
            self._attempts[attempt.call_control_id] = attempt

    def take_outbound_attempt(self, call_control_id: str) -> Optional[OutboundAttempt]:
        with self._attempts_lock:
            return self._attempts.pop(call_control_id, None)

    # Legs already handled on call.answered, and legs that hung up

    def claim_leg(self, call_control_id: str) -> bool:
        """True for the first claim of a live leg, False for repeats and ended legs."""
        with self._legs_lock:
            if call_control_id in self._claimed_legs or call_control_id in self._ended_legs:
                return False
            self._claimed_legs[call_control_id] = utcnow()
            return True

    def end_leg(self, call_control_id: str) -> None:
        """Mark a leg as hung up. Its claim stays so late events cannot reopen it."""
        with self._legs_lock:
            self._ended_legs.setdefault(call_control_id, utcnow())

    def is_leg_ended(self, call_control_id: str) -> bool:
        with self._legs_lock:
            return call_control_id in self._ended_legs

    def sweep_ended_legs(self, ttl_seconds: float, now: Optional[datetime] = None) -> int:
        """Forget legs that hung up more than the TTL ago, claims included."""
        with self._legs_lock:
            expired = [
                leg for leg, ended_at in self._ended_legs.items()
                if _is_expired(ended_at, ttl_seconds, now)
            ]
            for leg in expired:
                del self._ended_legs[leg]
                self._claimed_legs.pop(leg, None)
        return len(expired)

    # Transcripts

    def append_transcript(self, conference_id: str, entry: TranscriptEntry) -> None:
        with self._transcripts_lock:
            buffer = self._transcripts.get(conference_id)
            if buffer is None:
                buffer = deque(maxlen=self.transcript_buffer_size)
                self._transcripts[conference_id] = buffer
            buffer.append(entry)

    def get_transcript(self, conference_id: str) -> List[TranscriptEntry]:
        with self._transcripts_lock:
            return list(self._transcripts.get(conference_id, ()))

    def drop_transcript(self, conference_id: str) -> List[TranscriptEntry]:
        with self._transcripts_lock:
            return list(self._transcripts.pop(conference_id, ()))


def _is_expired(created_at: datetime, ttl_seconds: float, now: Optional[datetime] = None) -> bool:
    return (now or utcnow()) - created_at > timedelta(seconds=ttl_seconds)
