"""Recent raw webhook events, kept for diagnostic polling."""
import threading
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class StoredEvent(BaseModel):
    """A webhook as received."""

    id: str
    received_at: datetime
    event_type: Optional[str] = None
    payload: Dict[str, Any] = {}
    raw: Dict[str, Any] = {}


class EventBuffer:
    """Newest-first ring buffer of webhook events."""

    def __init__(self, max_events: int = 100):
        self._events: deque = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def record(self, data: Dict[str, Any]) -> StoredEvent:
        payload = data.get("payload")
        event = StoredEvent(
            id=f"evt_{uuid.uuid4().hex}",
            received_at=datetime.now(timezone.utc),
            event_type=data.get("event_type"),
            payload=payload if isinstance(payload, dict) else {},
            raw=data,
        )
        with self._lock:
            self._events.appendleft(event)
        return event

    def list(
        self,
        since: Optional[datetime] = None,
        event_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[StoredEvent]:
        """Newest first, optionally filtered."""
        with self._lock:
            events = list(self._events)
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            events = [e for e in events if e.received_at > since]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events[:limit]

    def get(self, event_id: str) -> Optional[StoredEvent]:
        with self._lock:
            for event in self._events:
                if event.id == event_id:
                    return event
        return None

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
