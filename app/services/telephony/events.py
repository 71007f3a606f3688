"""Normalized Telnyx webhook events."""
from typing import Any, Dict, Optional
from pydantic import BaseModel


EVENT_KINDS = {
    "call.initiated": "initiated",
    "call.answered": "answered",
    "call.hangup": "hangup",
    "call.transcription": "transcription",
}


class CallEvent(BaseModel):
    """The fields of a Telnyx webhook payload the orchestrator consumes."""

    event_type: str
    kind: Optional[str] = None  # initiated, answered, hangup, transcription
    call_control_id: Optional[str] = None
    direction: Optional[str] = None
    to: Optional[str] = None
    from_address: Optional[str] = None
    client_state: Optional[str] = None
    conference_id: Optional[str] = None
    hangup_cause: Optional[str] = None
    transcript: Optional[str] = None
    is_final: bool = False
    payload: Dict[str, Any] = {}

    @property
    def is_inbound(self) -> bool:
        return self.direction in ("inbound", "incoming")

    @property
    def is_outbound(self) -> bool:
        return self.direction in ("outbound", "outgoing")

    @classmethod
    def from_webhook(cls, data: Dict[str, Any]) -> "CallEvent":
        """Build from the ``data`` object of a webhook body."""
        event_type = str(data.get("event_type") or "")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            payload = {}
        transcription = payload.get("transcription_data") or {}
        if not isinstance(transcription, dict):
            transcription = {}

        return cls(
            event_type=event_type,
            kind=EVENT_KINDS.get(event_type),
            call_control_id=_str_or_none(payload.get("call_control_id")),
            direction=_str_or_none(payload.get("direction")),
            to=_str_or_none(payload.get("to")),
            from_address=_str_or_none(payload.get("from")),
            client_state=_str_or_none(payload.get("client_state")),
            conference_id=_str_or_none(payload.get("conference_id")),
            hangup_cause=_str_or_none(payload.get("hangup_cause")),
            transcript=_str_or_none(transcription.get("transcript")),
            is_final=bool(transcription.get("is_final", False)),
            payload=payload,
        )


def is_sip_address(address: Optional[str]) -> bool:
    return bool(address) and address.strip().lower().startswith("sip:")


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
