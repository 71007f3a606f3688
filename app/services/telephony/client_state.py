"""Correlation tokens carried in Telnyx ``client_state``.

Telnyx echoes the ``client_state`` string of a dial request back on every
webhook for the resulting leg. We use it to tell which local record a leg
belongs to. The token is base64 encoded JSON with a ``kind`` discriminant
and a format version ``v``; tokens from a newer format decode to ``None``
so that old and new processes can share in-flight calls.
"""
import base64
import binascii
import json
import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

CLIENT_STATE_VERSION = 1


class AiLegState(BaseModel):
    """Outbound SIP leg to the AI agent; join it to ``conference_id``."""

    kind: Literal["ai_leg"] = "ai_leg"
    v: int = CLIENT_STATE_VERSION
    conference_id: str
    counterpart: Optional[str] = None  # Caller or contact address
    agent_number: Optional[str] = None


class OutboundContactState(BaseModel):
    """Outbound leg to a human contact.

    Without ``conference_id`` the contact leg anchors a new conference. With
    one, the AI is already waiting in that conference.
    """

    kind: Literal["outbound_contact"] = "outbound_contact"
    v: int = CLIENT_STATE_VERSION
    agent_number: str
    contact: str
    conference_id: Optional[str] = None


class HumanTakeoverState(BaseModel):
    """Outbound leg to a human joining an existing conversation."""

    kind: Literal["human_takeover"] = "human_takeover"
    v: int = CLIENT_STATE_VERSION
    conference_id: str
    counterpart: Optional[str] = None


ClientState = Annotated[
    Union[AiLegState, OutboundContactState, HumanTakeoverState],
    Field(discriminator="kind"),
]

_adapter = TypeAdapter(ClientState)


def encode_client_state(state: Union[AiLegState, OutboundContactState, HumanTakeoverState]) -> str:
    """Encode a correlation record for a dial request."""
    raw = state.model_dump_json(exclude_none=True)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_client_state(token: Optional[str]) -> Optional[ClientState]:
    """Decode a ``client_state`` value; ``None`` when absent or unusable."""
    if not token:
        return None
    try:
        raw = base64.b64decode(token, validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.debug("[CLIENT STATE] Ignoring undecodable client_state")
        return None
    if not isinstance(data, dict):
        return None
    version = data.get("v", CLIENT_STATE_VERSION)
    if not isinstance(version, int) or version > CLIENT_STATE_VERSION:
        logger.debug(f"[CLIENT STATE] Ignoring client_state version {version!r}")
        return None
    try:
        return _adapter.validate_python(data)
    except ValidationError:
        logger.debug(f"[CLIENT STATE] Ignoring client_state of kind {data.get('kind')!r}")
        return None
