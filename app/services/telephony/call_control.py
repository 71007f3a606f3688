"""Telnyx Call Control client."""
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class CallControlResult(BaseModel):
    """Outcome of one remote call-control action."""

    success: bool
    error: Optional[str] = None
    conference_id: Optional[str] = None
    call_control_id: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "CallControlResult":
        return cls(success=False, error=error)


def provider_error(response: httpx.Response) -> str:
    """Provider-supplied error message from a non-2xx response."""
    try:
        errors = response.json().get("errors") or []
        detail = errors[0].get("detail") or errors[0].get("title")
        if detail:
            return detail
    except (ValueError, AttributeError, IndexError, KeyError):
        pass
    return f"API error: {response.status_code}"


class CallControlClient:
    """Thin wrapper over the Telnyx v2 call-control endpoints.

    None of the methods raise for provider-side failures. A missing API key,
    a non-2xx response or a transport error all come back as a failed
    ``CallControlResult`` carrying the error message.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        connection_id: str = "",
        base_url: str = "https://api.telnyx.com/v2",
    ):
        self.http_client = http_client
        self.api_key = api_key
        self.connection_id = connection_id
        self.base_url = base_url.rstrip("/")

    async def _post(self, action: str, path: str, body: Optional[Dict[str, Any]] = None):
        """POST to Telnyx. Returns (response data, error)."""
        if not self.api_key:
            logger.error(f"[TELNYX] No API key configured, cannot {action}")
            return None, "No API key"

        try:
            response = await self.http_client.post(
                f"{self.base_url}{path}",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
            )
        except httpx.HTTPError as e:
            logger.error(f"[TELNYX] Error trying to {action}: {type(e).__name__}: {e}")
            return None, str(e) or type(e).__name__

        if response.is_error:
            error = provider_error(response)
            logger.error(f"[TELNYX] Error trying to {action}: {error}")
            return None, error

        try:
            data = response.json().get("data") or {}
        except ValueError:
            data = {}
        return data, None

    async def answer(self, call_control_id: str) -> CallControlResult:
        """Answer an inbound leg."""
        _, error = await self._post("answer call", f"/calls/{call_control_id}/actions/answer", {})
        if error:
            return CallControlResult.failure(error)
        return CallControlResult(success=True, call_control_id=call_control_id)

    async def create_conference(self, name: str, call_control_id: str) -> CallControlResult:
        """Create a conference; Telnyx joins the given leg to it automatically."""
        data, error = await self._post(
            "create conference",
            "/conferences",
            {"name": name, "beep_enabled": "never", "call_control_id": call_control_id},
        )
        if error:
            return CallControlResult.failure(error)
        conference_id = data.get("id")
        if not conference_id:
            return CallControlResult.failure("Conference id missing from response")
        return CallControlResult(success=True, conference_id=conference_id, call_control_id=call_control_id)

    async def join_conference(self, conference_id: str, call_control_id: str) -> CallControlResult:
        """Join a leg to an existing conference."""
        _, error = await self._post(
            "join conference",
            f"/conferences/{conference_id}/actions/join",
            {"call_control_id": call_control_id},
        )
        if error:
            return CallControlResult.failure(error)
        return CallControlResult(success=True, conference_id=conference_id, call_control_id=call_control_id)

    async def dial(self, to: str, from_address: str, client_state: Optional[str] = None) -> CallControlResult:
        """Place an outbound call. ``to`` may be a phone number or a SIP URI."""
        body = {
            "connection_id": self.connection_id,
            "to": to,
            "from": from_address,
            "answering_machine_detection": "disabled",
        }
        if client_state:
            body["client_state"] = client_state
        data, error = await self._post(f"dial {to}", "/calls", body)
        if error:
            return CallControlResult.failure(error)
        call_control_id = data.get("call_control_id")
        if not call_control_id:
            return CallControlResult.failure("call_control_id missing from response")
        return CallControlResult(success=True, call_control_id=call_control_id)

    async def dial_sip(self, target_uri: str, from_address: str, client_state: Optional[str] = None) -> CallControlResult:
        """Dial a SIP endpoint, e.g. the AI agent's trunk."""
        logger.info(f"[TELNYX] Dialing SIP: {target_uri}")
        return await self.dial(target_uri, from_address, client_state)

    async def start_transcription(self, conference_id: str, call_control_id: str) -> CallControlResult:
        """Start transcription for a conference.

        Telnyx transcribes per leg, so this runs on the conference's anchor
        leg with both tracks enabled.
        """
        _, error = await self._post(
            "start transcription",
            f"/calls/{call_control_id}/actions/transcription_start",
            {"language": "en", "transcription_tracks": "both"},
        )
        if error:
            return CallControlResult.failure(error)
        return CallControlResult(success=True, conference_id=conference_id, call_control_id=call_control_id)
