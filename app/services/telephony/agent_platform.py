"""ElevenLabs conversational AI outbound-call client."""
import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from app.services.agents.directory import AgentConfig

logger = logging.getLogger(__name__)


class AgentCallResult(BaseModel):
    """Outcome of asking the AI platform to place a call."""

    success: bool
    error: Optional[str] = None
    conversation_id: Optional[str] = None
    sip_call_id: Optional[str] = None


class AgentPlatformClient:
    """Asks the AI platform to dial out through its SIP trunk.

    The resulting call reaches us as an inbound leg on the agent's public
    number, which the orchestrator recognizes through an expected callback.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        base_url: str = "https://api.elevenlabs.io",
    ):
        self.http_client = http_client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def outbound_call(self, agent: AgentConfig, to_number: str) -> AgentCallResult:
        if not self.api_key:
            logger.error("[ELEVENLABS] No API key configured")
            return AgentCallResult(success=False, error="No API key")

        try:
            response = await self.http_client.post(
                f"{self.base_url}/v1/convai/sip-trunk/outbound-call",
                headers={"xi-api-key": self.api_key},
                json={
                    "agent_id": agent.agent_id,
                    "agent_phone_number_id": agent.phone_number_id,
                    "to_number": to_number,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"[ELEVENLABS] Error placing outbound call: {type(e).__name__}: {e}")
            return AgentCallResult(success=False, error=str(e) or type(e).__name__)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_error or data.get("success") is False:
            detail = data.get("detail") or data.get("message")
            if isinstance(detail, dict):
                detail = detail.get("message")
            error = detail or f"API error: {response.status_code}"
            logger.error(f"[ELEVENLABS] Outbound call to {to_number} failed: {error}")
            return AgentCallResult(success=False, error=str(error))

        return AgentCallResult(
            success=True,
            conversation_id=data.get("conversation_id"),
            sip_call_id=data.get("sip_call_id"),
        )
