"""Operator-initiated calls."""
import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.core.dependencies import get_orchestrator
from app.services.orchestration.orchestrator import CallOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class OutboundCallRequest(BaseModel):
    """Call a contact on behalf of an agent."""
    agent_number: str
    to: str


class TakeoverRequest(BaseModel):
    """Dial a human into a running conversation."""
    to: str


@router.post("/api/calls/outbound")
async def start_outbound_call(
    body: OutboundCallRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Dial the contact first; the agent joins when the contact answers."""
    if orchestrator.agents.get(body.agent_number) is None:
        raise HTTPException(status_code=404, detail="Unknown agent number")
    result = await orchestrator.start_outbound_call(body.agent_number, body.to)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return {"success": True, "call_control_id": result.call_control_id}


@router.post("/api/calls/agent-outbound")
async def start_agent_outbound_call(
    body: OutboundCallRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Have the AI platform place the call through our number."""
    if orchestrator.agents.get(body.agent_number) is None:
        raise HTTPException(status_code=404, detail="Unknown agent number")
    result = await orchestrator.start_agent_outbound_call(body.agent_number, body.to)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return {
        "success": True,
        "conversation_id": result.conversation_id,
        "sip_call_id": result.sip_call_id,
    }


@router.post("/api/conversations/{conference_id}/takeover")
async def start_human_takeover(
    conference_id: str,
    body: TakeoverRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Bring a human into the conversation."""
    if orchestrator.store.find_conversation_by_conference_id(conference_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    result = await orchestrator.start_human_takeover(conference_id, body.to)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return {"success": True, "call_control_id": result.call_control_id}
