"""Call history persistence."""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, desc

from app.db.models import Call, utcnow

logger = logging.getLogger(__name__)

# Statuses that never change again
TERMINAL_STATUSES = ("completed", "failed")


class CallPersistenceService:
    """Service for persisting call history records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call(
        self,
        call_control_id: str,
        direction: Optional[str] = None,
        from_number: Optional[str] = None,
        to_number: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Call:
        """Create a new call record or return existing one."""
        existing_call = await self.get_call(call_control_id)
        if existing_call:
            return existing_call

        call = Call(
            call_control_id=call_control_id,
            direction=direction,
            from_number=from_number,
            to_number=to_number,
            role=role,
            status="initiated",
            started_at=utcnow(),
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call(self, call_control_id: str) -> Optional[Call]:
        """Get call by Telnyx call control id."""
        result = await self.db.execute(
            select(Call).where(Call.call_control_id == call_control_id)
        )
        return result.scalar_one_or_none()

    async def list_calls(self, limit: int = 100) -> List[Call]:
        """Most recent calls first."""
        result = await self.db.execute(
            select(Call).order_by(desc(Call.started_at), desc(Call.id)).limit(limit)
        )
        return list(result.scalars().all())

    async def mark_in_progress(
        self, call_control_id: str, role: Optional[str] = None
    ) -> Optional[Call]:
        """Leg answered."""
        call = await self.get_call(call_control_id)
        if call and call.status not in TERMINAL_STATUSES:
            call.status = "in_progress"
            if role:
                call.role = role
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def mark_connected(
        self,
        call_control_id: str,
        conference_id: Optional[str] = None,
        role: Optional[str] = None,
        connected_at: Optional[datetime] = None,
    ) -> Optional[Call]:
        """Leg bridged into a conference."""
        call = await self.get_call(call_control_id)
        if call and call.status not in TERMINAL_STATUSES:
            call.status = "connected"
            call.connected_at = connected_at or utcnow()
            if conference_id:
                call.conference_id = conference_id
            if role:
                call.role = role
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def complete_call(
        self,
        call_control_id: str,
        hangup_cause: Optional[str] = None,
        ended_at: Optional[datetime] = None,
    ) -> Optional[Call]:
        """Terminal transition; computes duration as end - start.

        A leg that was never answered ends as ``failed``.
        """
        call = await self.get_call(call_control_id)
        if call and call.status not in TERMINAL_STATUSES:
            call.ended_at = ended_at or utcnow()
            call.status = "failed" if call.status == "initiated" else "completed"
            call.hangup_cause = hangup_cause
            if call.started_at:
                call.duration_seconds = max(
                    0.0, (call.ended_at - call.started_at).total_seconds()
                )
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def update_call_transcript(self, call_control_id: str, transcript: str) -> Optional[Call]:
        """Update call transcript."""
        call = await self.get_call(call_control_id)
        if call:
            call.transcript = transcript
            await self.db.commit()
            await self.db.refresh(call)
        return call


class CallHistory:
    """Call history writes made from the orchestrator.

    Opens a session per write. History is for display only, so a failure is
    logged and never reaches call control.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _run(self, operation: str, call_control_id: str, **kwargs) -> Optional[Call]:
        try:
            async with self.session_factory() as session:
                service = CallPersistenceService(session)
                return await getattr(service, operation)(call_control_id, **kwargs)
        except Exception as e:
            logger.error(
                f"[CALL HISTORY] {operation} failed - CallControlId: {call_control_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return None

    async def initiated(self, call_control_id: str, **kwargs) -> Optional[Call]:
        return await self._run("create_call", call_control_id, **kwargs)

    async def in_progress(self, call_control_id: str, **kwargs) -> Optional[Call]:
        return await self._run("mark_in_progress", call_control_id, **kwargs)

    async def connected(self, call_control_id: str, **kwargs) -> Optional[Call]:
        return await self._run("mark_connected", call_control_id, **kwargs)

    async def completed(self, call_control_id: str, **kwargs) -> Optional[Call]:
        return await self._run("complete_call", call_control_id, **kwargs)

    async def transcript(self, call_control_id: str, transcript: str) -> Optional[Call]:
        return await self._run("update_call_transcript", call_control_id, transcript=transcript)
