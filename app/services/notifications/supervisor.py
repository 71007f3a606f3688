"""Best-effort notifications to the supervisory system."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

logger = logging.getLogger(__name__)

CALL_ENDED = "call-ended"
USER_JOINED = "user-joined"
OUTBOUND_CONNECTED = "outbound-connected"
TRANSCRIPT = "transcript"


class SupervisorNotifier:
    """Fire-and-forget POSTs; callers never await delivery.

    Each POST runs as a detached task. A failure is logged by the task's
    done callback and dropped, so call control never waits on or fails
    because of the supervisory system.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        supervisor_url: Optional[str] = None,
        forward_url: Optional[str] = None,
    ):
        self.http_client = http_client
        self.supervisor_url = supervisor_url
        self.forward_url = forward_url
        self._tasks: Set[asyncio.Task] = set()

    def notify(self, event: str, **data: Any) -> Optional[asyncio.Task]:
        """Send an event notification in the background."""
        if not self.supervisor_url:
            logger.debug(f"[NOTIFY] No supervisor URL configured, skipping {event}")
            return None
        body = {
            "event": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return self._spawn(self.supervisor_url, body, event)

    def forward_webhook(self, body: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Forward a raw webhook body unchanged."""
        if not self.forward_url:
            return None
        return self._spawn(self.forward_url, body, "forward")

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, url: str, body: Dict[str, Any], label: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._post(url, body))
        task.set_name(f"notify:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _post(self, url: str, body: Dict[str, Any]) -> None:
        response = await self.http_client.post(url, json=body)
        response.raise_for_status()

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[NOTIFY] {task.get_name()} failed: {type(error).__name__}: {error}")
