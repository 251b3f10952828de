"""Security monitor for anomalous protocol events.

Keeps a bounded in-memory audit trail and best-effort forwards each record
to an audit endpoint. Recording never raises and never blocks the caller.
"""

import asyncio
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from webpay.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class SuspiciousActivity:
    """One recorded anomaly with its origin context."""

    type: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=lambda: time.time() * 1000)  # epoch ms
    user_agent: str = ""
    url: str = ""

    def to_audit_body(self) -> dict:
        """JSON body posted to the audit endpoint."""
        return {
            "type": self.type,
            "details": self.details,
            "timestamp": self.timestamp,
            "userAgent": self.user_agent,
            "url": self.url,
        }


class SecurityMonitor:
    """Bounded, append-only record of suspicious activity.

    Construct one per process and pass it to the components that report
    events; it is not a global.
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        audit_url: Optional[str] = "",
        user_agent: Optional[str] = None,
        origin_url: str = "",
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.capacity = settings.monitor_capacity if capacity is None else capacity
        # "" means use settings, None disables forwarding
        self.audit_url = settings.audit_url if audit_url == "" else audit_url
        self.user_agent = user_agent if user_agent is not None else settings.user_agent
        self.origin_url = origin_url
        self.timeout = settings.audit_timeout if timeout is None else timeout
        self._activities: deque[SuspiciousActivity] = deque(maxlen=self.capacity)
        self._tasks: set[asyncio.Task] = set()

    def record(self, type: str, details: Optional[dict[str, Any]] = None) -> None:
        """Record an anomaly and forward it to the audit sink."""
        try:
            activity = SuspiciousActivity(
                type=type,
                details=dict(details or {}),
                user_agent=self.user_agent,
                url=self.origin_url,
            )
            self._activities.append(activity)
            logger.warning("[Security] Suspicious activity detected: %s %s", type, activity.details)
            self._forward(activity)
        except Exception as e:
            logger.debug("Security monitor failed to record %s: %s", type, e)

    def list(self) -> list[SuspiciousActivity]:
        """Copy of the current records, oldest first."""
        return list(self._activities)

    def clear(self) -> None:
        self._activities.clear()

    def export(self) -> str:
        """Records as pretty JSON, for debugging or audit."""
        return json.dumps([a.to_audit_body() for a in self._activities], indent=2, default=str)

    def __len__(self) -> int:
        return len(self._activities)

    # ----------------------
    # Forwarding
    # ----------------------

    def _forward(self, activity: SuspiciousActivity) -> None:
        if not self.audit_url:
            return

        body = activity.to_audit_body()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._post_async(body))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            threading.Thread(target=self._post_sync, args=(body,), daemon=True).start()

    async def _post_async(self, body: dict) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                await client.post(self.audit_url, json=body)
        except Exception as e:
            logger.debug("Audit forward failed: %s", e)

    def _post_sync(self, body: dict) -> None:
        try:
            httpx.post(self.audit_url, json=body, timeout=self.timeout)
        except Exception as e:
            logger.debug("Audit forward failed: %s", e)

    async def drain(self) -> None:
        """Wait for in-flight audit forwards (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
