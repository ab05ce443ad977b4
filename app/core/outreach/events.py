"""
Mission event stream.

Observers subscribe to get an asyncio.Queue of MissionEvents and see status
and transcript updates as they happen rather than only at completion.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from app.core.outreach.models import Utterance
from app.core.outreach.state import CallStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class MissionEventType(str, Enum):
    """Kinds of mission updates."""

    MISSION_STARTED = "mission_started"
    NO_PROVIDERS = "no_providers"
    CALL_STATUS = "call_status"
    CALL_UTTERANCE = "call_utterance"
    TAKEOVER = "takeover"
    RESUMED = "resumed"
    MISSION_DONE = "mission_done"
    MISSION_STOPPED = "mission_stopped"


@dataclass(frozen=True)
class MissionEvent:
    """A single mission update."""

    type: MissionEventType
    mission_id: str
    provider_id: Optional[str] = None
    status: Optional[CallStatus] = None
    utterance: Optional[Utterance] = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "type": self.type.value,
            "mission_id": self.mission_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.provider_id:
            result["provider_id"] = self.provider_id
        if self.status:
            result["status"] = self.status.value
        if self.utterance:
            result["utterance"] = self.utterance.to_dict()
        if self.data:
            result["data"] = self.data
        return result


class MissionEventBus:
    """Fan-out of mission events to subscriber queues."""

    def __init__(self, max_queue_size: int = 1000):
        self._max_queue_size = max_queue_size
        self._subscribers: list[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        """Start receiving events. Call unsubscribe() with the queue when done."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Stop receiving events."""
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: MissionEvent) -> None:
        """Deliver an event to every subscriber without blocking."""
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    f"Dropping {event.type.value} event for slow subscriber "
                    f"(mission {event.mission_id})"
                )
