# supportdesk/services/progress_events.py
"""
Progress events emitted during long operations.

Events are advisory UI signals (crawl progress, ticket-created, ...). A
caller that passes no sink still gets correct results, and a sink that
raises never breaks the operation that emitted the event.
"""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from supportdesk.core.logger import get_logger

logger = get_logger(__name__)


class ProgressEventType(str, Enum):
    PROCESSING_STATUS = "processing-status"
    CRAWL_STARTED = "crawl-started"
    CRAWL_STATUS = "crawl-status"
    CRAWL_FINISHED = "crawl-finished"
    TICKET_CREATED = "ticket-created"
    TICKET_EXISTS = "ticket-exists"
    NOTIFYING_USERS = "notifying-users"
    DELETING_TICKETS = "deleting-tickets"


@dataclass
class ProgressEvent:
    type: ProgressEventType
    content: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "content": self.content, **self.data}


EventSink = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


async def emit(
    sink: Optional[EventSink],
    event_type: ProgressEventType,
    content: str,
    **data: Any,
) -> None:
    """Deliver an event to `sink` if one is set (sync or async callables)."""
    if sink is None:
        return

    event = ProgressEvent(type=event_type, content=content, data=data)
    try:
        result = sink(event)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"Progress sink failed for {event_type.value}: {e}")


class EventCollector:
    """Sink that keeps events in memory (used by HTTP routes and tests)."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: ProgressEventType) -> List[ProgressEvent]:
        return [event for event in self.events if event.type == event_type]

    def to_list(self) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in self.events]
