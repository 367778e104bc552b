"""
Event bus for pipeline observability.

Progress snapshots, batch outcomes and quality findings are published here
so that any number of observers (UI callbacks, the recovery manager, tests)
can follow a run without the pipeline knowing about them.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, DefaultDict, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[['Event'], None]


class EventType(Enum):
    PROGRESS = "progress"                # data: {"progress": ProgressState}
    BATCH_COMPLETED = "batch_completed"  # data: batch_id, item_count, failed_count
    BATCH_FAILED = "batch_failed"        # data: batch_id, item_count, error
    QUALITY_ISSUE = "quality_issue"      # data: {"issue": QualityIssue}
    SESSION_SAVED = "session_saved"      # data: {"session_id": str}


@dataclass
class Event:
    """Something that happened during a run.

    ``source`` names the emitting component, e.g. "progress_tracker".
    """
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    source: str = "unknown"


class EventBus:
    """Synchronous in-process publish/subscribe, keyed by EventType."""

    def __init__(self):
        self._subscribers: DefaultDict[EventType, List[Listener]] = defaultdict(list)
        self._recorded: List[Event] = []
        self._recording = False

    def subscribe(self, event_type: EventType, callback: Listener) -> None:
        """Call ``callback(event)`` for every future event of ``event_type``."""
        self._subscribers[event_type].append(callback)

    def subscribe_multiple(self, event_types: List[EventType], callback: Listener) -> None:
        for event_type in event_types:
            self.subscribe(event_type, callback)

    def unsubscribe(self, event_type: EventType, callback: Listener) -> None:
        """Remove one registration of ``callback``; unknown callbacks are ignored."""
        try:
            self._subscribers[event_type].remove(callback)
        except ValueError:
            pass

    def publish(self, event: Event) -> None:
        """
        Deliver ``event`` to its subscribers in registration order.

        A failing listener is logged and skipped; the remaining listeners
        still receive the event and the publisher never sees the error.
        """
        if self._recording:
            self._recorded.append(event)

        for callback in tuple(self._subscribers[event.type]):
            try:
                callback(event)
            except Exception as e:
                logger.warning(
                    "Event listener failed for %s: %s", event.type.value, e,
                    exc_info=True
                )

    def listener_count(self, event_type: EventType) -> int:
        return len(self._subscribers[event_type])

    # Recording, mostly for tests and debugging

    def enable_history(self) -> None:
        self._recording = True

    def disable_history(self) -> None:
        self._recording = False

    def get_history(self) -> List[Event]:
        """Recorded events, oldest first."""
        return list(self._recorded)

    def clear_history(self) -> None:
        self._recorded = []

    def get_events_by_type(self, event_type: EventType) -> List[Event]:
        return [event for event in self._recorded if event.type is event_type]


# Builders for the events the translation service publishes

def create_batch_completed_event(
    batch_id: str,
    item_count: int,
    failed_count: int = 0
) -> Event:
    """Create a batch completion event.

    Args:
        batch_id: Identifier of the finished batch
        item_count: Number of canonical items in the batch
        failed_count: Items of the batch that produced no usable translation
    """
    return Event(
        type=EventType.BATCH_COMPLETED,
        data={
            "batch_id": batch_id,
            "item_count": item_count,
            "failed_count": failed_count,
        },
        source="translation_service"
    )


def create_batch_failed_event(batch_id: str, item_count: int, error: str) -> Event:
    return Event(
        type=EventType.BATCH_FAILED,
        data={
            "batch_id": batch_id,
            "item_count": item_count,
            "error": error,
        },
        source="translation_service"
    )


def create_quality_issue_event(issue: Any) -> Event:
    """Wrap a QualityIssue for publication."""
    return Event(
        type=EventType.QUALITY_ISSUE,
        data={"issue": issue},
        source="quality_checker"
    )
