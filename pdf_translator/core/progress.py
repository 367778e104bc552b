"""
Progress tracking for translation runs.

A ProgressTracker holds counters and the current phase, derives percentage
and ETA, and publishes a ProgressState snapshot on its EventBus after every
change. Observers subscribe through ``subscribe()``; a failing observer is
logged by the bus and never interrupts the run.
"""
import logging
import time
from typing import Callable, Dict, Optional

from pdf_translator.core.events import Event, EventBus, EventType
from pdf_translator.core.exceptions import InvalidPhaseTransitionError
from pdf_translator.core.models import ProgressState, TranslationPhase

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Tracks current/total counters, phase, percentage and ETA."""

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            event_bus: Bus to publish snapshots on (a private one if omitted)
            clock: Seconds source, injectable for deterministic tests
        """
        self.event_bus = event_bus or EventBus()
        self._clock = clock
        self.current = 0
        self.total = 0
        self.phase = TranslationPhase.INITIALIZING
        self.start_time = clock()
        self.phase_start_time = self.start_time

    def subscribe(self, callback: Callable[[ProgressState], None]) -> Callable[[Event], None]:
        """
        Register an observer that receives every ProgressState snapshot.

        Returns:
            The bus listener wrapping ``callback`` (pass it to unsubscribe)
        """
        def listener(event: Event) -> None:
            callback(event.data['progress'])

        self.event_bus.subscribe(EventType.PROGRESS, listener)
        return listener

    def unsubscribe(self, listener: Callable[[Event], None]) -> None:
        self.event_bus.unsubscribe(EventType.PROGRESS, listener)

    def set_total(self, total: int) -> None:
        self.total = max(0, total)
        self.current = min(self.current, self.total)
        self._report()

    def set_phase(self, phase: TranslationPhase, message: Optional[str] = None) -> None:
        """
        Move to ``phase``.

        Phases only move forward. ERROR may be entered from anywhere and is
        terminal. Re-entering the current phase is allowed and only refreshes
        the message.

        Raises:
            InvalidPhaseTransitionError: On a backward move or leaving ERROR
        """
        if phase != self.phase:
            if self.phase == TranslationPhase.ERROR:
                raise InvalidPhaseTransitionError(self.phase.value, phase.value)
            if phase != TranslationPhase.ERROR and phase.order < self.phase.order:
                raise InvalidPhaseTransitionError(self.phase.value, phase.value)
            logger.debug("Phase %s -> %s", self.phase.value, phase.value)
            self.phase = phase
            self.phase_start_time = self._clock()
        self._report(message)

    def increment(self, amount: int = 1) -> None:
        self.set_current(self.current + amount)

    def set_current(self, current: int) -> None:
        """Set the completed count, clamped to [0, total]."""
        self.current = max(0, min(current, self.total))
        self._report()

    def reset(self) -> None:
        self.current = 0
        self.total = 0
        self.phase = TranslationPhase.INITIALIZING
        self.start_time = self._clock()
        self.phase_start_time = self.start_time
        self._report()

    def get_progress(self, message: Optional[str] = None) -> ProgressState:
        """Current snapshot; ETA is in milliseconds and None until work is done."""
        percentage = (self.current / self.total) * 100 if self.total > 0 else 0.0
        return ProgressState(
            current=self.current,
            total=self.total,
            phase=self.phase,
            percentage=percentage,
            message=message,
            estimated_time_remaining=self._estimate_time_remaining(),
        )

    def _estimate_time_remaining(self) -> Optional[float]:
        if self.current == 0 or self.total == 0:
            return None
        elapsed_ms = (self._clock() - self.start_time) * 1000
        if elapsed_ms <= 0:
            return None
        rate = self.current / elapsed_ms
        return (self.total - self.current) / rate

    def _report(self, message: Optional[str] = None) -> None:
        self.event_bus.publish(Event(
            type=EventType.PROGRESS,
            data={'progress': self.get_progress(message)},
            source='progress_tracker'
        ))


class BatchProgressTracker(ProgressTracker):
    """Progress tracker whose counters are sums over per-batch figures."""

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        super().__init__(event_bus, clock)
        self._batch_sizes: Dict[str, int] = {}
        self._batch_progress: Dict[str, int] = {}

    def set_batch_size(self, batch_id: str, size: int) -> None:
        self._batch_sizes[batch_id] = size
        self.set_total(sum(self._batch_sizes.values()))

    def update_batch_progress(self, batch_id: str, progress: int) -> None:
        self._batch_progress[batch_id] = progress
        self.set_current(sum(self._batch_progress.values()))

    def complete_batch(self, batch_id: str) -> None:
        """Mark a batch fully processed (failed batches count as done too)."""
        self.update_batch_progress(batch_id, self._batch_sizes.get(batch_id, 0))

    def reset(self) -> None:
        self._batch_sizes.clear()
        self._batch_progress.clear()
        super().reset()
