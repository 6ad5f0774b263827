"""
Progress reporting and cooperative cancellation for long running learners.
"""

from typing import Callable, Optional
import logging
import threading

from .exceptions import CanceledExecutionError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, Optional[str]], None]


class ExecutionMonitor:
    """
    Tracks progress of a learner run and carries its cancellation token.

    Learners poll ``check_canceled`` in their loops; any thread may call
    ``cancel``. Progress and messages are logged at DEBUG level and, if
    given, forwarded to ``callback(progress, message)``.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._callback = callback
        self.progress = 0.0
        self.message: Optional[str] = None

    def cancel(self) -> None:
        """Request cancellation; takes effect at the next check."""
        self._cancel_event.set()

    @property
    def is_canceled(self) -> bool:
        return self._cancel_event.is_set()

    def check_canceled(self) -> None:
        """Raise CanceledExecutionError if cancellation was requested."""
        if self._cancel_event.is_set():
            raise CanceledExecutionError("Execution canceled")

    def set_progress(self, fraction: float, message: Optional[str] = None) -> None:
        fraction = min(max(float(fraction), 0.0), 1.0)
        with self._lock:
            self.progress = fraction
            if message is not None:
                self.message = message
        logger.debug("progress %.3f %s", fraction, message or "")
        if self._callback is not None:
            self._callback(fraction, message)

    def set_message(self, message: str) -> None:
        self.set_progress(self.progress, message)

    def create_sub_progress(self, fraction: float) -> "SubExecutionMonitor":
        """
        Monitor for a nested task that accounts for ``fraction`` of this one.

        The sub monitor's progress in [0, 1] is mapped onto
        [current progress, current progress + fraction] of this monitor.
        """
        return SubExecutionMonitor(self, fraction)


class SubExecutionMonitor(ExecutionMonitor):
    """Nested monitor sharing its parent's cancellation token."""

    def __init__(self, parent: ExecutionMonitor, fraction: float):
        super().__init__()
        self._parent = parent
        self._cancel_event = parent._cancel_event
        self._offset = parent.progress
        self._fraction = float(fraction)

    def set_progress(self, fraction: float, message: Optional[str] = None) -> None:
        fraction = min(max(float(fraction), 0.0), 1.0)
        with self._lock:
            self.progress = fraction
            if message is not None:
                self.message = message
        self._parent.set_progress(self._offset + fraction * self._fraction, message)
