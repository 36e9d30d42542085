"""
Progress tracking for lifecycle operations

Every guarded operation gets a tracker; the orchestrator publishes its
dict form on the event bus after each step.
"""
import uuid
from collections import OrderedDict
from typing import Optional
from datetime import datetime
import logging

from microdock.schemas import OperationOutcome
from microdock.utils import format_elapsed_time

logger = logging.getLogger(__name__)

# Finished operations kept for lookup by id
MAX_FINISHED = 50


class ProgressTracker:
    """Steps and result of one lifecycle operation"""

    def __init__(self, operation_id: str, title: str, total_steps: int = 5):
        self.operation_id = operation_id
        self.title = title
        self.total_steps = total_steps
        self.current_step = 0
        self.current_step_name = ""
        self.percent = 0
        self.status = "running"  # running, completed, error
        self.outcome: Optional[OperationOutcome] = None
        self.error = None
        self.started_at = datetime.now()
        self.completed_at = None
        self.steps = []

    @property
    def finished(self) -> bool:
        return self.status != "running"

    def update(self, step: int, step_name: str, percent: int = 0, message: str = ""):
        self.current_step = step
        self.current_step_name = step_name
        self.percent = percent
        if message:
            self.steps.append({"step": step_name, "at": datetime.now().isoformat(), "message": message})
            logger.info(f"[{self.operation_id[:8]}] {message}")

    def complete(self, outcome: Optional[OperationOutcome] = None):
        self.status = "completed"
        self.outcome = outcome
        self.percent = 100
        self.completed_at = datetime.now()
        if outcome is not None:
            logger.info(f"[{self.operation_id[:8]}] {self.title}: {outcome.value} in {format_elapsed_time(self.elapsed)}")

    def fail(self, error: str, outcome: OperationOutcome = OperationOutcome.FAILED):
        self.status = "error"
        self.outcome = outcome
        self.error = error
        self.completed_at = datetime.now()
        logger.error(f"[{self.operation_id[:8]}] {error}")

    @property
    def elapsed(self) -> float:
        end = self.completed_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "operation_id": self.operation_id,
            "title": self.title,
            "status": self.status,
            "outcome": self.outcome.value if self.outcome else None,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "current_step_name": self.current_step_name,
            "percent": self.percent,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "elapsed": format_elapsed_time(self.elapsed),
            "steps": self.steps,
        }


class ProgressManager:
    """Trackers of one orchestrator, oldest finished ones dropped first"""

    def __init__(self, max_finished: int = MAX_FINISHED):
        self.max_finished = max_finished
        self._trackers: "OrderedDict[str, ProgressTracker]" = OrderedDict()

    def create_tracker(self, title: str, total_steps: int = 5) -> ProgressTracker:
        self._prune()
        tracker = ProgressTracker(str(uuid.uuid4()), title, total_steps)
        self._trackers[tracker.operation_id] = tracker
        return tracker

    def get_tracker(self, operation_id: str) -> Optional[ProgressTracker]:
        return self._trackers.get(operation_id)

    def _prune(self):
        finished = [op_id for op_id, tracker in self._trackers.items() if tracker.finished]
        for operation_id in finished[:max(0, len(finished) - self.max_finished + 1)]:
            del self._trackers[operation_id]
