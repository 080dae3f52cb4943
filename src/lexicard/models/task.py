"""Task model for background enrichment jobs."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from lexicard.utils.ids import generate_task_id


class TaskStatus(str, Enum):
    """Enum for background task states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})

TaskOutcome = Literal["success", "partial", "failure", "duplicates"]


class Task(BaseModel):
    """
    State of one background enrichment job.

    Instances held by the task manager are replaced wholesale on every
    update, so any copy a reader holds is a consistent snapshot.
    """

    id: str = Field(default_factory=generate_task_id, description="Opaque task identifier")

    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Lifecycle state")

    progress: int = Field(default=0, ge=0, le=100, description="Percent of planned items attempted")

    total_items: int = Field(default=0, ge=0, description="Source items after input cleaning")

    processed_items: int = Field(default=0, ge=0, description="Source items attempted so far")

    added: int = Field(default=0, ge=0, description="Items merged into the collection")

    skipped: int = Field(default=0, ge=0, description="Items skipped as duplicates")

    failed: int = Field(default=0, ge=0, description="Items that could not be enriched")

    failed_items: list[str] = Field(default_factory=list, description="Source strings that failed, in order")

    cancel_requested: bool = Field(default=False, description="Set once by cancel(), never unset")

    cancelled: bool = Field(default=False, description="Worker stopped after observing cancellation")

    input_mode: Optional[Literal["plain", "structured"]] = Field(
        default=None,
        description="Detected input shape, known once the worker starts"
    )

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    finished_at: Optional[datetime] = Field(default=None)

    error: Optional[str] = Field(default=None, description="Failure description, only when failed")

    model_config = {"frozen": False}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        """Pending or running and not stopped by cancellation."""
        return not self.is_terminal and not self.cancelled

    @property
    def outcome(self) -> Optional[TaskOutcome]:
        """
        User-facing classification of a finished task.

        - success: everything planned was added
        - partial: something was added, something failed
        - failure: nothing was added and something failed (or the task failed)
        - duplicates: nothing to do because every item already existed
        """
        if self.status == TaskStatus.FAILED:
            return "failure"
        if self.status != TaskStatus.COMPLETED:
            return None
        if self.added > 0:
            return "partial" if self.failed > 0 else "success"
        if self.failed > 0:
            return "failure"
        return "duplicates"


class TaskSummary(BaseModel):
    """Read-only projection of a task for progress indicators."""

    id: str
    status: TaskStatus
    progress: int
    total_items: int
    processed_items: int
    added: int
    skipped: int
    failed: int
    cancelled: bool
    outcome: Optional[TaskOutcome] = None
    error: Optional[str] = None
    created_at: datetime

    model_config = {"frozen": True}

    @classmethod
    def from_task(cls, task: Task) -> "TaskSummary":
        return cls(
            id=task.id,
            status=task.status,
            progress=task.progress,
            total_items=task.total_items,
            processed_items=task.processed_items,
            added=task.added,
            skipped=task.skipped,
            failed=task.failed,
            cancelled=task.cancelled,
            outcome=task.outcome,
            error=task.error,
            created_at=task.created_at,
        )
