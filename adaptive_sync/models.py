from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Target:
    target_id: str
    display_name: str = ""


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.SKIPPED)


@dataclass(frozen=True)
class RateLimitConfig:
    """Pacing parameters for the feedback controller, all durations in milliseconds."""

    base_delay_ms: int = 5000
    min_delay_ms: int = 3000
    max_delay_ms: int = 120000
    error_threshold: int = 3
    success_threshold: int = 5

    def __post_init__(self) -> None:
        if self.min_delay_ms < 0:
            raise ValueError("min_delay_ms must be >= 0")
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError("min_delay_ms must not exceed max_delay_ms")
        if self.error_threshold < 1 or self.success_threshold < 1:
            raise ValueError("thresholds must be >= 1")


@dataclass(frozen=True)
class SyncOptions:
    max_results_per_target: int = 999999
    credential_pool_size: int = 1
    max_attempts: int = 5


@dataclass(frozen=True)
class FetchResult:
    """What a fetch operation reports for one target.

    skipped counts items left alone because they already exist; bypassed
    marks the whole target as intentionally not processed."""

    synced: int
    errors: int = 0
    skipped: int = 0
    bypassed: bool = False


@dataclass(frozen=True)
class RequestMetrics:
    total_requests: int
    success_count: int
    error_count: int
    recent_error_timestamps: tuple[float, ...]
    last_request_time: Optional[float]
    last_error_time: Optional[float]

    @property
    def error_rate(self) -> float:
        return self.error_count / max(1, self.total_requests)


@dataclass
class SyncTask:
    target_id: str
    display_name: str
    status: TaskStatus = TaskStatus.PENDING
    synced_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    attempts: int = 0
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class RunState:
    is_running: bool = False
    tasks: List[SyncTask] = field(default_factory=list)
    total_synced: int = 0
    total_errors: int = 0
    total_skipped: int = 0

    @property
    def total_tasks(self) -> int:
        return len(self.tasks)

    @property
    def current_index(self) -> int:
        for i, task in enumerate(self.tasks):
            if task.status is TaskStatus.RUNNING:
                return i
        return -1

    @property
    def completed_tasks(self) -> int:
        return sum(1 for t in self.tasks if t.status is TaskStatus.COMPLETED)

    @property
    def failed_tasks(self) -> int:
        return sum(1 for t in self.tasks if t.status is TaskStatus.FAILED)

    @property
    def pending_tasks(self) -> int:
        return sum(1 for t in self.tasks if t.status is TaskStatus.PENDING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "current_index": self.current_index,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "pending_tasks": self.pending_tasks,
            "total_synced": self.total_synced,
            "total_errors": self.total_errors,
            "total_skipped": self.total_skipped,
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass(frozen=True)
class RunSummary:
    success: bool
    total_synced: int
    total_errors: int
    total_skipped: int
    tasks: List[SyncTask]
    duration_ms: int
    stopped_reason: str = "completed"
