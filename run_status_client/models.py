from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_POLL_INTERVAL = 5.0
MIN_POLL_INTERVAL = 1.0
MAX_POLL_INTERVAL = 30.0
DEFAULT_MAX_DURATION = 45 * 60.0


class RunStatus(str, Enum):
    queued = "QUEUED"
    initializing = "INITIALIZING"
    processing = "PROCESSING"
    post_process = "POST_PROCESS"
    done = "DONE"
    failed = "FAILED"
    cancelled = "CANCELLED"


class StatusClass(str, Enum):
    terminal = "terminal"
    non_terminal = "non_terminal"


# Both cancellation spellings occur upstream and must stay equivalent.
TERMINAL_STATUSES = frozenset(
    {
        "Done",
        "Failed",
        "Cancelled",
        "Canceled",
        "DONE",
        "FAILED",
        "CANCELLED",
        "CANCELED",
    }
)


def is_terminal_status(status: Any) -> bool:
    """Exact, case-sensitive check against the terminal status set"""
    if isinstance(status, Enum):
        status = status.value
    if not isinstance(status, str):
        return False
    return status in TERMINAL_STATUSES


def classify_status(status: Any) -> StatusClass:
    if is_terminal_status(status):
        return StatusClass.terminal
    return StatusClass.non_terminal


def status_of(snapshot: Any) -> Any:
    """Extracts the status field from a snapshot object, mapping or bare status string"""
    if snapshot is None or isinstance(snapshot, (str, Enum)):
        return snapshot
    if isinstance(snapshot, dict):
        return snapshot.get("status")
    return getattr(snapshot, "status", None)


class RunResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    status: str
    repository: str = ""
    source: str = ""
    target: str = ""
    title: str = ""
    prompt: str = ""
    error: str = ""
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        # the service returns numeric ids on some endpoints
        return str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)


class PollPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    max_duration: Optional[float] = Field(default=DEFAULT_MAX_DURATION, ge=0)
    show_progress: bool = True
    debug: bool = False

    @property
    def has_deadline(self) -> bool:
        return bool(self.max_duration)

    def clamped_interval(self) -> float:
        """Returns the interval clamped to the recommended bounds"""
        return min(max(self.interval, MIN_POLL_INTERVAL), MAX_POLL_INTERVAL)
