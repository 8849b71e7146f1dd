from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, timezone
from enum import StrEnum


class OperationKind(StrEnum):
    summarize_elevation = "summarize_elevation"
    viewshed = "viewshed"
    profile = "profile"
    geoprocessing = "geoprocessing"  # any other GP task


class JobStateKind(StrEnum):
    submitted = "submitted"
    executing = "executing"
    succeeded = "succeeded"
    failed = "failed"
    timed_out = "timed_out"
    cancelled = "cancelled"


TERMINAL_STATES = frozenset(
    {
        JobStateKind.succeeded,
        JobStateKind.failed,
        JobStateKind.timed_out,
        JobStateKind.cancelled,
    }
)


class JobMessageType(StrEnum):
    informative = "esriJobMessageTypeInformative"
    warning = "esriJobMessageTypeWarning"
    error = "esriJobMessageTypeError"
    empty = "esriJobMessageTypeEmpty"
    abort = "esriJobMessageTypeAbort"


class JobMessage(BaseModel):
    # kept as raw string: servers add message types over time
    type: str
    description: str = ""

    def is_error(self) -> bool:
        return self.type in (JobMessageType.error, JobMessageType.abort)


class JobState(BaseModel):
    """Client-side view of a remote job's lifecycle position.

    `progress` is only meaningful while executing, `reason` only when failed.
    """

    kind: JobStateKind
    progress: Optional[float] = Field(None, ge=0, le=100)
    reason: Optional[str] = None
    message: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def submitted(cls) -> "JobState":
        return cls(kind=JobStateKind.submitted)

    @classmethod
    def executing(cls, progress: Optional[float] = None, message: Optional[str] = None) -> "JobState":
        return cls(kind=JobStateKind.executing, progress=progress, message=message)

    @classmethod
    def failed(cls, reason: str) -> "JobState":
        return cls(kind=JobStateKind.failed, reason=reason)

    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_STATES


class JobHandle(BaseModel):
    """One remote job as tracked by the registry.

    Notes:
    - `job_id` is the opaque identifier assigned by the server; it doubles as
      the registry key, so callers only ever need to keep this string.
    - `task_url` is the GP task endpoint the job was submitted to; status,
      results, messages and cancel URLs are all derived from it.
    - Instances handed out by the registry are copies. Mutating one does not
      change the authoritative state.
    """

    job_id: str
    operation: OperationKind
    task_url: str
    submitted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Local submission timestamp (UTC)",
    )
    updated_at: Optional[datetime] = Field(default=None, description="Local last update timestamp (UTC)")
    state: JobState = Field(default_factory=JobState.submitted)
    messages: List[JobMessage] = Field(default_factory=list)

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def is_in_terminal_state(self) -> bool:
        return self.state.is_terminal()

    def job_url(self) -> str:
        return f"{self.task_url.rstrip('/')}/jobs/{self.job_id}"
