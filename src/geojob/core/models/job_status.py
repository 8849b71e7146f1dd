"""Wire models for GPServer job status responses.

`jobStatus` is kept as the raw server string. Mapping it onto `JobStateKind`
happens in `status_mapping` so that unrecognized values can be reported
instead of failing model validation.
"""

from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from geojob.core.models.job import JobMessage


class RemoteJobStatus(StrEnum):
    new = "esriJobNew"
    submitted = "esriJobSubmitted"
    submitting = "esriJobSubmitting"
    waiting = "esriJobWaiting"
    executing = "esriJobExecuting"
    succeeded = "esriJobSucceeded"
    failed = "esriJobFailed"
    timed_out = "esriJobTimedOut"
    cancelling = "esriJobCancelling"
    cancelled = "esriJobCancelled"
    deleting = "esriJobDeleting"
    deleted = "esriJobDeleted"


class JobProgress(BaseModel):
    """Progress block (ArcGIS Server 10.8.1+)."""

    type: Optional[str] = None
    message: Optional[str] = None
    percent: Optional[float] = None


class ResultParamRef(BaseModel):
    paramUrl: Optional[str] = None

    model_config = {"extra": "allow"}


class JobStatusPayload(BaseModel):
    jobId: str
    jobStatus: str
    messages: List[JobMessage] = Field(default_factory=list)
    results: Dict[str, ResultParamRef] = Field(default_factory=dict)
    inputs: Dict[str, Any] = Field(default_factory=dict)
    progress: Optional[JobProgress] = None

    model_config = {"extra": "allow"}

    def error_messages(self) -> List[str]:
        return [m.description for m in self.messages if m.is_error() and m.description]

    def inline_output(self, param_name: str) -> Any:
        """Return an output value the server embedded in the status body, if any.

        Some GP services return `results` entries carrying `value` next to (or
        instead of) `paramUrl`; pydantic keeps those as extra attributes.
        """
        ref = self.results.get(param_name)
        if ref is None or ref.model_extra is None:
            return None
        return ref.model_extra.get("value")

