"""Mapping of GPServer `jobStatus` strings onto client-side JobState.

Only the statuses listed here are understood. Everything else is reported
as UnknownJobState; a new server status is never guessed into a bucket.
"""

from typing import Dict

from geojob.core.exceptions import UnknownJobState
from geojob.core.models.job import JobState, JobStateKind
from geojob.core.models.job_status import JobStatusPayload, RemoteJobStatus

STATUS_MAP: Dict[str, JobStateKind] = {
    RemoteJobStatus.new: JobStateKind.executing,
    RemoteJobStatus.submitted: JobStateKind.executing,
    RemoteJobStatus.submitting: JobStateKind.executing,
    RemoteJobStatus.waiting: JobStateKind.executing,
    RemoteJobStatus.executing: JobStateKind.executing,
    RemoteJobStatus.cancelling: JobStateKind.executing,
    RemoteJobStatus.deleting: JobStateKind.executing,
    RemoteJobStatus.succeeded: JobStateKind.succeeded,
    RemoteJobStatus.failed: JobStateKind.failed,
    RemoteJobStatus.timed_out: JobStateKind.timed_out,
    RemoteJobStatus.cancelled: JobStateKind.cancelled,
    RemoteJobStatus.deleted: JobStateKind.cancelled,
}

DEFAULT_FAILURE_REASON = "Job failed without error messages"


def map_status(job_id: str, status: JobStatusPayload) -> JobState:
    """Translate one status payload into a JobState.

    Raises:
        UnknownJobState: jobStatus is not one of the recognized values
    """
    kind = STATUS_MAP.get(status.jobStatus)
    if kind is None:
        raise UnknownJobState(job_id, status.jobStatus)

    if kind == JobStateKind.executing:
        progress = status.progress.percent if status.progress else None
        if progress is not None:
            progress = min(max(progress, 0.0), 100.0)
        message = status.progress.message if status.progress else None
        if message is None and status.messages:
            message = status.messages[-1].description or None
        return JobState.executing(progress=progress, message=message)

    if kind == JobStateKind.failed:
        return JobState.failed(failure_reason(status))

    if kind == JobStateKind.timed_out:
        return JobState(kind=kind, reason=failure_reason(status, default="Job timed out on the server"))

    return JobState(kind=kind, message=status.jobStatus)


def failure_reason(status: JobStatusPayload, default: str = DEFAULT_FAILURE_REASON) -> str:
    """Server error messages joined verbatim, or `default` when there are none."""
    errors = status.error_messages()
    return "\n".join(errors) if errors else default
