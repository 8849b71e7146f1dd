from typing import List, Optional
from geojob.core.models.transport_error import ServiceError, TransportErrorResponse


class TransportError(Exception):
    """Raised by transport adapters for any failed request/response exchange."""
    def __init__(self, response: TransportErrorResponse):
        self.response = response
        super().__init__(f"{response.title} ({response.status}): {response.detail}")


class GeoJobError(Exception):
    """Base exception for everything the job client reports.

    Attributes:
        message: Human-readable error description
        diagnostic: Technical diagnostic information (server text kept verbatim)
        job_id: Optional job identifier
    """
    def __init__(
        self,
        message: str,
        diagnostic: Optional[str] = None,
        job_id: Optional[str] = None
    ):
        self.message = message
        self.diagnostic = diagnostic
        self.job_id = job_id
        super().__init__(message)


# Submission

class SubmissionError(GeoJobError):
    """No job was created; nothing has been registered."""


class SubmissionTransportFailure(SubmissionError):
    def __init__(self, transport_error: TransportError, task_url: str):
        self.transport_error = transport_error
        self.task_url = task_url
        response = transport_error.response
        super().__init__(
            message=f"Job submission to {task_url} failed: {response.title}",
            diagnostic=response.detail,
        )


class MalformedAcceptance(SubmissionError):
    """Service answered but the body carries no job identifier."""
    def __init__(self, task_url: str, body_excerpt: str):
        self.task_url = task_url
        self.body_excerpt = body_excerpt
        super().__init__(
            message=f"Submission response from {task_url} has no jobId",
            diagnostic=body_excerpt,
        )


class SubmissionRejected(SubmissionError):
    """Service answered with its error envelope (bad parameters, invalid token, ...)."""
    def __init__(self, task_url: str, service_error: ServiceError):
        self.task_url = task_url
        self.service_error = service_error
        super().__init__(
            message=f"Job submission to {task_url} rejected: {service_error.message}",
            diagnostic=service_error.describe(),
        )


# Job execution

class JobError(GeoJobError):
    """Base for failures while driving a submitted job."""


class JobUnreachable(JobError):
    """Too many consecutive status requests failed; the job may still be running."""
    def __init__(self, job_id: str, failures: int, last_error: Optional[str] = None):
        self.failures = failures
        super().__init__(
            message=f"Job {job_id} unreachable after {failures} consecutive failed status requests",
            diagnostic=last_error,
            job_id=job_id,
        )


class JobRequestRejected(JobError):
    """A status/result request failed in a way retrying will not fix (4xx, auth)."""
    def __init__(self, job_id: str, status: Optional[int], detail: str):
        self.status = status
        self.detail = detail
        super().__init__(
            message=f"Request for job {job_id} rejected (status={status})",
            diagnostic=detail,
            job_id=job_id,
        )


class RemoteJobFailure(JobError):
    """Server reported the job as failed.

    Attributes:
        reason: Server-supplied failure text, verbatim
        messages: All server job messages
    """
    def __init__(self, job_id: str, reason: str, messages: Optional[List[str]] = None):
        self.reason = reason
        self.messages = messages or []
        super().__init__(
            message=f"Job {job_id} failed on the server: {reason}",
            diagnostic=reason,
            job_id=job_id,
        )


class ResultUndecodable(JobError):
    """Job succeeded but its output could not be decoded as declared."""
    def __init__(self, job_id: str, decode_error: "DecodeError"):
        self.decode_error = decode_error
        super().__init__(
            message=f"Job {job_id} succeeded but its result is undecodable: {decode_error.message}",
            diagnostic=decode_error.diagnostic,
            job_id=job_id,
        )


class UnknownJobState(JobError):
    def __init__(self, job_id: str, raw_value: str):
        self.raw_value = raw_value
        super().__init__(
            message=f"Job {job_id} reported unrecognized status {raw_value!r}",
            diagnostic=raw_value,
            job_id=job_id,
        )


class JobTimeout(JobError):
    """Raised when a job exceeds the wait budget (client side) or the server times it out.

    Attributes:
        elapsed_seconds: Time elapsed since submission
        timeout_seconds: Configured wait budget
        remote: True when the server itself reported the timeout
    """
    def __init__(
        self,
        job_id: str,
        elapsed_seconds: float,
        timeout_seconds: float,
        remote: bool = False,
        diagnostic: Optional[str] = None
    ):
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds
        self.remote = remote
        if remote:
            message = f"Job {job_id} timed out on the server after {elapsed_seconds:.1f}s"
        else:
            message = f"Job {job_id} timed out after {elapsed_seconds:.1f}s (limit: {timeout_seconds}s)"
        super().__init__(message=message, diagnostic=diagnostic, job_id=job_id)


class JobCancelledError(JobError):
    def __init__(self, job_id: str, by_server: bool = False):
        self.by_server = by_server
        source = "server" if by_server else "client"
        super().__init__(message=f"Job {job_id} was cancelled ({source})", job_id=job_id)


# Decoding

class DecodeError(GeoJobError):
    """Payload does not match the declared output."""


class ShapeMismatchError(DecodeError):
    def __init__(self, declared_kind: str, detail: str):
        self.declared_kind = declared_kind
        super().__init__(
            message=f"Payload does not contain a {declared_kind} output",
            diagnostic=detail,
        )


class TypeMismatchError(DecodeError):
    def __init__(self, expected: str, actual: str, detail: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Expected {expected} output but found {actual}",
            diagnostic=detail,
        )


# Cancellation

class CancellationError(GeoJobError):
    pass


class AlreadyTerminal(CancellationError):
    def __init__(self, job_id: str, state: str):
        self.state = state
        super().__init__(message=f"Job {job_id} is already {state}; nothing to cancel", job_id=job_id)


# Registry

class RegistryError(GeoJobError):
    pass


class JobNotFound(RegistryError):
    def __init__(self, job_id: str):
        super().__init__(message=f"Job {job_id} is not registered", job_id=job_id)


class DuplicateJob(RegistryError):
    def __init__(self, job_id: str):
        super().__init__(message=f"Job already registered: {job_id}", job_id=job_id)


class InvalidTransition(RegistryError):
    def __init__(self, job_id: str, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            message=f"Job {job_id} is terminal ({current}); refusing transition to {requested}",
            job_id=job_id,
        )
