"""Configuration models for core domain components.

Pydantic-based, frozen value objects injected into the poller so tests can
build custom timing without touching environment settings.
"""

from typing import Optional
from pydantic import BaseModel, Field, model_validator


class PollPolicy(BaseModel):
    """Timing policy for one poll sequence.

    Attributes:
        initial_poll_interval: Seconds to wait after the first status request
        max_poll_interval: Upper bound for the backoff interval
        backoff_multiplier: Factor applied to the interval after every poll
        max_total_wait: Wall-clock budget in seconds, measured from submission
        max_consecutive_transport_failures: Failed status requests tolerated in a row
    """

    initial_poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Interval in seconds before the second status request"
    )

    max_poll_interval: float = Field(
        default=30.0,
        gt=0,
        description="Maximum interval in seconds between status requests"
    )

    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the poll interval after each status request"
    )

    max_total_wait: float = Field(
        default=600.0,
        gt=0,
        description="Maximum time in seconds to wait for a terminal state"
    )

    max_consecutive_transport_failures: int = Field(
        default=3,
        ge=0,
        description="Consecutive failed status requests tolerated before giving up"
    )

    model_config = {
        "frozen": True,  # Immutable once a poll sequence starts
        "extra": "forbid",
    }

    @model_validator(mode="after")
    def _max_not_below_initial(self) -> "PollPolicy":
        if self.max_poll_interval < self.initial_poll_interval:
            raise ValueError("max_poll_interval must be >= initial_poll_interval")
        return self

    def next_interval(self, current: float) -> float:
        return min(current * self.backoff_multiplier, self.max_poll_interval)

    @classmethod
    def from_settings(cls, settings) -> "PollPolicy":
        return cls(
            initial_poll_interval=settings.GEOJOB_POLL_INITIAL_INTERVAL,
            max_poll_interval=settings.GEOJOB_POLL_MAX_INTERVAL,
            backoff_multiplier=settings.GEOJOB_POLL_BACKOFF_MULTIPLIER,
            max_total_wait=settings.GEOJOB_POLL_MAX_TOTAL_WAIT,
            max_consecutive_transport_failures=settings.GEOJOB_POLL_MAX_TRANSPORT_FAILURES,
        )


class JobPollerConfig(BaseModel):
    """Configuration for JobPoller request behavior.

    Attributes:
        submit_max_retries: Attempts for transient failures while submitting
        submit_retry_base_wait: Base wait for exponential backoff between attempts
        submit_retry_max_wait: Maximum wait between attempts
        request_timeout: Per-request timeout in seconds (None = transport default)
        default_policy: PollPolicy used when a caller does not pass one
    """

    submit_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts for transient errors when submitting a job or fetching results"
    )

    submit_retry_base_wait: float = Field(
        default=0.5,
        gt=0,
        description="Base wait time in seconds for exponential backoff between retries"
    )

    submit_retry_max_wait: float = Field(
        default=5.0,
        gt=0,
        description="Maximum wait time in seconds between retry attempts"
    )

    request_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Per-request timeout in seconds (None for the transport default)"
    )

    default_policy: PollPolicy = Field(default_factory=PollPolicy)

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @classmethod
    def from_settings(cls, settings) -> "JobPollerConfig":
        """Factory method to construct config from a GeoJobSettings instance."""
        return cls(
            submit_max_retries=settings.GEOJOB_SUBMIT_MAX_RETRIES,
            submit_retry_base_wait=settings.GEOJOB_SUBMIT_RETRY_BASE_WAIT,
            submit_retry_max_wait=settings.GEOJOB_SUBMIT_RETRY_MAX_WAIT,
            request_timeout=settings.GEOJOB_REQUEST_TIMEOUT,
            default_policy=PollPolicy.from_settings(settings),
        )
