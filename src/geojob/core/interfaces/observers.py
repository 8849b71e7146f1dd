"""Observer protocols for job state transitions.

Observers decouple side effects (history recording, progress display,
logging) from the poll loop. They are awaited inline by the poller, so they
should be quick; exceptions they raise are logged and swallowed by the
poller.
"""

from typing import Protocol, Optional
from geojob.core.models.job import JobHandle, JobState


class JobStateObserver(Protocol):
    """Observer protocol for job state transitions.

    - on_job_submitted: after the job is registered
    - on_state_changed: after every stored transition (executing may repeat)
    - on_job_finished: once, after a terminal state is stored
    """

    async def on_job_submitted(self, handle: JobHandle) -> None:
        ...

    async def on_state_changed(
        self,
        handle: JobHandle,
        old_state: Optional[JobState],
        new_state: JobState,
    ) -> None:
        ...

    async def on_job_finished(self, handle: JobHandle) -> None:
        ...
