"""Concrete observer implementations for job state transitions.

This module provides observers that handle:
- State history recording (progress display, monotonicity checks)
- Lifecycle logging
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from geojob.core.models.job import JobHandle, JobState


logger = logging.getLogger(__name__)


class StateHistoryObserver:
    """Records every stored state per job id, in order.

    History outlives the registry entry, so callers can still inspect how a
    finished job progressed.
    """

    def __init__(self) -> None:
        self._history: Dict[str, List[JobState]] = defaultdict(list)

    async def on_job_submitted(self, handle: JobHandle) -> None:
        """Record the initial state."""
        self._history[handle.job_id].append(handle.state)
        logger.debug(f"[observer:history] recorded initial state job_id={handle.job_id} state={handle.state.kind}")

    async def on_state_changed(
        self,
        handle: JobHandle,
        old_state: Optional[JobState],
        new_state: JobState,
    ) -> None:
        """Record the new state."""
        self._history[handle.job_id].append(new_state)
        logger.debug(
            f"[observer:history] recorded state change job_id={handle.job_id} "
            f"old={old_state.kind if old_state else None} new={new_state.kind}"
        )

    async def on_job_finished(self, handle: JobHandle) -> None:
        """Terminal state already recorded in on_state_changed."""
        pass

    def history(self, job_id: str) -> List[JobState]:
        return list(self._history.get(job_id, []))

    def latest_progress(self, job_id: str) -> Optional[float]:
        for state in reversed(self._history.get(job_id, [])):
            if state.progress is not None:
                return state.progress
        return None

    def clear(self, job_id: Optional[str] = None) -> None:
        if job_id is None:
            self._history.clear()
        else:
            self._history.pop(job_id, None)


class LoggingObserver:
    """Logs job lifecycle events at INFO (terminal failures at WARNING)."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    async def on_job_submitted(self, handle: JobHandle) -> None:
        self._log.info(
            f"[observer:log] job submitted job_id={handle.job_id} operation={handle.operation}"
        )

    async def on_state_changed(
        self,
        handle: JobHandle,
        old_state: Optional[JobState],
        new_state: JobState,
    ) -> None:
        progress = f" progress={new_state.progress:.0f}%" if new_state.progress is not None else ""
        self._log.info(
            f"[observer:log] job_id={handle.job_id} "
            f"{old_state.kind if old_state else None} -> {new_state.kind}{progress}"
        )

    async def on_job_finished(self, handle: JobHandle) -> None:
        state = handle.state
        if state.kind == "succeeded":
            self._log.info(f"[observer:log] job finished job_id={handle.job_id} state={state.kind}")
        else:
            self._log.warning(
                f"[observer:log] job finished job_id={handle.job_id} state={state.kind} reason={state.reason}"
            )
