"""In-memory implementation of JobRegistryPort.

Async-safe using one asyncio.Lock around every map access. Handles are
deep-copied on the way in and out, so no caller ever shares the stored
instance. Nothing is persisted: a restart forgets every in-flight job.
"""
from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Callable, Dict, Optional, Sequence

from geojob.core.exceptions import DuplicateJob, InvalidTransition, JobNotFound
from geojob.core.interfaces.job_registry import JobRegistryPort
from geojob.core.models.job import JobHandle, JobState, JobStateKind, OperationKind
from geojob.core.settings import logger


class InMemoryJobRegistry(JobRegistryPort):
    def __init__(self) -> None:
        self._jobs: Dict[str, JobHandle] = {}
        self._lock = asyncio.Lock()

    async def insert(self, handle: JobHandle) -> JobHandle:
        async with self._lock:
            if handle.job_id in self._jobs:
                raise DuplicateJob(handle.job_id)
            stored = deepcopy(handle)
            self._jobs[handle.job_id] = stored
            logger.debug("[registry] inserted job_id=%s operation=%s", handle.job_id, handle.operation)
            return deepcopy(stored)

    async def get(self, job_id: str) -> Optional[JobHandle]:
        async with self._lock:
            h = self._jobs.get(job_id)
            return deepcopy(h) if h else None

    async def update(
        self,
        job_id: str,
        mutate: Callable[[JobHandle], Optional[JobHandle]],
    ) -> JobHandle:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFound(job_id)
            working = deepcopy(current)
            replaced = mutate(working)
            updated = replaced if replaced is not None else working
            if updated.job_id != job_id:
                raise ValueError(f"update may not change job_id ({job_id} -> {updated.job_id})")
            updated.touch()
            self._jobs[job_id] = updated
            return deepcopy(updated)

    async def transition(self, job_id: str, state: JobState) -> JobHandle:
        def apply(handle: JobHandle) -> None:
            if handle.state.is_terminal():
                raise InvalidTransition(job_id, str(handle.state.kind), str(state.kind))
            handle.state = state

        updated = await self.update(job_id, apply)
        logger.debug("[registry] transition job_id=%s state=%s", job_id, state.kind)
        return updated

    async def remove(self, job_id: str) -> Optional[JobHandle]:
        async with self._lock:
            h = self._jobs.pop(job_id, None)
            if h is not None:
                logger.debug("[registry] removed job_id=%s state=%s", job_id, h.state.kind)
            return h

    async def list(
        self,
        operation: Optional[OperationKind] = None,
        state: Optional[JobStateKind] = None,
    ) -> Sequence[JobHandle]:
        async with self._lock:
            handles = list(self._jobs.values())
            if operation is not None:
                handles = [h for h in handles if h.operation == operation]
            if state is not None:
                handles = [h for h in handles if h.state.kind == state]
            return [deepcopy(h) for h in handles]

    def __len__(self) -> int:  # pragma: no cover - simple access
        return len(self._jobs)
