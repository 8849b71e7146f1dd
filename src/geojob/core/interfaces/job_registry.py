"""JobRegistryPort: hexagonal port for tracking in-flight jobs.

Async methods keep the door open for shared (e.g. Redis-backed) registries;
the in-memory implementation still uses async for interface uniformity.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from geojob.core.models.job import JobHandle, JobState, JobStateKind, OperationKind


class JobRegistryPort(ABC):
	"""Port abstraction for job bookkeeping keyed by server job id."""

	@abstractmethod
	async def insert(self, handle: JobHandle) -> JobHandle:
		"""Register a newly submitted job and return the stored copy."""
		raise NotImplementedError

	@abstractmethod
	async def get(self, job_id: str) -> Optional[JobHandle]:
		"""Return a copy of the handle or None if not registered."""
		raise NotImplementedError

	@abstractmethod
	async def update(
		self,
		job_id: str,
		mutate: Callable[[JobHandle], Optional[JobHandle]],
	) -> JobHandle:
		"""Read-modify-write one handle inside a single critical section.

		`mutate` receives a private copy; it may modify it in place (return
		None) or return a replacement. The stored handle is swapped as a whole.
		"""
		raise NotImplementedError

	@abstractmethod
	async def transition(self, job_id: str, state: JobState) -> JobHandle:
		"""Apply a state transition; terminal states are final."""
		raise NotImplementedError

	@abstractmethod
	async def remove(self, job_id: str) -> Optional[JobHandle]:
		"""Deregister a job and return its last stored copy (None if absent)."""
		raise NotImplementedError

	@abstractmethod
	async def list(
		self,
		operation: Optional[OperationKind] = None,
		state: Optional[JobStateKind] = None,
	) -> Sequence[JobHandle]:
		"""List registered jobs filtered by operation / state kind."""
		raise NotImplementedError
