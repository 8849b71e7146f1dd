"""Unit tests for the shipped JobStateObserver implementations."""

import logging

import pytest

from geojob.core.managers.observers import LoggingObserver, StateHistoryObserver
from geojob.core.models.job import JobHandle, JobState, JobStateKind, OperationKind

TASK = "https://gis.test/arcgis/rest/services/Tools/Elevation/GPServer/SummarizeElevation"


def make_handle(state: JobState | None = None) -> JobHandle:
    handle = JobHandle(job_id="j1", operation=OperationKind.summarize_elevation, task_url=TASK)
    if state is not None:
        handle.state = state
    return handle


@pytest.mark.asyncio
async def test_history_records_every_state_in_order():
    observer = StateHistoryObserver()
    handle = make_handle()

    await observer.on_job_submitted(handle)
    await observer.on_state_changed(handle, handle.state, JobState.executing(progress=25))
    await observer.on_state_changed(handle, None, JobState.executing(progress=80))
    done = JobState(kind=JobStateKind.succeeded)
    await observer.on_state_changed(handle, None, done)
    await observer.on_job_finished(make_handle(done))

    kinds = [s.kind for s in observer.history("j1")]
    assert kinds == [
        JobStateKind.submitted,
        JobStateKind.executing,
        JobStateKind.executing,
        JobStateKind.succeeded,
    ]
    assert observer.latest_progress("j1") == 80
    assert observer.history("unknown") == []
    assert observer.latest_progress("unknown") is None


@pytest.mark.asyncio
async def test_history_returns_copies_and_clears():
    observer = StateHistoryObserver()
    await observer.on_job_submitted(make_handle())

    snapshot = observer.history("j1")
    snapshot.clear()
    assert len(observer.history("j1")) == 1

    observer.clear("j1")
    assert observer.history("j1") == []


@pytest.mark.asyncio
async def test_logging_observer_levels(caplog):
    observer = LoggingObserver()
    caplog.set_level(logging.INFO, logger="geojob.core.managers.observers")

    await observer.on_job_submitted(make_handle())
    await observer.on_state_changed(make_handle(), JobState.submitted(), JobState.executing(progress=50))
    await observer.on_job_finished(make_handle(JobState.failed("ERROR 000735")))

    messages = [(r.levelno, r.getMessage()) for r in caplog.records]
    assert any(level == logging.INFO and "job submitted job_id=j1" in m for level, m in messages)
    assert any("submitted -> executing progress=50%" in m for _, m in messages)
    assert any(level == logging.WARNING and "reason=ERROR 000735" in m for level, m in messages)
