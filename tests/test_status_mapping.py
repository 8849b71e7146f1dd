import pytest

from geojob.core.exceptions import UnknownJobState
from geojob.core.managers.status_mapping import map_status
from geojob.core.models.job import JobStateKind
from geojob.core.models.job_status import JobStatusPayload


def payload(status: str, **extra) -> JobStatusPayload:
    return JobStatusPayload(jobId="j1", jobStatus=status, **extra)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("esriJobNew", JobStateKind.executing),
        ("esriJobSubmitted", JobStateKind.executing),
        ("esriJobSubmitting", JobStateKind.executing),
        ("esriJobWaiting", JobStateKind.executing),
        ("esriJobExecuting", JobStateKind.executing),
        ("esriJobCancelling", JobStateKind.executing),
        ("esriJobDeleting", JobStateKind.executing),
        ("esriJobSucceeded", JobStateKind.succeeded),
        ("esriJobFailed", JobStateKind.failed),
        ("esriJobTimedOut", JobStateKind.timed_out),
        ("esriJobCancelled", JobStateKind.cancelled),
        ("esriJobDeleted", JobStateKind.cancelled),
    ],
)
def test_known_statuses(raw, expected):
    assert map_status("j1", payload(raw)).kind == expected


@pytest.mark.parametrize("raw", ["esriJobPaused", "", "executing", "ESRIJOBSUCCEEDED"])
def test_unknown_statuses_raise(raw):
    with pytest.raises(UnknownJobState) as excinfo:
        map_status("j1", payload(raw))
    assert excinfo.value.raw_value == raw


def test_progress_and_message():
    state = map_status(
        "j1",
        payload("esriJobExecuting", progress={"type": "step", "message": "Tiling", "percent": 140}),
    )
    assert state.progress == 100
    assert state.message == "Tiling"

    state = map_status(
        "j1",
        payload(
            "esriJobExecuting",
            messages=[{"type": "esriJobMessageTypeInformative", "description": "Start Time: Mon"}],
        ),
    )
    assert state.progress is None
    assert state.message == "Start Time: Mon"


def test_failure_reason_defaults_when_no_error_messages():
    state = map_status("j1", payload("esriJobFailed"))
    assert state.reason == "Job failed without error messages"
    assert state.is_terminal()
