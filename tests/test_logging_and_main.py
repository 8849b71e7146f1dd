"""Logging setup and the composition root."""

import logging
import sys

import pytest

from geojob.adapters.job_registry_inmemory import InMemoryJobRegistry
from geojob.adapters.logging_adapter import LoggingAdapter
from geojob.core.logging_config import coerce_level, configure_logging, job_id_var
from geojob.core.managers.job_poller import JobPoller
from geojob.core.models.job import OperationKind
from geojob.core.settings import GeoJobSettings
from geojob.main import create_job_poller, job_poller
from transport_fakes import ScriptedTransport


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_coerce_level():
    assert coerce_level(None) == logging.INFO
    assert coerce_level("debug") == logging.DEBUG
    assert coerce_level(logging.WARNING) == logging.WARNING
    assert coerce_level("nonsense") == logging.INFO


def test_configure_logging_splits_streams_and_injects_job_id(restore_root_logging):
    configure_logging("DEBUG")
    root = logging.getLogger()
    streams = {h.stream for h in root.handlers}
    assert streams == {sys.stdout, sys.stderr}

    record = logging.LogRecord("geojob", logging.INFO, __file__, 1, "msg", None, None)
    token = job_id_var.set("job-42")
    try:
        for handler in root.handlers:
            for f in handler.filters:
                f.filter(record)
    finally:
        job_id_var.reset(token)
    assert record.job_id == "job-42"

    # Repeated calls do not stack handlers
    configure_logging("INFO")
    assert len(logging.getLogger().handlers) == 2


def test_logging_adapter_rebind():
    adapter = LoggingAdapter("geojob.test", "WARNING")
    assert adapter.logger.level == logging.WARNING
    target = logging.getLogger("geojob.other")
    adapter.rebind(target)
    assert adapter.logger is target


def test_create_job_poller_wires_catalog_and_credentials(tmp_path):
    path = tmp_path / "operations.yaml"
    path.write_text(
        """
operations:
  - kind: geoprocessing
    task-url: https://gis.example.org/arcgis/rest/services/Custom/GPServer/Buffer
    authentication:
      type: BearerToken
      token: op-token
""",
        encoding="utf-8",
    )
    settings = GeoJobSettings(_env_file=None, GEOJOB_OPERATIONS_FILE=path, GEOJOB_POLL_MAX_TOTAL_WAIT=42)
    transport = ScriptedTransport()
    registry = InMemoryJobRegistry()

    poller = create_job_poller(settings=settings, transport=transport, registry=registry)

    assert isinstance(poller, JobPoller)
    assert poller.config.default_policy.max_total_wait == 42
    assert poller._registry is registry
    assert OperationKind.geoprocessing in poller._operation_credentials
    assert poller._catalog.get_operation(OperationKind.viewshed) is not None


@pytest.mark.asyncio
async def test_job_poller_context_closes_transport():
    transport = ScriptedTransport()
    async with job_poller(settings=GeoJobSettings(_env_file=None), transport=transport) as poller:
        assert isinstance(poller, JobPoller)
        assert not transport.closed
    assert transport.closed
