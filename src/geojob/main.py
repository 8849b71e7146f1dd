# main.py
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from geojob.adapters.aiohttp_transport_adapter import AioHttpTransportAdapter
from geojob.adapters.credentials_static import credential_from_config, credential_from_settings
from geojob.adapters.job_registry_inmemory import InMemoryJobRegistry
from geojob.adapters.logging_adapter import LoggingAdapter
from geojob.adapters.operation_catalog_file_adapter import OperationCatalogFileAdapter
from geojob.adapters.retry_tenacity import TenacityRetryAdapter
from geojob.core.config import JobPollerConfig
from geojob.core.interfaces.job_registry import JobRegistryPort
from geojob.core.interfaces.observers import JobStateObserver
from geojob.core.interfaces.transport import TransportPort
from geojob.core.logging_config import configure_logging
from geojob.core.managers.job_poller import JobPoller
from geojob.core.managers.observers import LoggingObserver
from geojob.core.models.operations_config import default_operations
from geojob.core.settings import GeoJobSettings, app_settings, set_logger


# main lives at the outermost layer (not in core)
# Instantiates all the concrete adapters
# Wires dependencies together


def create_job_poller(
    settings: Optional[GeoJobSettings] = None,
    transport: Optional[TransportPort] = None,
    registry: Optional[JobRegistryPort] = None,
    observers: Optional[List[JobStateObserver]] = None,
    setup_logging: bool = False,
) -> JobPoller:
    """Build a JobPoller from settings.

    The transport is not opened here; use it as an async context manager (or
    use `job_poller`, which does so).
    """
    settings = settings or app_settings

    if setup_logging:
        # Central logging configuration before the adapter is injected
        configure_logging(settings.GEOJOB_LOG_LEVEL)
        set_logger(LoggingAdapter("geojob", settings.GEOJOB_LOG_LEVEL))

    catalog = OperationCatalogFileAdapter(
        settings.GEOJOB_OPERATIONS_FILE,
        defaults=default_operations(settings.GEOJOB_ELEVATION_SERVICE_URL),
    )
    operation_credentials = {
        op.kind: credential_from_config(op.authentication)
        for op in catalog.list_operations()
        if op.authentication is not None
    }

    config = JobPollerConfig.from_settings(settings)
    retry_adapter = TenacityRetryAdapter(
        attempts=config.submit_max_retries,
        wait_initial=config.submit_retry_base_wait,
        wait_max=config.submit_retry_max_wait,
    )

    return JobPoller(
        transport=transport or AioHttpTransportAdapter(default_timeout=settings.GEOJOB_REQUEST_TIMEOUT or 30.0),
        registry=registry or InMemoryJobRegistry(),
        config=config,
        catalog=catalog,
        credentials=credential_from_settings(settings),
        operation_credentials=operation_credentials,
        retry_port=retry_adapter,
        observers=observers if observers is not None else [LoggingObserver()],
    )


@asynccontextmanager
async def job_poller(
    settings: Optional[GeoJobSettings] = None,
    transport: Optional[TransportPort] = None,
    registry: Optional[JobRegistryPort] = None,
    observers: Optional[List[JobStateObserver]] = None,
    setup_logging: bool = False,
) -> AsyncIterator[JobPoller]:
    """Open the transport, yield a wired JobPoller, then stop background polls and close."""
    settings = settings or app_settings
    transport = transport or AioHttpTransportAdapter(default_timeout=settings.GEOJOB_REQUEST_TIMEOUT or 30.0)
    poller = create_job_poller(
        settings=settings,
        transport=transport,
        registry=registry,
        observers=observers,
        setup_logging=setup_logging,
    )
    async with transport:
        try:
            yield poller
        finally:
            await poller.shutdown()
