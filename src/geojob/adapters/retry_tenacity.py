import logging
from typing import Any, Awaitable, Callable, Sequence, Type

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from geojob.core.settings import logger


class TenacityRetryAdapter:
    """Tenacity-based retry adapter implementing RetryPort.

    Exponential backoff between attempts; only `exception_types` are retried,
    anything else propagates on the first occurrence.
    """

    def __init__(
        self,
        attempts: int = 3,
        wait_initial: float = 0.5,
        wait_max: float = 5.0,
        exception_types: Sequence[Type[BaseException]] = (Exception,),
    ) -> None:
        self.attempts = attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max
        self.exception_types = tuple(exception_types)

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        attempts: int | None = None,
        wait_initial: float | None = None,
        wait_max: float | None = None,
        exception_types: Sequence[Type[BaseException]] | None = None,
        **kwargs,
    ) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts or self.attempts),
            wait=wait_exponential(
                multiplier=wait_initial or self.wait_initial,
                max=wait_max or self.wait_max,
            ),
            retry=retry_if_exception_type(tuple(exception_types or self.exception_types)),
            before_sleep=before_sleep_log(logger.logger, logging.DEBUG),
            reraise=True,
        )
        async for attempt in retrying:  # pragma: no cover - control flow instrumentation
            with attempt:
                return await func(*args, **kwargs)
