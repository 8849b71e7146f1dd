from typing import Any, Awaitable, Callable, Protocol, Sequence, Type


class RetryPort(Protocol):
    """Retries an async request on transient transport failures.

    Used by the poller around job submission and result fetches. Status polls
    do not go through it: the poll loop counts consecutive failures itself so
    that `PollPolicy.max_consecutive_transport_failures` stays authoritative.
    """

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        attempts: int | None = None,
        wait_initial: float | None = None,
        wait_max: float | None = None,
        exception_types: Sequence[Type[BaseException]] | None = None,
        **kwargs,
    ) -> Any:  # pragma: no cover - protocol
        """Await `func(*args, **kwargs)` until it succeeds or attempts run out.

        Keyword overrides left as None fall back to the adapter defaults.
        The last exception is re-raised unchanged once attempts are exhausted.
        """
        ...
