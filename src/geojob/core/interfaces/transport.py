# geojob/core/interfaces/transport.py
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

class TransportPort(ABC):
    @abstractmethod
    async def __aenter__(self) -> "TransportPort":
        """Async context manager entry method"""
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit method"""
        pass

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: float | None = None,
    ) -> bytes:
        """Perform one request/response exchange and return the raw body.

        `body` is sent form-encoded (GP endpoints expect forms), `params` as
        the query string. Any failure (timeout, connection, HTTP error status)
        raises `TransportError`; nothing is retried here.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying HTTP session"""
        pass
