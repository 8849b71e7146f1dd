# geojob/adapters/aiohttp_transport_adapter.py
import asyncio
from typing import Any, Mapping, Optional

import aiohttp

from geojob.core.exceptions import TransportError
from geojob.core.interfaces.transport import TransportPort
from geojob.core.models.transport_error import TransportErrorResponse
from geojob.core.settings import logger


class AioHttpTransportAdapter(TransportPort):
    def __init__(self, default_timeout: float = 30.0, session: Optional[aiohttp.ClientSession] = None):
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        # Per-field timeouts are fixed at init; callers only pick a total.
        self._default_total: float = default_timeout
        self._default_sock_read: float = default_timeout
        self._default_sock_connect: float = 10.0
        self._default_client_timeout = aiohttp.ClientTimeout(
            total=self._default_total,
            sock_read=self._default_sock_read,
            sock_connect=self._default_sock_connect,
        )

    async def __aenter__(self):
        """Async context manager entry"""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()
        return False

    def _client_timeout(self, timeout: float | None) -> aiohttp.ClientTimeout:
        if timeout is None:
            return self._default_client_timeout
        return aiohttp.ClientTimeout(
            total=timeout,
            sock_read=self._default_sock_read,
            sock_connect=self._default_sock_connect,
        )

    async def send(
        self,
        method: str,
        url: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: float | None = None,
    ) -> bytes:
        """Send one request and return the raw response body.

        Translates HTTP/network errors into TransportError so the poller can
        classify them (transient 5xx/timeouts vs. client errors).
        """
        if self._session is None:
            raise RuntimeError("Transport not initialized. Use 'async with' context manager.")

        method = method.upper()
        try:
            async with self._session.request(
                method,
                url,
                data=dict(body) if body is not None else None,
                params=dict(params) if params is not None else None,
                timeout=self._client_timeout(timeout),
            ) as response:
                payload = await response.read()

                if response.status == 401:
                    logger.warning(
                        "Authentication failed when requesting remote service. URL: %s", url
                    )
                    raise TransportError(
                        TransportErrorResponse(
                            title="Authentication Failed",
                            status=401,
                            detail=_excerpt(payload) or "Authentication with the remote service failed.",
                            url=url,
                        )
                    )

                if response.status >= 400:
                    logger.error(
                        "HTTP error when requesting remote service. Method: %s URL: %s, Status: %s",
                        method,
                        url,
                        response.status,
                    )
                    raise TransportError(
                        TransportErrorResponse(
                            title="Upstream HTTP Error",
                            status=response.status,
                            detail=_excerpt(payload) or f"The remote service returned an HTTP error: {response.status}",
                            url=url,
                        )
                    )

                return payload

        except asyncio.TimeoutError:
            logger.error("Timeout when requesting remote service. Method: %s URL: %s", method, url)
            raise TransportError(
                TransportErrorResponse(
                    title="Upstream Timeout",
                    status=504,
                    detail="The request to the remote service timed out.",
                    url=url,
                )
            )

        except aiohttp.ClientResponseError as client_response_error:
            logger.error(
                "HTTP error when requesting remote service. URL: %s, Status: %s, Error: %s",
                url,
                client_response_error.status,
                str(client_response_error),
            )
            raise TransportError(
                TransportErrorResponse(
                    title="Upstream HTTP Error",
                    status=client_response_error.status,
                    detail=f"The remote service returned an HTTP error: {client_response_error.status}",
                    url=url,
                )
            )

        except aiohttp.ClientError as client_error:
            logger.error(
                "Connection error when requesting remote service. URL: %s, Error: %s",
                url,
                str(client_error),
            )
            raise TransportError(
                TransportErrorResponse(
                    title="Upstream Connection Error",
                    status=502,
                    detail=f"There was a connection error with the remote service: {client_error}",
                    url=url,
                )
            )

    async def close(self) -> None:
        """Close the session (only if this adapter created it)"""
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None


def _excerpt(payload: bytes, limit: int = 500) -> str:
    return payload[:limit].decode("utf-8", errors="replace").strip()
