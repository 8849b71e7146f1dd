"""Scripted TransportPort used by the poller tests.

Responses are queued per (method, url). The last queued response repeats,
so a single `executing` body keeps a job running forever. Entries may be:
    - dict / list: served as JSON
    - bytes / str: served verbatim
    - TransportError: raised
    - callable: called for every request, its return value served as above

A gate (`hold`) keeps matching requests on the wire until it is opened.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from geojob.core.exceptions import TransportError
from geojob.core.interfaces.transport import TransportPort
from geojob.core.models.transport_error import TransportErrorResponse

TASK_URL = "https://gis.test/arcgis/rest/services/Tools/Elevation/GPServer/Viewshed"


def job_url(job_id: str, task_url: str = TASK_URL) -> str:
    return f"{task_url}/jobs/{job_id}"


def status_body(job_id: str, status: str, **extra: Any) -> Dict[str, Any]:
    body = {"jobId": job_id, "jobStatus": status, "messages": []}
    body.update(extra)
    return body


def http_error(status: int, detail: str = "upstream says no") -> TransportError:
    return TransportError(
        TransportErrorResponse(title="Upstream HTTP Error", status=status, detail=detail)
    )


@dataclass
class Call:
    method: str
    url: str
    body: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    at: float = 0.0


class ScriptedTransport(TransportPort):
    def __init__(self) -> None:
        self._scripts: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[Call] = []
        self.closed = False
        self.in_flight = 0
        self._gates: Dict[Tuple[str, str], asyncio.Event] = {}

    # Marker indicating this is not a production adapter (test helper)
    test = False

    def script(self, method: str, url: str, *responses: Any) -> "ScriptedTransport":
        self._scripts.setdefault((method.upper(), url), []).extend(responses)
        return self

    def hold(self, method: str, url: str) -> asyncio.Event:
        """Block matching requests until the returned event is set."""
        return self._gates.setdefault((method.upper(), url), asyncio.Event())

    def calls_to(self, url: str, method: Optional[str] = None) -> List[Call]:
        return [
            c for c in self.calls if c.url == url and (method is None or c.method == method.upper())
        ]

    async def __aenter__(self):  # pragma: no cover trivial
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):  # pragma: no cover trivial
        await self.close()
        return False

    async def close(self) -> None:
        self.closed = True

    async def send(self, method, url, body=None, params=None, timeout=None) -> bytes:
        method = method.upper()
        self.calls.append(
            Call(method, url, dict(body or {}), dict(params or {}), time.monotonic())
        )
        gate = self._gates.get((method, url))
        if gate is not None:
            self.in_flight += 1
            try:
                await gate.wait()
            finally:
                self.in_flight -= 1
        queue = self._scripts.get((method, url))
        if not queue:
            raise TransportError(
                TransportErrorResponse(
                    title="Not Found", status=404, detail=f"no script for {method} {url}", url=url
                )
            )
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response) and not isinstance(response, BaseException):
            response = response()
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, bytes):
            return response
        if isinstance(response, str):
            return response.encode("utf-8")
        return json.dumps(response).encode("utf-8")
