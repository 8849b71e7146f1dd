import asyncio
import json
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from geojob.core.config import JobPollerConfig, PollPolicy
from geojob.core.exceptions import (
    AlreadyTerminal,
    DecodeError,
    InvalidTransition,
    JobCancelledError,
    JobNotFound,
    JobRequestRejected,
    JobTimeout,
    JobUnreachable,
    MalformedAcceptance,
    RemoteJobFailure,
    ResultUndecodable,
    ShapeMismatchError,
    SubmissionError,
    SubmissionRejected,
    SubmissionTransportFailure,
    TransportError,
    UnknownJobState,
)
from geojob.core.interfaces.credentials import CredentialPort
from geojob.core.interfaces.job_registry import JobRegistryPort
from geojob.core.interfaces.observers import JobStateObserver
from geojob.core.interfaces.operation_catalog import OperationCatalogPort
from geojob.core.interfaces.result_decoding import DecodeContext
from geojob.core.interfaces.retry import RetryPort
from geojob.core.interfaces.transport import TransportPort
from geojob.core.logging_config import job_id_var
from geojob.core.managers.response_decoder import ResponseDecoder, parse_json
from geojob.core.managers.status_mapping import map_status
from geojob.core.models.job import (
    JobHandle,
    JobMessage,
    JobState,
    JobStateKind,
    OperationKind,
)
from geojob.core.models.job_status import JobStatusPayload
from geojob.core.models.result import DeclaredOutput, OutputKind, ResultEnvelope
from geojob.core.models.transport_error import TransportErrorResponse, extract_service_error
from geojob.core.settings import logger

HandleRef = Union[JobHandle, str]

# How many released job ids keep their terminal kind for cancel() to report
FINISHED_JOBS_MEMORY = 1024


class TransientTransportError(TransportError):
    """Wrapper for transport failures worth another attempt.

    Used to distinguish retryable failures (5xx, timeouts, connection errors,
    garbled status bodies) from client errors (4xx) in retry logic and in
    the poll loop's consecutive-failure counter.
    """

    pass


class JobPoller:
    """Drives remote GP jobs: submit, poll with backoff, fetch and decode results.

    Attributes:
        config: Immutable request and default polling configuration
    """

    def __init__(
        self,
        transport: TransportPort,
        registry: JobRegistryPort,
        config: Optional[JobPollerConfig] = None,
        catalog: Optional[OperationCatalogPort] = None,
        credentials: Optional[CredentialPort] = None,
        operation_credentials: Optional[Dict[OperationKind, CredentialPort]] = None,
        retry_port: Optional[RetryPort] = None,
        decoder: Optional[ResponseDecoder] = None,
        observers: Optional[List[JobStateObserver]] = None,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self.config = config or JobPollerConfig()
        self._catalog = catalog
        self._credentials = credentials
        self._operation_credentials = operation_credentials or {}
        self._retry = retry_port
        self._decoder = decoder or ResponseDecoder()
        self._observers = observers or []

        self._cancel_events: Dict[str, asyncio.Event] = {}
        # time.monotonic() at submission, per job
        self._anchors: Dict[str, float] = {}
        # set while no status request of the job's poll loop is outstanding
        self._polls_idle: Dict[str, asyncio.Event] = {}
        # terminal kind of released jobs, oldest first
        self._finished: "OrderedDict[str, JobStateKind]" = OrderedDict()
        self._poll_tasks: Set[asyncio.Task] = set()
        self._background_jobs: Dict[asyncio.Task, str] = {}
        self._shutdown = False

    # ---------------- Observers -----------------
    async def _notify_job_submitted(self, handle: JobHandle) -> None:
        """Notify all observers that a job was registered."""
        for observer in self._observers:
            try:
                await observer.on_job_submitted(handle)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_job_submitted failed observer={type(observer).__name__} "
                    f"job_id={handle.job_id} error={exc}"
                )

    async def _notify_state_changed(
        self,
        handle: JobHandle,
        old_state: Optional[JobState],
        new_state: JobState,
    ) -> None:
        """Notify all observers that a stored state changed."""
        for observer in self._observers:
            try:
                await observer.on_state_changed(handle, old_state, new_state)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_state_changed failed observer={type(observer).__name__} "
                    f"job_id={handle.job_id} error={exc}"
                )

    async def _notify_job_finished(self, handle: JobHandle) -> None:
        """Notify all observers that a job reached a terminal state."""
        for observer in self._observers:
            try:
                await observer.on_job_finished(handle)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_job_finished failed observer={type(observer).__name__} "
                    f"job_id={handle.job_id} error={exc}"
                )

    # ---------------- Submission -----------------
    async def submit(
        self,
        operation: OperationKind,
        parameters: Mapping[str, Any],
        task_url: Optional[str] = None,
    ) -> JobHandle:
        """Create a remote job and register its handle.

        Raises:
            SubmissionTransportFailure: Transport failed (after retries for transient failures)
            SubmissionRejected: Service answered with its error envelope
            MalformedAcceptance: Service answered without a jobId
        """
        url = self._resolve_task_url(operation, task_url)
        submit_url = f"{url}/submitJob"
        form = await self._form(operation, parameters)

        logger.info(f"[job:submit] operation={operation} url={submit_url}")
        try:
            raw = await self._send_with_retry("POST", submit_url, body=form)
        except TransportError as exc:
            logger.warning(
                f"[job:submit] transport failure url={submit_url} status={exc.response.status} "
                f"title={exc.response.title}"
            )
            raise SubmissionTransportFailure(exc, url) from exc

        try:
            body = parse_json(raw)
        except ShapeMismatchError as exc:
            raise MalformedAcceptance(url, exc.diagnostic or "") from exc

        service_error = extract_service_error(body)
        if service_error is not None:
            logger.warning(f"[job:submit] rejected url={submit_url} error={service_error.describe()}")
            raise SubmissionRejected(url, service_error)

        job_id = body.get("jobId") if isinstance(body, dict) else None
        if not isinstance(job_id, str) or not job_id:
            raise MalformedAcceptance(url, raw[:500].decode("utf-8", errors="replace"))

        handle = JobHandle(
            job_id=job_id,
            operation=operation,
            task_url=url,
            state=self._initial_state(job_id, body),
        )
        stored = await self._registry.insert(handle)
        self._anchors[job_id] = time.monotonic()
        self._cancel_events[job_id] = asyncio.Event()

        logger.info(f"[job:submit] accepted job_id={job_id} status={body.get('jobStatus')}")
        await self._notify_job_submitted(stored)
        return stored

    def _resolve_task_url(self, operation: OperationKind, task_url: Optional[str]) -> str:
        if task_url:
            return task_url.rstrip("/")
        op_config = self._catalog.get_operation(operation) if self._catalog else None
        if op_config is None:
            raise SubmissionError(
                message=f"No task URL configured for operation {operation}",
            )
        return op_config.task_url

    def _initial_state(self, job_id: str, body: Dict[str, Any]) -> JobState:
        """Executing if the acceptance already says so, submitted otherwise.

        Terminal or unrecognized acceptance statuses are left to the first poll.
        """
        raw_status = body.get("jobStatus")
        if not isinstance(raw_status, str):
            return JobState.submitted()
        try:
            state = map_status(job_id, JobStatusPayload(jobId=job_id, jobStatus=raw_status))
        except UnknownJobState:
            logger.debug(f"[job:submit] unrecognized initial status job_id={job_id} status={raw_status}")
            return JobState.submitted()
        if state.kind == JobStateKind.executing:
            return state
        return JobState.submitted()

    async def _form(
        self, operation: Optional[OperationKind], parameters: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, str]:
        """Form body for GP requests: f=json, JSON-encoded parameter values, token."""
        form: Dict[str, str] = {"f": "json"}
        for name, value in (parameters or {}).items():
            form[name] = value if isinstance(value, str) else json.dumps(value)
        credentials = self._operation_credentials.get(operation, self._credentials)
        if credentials is not None:
            token = await credentials.current_credential()
            if token:
                form["token"] = token
        return form

    # ---------------- Requests -----------------
    def _is_transient_error(self, exc: TransportError) -> bool:
        """Transient: 5xx, timeouts (504) and connection errors (502).

        Client errors (4xx) including authentication failures fail immediately.
        """
        return exc.response.is_transient()

    async def _send(
        self,
        method: str,
        url: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> bytes:
        """One exchange with transient failures wrapped for retry classification."""
        try:
            return await self._transport.send(
                method, url, body=body, params=params, timeout=self.config.request_timeout
            )
        except TransientTransportError:
            raise
        except TransportError as exc:
            if self._is_transient_error(exc):
                logger.debug(f"[job:request] transient error, will retry: status={exc.response.status} url={url}")
                raise TransientTransportError(exc.response) from exc
            logger.debug(f"[job:request] non-transient error, will not retry: status={exc.response.status} url={url}")
            raise

    async def _send_with_retry(
        self,
        method: str,
        url: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> bytes:
        if self._retry is None:
            return await self._send(method, url, body=body, params=params)
        return await self._retry.execute(
            self._send,
            method,
            url,
            body=body,
            params=params,
            attempts=self.config.submit_max_retries,
            wait_initial=self.config.submit_retry_base_wait,
            wait_max=self.config.submit_retry_max_wait,
            exception_types=(TransientTransportError,),
        )

    async def _fetch_status(self, handle: JobHandle) -> JobStatusPayload:
        """GET the job status once.

        Raises:
            TransientTransportError: Failure that counts against the failure budget
            JobRequestRejected: Failure retrying will not fix
        """
        url = handle.job_url()
        params = await self._form(handle.operation)
        try:
            raw = await self._send("GET", url, params=params)
        except TransientTransportError:
            raise
        except TransportError as exc:
            raise JobRequestRejected(handle.job_id, exc.response.status, exc.response.detail) from exc

        try:
            body = parse_json(raw, "job status")
        except ShapeMismatchError as exc:
            raise TransientTransportError(
                TransportErrorResponse(
                    title="Malformed Status Response", status=502, detail=exc.diagnostic or "", url=url
                )
            ) from exc

        service_error = extract_service_error(body)
        if service_error is not None:
            if service_error.is_transient():
                raise TransientTransportError(
                    TransportErrorResponse(
                        title="Service Error",
                        status=service_error.code or 500,
                        detail=service_error.describe(),
                        url=url,
                    )
                )
            raise JobRequestRejected(handle.job_id, service_error.code, service_error.describe())

        try:
            return self._decoder.decode_status(body)
        except ShapeMismatchError as exc:
            raise TransientTransportError(
                TransportErrorResponse(
                    title="Malformed Status Response", status=502, detail=exc.diagnostic or "", url=url
                )
            ) from exc

    # ---------------- Polling -----------------
    async def await_completion(
        self,
        handle: HandleRef,
        policy: Optional[PollPolicy] = None,
        declared_output: Optional[DeclaredOutput] = None,
    ) -> ResultEnvelope:
        """Poll until the job is terminal and return its decoded result.

        Raises:
            JobNotFound: Handle is not registered
            JobUnreachable: Too many consecutive failed status requests (handle kept)
            JobRequestRejected: Status request rejected by the service
            RemoteJobFailure: Server reported the job failed
            ResultUndecodable: Job succeeded but the output does not decode as declared
            UnknownJobState: Server reported a status this client does not know
            JobTimeout: Budget exhausted (client side) or server timed the job out
            JobCancelledError: Cancelled locally or on the server
        """
        job_id = self._job_id(handle)
        stored = await self._registry.get(job_id)
        if stored is None:
            raise JobNotFound(job_id)

        policy = policy or self.config.default_policy
        declared = declared_output or self._default_output(stored.operation)

        token = job_id_var.set(job_id)
        try:
            return await self._poll_loop(stored, policy, declared)
        finally:
            job_id_var.reset(token)

    async def _poll_loop(
        self, handle: JobHandle, policy: PollPolicy, declared: DeclaredOutput
    ) -> ResultEnvelope:
        """Timer-driven loop: check cancel, poll, apply, check budget, sleep."""
        job_id = handle.job_id
        anchor = self._anchor(handle)
        cancel_event = self._cancel_events.setdefault(job_id, asyncio.Event())
        idle = asyncio.Event()
        idle.set()
        self._polls_idle[job_id] = idle
        interval = policy.initial_poll_interval
        failures = 0

        try:
            while True:
                if cancel_event.is_set():
                    logger.debug(f"[job:poll] stopping: cancellation requested job_id={job_id}")
                    raise JobCancelledError(job_id)

                try:
                    status = await self._poll_once(handle, idle)
                except TransientTransportError as exc:
                    failures += 1
                    logger.warning(
                        f"[job:poll] status request failed job_id={job_id} failures={failures} "
                        f"status={exc.response.status} detail={exc.response.detail}"
                    )
                    if failures > policy.max_consecutive_transport_failures:
                        raise JobUnreachable(job_id, failures, exc.response.detail) from exc
                else:
                    failures = 0
                    state = map_status(job_id, status)
                    handle = await self._apply_state(handle, state, status.messages, cancel_event)
                    if handle.state.is_terminal():
                        logger.debug(
                            f"[job:poll] terminal state reached job_id={job_id} state={handle.state.kind}"
                        )
                        return await self._finish(handle, status, declared, policy, anchor)

                elapsed = time.monotonic() - anchor
                if elapsed >= policy.max_total_wait:
                    await self._expire(job_id, elapsed, policy)

                pause = min(interval, policy.max_total_wait - elapsed)
                logger.debug(f"[job:poll] sleeping {pause:.3f}s job_id={job_id}")
                await self._pause(cancel_event, pause)
                interval = policy.next_interval(interval)
        finally:
            if self._polls_idle.get(job_id) is idle:
                del self._polls_idle[job_id]

    async def _poll_once(self, handle: JobHandle, idle: asyncio.Event) -> JobStatusPayload:
        """One status request, with `idle` cleared while it is outstanding."""
        idle.clear()
        try:
            return await self._fetch_status(handle)
        finally:
            idle.set()

    async def _pause(self, cancel_event: asyncio.Event, seconds: float) -> None:
        """Sleep for `seconds`, waking early when cancellation is requested."""
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _apply_state(
        self,
        handle: JobHandle,
        state: JobState,
        messages: List[JobMessage],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> JobHandle:
        """Store a polled state and the server messages in one registry update.

        A stored terminal state is never replaced, so the first terminal outcome
        observed is the one reported. If the handle was already released with a
        terminal outcome, a detached copy carrying that outcome is returned.
        """
        job_id = handle.job_id
        previous: Dict[str, JobState] = {}

        def apply(current: JobHandle) -> None:
            previous["state"] = current.state
            if not current.state.is_terminal():
                current.state = state
            current.messages = list(messages)

        try:
            updated = await self._registry.update(job_id, apply)
        except JobNotFound:
            if cancel_event is not None and cancel_event.is_set():
                raise JobCancelledError(job_id)
            finished = self._finished.get(job_id)
            if finished is None:
                raise
            logger.debug(f"[job:poll] handle already released job_id={job_id} state={finished}")
            outcome = state if state.kind == finished else JobState(kind=finished)
            return handle.model_copy(update={"state": outcome, "messages": list(messages)})

        old_state = previous["state"]
        if old_state.is_terminal() and old_state.kind != state.kind:
            logger.debug(
                f"[job:poll] keeping stored terminal state job_id={job_id} stored={old_state.kind} "
                f"polled={state.kind}"
            )
        if old_state != updated.state:
            logger.debug(
                f"[job:poll] state change job_id={job_id} old={old_state.kind} new={updated.state.kind} "
                f"progress={updated.state.progress}"
            )
            await self._notify_state_changed(updated, old_state, updated.state)
        return updated

    async def _finish(
        self,
        handle: JobHandle,
        status: JobStatusPayload,
        declared: DeclaredOutput,
        policy: PollPolicy,
        anchor: float,
    ) -> ResultEnvelope:
        """Turn a terminal state into the caller's outcome, then notify and release."""
        job_id = handle.job_id
        state = handle.state
        try:
            if state.kind == JobStateKind.succeeded:
                return await self._collect_result(handle, status, declared)
            if state.kind == JobStateKind.failed:
                logger.warning(f"[job:poll] remote failure job_id={job_id} reason={state.reason}")
                raise RemoteJobFailure(
                    job_id, state.reason or "", [m.description for m in status.messages]
                )
            if state.kind == JobStateKind.timed_out:
                raise JobTimeout(
                    job_id,
                    time.monotonic() - anchor,
                    policy.max_total_wait,
                    remote=True,
                    diagnostic=state.reason,
                )
            raise JobCancelledError(job_id, by_server=True)
        finally:
            # a peek may have reported this outcome already
            if job_id not in self._finished:
                await self._notify_job_finished(handle)
            await self._release(job_id, state.kind)

    async def _expire(self, job_id: str, elapsed: float, policy: PollPolicy) -> None:
        """Client-side budget exhausted: record timed_out and raise. The remote job is left alone."""
        logger.warning(
            f"[job:poll] timeout reached job_id={job_id} elapsed={elapsed:.3f}s > {policy.max_total_wait}s"
        )
        reason = f"Timed out after {policy.max_total_wait}s waiting for remote completion"
        old = await self._registry.get(job_id)
        try:
            updated = await self._registry.transition(
                job_id, JobState(kind=JobStateKind.timed_out, reason=reason)
            )
        except (JobNotFound, InvalidTransition):
            updated = None
        if updated is not None:
            await self._notify_state_changed(updated, old.state if old else None, updated.state)
            await self._notify_job_finished(updated)
        await self._release(job_id, updated.state.kind if updated is not None else None)
        raise JobTimeout(job_id, elapsed, policy.max_total_wait)

    # ---------------- Results -----------------
    async def _collect_result(
        self, handle: JobHandle, status: JobStatusPayload, declared: DeclaredOutput
    ) -> ResultEnvelope:
        job_id = handle.job_id
        known_names = self._catalog.known_output_names(handle.operation) if self._catalog else []
        try:
            payload, fetched = await self._result_payload(handle, status, declared, known_names)
            context = DecodeContext(
                job_id=job_id,
                operation=handle.operation,
                declared=declared,
                known_output_names=known_names,
                status=status,
                fetched_params=fetched,
            )
            envelope = self._decoder.decode(payload, context)
        except DecodeError as exc:
            logger.warning(f"[job:decode] undecodable result job_id={job_id} error={exc.message}")
            raise ResultUndecodable(job_id, exc) from exc
        logger.info(f"[job:decode] result decoded job_id={job_id} kind={envelope.output.kind}")
        return envelope

    async def _result_payload(
        self,
        handle: JobHandle,
        status: JobStatusPayload,
        declared: DeclaredOutput,
        known_names: List[str],
    ) -> tuple[Any, List[str]]:
        """Locate the payload to decode and report which result parameters it covers.

        Order: the declared parameter, every parameter for named outputs, the
        first catalogued name present, a lone result parameter, and finally
        the status body itself.
        """
        if declared.param_name and declared.param_name in status.results:
            return await self._result_param(handle, status, declared.param_name), [declared.param_name]

        if declared.kind == OutputKind.named_outputs and status.results:
            entries = []
            for name in status.results:
                value = await self._result_param(handle, status, name)
                if isinstance(value, dict) and "paramName" in value:
                    entries.append(value)
                else:
                    entries.append({"paramName": name, "value": value})
            return {"results": entries}, list(status.results)

        if declared.param_name:
            raise ShapeMismatchError(
                str(declared.kind),
                f"job has no output parameter {declared.param_name!r} (available: {sorted(status.results)})",
            )

        for name in known_names:
            if name in status.results:
                return await self._result_param(handle, status, name), [name]

        if len(status.results) == 1:
            name = next(iter(status.results))
            return await self._result_param(handle, status, name), [name]

        if not status.results:
            raise ShapeMismatchError(str(declared.kind), "job succeeded without output parameters")

        return status.model_dump(mode="json"), []

    async def _result_param(self, handle: JobHandle, status: JobStatusPayload, name: str) -> Any:
        """Inline value when the status body carries one, otherwise GET the parameter."""
        inline = status.inline_output(name)
        if inline is not None:
            return {"paramName": name, "value": inline}

        ref = status.results[name]
        url = f"{handle.job_url()}/{ref.paramUrl or f'results/{name}'}"
        params = await self._form(handle.operation)
        logger.debug(f"[job:results] fetching param={name} url={url}")
        try:
            raw = await self._send_with_retry("GET", url, params=params)
        except TransientTransportError as exc:
            raise JobUnreachable(handle.job_id, self.config.submit_max_retries, exc.response.detail) from exc
        except TransportError as exc:
            raise JobRequestRejected(handle.job_id, exc.response.status, exc.response.detail) from exc
        return parse_json(raw, name)

    # ---------------- Cancellation & inspection -----------------
    async def cancel(self, handle: HandleRef) -> None:
        """Stop tracking a job and ask the server to cancel it (best effort).

        A status request the job's poll loop already has on the wire is awaited
        before the local state becomes cancelled; if that request settles the
        job, the cancel is refused.

        Raises:
            AlreadyTerminal: Job is already in a terminal state
            JobNotFound: Job is not registered
        """
        job_id = self._job_id(handle)
        stored = await self._cancellable(handle)
        cancel_event = self._cancel_events.setdefault(job_id, asyncio.Event())
        cancel_event.set()

        idle = self._polls_idle.get(job_id)
        if idle is not None and not idle.is_set():
            logger.debug(f"[job:cancel] waiting for in-flight status request job_id={job_id}")
            await idle.wait()
            try:
                stored = await self._cancellable(handle)
            except AlreadyTerminal:
                cancel_event.clear()
                raise

        url = f"{stored.job_url()}/cancel"
        logger.info(f"[job:cancel] requesting remote cancel job_id={job_id}")
        try:
            raw = await self._send("POST", url, body=await self._form(stored.operation))
            service_error = extract_service_error(parse_json(raw))
            if service_error is not None:
                logger.warning(f"[job:cancel] remote refused job_id={job_id} error={service_error.describe()}")
        except TransportError as exc:
            logger.warning(
                f"[job:cancel] remote cancel failed job_id={job_id} status={exc.response.status} "
                f"detail={exc.response.detail}"
            )
        except ShapeMismatchError as exc:
            logger.warning(f"[job:cancel] unreadable cancel response job_id={job_id} detail={exc.diagnostic}")

        try:
            updated = await self._registry.transition(job_id, JobState(kind=JobStateKind.cancelled))
        except InvalidTransition as exc:
            raise AlreadyTerminal(job_id, exc.current) from exc
        except JobNotFound:
            logger.debug(f"[job:cancel] handle already released job_id={job_id}")
            return
        await self._notify_state_changed(updated, stored.state, updated.state)
        await self._notify_job_finished(updated)
        await self._release(job_id, JobStateKind.cancelled)

    async def _cancellable(self, handle: HandleRef) -> JobHandle:
        """Stored handle of a job that can still be cancelled."""
        job_id = self._job_id(handle)
        stored = await self._registry.get(job_id)
        if stored is None:
            finished = self._finished.get(job_id)
            if finished is not None:
                raise AlreadyTerminal(job_id, str(finished))
            if isinstance(handle, JobHandle) and handle.is_in_terminal_state():
                raise AlreadyTerminal(job_id, str(handle.state.kind))
            raise JobNotFound(job_id)
        if stored.is_in_terminal_state():
            raise AlreadyTerminal(job_id, str(stored.state.kind))
        return stored

    async def abandon(self, handle: HandleRef) -> Optional[JobHandle]:
        """Stop tracking a job without contacting the server."""
        job_id = self._job_id(handle)
        event = self._cancel_events.get(job_id)
        if event is not None:
            event.set()
        removed = await self._registry.remove(job_id)
        self._anchors.pop(job_id, None)
        self._cancel_events.pop(job_id, None)
        return removed

    async def peek(self, handle: HandleRef) -> JobState:
        """One status request, no loop and no retry.

        A terminal state seen here is reported to observers and releases the
        handle, like the end of a poll loop.

        Raises:
            JobUnreachable: The request failed transiently
            JobRequestRejected: The request was rejected
            UnknownJobState: Unrecognized server status
        """
        job_id = self._job_id(handle)
        stored = await self._registry.get(job_id)
        target = stored or (handle if isinstance(handle, JobHandle) else None)
        if target is None:
            raise JobNotFound(job_id)

        try:
            status = await self._fetch_status(target)
        except TransientTransportError as exc:
            raise JobUnreachable(job_id, 1, exc.response.detail) from exc
        state = map_status(job_id, status)

        if stored is None:
            return state
        try:
            updated = await self._apply_state(stored, state, status.messages)
        except JobNotFound:
            return state
        if updated.state.is_terminal():
            if job_id not in self._finished:
                await self._notify_job_finished(updated)
            await self._release(job_id, updated.state.kind)
        return updated.state

    async def messages(self, handle: HandleRef) -> List[JobMessage]:
        """Fetch the server's job messages (`jobs/{id}/messages`)."""
        job_id = self._job_id(handle)
        stored = await self._registry.get(job_id)
        target = stored or (handle if isinstance(handle, JobHandle) else None)
        if target is None:
            raise JobNotFound(job_id)

        url = f"{target.job_url()}/messages"
        try:
            raw = await self._send_with_retry("GET", url, params=await self._form(target.operation))
        except TransientTransportError as exc:
            raise JobUnreachable(job_id, self.config.submit_max_retries, exc.response.detail) from exc
        except TransportError as exc:
            raise JobRequestRejected(job_id, exc.response.status, exc.response.detail) from exc

        try:
            body = parse_json(raw, "job messages")
        except ShapeMismatchError as exc:
            raise JobRequestRejected(job_id, None, exc.diagnostic or "") from exc
        service_error = extract_service_error(body)
        if service_error is not None:
            raise JobRequestRejected(job_id, service_error.code, service_error.describe())

        entries = body.get("messages", []) if isinstance(body, dict) else []
        result = [JobMessage.model_validate(m) for m in entries if isinstance(m, dict)]
        if stored is not None:
            try:
                await self._registry.update(job_id, lambda h: setattr(h, "messages", result))
            except JobNotFound:
                logger.debug(f"[job:messages] handle released before messages were stored job_id={job_id}")
        return result

    # ---------------- Convenience & lifecycle -----------------
    async def run(
        self,
        operation: OperationKind,
        parameters: Mapping[str, Any],
        declared_output: Optional[DeclaredOutput] = None,
        policy: Optional[PollPolicy] = None,
        task_url: Optional[str] = None,
    ) -> ResultEnvelope:
        """Submit and wait for the result in one call."""
        handle = await self.submit(operation, parameters, task_url=task_url)
        return await self.await_completion(handle, policy, declared_output)

    def start_background(
        self,
        handle: HandleRef,
        policy: Optional[PollPolicy] = None,
        declared_output: Optional[DeclaredOutput] = None,
    ) -> asyncio.Task:
        """Run await_completion as a tracked task; shutdown() stops it."""
        if self._shutdown:
            raise RuntimeError("JobPoller is shut down")
        job_id = self._job_id(handle)
        logger.debug(f"[job:poll] scheduling poll loop job_id={job_id}")
        task = asyncio.create_task(self.await_completion(job_id, policy, declared_output))
        self._poll_tasks.add(task)
        self._background_jobs[task] = job_id
        task.add_done_callback(self._forget_task)
        return task

    def _forget_task(self, task: asyncio.Task) -> None:
        self._poll_tasks.discard(task)
        self._background_jobs.pop(task, None)

    async def shutdown(self) -> None:
        """Stop every background poll loop and wait for them to exit.

        Stopped jobs stay registered and can be polled again afterwards.
        """
        self._shutdown = True
        tasks = list(self._poll_tasks)
        stopped = [job_id for job_id in (self._background_jobs.get(t) for t in tasks) if job_id]
        for job_id in stopped:
            self._cancel_events.setdefault(job_id, asyncio.Event()).set()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for job_id in stopped:
            self._cancel_events.pop(job_id, None)
        logger.debug(f"[job:poll] shutdown complete stopped={len(tasks)}")

    # ---------------- Helpers -----------------
    def _job_id(self, handle: HandleRef) -> str:
        return handle.job_id if isinstance(handle, JobHandle) else handle

    def _default_output(self, operation: OperationKind) -> DeclaredOutput:
        op_config = self._catalog.get_operation(operation) if self._catalog else None
        if op_config is not None and op_config.output is not None:
            return op_config.output
        return DeclaredOutput(kind=OutputKind.named_outputs)

    def _anchor(self, handle: JobHandle) -> float:
        """Monotonic submission time; derived from submitted_at for foreign handles."""
        anchor = self._anchors.get(handle.job_id)
        if anchor is None:
            age = (datetime.now(timezone.utc) - handle.submitted_at).total_seconds()
            anchor = time.monotonic() - max(age, 0.0)
            self._anchors[handle.job_id] = anchor
        return anchor

    async def _release(self, job_id: str, finished: Optional[JobStateKind] = None) -> None:
        await self._registry.remove(job_id)
        self._anchors.pop(job_id, None)
        self._cancel_events.pop(job_id, None)
        if finished is not None:
            self._finished[job_id] = finished
            self._finished.move_to_end(job_id)
            while len(self._finished) > FINISHED_JOBS_MEMORY:
                self._finished.popitem(last=False)
