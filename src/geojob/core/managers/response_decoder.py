"""Decoder turning a finished job's result payload into a ResultEnvelope.

The declared output selects exactly one shape. The payload is then looked up
in a fixed order:

1. The payload itself (flat form)
2. One level down, under a known output-parameter key: the declared
   `param_name`, then the operation's catalogued output names, then the GP
   result wrapper key `value`

Anything else is a ShapeMismatchError. If more than one key at step 2 holds a
matching value the payload is ambiguous, and that is reported too.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from geojob.core.exceptions import ShapeMismatchError, TypeMismatchError
from geojob.core.interfaces.result_decoding import DecodeContext, OutputShape
from geojob.core.managers.output_shapes import GP_DATA_TYPES, default_shapes, json_type_name
from geojob.core.models.job_status import JobStatusPayload
from geojob.core.models.result import (
    DataProductRef,
    DeclaredOutput,
    JobOutput,
    OutputKind,
    ResultEnvelope,
)
from geojob.core.models.transport_error import extract_service_error
from geojob.core.settings import logger

VALUE_WRAPPER_KEY = "value"


def parse_json(raw: bytes | str, declared_kind: str = "JSON") -> Any:
    """Parse a response body; invalid JSON is a shape mismatch, never a crash."""
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        excerpt = raw[:200] if isinstance(raw, str) else raw[:200].decode("utf-8", errors="replace")
        raise ShapeMismatchError(declared_kind, f"body is not valid JSON ({e}): {excerpt!r}") from e


class ResponseDecoder:
    def __init__(self, shapes: Optional[Dict[OutputKind, OutputShape]] = None):
        self._shapes: Dict[OutputKind, OutputShape] = shapes or default_shapes()

    def decode(self, raw_payload: bytes | str | Any, context: DecodeContext) -> ResultEnvelope:
        """Decode a result payload as `context.declared` says it should look.

        Args:
            raw_payload: Response body (bytes/str) or an already-parsed JSON value
            context: Declared output and job context

        Returns:
            ResultEnvelope with the typed output, data products and messages

        Raises:
            ShapeMismatchError: No enumerated shape of the declared kind is present
            TypeMismatchError: Shape present but value types contradict the declaration
        """
        declared = context.declared
        if isinstance(raw_payload, (bytes, str)):
            payload = parse_json(raw_payload, str(declared.kind))
        else:
            payload = raw_payload

        service_error = extract_service_error(payload)
        if service_error is not None:
            raise ShapeMismatchError(
                str(declared.kind), f"service returned an error instead of a result: {service_error.describe()}"
            )

        output = self._decode_output(payload, context)
        logger.debug(
            "[decoder] job_id=%s decoded %s output", context.job_id, declared.kind
        )
        return ResultEnvelope(
            job_id=context.job_id,
            operation=context.operation,
            output=output,
            data_products=self._data_products(context),
            messages=list(context.status.messages) if context.status else [],
        )

    def decode_status(self, raw: bytes | str | Any) -> JobStatusPayload:
        """Validate a job status body.

        Raises:
            ShapeMismatchError: Body is not JSON or lacks jobId/jobStatus
        """
        body = parse_json(raw, "job status") if isinstance(raw, (bytes, str)) else raw
        if not isinstance(body, dict):
            raise ShapeMismatchError("job status", f"expected an object, got {json_type_name(body)}")
        try:
            return JobStatusPayload.model_validate(body)
        except ValidationError as e:
            raise ShapeMismatchError("job status", str(e)) from e

    def _decode_output(self, payload: Any, context: DecodeContext) -> JobOutput:
        declared = context.declared
        shape = self._shapes[declared.kind]

        if shape.matches(payload):
            return shape.build(payload, declared)

        if not isinstance(payload, dict):
            raise ShapeMismatchError(
                str(declared.kind), f"payload is a bare {json_type_name(payload)}"
            )

        if declared.param_name and declared.param_name in payload:
            value = payload[declared.param_name]
            if not shape.matches(value):
                raise ShapeMismatchError(
                    str(declared.kind),
                    f"output parameter {declared.param_name!r} holds a {json_type_name(value)}",
                )
            return shape.build(value, declared)

        candidates: List[str] = []
        for name in [*context.known_output_names, VALUE_WRAPPER_KEY]:
            if name == declared.param_name or name in candidates:
                continue
            if name in payload and shape.matches(payload[name]):
                candidates.append(name)

        if not candidates:
            raise ShapeMismatchError(
                str(declared.kind),
                f"no {declared.kind} found at top level or under keys {sorted(payload.keys())}",
            )
        if len(candidates) > 1:
            raise ShapeMismatchError(
                str(declared.kind), f"ambiguous payload: matching outputs under {candidates}"
            )

        name = candidates[0]
        if name == VALUE_WRAPPER_KEY:
            self._check_data_type(payload.get("dataType"), declared)
        return shape.build(payload[name], declared)

    def _check_data_type(self, data_type: Any, declared: DeclaredOutput) -> None:
        if not isinstance(data_type, str) or data_type not in GP_DATA_TYPES:
            return
        kind, scalar_type = GP_DATA_TYPES[data_type]
        if kind != declared.kind or (scalar_type is not None and scalar_type != declared.scalar_type):
            expected = declared.scalar_type or declared.kind
            raise TypeMismatchError(
                expected=str(expected),
                actual=data_type,
                detail="result parameter dataType contradicts the declared output",
            )

    def _data_products(self, context: DecodeContext) -> List[DataProductRef]:
        if context.status is None:
            return []
        return [
            DataProductRef(param_name=name, param_url=ref.paramUrl)
            for name, ref in context.status.results.items()
            if ref.paramUrl and name not in context.fetched_params
        ]
