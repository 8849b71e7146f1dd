"""Protocol for output shape strategies.

Each strategy recognizes exactly one enumerated wire shape for one
`OutputKind`. The decoder picks the strategy from the caller's declaration;
it never tries strategies of other kinds to see which one fits.
"""

from typing import Any, List, Optional, Protocol

from geojob.core.models.job import OperationKind
from geojob.core.models.job_status import JobStatusPayload
from geojob.core.models.result import DeclaredOutput, JobOutput, OutputKind


class DecodeContext:
    """Everything the decoder needs besides the payload itself.

    Attributes:
        job_id: Job the payload belongs to
        operation: Operation that produced it
        declared: Caller's declared output
        known_output_names: Catalogued output parameter names for the operation
        status: Final status payload (data products and messages come from it)
        fetched_params: Result parameters whose values are being decoded here;
            every other result parameter with a paramUrl becomes a data product
    """

    def __init__(
        self,
        job_id: str,
        operation: OperationKind,
        declared: DeclaredOutput,
        known_output_names: Optional[List[str]] = None,
        status: Optional[JobStatusPayload] = None,
        fetched_params: Optional[List[str]] = None,
    ):
        self.job_id = job_id
        self.operation = operation
        self.declared = declared
        self.known_output_names = known_output_names or []
        self.status = status
        self.fetched_params = fetched_params or []


class OutputShape(Protocol):
    """One output kind's accepted wire shape.

    - matches: structural test on an already-parsed JSON value
    - build: construct the typed output; raises TypeMismatchError when the
      structure matches but value types contradict the declaration
    """

    kind: OutputKind

    def matches(self, value: Any) -> bool:
        ...

    def build(self, value: Any, declared: DeclaredOutput) -> JobOutput:
        ...
