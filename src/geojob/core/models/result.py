"""Result envelope: the normalized outcome of a successful job.

The output is a tagged union discriminated on `kind`. Which variant is built
is decided by the caller's `DeclaredOutput`, never by the payload alone.
"""

from enum import StrEnum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from geojob.core.models.job import JobMessage, OperationKind


class OutputKind(StrEnum):
    feature_collection = "feature_collection"
    raster = "raster"
    scalar = "scalar"
    named_outputs = "named_outputs"


class ScalarType(StrEnum):
    double = "double"
    long = "long"
    string = "string"
    boolean = "boolean"


class DeclaredOutput(BaseModel):
    """What the caller expects a job to produce.

    Attributes:
        kind: Output shape to decode into
        param_name: GP output parameter carrying the value (e.g. "OutputSummary")
        scalar_type: Required for scalar outputs; no implicit coercion happens
    """

    kind: OutputKind
    param_name: Optional[str] = None
    scalar_type: Optional[ScalarType] = None

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="after")
    def _scalar_needs_type(self) -> "DeclaredOutput":
        if self.kind == OutputKind.scalar and self.scalar_type is None:
            raise ValueError("scalar outputs must declare scalar_type")
        if self.kind != OutputKind.scalar and self.scalar_type is not None:
            raise ValueError("scalar_type is only valid for scalar outputs")
        return self


class FeatureCollectionOutput(BaseModel):
    kind: Literal["feature_collection"] = "feature_collection"
    features: List[Dict[str, Any]]
    geometry_type: Optional[str] = None
    spatial_reference: Optional[Dict[str, Any]] = None
    fields: List[Dict[str, Any]] = Field(default_factory=list)


class RasterOutput(BaseModel):
    kind: Literal["raster"] = "raster"
    url: str
    format: Optional[str] = None


class ScalarOutput(BaseModel):
    kind: Literal["scalar"] = "scalar"
    scalar_type: ScalarType
    value: Union[bool, int, float, str]


class NamedOutputsOutput(BaseModel):
    kind: Literal["named_outputs"] = "named_outputs"
    outputs: Dict[str, Any] = Field(default_factory=dict)


JobOutput = Annotated[
    Union[FeatureCollectionOutput, RasterOutput, ScalarOutput, NamedOutputsOutput],
    Field(discriminator="kind"),
]


class DataProductRef(BaseModel):
    """Output the caller has to fetch separately (relative to the job URL)."""

    param_name: str
    param_url: str


class ResultEnvelope(BaseModel):
    job_id: str
    operation: OperationKind
    output: JobOutput
    data_products: List[DataProductRef] = Field(default_factory=list)
    messages: List[JobMessage] = Field(default_factory=list)
