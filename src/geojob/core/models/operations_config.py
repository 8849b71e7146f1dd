from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator

from geojob.core.models.job import OperationKind
from geojob.core.models.result import DeclaredOutput, OutputKind


class ApiKeyAuthConfig(BaseModel):
    type: Literal["ApiKey"]
    key: SecretStr


class BearerTokenAuthConfig(BaseModel):
    type: Literal["BearerToken"]
    token: SecretStr


class NoAuthConfig(BaseModel):
    type: Literal["NoAuth"] = "NoAuth"


AuthConfig = ApiKeyAuthConfig | BearerTokenAuthConfig | NoAuthConfig


class OperationConfig(BaseModel):
    """Configuration for one GP task the client can submit jobs to"""

    kind: OperationKind = Field(description="Operation this task implements")
    task_url: str = Field(
        alias="task-url",
        description=(
            "URL of the GP task, e.g. "
            "https://host/arcgis/rest/services/Tools/Elevation/GPServer/Viewshed. "
            "submitJob and jobs/<id> are appended to it."
        ),
    )
    output: DeclaredOutput | None = Field(
        default=None,
        description="Output decoded when the caller does not declare one",
    )
    output_params: list[str] = Field(
        default_factory=list,
        alias="output-params",
        description=(
            "Output parameter names the task is known to use. The decoder "
            "looks for nested outputs under these names."
        ),
    )
    authentication: AuthConfig | None = Field(
        default=None,
        description="Credential override for this task (falls back to the client default)",
    )

    model_config = {"populate_by_name": True}

    @field_validator("task_url", mode="before")
    def strip_trailing_slash(cls, value: str) -> str:
        return str(value).rstrip("/")


class OperationsConfig(BaseModel):
    """Root configuration containing all operations"""

    operations: list[OperationConfig] = Field(
        description="List of operation configurations"
    )


def default_operations(elevation_service_url: str) -> OperationsConfig:
    """Built-in catalog for the asynchronous elevation tasks."""
    base = elevation_service_url.rstrip("/")
    return OperationsConfig(
        operations=[
            OperationConfig(
                kind=OperationKind.summarize_elevation,
                task_url=f"{base}/SummarizeElevation",
                output=DeclaredOutput(kind=OutputKind.feature_collection, param_name="OutputSummary"),
                output_params=["OutputSummary"],
            ),
            OperationConfig(
                kind=OperationKind.viewshed,
                task_url=f"{base}/Viewshed",
                output=DeclaredOutput(kind=OutputKind.feature_collection, param_name="OutputViewshed"),
                output_params=["OutputViewshed"],
            ),
            OperationConfig(
                kind=OperationKind.profile,
                task_url=f"{base}/Profile",
                output=DeclaredOutput(kind=OutputKind.feature_collection, param_name="OutputProfile"),
                output_params=["OutputProfile"],
            ),
        ]
    )
