"""Workflow machines and the actor tables that drive them."""

from spectacular.workflows.actors import (
    api_actors,
    ideation_actors,
    project_actors,
    schema_actors,
)
from spectacular.workflows.api_codegen import (
    ApiCodegenInput,
    ApiCodegenOutput,
    api_codegen_machine,
)
from spectacular.workflows.common import CheckRequest, FixRequest, SaveRequest
from spectacular.workflows.fixing import (
    ArtifactInvalidError,
    FixAttempt,
    filter_artifact_errors,
    final_artifact,
)
from spectacular.workflows.ideation import (
    IdeationInput,
    IdeationOutput,
    ideation_machine,
    spec_path,
)
from spectacular.workflows.project import (
    ProjectCodegenInput,
    ProjectCodegenOutput,
    project_codegen_machine,
)
from spectacular.workflows.schema_codegen import (
    SchemaCodegenInput,
    SchemaCodegenOutput,
    schema_codegen_machine,
)

__all__ = [
    # Machines
    "ideation_machine",
    "schema_codegen_machine",
    "api_codegen_machine",
    "project_codegen_machine",
    # Inputs and outputs
    "IdeationInput",
    "IdeationOutput",
    "SchemaCodegenInput",
    "SchemaCodegenOutput",
    "ApiCodegenInput",
    "ApiCodegenOutput",
    "ProjectCodegenInput",
    "ProjectCodegenOutput",
    # Actor tables
    "ideation_actors",
    "schema_actors",
    "api_actors",
    "project_actors",
    # Fixing
    "FixAttempt",
    "ArtifactInvalidError",
    "filter_artifact_errors",
    "final_artifact",
    # Requests
    "SaveRequest",
    "CheckRequest",
    "FixRequest",
    "spec_path",
]
