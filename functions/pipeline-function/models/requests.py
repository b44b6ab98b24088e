"""Request and response models for pipeline runs."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.stages import RolloutOutcome


class RepositoryRef(BaseModel):
    """Repository section of a push webhook payload."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    clone_url: str | None = None
    html_url: str | None = None


class PipelineRequest(BaseModel):
    """Trigger parameters for a pipeline run."""

    model_config = ConfigDict(extra="ignore")

    source_url: str | None = Field(None, description="Git repository URL to deploy")
    project_name: str | None = Field(None, description="Project identifier")
    deployment_id: str | None = Field(
        None, description="Tracking backend deployment id used to correlate callbacks"
    )
    resource_group: str | None = Field(None, description="AKS cluster resource group")
    static_ip: str | None = Field(None, description="Static ingress IP for the nip.io host")
    repository: RepositoryRef | None = Field(None, description="Push webhook repository")

    @field_validator(
        "source_url",
        "project_name",
        "deployment_id",
        "resource_group",
        "static_ip",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        """Treat blank strings as missing values; numeric ids become strings."""
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class PipelineResult(BaseModel):
    """Response model for a pipeline run."""

    success: bool
    message: str
    project_name: str | None = None
    namespace: str | None = None
    deployment_id: str | None = None
    build_id: str | None = None
    project_type: str | None = None
    branch: str | None = None
    commit_sha: str | None = None
    image_tags: list[str] = Field(default_factory=list)
    external_url: str | None = None
    rollout_outcome: RolloutOutcome | None = None
    failed_stage: str | None = None
    error_type: str | None = None
    error_details: str | None = None
    diagnostics: dict[str, Any] = Field(default_factory=dict)
