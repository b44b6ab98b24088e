"""Stage, checkout and rollout result models."""

from enum import Enum

from pydantic import BaseModel, Field


class StageStatus(str, Enum):
    """Status values reported for a pipeline stage."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class StageName(str, Enum):
    """Pipeline stages in execution order."""

    CHECKOUT = "checkout"
    DETECT = "detect"
    DOCKERFILE = "dockerfile"
    BUILD = "build"
    PUSH = "push"
    MANIFEST = "manifest"
    DEPLOY = "deploy"
    VERIFY = "verify"
    ENDPOINT = "endpoint"


class StageRecord(BaseModel):
    """Stage status callback body."""

    deployment_id: str
    stage_name: str
    status: StageStatus


class RolloutOutcome(str, Enum):
    """Terminal result of applying and observing a rollout."""

    HEALTHY = "healthy"
    TIMED_OUT = "timed-out"
    APPLY_FAILED = "apply-failed"


class CheckoutResult(BaseModel):
    """Outcome of a successful source checkout."""

    branch: str
    commit_sha: str
    author: str | None = None
    failed_branches: list[str] = Field(default_factory=list)
