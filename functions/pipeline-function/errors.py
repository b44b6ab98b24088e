"""Error types raised by the deployment pipeline."""

from typing import Any


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ParameterError(PipelineError):
    """Trigger parameters are missing or cannot be resolved."""


class CheckoutError(PipelineError):
    """Every candidate branch failed to check out."""

    def __init__(self, source_url: str, branches: list[str]) -> None:
        super().__init__(
            f"Could not check out {source_url} from any of: {', '.join(branches)}",
            {"source_url": source_url, "branches": branches},
        )
        self.branches = branches


class BuildError(PipelineError):
    """Container image build failed."""


class PublishError(PipelineError):
    """Pushing an image tag to the registry failed."""

    def __init__(self, image: str, message: str) -> None:
        super().__init__(f"Failed to push {image}: {message}", {"image": image})
        self.image = image


class ApplyFailedError(PipelineError):
    """Manifest application did not succeed within its attempt budget."""


class RolloutTimeoutError(PipelineError):
    """Workload did not become healthy within the observation budget."""


class CallbackError(PipelineError):
    """Tracking backend call failed. Always logged and swallowed."""


class ConcurrentRunError(PipelineError):
    """A pipeline run for the same project is already active."""

    def __init__(self, project_name: str) -> None:
        super().__init__(
            f"A pipeline run for project '{project_name}' is already in progress",
            {"project_name": project_name},
        )
        self.project_name = project_name
