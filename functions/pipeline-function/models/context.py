"""Deployment context resolved once per pipeline run."""

import ipaddress
import re
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict

from config import Settings
from errors import ParameterError
from models.project import ProjectType
from models.requests import PipelineRequest

# Constants
DNS_1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
MAX_LABEL_LENGTH = 63
NAMESPACE_SUFFIX = "-dev"
MAX_PROJECT_NAME_LENGTH = MAX_LABEL_LENGTH - len(NAMESPACE_SUFFIX)
LATEST_TAG = "latest"


class DeploymentContext(BaseModel):
    """Immutable parameters shared by every pipeline stage."""

    model_config = ConfigDict(frozen=True)

    source_url: str
    project_name: str
    deployment_id: str | None = None
    image_tag: str
    registry: str
    cluster_resource_group: str
    static_ip: str
    project_type: ProjectType | None = None
    port: int | None = None

    @property
    def namespace(self) -> str:
        """Kubernetes namespace for the project."""
        return f"{self.project_name}{NAMESPACE_SUFFIX}"

    @property
    def image_repository(self) -> str:
        """Registry repository for the project image."""
        return f"{self.registry}/{self.project_name}"

    def image_reference(self, tag: str | None = None) -> str:
        """Full image reference for ``tag`` (the run's build id by default)."""
        return f"{self.image_repository}:{tag or self.image_tag}"

    @property
    def image_references(self) -> list[str]:
        """Both published references: the build id tag and ``latest``."""
        return [self.image_reference(), self.image_reference(LATEST_TAG)]

    @property
    def ingress_host(self) -> str:
        """Public nip.io hostname bound to the static ingress IP."""
        return f"{self.project_name}.{self.static_ip}.nip.io"

    def with_build_id(self, build_id: str) -> "DeploymentContext":
        """Return a copy tagged with the assigned build number."""
        return self.model_copy(update={"image_tag": build_id})

    def with_detection(self, project_type: ProjectType, port: int | None = None) -> "DeploymentContext":
        """Return a copy carrying the detected project type and port."""
        return self.model_copy(
            update={
                "project_type": project_type,
                "port": port if port is not None else project_type.default_port,
            }
        )


def derive_project_name(source_url: str) -> str:
    """Derive a DNS-1123 project name from the last segment of a repository URL."""
    path = urlparse(source_url).path if "://" in source_url else source_url
    tail = re.split(r"[/:]", path.rstrip("/"))[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return sanitize_name(tail)


def sanitize_name(name: str) -> str:
    """Lowercase ``name`` and replace characters not allowed in a DNS label."""
    sanitized = re.sub(r"[^a-z0-9-]+", "-", name.lower())
    sanitized = re.sub(r"-{2,}", "-", sanitized)
    return sanitized.strip("-")


def resolve_source_url(request: PipelineRequest, settings: Settings) -> str | None:
    """Resolve the source URL from the request, the webhook payload or settings."""
    candidates = [request.source_url]
    if request.repository:
        candidates.extend([request.repository.clone_url, request.repository.html_url])
    candidates.append(settings.default_source_url)

    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def resolve_identity(request: PipelineRequest, settings: Settings) -> tuple[str, str]:
    """Resolve the source URL and project name of a run.

    Raises:
        ParameterError: If either value cannot be resolved
    """
    source_url = resolve_source_url(request, settings)
    if not source_url:
        msg = "source_url is required and could not be resolved from the request or settings"
        raise ParameterError(msg)
    if source_url.startswith("-"):
        msg = f"Invalid source_url: {source_url!r}"
        raise ParameterError(msg, {"source_url": source_url})

    if request.project_name:
        project_name = sanitize_name(request.project_name)
    else:
        project_name = derive_project_name(source_url)
    if not project_name:
        msg = f"Could not resolve a project name from {source_url!r}"
        raise ParameterError(msg, {"source_url": source_url})
    validate_label(project_name, max_length=MAX_PROJECT_NAME_LENGTH, field="project_name")
    return source_url, project_name


def resolve_context(
    request: PipelineRequest,
    settings: Settings,
    build_id: str,
) -> DeploymentContext:
    """Resolve trigger parameters into a deployment context.

    Args:
        request: Raw trigger parameters
        settings: Application settings supplying defaults
        build_id: Sequential build number used as the image tag

    Returns:
        The deployment context for this run

    Raises:
        ParameterError: If the source URL, project name or static IP cannot be resolved
    """
    source_url, project_name = resolve_identity(request, settings)

    static_ip = request.static_ip or settings.ingress_static_ip
    try:
        ipaddress.IPv4Address(static_ip)
    except ValueError as e:
        msg = f"static_ip must be an IPv4 address: {static_ip!r}"
        raise ParameterError(msg, {"static_ip": static_ip}) from e

    return DeploymentContext(
        source_url=source_url,
        project_name=project_name,
        deployment_id=request.deployment_id,
        image_tag=build_id,
        registry=settings.acr_login_server,
        cluster_resource_group=request.resource_group or settings.aks_resource_group,
        static_ip=static_ip,
    )


def validate_label(value: str, max_length: int = MAX_LABEL_LENGTH, field: str = "name") -> str:
    """Validate ``value`` is a DNS-1123 label no longer than ``max_length``.

    Raises:
        ParameterError: If the value is not a valid label
    """
    if len(value) > max_length:
        msg = f"{field} cannot exceed {max_length} characters"
        raise ParameterError(msg, {field: value})
    if not DNS_1123_LABEL.fullmatch(value):
        msg = (
            f"{field} must be a valid DNS-1123 label "
            "(lowercase alphanumeric characters or hyphens, "
            "cannot start or end with hyphen)"
        )
        raise ParameterError(msg, {field: value})
    return value
