"""Configuration settings for the pipeline function."""

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Azure subscription and identity
    azure_subscription_id: str  # No default - must be provided via environment
    azure_client_id: str | None = None

    # Azure Container Registry settings
    acr_login_server: str = "pipelineacr.azurecr.io"
    acr_name: str = "pipelineacr"
    acr_resource_group: str = "pipeline-rg"
    registry_pull_secret_name: str = "acr-pull-secret"

    # Azure Kubernetes Service settings
    aks_cluster_name: str = "pipeline-aks"
    aks_resource_group: str = "pipeline-rg"

    # Ingress settings
    ingress_static_ip: str = "23.98.101.23"
    ingress_class_name: str | None = "nginx"

    # Tracking backend settings
    tracking_api_url: str = "http://localhost:8080"
    tracking_api_token: str | None = None
    callback_timeout_seconds: float = 10.0

    # Source settings
    source_branches: list[str] = ["main", "master", "develop"]
    default_source_url: str | None = None
    workspace_root: str = "/tmp/pipeline-workspace"

    # Timeouts and retry budgets
    checkout_timeout_seconds: int = 300
    build_timeout_seconds: int = 1200
    push_timeout_seconds: int = 900
    apply_timeout_seconds: int = 900
    apply_max_attempts: int = 2
    apply_retry_delay_seconds: float = 10.0
    observe_timeout_seconds: int = 600
    observe_max_attempts: int = 2
    rollout_status_timeout_seconds: int = 300

    # Endpoint discovery
    endpoint_poll_interval_seconds: float = 10.0
    endpoint_poll_max_attempts: int = 30

    # Poll trigger
    poll_source_url: str | None = None
    poll_project_name: str | None = None

    @property
    def tracking_base_url(self) -> str:
        """Tracking backend base URL without a trailing slash."""
        return self.tracking_api_url.rstrip("/")
