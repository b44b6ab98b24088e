"""Shared fixtures for pipeline function tests."""

from unittest.mock import MagicMock

import pytest

from config import Settings
from models.context import DeploymentContext
from models.project import ProjectType

TEST_SUBSCRIPTION_ID = "12345678-1234-1234-1234-123456789012"
TEST_STATIC_IP = "20.30.40.50"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with fast retry budgets and a temporary workspace."""
    return Settings(
        azure_subscription_id=TEST_SUBSCRIPTION_ID,
        acr_login_server="test-acr.azurecr.io",
        acr_name="test-acr",
        tracking_api_url="http://tracking.test",
        workspace_root=str(tmp_path / "workspace"),
        ingress_static_ip=TEST_STATIC_IP,
        apply_retry_delay_seconds=0,
        endpoint_poll_interval_seconds=0,
    )


@pytest.fixture
def context() -> DeploymentContext:
    """Resolved context for the ``app`` project, build 42."""
    return DeploymentContext(
        source_url="https://git.example/acme/app",
        project_name="app",
        deployment_id="dep-1",
        image_tag="42",
        registry="test-acr.azurecr.io",
        cluster_resource_group="test-rg",
        static_ip=TEST_STATIC_IP,
    )


@pytest.fixture
def detected_context(context) -> DeploymentContext:
    """Context after detecting a Node project."""
    return context.with_detection(ProjectType.NODE)


@pytest.fixture
def mock_cluster() -> MagicMock:
    """Cluster access double with a fixed kubeconfig path."""
    cluster = MagicMock()
    cluster.kubeconfig_path = "/tmp/test-kubeconfig.yaml"
    return cluster
