"""Tests for Azure registry and cluster access."""

from unittest.mock import Mock, patch

import pytest
from azure.core.exceptions import HttpResponseError

from errors import PublishError
from services.cluster_access import ClusterAccess


@pytest.fixture
def acr_client():
    with (
        patch("services.cluster_access.DefaultAzureCredential"),
        patch("services.cluster_access.ContainerServiceClient"),
        patch("services.cluster_access.ContainerRegistryManagementClient") as mock_acr,
    ):
        yield mock_acr.return_value


@pytest.fixture
def cluster(settings, acr_client):
    return ClusterAccess(settings, "test-rg", "test-correlation-id")


class TestRegistryCredentials:
    """Tests for ClusterAccess.registry_credentials."""

    def test_returns_admin_credentials(self, cluster, acr_client):
        acr_client.registries.list_credentials.return_value = Mock(
            username="test-acr", passwords=[Mock(value="secret-1"), Mock(value="secret-2")]
        )

        assert cluster.registry_credentials() == ("test-acr", "secret-1")
        acr_client.registries.list_credentials.assert_called_once_with(
            resource_group_name=cluster.settings.acr_resource_group,
            registry_name="test-acr",
        )

    def test_azure_error_raises_publish_error(self, cluster, acr_client):
        acr_client.registries.list_credentials.side_effect = HttpResponseError(
            message="The resource was not found"
        )

        with pytest.raises(PublishError, match="credentials unavailable") as exc_info:
            cluster.registry_credentials()

        assert exc_info.value.image == "test-acr.azurecr.io"

    def test_missing_admin_password_raises_publish_error(self, cluster, acr_client):
        acr_client.registries.list_credentials.return_value = Mock(username="test-acr", passwords=[])

        with pytest.raises(PublishError, match="no admin passwords"):
            cluster.registry_credentials()
