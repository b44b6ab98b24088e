"""Azure credentials, kubeconfig and Kubernetes API client access."""

import logging
import tempfile
from pathlib import Path

from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential
from azure.mgmt.containerregistry import ContainerRegistryManagementClient
from azure.mgmt.containerservice import ContainerServiceClient
from kubernetes import client, config

from config import Settings
from errors import PublishError

logger = logging.getLogger(__name__)


class ClusterAccess:
    """Lazily fetched AKS kubeconfig, ACR credentials and Kubernetes client."""

    def __init__(self, settings: Settings, resource_group: str, correlation_id: str) -> None:
        """Initialize Azure management clients."""
        self.settings = settings
        self.resource_group = resource_group
        self.correlation_id = correlation_id

        try:
            self.credential = DefaultAzureCredential(
                managed_identity_client_id=settings.azure_client_id,
            )
            self.acr_client = ContainerRegistryManagementClient(
                credential=self.credential,
                subscription_id=settings.azure_subscription_id,
            )
            self.aks_client = ContainerServiceClient(
                credential=self.credential,
                subscription_id=settings.azure_subscription_id,
            )
        except Exception as e:
            logger.error(f"[{correlation_id}] Failed to initialize Azure clients: {e!s}")
            logger.error(
                f"[{correlation_id}] Settings used: ACR={settings.acr_name}, "
                f"AKS={settings.aks_cluster_name}, RG={resource_group}"
            )
            raise

        self._kubeconfig_path: str | None = None
        self._api_client: client.ApiClient | None = None

    def registry_credentials(self) -> tuple[str, str]:
        """Return the ACR admin username and password.

        Raises:
            PublishError: If the credentials cannot be fetched
        """
        registry = self.settings.acr_login_server
        try:
            credentials = self.acr_client.registries.list_credentials(
                resource_group_name=self.settings.acr_resource_group,
                registry_name=self.settings.acr_name,
            )
        except AzureError as e:
            logger.error(f"[{self.correlation_id}] Failed to fetch credentials for {self.settings.acr_name}: {e!s}")
            raise PublishError(registry, f"registry credentials unavailable: {e}") from e

        if not credentials.passwords:
            raise PublishError(registry, f"registry {self.settings.acr_name} returned no admin passwords")
        return credentials.username, credentials.passwords[0].value

    @property
    def kubeconfig_path(self) -> str:
        """Path of a temporary kubeconfig for the AKS cluster."""
        if self._kubeconfig_path is None:
            self._kubeconfig_path = self._write_kubeconfig_to_temp()
        return self._kubeconfig_path

    @property
    def api_client(self) -> client.ApiClient:
        """Kubernetes API client bound to the cluster kubeconfig."""
        if self._api_client is None:
            self._api_client = config.new_client_from_config(config_file=self.kubeconfig_path)
            logger.info(f"[{self.correlation_id}] ✓ Kubernetes client configured successfully")
        return self._api_client

    def core_v1(self) -> client.CoreV1Api:
        return client.CoreV1Api(self.api_client)

    def networking_v1(self) -> client.NetworkingV1Api:
        return client.NetworkingV1Api(self.api_client)

    def close(self) -> None:
        """Close the API client and remove the temporary kubeconfig."""
        if self._api_client is not None:
            self._api_client.close()
            self._api_client = None

        if self._kubeconfig_path and Path(self._kubeconfig_path).exists():
            try:
                Path(self._kubeconfig_path).unlink()
                logger.debug(f"[{self.correlation_id}] Cleaned up temporary kubeconfig file")
            except OSError as cleanup_err:
                logger.warning(f"[{self.correlation_id}] Failed to cleanup kubeconfig: {cleanup_err}")
        self._kubeconfig_path = None

    def _write_kubeconfig_to_temp(self) -> str:
        """Write the AKS user kubeconfig to a temporary file and return the path."""
        logger.debug(f"[{self.correlation_id}] Writing kubeconfig to temporary file")

        aks_credential = self.aks_client.managed_clusters.list_cluster_user_credentials(
            resource_group_name=self.resource_group,
            resource_name=self.settings.aks_cluster_name,
        )

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            kubeconfig_content = aks_credential.kubeconfigs[0].value.decode("utf-8")
            f.write(kubeconfig_content)
            kubeconfig_path = f.name

        logger.debug(f"[{self.correlation_id}] Wrote kubeconfig to: {kubeconfig_path}")
        return kubeconfig_path
