"""Manifest application and rollout observation with retry and timeout budgets."""

import base64
import json
import logging
import subprocess
import time
from collections.abc import Callable

from kubernetes import client
from kubernetes.client.rest import ApiException

from config import Settings
from errors import ApplyFailedError, RolloutTimeoutError
from models.context import DeploymentContext
from services.cluster_access import ClusterAccess
from services.manifest_generator import MANAGED_BY, MANAGED_BY_LABEL

logger = logging.getLogger(__name__)

# Constants for error codes and limits
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
ROLLOUT_STATUS_GRACE_SECONDS = 20


class RolloutOrchestrator:
    """Apply a manifest and block until the workload is healthy.

    Applying is retried up to ``apply_max_attempts`` times within
    ``apply_timeout_seconds``. Observation runs ``kubectl rollout status``
    up to ``observe_max_attempts`` times within ``observe_timeout_seconds``,
    each attempt bounded by ``rollout_status_timeout_seconds``.
    """

    def __init__(
        self,
        settings: Settings,
        context: DeploymentContext,
        cluster: ClusterAccess,
        correlation_id: str,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the orchestrator."""
        self.settings = settings
        self.context = context
        self.cluster = cluster
        self.correlation_id = correlation_id
        self.clock = clock
        self.sleep = sleep

    def ensure_namespace(self) -> bool:
        """Create the target namespace if it does not exist.

        Returns:
            True if the namespace was created, False if it already existed
        """
        namespace = self.context.namespace
        core_v1 = self.cluster.core_v1()

        try:
            core_v1.read_namespace(name=namespace)
            logger.info(f"[{self.correlation_id}] Namespace {namespace} already exists")
        except ApiException as e:
            if e.status != HTTP_NOT_FOUND:
                raise
        else:
            return False

        namespace_manifest = client.V1Namespace(
            metadata=client.V1ObjectMeta(
                name=namespace,
                labels={MANAGED_BY_LABEL: MANAGED_BY},
            ),
        )
        try:
            core_v1.create_namespace(body=namespace_manifest)
        except ApiException as e:
            if e.status != HTTP_CONFLICT:
                raise
            return False

        logger.info(f"[{self.correlation_id}] ✓ Namespace {namespace} created")
        return True

    def ensure_pull_secret(self, username: str, password: str) -> None:
        """Create or replace the registry pull secret in the target namespace."""
        namespace = self.context.namespace
        secret_name = self.settings.registry_pull_secret_name
        auth = base64.b64encode(f"{username}:{password}".encode()).decode()
        docker_config = {
            "auths": {
                self.context.registry: {
                    "username": username,
                    "password": password,
                    "auth": auth,
                },
            },
        }
        secret = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=secret_name,
                namespace=namespace,
                labels={MANAGED_BY_LABEL: MANAGED_BY},
            ),
            type="kubernetes.io/dockerconfigjson",
            data={
                ".dockerconfigjson": base64.b64encode(json.dumps(docker_config).encode()).decode(),
            },
        )

        core_v1 = self.cluster.core_v1()
        try:
            core_v1.create_namespaced_secret(namespace=namespace, body=secret)
            logger.info(f"[{self.correlation_id}] ✓ Registry pull secret {secret_name} created")
        except ApiException as e:
            if e.status != HTTP_CONFLICT:
                raise
            core_v1.replace_namespaced_secret(name=secret_name, namespace=namespace, body=secret)
            logger.info(f"[{self.correlation_id}] ✓ Registry pull secret {secret_name} updated")

    def apply(self, manifest: str) -> list[str]:
        """Apply ``manifest`` with ``kubectl apply``, retrying within the apply budget.

        Returns:
            Resource names reported by kubectl

        Raises:
            ApplyFailedError: If every attempt fails or the ceiling is reached
        """
        max_attempts = self.settings.apply_max_attempts
        deadline = self.clock() + self.settings.apply_timeout_seconds
        errors: list[str] = []

        for attempt in range(1, max_attempts + 1):
            remaining = deadline - self.clock()
            if remaining <= 0:
                errors.append("apply ceiling reached")
                break

            kubectl_cmd = [
                "kubectl", "apply",
                "--kubeconfig", self.cluster.kubeconfig_path,
                "-f", "-",
            ]
            logger.info(
                f"[{self.correlation_id}] Applying manifest (attempt {attempt}/{max_attempts})",
                extra={
                    "correlation_id": self.correlation_id,
                    "namespace": self.context.namespace,
                    "attempt": attempt,
                    "remaining_seconds": round(remaining, 1),
                },
            )
            try:
                kubectl_result = subprocess.run(
                    kubectl_cmd,
                    input=manifest,
                    capture_output=True,
                    text=True,
                    check=True,
                    timeout=remaining,
                )
            except subprocess.CalledProcessError as e:
                errors.append(f"attempt {attempt}: {(e.stderr or '').strip()}")
                logger.warning(
                    f"[{self.correlation_id}] ⚠️ kubectl apply failed with exit code {e.returncode}",
                    extra={
                        "correlation_id": self.correlation_id,
                        "stdout": e.stdout,
                        "stderr": e.stderr,
                    },
                )
            except subprocess.TimeoutExpired as e:
                errors.append(f"attempt {attempt}: timed out after {e.timeout:.0f}s")
                logger.warning(f"[{self.correlation_id}] ⚠️ kubectl apply timed out")
            else:
                return self._parse_applied_resources(kubectl_result.stdout)

            if attempt < max_attempts and self.settings.apply_retry_delay_seconds > 0:
                self.sleep(min(self.settings.apply_retry_delay_seconds, max(deadline - self.clock(), 0)))

        msg = f"Manifest apply failed for namespace {self.context.namespace}: {'; '.join(errors)}"
        raise ApplyFailedError(msg, {"namespace": self.context.namespace, "attempts": errors})

    def observe(self) -> None:
        """Block until the workload rollout completes.

        Raises:
            RolloutTimeoutError: If the rollout is not healthy within the observation budget
        """
        max_attempts = self.settings.observe_max_attempts
        deadline = self.clock() + self.settings.observe_timeout_seconds
        deployment_name = self.context.project_name
        errors: list[str] = []

        for attempt in range(1, max_attempts + 1):
            remaining = deadline - self.clock()
            if remaining <= 0:
                errors.append("observation ceiling reached")
                break

            status_timeout = int(min(self.settings.rollout_status_timeout_seconds, remaining))
            rollout_cmd = [
                "kubectl", "rollout", "status",
                f"deployment/{deployment_name}",
                "--namespace", self.context.namespace,
                "--kubeconfig", self.cluster.kubeconfig_path,
                f"--timeout={status_timeout}s",
            ]
            logger.info(
                f"[{self.correlation_id}] Waiting for deployment/{deployment_name} rollout "
                f"(attempt {attempt}/{max_attempts})..."
            )
            try:
                result = subprocess.run(
                    rollout_cmd,
                    capture_output=True,
                    text=True,
                    timeout=min(status_timeout + ROLLOUT_STATUS_GRACE_SECONDS, remaining),
                )
            except subprocess.TimeoutExpired:
                errors.append(f"attempt {attempt}: rollout status check timed out")
                logger.warning(
                    f"[{self.correlation_id}] ⚠️ {deployment_name} rollout status check timed out"
                )
                continue

            if result.returncode == 0:
                logger.info(f"[{self.correlation_id}] ✅ {deployment_name} deployment ready")
                return

            errors.append(f"attempt {attempt}: {result.stderr.strip()}")
            logger.warning(
                f"[{self.correlation_id}] ⚠️ {deployment_name} rollout status check failed: "
                f"{result.stderr}"
            )

        msg = f"Rollout of deployment/{deployment_name} did not become healthy: {'; '.join(errors)}"
        raise RolloutTimeoutError(msg, {"namespace": self.context.namespace, "attempts": errors})

    def _parse_applied_resources(self, stdout: str) -> list[str]:
        """Extract ``kind/name`` entries from kubectl apply output."""
        deployed_resources = []
        for line in stdout.strip().split("\n"):
            # kubectl apply output format: "resource/name created|configured|unchanged"
            if " created" in line or " configured" in line or " unchanged" in line:
                resource_info = line.split()[0]
                deployed_resources.append(resource_info)
                logger.info(f"[{self.correlation_id}] ✓ {line.strip()}")
        return deployed_resources
