"""External endpoint discovery by polling the project's Ingress."""

import logging
import time
from collections.abc import Callable

from kubernetes.client.rest import ApiException

from config import Settings
from models.context import DeploymentContext
from services.cluster_access import ClusterAccess
from services.stage_reporter import StageReporter

logger = logging.getLogger(__name__)


class EndpointResolver:
    """Poll the Ingress until a load balancer address is assigned."""

    def __init__(
        self,
        settings: Settings,
        context: DeploymentContext,
        cluster: ClusterAccess,
        reporter: StageReporter,
        correlation_id: str,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the resolver."""
        self.context = context
        self.cluster = cluster
        self.reporter = reporter
        self.correlation_id = correlation_id
        self.interval = settings.endpoint_poll_interval_seconds
        self.max_attempts = settings.endpoint_poll_max_attempts
        self.sleep = sleep

    def resolve(self) -> str | None:
        """Return and report the external URL, or None if no host was assigned in time."""
        networking_v1 = self.cluster.networking_v1()

        for attempt in range(1, self.max_attempts + 1):
            try:
                ingress = networking_v1.read_namespaced_ingress(
                    name=self.context.project_name,
                    namespace=self.context.namespace,
                )
            except ApiException as e:
                logger.debug(
                    f"[{self.correlation_id}] Ingress not readable (attempt {attempt}): {e.status}"
                )
            except Exception as e:
                logger.warning(f"[{self.correlation_id}] Ingress poll failed (attempt {attempt}): {e}")
            else:
                external_url = self._external_url(ingress)
                if external_url:
                    logger.info(
                        f"[{self.correlation_id}] ✓ External URL available: {external_url}",
                        extra={
                            "correlation_id": self.correlation_id,
                            "external_url": external_url,
                            "attempts": attempt,
                        },
                    )
                    self.reporter.report_external_url(external_url)
                    return external_url

            if attempt < self.max_attempts:
                self.sleep(self.interval)

        logger.warning(
            f"[{self.correlation_id}] ⚠️ No external host assigned after {self.max_attempts} attempts",
            extra={"correlation_id": self.correlation_id, "namespace": self.context.namespace},
        )
        return None

    def _external_url(self, ingress) -> str | None:
        """Build the external URL once the load balancer has an address."""
        address = _load_balancer_address(ingress)
        if not address:
            return None

        rules = (ingress.spec.rules if ingress.spec else None) or []
        host = rules[0].host if rules and rules[0].host else address
        return f"http://{host}"


def _load_balancer_address(ingress) -> str | None:
    status = ingress.status
    load_balancer = status.load_balancer if status else None
    for entry in (load_balancer.ingress if load_balancer else None) or []:
        address = (entry.hostname or entry.ip or "").strip()
        if address and address.lower() != "null":
            return address
    return None
