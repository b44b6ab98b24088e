"""Best-effort failure diagnostics for a target namespace."""

import logging
import subprocess
from typing import Any

from kubernetes.client.rest import ApiException

from services.cluster_access import ClusterAccess

logger = logging.getLogger(__name__)

# Constants for error codes and limits
HTTP_NOT_FOUND = 404
MAX_EVENTS = 20
DESCRIBE_TIMEOUT_SECONDS = 60


def collect_diagnostics(
    cluster: ClusterAccess,
    namespace: str,
    deployment_name: str,
    correlation_id: str,
) -> dict[str, Any]:
    """Collect workload description, recent events and pods for operator triage.

    Never raises; sections that cannot be collected are left empty.
    """
    logger.info(f"[{correlation_id}] Collecting failure diagnostics for namespace {namespace}")

    diagnostics: dict[str, Any] = {
        "deployment_description": _describe_deployment(
            cluster, namespace, deployment_name, correlation_id
        ),
        "events": [],
        "pods": [],
    }

    try:
        core_v1 = cluster.core_v1()
    except Exception as e:
        logger.warning(f"[{correlation_id}] Could not create Kubernetes client: {e}")
        return diagnostics

    try:
        events = core_v1.list_namespaced_event(namespace=namespace)
        recent = sorted(events.items, key=_event_time, reverse=True)[:MAX_EVENTS]
        diagnostics["events"] = [
            {
                "type": event.type,
                "reason": event.reason,
                "object": (
                    f"{event.involved_object.kind}/{event.involved_object.name}"
                    if event.involved_object else None
                ),
                "message": event.message,
                "count": event.count,
            }
            for event in recent
        ]
    except ApiException as e:
        if e.status != HTTP_NOT_FOUND:
            logger.warning(f"[{correlation_id}] Could not list events in {namespace}: {e.reason}")
    except Exception as e:
        logger.warning(f"[{correlation_id}] Could not list events in {namespace}: {e}")

    try:
        pods = core_v1.list_namespaced_pod(namespace=namespace)
        for pod in pods.items:
            container_statuses = (pod.status.container_statuses or []) if pod.status else []
            diagnostics["pods"].append(
                {
                    "name": pod.metadata.name,
                    "phase": pod.status.phase if pod.status else None,
                    "ready": bool(container_statuses) and all(cs.ready for cs in container_statuses),
                    "restarts": sum(cs.restart_count or 0 for cs in container_statuses),
                }
            )
    except ApiException as e:
        if e.status != HTTP_NOT_FOUND:
            logger.warning(f"[{correlation_id}] Could not list pods in {namespace}: {e.reason}")
    except Exception as e:
        logger.warning(f"[{correlation_id}] Could not list pods in {namespace}: {e}")

    for event in diagnostics["events"]:
        if event["type"] == "Warning":
            logger.warning(f"[{correlation_id}] Event {event['object']}: {event['reason']} - {event['message']}")
    for pod in diagnostics["pods"]:
        logger.info(
            f"[{correlation_id}] Pod {pod['name']} status: {pod['phase']} "
            f"(ready={pod['ready']}, restarts={pod['restarts']})"
        )

    return diagnostics


def _describe_deployment(
    cluster: ClusterAccess,
    namespace: str,
    deployment_name: str,
    correlation_id: str,
) -> str | None:
    try:
        result = subprocess.run(
            [
                "kubectl", "describe", f"deployment/{deployment_name}",
                "--namespace", namespace,
                "--kubeconfig", cluster.kubeconfig_path,
            ],
            capture_output=True,
            text=True,
            timeout=DESCRIBE_TIMEOUT_SECONDS,
        )
    except Exception as e:
        logger.warning(f"[{correlation_id}] Could not describe deployment/{deployment_name}: {e}")
        return None

    if result.returncode != 0:
        logger.warning(
            f"[{correlation_id}] Could not describe deployment/{deployment_name}: {result.stderr.strip()}"
        )
        return None
    return result.stdout


def _event_time(event) -> float:
    timestamp = event.last_timestamp or event.event_time or (
        event.metadata.creation_timestamp if event.metadata else None
    )
    return timestamp.timestamp() if timestamp else 0.0
