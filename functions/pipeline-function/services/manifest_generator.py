"""Cluster manifest generation from typed Kubernetes models."""

import re

import yaml
from kubernetes import client

from errors import ParameterError
from models.context import DeploymentContext, validate_label

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "pipeline-function"
REPLICAS = 2
SERVICE_PORT = 80
RESOURCE_REQUESTS = {"memory": "128Mi", "cpu": "100m"}
RESOURCE_LIMITS = {"memory": "512Mi", "cpu": "500m"}

DNS_1123_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
IMAGE_REFERENCE = re.compile(r"^[a-z0-9][a-z0-9._:/-]*$")


def build_manifest(
    namespace: str,
    project_name: str,
    image_reference: str,
    port: int,
    ingress_host: str,
    pull_secret_name: str | None = None,
    ingress_class_name: str | None = None,
) -> list[object]:
    """Build Namespace, Deployment, Service and Ingress objects for a project.

    Raises:
        ParameterError: If an identifier is malformed
    """
    validate_label(namespace, field="namespace")
    validate_label(project_name, field="project_name")
    if not IMAGE_REFERENCE.fullmatch(image_reference):
        msg = f"Invalid image reference: {image_reference!r}"
        raise ParameterError(msg, {"image_reference": image_reference})
    if not DNS_1123_SUBDOMAIN.fullmatch(ingress_host):
        msg = f"Invalid ingress host: {ingress_host!r}"
        raise ParameterError(msg, {"ingress_host": ingress_host})
    if not 1 <= port <= 65535:
        msg = f"Invalid container port: {port}"
        raise ParameterError(msg, {"port": port})

    labels = {"app": project_name, MANAGED_BY_LABEL: MANAGED_BY}

    namespace_obj = client.V1Namespace(
        api_version="v1",
        kind="Namespace",
        metadata=client.V1ObjectMeta(name=namespace, labels={MANAGED_BY_LABEL: MANAGED_BY}),
    )

    container = client.V1Container(
        name=project_name,
        image=image_reference,
        image_pull_policy="Always",
        ports=[client.V1ContainerPort(container_port=port, name="http")],
        readiness_probe=client.V1Probe(
            tcp_socket=client.V1TCPSocketAction(port=port),
            initial_delay_seconds=5,
            period_seconds=5,
            failure_threshold=3,
        ),
        liveness_probe=client.V1Probe(
            tcp_socket=client.V1TCPSocketAction(port=port),
            initial_delay_seconds=30,
            period_seconds=10,
        ),
        resources=client.V1ResourceRequirements(
            requests=dict(RESOURCE_REQUESTS),
            limits=dict(RESOURCE_LIMITS),
        ),
    )
    pull_secrets = (
        [client.V1LocalObjectReference(name=pull_secret_name)] if pull_secret_name else None
    )

    deployment = client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=project_name, namespace=namespace, labels=labels),
        spec=client.V1DeploymentSpec(
            replicas=REPLICAS,
            selector=client.V1LabelSelector(match_labels={"app": project_name}),
            strategy=client.V1DeploymentStrategy(
                type="RollingUpdate",
                rolling_update=client.V1RollingUpdateDeployment(max_unavailable=0, max_surge=1),
            ),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(containers=[container], image_pull_secrets=pull_secrets),
            ),
        ),
    )

    service = client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=project_name, namespace=namespace, labels=labels),
        spec=client.V1ServiceSpec(
            type="ClusterIP",
            selector={"app": project_name},
            ports=[client.V1ServicePort(name="http", port=SERVICE_PORT, target_port=port)],
        ),
    )

    ingress = client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=client.V1ObjectMeta(name=project_name, namespace=namespace, labels=labels),
        spec=client.V1IngressSpec(
            ingress_class_name=ingress_class_name,
            rules=[
                client.V1IngressRule(
                    host=ingress_host,
                    http=client.V1HTTPIngressRuleValue(
                        paths=[
                            client.V1HTTPIngressPath(
                                path="/",
                                path_type="Prefix",
                                backend=client.V1IngressBackend(
                                    service=client.V1IngressServiceBackend(
                                        name=project_name,
                                        port=client.V1ServiceBackendPort(number=SERVICE_PORT),
                                    ),
                                ),
                            ),
                        ],
                    ),
                ),
            ],
        ),
    )

    return [namespace_obj, deployment, service, ingress]


def build_context_manifest(
    context: DeploymentContext,
    pull_secret_name: str | None = None,
    ingress_class_name: str | None = None,
) -> list[object]:
    """Build the manifest objects for a detected deployment context."""
    if context.port is None:
        msg = "Project type must be detected before generating the manifest"
        raise ParameterError(msg, {"project_name": context.project_name})
    return build_manifest(
        namespace=context.namespace,
        project_name=context.project_name,
        image_reference=context.image_reference(),
        port=context.port,
        ingress_host=context.ingress_host,
        pull_secret_name=pull_secret_name,
        ingress_class_name=ingress_class_name,
    )


def to_documents(resources: list[object]) -> list[dict]:
    """Convert Kubernetes model objects to plain dictionaries."""
    api_client = client.ApiClient()
    try:
        return [api_client.sanitize_for_serialization(resource) for resource in resources]
    finally:
        api_client.close()


def render_manifest(resources: list[object]) -> str:
    """Serialize resources as one ``---`` separated YAML document."""
    return yaml.safe_dump_all(to_documents(resources), sort_keys=False, explicit_start=True)
