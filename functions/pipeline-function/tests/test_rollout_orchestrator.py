"""Tests for manifest application and rollout observation."""

import base64
import json
import subprocess
from unittest.mock import MagicMock, Mock, patch

import pytest
from kubernetes.client.rest import ApiException

from errors import ApplyFailedError, RolloutTimeoutError
from services.rollout_orchestrator import RolloutOrchestrator

APPLY_OUTPUT = (
    "namespace/app-dev unchanged\n"
    "deployment.apps/app configured\n"
    "service/app created\n"
    "ingress.networking.k8s.io/app created\n"
)


class FakeClock:
    """Monotonic clock advanced explicitly by the test."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def orchestrator(settings, detected_context, mock_cluster, clock):
    return RolloutOrchestrator(
        settings,
        detected_context,
        mock_cluster,
        "test-correlation-id",
        clock=clock,
        sleep=clock.sleep,
    )


class TestApply:
    """Tests for RolloutOrchestrator.apply."""

    def test_apply_success_first_attempt(self, orchestrator):
        with patch(
            "services.rollout_orchestrator.subprocess.run",
            return_value=Mock(returncode=0, stdout=APPLY_OUTPUT, stderr=""),
        ) as mock_run:
            resources = orchestrator.apply("---\nkind: Namespace\n")

        assert resources == [
            "namespace/app-dev",
            "deployment.apps/app",
            "service/app",
            "ingress.networking.k8s.io/app",
        ]
        cmd = mock_run.call_args.args[0]
        assert cmd[:2] == ["kubectl", "apply"]
        assert "/tmp/test-kubeconfig.yaml" in cmd
        assert mock_run.call_args.kwargs["input"] == "---\nkind: Namespace\n"

    def test_apply_retries_once(self, orchestrator):
        failure = subprocess.CalledProcessError(1, ["kubectl"], stderr="connection refused")
        success = Mock(returncode=0, stdout=APPLY_OUTPUT, stderr="")

        with patch(
            "services.rollout_orchestrator.subprocess.run",
            side_effect=[failure, success],
        ) as mock_run:
            orchestrator.apply("manifest")

        assert mock_run.call_count == 2

    def test_apply_fails_after_two_attempts(self, orchestrator):
        failure = subprocess.CalledProcessError(1, ["kubectl"], stderr="connection refused")

        with (
            patch("services.rollout_orchestrator.subprocess.run", side_effect=failure) as mock_run,
            pytest.raises(ApplyFailedError, match="connection refused"),
        ):
            orchestrator.apply("manifest")

        assert mock_run.call_count == 2

    def test_apply_bounded_by_ceiling(self, orchestrator, clock):
        """Test that a timed out attempt consuming the ceiling stops retries."""

        def run(cmd, **kwargs):
            clock.now += kwargs["timeout"]
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        with (
            patch("services.rollout_orchestrator.subprocess.run", side_effect=run) as mock_run,
            pytest.raises(ApplyFailedError),
        ):
            orchestrator.apply("manifest")

        assert mock_run.call_count == 1
        assert mock_run.call_args.kwargs["timeout"] == 15 * 60


class TestObserve:
    """Tests for RolloutOrchestrator.observe."""

    def test_healthy_rollout(self, orchestrator):
        with patch(
            "services.rollout_orchestrator.subprocess.run",
            return_value=Mock(returncode=0, stdout='deployment "app" successfully rolled out', stderr=""),
        ) as mock_run:
            orchestrator.observe()

        cmd = mock_run.call_args.args[0]
        assert cmd[:4] == ["kubectl", "rollout", "status", "deployment/app"]
        assert "--timeout=300s" in cmd
        assert cmd[cmd.index("--namespace") + 1] == "app-dev"

    def test_retry_after_failed_status(self, orchestrator):
        with patch(
            "services.rollout_orchestrator.subprocess.run",
            side_effect=[
                Mock(returncode=1, stdout="", stderr="progress deadline exceeded"),
                Mock(returncode=0, stdout="rolled out", stderr=""),
            ],
        ) as mock_run:
            orchestrator.observe()

        assert mock_run.call_count == 2

    def test_two_slow_attempts_time_out(self, orchestrator, clock):
        """Test that exceeding 300 seconds on both attempts yields a timeout, not success."""

        def run(cmd, **kwargs):
            clock.now += 300
            return Mock(
                returncode=1,
                stdout="",
                stderr="error: timed out waiting for the condition",
            )

        with (
            patch("services.rollout_orchestrator.subprocess.run", side_effect=run) as mock_run,
            pytest.raises(RolloutTimeoutError, match="timed out waiting"),
        ):
            orchestrator.observe()

        assert mock_run.call_count == 2

    def test_subprocess_timeout_is_failure(self, orchestrator):
        error = subprocess.TimeoutExpired(["kubectl"], 320)

        with (
            patch("services.rollout_orchestrator.subprocess.run", side_effect=error) as mock_run,
            pytest.raises(RolloutTimeoutError),
        ):
            orchestrator.observe()

        assert mock_run.call_count == 2


class TestEnsureResources:
    """Tests for namespace and pull secret provisioning."""

    def test_existing_namespace_is_kept(self, orchestrator, mock_cluster):
        core_v1 = MagicMock()
        mock_cluster.core_v1.return_value = core_v1

        assert orchestrator.ensure_namespace() is False
        core_v1.create_namespace.assert_not_called()

    def test_missing_namespace_is_created(self, orchestrator, mock_cluster):
        core_v1 = MagicMock()
        core_v1.read_namespace.side_effect = ApiException(status=404)
        mock_cluster.core_v1.return_value = core_v1

        assert orchestrator.ensure_namespace() is True
        body = core_v1.create_namespace.call_args.kwargs["body"]
        assert body.metadata.name == "app-dev"

    def test_namespace_api_error_propagates(self, orchestrator, mock_cluster):
        core_v1 = MagicMock()
        core_v1.read_namespace.side_effect = ApiException(status=403)
        mock_cluster.core_v1.return_value = core_v1

        with pytest.raises(ApiException):
            orchestrator.ensure_namespace()

    def test_pull_secret_created(self, orchestrator, mock_cluster, settings):
        core_v1 = MagicMock()
        mock_cluster.core_v1.return_value = core_v1

        orchestrator.ensure_pull_secret("test-user", "test-password")

        secret = core_v1.create_namespaced_secret.call_args.kwargs["body"]
        assert secret.metadata.name == settings.registry_pull_secret_name
        assert secret.type == "kubernetes.io/dockerconfigjson"
        docker_config = json.loads(base64.b64decode(secret.data[".dockerconfigjson"]))
        assert docker_config["auths"]["test-acr.azurecr.io"]["username"] == "test-user"

    def test_pull_secret_replaced_when_present(self, orchestrator, mock_cluster):
        core_v1 = MagicMock()
        core_v1.create_namespaced_secret.side_effect = ApiException(status=409)
        mock_cluster.core_v1.return_value = core_v1

        orchestrator.ensure_pull_secret("test-user", "test-password")

        core_v1.replace_namespaced_secret.assert_called_once()
