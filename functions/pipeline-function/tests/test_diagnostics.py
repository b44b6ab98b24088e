"""Tests for failure diagnostics collection."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, patch

from kubernetes.client.rest import ApiException

from services.diagnostics import collect_diagnostics


def make_event(reason: str, minute: int, event_type: str = "Normal"):
    event = MagicMock()
    event.type = event_type
    event.reason = reason
    event.message = f"{reason} happened"
    event.count = 1
    event.last_timestamp = datetime(2024, 1, 1, 12, minute, tzinfo=timezone.utc)
    event.involved_object.kind = "Pod"
    event.involved_object.name = "app-abc"
    return event


def make_pod(name: str, phase: str, ready: bool, restarts: int):
    pod = MagicMock()
    pod.metadata.name = name
    pod.status.phase = phase
    pod.status.container_statuses = [Mock(ready=ready, restart_count=restarts)]
    return pod


class TestCollectDiagnostics:
    """Tests for collect_diagnostics."""

    def test_collects_description_events_and_pods(self, mock_cluster):
        core_v1 = MagicMock()
        core_v1.list_namespaced_event.return_value.items = [
            make_event("Scheduled", 1),
            make_event("BackOff", 5, "Warning"),
        ]
        core_v1.list_namespaced_pod.return_value.items = [
            make_pod("app-abc", "Running", False, 3),
        ]
        mock_cluster.core_v1.return_value = core_v1

        with patch(
            "services.diagnostics.subprocess.run",
            return_value=Mock(returncode=0, stdout="Name: app\nReplicas: 2", stderr=""),
        ) as mock_run:
            diagnostics = collect_diagnostics(mock_cluster, "app-dev", "app", "test-correlation-id")

        assert diagnostics["deployment_description"] == "Name: app\nReplicas: 2"
        assert mock_run.call_args.args[0][:3] == ["kubectl", "describe", "deployment/app"]
        assert [event["reason"] for event in diagnostics["events"]] == ["BackOff", "Scheduled"]
        assert diagnostics["events"][0]["object"] == "Pod/app-abc"
        assert diagnostics["pods"] == [
            {"name": "app-abc", "phase": "Running", "ready": False, "restarts": 3}
        ]

    def test_missing_namespace_yields_empty_sections(self, mock_cluster):
        core_v1 = MagicMock()
        core_v1.list_namespaced_event.side_effect = ApiException(status=404)
        core_v1.list_namespaced_pod.side_effect = ApiException(status=404)
        mock_cluster.core_v1.return_value = core_v1

        with patch(
            "services.diagnostics.subprocess.run",
            return_value=Mock(returncode=1, stdout="", stderr="namespaces \"app-dev\" not found"),
        ):
            diagnostics = collect_diagnostics(mock_cluster, "app-dev", "app", "test-correlation-id")

        assert diagnostics == {"deployment_description": None, "events": [], "pods": []}

    def test_never_raises(self, mock_cluster):
        mock_cluster.core_v1.side_effect = RuntimeError("kubeconfig unavailable")

        with patch("services.diagnostics.subprocess.run", side_effect=OSError("kubectl missing")):
            diagnostics = collect_diagnostics(mock_cluster, "app-dev", "app", "test-correlation-id")

        assert diagnostics == {"deployment_description": None, "events": [], "pods": []}
