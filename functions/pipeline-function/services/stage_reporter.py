"""Best-effort status callbacks to the tracking backend."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import requests

from config import Settings
from errors import CallbackError
from models.stages import StageRecord, StageStatus

logger = logging.getLogger(__name__)


class StageReporter:
    """Emit stage, URL and terminal status callbacks.

    Every call is best-effort: network failures and non-2xx responses are
    logged and swallowed so they never change the pipeline outcome.
    """

    def __init__(
        self,
        settings: Settings,
        project_name: str,
        deployment_id: str | None,
        correlation_id: str,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the reporter for one pipeline run."""
        self.base_url = settings.tracking_base_url
        self.timeout = settings.callback_timeout_seconds
        self.project_name = project_name
        self.deployment_id = deployment_id
        self.correlation_id = correlation_id
        self.session = session or requests.Session()
        if settings.tracking_api_token:
            self.session.headers["Authorization"] = f"Bearer {settings.tracking_api_token}"

    @contextmanager
    def stage(self, stage_name: str) -> Iterator[None]:
        """Wrap a stage with ``running`` and ``success``/``failed`` callbacks."""
        self.report_stage(stage_name, StageStatus.RUNNING)
        try:
            yield
        except BaseException:
            self.report_stage(stage_name, StageStatus.FAILED)
            raise
        self.report_stage(stage_name, StageStatus.SUCCESS)

    def report_stage(self, stage_name: str, status: StageStatus) -> bool:
        """Report a stage transition."""
        logger.info(
            f"[{self.correlation_id}] Stage {stage_name}: {status.value}",
            extra={
                "correlation_id": self.correlation_id,
                "project_name": self.project_name,
                "stage": stage_name,
                "status": status.value,
            },
        )
        if not self.deployment_id:
            return False

        record = StageRecord(
            deployment_id=self.deployment_id,
            stage_name=stage_name,
            status=status,
        )
        return self._post("/api/devops/internal/stages", record.model_dump(mode="json"))

    def report_external_url(self, external_url: str) -> bool:
        """Report the external URL at project level and, if known, deployment level."""
        reported = self._post(
            f"/api/devops/internal/projects/{self.project_name}/url",
            {"external_url": external_url},
        )
        if self.deployment_id:
            reported = self._post(
                f"/api/devops/internal/deployments/{self.deployment_id}/url",
                {"external_url": external_url},
            ) and reported
        return reported

    def report_deployment_status(self, success: bool) -> bool:
        """Report the terminal deployment status."""
        if not self.deployment_id:
            return False
        return self._post(
            f"/api/devops/internal/deployments/{self.deployment_id}/status",
            {"status": StageStatus.SUCCESS.value if success else StageStatus.FAILED.value},
        )

    def _post(self, path: str, body: dict[str, Any]) -> bool:
        """POST ``body`` to the tracking backend, swallowing any failure."""
        url = f"{self.base_url}{path}"
        try:
            try:
                response = self.session.post(url, json=body, timeout=self.timeout)
            except requests.RequestException as e:
                raise CallbackError(f"Callback to {path} failed: {e}", {"url": url}) from e
            if not response.ok:
                msg = f"Callback to {path} returned HTTP {response.status_code}"
                raise CallbackError(msg, {"url": url, "status_code": response.status_code})
        except CallbackError as e:
            logger.warning(
                f"[{self.correlation_id}] ⚠️ {e.message}",
                extra={
                    "correlation_id": self.correlation_id,
                    "callback_url": url,
                    **e.details,
                },
            )
            return False

        logger.debug(f"[{self.correlation_id}] Callback {path} accepted")
        return True
