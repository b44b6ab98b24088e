"""Pipeline service composing checkout, build, publish, rollout and endpoint discovery."""

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from config import Settings
from errors import ApplyFailedError, PipelineError, RolloutTimeoutError
from models.context import DeploymentContext, resolve_context, resolve_identity
from models.requests import PipelineRequest, PipelineResult
from models.stages import RolloutOutcome, StageName
from services.cluster_access import ClusterAccess
from services.diagnostics import collect_diagnostics
from services.dockerfile_generator import DockerfileGenerator
from services.endpoint_resolver import EndpointResolver
from services.image_builder import ImageBuilder
from services.manifest_generator import build_context_manifest, render_manifest
from services.project_detector import detect_project_type
from services.rollout_orchestrator import RolloutOrchestrator
from services.run_guard import RunGuard
from services.source_fetcher import SourceFetcher
from services.stage_reporter import StageReporter

logger = logging.getLogger(__name__)

BUILD_STATE_DIR = ".builds"
PENDING_BUILD_ID = "pending"


class PipelineService:
    """Run the fixed deployment pipeline for one project."""

    def __init__(self, settings: Settings, run_guard: RunGuard, correlation_id: str | None = None) -> None:
        """Initialize the pipeline service."""
        self.settings = settings
        self.run_guard = run_guard
        self.correlation_id = correlation_id or f"pipeline-{uuid.uuid4().hex[:8]}"
        self.current_stage: StageName | None = None

    def execute(self, request: PipelineRequest) -> PipelineResult:
        """Resolve parameters, serialize on the project and run the pipeline.

        Raises:
            ParameterError: If the trigger parameters cannot be resolved
            ConcurrentRunError: If a run for the same project is already active
        """
        # Every parameter is validated before a build number is consumed
        context = resolve_context(request, self.settings, PENDING_BUILD_ID)
        project_name = context.project_name

        with self.run_guard.hold(project_name):
            context = context.with_build_id(self.run_guard.next_build_id(project_name))
            result = self.run(context)

            if result.success and result.commit_sha:
                self.run_guard.record_deployed_commit(project_name, result.commit_sha)
            return result

    def poll(self, request: PipelineRequest) -> PipelineResult | None:
        """Run the pipeline once for each new remote head, whatever the outcome of earlier runs."""
        source_url, project_name = resolve_identity(request, self.settings)
        if self.run_guard.is_active(project_name):
            logger.info(f"[{self.correlation_id}] Run already active for {project_name}, skipping poll")
            return None

        head = SourceFetcher(self.settings, self.correlation_id).remote_head(source_url)
        if head is None:
            logger.warning(f"[{self.correlation_id}] No candidate branch found for {source_url}")
            return None

        branch, sha = head
        if sha in (
            self.run_guard.last_polled_commit(project_name),
            self.run_guard.last_deployed_commit(project_name),
        ):
            logger.info(f"[{self.correlation_id}] {project_name} {branch}@{sha} already attempted")
            return None

        self.run_guard.record_polled_commit(project_name, sha)
        logger.info(f"[{self.correlation_id}] New commit {sha} on {branch}, starting pipeline")
        return self.execute(request)

    def run(self, context: DeploymentContext) -> PipelineResult:
        """Run every stage for a resolved context and report the outcome."""
        pipeline_start_time = time.time()
        cid = self.correlation_id

        logger.info(
            f"[{cid}] Starting pipeline",
            extra={
                "correlation_id": cid,
                "source_url": context.source_url,
                "project_name": context.project_name,
                "namespace": context.namespace,
                "deployment_id": context.deployment_id,
                "build_id": context.image_tag,
            },
        )

        reporter = StageReporter(self.settings, context.project_name, context.deployment_id, cid)
        result = PipelineResult(
            success=False,
            message="",
            project_name=context.project_name,
            namespace=context.namespace,
            deployment_id=context.deployment_id,
            build_id=context.image_tag,
            image_tags=context.image_references,
        )
        source_dir = Path(self.settings.workspace_root) / context.project_name / "src"
        builder = ImageBuilder(self.settings, context, cid)
        cluster: ClusterAccess | None = None
        deploy_started = False

        try:
            with self._stage(reporter, StageName.CHECKOUT):
                checkout = SourceFetcher(self.settings, cid).checkout(context.source_url, source_dir)
            result.branch = checkout.branch
            result.commit_sha = checkout.commit_sha

            with self._stage(reporter, StageName.DETECT):
                project_type, port = detect_project_type(source_dir)
                context = context.with_detection(project_type, port)
            result.project_type = project_type.value

            with self._stage(reporter, StageName.DOCKERFILE):
                dockerfile, _ = DockerfileGenerator(cid).ensure_dockerfile(
                    source_dir, project_type, port
                )

            with self._stage(reporter, StageName.BUILD):
                builder.run_build_tool(source_dir, project_type)
                builder.build(source_dir, dockerfile)

            with self._stage(reporter, StageName.PUSH):
                cluster = ClusterAccess(self.settings, context.cluster_resource_group, cid)
                username, password = cluster.registry_credentials()
                builder.login(username, password)
                builder.push()

            with self._stage(reporter, StageName.MANIFEST):
                manifest = render_manifest(
                    build_context_manifest(
                        context,
                        pull_secret_name=self.settings.registry_pull_secret_name,
                        ingress_class_name=self.settings.ingress_class_name,
                    )
                )

            orchestrator = RolloutOrchestrator(self.settings, context, cluster, cid)
            deploy_started = True
            with self._stage(reporter, StageName.DEPLOY):
                orchestrator.ensure_namespace()
                orchestrator.ensure_pull_secret(username, password)
                orchestrator.apply(manifest)

            with self._stage(reporter, StageName.VERIFY):
                orchestrator.observe()
            result.rollout_outcome = RolloutOutcome.HEALTHY

            with self._stage(reporter, StageName.ENDPOINT):
                resolver = EndpointResolver(self.settings, context, cluster, reporter, cid)
                result.external_url = resolver.resolve()

            result.success = True
            result.message = (
                f"Successfully deployed {context.project_name} build {context.image_tag} "
                f"to namespace {context.namespace}"
            )
            logger.info(
                f"[{cid}] Pipeline SUCCESSFUL in {time.time() - pipeline_start_time:.2f}s",
                extra={
                    "correlation_id": cid,
                    "project_name": context.project_name,
                    "namespace": context.namespace,
                    "external_url": result.external_url,
                    "total_duration_seconds": time.time() - pipeline_start_time,
                },
            )

        except Exception as e:
            self._handle_failure(e, result, context, cluster, deploy_started, pipeline_start_time)

        finally:
            builder.cleanup()
            if cluster is not None:
                cluster.close()
            reporter.report_deployment_status(result.success)

        return result

    @contextmanager
    def _stage(self, reporter: StageReporter, stage: StageName) -> Iterator[None]:
        """Track the current stage and wrap it with status callbacks."""
        self.current_stage = stage
        step_start = time.time()
        with reporter.stage(stage.value):
            yield
        self.current_stage = None
        logger.info(
            f"[{self.correlation_id}] Stage {stage.value} completed in {time.time() - step_start:.2f}s"
        )

    def _handle_failure(
        self,
        error: Exception,
        result: PipelineResult,
        context: DeploymentContext,
        cluster: ClusterAccess | None,
        deploy_started: bool,
        pipeline_start_time: float,
    ) -> None:
        """Record a fatal error and collect diagnostics once the manifest was applied."""
        cid = self.correlation_id
        stage = self.current_stage.value if self.current_stage else None
        total_time = time.time() - pipeline_start_time

        if isinstance(error, ApplyFailedError):
            result.rollout_outcome = RolloutOutcome.APPLY_FAILED
        elif isinstance(error, RolloutTimeoutError):
            result.rollout_outcome = RolloutOutcome.TIMED_OUT

        # ruff: noqa: TRY401
        logger.exception(
            f"[{cid}] Pipeline FAILED at stage {stage} after {total_time:.2f}s: {error!s}",
            extra={
                "correlation_id": cid,
                "project_name": context.project_name,
                "namespace": context.namespace,
                "stage": stage,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_details": error.details if isinstance(error, PipelineError) else {},
                "total_duration_seconds": total_time,
            },
        )

        if deploy_started and cluster is not None:
            result.diagnostics = collect_diagnostics(
                cluster, context.namespace, context.project_name, cid
            )

        result.success = False
        result.message = f"Pipeline failed at stage {stage}"
        result.failed_stage = stage
        result.error_type = type(error).__name__
        result.error_details = str(error)


def build_state_dir(settings: Settings) -> Path:
    """Directory holding per-project build numbers and last deployed commits."""
    return Path(settings.workspace_root) / BUILD_STATE_DIR
