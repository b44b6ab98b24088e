"""Azure Function App for deployment pipeline runs."""

import json
import logging
import time
import uuid
from functools import lru_cache
from pathlib import Path

import azure.functions as func
from pydantic import ValidationError

from config import Settings
from errors import ConcurrentRunError, ParameterError
from models.requests import PipelineRequest
from services.pipeline_service import PipelineService, build_state_dir
from services.run_guard import RunGuard

app = func.FunctionApp()

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Fixed poll interval (NCRONTAB): every five minutes
POLL_SCHEDULE = "0 */5 * * * *"


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_run_guard(state_dir: str) -> RunGuard:
    """Process-wide run guard; one per build state directory."""
    return RunGuard(Path(state_dir))


def _json_response(body: dict, status_code: int) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(body),
        status_code=status_code,
        headers={"Content-Type": "application/json"},
    )


@app.function_name(name="pipeline")
@app.route(route="pipeline", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def run_pipeline(req: func.HttpRequest) -> func.HttpResponse:
    """Run the deployment pipeline for a push webhook or an explicit request."""
    correlation_id = f"pipeline-{uuid.uuid4().hex[:8]}-{int(time.time())}"
    logger.info(
        "Pipeline function triggered",
        extra={
            "correlation_id": correlation_id,
            "function_name": "run_pipeline",
            "user_agent": req.headers.get("User-Agent", "Unknown"),
            "github_event": req.headers.get("X-GitHub-Event"),
        },
    )

    try:
        try:
            req_body = req.get_json()
        except ValueError:
            req_body = None
        if not req_body or not isinstance(req_body, dict):
            return _json_response(
                {"error": "Request body is required", "correlation_id": correlation_id},
                400,
            )

        pipeline_request = PipelineRequest(**req_body)
        settings = get_settings()
        service = PipelineService(
            settings,
            get_run_guard(str(build_state_dir(settings))),
            correlation_id,
        )
        result = service.execute(pipeline_request)

        return func.HttpResponse(
            result.model_dump_json(),
            status_code=200 if result.success else 500,
            headers={"Content-Type": "application/json"},
        )

    except (ParameterError, ValidationError) as e:
        logger.error(f"[{correlation_id}] Validation error: {e!s}")
        return _json_response(
            {"error": f"Validation error: {e!s}", "correlation_id": correlation_id},
            400,
        )
    except ConcurrentRunError as e:
        logger.warning(f"[{correlation_id}] {e.message}")
        return _json_response({"error": e.message, "correlation_id": correlation_id}, 409)
    except Exception as e:
        logger.exception(f"[{correlation_id}] Unexpected error: {e!s}")
        return _json_response(
            {"error": "Internal server error", "correlation_id": correlation_id},
            500,
        )


@app.function_name(name="poll")
@app.timer_trigger(schedule=POLL_SCHEDULE, arg_name="timer", run_on_startup=False)
def poll_pipeline(timer: func.TimerRequest) -> None:
    """Run the pipeline for the configured poll source when its head has moved."""
    correlation_id = f"poll-{uuid.uuid4().hex[:8]}-{int(time.time())}"
    settings = get_settings()

    if not settings.poll_source_url:
        logger.debug(f"[{correlation_id}] No poll source configured, skipping")
        return
    if timer.past_due:
        logger.warning(f"[{correlation_id}] Poll timer is past due")

    pipeline_request = PipelineRequest(
        source_url=settings.poll_source_url,
        project_name=settings.poll_project_name,
    )
    service = PipelineService(
        settings,
        get_run_guard(str(build_state_dir(settings))),
        correlation_id,
    )
    try:
        result = service.poll(pipeline_request)
    except ConcurrentRunError as e:
        logger.info(f"[{correlation_id}] {e.message}, skipping poll")
        return
    except ParameterError as e:
        logger.error(f"[{correlation_id}] Invalid poll configuration: {e.message}")
        return

    if result is not None:
        logger.info(
            f"[{correlation_id}] Poll run finished: {result.message}",
            extra={"correlation_id": correlation_id, "success": result.success},
        )


@app.function_name(name="health")
@app.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint."""
    return _json_response({"status": "healthy", "service": "pipeline-function"}, 200)
