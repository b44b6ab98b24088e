"""Project type detection from marker files."""

import logging
from pathlib import Path

from models.project import ProjectType

logger = logging.getLogger(__name__)

# First match wins; a Node frontend with an index.html is still a Node project
DETECTION_ORDER = (
    ProjectType.NODE,
    ProjectType.JVM,
    ProjectType.PYTHON,
    ProjectType.STATIC,
)


def detect_project_type(source_dir: Path) -> tuple[ProjectType, int]:
    """Classify a checked-out tree and return its project type and default port."""
    for project_type in DETECTION_ORDER:
        if (source_dir / project_type.marker_file).is_file():
            logger.info(
                f"Detected {project_type.value} project from {project_type.marker_file}",
                extra={"project_type": project_type.value, "port": project_type.default_port},
            )
            return project_type, project_type.default_port

    logger.warning(
        f"No project marker found in {source_dir}, defaulting to static",
        extra={"project_type": ProjectType.STATIC.value, "possible_misclassification": True},
    )
    return ProjectType.STATIC, ProjectType.STATIC.default_port
