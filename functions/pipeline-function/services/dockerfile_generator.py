"""Dockerfile synthesis for repositories that do not ship one."""

import logging
from pathlib import Path

from models.project import ProjectType

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"


class DockerfileGenerator:
    """Ensure a Dockerfile exists in the working tree."""

    def __init__(self, correlation_id: str) -> None:
        """Initialize the generator."""
        self.correlation_id = correlation_id

    def ensure_dockerfile(
        self, source_dir: Path, project_type: ProjectType, port: int
    ) -> tuple[Path, bool]:
        """Return the Dockerfile path and whether it was generated.

        An existing Dockerfile is used unmodified.
        """
        dockerfile_path = source_dir / DOCKERFILE_NAME
        if dockerfile_path.is_file():
            logger.info(f"[{self.correlation_id}] Using repository Dockerfile")
            return dockerfile_path, False

        content = project_type.dockerfile_template.render(port)
        dockerfile_path.write_text(content)
        logger.info(
            f"[{self.correlation_id}] Generated {project_type.value} Dockerfile exposing port {port}",
            extra={
                "correlation_id": self.correlation_id,
                "project_type": project_type.value,
                "port": port,
            },
        )
        return dockerfile_path, True
