"""Ecosystem build, image build and registry publish."""

import json
import logging
import shutil
import subprocess
from pathlib import Path

from config import Settings
from errors import BuildError, PublishError
from models.context import DeploymentContext
from models.project import ProjectType

logger = logging.getLogger(__name__)

DOCKER_LOGIN_TIMEOUT_SECONDS = 60
DOCKER_RMI_TIMEOUT_SECONDS = 60


class ImageBuilder:
    """Build the project image and publish it under the build id and ``latest`` tags."""

    def __init__(self, settings: Settings, context: DeploymentContext, correlation_id: str) -> None:
        """Initialize the builder for one deployment context."""
        self.context = context
        self.correlation_id = correlation_id
        self.build_timeout = settings.build_timeout_seconds
        self.push_timeout = settings.push_timeout_seconds
        self.built_images: list[str] = []

    @property
    def image_tags(self) -> list[str]:
        return self.context.image_references

    def run_build_tool(self, source_dir: Path, project_type: ProjectType) -> bool:
        """Run the ecosystem build for ``project_type`` if it has one.

        Best-effort: a missing tool or build script is skipped and a failing
        build is logged, leaving the existing tree for the image build.

        Returns:
            True if a build command ran and succeeded
        """
        commands = self._build_commands(source_dir, project_type)
        if not commands:
            logger.info(
                f"[{self.correlation_id}] No build step for {project_type.value} project, skipping"
            )
            return False

        for command in commands:
            logger.info(f"[{self.correlation_id}] Running: {' '.join(command)}")
            try:
                result = subprocess.run(
                    command,
                    cwd=source_dir,
                    capture_output=True,
                    text=True,
                    timeout=self.build_timeout,
                )
            except (subprocess.TimeoutExpired, OSError) as e:
                logger.warning(f"[{self.correlation_id}] ⚠️ Build step skipped: {e}")
                return False

            if result.returncode != 0:
                logger.warning(
                    f"[{self.correlation_id}] ⚠️ Build step failed, continuing with existing tree",
                    extra={
                        "correlation_id": self.correlation_id,
                        "command": " ".join(command),
                        "returncode": result.returncode,
                        "stderr": result.stderr[-2000:],
                    },
                )
                return False
        return True

    def login(self, username: str, password: str) -> None:
        """Log the container engine into the registry.

        Raises:
            PublishError: If the login is rejected
        """
        login_cmd = [
            "docker", "login", self.context.registry,
            "--username", username,
            "--password-stdin",
        ]
        try:
            subprocess.run(
                login_cmd,
                input=password,
                capture_output=True,
                text=True,
                check=True,
                timeout=DOCKER_LOGIN_TIMEOUT_SECONDS,
            )
        except subprocess.CalledProcessError as e:
            raise PublishError(self.context.registry, f"registry login failed: {e.stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise PublishError(self.context.registry, f"registry login timed out after {e.timeout}s") from e
        except OSError as e:
            raise PublishError(self.context.registry, f"registry login could not run: {e}") from e

        logger.info(f"[{self.correlation_id}] ✓ Logged in to {self.context.registry}")

    def build(self, source_dir: Path, dockerfile: Path) -> list[str]:
        """Build one image tagged with the build id and ``latest``.

        Raises:
            BuildError: If the container build fails or times out
        """
        build_cmd = ["docker", "build"]
        for tag in self.image_tags:
            build_cmd.extend(["-t", tag])
        build_cmd.extend(["-f", str(dockerfile), str(source_dir)])

        logger.info(f"[{self.correlation_id}] Running: {' '.join(build_cmd)}")
        try:
            subprocess.run(
                build_cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.build_timeout,
            )
        except subprocess.CalledProcessError as e:
            logger.error(
                f"[{self.correlation_id}] Image build failed with exit code {e.returncode}",
                extra={
                    "correlation_id": self.correlation_id,
                    "command": " ".join(build_cmd),
                    "stderr": e.stderr,
                },
            )
            raise BuildError(f"Image build failed: {e.stderr}", {"returncode": e.returncode}) from e
        except subprocess.TimeoutExpired as e:
            raise BuildError(f"Image build timed out after {e.timeout} seconds") from e
        except OSError as e:
            raise BuildError(f"Image build could not run: {e}") from e

        self.built_images = list(self.image_tags)
        logger.info(
            f"[{self.correlation_id}] ✓ Built image",
            extra={"correlation_id": self.correlation_id, "image_tags": self.built_images},
        )
        return self.built_images

    def push(self) -> list[str]:
        """Push both tags to the registry.

        Raises:
            PublishError: If any push fails or times out
        """
        pushed = []
        for tag in self.image_tags:
            logger.info(f"[{self.correlation_id}] Pushing {tag}")
            try:
                subprocess.run(
                    ["docker", "push", tag],
                    capture_output=True,
                    text=True,
                    check=True,
                    timeout=self.push_timeout,
                )
            except subprocess.CalledProcessError as e:
                raise PublishError(tag, e.stderr or f"exit code {e.returncode}") from e
            except subprocess.TimeoutExpired as e:
                raise PublishError(tag, f"timed out after {e.timeout} seconds") from e
            except OSError as e:
                raise PublishError(tag, f"push could not run: {e}") from e
            pushed.append(tag)
            logger.info(f"[{self.correlation_id}] ✓ Pushed {tag}")
        return pushed

    def cleanup(self) -> None:
        """Remove local image tags. Never raises."""
        for tag in self.image_tags:
            try:
                result = subprocess.run(
                    ["docker", "rmi", "--force", tag],
                    capture_output=True,
                    text=True,
                    timeout=DOCKER_RMI_TIMEOUT_SECONDS,
                )
            except (subprocess.TimeoutExpired, OSError) as e:
                logger.warning(f"[{self.correlation_id}] Failed to remove local image {tag}: {e}")
                continue
            if result.returncode == 0:
                logger.debug(f"[{self.correlation_id}] Removed local image {tag}")
        self.built_images = []

    def _build_commands(self, source_dir: Path, project_type: ProjectType) -> list[list[str]]:
        """Return the ecosystem build commands for ``project_type``."""
        if project_type is ProjectType.NODE:
            if not self._has_npm_build_script(source_dir) or not shutil.which("npm"):
                return []
            return [["npm", "install"], ["npm", "run", "build"]]

        if project_type is ProjectType.JVM:
            wrapper = source_dir / "mvnw"
            if wrapper.is_file():
                return [[str(wrapper), "-B", "package", "-DskipTests"]]
            if shutil.which("mvn"):
                return [["mvn", "-B", "package", "-DskipTests"]]
            return []

        return []

    def _has_npm_build_script(self, source_dir: Path) -> bool:
        try:
            package = json.loads((source_dir / "package.json").read_text())
        except (OSError, ValueError):
            return False
        scripts = package.get("scripts") if isinstance(package, dict) else None
        return isinstance(scripts, dict) and "build" in scripts
