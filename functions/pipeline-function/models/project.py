"""Project types and their Dockerfile templates."""

import json
import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

IMAGE_REFERENCE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._/-]*(:[A-Za-z0-9._-]+)?$")
BUILD_STAGE = "build"
BUILD_WORKDIR = "/build"
MIN_PORT = 1
MAX_PORT = 65535


class ProjectType(str, Enum):
    """Supported project kinds, in detection priority order."""

    NODE = "node"
    JVM = "jvm"
    PYTHON = "python"
    STATIC = "static"

    @property
    def marker_file(self) -> str:
        """File whose presence identifies this project type."""
        return _MARKER_FILES[self]

    @property
    def default_port(self) -> int:
        """Port the application listens on inside the container."""
        return _DEFAULT_PORTS[self]

    @property
    def dockerfile_template(self) -> "DockerfileTemplate":
        """Template used when the repository ships no Dockerfile."""
        return _TEMPLATES[self]


class DockerfileTemplate(BaseModel):
    """Typed recipe for a single-stage container image."""

    model_config = ConfigDict(frozen=True)

    base_image: str
    build_image: str | None = None
    build_commands: list[str] = Field(default_factory=list)
    workdir: str = "/app"
    dependency_files: list[str] = Field(default_factory=list)
    install_commands: list[str] = Field(default_factory=list)
    copy_source: str = "."
    copy_dest: str = "."
    start_command: list[str] = Field(..., min_length=1)

    @field_validator("base_image", "build_image")
    @classmethod
    def validate_base_image(cls, v: str | None) -> str | None:
        """Validate base and build images are plain image references."""
        if v is not None and not IMAGE_REFERENCE_PATTERN.fullmatch(v):
            msg = f"Invalid base image reference: {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("workdir")
    @classmethod
    def validate_workdir(cls, v: str) -> str:
        """Validate the working directory is absolute and single-line."""
        if not v.startswith("/") or "\n" in v:
            msg = f"Invalid working directory: {v!r}"
            raise ValueError(msg)
        return v

    def render(self, port: int) -> str:
        """Render the template as Dockerfile text exposing ``port``."""
        if not MIN_PORT <= port <= MAX_PORT:
            msg = f"Port out of range: {port}"
            raise ValueError(msg)

        lines = []
        copy_source = self.copy_source
        if self.build_image:
            # Builder stage compiles inside the engine; only the artifact reaches the runtime image
            lines.extend(
                [
                    f"FROM {self.build_image} AS {BUILD_STAGE}",
                    f"WORKDIR {BUILD_WORKDIR}",
                    "COPY . .",
                ]
            )
            lines.extend(f"RUN {command}" for command in self.build_commands)
            copy_source = f"--from={BUILD_STAGE} {BUILD_WORKDIR}/{self.copy_source}"

        lines += [
            f"FROM {self.base_image}",
            f"WORKDIR {self.workdir}",
            f"ENV PORT={port}",
        ]
        if self.dependency_files:
            # JSON form keeps file names with spaces intact
            lines.append(f"COPY {json.dumps([*self.dependency_files, './'])}")
        lines.extend(f"RUN {command}" for command in self.install_commands)
        lines.append(f"COPY {copy_source} {self.copy_dest}")
        lines.append(f"EXPOSE {port}")
        lines.append(f"CMD {json.dumps(self.start_command)}")
        return "\n".join(lines) + "\n"


_MARKER_FILES = {
    ProjectType.NODE: "package.json",
    ProjectType.JVM: "pom.xml",
    ProjectType.PYTHON: "requirements.txt",
    ProjectType.STATIC: "index.html",
}

_DEFAULT_PORTS = {
    ProjectType.NODE: 3000,
    ProjectType.JVM: 8080,
    ProjectType.PYTHON: 8000,
    ProjectType.STATIC: 80,
}

_TEMPLATES = {
    ProjectType.NODE: DockerfileTemplate(
        base_image="node:20-alpine",
        dependency_files=["package.json"],
        install_commands=["npm install --omit=dev"],
        start_command=["npm", "start"],
    ),
    ProjectType.JVM: DockerfileTemplate(
        base_image="eclipse-temurin:17-jre-alpine",
        build_image="maven:3.9-eclipse-temurin-17",
        build_commands=["mvn -B package -DskipTests"],
        copy_source="target/*.jar",
        copy_dest="app.jar",
        start_command=["java", "-jar", "app.jar"],
    ),
    ProjectType.PYTHON: DockerfileTemplate(
        base_image="python:3.12-slim",
        dependency_files=["requirements.txt"],
        install_commands=["pip install --no-cache-dir -r requirements.txt"],
        start_command=["python", "app.py"],
    ),
    ProjectType.STATIC: DockerfileTemplate(
        base_image="nginx:alpine",
        workdir="/usr/share/nginx/html",
        start_command=["nginx", "-g", "daemon off;"],
    ),
}
