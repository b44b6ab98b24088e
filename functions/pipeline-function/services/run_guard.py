"""Per-project run serialization and sequential build numbering."""

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from errors import ConcurrentRunError

logger = logging.getLogger(__name__)


class RunGuard:
    """Reject overlapping runs for a project and hand out build numbers.

    Build state is persisted as ``{state_dir}/{project}.json`` so build
    numbers keep increasing across host restarts.

    The active-run set lives in process memory, so it only serializes runs
    inside one Functions host. The app must run on a single instance
    (``WEBSITE_MAX_DYNAMIC_APPLICATION_SCALE_OUT=1``) with the workspace on
    storage that instance owns.
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self._lock = threading.Lock()
        self._active: set[str] = set()

    @contextmanager
    def hold(self, project_name: str) -> Iterator[None]:
        """Mark ``project_name`` as running for the duration of the block.

        Raises:
            ConcurrentRunError: If a run for the project is already active
        """
        with self._lock:
            if project_name in self._active:
                raise ConcurrentRunError(project_name)
            self._active.add(project_name)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(project_name)

    def is_active(self, project_name: str) -> bool:
        with self._lock:
            return project_name in self._active

    def next_build_id(self, project_name: str) -> str:
        """Increment and return the project's build number."""
        with self._lock:
            state = self._read_state(project_name)
            build_number = int(state.get("build_number", 0)) + 1
            state["build_number"] = build_number
            self._write_state(project_name, state)
        logger.info(f"Assigned build {build_number} to project {project_name}")
        return str(build_number)

    def last_deployed_commit(self, project_name: str) -> str | None:
        with self._lock:
            return self._read_state(project_name).get("last_deployed_commit")

    def record_deployed_commit(self, project_name: str, commit_sha: str) -> None:
        with self._lock:
            state = self._read_state(project_name)
            state["last_deployed_commit"] = commit_sha
            self._write_state(project_name, state)

    def last_polled_commit(self, project_name: str) -> str | None:
        with self._lock:
            return self._read_state(project_name).get("last_polled_commit")

    def record_polled_commit(self, project_name: str, commit_sha: str) -> None:
        """Remember the remote head a poll has started a run for."""
        with self._lock:
            state = self._read_state(project_name)
            state["last_polled_commit"] = commit_sha
            self._write_state(project_name, state)

    def _state_path(self, project_name: str) -> Path:
        return self.state_dir / f"{project_name}.json"

    def _read_state(self, project_name: str) -> dict[str, Any]:
        path = self._state_path(project_name)
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable build state {path}: {e}")
            return {}

    def _write_state(self, project_name: str, state: dict[str, Any]) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self._state_path(project_name)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(state))
        tmp_path.replace(path)
