"""Source checkout with ordered branch fallback."""

import logging
import shutil
import subprocess
from pathlib import Path

from config import Settings
from errors import CheckoutError
from models.stages import CheckoutResult

logger = logging.getLogger(__name__)

GIT_METADATA_TIMEOUT_SECONDS = 30


class SourceFetcher:
    """Clone a repository, trying candidate branches in order."""

    def __init__(self, settings: Settings, correlation_id: str) -> None:
        """Initialize the fetcher."""
        self.branches = list(settings.source_branches)
        self.timeout = settings.checkout_timeout_seconds
        self.correlation_id = correlation_id

    def checkout(self, source_url: str, work_dir: Path) -> CheckoutResult:
        """Check out the first branch in the candidate list that clones successfully.

        Args:
            source_url: Repository URL
            work_dir: Directory replaced wholesale by the checkout

        Returns:
            The branch, commit and author of the checkout

        Raises:
            CheckoutError: If every candidate branch fails
        """
        failed_branches: list[str] = []

        for branch in self.branches:
            logger.info(
                f"[{self.correlation_id}] Checking out {source_url} branch {branch}",
                extra={
                    "correlation_id": self.correlation_id,
                    "source_url": source_url,
                    "branch": branch,
                    "attempt": len(failed_branches) + 1,
                },
            )
            if self._clone(source_url, branch, work_dir):
                commit_sha, author = self._read_head(work_dir)
                logger.info(
                    f"[{self.correlation_id}] ✓ Checked out {branch} at {commit_sha}",
                    extra={
                        "correlation_id": self.correlation_id,
                        "branch": branch,
                        "commit_sha": commit_sha,
                        "author": author,
                        "failed_branches": failed_branches,
                    },
                )
                return CheckoutResult(
                    branch=branch,
                    commit_sha=commit_sha,
                    author=author,
                    failed_branches=failed_branches,
                )
            failed_branches.append(branch)

        raise CheckoutError(source_url, failed_branches)

    def remote_head(self, source_url: str) -> tuple[str, str] | None:
        """Return ``(branch, sha)`` for the first candidate branch present on the remote."""
        for branch in self.branches:
            try:
                result = subprocess.run(
                    ["git", "ls-remote", "--heads", source_url, branch],
                    capture_output=True,
                    text=True,
                    timeout=GIT_METADATA_TIMEOUT_SECONDS,
                )
            except subprocess.TimeoutExpired:
                logger.warning(f"[{self.correlation_id}] ⚠️ git ls-remote timed out for {branch}")
                continue
            except OSError as e:
                logger.warning(f"[{self.correlation_id}] ⚠️ git ls-remote could not run: {e}")
                return None

            if result.returncode != 0:
                logger.warning(
                    f"[{self.correlation_id}] ⚠️ git ls-remote failed: {result.stderr.strip()}"
                )
                return None

            for line in result.stdout.splitlines():
                sha, _, ref = line.partition("\t")
                if ref == f"refs/heads/{branch}":
                    return branch, sha
        return None

    def _clone(self, source_url: str, branch: str, work_dir: Path) -> bool:
        """Clone one branch into a fresh ``work_dir``."""
        if work_dir.exists():
            shutil.rmtree(work_dir)
        work_dir.parent.mkdir(parents=True, exist_ok=True)

        clone_cmd = [
            "git", "clone",
            "--depth", "1",
            "--branch", branch,
            "--", source_url, str(work_dir),
        ]
        try:
            result = subprocess.run(
                clone_cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(
                f"[{self.correlation_id}] ⚠️ Checkout of {branch} timed out after {self.timeout}s"
            )
            return False
        except OSError as e:
            logger.warning(f"[{self.correlation_id}] ⚠️ Checkout of {branch} could not run git: {e}")
            return False

        if result.returncode != 0:
            logger.warning(
                f"[{self.correlation_id}] ⚠️ Checkout of {branch} failed: {result.stderr.strip()}",
                extra={
                    "correlation_id": self.correlation_id,
                    "branch": branch,
                    "returncode": result.returncode,
                },
            )
            return False
        return True

    def _read_head(self, work_dir: Path) -> tuple[str, str | None]:
        """Read the commit SHA and author of HEAD."""
        sha_result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=work_dir,
            capture_output=True,
            text=True,
            timeout=GIT_METADATA_TIMEOUT_SECONDS,
        )
        commit_sha = sha_result.stdout.strip() if sha_result.returncode == 0 else "unknown"

        author_result = subprocess.run(
            ["git", "log", "-1", "--format=%an <%ae>"],
            cwd=work_dir,
            capture_output=True,
            text=True,
            timeout=GIT_METADATA_TIMEOUT_SECONDS,
        )
        author = author_result.stdout.strip() if author_result.returncode == 0 else None
        return commit_sha, author or None
