"""Tests for source checkout with branch fallback."""

import subprocess
from unittest.mock import Mock, patch

import pytest

from errors import CheckoutError
from services.source_fetcher import SourceFetcher

SOURCE_URL = "https://git.example/acme/app"


def fake_git(available_branches, timeout_branches=()):
    """Build a subprocess.run stand-in for a remote with ``available_branches``."""
    clone_attempts = []

    def run(cmd, **kwargs):
        if cmd[:2] == ["git", "clone"]:
            branch = cmd[cmd.index("--branch") + 1]
            clone_attempts.append(branch)
            if branch in timeout_branches:
                raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))
            if branch in available_branches:
                return Mock(returncode=0, stdout="", stderr="")
            return Mock(returncode=128, stdout="", stderr=f"Remote branch {branch} not found")
        if cmd[:2] == ["git", "rev-parse"]:
            return Mock(returncode=0, stdout="abc123def456\n", stderr="")
        if cmd[:2] == ["git", "log"]:
            return Mock(returncode=0, stdout="Dev <dev@example.com>\n", stderr="")
        raise AssertionError(f"unexpected command {cmd}")

    return run, clone_attempts


class TestSourceFetcher:
    """Tests for SourceFetcher.checkout."""

    def test_primary_branch_wins(self, settings, tmp_path):
        run, attempts = fake_git({"main", "master", "develop"})

        with patch("services.source_fetcher.subprocess.run", side_effect=run):
            result = SourceFetcher(settings, "test-correlation-id").checkout(SOURCE_URL, tmp_path / "src")

        assert attempts == ["main"]
        assert result.branch == "main"
        assert result.commit_sha == "abc123def456"
        assert result.author == "Dev <dev@example.com>"
        assert result.failed_branches == []

    def test_tertiary_branch_after_two_failures(self, settings, tmp_path):
        """Test that only-tertiary repos fail exactly twice before succeeding."""
        run, attempts = fake_git({"develop"})

        with patch("services.source_fetcher.subprocess.run", side_effect=run):
            result = SourceFetcher(settings, "test-correlation-id").checkout(SOURCE_URL, tmp_path / "src")

        assert attempts == ["main", "master", "develop"]
        assert result.branch == "develop"
        assert result.failed_branches == ["main", "master"]

    def test_timeout_counts_as_failed_attempt(self, settings, tmp_path):
        run, attempts = fake_git({"master"}, timeout_branches={"main"})

        with patch("services.source_fetcher.subprocess.run", side_effect=run):
            result = SourceFetcher(settings, "test-correlation-id").checkout(SOURCE_URL, tmp_path / "src")

        assert attempts == ["main", "master"]
        assert result.branch == "master"

    def test_all_branches_fail(self, settings, tmp_path):
        run, attempts = fake_git(set())

        with (
            patch("services.source_fetcher.subprocess.run", side_effect=run),
            pytest.raises(CheckoutError) as exc_info,
        ):
            SourceFetcher(settings, "test-correlation-id").checkout(SOURCE_URL, tmp_path / "src")

        assert attempts == ["main", "master", "develop"]
        assert exc_info.value.branches == ["main", "master", "develop"]

    def test_missing_git_binary_raises_checkout_error(self, settings, tmp_path):
        """Test that a host without git ends in CheckoutError after every candidate."""
        with (
            patch(
                "services.source_fetcher.subprocess.run",
                side_effect=FileNotFoundError("git"),
            ) as mock_run,
            pytest.raises(CheckoutError) as exc_info,
        ):
            SourceFetcher(settings, "test-correlation-id").checkout(SOURCE_URL, tmp_path / "src")

        assert mock_run.call_count == 3
        assert exc_info.value.branches == ["main", "master", "develop"]

    def test_existing_tree_is_replaced(self, settings, tmp_path):
        """Test that stale files from a previous run are removed before cloning."""
        work_dir = tmp_path / "src"
        work_dir.mkdir()
        (work_dir / "stale.txt").write_text("old")
        run, _ = fake_git({"main"})

        with patch("services.source_fetcher.subprocess.run", side_effect=run):
            SourceFetcher(settings, "test-correlation-id").checkout(SOURCE_URL, work_dir)

        assert not (work_dir / "stale.txt").exists()


class TestRemoteHead:
    """Tests for SourceFetcher.remote_head."""

    def test_first_present_branch(self, settings):
        responses = {
            "main": Mock(returncode=0, stdout="", stderr=""),
            "master": Mock(returncode=0, stdout="deadbeef\trefs/heads/master\n", stderr=""),
        }

        def run(cmd, **kwargs):
            return responses[cmd[-1]]

        with patch("services.source_fetcher.subprocess.run", side_effect=run):
            head = SourceFetcher(settings, "test-correlation-id").remote_head(SOURCE_URL)

        assert head == ("master", "deadbeef")

    def test_unreachable_remote(self, settings):
        with patch(
            "services.source_fetcher.subprocess.run",
            return_value=Mock(returncode=128, stdout="", stderr="fatal: repository not found"),
        ):
            head = SourceFetcher(settings, "test-correlation-id").remote_head(SOURCE_URL)

        assert head is None

    def test_missing_git_binary(self, settings):
        with patch("services.source_fetcher.subprocess.run", side_effect=FileNotFoundError("git")):
            head = SourceFetcher(settings, "test-correlation-id").remote_head(SOURCE_URL)

        assert head is None
