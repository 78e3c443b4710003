"""
Git client — the version-control operations repository sync needs.

Uses the git CLI through ShellRunner, never a library binding. Each
method is one git invocation; the reconciliation logic that strings
them together lives in core/services/repo_sync.py.
"""

from __future__ import annotations

import logging
from pathlib import Path

from forge_provision.adapters.shell.command import CommandResult, ShellRunner

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"

# What ``rev-parse --abbrev-ref HEAD`` prints when HEAD is detached
DETACHED_HEAD = "HEAD"


class GitClient:
    """Thin git wrapper bound to a ShellRunner."""

    def __init__(self, shell: ShellRunner, remote: str = DEFAULT_REMOTE):
        self.shell = shell
        self.remote = remote

    def is_repo(self, path: Path) -> bool:
        """Whether ``path`` holds version-control metadata."""
        return (path / ".git").exists()

    def clone(self, url: str, dest: Path) -> CommandResult:
        dest.parent.mkdir(parents=True, exist_ok=True)
        return self.shell.run_checked("git", ["clone", url, str(dest)])

    def fetch(self, repo: Path) -> CommandResult:
        """Fetch all branches of the remote."""
        return self._git(repo, "fetch", self.remote)

    def fetch_tags(self, repo: Path) -> CommandResult:
        """Fetch all tags, including ones no branch points at."""
        return self._git(repo, "fetch", self.remote, "--tags")

    def checkout(self, repo: Path, ref: str) -> CommandResult:
        return self._git(repo, "checkout", ref)

    def current_branch(self, repo: Path) -> str | None:
        """Name of the checked-out branch, or None when HEAD is detached."""
        result = self.shell.execute("git", ["rev-parse", "--abbrev-ref", "HEAD"], cwd=repo)
        if not result.ok:
            return None
        name = result.stdout.strip()
        if not name or name == DETACHED_HEAD:
            return None
        return name

    def pull_ff_only(self, repo: Path, branch: str) -> CommandResult:
        """Fast-forward ``branch``; returns the result without raising."""
        return self.shell.execute("git", ["pull", "--ff-only", self.remote, branch], cwd=repo)

    def head_commit(self, repo: Path) -> str:
        return self._git(repo, "rev-parse", "HEAD").stdout.strip()

    def commits_ahead(self, repo: Path, branch: str) -> int:
        """Commits on HEAD that the remote branch does not have."""
        result = self._git(repo, "rev-list", "--count", f"{self.remote}/{branch}..HEAD")
        return int(result.stdout.strip() or 0)

    def _git(self, repo: Path, *args: str) -> CommandResult:
        return self.shell.run_checked("git", list(args), cwd=repo)
