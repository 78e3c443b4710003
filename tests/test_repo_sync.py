"""
Tests for repository reconciliation.

Mock tests pin the exact git command sequence; the real-git tests run
the same sync against a throwaway local remote.
"""

from pathlib import Path

import pytest

from forge_provision.adapters.mock import MockShellRunner
from forge_provision.adapters.shell.command import ShellRunner
from forge_provision.adapters.vcs.git import GitClient
from forge_provision.core.errors import CommandError, ReconciliationConflict
from forge_provision.core.models.repo import RepoState, RepoTarget
from forge_provision.core.services.repo_sync import RepoSync
from tests.helpers import commit_file, git, requires_git


def _make_repo_dir(result):
    Path(result.command[-1], ".git").mkdir(parents=True)


def _git_args(shell: MockShellRunner) -> list[list[str]]:
    return [c.command[1:] for c in shell.calls("git")]


# ── Command sequence (mocked git) ────────────────────────────────────


class TestSyncSequence:
    @pytest.fixture
    def target(self, tmp_path: Path) -> RepoTarget:
        return RepoTarget(
            remote_url="https://example.invalid/repo.git",
            local_path=tmp_path / "ws" / "repo",
            reference="v1.0",
        )

    def test_absent_repo_with_tag(self, mock_shell: MockShellRunner, target: RepoTarget):
        mock_shell.set_response("git", "clone", effect=_make_repo_dir)
        mock_shell.set_response("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="HEAD\n")
        mock_shell.set_response("git", "rev-parse", "HEAD", stdout="0123456789abcdef\n")

        result = RepoSync(GitClient(mock_shell)).sync(target)

        path = str(target.local_path)
        assert _git_args(mock_shell) == [
            ["clone", target.remote_url, path],
            ["fetch", "origin"],
            ["fetch", "origin", "--tags"],
            ["checkout", "v1.0"],
            ["rev-parse", "--abbrev-ref", "HEAD"],
            ["rev-parse", "HEAD"],
        ]
        assert all(c.cwd == path for c in mock_shell.calls("git")[1:])
        assert result.state == RepoState.DETACHED
        assert result.detached
        assert result.cloned
        assert result.branch is None
        assert result.commit == "0123456789abcdef"
        assert not mock_shell.calls("git", "pull")

    def test_existing_repo_is_not_recloned(self, mock_shell: MockShellRunner, target: RepoTarget):
        (target.local_path / ".git").mkdir(parents=True)

        result = RepoSync(GitClient(mock_shell)).sync(target)

        assert not mock_shell.calls("git", "clone")
        assert _git_args(mock_shell)[:3] == [
            ["fetch", "origin"],
            ["fetch", "origin", "--tags"],
            ["checkout", "v1.0"],
        ]
        assert not result.cloned

    def test_branch_is_fast_forwarded(self, mock_shell: MockShellRunner, target: RepoTarget):
        (target.local_path / ".git").mkdir(parents=True)
        target = target.model_copy(update={"reference": "main"})
        mock_shell.set_response("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main\n")
        mock_shell.set_response("git", "rev-list", stdout="0\n")

        result = RepoSync(GitClient(mock_shell)).sync(target)

        assert result.state == RepoState.ON_BRANCH
        assert result.branch == "main"
        pulls = mock_shell.calls("git", "pull")
        assert [c.command[1:] for c in pulls] == [["pull", "--ff-only", "origin", "main"]]
        assert mock_shell.calls("git", "rev-list", "--count", "origin/main..HEAD")

    def test_unreadable_head_counts_as_detached(self, mock_shell: MockShellRunner, target: RepoTarget):
        (target.local_path / ".git").mkdir(parents=True)
        mock_shell.set_failure("git", "rev-parse", "--abbrev-ref")

        result = RepoSync(GitClient(mock_shell)).sync(target)

        assert result.detached
        assert not mock_shell.calls("git", "pull")

    def test_pull_failure_is_a_conflict(self, mock_shell: MockShellRunner, target: RepoTarget):
        (target.local_path / ".git").mkdir(parents=True)
        mock_shell.set_response("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main\n")
        mock_shell.set_failure("git", "pull", stderr="fatal: Not possible to fast-forward, aborting.")

        with pytest.raises(ReconciliationConflict, match="cannot be fast-forwarded"):
            RepoSync(GitClient(mock_shell)).sync(target)

    def test_local_commits_ahead_are_a_conflict(self, mock_shell: MockShellRunner, target: RepoTarget):
        (target.local_path / ".git").mkdir(parents=True)
        mock_shell.set_response("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main\n")
        mock_shell.set_response("git", "rev-list", stdout="2\n")

        with pytest.raises(ReconciliationConflict, match="2 local commit"):
            RepoSync(GitClient(mock_shell)).sync(target)

    def test_unknown_reference_fails_checkout(self, mock_shell: MockShellRunner, target: RepoTarget):
        (target.local_path / ".git").mkdir(parents=True)
        mock_shell.set_failure(
            "git", "checkout", stderr="error: pathspec 'v1.0' did not match any file(s) known to git"
        )

        with pytest.raises(CommandError, match="pathspec"):
            RepoSync(GitClient(mock_shell)).sync(target)

    def test_clone_failure_propagates(self, mock_shell: MockShellRunner, target: RepoTarget):
        mock_shell.set_failure("git", "clone", stderr="fatal: repository not found", returncode=128)

        with pytest.raises(CommandError) as exc:
            RepoSync(GitClient(mock_shell)).sync(target)

        assert exc.value.result.returncode == 128
        assert not mock_shell.calls("git", "fetch")


# ── Real repositories ────────────────────────────────────────────────


@requires_git
class TestSyncWithGit:
    def _target(self, upstream: Path, tmp_path: Path, reference: str) -> RepoTarget:
        return RepoTarget(
            remote_url=str(upstream),
            local_path=tmp_path / "workspace" / "clone",
            reference=reference,
        )

    def test_tag_checkout_is_detached(self, upstream: Path, tmp_path: Path):
        target = self._target(upstream, tmp_path, "v1.0")
        sync = RepoSync(GitClient(ShellRunner()))

        result = sync.sync(target)

        assert result.detached
        assert result.cloned
        assert result.commit == git("rev-parse", "v1.0^{commit}", cwd=upstream)
        assert (target.local_path / "README").read_text() == "one\n"

    def test_second_sync_is_a_noop(self, upstream: Path, tmp_path: Path):
        target = self._target(upstream, tmp_path, "v1.0")
        sync = RepoSync(GitClient(ShellRunner()))

        first = sync.sync(target)
        second = sync.sync(target)

        assert not second.cloned
        assert second.commit == first.commit
        assert git("status", "--porcelain", cwd=target.local_path) == ""

    def test_branch_follows_upstream(self, upstream: Path, tmp_path: Path):
        target = self._target(upstream, tmp_path, "main")
        sync = RepoSync(GitClient(ShellRunner()))
        sync.sync(target)

        new_tip = commit_file(upstream, "README", "three\n", "third")
        result = sync.sync(target)

        assert result.branch == "main"
        assert result.commit == new_tip
        assert (target.local_path / "README").read_text() == "three\n"

    def test_commit_hash_is_detached(self, upstream: Path, tmp_path: Path):
        first = git("rev-list", "--max-parents=0", "HEAD", cwd=upstream)
        target = self._target(upstream, tmp_path, first)

        result = RepoSync(GitClient(ShellRunner())).sync(target)

        assert result.detached
        assert result.commit == first

    def test_moves_existing_clone_between_references(self, upstream: Path, tmp_path: Path):
        sync = RepoSync(GitClient(ShellRunner()))
        sync.sync(self._target(upstream, tmp_path, "main"))

        result = sync.sync(self._target(upstream, tmp_path, "v1.0"))

        assert result.detached
        assert not result.cloned

    def test_local_commits_are_never_discarded(self, upstream: Path, tmp_path: Path):
        target = self._target(upstream, tmp_path, "main")
        sync = RepoSync(GitClient(ShellRunner()))
        sync.sync(target)
        local = commit_file(target.local_path, "NOTES", "mine\n", "local work")

        with pytest.raises(ReconciliationConflict, match="local commit"):
            sync.sync(target)

        assert git("rev-parse", "HEAD", cwd=target.local_path) == local

    def test_diverged_branch_is_a_conflict(self, upstream: Path, tmp_path: Path):
        target = self._target(upstream, tmp_path, "main")
        sync = RepoSync(GitClient(ShellRunner()))
        sync.sync(target)
        local = commit_file(target.local_path, "NOTES", "mine\n", "local work")
        commit_file(upstream, "README", "theirs\n", "upstream work")

        with pytest.raises(ReconciliationConflict):
            sync.sync(target)

        assert git("rev-parse", "HEAD", cwd=target.local_path) == local
        assert (target.local_path / "NOTES").read_text() == "mine\n"
