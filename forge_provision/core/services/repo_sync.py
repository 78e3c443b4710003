"""
Repository reconciliation — bring a clone to an exact reference.

From any starting point (no clone, clone up to date, clone stale, clone
on the wrong branch) a sync walks the same path:

    absent ─clone─▶ present ─fetch, fetch --tags─▶ fetched ─checkout─▶
        ├─ on a branch ─pull --ff-only─▶ done
        └─ detached ─────────────────────▶ done

Whether the reference is a branch is read back from the repository after
checkout. A branch moves upstream and is fast-forwarded; a tag or commit
is immutable and needs nothing further. History is never discarded: a
branch that cannot fast-forward, or that carries local commits the
remote lacks, is a ReconciliationConflict.
"""

from __future__ import annotations

import logging

from forge_provision.adapters.vcs.git import GitClient
from forge_provision.core.errors import ReconciliationConflict
from forge_provision.core.models.repo import RepoState, RepoTarget, SyncResult

logger = logging.getLogger(__name__)


class RepoSync:
    """Reconcile local clones against RepoTargets."""

    def __init__(self, git: GitClient):
        self.git = git

    def sync(self, target: RepoTarget) -> SyncResult:
        """Make ``target.local_path`` reflect ``target.reference``.

        Raises:
            CommandError: A git command failed (clone, fetch, checkout).
            ReconciliationConflict: The branch cannot be fast-forwarded
                to the remote tip.
        """
        path = target.local_path
        cloned = False

        state = RepoState.PRESENT if self.git.is_repo(path) else RepoState.ABSENT
        if state == RepoState.ABSENT:
            logger.info("Cloning %s into %s", target.remote_url, path)
            self.git.clone(target.remote_url, path)
            cloned = True
            state = RepoState.PRESENT
        else:
            logger.info("Reusing existing repo at %s", path)

        self.git.fetch(path)
        self.git.fetch_tags(path)
        state = RepoState.FETCHED

        self.git.checkout(path, target.reference)
        branch = self.git.current_branch(path)
        state = RepoState.ON_BRANCH if branch else RepoState.DETACHED
        logger.debug("%s: %s after checkout of %s", target.name, state.value, target.reference)

        if branch:
            self._fast_forward(target, branch)

        result = SyncResult(
            target=target,
            state=state,
            commit=self.git.head_commit(path),
            branch=branch,
            cloned=cloned,
        )
        logger.info("%s", result.summary())
        return result

    def _fast_forward(self, target: RepoTarget, branch: str) -> None:
        path = target.local_path
        pulled = self.git.pull_ff_only(path, branch)
        if not pulled.ok:
            raise ReconciliationConflict(
                f"{path}: branch '{branch}' cannot be fast-forwarded to "
                f"{self.git.remote}/{branch} ({pulled.describe()})"
            )

        ahead = self.git.commits_ahead(path, branch)
        if ahead:
            raise ReconciliationConflict(
                f"{path}: branch '{branch}' has {ahead} local commit(s) "
                f"not on {self.git.remote}/{branch}"
            )
