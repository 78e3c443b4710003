"""
Repository models — what a managed checkout should look like, and
where reconciliation left it.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class RepoState(str, Enum):
    """Reconciliation states, in the order a sync walks through them."""

    ABSENT = "absent"
    PRESENT = "present"
    FETCHED = "fetched"
    ON_BRANCH = "on_branch"
    DETACHED = "detached"


class RepoTarget(BaseModel):
    """A repository to keep checked out at ``reference``.

    ``reference`` may be a branch, a tag or a commit hash. Which one it
    is only becomes known after checkout.
    """

    model_config = ConfigDict(frozen=True)

    remote_url: str
    local_path: Path
    reference: str

    @property
    def name(self) -> str:
        return self.local_path.name


class SyncResult(BaseModel):
    """Terminal state of one RepoSync run."""

    target: RepoTarget
    state: RepoState
    commit: str = ""
    branch: str | None = None
    cloned: bool = False

    @property
    def detached(self) -> bool:
        return self.state == RepoState.DETACHED

    def summary(self) -> str:
        where = f"branch {self.branch}" if self.branch else "detached"
        short = self.commit[:12] if self.commit else "?"
        return f"{self.target.name} at {self.target.reference} ({where}, {short})"
