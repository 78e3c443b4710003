"""
Group membership — make sure a user belongs to a set of OS groups.

Reads membership with ``id``/``getent`` and changes it with
``sudo usermod -aG``. The change only takes effect in new login
sessions; the provisioner says so instead of trying to refresh the
current one.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from forge_provision.adapters.shell.command import ShellRunner
from forge_provision.core.errors import EnvironmentProblem

logger = logging.getLogger(__name__)


class GroupManager:
    def __init__(self, shell: ShellRunner):
        self.shell = shell

    def user_exists(self, user: str) -> bool:
        return self.shell.execute("id", [user]).ok

    def groups_of(self, user: str) -> set[str]:
        result = self.shell.run_checked("id", ["-nG", user])
        return set(result.stdout.split())

    def group_exists(self, group: str) -> bool:
        return self.shell.execute("getent", ["group", group]).ok

    def ensure_membership(self, user: str, groups: Sequence[str]) -> list[str]:
        """Add ``user`` to whichever of ``groups`` it is missing from.

        Returns:
            The groups that were added (empty when nothing changed).

        Raises:
            EnvironmentProblem: Unknown user or group, or no sudo.
        """
        if not self.user_exists(user):
            raise EnvironmentProblem(f"User {user} not found; set RENDER_USER=<name> if needed.")

        for group in groups:
            if not self.group_exists(group):
                raise EnvironmentProblem(f"Required group '{group}' does not exist on this system.")

        current = self.groups_of(user)
        missing = [g for g in groups if g not in current]
        if not missing:
            logger.info("%s already belongs to %s", user, " and ".join(groups))
            return []

        if self.shell.which("sudo") is None:
            raise EnvironmentProblem(f"sudo is required to modify group membership for {user}")

        logger.info("Adding %s to %s (sudo may prompt)", user, ", ".join(missing))
        self.shell.run_checked("sudo", ["usermod", "-aG", ",".join(missing), user], capture=False)
        return missing
