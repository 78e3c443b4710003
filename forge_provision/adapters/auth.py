"""
Hugging Face login — token or interactive authentication via the ``hf`` CLI.
"""

from __future__ import annotations

import logging

from forge_provision.adapters.packages.pip import PipInstaller
from forge_provision.adapters.shell.command import ShellRunner
from forge_provision.core.models.step import Skip

logger = logging.getLogger(__name__)

HF_CLI = "hf"
HF_CLI_PACKAGE = "huggingface_hub[cli]"


class HuggingFaceLogin:
    """Authenticate the ``hf`` CLI inside the provisioned environment."""

    def __init__(self, shell: ShellRunner, pip: PipInstaller):
        self.shell = shell
        self.pip = pip

    def cli_available(self) -> bool:
        return self.shell.which(HF_CLI, env=self.pip.env) is not None

    def ensure_cli(self) -> bool:
        """Install huggingface_hub[cli] if ``hf`` is missing."""
        if not self.cli_available():
            logger.info("Installing %s", HF_CLI_PACKAGE)
            self.pip.upgrade(HF_CLI_PACKAGE)
        return self.cli_available()

    def login(self, token: str | None) -> str | Skip:
        """Log in with ``token``, or interactively when there is none.

        An interactive login that fails or is aborted is not fatal; the
        user can run ``hf auth login`` later.
        """
        if not self.ensure_cli():
            logger.warning("hf CLI is still unavailable; install huggingface_hub manually to login")
            return Skip("hf CLI unavailable")

        if token:
            self.shell.run_checked(
                HF_CLI, ["auth", "login", "--token", token], env=self.pip.env, redact=[token]
            )
            return "logged in with token"

        result = self.shell.execute(HF_CLI, ["auth", "login"], env=self.pip.env, capture=False)
        if not result.ok:
            logger.warning("hf auth login skipped (run manually later)")
            return Skip("interactive login skipped")
        return "logged in interactively"
