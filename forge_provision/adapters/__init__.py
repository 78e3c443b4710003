"""Adapters — bindings to the external tools the provisioner drives.

Public re-exports for convenient access.
"""

from forge_provision.adapters.mock import MockShellRunner
from forge_provision.adapters.shell.command import CommandResult, ShellRunner
from forge_provision.adapters.vcs.git import GitClient

__all__ = [
    "CommandResult",
    "GitClient",
    "MockShellRunner",
    "ShellRunner",
]
