"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from forge_provision.adapters.mock import MockShellRunner
from forge_provision.core.config.settings import ProvisionConfig
from tests.helpers import commit_file, git


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """The CLI reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def mock_shell() -> MockShellRunner:
    """A shell runner that records commands and never executes them."""
    return MockShellRunner()


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    """Configuration rooted in a temporary home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return ProvisionConfig.from_env(
        {
            "HOME": str(home),
            "USER": "forge",
            "PATH": "/usr/bin:/bin",
        }
    )


@pytest.fixture
def upstream(tmp_path: Path) -> Path:
    """A local 'remote' repository on branch main, with tag v1.0 on its
    first commit and a second commit on top.
    """
    repo = tmp_path / "upstream"
    repo.mkdir()
    git("init", "-q", cwd=repo)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=repo)
    commit_file(repo, "README", "one\n", "first")
    git("tag", "v1.0", cwd=repo)
    commit_file(repo, "README", "two\n", "second")
    return repo
