"""
Forge stack steps — source checkouts, their installs, and the patches
applied on top of them.

Every repository goes through RepoSync first, so re-running a step
against an existing checkout only fetches and moves it to the pinned
reference before reinstalling.
"""

from __future__ import annotations

import logging
import resource
from pathlib import Path

from forge_provision.adapters.packages.pip import PipInstaller
from forge_provision.core.config.settings import ProvisionConfig
from forge_provision.core.models.patch import PatchResult
from forge_provision.core.models.repo import RepoTarget
from forge_provision.core.models.step import Skip
from forge_provision.core.services.patcher import SourcePatcher
from forge_provision.core.services.patches import (
    torchstore_controller_patch,
    torchtitan_determinism_patch,
)
from forge_provision.core.services.repo_sync import RepoSync

logger = logging.getLogger(__name__)

VLLM_URL = "https://github.com/vllm-project/vllm.git"
TORCHTITAN_URL = "https://github.com/pytorch/torchtitan.git"
TORCHFORGE_URL = "https://github.com/meta-pytorch/torchforge.git"
MONARCH_URL = "https://github.com/AMD-AGI/monarch.git"

TORCHSTORE_REQUIREMENT = "torchstore==0.1.2"
MONARCH_OPEN_FILES = 2048

_TORCHSTORE_CONTROLLER_PROBE = (
    "import inspect, torchstore.controller as c; print(inspect.getfile(c))"
)


def repo_targets(config: ProvisionConfig) -> dict[str, RepoTarget]:
    """The managed checkouts, keyed by directory name under the workspace."""
    refs = {
        "vllm": (VLLM_URL, config.vllm_ref),
        "torchtitan": (TORCHTITAN_URL, config.torchtitan_ref),
        "torchforge": (TORCHFORGE_URL, config.torchforge_ref),
        "monarch": (MONARCH_URL, config.monarch_ref),
    }
    return {
        name: RepoTarget(remote_url=url, local_path=config.workspace / name, reference=ref)
        for name, (url, ref) in refs.items()
    }


# ── Repository setups ──────────────────────────────────────────────


def setup_vllm(target: RepoTarget, sync: RepoSync, pip: PipInstaller) -> str:
    result = sync.sync(target)
    dest = target.local_path

    pip.install("-r", "requirements/rocm.txt", cwd=dest)
    pip.install("--upgrade", "cmake>=3.27", "ninja")
    pip.install("amdsmi==6.4.2")

    logger.info("Installing vLLM in editable mode (ROCm)")
    pip.install("-e", ".", "--no-build-isolation", cwd=dest)
    return result.summary()


def setup_torchtitan(target: RepoTarget, sync: RepoSync, pip: PipInstaller) -> str:
    result = sync.sync(target)
    pip.install("-r", "requirements.txt", cwd=target.local_path)
    pip.install("-e", ".", cwd=target.local_path)
    return result.summary()


def install_torchstore(pip: PipInstaller) -> str:
    logger.info("Installing %s", TORCHSTORE_REQUIREMENT)
    pip.install(TORCHSTORE_REQUIREMENT)
    return TORCHSTORE_REQUIREMENT


def setup_torchforge(target: RepoTarget, sync: RepoSync, pip: PipInstaller) -> str:
    result = sync.sync(target)
    pip.install("-e", ".[dev]", cwd=target.local_path)
    # torchforge pulls in the upstream monarch wheel; the fork is built below
    pip.uninstall("torchmonarch")
    return result.summary()


def raise_open_file_limit(minimum: int) -> bool:
    """Raise this process's soft RLIMIT_NOFILE to ``minimum`` (children inherit it)."""
    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if soft == resource.RLIM_INFINITY or soft >= minimum:
        return True
    if hard != resource.RLIM_INFINITY and hard < minimum:
        logger.warning(
            "Unable to raise open file limit to %d (hard limit %d), continuing anyway",
            minimum,
            hard,
        )
        return False
    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (minimum, hard))
    except (ValueError, OSError) as e:
        logger.warning("Unable to raise open file limit to %d (%s), continuing anyway", minimum, e)
        return False
    return True


def setup_monarch(
    config: ProvisionConfig,
    target: RepoTarget,
    sync: RepoSync,
    pip: PipInstaller,
) -> str:
    result = sync.sync(target)
    dest = target.local_path

    pip.uv_install("-r", "build-requirements.txt", cwd=dest)
    raise_open_file_limit(MONARCH_OPEN_FILES)
    pip.uv_install(
        "--no-build-isolation",
        "-e",
        ".",
        cwd=dest,
        env={"LIBRARY_PATH": str(config.env_prefix / "lib")},
    )
    return result.summary()


# ── Patches ────────────────────────────────────────────────────────


def _as_step_result(result: PatchResult) -> str | Skip:
    if result.applied:
        return f"patched {result.path}"
    return Skip(result.reason)


def patch_torchtitan(config: ProvisionConfig, patcher: SourcePatcher) -> str | Skip:
    spec = torchtitan_determinism_patch(config.workspace / "torchtitan")
    return _as_step_result(patcher.apply(spec))


def locate_torchstore_controller(pip: PipInstaller) -> Path | None:
    """Source file of ``torchstore.controller`` in the environment, if importable."""
    result = pip.query(_TORCHSTORE_CONTROLLER_PROBE)
    lines = result.stdout.strip().splitlines()
    if not result.ok or not lines:
        logger.warning("torchstore.controller is not importable: %s", result.describe())
        return None
    return Path(lines[-1].strip()).resolve()


def patch_torchstore(pip: PipInstaller, patcher: SourcePatcher) -> str | Skip:
    path = locate_torchstore_controller(pip)
    if path is None:
        return Skip("torchstore.controller not importable")
    logger.info("Making torchstore controller APIs async")
    return _as_step_result(patcher.apply(torchstore_controller_patch(path)))
