"""
Toolchain steps — everything that has to exist before any repository is
touched: Miniforge, render/video group membership, the workspace, the
conda environment, base Python tooling, Rust nightly and ROCm PyTorch.

Each function checks whether its goal already holds and only acts on
the difference. A function returns a detail string when it changed
something and ``Skip`` when it did not.
"""

from __future__ import annotations

import logging
import platform
import tempfile
from pathlib import Path

from forge_provision.adapters.identity import GroupManager
from forge_provision.adapters.packages.conda import CondaClient
from forge_provision.adapters.packages.pip import PipInstaller
from forge_provision.adapters.shell.command import ShellRunner
from forge_provision.adapters.shell.filesystem import ensure_symlink
from forge_provision.core.config.settings import ProvisionConfig
from forge_provision.core.errors import EnvironmentProblem
from forge_provision.core.models.step import Skip

logger = logging.getLogger(__name__)

MINIFORGE_RELEASES = "https://github.com/conda-forge/miniforge/releases/latest/download"
RUSTUP_INSTALL = "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y"
RUST_TOOLCHAIN = "nightly"

RENDER_GROUPS = ("render", "video")

BASE_CONDA_PACKAGES = ("libunwind",)
BASE_PIP_PACKAGES = ("pip", "setuptools", "wheel")

TORCH_VERSION = "2.9.0+rocm6.4"
TORCH_PACKAGES = (f"torch=={TORCH_VERSION}", "torchvision", "torchaudio")
TORCH_INDEX_URL = "https://download.pytorch.org/whl/rocm6.4"

# versioned soname bundled in torch/lib → unversioned library it should resolve to
ROCM_LIBRARY_LINKS = (
    ("libamdhip64.so.6", "libamdhip64.so"),
    ("libhsa-runtime64.so.1", "libhsa-runtime64.so"),
    ("librccl.so.1", "librccl.so"),
    ("librocprofiler-register.so.0", "librocprofiler-register.so"),
    ("librocm_smi64.so.7", "librocm_smi64.so"),
    ("libdrm.so.2", "libdrm.so"),
    ("libdrm_amdgpu.so.1", "libdrm_amdgpu.so"),
)

_TORCH_VERSION_PROBE = "import torch; print(torch.__version__)"
_TORCH_LIB_PROBE = "import os, torch; print(os.path.join(os.path.dirname(torch.__file__), 'lib'))"


# ── Miniforge ──────────────────────────────────────────────────────


def miniforge_installer_name() -> str:
    return f"Miniforge3-{platform.system()}-{platform.machine()}.sh"


def ensure_curl(shell: ShellRunner) -> None:
    """Make curl available, installing it through apt-get if possible."""
    if shell.which("curl"):
        return
    if not shell.which("apt-get"):
        raise EnvironmentProblem(
            "curl is required to bootstrap Miniforge but automatic installation "
            "is unsupported on this system."
        )
    if not shell.which("sudo"):
        raise EnvironmentProblem("curl is missing and sudo is unavailable to install it.")

    logger.info("curl not found; installing via apt-get (sudo may prompt)")
    shell.run_checked("sudo", ["apt-get", "update"], capture=False)
    shell.run_checked("sudo", ["apt-get", "install", "-y", "curl"], capture=False)


def ensure_miniforge(config: ProvisionConfig, shell: ShellRunner) -> str | Skip:
    if config.miniforge_dir.is_dir():
        logger.info("Found Miniforge at %s", config.miniforge_dir)
        return Skip(f"found at {config.miniforge_dir}")

    ensure_curl(shell)

    installer = miniforge_installer_name()
    url = f"{MINIFORGE_RELEASES}/{installer}"
    installer_path = Path(tempfile.gettempdir()) / installer

    logger.info("Miniforge not found; downloading %s", url)
    shell.run_checked("curl", ["-L", "-o", str(installer_path), url], capture=False)
    try:
        logger.info("Installing Miniforge into %s", config.miniforge_dir)
        shell.run_checked(
            "bash",
            [str(installer_path), "-b", "-p", str(config.miniforge_dir)],
            capture=False,
        )
    finally:
        installer_path.unlink(missing_ok=True)
    return f"installed into {config.miniforge_dir}"


# ── Host setup ─────────────────────────────────────────────────────


def ensure_render_group(config: ProvisionConfig, shell: ShellRunner) -> str | Skip:
    added = GroupManager(shell).ensure_membership(config.render_user, RENDER_GROUPS)
    if not added:
        return Skip(f"{config.render_user} already in {', '.join(RENDER_GROUPS)}")
    logger.warning(
        "Group changes recorded; open a new shell or run 'newgrp render' for them to take effect."
    )
    return f"added {config.render_user} to {', '.join(added)}"


def ensure_workspace(config: ProvisionConfig) -> str | Skip:
    if config.workspace.is_dir():
        return Skip(f"{config.workspace} exists")
    config.workspace.mkdir(parents=True)
    return f"created {config.workspace}"


# ── Python environment ─────────────────────────────────────────────


def ensure_conda_env(config: ProvisionConfig, conda: CondaClient) -> str | Skip:
    if conda.env_exists(config.env_name):
        logger.info("Found existing conda environment %s", config.env_name)
        return Skip(f"environment {config.env_name} exists")
    conda.create_env(config.env_name, config.python_version)
    return f"created {config.env_name} (python={config.python_version})"


def install_base_packages(config: ProvisionConfig, conda: CondaClient, pip: PipInstaller) -> str:
    conda.install(config.env_name, BASE_CONDA_PACKAGES)
    logger.info("Upgrading %s", "/".join(BASE_PIP_PACKAGES))
    pip.upgrade(*BASE_PIP_PACKAGES)
    logger.info("Installing uv")
    pip.upgrade("uv")
    return "libunwind, pip, setuptools, wheel, uv"


def ensure_rust(config: ProvisionConfig, shell: ShellRunner) -> str:
    env = config.activated_env()
    if shell.which("rustup", env=env) is None:
        if not shell.which("curl"):
            raise EnvironmentProblem("curl is required to install rustup")
        logger.info("Installing rustup")
        shell.run_checked("sh", ["-c", RUSTUP_INSTALL], capture=False)
    else:
        logger.info("rustup already installed")

    logger.info("Ensuring %s toolchain", RUST_TOOLCHAIN)
    shell.run_checked("rustup", ["toolchain", "install", RUST_TOOLCHAIN], env=env, capture=False)
    shell.run_checked("rustup", ["default", RUST_TOOLCHAIN], env=env)
    return f"rust {RUST_TOOLCHAIN} is the default toolchain"


# ── PyTorch ────────────────────────────────────────────────────────


def installed_torch_version(pip: PipInstaller) -> str | None:
    result = pip.query(_TORCH_VERSION_PROBE)
    if not result.ok:
        return None
    lines = result.stdout.strip().splitlines()
    return lines[-1].strip() if lines else None


def torch_lib_dir(pip: PipInstaller) -> Path:
    result = pip.query(_TORCH_LIB_PROBE)
    lines = result.stdout.strip().splitlines()
    if not result.ok or not lines:
        raise EnvironmentProblem(f"Cannot locate torch in {pip.python}: {result.describe()}")
    return Path(lines[-1].strip())


def relink_rocm_libraries(lib_dir: Path) -> int:
    """Point torch's bundled ROCm sonames at the unversioned libraries.

    Returns:
        Number of links that had to change.
    """
    changed = 0
    for soname, target in ROCM_LIBRARY_LINKS:
        if ensure_symlink(lib_dir / soname, target):
            changed += 1
    return changed


def install_torch_stack(pip: PipInstaller) -> str:
    version = installed_torch_version(pip)
    if version == TORCH_VERSION:
        logger.info("torch %s already installed", version)
    else:
        logger.info("Installing ROCm PyTorch stack via uv (found %s)", version or "none")
        pip.uv_install(*TORCH_PACKAGES, "--index-url", TORCH_INDEX_URL, "--force-reinstall")

    lib_dir = torch_lib_dir(pip)
    logger.info("Adjusting ROCm shared library symlinks in %s", lib_dir)
    relinked = relink_rocm_libraries(lib_dir)
    return f"torch {TORCH_VERSION}, {relinked} library link(s) updated"
