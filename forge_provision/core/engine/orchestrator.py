"""
Orchestrator — the fixed provisioning step graph.

Declares, once and in order, every step that brings a host to the forge
stack's target state, and hands them to the StepRunner:

    toolchain bootstrap → environment creation → package installs →
    repository syncs → patches → credential login

The step tuple is built at construction and never changes afterwards.
"""

from __future__ import annotations

import logging
from functools import partial

from forge_provision.adapters.auth import HuggingFaceLogin
from forge_provision.adapters.packages.conda import CondaClient
from forge_provision.adapters.packages.pip import PipInstaller
from forge_provision.adapters.shell.command import ShellRunner
from forge_provision.adapters.vcs.git import GitClient
from forge_provision.core.config.settings import ProvisionConfig
from forge_provision.core.engine.runner import RunReport, StepRunner
from forge_provision.core.models.step import ProvisioningStep
from forge_provision.core.services import stack, toolchain
from forge_provision.core.services.patcher import SourcePatcher
from forge_provision.core.services.repo_sync import RepoSync

logger = logging.getLogger(__name__)


class Orchestrator:
    """Wire the provisioning steps for one configuration.

    Args:
        config: Resolved configuration.
        shell: Runner for every external command.
        runner: Step runner (default: a fresh StepRunner).
        patcher: Source patcher (default: a fresh SourcePatcher).
    """

    def __init__(
        self,
        config: ProvisionConfig,
        shell: ShellRunner,
        runner: StepRunner | None = None,
        patcher: SourcePatcher | None = None,
    ):
        self.config = config
        self.shell = shell
        self.runner = runner or StepRunner()
        self.patcher = patcher or SourcePatcher()

        self.sync = RepoSync(GitClient(shell))
        self.conda = CondaClient(shell, config.conda)
        self.pip = PipInstaller(shell, config.env_python, env=config.activated_env())
        self.repos = stack.repo_targets(config)

        self._steps = tuple(self._declare())
        _check_unique(self._steps)

    @property
    def steps(self) -> tuple[ProvisioningStep, ...]:
        return self._steps

    def run(self) -> RunReport:
        logger.info("Workspace root: %s", self.config.workspace)
        logger.info(
            "HYPERACTOR_CODEC_MAX_FRAME_LENGTH set to %d",
            self.config.hyperactor_codec_max_frame_length,
        )
        report = self.runner.run(self._steps)
        if report.ok:
            logger.info("Forge stack setup complete!")
        return report

    def _declare(self) -> list[ProvisioningStep]:
        config, shell, pip = self.config, self.shell, self.pip
        repos = self.repos

        return [
            ProvisioningStep(
                "miniforge",
                partial(toolchain.ensure_miniforge, config, shell),
                "Install Miniforge",
            ),
            ProvisioningStep(
                "render-group",
                partial(toolchain.ensure_render_group, config, shell),
                f"Ensure {config.render_user} is in the render and video groups",
            ),
            ProvisioningStep(
                "workspace",
                partial(toolchain.ensure_workspace, config),
                f"Create workspace {config.workspace}",
            ),
            ProvisioningStep(
                "conda-env",
                partial(toolchain.ensure_conda_env, config, self.conda),
                f"Create conda environment {config.env_name}",
            ),
            ProvisioningStep(
                "base-packages",
                partial(toolchain.install_base_packages, config, self.conda, pip),
                "Install base packages",
            ),
            ProvisioningStep(
                "rust",
                partial(toolchain.ensure_rust, config, shell),
                "Set up the Rust nightly toolchain",
            ),
            ProvisioningStep(
                "torch",
                partial(toolchain.install_torch_stack, pip),
                "Install the ROCm PyTorch stack",
            ),
            ProvisioningStep(
                "vllm",
                partial(stack.setup_vllm, repos["vllm"], self.sync, pip),
                f"Set up vLLM at {config.vllm_ref}",
            ),
            ProvisioningStep(
                "torchtitan",
                partial(stack.setup_torchtitan, repos["torchtitan"], self.sync, pip),
                f"Set up torchtitan at {config.torchtitan_ref}",
            ),
            ProvisioningStep(
                "torchstore",
                partial(stack.install_torchstore, pip),
                "Install torchstore",
            ),
            ProvisioningStep(
                "torchforge",
                partial(stack.setup_torchforge, repos["torchforge"], self.sync, pip),
                f"Set up torchforge at {config.torchforge_ref}",
            ),
            ProvisioningStep(
                "monarch",
                partial(stack.setup_monarch, config, repos["monarch"], self.sync, pip),
                f"Set up monarch at {config.monarch_ref}",
            ),
            ProvisioningStep(
                "patch-torchtitan",
                partial(stack.patch_torchtitan, config, self.patcher),
                "Patch torchtitan determinism call",
            ),
            ProvisioningStep(
                "patch-torchstore",
                partial(stack.patch_torchstore, pip, self.patcher),
                "Patch torchstore controller to async",
            ),
            ProvisioningStep(
                "huggingface-login",
                partial(HuggingFaceLogin(shell, pip).login, config.hf_token),
                "Log in to Hugging Face",
            ),
        ]


def _check_unique(steps: tuple[ProvisioningStep, ...]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate step name: {step.name}")
        seen.add(step.name)
