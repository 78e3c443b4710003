"""
Domain models for the provisioner.

    from forge_provision.core.models import ProvisioningStep, StepOutcome, RepoTarget, PatchSpec
"""

from forge_provision.core.models.patch import PatchResult, PatchSpec
from forge_provision.core.models.repo import RepoState, RepoTarget, SyncResult
from forge_provision.core.models.step import (
    ProvisioningStep,
    Skip,
    StepOutcome,
    StepStatus,
)

__all__ = [
    # patch.py
    "PatchResult",
    "PatchSpec",
    # step.py
    "ProvisioningStep",
    # repo.py
    "RepoState",
    "RepoTarget",
    "Skip",
    "StepOutcome",
    "StepStatus",
    "SyncResult",
]
