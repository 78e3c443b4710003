"""
Provisioning configuration — environment variables over hardcoded defaults.

ProvisionConfig is built once at startup from the process environment
and handed to every component. Nothing else in the package reads
environment variables for configuration.

Each field is overridable by the variable of the same (upper-case) name.
Empty variables count as unset.
"""

from __future__ import annotations

import getpass
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# The original setup script shipped this placeholder for HF_TOKEN
PLACEHOLDER_HF_TOKEN = "hf_your_token"

DEFAULT_ENV_NAME = "forge-env"
DEFAULT_PYTHON_VERSION = "3.12"
DEFAULT_VLLM_REF = "v0.10.0"
DEFAULT_TORCHTITAN_REF = "61c25f8d3bf1792f6c4b80417b9a1f5dd464deaf"
DEFAULT_TORCHFORGE_REF = "6b65eb416ae42930e5f7ce69a5b1cf59b8ee7862"
DEFAULT_MONARCH_REF = "xinyu/rdma"
DEFAULT_VLLM_TARGET_DEVICE = "rocm"
DEFAULT_PYTORCH_ROCM_ARCH = "gfx942"
DEFAULT_FRAME_LENGTH = 134217728

# field name → environment variable
ENV_VARS: dict[str, str] = {
    "miniforge_dir": "MINIFORGE_DIR",
    "env_name": "ENV_NAME",
    "python_version": "PYTHON_VERSION",
    "workspace": "WORKSPACE",
    "vllm_ref": "VLLM_REF",
    "torchtitan_ref": "TORCHTITAN_REF",
    "torchforge_ref": "TORCHFORGE_REF",
    "monarch_ref": "MONARCH_REF",
    "render_user": "RENDER_USER",
    "hf_token": "HF_TOKEN",
    "vllm_target_device": "VLLM_TARGET_DEVICE",
    "pytorch_rocm_arch": "PYTORCH_ROCM_ARCH",
    "hyperactor_codec_max_frame_length": "HYPERACTOR_CODEC_MAX_FRAME_LENGTH",
}


class ConfigError(Exception):
    """Raised when the provisioning configuration is invalid."""


class ProvisionConfig(BaseModel):
    """Everything the provisioning steps are parameterised on."""

    model_config = ConfigDict(frozen=True)

    home: Path
    search_path: str = ""   # PATH inherited from the invoking shell

    miniforge_dir: Path
    env_name: str = DEFAULT_ENV_NAME
    python_version: str = DEFAULT_PYTHON_VERSION
    workspace: Path

    vllm_ref: str = DEFAULT_VLLM_REF
    torchtitan_ref: str = DEFAULT_TORCHTITAN_REF
    torchforge_ref: str = DEFAULT_TORCHFORGE_REF
    monarch_ref: str = DEFAULT_MONARCH_REF

    render_user: str
    hf_token: str | None = Field(default=None, repr=False)

    # Accelerator / build flags exported to every child process
    vllm_target_device: str = DEFAULT_VLLM_TARGET_DEVICE
    pytorch_rocm_arch: str = DEFAULT_PYTORCH_ROCM_ARCH
    hyperactor_codec_max_frame_length: int = DEFAULT_FRAME_LENGTH

    @field_validator(
        "env_name",
        "python_version",
        "vllm_ref",
        "torchtitan_ref",
        "torchforge_ref",
        "monarch_ref",
        "render_user",
        "vllm_target_device",
        "pytorch_rocm_arch",
    )
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("hyperactor_codec_max_frame_length")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive number of bytes")
        return value

    @field_validator("hf_token")
    @classmethod
    def _real_token(cls, value: str | None) -> str | None:
        if value is None or not value.strip() or value == PLACEHOLDER_HF_TOKEN:
            return None
        return value.strip()

    # ── Construction ────────────────────────────────────────────

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> ProvisionConfig:
        """Build the configuration from an environment mapping.

        Raises:
            ConfigError: If a value is invalid.
        """

        def get(key: str) -> str | None:
            value = environ.get(key)
            return value if value else None

        home = Path(get("HOME") or Path.home())
        current_user = get("USER") or get("LOGNAME") or getpass.getuser()

        data: dict[str, Any] = {
            "home": home,
            "search_path": get("PATH") or "",
            "miniforge_dir": home / "miniforge3",
            "workspace": home / "forge-workspace",
            "render_user": get("SUDO_USER") or current_user,
        }
        for field, var in ENV_VARS.items():
            value = get(var)
            if value is not None:
                data[field] = value

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(_format_validation_error(e)) from e

        logger.debug("Configuration: %r", config)
        return config

    # ── Derived paths ───────────────────────────────────────────

    @property
    def env_prefix(self) -> Path:
        """Root of the conda environment."""
        return self.miniforge_dir / "envs" / self.env_name

    @property
    def env_bin(self) -> Path:
        return self.env_prefix / "bin"

    @property
    def env_python(self) -> Path:
        return self.env_bin / "python"

    @property
    def conda(self) -> Path:
        return self.miniforge_dir / "bin" / "conda"

    @property
    def cargo_bin(self) -> Path:
        return self.home / ".cargo" / "bin"

    def exported_env(self) -> dict[str, str]:
        """Variables every child process sees."""
        return {
            "VLLM_TARGET_DEVICE": self.vllm_target_device,
            "PYTORCH_ROCM_ARCH": self.pytorch_rocm_arch,
            "HYPERACTOR_CODEC_MAX_FRAME_LENGTH": str(self.hyperactor_codec_max_frame_length),
        }

    def activated_env(self) -> dict[str, str]:
        """Overrides equivalent to ``conda activate`` plus ``~/.cargo/env``."""
        path_parts = [str(self.env_bin), str(self.cargo_bin)]
        if self.search_path:
            path_parts.append(self.search_path)
        return {
            "CONDA_PREFIX": str(self.env_prefix),
            "CONDA_DEFAULT_ENV": self.env_name,
            "PATH": ":".join(path_parts),
        }

    def to_display_dict(self) -> dict[str, Any]:
        """Configuration keyed by environment variable, token masked."""
        data = self.model_dump(mode="json")
        shown = {var: data[field] for field, var in ENV_VARS.items()}
        shown["HF_TOKEN"] = "***" if self.hf_token else None
        return shown


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        field = str(item["loc"][0]) if item["loc"] else "?"
        var = ENV_VARS.get(field, field)
        problems.append(f"{var}: {item['msg']}")
    return "Invalid configuration — " + "; ".join(problems)
