"""
Patch models — a pluggable, self-checking text transformation.

``is_applied`` and ``transform`` must agree: once ``transform`` has run,
``is_applied`` holds for the result, so a second application is a no-op.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel


@dataclass(frozen=True)
class PatchSpec:
    """An idempotent edit to one source file.

    Attributes:
        name: Label used in logs.
        path: File to patch.
        is_applied: True when the content already carries the change.
        check: ``(ok, reason)`` — whether the anchors the transform needs
            are present. ``reason`` names the missing anchor.
        transform: Produces the patched content.
    """

    name: str
    path: Path
    is_applied: Callable[[str], bool]
    check: Callable[[str], tuple[bool, str]]
    transform: Callable[[str], str]


class PatchResult(BaseModel):
    """Outcome of a non-failing SourcePatcher.apply call."""

    name: str
    path: str
    status: Literal["applied", "skipped"]
    reason: str = ""

    @property
    def applied(self) -> bool:
        return self.status == "applied"
