"""
Source patcher — apply idempotent, self-checking edits to third-party files.

apply() decides between four outcomes, in this order:

    file missing            → skipped (dependency not installed here)
    change already present  → skipped
    anchor missing          → PatchPreconditionError, file untouched
    otherwise               → transform, self-check, atomic write

The self-check re-runs ``is_applied`` on the transformed text before
anything touches the disk, so a transform that would not be recognised
as applied next time is rejected instead of being written.
"""

from __future__ import annotations

import logging

from forge_provision.adapters.shell.filesystem import atomic_write_text, read_source
from forge_provision.core.errors import PatchError, PatchPreconditionError
from forge_provision.core.models.patch import PatchResult, PatchSpec

logger = logging.getLogger(__name__)


class SourcePatcher:
    """Apply PatchSpecs to files on disk."""

    def apply(self, spec: PatchSpec) -> PatchResult:
        """Apply ``spec`` once; re-applying is a no-op.

        Raises:
            PatchPreconditionError: The file lacks an anchor the
                transform depends on.
            PatchError: The transform produced no change, or a result
                that ``is_applied`` does not recognise.
        """
        path = spec.path
        if not path.is_file():
            logger.info("Skipping %s patch (missing %s)", spec.name, path)
            return PatchResult(
                name=spec.name,
                path=str(path),
                status="skipped",
                reason=f"{path} does not exist",
            )

        original = read_source(path)
        if spec.is_applied(original):
            logger.info("%s patch already applied to %s", spec.name, path)
            return PatchResult(
                name=spec.name,
                path=str(path),
                status="skipped",
                reason="already applied",
            )

        ok, missing = spec.check(original)
        if not ok:
            raise PatchPreconditionError(path, missing)

        patched = restore_line_endings(original, spec.transform(original))
        if patched == original:
            raise PatchError(f"{path}: {spec.name} transform produced no change")
        if not spec.is_applied(patched):
            raise PatchError(
                f"{path}: {spec.name} transform result is not recognised as applied"
            )

        atomic_write_text(path, patched)
        logger.info("Applied %s patch to %s", spec.name, path)
        return PatchResult(name=spec.name, path=str(path), status="applied")


def restore_line_endings(original: str, patched: str) -> str:
    """Give ``patched`` the newline style and trailing-newline convention
    of ``original``.
    """
    newline = "\r\n" if "\r\n" in original else "\n"
    source = original.replace("\r\n", "\n")
    trailing = len(source) - len(source.rstrip("\n"))
    body = patched.replace("\r\n", "\n").rstrip("\n") + "\n" * trailing
    return body.replace("\n", newline) if newline != "\n" else body
