"""
Logging for a provisioning run.

The console is the progress display: StepRunner announces each step
with a ✓/⊘/✗ marker, and ShellRunner logs every command line before it
starts, both at INFO with an ``[HH:MM:SS]`` stamp. Child stdout/stderr
captured by ShellRunner only appears at DEBUG, where records also carry
the logger name and line.

Console level, highest precedence first:
    --debug  >  --verbose  >  --quiet  >  FORGE_LOG_LEVEL  >  INFO

FORGE_LOG_FILE adds a file handler (its own level via
FORGE_LOG_FILE_LEVEL), useful for keeping a full DEBUG trace of a long
build while the console stays at INFO.
"""

from __future__ import annotations

import logging
import sys

# ── Format strings ──────────────────────────────────────────────

# --quiet: errors only, no stamp
_FMT_MINIMAL = "%(message)s"

# step and command progress
_FMT_PROGRESS = "[%(asctime)s] %(message)s"
_DATEFMT_PROGRESS = "%H:%M:%S"

# --debug: includes captured command output
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# FORGE_LOG_FILE: dated, for comparing runs
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

DEFAULT_LEVEL = "INFO"


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> str:
    """Pick the console level from CLI flags and FORGE_LOG_LEVEL."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level or DEFAULT_LEVEL


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler, and the file handler when ``log_file`` is set.

    Called once by the CLI before the configuration is read, so the
    resolved configuration is already logged under --debug. The
    root level is the lower of the two handler levels so a DEBUG file
    still receives records the console filters out.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_PROGRESS, _DATEFMT_PROGRESS
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant (INFO if unknown)."""
    if not level:
        return logging.INFO
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric
