"""
Patch factories — the text transformations the forge stack needs.

Each factory returns a PatchSpec whose anchors are named explicitly, so
that an upstream file which has changed shape fails the precondition
check with a message saying which anchor disappeared.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from forge_provision.core.models.patch import PatchSpec

# torchtitan: seed pipeline-parallel ranks independently
TORCHTITAN_ENGINE = Path("torchtitan/experiments/forge/engine.py")
DETERMINISM_CALL = "dist_utils.set_determinism"
DETERMINISM_SIBLING = "job_config.debug"
DETERMINISM_KEYWORD = "distinct_seed_mesh_dims"
DETERMINISM_VALUE = '["pp"]'

# torchstore: controller endpoints awaited by torchforge
TORCHSTORE_ASYNC_FUNCTIONS = (
    "get_controller_strategy",
    "locate_volumes",
    "notify_put",
    "keys",
    "notify_delete",
)


# ── Keyword argument injection ─────────────────────────────────────


@dataclass(frozen=True)
class _CallSite:
    line: int
    end: int        # column just past the sibling argument
    own_line: bool  # sibling is alone on its line in a multi-line call


def _sibling_re(sibling: str) -> re.Pattern[str]:
    # a whole argument: not part of a longer name, followed by , ) a comment or end of line
    return re.compile(rf"(?<![\w.]){re.escape(sibling)}(?=[ \t\r]*(?:[,)#]|$))")


def _find_call_site(lines: list[str], call: str, sibling: str) -> tuple[_CallSite | None, str]:
    """Locate ``call(...)`` and the ``sibling`` argument inside it."""
    call_idx = next((i for i, line in enumerate(lines) if call in line), None)
    if call_idx is None:
        return None, f"call '{call}' not found"

    head = lines[call_idx]
    after_call = head.index(call) + len(call)
    sibling_re = _sibling_re(sibling)
    not_found = f"argument '{sibling}' not found in call to '{call}'"

    opened = head[head.index(call):]
    if opened.count("(") <= opened.count(")"):
        match = sibling_re.search(head, after_call)
        if match is None:
            return None, not_found
        return _CallSite(call_idx, match.end(), own_line=False), ""

    site = None
    for i in range(call_idx, len(lines)):
        line = lines[i]
        if i > call_idx and line.strip().startswith(")"):
            if site is None:
                return None, not_found
            return site, ""
        match = sibling_re.search(line, after_call if i == call_idx else 0)
        if match is None:
            continue
        own_line = i > call_idx and not line[: match.start()].strip()
        site = _CallSite(i, match.end(), own_line=own_line)
        if line[match.end():].lstrip().startswith(")"):
            return _CallSite(i, match.end(), own_line=False), ""

    return None, f"closing parenthesis of call to '{call}' not found"


def insert_keyword_argument(
    path: Path,
    call: str,
    sibling: str,
    keyword: str,
    value: str,
    name: str | None = None,
) -> PatchSpec:
    """Add ``keyword=value`` to a call, right after a known argument.

    ``sibling`` only anchors as a whole argument: followed by a comma,
    the closing parenthesis, a comment or the end of its line. A sibling
    alone on its line in a multi-line call gets a new line below it with
    the same indentation (its comma placed before any trailing comment);
    anywhere else the argument is inserted inline after it.
    """
    argument = f"{keyword}={value}"
    applied_re = re.compile(rf"(?<![\w.]){re.escape(keyword)}\s*=(?!=)")

    def is_applied(content: str) -> bool:
        return applied_re.search(content) is not None

    def check(content: str) -> tuple[bool, str]:
        site, reason = _find_call_site(content.split("\n"), call, sibling)
        return site is not None, reason

    def transform(content: str) -> str:
        lines = content.split("\n")
        site, reason = _find_call_site(lines, call, sibling)
        if site is None:
            raise ValueError(reason)

        line = lines[site.line]
        head, rest = line[: site.end], line[site.end:]
        if not site.own_line:
            lines[site.line] = f"{head}, {argument}{rest}"
            return "\n".join(lines)

        # comma goes before any trailing comment
        if not rest.lstrip().startswith(","):
            lines[site.line] = f"{head},{rest}"
        indent = re.match(r"[ \t]*", line).group(0)
        lines.insert(site.line + 1, f"{indent}{argument},")
        return "\n".join(lines)

    return PatchSpec(
        name=name or f"{call}:{keyword}",
        path=path,
        is_applied=is_applied,
        check=check,
        transform=transform,
    )


# ── Async promotion ────────────────────────────────────────────────


def _def_re(name: str, asynchronous: bool | None) -> re.Pattern[str]:
    if asynchronous is None:
        prefix = r"(?:async[ \t]+)?"
    elif asynchronous:
        prefix = r"async[ \t]+"
    else:
        prefix = ""
    return re.compile(rf"^([ \t]*){prefix}def[ \t]+{re.escape(name)}[ \t]*\(", re.MULTILINE)


def promote_to_async(
    path: Path,
    names: Sequence[str],
    name: str | None = None,
) -> PatchSpec:
    """Turn ``def f(`` into ``async def f(`` for every function in ``names``.

    Only the first synchronous definition of each name is rewritten.
    """
    names = tuple(names)

    def is_applied(content: str) -> bool:
        return all(_def_re(n, asynchronous=True).search(content) for n in names)

    def check(content: str) -> tuple[bool, str]:
        missing = [n for n in names if not _def_re(n, asynchronous=None).search(content)]
        if missing:
            return False, f"function(s) not defined: {', '.join(missing)}"
        return True, ""

    def transform(content: str) -> str:
        for fn in names:
            if _def_re(fn, asynchronous=True).search(content):
                continue
            content, count = _def_re(fn, asynchronous=False).subn(
                rf"\1async def {fn}(", content, count=1
            )
            if count == 0:
                raise ValueError(f"could not locate definition for {fn}")
        return content

    return PatchSpec(
        name=name or "async-promotion",
        path=path,
        is_applied=is_applied,
        check=check,
        transform=transform,
    )


# ── Forge stack instances ──────────────────────────────────────────


def torchtitan_determinism_patch(torchtitan_root: Path) -> PatchSpec:
    """Pass ``distinct_seed_mesh_dims=["pp"]`` to set_determinism."""
    return insert_keyword_argument(
        torchtitan_root / TORCHTITAN_ENGINE,
        call=DETERMINISM_CALL,
        sibling=DETERMINISM_SIBLING,
        keyword=DETERMINISM_KEYWORD,
        value=DETERMINISM_VALUE,
        name="torchtitan-determinism",
    )


def torchstore_controller_patch(controller_path: Path) -> PatchSpec:
    """Make the torchstore controller endpoints async."""
    return promote_to_async(
        controller_path,
        TORCHSTORE_ASYNC_FUNCTIONS,
        name="torchstore-controller-async",
    )
