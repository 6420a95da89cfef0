"""Decision points that need user judgment.

Everything else in reconciliation is deterministic. ``ConflictResolver``
implements the documented defaults; ``BatchResolver`` applies them without
asking and records each one as a warning, ``TerminalResolver`` asks on the
terminal and falls back to the default on empty input or end of file.
"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence, TextIO, Union

from .. import diagnostics as diag
from ..diagnostics import Diagnostics
from ..logging import get_logger
from ..paths import display_path
from ..skills.store import SourceDirectory
from ..tools import Tool

logger = get_logger(__name__)


@dataclass(frozen=True)
class Variant:
    tool: Tool
    content: bytes
    mtime: float
    path: Path


@dataclass(frozen=True)
class Pick:
    tool_id: str


@dataclass(frozen=True)
class ShowDiff:
    pass


@dataclass(frozen=True)
class Skip:
    pass


Decision = Union[Pick, ShowDiff, Skip]

SHOW_DIFF = ShowDiff()
SKIP = Skip()


class ConflictResolver:
    interactive = False

    def choose_source(self, skill: str, candidates: Sequence[SourceDirectory]) -> SourceDirectory:
        return min(candidates, key=lambda s: s.priority)

    def resolve_divergent(self, skill: str, variants: Sequence[Variant]) -> Decision:
        return SKIP

    def confirm_overwrite(self, skill: str, tool: Tool) -> bool:
        return False

    def confirm_remove(self, skill: str, tool: Tool) -> bool:
        return False

    def confirm_rename(self, old: str, new: str, locations: int) -> bool:
        return False

    def show_diff(self, skill: str, diff_text: str) -> None:
        logger.info("diff for %s:\n%s", skill, diff_text)


class BatchResolver(ConflictResolver):
    def __init__(self, diagnostics: Diagnostics):
        self.diagnostics = diagnostics

    def choose_source(self, skill: str, candidates: Sequence[SourceDirectory]) -> SourceDirectory:
        chosen = super().choose_source(skill, candidates)
        self.diagnostics.warn(
            diag.DEFAULT_DECISION,
            f"'{skill}': no input available, creating in highest-priority source {display_path(chosen.path)}",
            path=chosen.path,
        )
        return chosen

    def resolve_divergent(self, skill: str, variants: Sequence[Variant]) -> Decision:
        tools = " and ".join(f"[{v.tool.id}]" for v in variants)
        self.diagnostics.warn(
            diag.DEFAULT_DECISION,
            f"'{skill}' has different modifications in {tools}; skipped (no input available)",
        )
        return SKIP

    def confirm_overwrite(self, skill: str, tool: Tool) -> bool:
        self.diagnostics.warn(
            diag.DEFAULT_DECISION,
            f"'{skill}' is modified in {tool.display_name}; not overwritten (use --force)",
        )
        return False

    def confirm_remove(self, skill: str, tool: Tool) -> bool:
        self.diagnostics.warn(
            diag.DEFAULT_DECISION,
            f"'{skill}' not removed from {tool.display_name}; no input available (use --force)",
        )
        return False

    def confirm_rename(self, old: str, new: str, locations: int) -> bool:
        self.diagnostics.warn(
            diag.DEFAULT_DECISION,
            f"'{old}' not renamed to '{new}'; no input available (use --force)",
        )
        return False


def format_age(mtime: float, *, now: float | None = None) -> str:
    seconds = max(0, int((now if now is not None else time.time()) - float(mtime)))
    if seconds < 60:
        return "moments ago"
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'' if count == 1 else 's'} ago"
    return "moments ago"


class TerminalResolver(ConflictResolver):
    interactive = True

    def __init__(self, *, input_fn: Callable[[str], str] = input, out: TextIO | None = None):
        self._input = input_fn
        self._out = out

    def _print(self, text: str = "") -> None:
        print(text, file=self._out or sys.stdout)

    def _ask(self, prompt: str) -> str | None:
        try:
            if self._out is not None:
                self._out.write(prompt)
                self._out.flush()
                return self._input("").strip()
            return self._input(prompt).strip()
        except EOFError:
            return None

    def choose_source(self, skill: str, candidates: Sequence[SourceDirectory]) -> SourceDirectory:
        ordered = sorted(candidates, key=lambda s: s.priority)
        self._print(f"Select a source for new skill '{skill}':")
        for index, source in enumerate(ordered, start=1):
            self._print(f"  [{index}] {display_path(source.path)}")
        while True:
            answer = self._ask("Source [1]: ")
            if not answer:
                return ordered[0]
            if answer.isdigit() and 1 <= int(answer) <= len(ordered):
                return ordered[int(answer) - 1]
            self._print(f"Enter a number between 1 and {len(ordered)}.")

    def resolve_divergent(self, skill: str, variants: Sequence[Variant]) -> Decision:
        self._print(f"{skill} has different modifications in multiple tools:")
        self._print()
        for index, variant in enumerate(variants, start=1):
            self._print(f"  [{index}] {variant.tool.display_name}  (modified {format_age(variant.mtime)})")
        self._print("  [d] Show diff between versions")
        self._print("  [s] Skip")
        choices = "/".join(str(i) for i in range(1, len(variants) + 1))
        while True:
            answer = self._ask(f"Which version to pull? [{choices}/d/s] (s): ")
            if not answer or answer.lower() == "s":
                return SKIP
            if answer.lower() == "d":
                return SHOW_DIFF
            if answer.isdigit() and 1 <= int(answer) <= len(variants):
                return Pick(tool_id=variants[int(answer) - 1].tool.id)
            self._print(f"Enter a number between 1 and {len(variants)}, d or s.")

    def confirm_overwrite(self, skill: str, tool: Tool) -> bool:
        answer = self._ask(f"Overwrite modified skill '{skill}' in {tool.display_name}? [y/N]: ")
        return bool(answer) and answer.lower() in {"y", "yes"}

    def confirm_remove(self, skill: str, tool: Tool) -> bool:
        answer = self._ask(f"Remove skill '{skill}' from {tool.display_name}? [y/N]: ")
        return bool(answer) and answer.lower() in {"y", "yes"}

    def confirm_rename(self, old: str, new: str, locations: int) -> bool:
        answer = self._ask(f"Rename '{old}' to '{new}' in {locations} location(s)? [y/N]: ")
        return bool(answer) and answer.lower() in {"y", "yes"}

    def show_diff(self, skill: str, diff_text: str) -> None:
        self._print(diff_text.rstrip("\n"))
        self._print()
