from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from skillsync.config import SkillsConfig
from skillsync.diagnostics import Diagnostics
from skillsync.reconcile.resolver import SKIP, ConflictResolver, Decision
from skillsync.reconcile.status import StatusMatrix, compute_status
from skillsync.skills.store import Catalog, build_catalog
from skillsync.tools import Tool

TOOL_IDS = ("claude", "codex", "gemini")


def header(name: str) -> str:
    return f"---\nname: {name}\ndescription: {name} skill\n---\n"


@dataclass
class Loaded:
    config: SkillsConfig
    diagnostics: Diagnostics
    catalog: Catalog
    matrix: StatusMatrix


class Workspace:
    def __init__(self, root: Path, *, sources: int = 1, tolerance: float = 0.0):
        self.root = root
        self.sources = [root / f"src{i}" if i else root / "src" for i in range(sources)]
        self.tolerance = tolerance
        for path in self.sources:
            path.mkdir(parents=True, exist_ok=True)

    def tool_root(self, tool_id: str) -> Path:
        return self.root / "tools" / tool_id

    def config(self) -> SkillsConfig:
        return SkillsConfig(
            path=self.root / "skills.yaml",
            sources=tuple(self.sources),
            tools=tuple(Tool(id=t, display_name=t.title(), root=self.tool_root(t)) for t in TOOL_IDS),
            mtime_tolerance=self.tolerance,
        )

    def _write(self, path: Path, text: str, mtime: float | None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(text.encode("utf-8"))
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    def source(self, name: str, body: str = "Body\n", *, index: int = 0, mtime: float | None = None) -> Path:
        return self._write(self.sources[index] / name / "SKILL.md", header(name) + body, mtime)

    def install(self, tool_id: str, name: str, text: str, *, mtime: float | None = None) -> Path:
        return self._write(self.tool_root(tool_id) / name / "SKILL.md", text, mtime)

    def installed(self, tool_id: str, name: str) -> str | None:
        path = self.tool_root(tool_id) / name / "SKILL.md"
        return path.read_text(encoding="utf-8") if path.exists() else None

    def load(self) -> Loaded:
        config = self.config()
        diagnostics = Diagnostics()
        catalog = build_catalog(config, diagnostics)
        return Loaded(config, diagnostics, catalog, compute_status(catalog, diagnostics))


@dataclass
class ScriptedResolver(ConflictResolver):
    """Replays canned answers and records every question asked."""

    divergent: list[Decision] = field(default_factory=list)
    confirm: bool = False
    source_index: int = 0
    calls: list[tuple[str, Any]] = field(default_factory=list)
    diffs: list[str] = field(default_factory=list)

    def choose_source(self, skill, candidates):
        self.calls.append(("choose_source", skill))
        return list(candidates)[self.source_index]

    def resolve_divergent(self, skill, variants):
        self.calls.append(("resolve_divergent", skill))
        return self.divergent.pop(0) if self.divergent else SKIP

    def confirm_overwrite(self, skill, tool):
        self.calls.append(("confirm_overwrite", skill))
        return self.confirm

    def confirm_remove(self, skill, tool):
        self.calls.append(("confirm_remove", tool.id))
        return self.confirm

    def confirm_rename(self, old, new, locations):
        self.calls.append(("confirm_rename", locations))
        return self.confirm

    def show_diff(self, skill, diff_text):
        self.diffs.append(diff_text)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path)
