from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .. import diagnostics as diag
from ..config import SkillsConfig
from ..diagnostics import Diagnostic, Diagnostics
from ..logging import get_logger
from ..paths import display_path
from .scanner import ToolInstall, scan_tool
from .schema import Skill, load_source_skill

logger = get_logger(__name__)


@dataclass(frozen=True)
class SourceDirectory:
    path: Path
    priority: int
    names: frozenset[str] = frozenset()


@dataclass(frozen=True)
class NameConflict:
    name: str
    locations: tuple[Path, ...]
    chosen: Path

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "chosen": str(self.chosen), "locations": [str(p) for p in self.locations]}


@dataclass
class Catalog:
    sources: list[SourceDirectory]
    skills: dict[str, Skill]
    tools: list[ToolInstall] = field(default_factory=list)
    conflicts: list[NameConflict] = field(default_factory=list)

    def source_for(self, name: str) -> SourceDirectory | None:
        skill = self.skills.get(name)
        if skill is None:
            return None
        for source in self.sources:
            if source.path == skill.source_root:
                return source
        return None

    def installed_names(self) -> set[str]:
        names: set[str] = set()
        for install in self.tools:
            names.update(install.skills)
        return names

    def all_names(self) -> list[str]:
        names = set(self.skills) | self.installed_names()
        return sorted(names, key=lambda n: (n.lower(), n))

    def install_for(self, tool_id: str) -> ToolInstall | None:
        for install in self.tools:
            if install.tool.id == tool_id:
                return install
        return None


@dataclass(frozen=True)
class SourceLoad:
    path: Path
    priority: int
    skills: list[Skill]
    diagnostics: list[Diagnostic]


def load_source_dir(path: Path, priority: int) -> SourceLoad:
    """Load every skill directly under ``path``; a bad skill never aborts the load."""
    root = Path(path)
    found: list[Diagnostic] = []
    skills: list[Skill] = []
    try:
        entries = sorted((p for p in root.iterdir() if p.is_dir()), key=lambda p: p.name)
    except FileNotFoundError:
        found.append(Diagnostic(diag.SOURCE, f"source directory not found: {display_path(root)}", path=root))
        return SourceLoad(path=root, priority=priority, skills=[], diagnostics=found)
    except OSError as exc:
        found.append(Diagnostic(diag.SOURCE, f"failed to read directory {display_path(root)}: {exc}", path=root))
        return SourceLoad(path=root, priority=priority, skills=[], diagnostics=found)

    for skill_dir in entries:
        if skill_dir.name.startswith("."):
            continue
        skill, error = load_source_skill(root, skill_dir)
        if skill is None:
            if error:
                found.append(Diagnostic(diag.LOAD, error, path=skill_dir / "SKILL.md"))
            continue
        skills.append(skill)
    return SourceLoad(path=root, priority=priority, skills=skills, diagnostics=found)


def merge_sources(loads: list[SourceLoad]) -> tuple[list[SourceDirectory], dict[str, Skill], list[NameConflict]]:
    """Merge per-source loads; the lowest priority index wins on a name collision."""
    skills: dict[str, Skill] = {}
    locations: dict[str, list[Path]] = {}
    for load in sorted(loads, key=lambda item: item.priority):
        for skill in load.skills:
            locations.setdefault(skill.name, []).append(skill.skill_dir)
            if skill.name not in skills:
                skills[skill.name] = skill

    conflicts: list[NameConflict] = []
    for name in sorted(locations, key=lambda n: (n.lower(), n)):
        paths = locations[name]
        if len(paths) > 1:
            conflicts.append(NameConflict(name=name, locations=tuple(paths), chosen=skills[name].skill_dir))

    sources: list[SourceDirectory] = []
    for load in sorted(loads, key=lambda item: item.priority):
        owned = frozenset(n for n, s in skills.items() if s.source_root == load.path)
        sources.append(SourceDirectory(path=load.path, priority=load.priority, names=owned))
    return sources, skills, conflicts


def build_catalog(config: SkillsConfig, diagnostics: Diagnostics, *, max_workers: int | None = None) -> Catalog:
    """Load every source and scan every tool root concurrently, then merge.

    The merge only starts once every scan has completed, and diagnostics are
    replayed in configuration order so output does not depend on scheduling.
    """
    workers = max_workers or max(1, len(config.sources) + len(config.tools))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        source_futures = [pool.submit(load_source_dir, path, idx) for idx, path in enumerate(config.sources)]
        tool_futures = [pool.submit(scan_tool, tool) for tool in config.tools]
        loads = [f.result() for f in source_futures]
        scans = [f.result() for f in tool_futures]

    for load in loads:
        diagnostics.extend(load.diagnostics)
    sources, skills, conflicts = merge_sources(loads)
    for conflict in conflicts:
        diagnostics.warn(
            diag.CONFLICT,
            f"skill '{conflict.name}' exists in multiple sources, using {display_path(conflict.chosen)}",
            path=conflict.chosen,
            details=[display_path(p) for p in conflict.locations],
        )

    tools: list[ToolInstall] = []
    for install, found in scans:
        diagnostics.extend(found)
        tools.append(install)

    logger.info("catalog: %d source skills, %d tools", len(skills), len(tools))
    return Catalog(sources=sources, skills=skills, tools=tools, conflicts=conflicts)
