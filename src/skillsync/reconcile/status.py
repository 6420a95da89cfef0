from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .. import diagnostics as diag
from ..diagnostics import Diagnostics
from ..errors import RenderError
from ..paths import display_path
from ..skills.render import Renderer, render_for_tool, render_template
from ..skills.schema import Skill
from ..skills.store import Catalog
from ..tools import Tool


class SyncStatus(str, Enum):
    SYNCED = "synced"
    MODIFIED = "modified"
    MISSING = "missing"
    ORPHAN = "orphan"


CellKey = tuple[str, str]


def normalize_content(content: bytes | str) -> bytes:
    """Unify line endings and drop one trailing newline before comparing."""
    data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    data = data.replace(b"\r\n", b"\n").replace(b"\r", b"\n")
    if data.endswith(b"\n"):
        data = data[:-1]
    return data


def contents_match(left: bytes | str, right: bytes | str) -> bool:
    return normalize_content(left) == normalize_content(right)


@dataclass
class StatusMatrix:
    tool_ids: tuple[str, ...]
    cells: dict[CellKey, SyncStatus] = field(default_factory=dict)
    rendered: dict[CellKey, str] = field(default_factory=dict)
    excluded: dict[CellKey, str] = field(default_factory=dict)

    def status(self, name: str, tool_id: str) -> SyncStatus | None:
        return self.cells.get((name, tool_id))

    def names(self) -> list[str]:
        names = {name for name, _ in self.cells} | {name for name, _ in self.excluded}
        return sorted(names, key=lambda n: (n.lower(), n))

    def row(self, name: str) -> dict[str, SyncStatus]:
        return {tid: self.cells[(name, tid)] for tid in self.tool_ids if (name, tid) in self.cells}

    def cells_with(self, status: SyncStatus) -> list[CellKey]:
        keys = [key for key, value in self.cells.items() if value == status]
        return sorted(keys, key=lambda k: (k[0].lower(), k[0], self.tool_ids.index(k[1])))

    def to_dict(self) -> dict[str, Any]:
        rows: list[dict[str, Any]] = []
        for name in self.names():
            statuses = {tid: status.value for tid, status in self.row(name).items()}
            excluded = {tid: self.excluded[(name, tid)] for tid in self.tool_ids if (name, tid) in self.excluded}
            entry: dict[str, Any] = {"name": name, "tools": statuses}
            if excluded:
                entry["render_errors"] = excluded
            rows.append(entry)
        return {"tools": list(self.tool_ids), "skills": rows}


def _render_cell(skill: Skill, tool: Tool, renderer: Renderer) -> tuple[str | None, str | None]:
    try:
        return render_for_tool(skill.contents, tool, renderer), None
    except RenderError as exc:
        return None, str(exc)


def compute_status(
    catalog: Catalog,
    diagnostics: Diagnostics,
    *,
    renderer: Renderer = render_template,
    max_workers: int | None = None,
) -> StatusMatrix:
    """Compute the sync status of every (skill, tool) pair in ``catalog``.

    Rendering runs concurrently; results are keyed by cell so the matrix does
    not depend on completion order. A render failure excludes only its cell.
    """
    tools = [install.tool for install in catalog.tools]
    matrix = StatusMatrix(tool_ids=tuple(t.id for t in tools))

    jobs: list[tuple[Skill, Tool]] = [
        (catalog.skills[name], tool) for name in sorted(catalog.skills) for tool in tools
    ]
    if jobs:
        with ThreadPoolExecutor(max_workers=max_workers or min(8, len(jobs))) as pool:
            results = list(pool.map(lambda job: _render_cell(job[0], job[1], renderer), jobs))
    else:
        results = []

    for (skill, tool), (rendered, error) in zip(jobs, results):
        key = (skill.name, tool.id)
        if rendered is None:
            matrix.excluded[key] = str(error)
            diagnostics.warn(
                diag.RENDER,
                f"{display_path(skill.skill_path)} ({tool.id}) - {error}",
                path=skill.skill_path,
            )
            continue
        matrix.rendered[key] = rendered
        install = catalog.install_for(tool.id)
        installed = install.skills.get(skill.name) if install is not None else None
        if installed is None:
            matrix.cells[key] = SyncStatus.MISSING
        elif contents_match(rendered, installed.content):
            matrix.cells[key] = SyncStatus.SYNCED
        else:
            matrix.cells[key] = SyncStatus.MODIFIED

    for install in catalog.tools:
        for name in install.skills:
            if name not in catalog.skills:
                matrix.cells[(name, install.tool.id)] = SyncStatus.ORPHAN

    return matrix
