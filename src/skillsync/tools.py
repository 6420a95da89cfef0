from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_TOOL_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,31}$")


@dataclass(frozen=True)
class Tool:
    id: str
    display_name: str
    root: Path


# id -> (display name, install root relative to the home directory)
BUILTIN_TOOLS: dict[str, tuple[str, str]] = {
    "claude": ("Claude Code", ".claude/skills"),
    "codex": ("Codex", ".codex/skills"),
    "gemini": ("Gemini", ".gemini/skills"),
}


def validate_tool_id(tool_id: str) -> list[str]:
    tid = str(tool_id or "").strip()
    if not tid:
        return ["tool_id_missing"]
    if not _TOOL_ID_RE.match(tid):
        return ["tool_id_invalid"]
    return []


def default_tools(home: Path | None = None) -> tuple[Tool, ...]:
    base = Path(home) if home is not None else Path.home()
    return tuple(Tool(id=tid, display_name=name, root=base / rel) for tid, (name, rel) in BUILTIN_TOOLS.items())


def display_name_for(tool_id: str) -> str:
    entry = BUILTIN_TOOLS.get(tool_id)
    if entry is not None:
        return entry[0]
    return tool_id.replace("-", " ").replace("_", " ").title()


def select_tools(tools: tuple[Tool, ...], tool_filter: str | None) -> tuple[Tool, ...]:
    """Narrow ``tools`` to ``tool_filter`` (a tool id, ``all`` or None)."""
    raw = str(tool_filter or "all").strip().lower()
    if raw == "all":
        return tuple(tools)
    selected = tuple(t for t in tools if t.id == raw)
    if not selected:
        known = ", ".join(t.id for t in tools) or "-"
        raise ValueError(f"unknown tool '{raw}' (known: {known})")
    return selected


def project_tool(tool: Tool, project_dir: Path) -> Tool:
    """The project-local counterpart of ``tool`` (``<project>/.<id>/skills``)."""
    entry = BUILTIN_TOOLS.get(tool.id)
    rel = entry[1] if entry is not None else f".{tool.id}/skills"
    return Tool(id=tool.id, display_name=tool.display_name, root=Path(project_dir) / rel)
