from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .. import diagnostics as diag
from ..diagnostics import Diagnostic
from ..paths import display_path
from ..tools import Tool
from .schema import SKILL_FILE_NAME, InstalledSkill


@dataclass(frozen=True)
class ToolInstall:
    tool: Tool
    root: Path
    skills: dict[str, InstalledSkill] = field(default_factory=dict)


def install_path(root: Path, name: str) -> Path:
    return Path(root) / name / SKILL_FILE_NAME


def _is_probably_binary(data: bytes) -> bool:
    if b"\x00" in data:
        return True
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return False


def scan_tool(tool: Tool) -> tuple[ToolInstall, list[Diagnostic]]:
    """Read ``tool.root`` into installed-skill records.

    A missing root is an empty install. Each immediate subdirectory holding a
    skill file is one installed skill, keyed by the directory name.
    """
    root = Path(tool.root)
    errors: list[Diagnostic] = []
    skills: dict[str, InstalledSkill] = {}

    try:
        entries = sorted((p for p in root.iterdir() if p.is_dir()), key=lambda p: p.name)
    except FileNotFoundError:
        return ToolInstall(tool=tool, root=root, skills={}), []
    except NotADirectoryError:
        errors.append(Diagnostic(diag.SCAN, f"{tool.id} install root is not a directory: {display_path(root)}", path=root))
        return ToolInstall(tool=tool, root=root, skills={}), errors
    except OSError as exc:
        errors.append(Diagnostic(diag.SCAN, f"failed to read directory {display_path(root)}: {exc}", path=root))
        return ToolInstall(tool=tool, root=root, skills={}), errors

    for skill_dir in entries:
        if skill_dir.name.startswith("."):
            continue
        skill_path = skill_dir / SKILL_FILE_NAME
        if not skill_path.is_file():
            continue
        try:
            data = skill_path.read_bytes()
            mtime = float(skill_path.stat().st_mtime)
        except OSError as exc:
            errors.append(Diagnostic(diag.SCAN, f"{display_path(skill_path)} - {exc}", path=skill_path))
            continue
        if _is_probably_binary(data):
            errors.append(
                Diagnostic(diag.SCAN, f"{display_path(skill_path)} - content is not UTF-8 text", path=skill_path)
            )
        skills[skill_dir.name] = InstalledSkill(name=skill_dir.name, path=skill_path, content=data, mtime=mtime)

    return ToolInstall(tool=tool, root=root, skills=skills), errors
