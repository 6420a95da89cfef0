"""Skill lifecycle: scaffold, rename, unload and promote.

These commands move or delete whole skill directories rather than individual
``SKILL.md`` files, but they are planned and applied like push and pull: every
question is asked while planning, and dry runs list the operations without
prompting.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from ..diagnostics import Diagnostics
from ..errors import AmbiguousSkillError, FrontmatterError, SkillExistsError, SkillNotFoundError
from ..paths import display_path
from ..skills.scanner import ToolInstall, scan_tool
from ..skills.schema import SKILL_FILE_NAME, set_frontmatter_name, validate_skill_name
from ..skills.store import Catalog
from ..tools import project_tool, select_tools
from .plan import Action, Operation, Plan
from .resolver import ConflictResolver

SKILL_TEMPLATE = (
    "---\n"
    "name: {name}\n"
    "description: <describe when this skill should be used>\n"
    "---\n"
    "\n"
    "# {title}\n"
    "\n"
    "<instructions for the AI assistant>\n"
)


def _check_name(name: str) -> None:
    errors = validate_skill_name(name)
    if errors:
        raise ValueError(f"invalid skill name '{name}': {','.join(errors)}")


def title_case(name: str) -> str:
    return " ".join(part[:1].upper() + part[1:] for part in name.split("-") if part)


def skill_template(name: str) -> str:
    return SKILL_TEMPLATE.format(name=name, title=title_case(name))


def plan_new(path: Path) -> Plan:
    """Plan a new skill directory at ``path``, named after its last component."""
    path = Path(path)
    name = path.name
    _check_name(name)
    if path.exists():
        raise SkillExistsError(name, path)
    plan = Plan(kind="new")
    plan.add(
        Operation(
            action=Action.WRITE_NEW,
            skill=name,
            path=path / SKILL_FILE_NAME,
            new=skill_template(name).encode("utf-8"),
            note="template",
        )
    )
    return plan


def _selected_installs(catalog: Catalog, tool_ids: Iterable[str] | None) -> list[ToolInstall]:
    if tool_ids is None:
        return list(catalog.tools)
    wanted = set(tool_ids)
    return [install for install in catalog.tools if install.tool.id in wanted]


def plan_unload(
    catalog: Catalog,
    name: str,
    resolver: ConflictResolver,
    *,
    tool_ids: Iterable[str] | None = None,
    force: bool = False,
    dry_run: bool = False,
) -> Plan:
    """Plan removing the installed copies of ``name``.

    Sources are never touched, so a later push installs the skill again.
    Each removal is confirmed per tool unless ``force`` is set.
    """
    if name not in catalog.all_names():
        raise SkillNotFoundError(name)
    plan = Plan(kind="unload", dry_run=dry_run)
    for install in _selected_installs(catalog, tool_ids):
        installed = install.skills.get(name)
        if installed is None:
            continue
        tool_id = install.tool.id
        skill_dir = installed.path.parent
        if not (force or dry_run or resolver.confirm_remove(name, install.tool)):
            plan.add(Operation(action=Action.SKIP, skill=name, tool_id=tool_id, path=skill_dir, note="not confirmed"))
            continue
        plan.add(Operation(action=Action.REMOVE, skill=name, tool_id=tool_id, path=skill_dir))
    return plan


def _renamed_bytes(content: bytes, new: str) -> bytes | None:
    try:
        return set_frontmatter_name(content.decode("utf-8"), new).encode("utf-8")
    except (UnicodeDecodeError, FrontmatterError):
        return None


def plan_rename(
    catalog: Catalog,
    old: str,
    new: str,
    resolver: ConflictResolver,
    *,
    force: bool = False,
    dry_run: bool = False,
) -> Plan:
    """Plan renaming a source skill and every installed copy of it.

    The source directory moves first and its frontmatter ``name`` is
    rewritten. Tool copies move after it and are not moved if the source
    move fails. An occupied destination is an error unless ``force`` is set,
    in which case it is replaced.
    """
    skill = catalog.skills.get(old)
    if skill is None:
        raise SkillNotFoundError(old)
    _check_name(new)
    if new == old:
        raise ValueError(f"'{old}' already has that name")

    new_dir = skill.skill_dir.parent / new
    if not force:
        existing = catalog.skills.get(new)
        if existing is not None:
            raise SkillExistsError(new, existing.skill_dir)
        if new_dir.exists():
            raise SkillExistsError(new, new_dir)

    moves: list[Operation] = [
        Operation(
            action=Action.MOVE,
            skill=old,
            origin=skill.skill_dir,
            path=new_dir,
            new=set_frontmatter_name(skill.contents, new).encode("utf-8"),
            replace=force,
            note=f"source, now '{new}'",
        )
    ]
    for install in catalog.tools:
        installed = install.skills.get(old)
        if installed is None:
            continue
        dest = install.root / new
        if dest.exists() and not force:
            raise SkillExistsError(new, dest)
        moves.append(
            Operation(
                action=Action.MOVE,
                skill=old,
                tool_id=install.tool.id,
                origin=installed.path.parent,
                path=dest,
                new=_renamed_bytes(installed.content, new),
                replace=force,
                requires=new_dir,
                note=f"now '{new}'",
            )
        )

    plan = Plan(kind="rename", dry_run=dry_run)
    if not (force or dry_run or resolver.confirm_rename(old, new, len(moves))):
        plan.add(Operation(action=Action.SKIP, skill=old, path=skill.skill_dir, note="rename not confirmed"))
        return plan
    for op in moves:
        plan.add(op)
    return plan


def find_project_skill(
    catalog: Catalog,
    name: str,
    project_dir: Path,
    *,
    tool_filter: str | None = None,
    diagnostics: Diagnostics | None = None,
) -> tuple[ToolInstall, Path]:
    """Locate ``name`` under the project-local skill directories.

    Returns the global install it belongs to and the project skill directory.
    """
    installs = {install.tool.id: install for install in catalog.tools}
    tools = select_tools(tuple(install.tool for install in catalog.tools), tool_filter)
    found: list[tuple[ToolInstall, Path]] = []
    for tool in tools:
        local, scan_errors = scan_tool(project_tool(tool, project_dir))
        if diagnostics is not None:
            diagnostics.extend(scan_errors)
        installed = local.skills.get(name)
        if installed is not None:
            found.append((installs[tool.id], installed.path.parent))
    if not found:
        raise SkillNotFoundError(name)
    if len(found) > 1:
        raise AmbiguousSkillError(name, [install.tool.id for install, _ in found])
    return found[0]


def plan_promote(
    catalog: Catalog,
    name: str,
    project_dir: Path,
    *,
    tool_filter: str | None = None,
    target: Path | None = None,
    force: bool = False,
    dry_run: bool = False,
    diagnostics: Diagnostics | None = None,
) -> Plan:
    """Plan moving a project-local skill into the tool's global root, or into ``target``."""
    install, origin = find_project_skill(
        catalog, name, project_dir, tool_filter=tool_filter, diagnostics=diagnostics
    )
    dest = (Path(target) if target is not None else install.root) / name
    if dest.exists() and not force:
        raise SkillExistsError(name, dest)
    plan = Plan(kind="promote", dry_run=dry_run)
    plan.add(
        Operation(
            action=Action.MOVE,
            skill=name,
            tool_id=install.tool.id,
            origin=origin,
            path=dest,
            replace=force,
            note=f"from {display_path(origin)}",
        )
    )
    return plan
