from __future__ import annotations

from pathlib import Path
from typing import Iterable

from ..errors import SkillNotFoundError
from ..skills.scanner import ToolInstall, install_path
from ..skills.store import Catalog
from .plan import Action, Operation, Plan
from .resolver import ConflictResolver
from .status import StatusMatrix, SyncStatus


def push_operation(
    name: str,
    install: ToolInstall,
    rendered: str,
    *,
    note: str = "",
    requires: Path | None = None,
) -> Operation:
    """Write ``rendered`` into the tool install for ``name``.

    The action is ``write-new`` when the tool has no copy yet and
    ``overwrite`` otherwise.
    """
    installed = install.skills.get(name)
    return Operation(
        action=Action.OVERWRITE if installed is not None else Action.WRITE_NEW,
        skill=name,
        tool_id=install.tool.id,
        path=installed.path if installed is not None else install_path(install.root, name),
        old=installed.content if installed is not None else None,
        new=rendered.encode("utf-8"),
        note=note,
        requires=requires,
    )


def select_push_names(catalog: Catalog, names: Iterable[str] | None) -> list[str]:
    if not names:
        return sorted(catalog.skills, key=lambda n: (n.lower(), n))
    selected: list[str] = []
    for name in names:
        if name not in catalog.skills:
            raise SkillNotFoundError(name)
        if name not in selected:
            selected.append(name)
    return sorted(selected, key=lambda n: (n.lower(), n))


def plan_push(
    catalog: Catalog,
    matrix: StatusMatrix,
    resolver: ConflictResolver,
    *,
    names: Iterable[str] | None = None,
    tool_ids: Iterable[str] | None = None,
    force: bool = False,
    dry_run: bool = False,
) -> Plan:
    """Plan writes from sources into tool installs.

    Orphans are never planned. A modified tool copy is overwritten only with
    ``force`` or after ``confirm_overwrite``; dry runs never prompt.
    """
    plan = Plan(kind="push", dry_run=dry_run)
    selected_tools = set(tool_ids) if tool_ids is not None else set(matrix.tool_ids)

    for name in select_push_names(catalog, names):
        for tool_id in matrix.tool_ids:
            if tool_id not in selected_tools:
                continue
            install = catalog.install_for(tool_id)
            if install is None:
                continue
            key = (name, tool_id)
            if key in matrix.excluded:
                plan.add(Operation(action=Action.SKIP, skill=name, tool_id=tool_id, note="render failed"))
                continue
            status = matrix.status(name, tool_id)
            rendered = matrix.rendered.get(key)
            if status is None or rendered is None or status == SyncStatus.ORPHAN:
                continue
            if status == SyncStatus.SYNCED:
                plan.add(Operation(action=Action.NOOP, skill=name, tool_id=tool_id, note="unchanged"))
            elif status == SyncStatus.MISSING:
                plan.add(push_operation(name, install, rendered, note="new"))
            elif force:
                plan.add(push_operation(name, install, rendered, note="forced"))
            elif dry_run:
                plan.add(push_operation(name, install, rendered, note="needs confirmation"))
            elif resolver.confirm_overwrite(name, install.tool):
                plan.add(push_operation(name, install, rendered, note="confirmed"))
            else:
                plan.add(
                    Operation(
                        action=Action.SKIP,
                        skill=name,
                        tool_id=tool_id,
                        path=install.skills[name].path,
                        note="modified in tool; not overwritten",
                    )
                )
    return plan
