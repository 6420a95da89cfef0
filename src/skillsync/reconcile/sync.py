"""Two-way sync: per cell, the newer side wins.

Each non-synced cell of a sourced skill becomes a push or a pull target:

* ``missing`` cells are always pushed;
* ``modified`` cells compare the source file's mtime with the installed
  file's mtime. The tool wins only when it is newer by more than
  ``mtime_tolerance`` seconds, so ties go to the source. ``prefer`` overrides
  the comparison for the whole run.

When a skill has pull targets, one tool copy is pulled into the source (the
newest when they agree, otherwise through ``resolve_divergent``). The pulled
content is then rendered for every other tool and pushed wherever it differs,
so the whole skill converges on the winning copy. Sync only composes the push
and pull operations and has no write path of its own. Orphans are left to
``pull``.
"""

from __future__ import annotations

from typing import Iterable

from ..config import SkillsConfig
from ..errors import RenderError
from ..skills.render import Renderer, render_for_tool, render_template
from ..skills.store import Catalog
from .plan import Action, Operation, Plan
from .pull import collect_variants, decide_variant, pull_operation, variants_agree
from .push import push_operation, select_push_names
from .resolver import ConflictResolver
from .status import StatusMatrix, SyncStatus, contents_match

PREFER_SOURCE = "source"
PREFER_TOOL = "tool"

PUSH = "push"
PULL = "pull"


def cell_direction(source_mtime: float, tool_mtime: float, *, prefer: str | None = None, tolerance: float = 0.0) -> str:
    if prefer == PREFER_SOURCE:
        return PUSH
    if prefer == PREFER_TOOL:
        return PULL
    if float(tool_mtime) - float(source_mtime) > float(tolerance):
        return PULL
    return PUSH


def plan_sync(
    config: SkillsConfig,
    catalog: Catalog,
    matrix: StatusMatrix,
    resolver: ConflictResolver,
    *,
    names: Iterable[str] | None = None,
    prefer: str | None = None,
    dry_run: bool = False,
    renderer: Renderer = render_template,
) -> Plan:
    if prefer not in (None, PREFER_SOURCE, PREFER_TOOL):
        raise ValueError(f"prefer must be '{PREFER_SOURCE}' or '{PREFER_TOOL}', got {prefer!r}")
    plan = Plan(kind="sync", dry_run=dry_run)

    selected = select_push_names(catalog, names)

    for name in selected:
        skill = catalog.skills[name]
        push_cells: list[str] = []
        pull_cells: list[str] = []
        render_failed: list[Operation] = []
        for tool_id in matrix.tool_ids:
            if (name, tool_id) in matrix.excluded:
                render_failed.append(Operation(action=Action.SKIP, skill=name, tool_id=tool_id, note="render failed"))
                continue
            status = matrix.status(name, tool_id)
            if status == SyncStatus.MISSING:
                push_cells.append(tool_id)
            elif status == SyncStatus.MODIFIED:
                install = catalog.install_for(tool_id)
                if install is None or name not in install.skills:
                    continue
                installed = install.skills[name]
                direction = cell_direction(
                    skill.mtime, installed.mtime, prefer=prefer, tolerance=config.mtime_tolerance
                )
                (pull_cells if direction == PULL else push_cells).append(tool_id)

        if not pull_cells:
            plan.operations.extend(render_failed)
            for tool_id in push_cells:
                install = catalog.install_for(tool_id)
                if install is None:
                    continue
                note = "new" if name not in install.skills else "source is newer"
                plan.add(push_operation(name, install, matrix.rendered[(name, tool_id)], note=note))
            continue

        variants = collect_variants(catalog, matrix, name, tool_ids=pull_cells)
        variants.sort(key=lambda v: -v.mtime)
        if dry_run and not variants_agree(variants):
            plan.add(Operation(action=Action.SKIP, skill=name, note="tool copies diverge; needs a decision"))
            plan.operations.extend(render_failed)
            continue
        chosen = decide_variant(name, variants, resolver)
        if chosen is None:
            plan.add(Operation(action=Action.SKIP, skill=name, note="tool copies diverge; skipped"))
            plan.operations.extend(render_failed)
            continue

        pulled = pull_operation(
            name,
            chosen,
            skill.skill_path,
            create=False,
            old=skill.contents.encode("utf-8"),
            note=f"{chosen.tool.id} is newer" if prefer is None else f"prefer {prefer}",
        )
        plan.add(pulled)

        # cells in render_failed are re-rendered from the pulled copy below
        new_text = chosen.content.decode("utf-8", errors="replace")
        for install in catalog.tools:
            if install.tool.id == chosen.tool.id:
                continue
            try:
                rendered = render_for_tool(new_text, install.tool, renderer)
            except RenderError as exc:
                plan.add(
                    Operation(
                        action=Action.ERROR,
                        skill=name,
                        tool_id=install.tool.id,
                        note=f"pulled content does not render for {install.tool.id}: {exc}",
                    )
                )
                continue
            installed = install.skills.get(name)
            if installed is not None and contents_match(rendered, installed.content):
                continue
            plan.add(
                push_operation(name, install, rendered, note=f"from {chosen.tool.id}", requires=pulled.path)
            )
    return plan
