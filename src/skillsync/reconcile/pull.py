"""Pull tool copies back into sources.

Pulling writes the tool's installed file verbatim over the source
``SKILL.md``. The installed file is the *rendered* output for one tool, so any
template conditionals that existed only in the source (for example a block
guarded by ``{% if tool == "codex" %}``) are lost by a pull. That loss is
intended: a pull means "the tool copy is now the truth". Re-add the
conditionals by hand if the skill should keep rendering differently per tool.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from .. import diagnostics as diag
from ..diagnostics import Diagnostics
from ..errors import SkillNotFoundError
from ..paths import display_path
from ..skills.schema import SKILL_FILE_NAME
from ..skills.store import Catalog, SourceDirectory
from .diff import variants_diff
from .plan import Action, Operation, Plan
from .resolver import ConflictResolver, Pick, ShowDiff, Variant
from .status import StatusMatrix, SyncStatus, normalize_content

PULLABLE = (SyncStatus.MODIFIED, SyncStatus.ORPHAN)


def collect_variants(catalog: Catalog, matrix: StatusMatrix, name: str, *, tool_ids: Iterable[str] | None = None) -> list[Variant]:
    """Tool copies of ``name`` that a pull could take, in tool order."""
    wanted = set(tool_ids) if tool_ids is not None else None
    variants: list[Variant] = []
    for tool_id in matrix.tool_ids:
        if wanted is not None and tool_id not in wanted:
            continue
        if matrix.status(name, tool_id) not in PULLABLE:
            continue
        install = catalog.install_for(tool_id)
        if install is None or name not in install.skills:
            continue
        installed = install.skills[name]
        variants.append(Variant(tool=install.tool, content=installed.content, mtime=installed.mtime, path=installed.path))
    return variants


def variants_agree(variants: Sequence[Variant]) -> bool:
    return len({normalize_content(v.content) for v in variants}) <= 1


def decide_variant(name: str, variants: Sequence[Variant], resolver: ConflictResolver) -> Variant | None:
    """Pick the variant to pull, or None to skip the skill.

    Agreeing variants never reach the resolver. ``ShowDiff`` displays the
    differences and asks again.
    """
    if not variants:
        return None
    if variants_agree(variants):
        return variants[0]
    while True:
        decision = resolver.resolve_divergent(name, variants)
        if isinstance(decision, ShowDiff):
            resolver.show_diff(name, variants_diff(variants))
            continue
        if isinstance(decision, Pick):
            for variant in variants:
                if variant.tool.id == decision.tool_id:
                    return variant
            raise ValueError(f"resolver picked '{decision.tool_id}', which has no pullable copy of '{name}'")
        return None


def pull_operation(
    name: str,
    variant: Variant,
    dest: Path,
    *,
    create: bool,
    old: bytes | None,
    note: str = "",
) -> Operation:
    return Operation(
        action=Action.CREATE if create else Action.PULL,
        skill=name,
        tool_id=variant.tool.id,
        path=dest,
        old=old,
        new=variant.content,
        note=note,
    )


def choose_target_source(
    catalog: Catalog,
    resolver: ConflictResolver,
    name: str,
    target: Path | None,
) -> SourceDirectory:
    if target is not None:
        for source in catalog.sources:
            if source.path == Path(target):
                return source
        return SourceDirectory(path=Path(target), priority=len(catalog.sources))
    if len(catalog.sources) == 1:
        return catalog.sources[0]
    return resolver.choose_source(name, list(catalog.sources))


def occupant_of(catalog: Catalog, dest: Path) -> str | None:
    """Describe what already lives at an orphan's destination, if anything.

    A directory can hold a skill loaded under a different frontmatter name, a
    losing copy of a name collision, or a skill that failed to load.
    """
    skill_dir = dest.parent
    for skill in catalog.skills.values():
        if skill.skill_dir == skill_dir:
            return f"source skill '{skill.name}'"
    for conflict in catalog.conflicts:
        if skill_dir in conflict.locations:
            return f"a duplicate of '{conflict.name}'"
    if dest.exists():
        return f"an existing {dest.name}"
    return None


def select_pull_names(catalog: Catalog, names: Iterable[str] | None) -> list[str]:
    known = catalog.all_names()
    if not names:
        return known
    selected: list[str] = []
    for name in names:
        if name not in known:
            raise SkillNotFoundError(name)
        if name not in selected:
            selected.append(name)
    return sorted(selected, key=lambda n: (n.lower(), n))


def plan_pull(
    catalog: Catalog,
    matrix: StatusMatrix,
    resolver: ConflictResolver,
    *,
    names: Iterable[str] | None = None,
    target: Path | None = None,
    dry_run: bool = False,
    diagnostics: Diagnostics | None = None,
) -> Plan:
    """Plan writes from tool installs back into sources.

    Modified skills are written over their own source file; orphans are
    created in ``target``, the only configured source, or the source picked
    by ``choose_source``. An orphan whose destination is already occupied is
    skipped with a ``conflict`` warning instead of being written. Dry runs
    never prompt: divergent skills are listed as skipped and orphans go to the
    default source.
    """
    plan = Plan(kind="pull", dry_run=dry_run)
    chooser = resolver if not dry_run else ConflictResolver()

    for name in select_pull_names(catalog, names):
        variants = collect_variants(catalog, matrix, name)
        if not variants:
            continue
        if dry_run and not variants_agree(variants):
            plan.add(Operation(action=Action.SKIP, skill=name, note="tool copies diverge; needs a decision"))
            continue
        chosen = decide_variant(name, variants, resolver)
        if chosen is None:
            plan.add(Operation(action=Action.SKIP, skill=name, note="tool copies diverge; skipped"))
            continue

        skill = catalog.skills.get(name)
        if skill is not None:
            plan.add(
                pull_operation(name, chosen, skill.skill_path, create=False, old=skill.contents.encode("utf-8"))
            )
            continue

        source = choose_target_source(catalog, chooser, name, target)
        dest = source.path / name / SKILL_FILE_NAME
        occupant = occupant_of(catalog, dest)
        if occupant is not None:
            note = f"{display_path(dest.parent)} already holds {occupant}"
            if diagnostics is not None:
                diagnostics.warn(diag.CONFLICT, f"'{name}' not pulled: {note}", path=dest)
            plan.add(Operation(action=Action.SKIP, skill=name, tool_id=chosen.tool.id, path=dest, note=note))
            continue
        plan.add(pull_operation(name, chosen, dest, create=True, old=None, note=f"new in {source.path}"))
    return plan
