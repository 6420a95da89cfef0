from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path

from . import __version__
from .config import SkillsConfig, load_config, write_starter_config
from .diagnostics import Diagnostics
from .errors import ConfigError, RenderError, SkillNotFoundError, SkillsError
from .logging import setup_logging
from .paths import display_path, expand_path
from .reconcile.diff import unified_diff
from .reconcile.lifecycle import plan_new, plan_promote, plan_rename, plan_unload
from .reconcile.plan import Action, ApplyReport, Plan, apply_plan
from .reconcile.pull import plan_pull
from .reconcile.push import plan_push
from .reconcile.resolver import BatchResolver, ConflictResolver, TerminalResolver
from .reconcile.status import StatusMatrix, SyncStatus, compute_status
from .reconcile.sync import PREFER_SOURCE, PREFER_TOOL, plan_sync
from .skills.render import render_for_tool
from .skills.schema import parse_frontmatter
from .skills.store import Catalog, build_catalog
from .tools import select_tools

_MARKERS: dict[Action, str] = {
    Action.WRITE_NEW: "+",
    Action.OVERWRITE: "~",
    Action.PULL: "<",
    Action.CREATE: "<",
    Action.NOOP: "=",
    Action.SKIP: "!",
    Action.REMOVE: "-",
    Action.MOVE: ">",
    Action.ERROR: "x",
}


@dataclass
class Run:
    config: SkillsConfig
    diagnostics: Diagnostics
    catalog: Catalog
    matrix: StatusMatrix


def _print_json(payload: object) -> None:
    print(json.dumps(payload, ensure_ascii=True))


def _eprint(text: str) -> None:
    print(text, file=sys.stderr)


def _load_run(args: argparse.Namespace) -> Run:
    config = load_config(getattr(args, "config", None))
    diagnostics = Diagnostics()
    catalog = build_catalog(config, diagnostics)
    matrix = compute_status(catalog, diagnostics)
    return Run(config=config, diagnostics=diagnostics, catalog=catalog, matrix=matrix)


def _interactive(args: argparse.Namespace) -> bool:
    if bool(getattr(args, "no_input", False)):
        return False
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


def _resolver_for(args: argparse.Namespace, diagnostics: Diagnostics) -> ConflictResolver:
    if _interactive(args):
        if bool(getattr(args, "json", False)):
            return TerminalResolver(out=sys.stderr)
        return TerminalResolver()
    return BatchResolver(diagnostics)


def _finish(args: argparse.Namespace, run: Run, payload: dict, *, failed: bool = False) -> None:
    if bool(getattr(args, "json", False)):
        payload = dict(payload)
        payload.setdefault("ok", not failed)
        payload["diagnostics"] = run.diagnostics.to_dict()
        _print_json(payload)
    else:
        for line in run.diagnostics.summary_lines():
            _eprint(line)
    if failed:
        sys.exit(1)


def _tool_label(run: Run, tool_id: str | None) -> str:
    if tool_id is None:
        return "-"
    tool = run.config.tool(tool_id)
    return tool.display_name if tool is not None else tool_id


def _print_plan(plan: Plan) -> None:
    for op in plan.operations:
        marker = _MARKERS.get(op.action, "?")
        tool = f" [{op.tool_id}]" if op.tool_id else ""
        note = f" ({op.note})" if op.note else ""
        print(f"  {marker} {op.skill}{tool} {op.action.value}{note}")


def _apply_and_report(args: argparse.Namespace, run: Run, plan: Plan) -> None:
    as_json = bool(getattr(args, "json", False))
    if not as_json:
        if not plan.operations:
            print(f"Nothing to {plan.kind}.")
        else:
            print(f"{plan.kind.capitalize()} plan:")
            _print_plan(plan)
    report: ApplyReport = apply_plan(plan)
    if not as_json:
        if plan.dry_run:
            writes = len(plan.writes())
            print(f"Dry run: {writes} write(s) would be performed.")
        else:
            for result in report.failed:
                _eprint(f"Failed: {result.operation.skill}: {result.error}")
            print(f"Applied {len(report.succeeded)} of {report.attempted} write(s).")
        skipped = plan.by_action(Action.SKIP)
        if skipped:
            print(f"Skipped {len(skipped)} operation(s).")
    _finish(args, run, {"plan": plan.to_dict(), "apply": report.to_dict()}, failed=report.fatal)


def cmd_list(args: argparse.Namespace) -> None:
    run = _load_run(args)
    if bool(getattr(args, "json", False)):
        _finish(
            args,
            run,
            {
                "sources": [str(s.path) for s in run.catalog.sources],
                "conflicts": [c.to_dict() for c in run.catalog.conflicts],
                "status": run.matrix.to_dict(),
            },
        )
        return
    names = run.matrix.names()
    if not names:
        print("No skills found.")
    for name in names:
        source = run.catalog.source_for(name)
        print(name)
        print(f"  source: {display_path(source.path) if source is not None else '-'}")
        row = run.matrix.row(name)
        cells: list[str] = []
        for tool_id in run.matrix.tool_ids:
            if (name, tool_id) in run.matrix.excluded:
                label = "error"
            else:
                status = row.get(tool_id)
                label = status.value if status is not None else "-"
            cells.append(f"{tool_id}: {label:<9}")
        print("  " + " ".join(cells).rstrip())
        print()
    if run.catalog.conflicts:
        print("Conflicts:")
        for conflict in run.catalog.conflicts:
            print(f"  {conflict.name}: using {display_path(conflict.chosen)}")
            for location in conflict.locations:
                print(f"    - {display_path(location)}")
    _finish(args, run, {})


def cmd_push(args: argparse.Namespace) -> None:
    run = _load_run(args)
    tools = select_tools(tuple(i.tool for i in run.catalog.tools), getattr(args, "tool", None))
    plan = plan_push(
        run.catalog,
        run.matrix,
        _resolver_for(args, run.diagnostics),
        names=list(getattr(args, "skills", None) or []) or None,
        tool_ids=[t.id for t in tools],
        force=bool(getattr(args, "force", False)),
        dry_run=bool(getattr(args, "dry_run", False)),
    )
    _apply_and_report(args, run, plan)


def cmd_pull(args: argparse.Namespace) -> None:
    run = _load_run(args)
    target = None
    raw_to = getattr(args, "to", None)
    if raw_to:
        target = expand_path(str(raw_to), Path.cwd())
        if not target.is_dir():
            raise ConfigError(f"Target source directory does not exist: {target}", path=target)
    skill = getattr(args, "skill", None)
    plan = plan_pull(
        run.catalog,
        run.matrix,
        _resolver_for(args, run.diagnostics),
        names=[skill] if skill else None,
        target=target,
        dry_run=bool(getattr(args, "dry_run", False)),
        diagnostics=run.diagnostics,
    )
    _apply_and_report(args, run, plan)


def cmd_sync(args: argparse.Namespace) -> None:
    run = _load_run(args)
    prefer = None
    if bool(getattr(args, "prefer_source", False)):
        prefer = PREFER_SOURCE
    elif bool(getattr(args, "prefer_tool", False)):
        prefer = PREFER_TOOL
    plan = plan_sync(
        run.config,
        run.catalog,
        run.matrix,
        _resolver_for(args, run.diagnostics),
        names=list(getattr(args, "skills", None) or []) or None,
        prefer=prefer,
        dry_run=bool(getattr(args, "dry_run", False)),
    )
    _apply_and_report(args, run, plan)


def cmd_diff(args: argparse.Namespace) -> None:
    run = _load_run(args)
    skill_name = getattr(args, "skill", None)
    names = run.matrix.names()
    if skill_name:
        if skill_name not in names:
            raise SkillNotFoundError(skill_name)
        names = [skill_name]
    wanted = set(names)
    chunks: list[dict] = []
    for name, tool_id in run.matrix.cells_with(SyncStatus.MODIFIED):
        skill = run.catalog.skills.get(name)
        install = run.catalog.install_for(tool_id)
        if name not in wanted or skill is None or install is None:
            continue
        installed = install.skills[name]
        text = unified_diff(
            f"source: {display_path(skill.skill_path)}",
            f"{tool_id}: {display_path(installed.path)}",
            run.matrix.rendered[(name, tool_id)],
            installed.content,
        )
        chunks.append({"skill": name, "tool": tool_id, "diff": text})
    if bool(getattr(args, "json", False)):
        _finish(args, run, {"diffs": chunks})
        return
    if not chunks:
        print("No modified skills.")
    for chunk in chunks:
        print(f"=== {chunk['skill']} ({_tool_label(run, chunk['tool'])}) ===")
        print(chunk["diff"].rstrip("\n"))
        print()
    _finish(args, run, {})


def cmd_render(args: argparse.Namespace) -> None:
    run = _load_run(args)
    name = str(getattr(args, "skill") or "").strip()
    skill = run.catalog.skills.get(name)
    if skill is None:
        raise SkillNotFoundError(name)
    tools = select_tools(tuple(i.tool for i in run.catalog.tools), getattr(args, "tool", None))
    outputs: dict[str, str] = {}
    for tool in tools:
        outputs[tool.id] = render_for_tool(skill.contents, tool)
    if bool(getattr(args, "json", False)):
        _finish(args, run, {"skill": name, "rendered": outputs})
        return
    multi = len(outputs) > 1
    for tool_id, text in outputs.items():
        if multi:
            print(f"=== {_tool_label(run, tool_id)} ===")
        print(text, end="" if text.endswith("\n") else "\n")
        if multi:
            print()
    _finish(args, run, {})


def cmd_show(args: argparse.Namespace) -> None:
    run = _load_run(args)
    name = str(getattr(args, "skill") or "").strip()
    skill = run.catalog.skills.get(name)
    if skill is not None:
        location, contents = skill.skill_path, skill.contents
    else:
        installed = next((i.skills[name] for i in run.catalog.tools if name in i.skills), None)
        if installed is None:
            raise SkillNotFoundError(name)
        location, contents = installed.path, installed.text
    if bool(getattr(args, "json", False)):
        details = skill.to_public_dict(include_contents=True) if skill is not None else {"name": name}
        details.update({"path": str(location), "contents": contents})
        _finish(args, run, {"skill": details})
        return
    print(contents, end="" if contents.endswith("\n") else "\n")
    _finish(args, run, {})


def validate_skill(run: Run, name: str) -> list[str]:
    skill = run.catalog.skills[name]
    errors: list[str] = []
    frontmatter, fm_errors = parse_frontmatter(skill.contents)
    if frontmatter is None:
        errors.extend(f"frontmatter: {e}" for e in fm_errors)
    elif frontmatter.name != skill.skill_dir.name:
        errors.append(f"frontmatter name '{frontmatter.name}' does not match directory name '{skill.skill_dir.name}'")
    for install in run.catalog.tools:
        try:
            render_for_tool(skill.contents, install.tool)
        except RenderError as exc:
            errors.append(f"template ({install.tool.id} render): {exc}")
    return errors


def cmd_validate(args: argparse.Namespace) -> None:
    run = _load_run(args)
    target = getattr(args, "skill", None)
    if target:
        if target not in run.catalog.skills:
            raise SkillNotFoundError(target)
        names = [target]
    else:
        names = sorted(run.catalog.skills, key=lambda n: (n.lower(), n))
    results = {name: validate_skill(run, name) for name in names}
    invalid = [name for name, errs in results.items() if errs]
    skipped = len(run.diagnostics.skipped)
    if bool(getattr(args, "json", False)):
        _finish(
            args,
            run,
            {"ok": not invalid and not skipped, "errors": {n: e for n, e in results.items() if e} or None},
            failed=bool(invalid) or bool(skipped),
        )
        return
    if not names:
        print("No skills to validate.")
    for name, errs in results.items():
        print(f"{'x' if errs else 'ok'} {name}")
        for error in errs:
            print(f"    - {error}")
    print()
    print(f"{len(names) - len(invalid)} valid, {len(invalid) + skipped} invalid")
    _finish(args, run, {}, failed=bool(invalid) or bool(skipped))


def cmd_unload(args: argparse.Namespace) -> None:
    run = _load_run(args)
    tools = select_tools(tuple(i.tool for i in run.catalog.tools), getattr(args, "tool", None))
    plan = plan_unload(
        run.catalog,
        str(getattr(args, "skill") or "").strip(),
        _resolver_for(args, run.diagnostics),
        tool_ids=[t.id for t in tools],
        force=bool(getattr(args, "force", False)),
        dry_run=bool(getattr(args, "dry_run", False)),
    )
    _apply_and_report(args, run, plan)


def cmd_mv(args: argparse.Namespace) -> None:
    run = _load_run(args)
    plan = plan_rename(
        run.catalog,
        str(getattr(args, "old_name") or "").strip(),
        str(getattr(args, "new_name") or "").strip(),
        _resolver_for(args, run.diagnostics),
        force=bool(getattr(args, "force", False)),
        dry_run=bool(getattr(args, "dry_run", False)),
    )
    _apply_and_report(args, run, plan)


def cmd_new(args: argparse.Namespace) -> None:
    path = expand_path(str(getattr(args, "path")), Path.cwd())
    plan = plan_new(path)
    report = apply_plan(plan)
    for result in report.failed:
        _eprint(f"Failed: {result.operation.skill}: {result.error}")
    if bool(getattr(args, "json", False)):
        _print_json({"ok": not report.failed, "skill": path.name, "path": str(path / "SKILL.md")})
    elif not report.failed:
        print(f"Created skill at {display_path(path / 'SKILL.md')}")
        print("Edit the SKILL.md file, then run `skills push` to sync.")
    if report.failed:
        sys.exit(1)


def cmd_promote(args: argparse.Namespace) -> None:
    run = _load_run(args)
    target = None
    raw_to = getattr(args, "to", None)
    if raw_to:
        target = expand_path(str(raw_to), Path.cwd())
        if not target.is_dir():
            raise ConfigError(f"Target directory does not exist: {target}", path=target)
    name = str(getattr(args, "skill") or "").strip()
    dry_run = bool(getattr(args, "dry_run", False))
    plan = plan_promote(
        run.catalog,
        name,
        Path.cwd(),
        tool_filter=getattr(args, "tool", None),
        target=target,
        force=bool(getattr(args, "force", False)),
        dry_run=dry_run,
        diagnostics=run.diagnostics,
    )
    _apply_and_report(args, run, plan)
    if target is None and not dry_run and name not in run.catalog.skills and not bool(getattr(args, "json", False)):
        print(f"Run `skills pull {name} --to <source-dir>` to keep it in a source.")


def cmd_init(args: argparse.Namespace) -> None:
    path = write_starter_config(getattr(args, "config", None), force=bool(getattr(args, "force", False)))
    if bool(getattr(args, "json", False)):
        _print_json({"ok": True, "config": str(path)})
        return
    print(f"Wrote {display_path(path)}; edit it to list your skill sources.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skills", description="Keep agent skills in sync across tools.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default=None, help="config file (default: $SKILLS_CONFIG or ~/.skills.yaml)")
    parser.add_argument("--log-level", dest="log_level", default=None)
    parser.add_argument("--json", action="store_true", help="print JSON payloads")
    parser.add_argument("--no-input", dest="no_input", action="store_true", help="never prompt; use defaults")
    parser.set_defaults(func=cmd_list)

    sub = parser.add_subparsers(dest="command")

    ls = sub.add_parser("list", aliases=["ls", "status"], help="show sync status")
    ls.set_defaults(func=cmd_list)

    push = sub.add_parser("push", help="push source skills to tools")
    push.add_argument("skills", nargs="*")
    push.add_argument("--tool", default="all")
    push.add_argument("-f", "--force", action="store_true")
    push.add_argument("-n", "--dry-run", dest="dry_run", action="store_true")
    push.set_defaults(func=cmd_push)

    pull = sub.add_parser("pull", help="pull tool skills back into sources")
    pull.add_argument("skill", nargs="?", default=None)
    pull.add_argument("--to", default=None, help="source directory for new skills")
    pull.add_argument("-n", "--dry-run", dest="dry_run", action="store_true")
    pull.set_defaults(func=cmd_pull)

    sync = sub.add_parser("sync", help="two-way sync by modification time")
    sync.add_argument("skills", nargs="*")
    prefer = sync.add_mutually_exclusive_group()
    prefer.add_argument("--prefer-source", dest="prefer_source", action="store_true")
    prefer.add_argument("--prefer-tool", dest="prefer_tool", action="store_true")
    sync.add_argument("-n", "--dry-run", dest="dry_run", action="store_true")
    sync.set_defaults(func=cmd_sync)

    diff = sub.add_parser("diff", help="diff rendered sources against tool copies")
    diff.add_argument("skill", nargs="?", default=None)
    diff.set_defaults(func=cmd_diff)

    render = sub.add_parser("render", help="preview rendered output")
    render.add_argument("skill")
    render.add_argument("--tool", default="all")
    render.set_defaults(func=cmd_render)

    show = sub.add_parser("show", help="print a skill file")
    show.add_argument("skill")
    show.set_defaults(func=cmd_show)

    val = sub.add_parser("validate", help="check skill files")
    val.add_argument("skill", nargs="?", default=None)
    val.set_defaults(func=cmd_validate)

    unload = sub.add_parser("unload", help="remove a skill from tool installs")
    unload.add_argument("skill")
    unload.add_argument("--tool", default="all")
    unload.add_argument("-f", "--force", action="store_true")
    unload.add_argument("-n", "--dry-run", dest="dry_run", action="store_true")
    unload.set_defaults(func=cmd_unload)

    mv = sub.add_parser("mv", aliases=["rename"], help="rename a skill in its source and every tool")
    mv.add_argument("old_name")
    mv.add_argument("new_name")
    mv.add_argument("-f", "--force", action="store_true")
    mv.add_argument("-n", "--dry-run", dest="dry_run", action="store_true")
    mv.set_defaults(func=cmd_mv)

    new = sub.add_parser("new", help="create a skill directory from a template")
    new.add_argument("path")
    new.set_defaults(func=cmd_new)

    promote = sub.add_parser("promote", help="move a project-local skill into the global tool root")
    promote.add_argument("skill")
    promote.add_argument("--tool", default=None)
    promote.add_argument("--to", default=None, help="move into this source directory instead")
    promote.add_argument("-f", "--force", action="store_true")
    promote.add_argument("-n", "--dry-run", dest="dry_run", action="store_true")
    promote.set_defaults(func=cmd_promote)

    init = sub.add_parser("init", help="write a starter config")
    init.add_argument("-f", "--force", action="store_true")
    init.set_defaults(func=cmd_init)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(getattr(args, "log_level", None))
    try:
        args.func(args)
    except (SkillsError, ValueError) as exc:
        if bool(getattr(args, "json", False)):
            _print_json({"ok": False, "error": str(exc)})
        else:
            _eprint(f"Error: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        _eprint("Canceled.")
        sys.exit(130)
