"""Operation plans and the apply phase shared by every command that writes.

A plan is built completely (including every interactive decision) before
anything is written. Apply groups operations by skill: groups run
concurrently, operations inside a group run in plan order so a pull lands
before the pushes that were rendered from it. Every write holds the lock for
its destination path and goes through a temporary sibling file, so a reader
never sees a partial file. Directory removals and moves hold the locks of
every path they touch. There is no transaction across skills.
"""

from __future__ import annotations

import os
import shutil
import threading
import uuid
from contextlib import ExitStack
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import WriteError
from ..logging import get_logger
from ..paths import display_path
from ..skills.schema import SKILL_FILE_NAME

logger = get_logger(__name__)


class Action(str, Enum):
    WRITE_NEW = "write-new"
    OVERWRITE = "overwrite"
    PULL = "pull"
    CREATE = "create"
    NOOP = "noop"
    SKIP = "skip"
    REMOVE = "remove"
    MOVE = "move"
    ERROR = "error"


WRITE_ACTIONS = frozenset(
    {Action.WRITE_NEW, Action.OVERWRITE, Action.PULL, Action.CREATE, Action.REMOVE, Action.MOVE}
)
PULL_ACTIONS = frozenset({Action.PULL, Action.CREATE})
# directory-level actions: ``path`` is a skill directory, not a SKILL.md
DIRECTORY_ACTIONS = frozenset({Action.REMOVE, Action.MOVE})


@dataclass(frozen=True)
class Operation:
    action: Action
    skill: str
    tool_id: str | None = None
    path: Path | None = None
    old: bytes | None = None
    new: bytes | None = None
    note: str = ""
    requires: Path | None = None
    origin: Path | None = None
    replace: bool = False

    @property
    def writes(self) -> bool:
        return self.action in WRITE_ACTIONS

    @property
    def direction(self) -> str:
        if self.action in PULL_ACTIONS:
            return "pull"
        if self.action in DIRECTORY_ACTIONS or self.tool_id is None:
            return "local"
        return "push"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "action": self.action.value,
            "skill": self.skill,
            "tool": self.tool_id,
            "direction": self.direction,
            "path": str(self.path) if self.path is not None else None,
        }
        if self.origin is not None:
            data["from"] = str(self.origin)
        if self.note:
            data["note"] = self.note
        return data


@dataclass
class Plan:
    kind: str
    dry_run: bool = False
    operations: list[Operation] = field(default_factory=list)

    def add(self, op: Operation) -> Operation:
        self.operations.append(op)
        return op

    def writes(self) -> list[Operation]:
        return [op for op in self.operations if op.writes]

    def by_action(self, action: Action) -> list[Operation]:
        return [op for op in self.operations if op.action == action]

    def counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for op in self.operations:
            counts[op.action.value] = counts.get(op.action.value, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "dry_run": bool(self.dry_run),
            "counts": self.counts(),
            "operations": [op.to_dict() for op in self.operations],
        }


@dataclass(frozen=True)
class OpResult:
    operation: Operation
    ok: bool
    error: str | None = None


@dataclass
class ApplyReport:
    results: list[OpResult] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> list[OpResult]:
        return [r for r in self.results if not r.ok]

    @property
    def succeeded(self) -> list[OpResult]:
        return [r for r in self.results if r.ok]

    @property
    def fatal(self) -> bool:
        """True when operations were targeted and every one of them failed."""
        return self.attempted > 0 and not self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": len(self.succeeded),
            "failed": [
                {"skill": r.operation.skill, "path": str(r.operation.path), "error": r.error} for r in self.failed
            ],
        }


class PathLocks:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: dict[Path, threading.Lock] = {}

    def for_path(self, path: Path) -> threading.Lock:
        key = Path(os.path.abspath(path))
        with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


def write_file(path: Path, content: bytes) -> None:
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_bytes(content)
        tmp.replace(path)
    except OSError as exc:
        try:
            tmp.unlink()
        except OSError:
            pass
        raise WriteError(path, exc) from exc


def remove_dir(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise WriteError(path, exc, verb="remove") from exc


def move_dir(origin: Path, dest: Path, *, replace: bool = False) -> None:
    """Move a skill directory to ``dest``; an existing ``dest`` is only removed with ``replace``."""
    try:
        if dest.exists():
            if not replace:
                raise FileExistsError(f"{dest} already exists")
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(origin), str(dest))
    except OSError as exc:
        raise WriteError(dest, exc, verb="move to") from exc


def _execute(op: Operation) -> None:
    if op.path is None:
        raise ValueError("operation has no destination")
    if op.action == Action.REMOVE:
        remove_dir(op.path)
        return
    if op.action == Action.MOVE:
        if op.origin is None:
            raise ValueError("move has no origin")
        move_dir(op.origin, op.path, replace=op.replace)
        if op.new is not None:
            write_file(op.path / SKILL_FILE_NAME, op.new)
        return
    if op.new is None:
        raise ValueError("operation has no content")
    write_file(op.path, op.new)


def _apply_group(ops: list[tuple[int, Operation]], locks: PathLocks) -> list[tuple[int, OpResult]]:
    results: list[tuple[int, OpResult]] = []
    failed_paths: set[Path] = set()
    for index, op in ops:
        if op.action == Action.ERROR:
            results.append((index, OpResult(operation=op, ok=False, error=op.note or "planning failed")))
            continue
        if op.requires is not None and op.requires in failed_paths:
            error = f"not written: prerequisite write to {display_path(op.requires)} failed"
            logger.error("%s: %s", op.skill, error)
            results.append((index, OpResult(operation=op, ok=False, error=error)))
            continue
        touched = sorted({Path(os.path.abspath(p)) for p in (op.path, op.origin) if p is not None})
        try:
            with ExitStack() as stack:
                for path in touched:
                    stack.enter_context(locks.for_path(path))
                _execute(op)
        except (WriteError, ValueError) as exc:
            if op.path is not None:
                failed_paths.add(op.path)
            logger.error("%s: %s", op.skill, exc)
            results.append((index, OpResult(operation=op, ok=False, error=str(exc))))
            continue
        logger.info("%s %s -> %s", op.action.value, op.skill, display_path(op.path))
        results.append((index, OpResult(operation=op, ok=True)))
    return results


def apply_plan(plan: Plan, *, locks: PathLocks | None = None, max_workers: int | None = None) -> ApplyReport:
    """Execute the write operations of ``plan``; a failure never blocks siblings.

    A dry-run plan is not applied and yields an empty report.
    """
    if plan.dry_run:
        return ApplyReport()
    locks = locks or PathLocks()

    groups: dict[str, list[tuple[int, Operation]]] = {}
    for index, op in enumerate(plan.operations):
        if op.writes or op.action == Action.ERROR:
            groups.setdefault(op.skill, []).append((index, op))
    if not groups:
        return ApplyReport()

    collected: list[tuple[int, OpResult]] = []
    with ThreadPoolExecutor(max_workers=max_workers or min(8, len(groups))) as pool:
        futures = [pool.submit(_apply_group, ops, locks) for ops in groups.values()]
        for future in futures:
            collected.extend(future.result())

    collected.sort(key=lambda item: item[0])
    return ApplyReport(results=[result for _, result in collected])
