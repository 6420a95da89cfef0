"""Warning aggregation for a single command run.

Warnings are recovered problems: they are logged as they happen and counted in
the end-of-run summary, but never change the exit code on their own.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .logging import get_logger

logger = get_logger(__name__)

SOURCE = "source"
LOAD = "load"
CONFLICT = "conflict"
SCAN = "scan"
RENDER = "render"
DEFAULT_DECISION = "default-decision"


@dataclass(frozen=True)
class Diagnostic:
    category: str
    message: str
    path: Path | None = None
    details: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"category": self.category, "message": self.message}
        if self.path is not None:
            data["path"] = str(self.path)
        if self.details:
            data["details"] = list(self.details)
        return data


@dataclass(frozen=True)
class SkippedSkill:
    path: Path
    reason: str


@dataclass
class Diagnostics:
    lock: threading.Lock = field(default_factory=threading.Lock)
    warnings: list[Diagnostic] = field(default_factory=list)
    skipped: list[SkippedSkill] = field(default_factory=list)

    def warn(
        self,
        category: str,
        message: str,
        *,
        path: Path | None = None,
        details: list[str] | tuple[str, ...] = (),
    ) -> Diagnostic:
        item = Diagnostic(category=str(category), message=str(message), path=path, details=tuple(details))
        with self.lock:
            self.warnings.append(item)
        logger.warning("[%s] %s", item.category, item.message)
        for line in item.details:
            logger.warning("  - %s", line)
        return item

    def warn_skipped(self, category: str, path: Path, reason: str) -> None:
        with self.lock:
            self.skipped.append(SkippedSkill(path=Path(path), reason=str(reason)))
        self.warn(category, f"{path} - {reason}", path=Path(path))

    def extend(self, items: list[Diagnostic]) -> None:
        """Replay diagnostics gathered by a worker, in the order given.

        ``load`` diagnostics carry the skill file as ``path`` and the reason
        as ``message`` and are recorded as skipped skills.
        """
        for item in items:
            if item.category == LOAD and item.path is not None:
                self.warn_skipped(LOAD, item.path, item.message)
                continue
            self.warn(item.category, item.message, path=item.path, details=item.details)

    def by_category(self, category: str) -> list[Diagnostic]:
        with self.lock:
            return [w for w in self.warnings if w.category == category]

    def summary_lines(self) -> list[str]:
        with self.lock:
            skipped = list(self.skipped)
            total = len(self.warnings)
        lines: list[str] = []
        if skipped:
            lines.append(f"Skipped {len(skipped)} skills due to errors:")
            for item in skipped:
                lines.append(f"  - {item.path}: {item.reason}")
        if total:
            lines.append(f"Completed with {total} warning(s).")
        return lines

    def to_dict(self) -> dict[str, Any]:
        with self.lock:
            return {
                "warnings": [w.to_dict() for w in self.warnings],
                "skipped": [{"path": str(s.path), "reason": s.reason} for s in self.skipped],
            }
