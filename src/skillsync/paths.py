from __future__ import annotations

import os
from pathlib import Path


def expand_path(raw: str, base_dir: Path) -> Path:
    """Expand ``~`` and ``$VARS`` and resolve relative paths against ``base_dir``."""
    expanded = Path(os.path.expanduser(os.path.expandvars(str(raw).strip())))
    if not expanded.is_absolute():
        expanded = Path(base_dir) / expanded
    try:
        return expanded.resolve()
    except (OSError, RuntimeError):
        return Path(os.path.normpath(expanded))


def display_path(path: Path) -> str:
    path = Path(path)
    try:
        rel = path.relative_to(Path.home())
    except ValueError:
        return str(path)
    if not rel.parts:
        return "~"
    return f"~{os.sep}{rel}"
