from __future__ import annotations

import difflib
from typing import Sequence

from ..paths import display_path
from .resolver import Variant


def _as_text(content: bytes | str) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return content


def unified_diff(old_label: str, new_label: str, old: bytes | str, new: bytes | str) -> str:
    diff = difflib.unified_diff(
        _as_text(old).splitlines(),
        _as_text(new).splitlines(),
        fromfile=old_label,
        tofile=new_label,
        n=3,
        lineterm="",
    )
    diff_text = "\n".join(diff)
    if diff_text and not diff_text.endswith("\n"):
        diff_text += "\n"
    return diff_text


def variants_diff(variants: Sequence[Variant]) -> str:
    """Diff the first variant against every other one."""
    if len(variants) < 2:
        return ""
    base = variants[0]
    chunks: list[str] = []
    for other in variants[1:]:
        chunks.append(
            unified_diff(
                f"{base.tool.id}: {display_path(base.path)}",
                f"{other.tool.id}: {display_path(other.path)}",
                base.content,
                other.content,
            )
        )
    return "\n".join(chunk for chunk in chunks if chunk)
