from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..errors import FrontmatterError

SKILL_FILE_NAME = "SKILL.md"

_SKILL_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")

_MAX_NAME_LEN = 64
_MAX_DESCRIPTION_LEN = 1024

REQUIRED_FIELDS: tuple[str, ...] = ("name", "description")


@dataclass(frozen=True)
class Frontmatter:
    name: str
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""


@dataclass(frozen=True)
class Skill:
    name: str
    description: str
    metadata: dict[str, Any]
    body: str
    contents: str
    source_root: Path
    skill_dir: Path
    skill_path: Path
    mtime: float

    def to_public_dict(self, *, include_contents: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "metadata": dict(self.metadata),
            "source": str(self.source_root),
            "path": str(self.skill_path),
            "mtime": float(self.mtime),
        }
        if include_contents:
            data["contents"] = self.contents
        return data


@dataclass(frozen=True)
class InstalledSkill:
    name: str
    path: Path
    content: bytes
    mtime: float

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def _safe_str(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def validate_skill_name(name: str) -> list[str]:
    raw = str(name or "").strip()
    if not raw:
        return ["name_missing"]
    if len(raw) > _MAX_NAME_LEN:
        return ["name_too_long"]
    if not _SKILL_NAME_RE.match(raw):
        return ["name_invalid"]
    return []


def split_frontmatter(contents: str) -> tuple[str, str]:
    """Return the raw YAML block and the body that follows it.

    The document must open with a ``---`` line; the block ends at the next
    ``---`` line. CRLF line endings are accepted.
    """
    lines = contents.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != "---":
        raise FrontmatterError("missing YAML frontmatter")
    for index in range(1, len(lines)):
        if lines[index].rstrip("\r\n") == "---":
            return "".join(lines[1:index]), "".join(lines[index + 1 :])
    raise FrontmatterError("missing YAML frontmatter")


def parse_frontmatter(contents: str) -> tuple[Frontmatter | None, list[str]]:
    try:
        block, body = split_frontmatter(contents)
    except FrontmatterError as exc:
        return None, [str(exc)]
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        return None, [f"invalid YAML frontmatter: {exc}"]
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None, ["frontmatter is not a mapping"]

    errors: list[str] = []
    values: dict[str, str] = {}
    for key in REQUIRED_FIELDS:
        value = _safe_str(data.get(key))
        if not value:
            errors.append(f"missing required field '{key}'")
            continue
        values[key] = value
    if errors:
        return None, errors
    if len(values["description"]) > _MAX_DESCRIPTION_LEN:
        return None, ["description exceeds 1024 characters"]

    metadata = {str(k): v for k, v in data.items() if k not in REQUIRED_FIELDS}
    return Frontmatter(name=values["name"], description=values["description"], metadata=metadata, body=body), []


def set_frontmatter_name(contents: str, name: str) -> str:
    """Rewrite the top-level ``name:`` line, leaving the rest of the file untouched."""
    split_frontmatter(contents)
    lines = contents.splitlines(keepends=True)
    newline = "\r\n" if lines[0].endswith("\r\n") else "\n"
    for index in range(1, len(lines)):
        stripped = lines[index].rstrip("\r\n")
        if stripped == "---":
            lines.insert(1, f"name: {name}{newline}")
            break
        if stripped.startswith("name:"):
            lines[index] = f"name: {name}{lines[index][len(stripped):]}"
            break
    return "".join(lines)


def read_skill_file(skill_path: Path) -> tuple[str | None, float, str | None]:
    """Read a skill file as text; returns ``(contents, mtime, error)``."""
    try:
        data = skill_path.read_bytes()
        mtime = skill_path.stat().st_mtime
    except OSError as exc:
        return None, 0.0, str(exc)
    try:
        return data.decode("utf-8"), float(mtime), None
    except UnicodeDecodeError:
        return None, float(mtime), "file is not valid UTF-8"


def load_source_skill(source_root: Path, skill_dir: Path) -> tuple[Skill | None, str | None]:
    """Load one skill directory.

    Returns ``(None, None)`` when the directory holds no skill file at all and
    ``(None, reason)`` when the file exists but cannot be used.
    """
    skill_path = skill_dir / SKILL_FILE_NAME
    if not skill_path.is_file():
        return None, None
    contents, mtime, error = read_skill_file(skill_path)
    if contents is None:
        return None, error
    frontmatter, errors = parse_frontmatter(contents)
    if frontmatter is None:
        return None, "; ".join(errors) or "invalid frontmatter"
    name_errors = validate_skill_name(frontmatter.name)
    if name_errors:
        return None, f"invalid skill name '{frontmatter.name}': {','.join(name_errors)}"
    return (
        Skill(
            name=frontmatter.name,
            description=frontmatter.description,
            metadata=dict(frontmatter.metadata),
            body=frontmatter.body,
            contents=contents,
            source_root=source_root,
            skill_dir=skill_dir,
            skill_path=skill_path,
            mtime=mtime,
        ),
        None,
    )
