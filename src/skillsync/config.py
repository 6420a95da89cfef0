from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .paths import expand_path
from .tools import Tool, default_tools, display_name_for, validate_tool_id

CONFIG_ENV = "SKILLS_CONFIG"
DEFAULT_CONFIG_NAME = ".skills.yaml"

STARTER_CONFIG = """\
# skillsync configuration.
#
# Sources are listed in priority order: when a skill name exists in more than
# one source, the first listed source wins.
sources:
  - ~/dotfiles/skills

# Optional install roots per tool. Built-in tools (claude, codex, gemini) use
# ~/.<tool>/skills unless overridden; set a tool to null to disable it.
# tools:
#   claude: ~/.claude/skills
#   cursor: ~/.cursor/skills

# Seconds within which source and tool modification times count as equal
# during two-way sync (ties go to the source).
mtime_tolerance: 0
"""


@dataclass(frozen=True)
class SkillsConfig:
    path: Path
    sources: tuple[Path, ...]
    tools: tuple[Tool, ...] = field(default_factory=default_tools)
    mtime_tolerance: float = 0.0

    def tool(self, tool_id: str) -> Tool | None:
        for tool in self.tools:
            if tool.id == tool_id:
                return tool
        return None


def default_config_path() -> Path:
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        return Path(os.path.expanduser(env_path))
    return Path.home() / DEFAULT_CONFIG_NAME


def resolve_config_path(path: str | Path | None = None) -> Path:
    return Path(os.path.expanduser(str(path))) if path else default_config_path()


def _parse_tools(raw: Any, *, base_dir: Path, path: Path) -> tuple[Tool, ...]:
    tools: dict[str, Tool] = {t.id: t for t in default_tools()}
    if raw is None:
        return tuple(tools.values())
    if not isinstance(raw, dict):
        raise ConfigError(f"'tools' must be a mapping of tool id to directory in {path}", path=path)
    for key, value in raw.items():
        tool_id = str(key).strip().lower()
        errors = validate_tool_id(tool_id)
        if errors:
            raise ConfigError(f"Invalid tool id '{key}' in {path}: {','.join(errors)}", path=path)
        if value is None:
            tools.pop(tool_id, None)
            continue
        root = expand_path(str(value), base_dir)
        tools[tool_id] = Tool(id=tool_id, display_name=display_name_for(tool_id), root=root)
    return tuple(tools.values())


def _parse_tolerance(raw: Any, *, path: Path) -> float:
    if raw is None:
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"'mtime_tolerance' must be a number in {path}", path=path) from None
    if value < 0:
        raise ConfigError(f"'mtime_tolerance' must not be negative in {path}", path=path)
    return value


def parse_config(data: Any, *, path: Path) -> SkillsConfig:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config at {path} must be a mapping", path=path)

    raw_sources = data.get("sources")
    if not raw_sources:
        raise ConfigError(f"No sources configured; edit {path} to add at least one source.", path=path)
    if not isinstance(raw_sources, list):
        raise ConfigError(f"'sources' must be a list in {path}", path=path)

    base_dir = path.parent
    sources: list[Path] = []
    for item in raw_sources:
        text = str(item or "").strip()
        if not text:
            raise ConfigError(f"Empty source entry in {path}", path=path)
        resolved = expand_path(text, base_dir)
        if resolved not in sources:
            sources.append(resolved)

    return SkillsConfig(
        path=path,
        sources=tuple(sources),
        tools=_parse_tools(data.get("tools"), base_dir=base_dir, path=path),
        mtime_tolerance=_parse_tolerance(data.get("mtime_tolerance"), path=path),
    )


def load_config(path: str | Path | None = None) -> SkillsConfig:
    config_path = resolve_config_path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(
            f"No sources configured; run 'skills init' or create {config_path}.", path=config_path
        ) from None
    except OSError as exc:
        raise ConfigError(f"Failed to read config at {config_path}: {exc}", path=config_path) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config at {config_path}: {exc}", path=config_path) from exc
    return parse_config(data, path=config_path)


def write_starter_config(path: str | Path | None = None, *, force: bool = False) -> Path:
    config_path = resolve_config_path(path)
    if config_path.exists() and not force:
        raise ConfigError(f"Config already exists at {config_path}", path=config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = config_path.with_suffix(".tmp")
    tmp.write_text(STARTER_CONFIG, encoding="utf-8")
    tmp.replace(config_path)
    return config_path
