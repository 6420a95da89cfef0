from __future__ import annotations

from pathlib import Path


class SkillsError(Exception):
    """Base class for errors surfaced by skillsync commands."""


class ConfigError(SkillsError):
    def __init__(self, message: str, *, path: Path | None = None):
        super().__init__(message)
        self.path = path


class SkillNotFoundError(SkillsError):
    def __init__(self, name: str):
        super().__init__(f"Skill not found: {name}")
        self.name = name


class FrontmatterError(SkillsError):
    pass


class RenderError(SkillsError):
    pass


class SkillExistsError(SkillsError):
    def __init__(self, name: str, path: Path):
        super().__init__(f"Skill already exists: {name} ({path})")
        self.name = name
        self.path = path


class AmbiguousSkillError(SkillsError):
    def __init__(self, name: str, tool_ids: list[str]):
        super().__init__(f"Skill '{name}' exists in several tools ({', '.join(tool_ids)}); pass --tool")
        self.name = name
        self.tool_ids = tool_ids


class WriteError(SkillsError):
    def __init__(self, path: Path, cause: BaseException, *, verb: str = "write"):
        super().__init__(f"Failed to {verb} {path}: {cause}")
        self.path = path
        self.cause = cause
