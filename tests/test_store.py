from __future__ import annotations

from pathlib import Path


def _write_skill(root: Path, name: str, *, body: str = "Body\n", dirname: str | None = None) -> Path:
    skill_dir = root / (dirname or name)
    skill_dir.mkdir(parents=True, exist_ok=True)
    path = skill_dir / "SKILL.md"
    path.write_text(f"---\nname: {name}\ndescription: {name} skill\n---\n{body}", encoding="utf-8")
    return path


def _config(tmp_path: Path, *sources: str):
    from skillsync.config import SkillsConfig
    from skillsync.tools import Tool

    return SkillsConfig(
        path=tmp_path / "skills.yaml",
        sources=tuple(tmp_path / s for s in sources),
        tools=(Tool(id="claude", display_name="Claude Code", root=tmp_path / "tools" / "claude"),),
    )


def test_malformed_skill_is_skipped_and_reported(tmp_path: Path) -> None:
    from skillsync.diagnostics import Diagnostics
    from skillsync.skills.store import build_catalog

    _write_skill(tmp_path / "src", "pdf")
    broken = tmp_path / "src" / "broken"
    broken.mkdir(parents=True)
    (broken / "SKILL.md").write_text("---\ndescription: no name\n---\n", encoding="utf-8")

    diagnostics = Diagnostics()
    catalog = build_catalog(_config(tmp_path, "src"), diagnostics)
    assert list(catalog.skills) == ["pdf"]
    assert len(diagnostics.skipped) == 1
    assert diagnostics.skipped[0].path == broken / "SKILL.md"
    assert diagnostics.skipped[0].reason == "missing required field 'name'"
    lines = diagnostics.summary_lines()
    assert lines[0] == "Skipped 1 skills due to errors:"
    assert "missing required field 'name'" in lines[1]
    assert lines[-1] == "Completed with 1 warning(s)."


def test_first_source_wins_on_collision(tmp_path: Path) -> None:
    from skillsync.diagnostics import Diagnostics
    from skillsync.paths import display_path
    from skillsync.skills.store import build_catalog

    _write_skill(tmp_path / "a", "pdf", body="from A\n")
    _write_skill(tmp_path / "b", "pdf", body="from B\n")
    _write_skill(tmp_path / "b", "xlsx")

    diagnostics = Diagnostics()
    catalog = build_catalog(_config(tmp_path, "a", "b"), diagnostics)
    assert catalog.skills["pdf"].contents.endswith("from A\n")
    assert catalog.source_for("pdf").path == tmp_path / "a"
    assert catalog.source_for("xlsx").path == tmp_path / "b"
    assert catalog.sources[0].names == frozenset({"pdf"})
    assert catalog.sources[1].names == frozenset({"xlsx"})

    conflicts = diagnostics.by_category("conflict")
    assert len(conflicts) == 1
    assert conflicts[0].details == (display_path(tmp_path / "a" / "pdf"), display_path(tmp_path / "b" / "pdf"))
    assert catalog.conflicts[0].chosen == tmp_path / "a" / "pdf"


def test_missing_source_warns_and_continues(tmp_path: Path) -> None:
    from skillsync.diagnostics import Diagnostics
    from skillsync.skills.store import build_catalog

    _write_skill(tmp_path / "real", "pdf")
    diagnostics = Diagnostics()
    catalog = build_catalog(_config(tmp_path, "gone", "real"), diagnostics)
    assert list(catalog.skills) == ["pdf"]
    source_warnings = diagnostics.by_category("source")
    assert len(source_warnings) == 1
    assert "source directory not found" in source_warnings[0].message
    assert diagnostics.skipped == []


def test_skill_name_comes_from_frontmatter(tmp_path: Path) -> None:
    from skillsync.diagnostics import Diagnostics
    from skillsync.skills.store import build_catalog

    _write_skill(tmp_path / "src", "excel", dirname="xlsx-old")
    catalog = build_catalog(_config(tmp_path, "src"), Diagnostics())
    assert list(catalog.skills) == ["excel"]


def test_all_names_include_installed_only_skills(tmp_path: Path) -> None:
    from skillsync.diagnostics import Diagnostics
    from skillsync.skills.store import build_catalog

    _write_skill(tmp_path / "src", "pdf")
    _write_skill(tmp_path / "tools" / "claude", "Legacy")
    _write_skill(tmp_path / "tools" / "claude", "alpha")
    catalog = build_catalog(_config(tmp_path, "src"), Diagnostics())
    assert catalog.all_names() == ["alpha", "Legacy", "pdf"]
    assert catalog.installed_names() == {"Legacy", "alpha"}
