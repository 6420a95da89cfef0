from __future__ import annotations

from pathlib import Path


def _tool(root: Path, tool_id: str = "claude"):
    from skillsync.tools import Tool

    return Tool(id=tool_id, display_name=tool_id.title(), root=root)


def test_missing_root_is_empty(tmp_path: Path) -> None:
    from skillsync.skills.scanner import scan_tool

    install, errors = scan_tool(_tool(tmp_path / "nope"))
    assert install.skills == {}
    assert errors == []


def test_scan_keys_by_directory_name(tmp_path: Path) -> None:
    from skillsync.skills.scanner import scan_tool

    root = tmp_path / "claude"
    (root / "pdf").mkdir(parents=True)
    (root / "pdf" / "SKILL.md").write_text("---\nname: something-else\ndescription: d\n---\n", encoding="utf-8")
    (root / "empty").mkdir()
    (root / ".hidden").mkdir()
    (root / ".hidden" / "SKILL.md").write_text("x", encoding="utf-8")
    (root / "README.md").write_text("not a skill", encoding="utf-8")

    install, errors = scan_tool(_tool(root))
    assert errors == []
    assert list(install.skills) == ["pdf"]
    installed = install.skills["pdf"]
    assert installed.path == root / "pdf" / "SKILL.md"
    assert installed.content.startswith(b"---\nname: something-else")


def test_non_utf8_copy_is_kept_with_warning(tmp_path: Path) -> None:
    from skillsync.skills.scanner import scan_tool

    root = tmp_path / "codex"
    (root / "blob").mkdir(parents=True)
    (root / "blob" / "SKILL.md").write_bytes(b"\xff\xfe\x00junk")

    install, errors = scan_tool(_tool(root, "codex"))
    assert "blob" in install.skills
    assert len(errors) == 1
    assert errors[0].category == "scan"
    assert "not UTF-8" in errors[0].message


def test_root_that_is_a_file_warns(tmp_path: Path) -> None:
    from skillsync.skills.scanner import scan_tool

    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    install, errors = scan_tool(_tool(blocker))
    assert install.skills == {}
    assert [e.category for e in errors] == ["scan"]
