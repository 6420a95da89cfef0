from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import header


def _setup(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("SKILLS_CONFIG", raising=False)
    (tmp_path / "src").mkdir()
    cfg = tmp_path / "skills.yaml"
    cfg.write_text(
        "sources: [./src]\ntools:\n  claude: ./tools/claude\n  codex: ./tools/codex\n  gemini: null\n",
        encoding="utf-8",
    )
    return cfg


def _write_skill(root: Path, name: str, body: str = "Body\n") -> Path:
    path = root / name / "SKILL.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(header(name) + body, encoding="utf-8")
    return path


def _run(cfg: Path, *argv: str) -> None:
    from skillsync.cli import main

    main(["--config", str(cfg), "--no-input", *argv])


def test_list_json_reports_matrix(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    _write_skill(tmp_path / "tools" / "claude", "pdf")
    _write_skill(tmp_path / "tools" / "codex", "legacy-tool")

    _run(cfg, "--json", "list")
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is True
    rows = {row["name"]: row["tools"] for row in payload["status"]["skills"]}
    assert rows == {
        "legacy-tool": {"codex": "orphan"},
        "pdf": {"claude": "synced", "codex": "missing"},
    }


def test_default_command_is_list(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    _run(cfg)
    out = capsys.readouterr().out
    assert "pdf" in out
    assert "claude: missing" in out
    assert f"source: {(tmp_path / 'src').resolve()}" in out


def test_push_then_status_is_synced(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    _run(cfg, "push")
    assert "Applied 2 of 2 write(s)." in capsys.readouterr().out
    assert (tmp_path / "tools" / "codex" / "pdf" / "SKILL.md").exists()

    _run(cfg, "--json", "status")
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"]["skills"][0]["tools"] == {"claude": "synced", "codex": "synced"}


def test_push_dry_run_writes_nothing(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    _run(cfg, "push", "--dry-run", "--tool", "claude")
    out = capsys.readouterr().out
    assert "Dry run: 1 write(s) would be performed." in out
    assert not (tmp_path / "tools").exists()


def test_push_exits_nonzero_when_every_write_fails(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    (tmp_path / "tools").mkdir()
    (tmp_path / "tools" / "claude").write_text("x", encoding="utf-8")
    (tmp_path / "tools" / "codex").write_text("x", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        _run(cfg, "push")
    assert int(exc.value.code) == 1
    assert "Failed: pdf" in capsys.readouterr().err


def test_unknown_skill_exits_nonzero(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    with pytest.raises(SystemExit) as exc:
        _run(cfg, "push", "nope")
    assert int(exc.value.code) == 1
    assert "Skill not found: nope" in capsys.readouterr().err


def test_missing_config_exits_nonzero(tmp_path: Path, monkeypatch, capsys) -> None:
    from skillsync.cli import main

    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("SKILLS_CONFIG", raising=False)
    with pytest.raises(SystemExit) as exc:
        main(["--no-input", "list"])
    assert int(exc.value.code) == 1
    assert "No sources configured" in capsys.readouterr().err


def test_init_writes_starter_config(tmp_path: Path, monkeypatch, capsys) -> None:
    from skillsync.cli import main

    cfg = tmp_path / "new.yaml"
    main(["--config", str(cfg), "init"])
    assert cfg.exists()
    with pytest.raises(SystemExit):
        main(["--config", str(cfg), "init"])
    main(["--config", str(cfg), "init", "--force"])


def test_render_previews_each_tool(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf", "{% if tool == 'codex' %}codex text{% else %}other text{% endif %}\n")
    _run(cfg, "--json", "render", "pdf")
    payload = json.loads(capsys.readouterr().out)
    assert payload["rendered"]["codex"].endswith("codex text\n")
    assert payload["rendered"]["claude"].endswith("other text\n")


def test_validate_flags_name_mismatch_and_render_errors(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    bad = tmp_path / "src" / "xlsx-dir" / "SKILL.md"
    bad.parent.mkdir(parents=True)
    bad.write_text(header("xlsx") + "{{ missing }}\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        _run(cfg, "--json", "validate")
    assert int(exc.value.code) == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is False
    errors = payload["errors"]["xlsx"]
    assert any("does not match directory name" in e for e in errors)
    assert any("claude render" in e for e in errors)
    assert "pdf" not in payload["errors"]


def test_diff_shows_modified_cells(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf", "source line\n")
    _write_skill(tmp_path / "tools" / "claude", "pdf", "tool line\n")
    _run(cfg, "diff", "pdf")
    out = capsys.readouterr().out
    assert "-source line" in out
    assert "+tool line" in out


def test_sync_pulls_newer_tool_copy(tmp_path: Path, monkeypatch, capsys) -> None:
    import os

    cfg = _setup(tmp_path, monkeypatch)
    source = _write_skill(tmp_path / "src", "pdf", "old\n")
    os.utime(source, (1000, 1000))
    _write_skill(tmp_path / "tools" / "claude", "pdf", "new\n")
    _run(cfg, "sync")
    assert source.read_text(encoding="utf-8").endswith("new\n")
    assert (tmp_path / "tools" / "codex" / "pdf" / "SKILL.md").read_text(encoding="utf-8").endswith("new\n")


def test_show_falls_back_to_tool_copy(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf", "source body\n")
    _write_skill(tmp_path / "tools" / "codex", "legacy-tool", "legacy body\n")

    _run(cfg, "show", "pdf")
    assert capsys.readouterr().out.endswith("source body\n")
    _run(cfg, "show", "legacy-tool")
    assert capsys.readouterr().out.endswith("legacy body\n")
    with pytest.raises(SystemExit):
        _run(cfg, "show", "nope")


def test_show_json_includes_metadata(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    _run(cfg, "--json", "show", "pdf")
    payload = json.loads(capsys.readouterr().out)
    assert payload["skill"]["description"] == "pdf skill"
    assert payload["skill"]["contents"].startswith("---\nname: pdf")


def test_diff_limits_output_to_the_named_skill(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    for name in ("pdf", "xlsx"):
        _write_skill(tmp_path / "src", name, f"{name} source\n")
        _write_skill(tmp_path / "tools" / "codex", name, f"{name} tool\n")
    _run(cfg, "--json", "diff", "xlsx")
    payload = json.loads(capsys.readouterr().out)
    assert [(c["skill"], c["tool"]) for c in payload["diffs"]] == [("xlsx", "codex")]

    _run(cfg, "--json", "diff")
    payload = json.loads(capsys.readouterr().out)
    assert [(c["skill"], c["tool"]) for c in payload["diffs"]] == [("pdf", "codex"), ("xlsx", "codex")]


def test_pull_reports_skipped_operations(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf", "old\n")
    _write_skill(tmp_path / "tools" / "claude", "pdf", "claude edit\n")
    _write_skill(tmp_path / "tools" / "codex", "pdf", "codex edit\n")
    _run(cfg, "pull")
    out = capsys.readouterr().out
    assert "Applied 0 of 0 write(s)." in out
    assert "Skipped 1 operation(s)." in out


def test_json_prompts_go_to_stderr(tmp_path: Path, monkeypatch, capsys) -> None:
    import io

    from skillsync import cli

    cfg = _setup(tmp_path, monkeypatch)
    source = _write_skill(tmp_path / "src", "pdf", "old\n")
    _write_skill(tmp_path / "tools" / "claude", "pdf", "claude edit\n")
    _write_skill(tmp_path / "tools" / "codex", "pdf", "codex edit\n")
    monkeypatch.setattr(cli, "_interactive", lambda args: True)
    monkeypatch.setattr("sys.stdin", io.StringIO("2\n"))

    cli.main(["--config", str(cfg), "--json", "pull"])
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert payload["ok"] is True
    assert "Which version to pull?" in captured.err
    assert "[2] Codex" in captured.err
    assert source.read_text(encoding="utf-8").endswith("codex edit\n")


def test_new_scaffolds_a_skill(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _run(cfg, "new", str(tmp_path / "src" / "pdf-tools"))
    assert "Created skill at" in capsys.readouterr().out
    assert (tmp_path / "src" / "pdf-tools" / "SKILL.md").exists()
    with pytest.raises(SystemExit) as exc:
        _run(cfg, "new", str(tmp_path / "src" / "pdf-tools"))
    assert int(exc.value.code) == 1
    assert "Skill already exists: pdf-tools" in capsys.readouterr().err


def test_unload_without_input_needs_force(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    installed = _write_skill(tmp_path / "tools" / "claude", "pdf")
    _run(cfg, "unload", "pdf")
    assert "Skipped 1 operation(s)." in capsys.readouterr().out
    assert installed.exists()

    _run(cfg, "unload", "pdf", "--force")
    assert "Applied 1 of 1 write(s)." in capsys.readouterr().out
    assert not installed.parent.exists()


def test_mv_renames_everywhere(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    _write_skill(tmp_path / "src", "pdf")
    _write_skill(tmp_path / "tools" / "codex", "pdf")
    _run(cfg, "mv", "pdf", "docs", "--dry-run")
    assert "Dry run: 2 write(s) would be performed." in capsys.readouterr().out
    assert (tmp_path / "src" / "pdf").exists()

    _run(cfg, "mv", "pdf", "docs", "--force")
    capsys.readouterr()
    _run(cfg, "--json", "status")
    payload = json.loads(capsys.readouterr().out)
    assert [row["name"] for row in payload["status"]["skills"]] == ["docs"]
    assert payload["status"]["skills"][0]["tools"] == {"claude": "missing", "codex": "synced"}


def test_promote_moves_project_skill(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg = _setup(tmp_path, monkeypatch)
    project = tmp_path / "project"
    _write_skill(project / ".codex" / "skills", "local-skill")
    monkeypatch.chdir(project)
    _run(cfg, "promote", "local-skill")
    out = capsys.readouterr().out
    assert "skills pull local-skill --to <source-dir>" in out
    assert (tmp_path / "tools" / "codex" / "local-skill" / "SKILL.md").exists()
    assert not (project / ".codex" / "skills" / "local-skill").exists()
