import json
import os

import pytest

from swaggerdiff.__main__ import build_parser, main
from swaggerdiff.tool.list_command import format_size, render_table, run_list


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 B"), (512, "512 B"), (2048, "2.0 KB"), (1536, "1.5 KB"), (3 * 1024 * 1024, "3.0 MB")],
)
def test_format_size(size, expected):
    assert format_size(size) == expected


def test_render_table_aligns_columns():
    table = render_table(("Name", "Size"), [("doc_1", "1 B"), ("doc_20240101000000", "10.0 KB")])
    lines = table.splitlines()
    assert len({len(line) for line in lines}) == 1
    assert lines[0].startswith("│ Name")


def test_list_missing_directory(tmp_path, capsys):
    assert run_list(str(tmp_path / "missing")) == 0
    assert "Directory not found" in capsys.readouterr().out


def test_list_empty_directory(tmp_path, capsys):
    assert run_list(str(tmp_path)) == 0
    assert "No snapshots found." in capsys.readouterr().out


def test_list_snapshots(tmp_path, capsys):
    for name in ("doc_20240101000000", "doc_20240301000000"):
        (tmp_path / f"{name}.json").write_text(json.dumps({"paths": {}}), encoding="utf-8")
    assert main(["list", "--dir", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert out.index("doc_20240301000000") < out.index("doc_20240101000000")
    assert "2 snapshot(s) found." in out


def test_list_respects_file_pattern(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv("SWAGGERDIFF_FILE_PATTERN", "api_*.json")
    (tmp_path / "api_v1.json").write_text("{}", encoding="utf-8")
    (tmp_path / "doc_20240101000000.json").write_text("{}", encoding="utf-8")
    assert main(["list", "--dir", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "api_v1" in out
    assert "doc_20240101000000" not in out


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_defaults():
    args = build_parser().parse_args(["snapshot"])
    assert args.configuration == "Debug"
    assert args.output == "docs/versions"
    assert args.project == []
    internal = build_parser().parse_args(["_snapshot", "--app", "main:app"])
    assert internal.timeout == 30.0
    assert internal.skip_lifespan is False


def test_internal_command_hidden_from_help():
    help_text = build_parser().format_help()
    assert "{snapshot,list,serve}" in help_text
    assert "_snapshot" not in help_text


def test_snapshot_help_mentions_dry_run_lifespan(capsys):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["snapshot", "--help"])
    help_text = " ".join(capsys.readouterr().out.split())
    assert "SWAGGERDIFF_DRYRUN=true" in help_text
    assert "[tool.swaggerdiff] lifespan = false" in help_text


def test_snapshot_rejects_app_with_project(capsys):
    assert main(["snapshot", "--app", "main:app", "--project", "svc"]) == 1
    assert "cannot be combined" in capsys.readouterr().err


def test_snapshot_rejects_unknown_configuration(capsys):
    assert main(["snapshot", "-c", "Fast"]) == 1
    assert "unknown build configuration" in capsys.readouterr().err


def test_snapshot_without_projects(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["snapshot", "--no-build"]) == 1
    assert "No FastAPI projects found" in capsys.readouterr().err


def test_internal_snapshot_command(tmp_path, monkeypatch, capsys):
    (tmp_path / "cli_app.py").write_text(
        "from fastapi import FastAPI\napp = FastAPI()\n\n@app.get('/ping')\nasync def ping():\n    return {}\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    output = tmp_path / "out"
    assert main(["_snapshot", "--app", "cli_app:app", "--output", str(output)]) == 0
    assert "Snapshot saved" in capsys.readouterr().out
    assert len(os.listdir(output)) == 1
