from __future__ import annotations

from pathlib import Path

import pytest

from novelshelf import cli

NOVEL = "《风起》\n作者：张三\n第一章 开始\n风从北方来。\n第二章 相遇\n她站在桥上。\n"


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda debug=False: None)


@pytest.fixture
def db(tmp_path: Path) -> str:
    return str(tmp_path / "novels.db")


@pytest.fixture
def novel(tmp_path: Path) -> Path:
    path = tmp_path / "wind.txt"
    path.write_text(NOVEL, encoding="utf-8")
    return path


def test_import_then_list(db: str, novel: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["import", str(novel), "--db", db]) == 0
    output = capsys.readouterr().out
    assert "Imported 《风起》 as book 1 (2 chapters, utf-8)" in output

    assert cli.main(["import", str(novel), "--db", db]) == 0
    assert "Updated 《风起》 as book 1" in capsys.readouterr().out

    assert cli.main(["list", "--db", db]) == 0
    listing = capsys.readouterr().out
    assert "《风起》" in listing
    assert "张三" in listing
    assert "0%" in listing


def test_import_without_path_does_nothing(db: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["import", "--db", db]) == 0
    assert "No file chosen." in capsys.readouterr().out


def test_import_missing_file_exits(db: str, tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="Input file not found"):
        cli.main(["import", str(tmp_path / "missing.txt"), "--db", db])


def test_import_without_headings_exits(db: str, tmp_path: Path) -> None:
    path = tmp_path / "plain.txt"
    path.write_text("只有正文\n", encoding="utf-8")
    with pytest.raises(SystemExit, match="Import failed"):
        cli.main(["import", str(path), "--db", db])


def test_list_empty_shelf(db: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["list", "--db", db, "--search", "风"]) == 0
    assert "No books found." in capsys.readouterr().out


def test_read_navigates_and_remembers(
    db: str, novel: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cli.main(["import", str(novel), "--db", db])
    capsys.readouterr()

    assert cli.main(["read", "1", "--db", db]) == 0
    first = capsys.readouterr().out
    assert "第一章 开始" in first
    assert "风从北方来。" in first
    assert "1/2" in first

    assert cli.main(["read", "1", "--next", "--db", db]) == 0
    second = capsys.readouterr().out
    assert "她站在桥上。" in second
    assert "2/2" in second

    assert cli.main(["read", "1", "--db", db]) == 0
    assert "她站在桥上。" in capsys.readouterr().out

    assert cli.main(["read", "1", "--chapter", "1", "--db", db]) == 0
    assert "风从北方来。" in capsys.readouterr().out

    with pytest.raises(SystemExit):
        cli.main(["read", "1", "--chapter", "9", "--db", db])


def test_read_unknown_book_exits(db: str) -> None:
    with pytest.raises(SystemExit, match="Book not found"):
        cli.main(["read", "7", "--db", db])


def test_delete(db: str, novel: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["import", str(novel), "--db", db])
    capsys.readouterr()
    assert cli.main(["delete", "1", "--db", db]) == 0
    assert "Deleted book 1" in capsys.readouterr().out
    with pytest.raises(SystemExit, match="Book not found"):
        cli.main(["delete", "1", "--db", db])


def test_invalid_page_size_exits(db: str) -> None:
    with pytest.raises(SystemExit, match="page-size"):
        cli.main(["list", "--db", db, "--page-size", "0"])


def test_web_builds_app_and_runs_uvicorn(
    db: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    calls: dict[str, object] = {}

    def _fake_run(app, host, port, log_config):
        calls.update(app=app, host=host, port=port, log_config=log_config)

    monkeypatch.setattr(cli.uvicorn, "run", _fake_run)
    assert cli.main(["web", "--db", db, "--port", "9000"]) == 0
    assert calls["host"] == "127.0.0.1"
    assert calls["port"] == 9000
    formatter = calls["log_config"]["formatters"]["access"]["()"]
    assert formatter == "novelshelf.logging_utils.Utf8AccessFormatter"
    assert "http://127.0.0.1:9000/" in capsys.readouterr().out
    calls["app"].state.import_manager.shutdown()


def test_no_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main([]) == 0
    assert "novelshelf" in capsys.readouterr().out
