from __future__ import annotations

import pytest

import shortcut_maker_cli


@pytest.fixture(autouse=True)
def no_console_wrapping(monkeypatch, restore_root_logger):
    # colorama would wrap the captured stdout for the rest of the session
    monkeypatch.setattr(shortcut_maker_cli, "init", lambda **kwargs: None)


def test_parser_defaults():
    args = shortcut_maker_cli.build_parser().parse_args(["D:/Games"])

    assert args.root == "D:/Games"
    assert args.workers == 1
    assert not args.dry_run
    assert args.timeout is None


def test_invalid_root_exits_with_error(tmp_path, capsys):
    code = shortcut_maker_cli.main([str(tmp_path / "missing"), "--settings", str(tmp_path / "none.json")])

    assert code == 1
    assert "does not exist" in capsys.readouterr().out


def test_dry_run_prints_summary(tmp_path, touch, capsys):
    root = tmp_path / "Games"
    touch(root / "Alpha" / "Alpha.exe")

    code = shortcut_maker_cli.main([str(root), "--dry-run", "--timeout", "10",
                                    "--settings", str(tmp_path / "none.json")])

    out = capsys.readouterr().out
    assert code == 0
    assert "Alpha.exe" in out
    assert "Summary" in out
    assert (root / "_Shortcuts" / "run.log").exists()
    assert list((root / "_Shortcuts").glob("Alpha.*")) == []
