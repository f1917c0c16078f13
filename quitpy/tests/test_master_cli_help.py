from __future__ import annotations

import sys
from pathlib import Path

import pytest

from quitpy import master_cli
from quitpy.cli import CLI


def test_master_cli_prints_help_when_no_args(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["QUIT"])
    master_cli.main()
    out = capsys.readouterr().out
    assert "QUITpy command line interface" in out
    assert "despot1" in out
    assert "signal" in out


def test_master_cli_help_flag(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["QUIT", "--help"])
    with pytest.raises(SystemExit) as e:
        master_cli.main()
    assert e.value.code == 0
    assert "QUITpy command line interface" in capsys.readouterr().out


def test_despot1_without_inputs_exits_non_zero() -> None:
    with pytest.raises(SystemExit) as e:
        master_cli.main(["despot1"])
    assert e.value.code not in (0, None)


def test_configuration_errors_exit_with_status_1(tmp_path: Path, capsys) -> None:
    missing = tmp_path / "missing.nii.gz"
    with pytest.raises(SystemExit) as e:
        master_cli.main([
            "despot1", str(missing), "--TR", "0.005", "--FA", "3,18",
            "--save_dir", str(tmp_path), "--output_mode", "quiet",
        ])
    assert e.value.code == 1
    assert "File not found" in capsys.readouterr().err


def test_despot1_cli_rejects_missing_cfg(tmp_path: Path) -> None:
    cli = CLI(subparsers=None)  # subparsers unused for validate_args
    with pytest.raises(FileNotFoundError):
        cli.validate_args({"cfg_path": str(tmp_path / "missing.ini")})


def test_despot1_cli_accepts_shipped_template_name() -> None:
    cli = CLI(subparsers=None)
    args = cli.validate_args({"cfg_path": "Template_DESPOT1.ini"})
    assert Path(args["cfg_path"]).name == "Template_DESPOT1.ini"
    assert Path(args["cfg_path"]).exists()


def test_signal_model_shortcuts() -> None:
    parser, _ = master_cli.build_parser()
    ns = parser.parse_args(["signal", "--2", "--param", "T1_m=t1m.nii.gz"])
    assert ns.model == "2C"
    assert ns.param == ["T1_m=t1m.nii.gz"]
    assert parser.parse_args(["signal", "--model", "3C"]).model == "3C"
    with pytest.raises(SystemExit):
        parser.parse_args(["signal", "--1", "--model", "2C"])
