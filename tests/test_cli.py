"""Tests for the command line interface."""
from pathlib import Path

import pytest

from strudel_samples.__main__ import build_parser, main
from strudel_samples.server.config import ErrorCode


class TestParser:

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_load_arguments(self):
        args = build_parser().parse_args(
            ["--port", "57130", "load", "github:tidalcycles/dirt-samples", "--notify"]
        )
        assert args.command == "load"
        assert args.port == 57130
        assert args.notify
        assert args.base_url is None


class TestCommands:

    def test_startup_code(self, temp_dir, capsys):
        assert main(["--cache-dir", temp_dir, "startup-code"]) == ErrorCode.OK
        out = capsys.readouterr().out
        assert f'~strudelSamplesPath = "{temp_dir}";' in out

    def test_cached(self, temp_dir, capsys):
        bank = Path(temp_dir) / "casio"
        bank.mkdir()
        (bank / "000_high.wav").write_bytes(b"RIFF")
        (bank / "001_low.wav").write_bytes(b"RIFF")
        (bank / "_zones.json").write_text("[]")

        assert main(["--cache-dir", temp_dir, "cached"]) == ErrorCode.OK
        assert "casio\t2" in capsys.readouterr().out

    def test_notify_without_superdirt(self, temp_dir, monkeypatch):
        from strudel_samples.server.osc_client import ReloadNotifier

        monkeypatch.setattr(ReloadNotifier, "notify_reload", lambda self, path, timeout_ms=0: False)
        assert main(["--cache-dir", temp_dir, "notify"]) == ErrorCode.NOT_CONFIRMED
