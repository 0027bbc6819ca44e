"""
Tests for the external table dump tool wrapper.
"""
import subprocess
from pathlib import Path

import pytest

from ingest import dumper as dumper_module
from ingest.dumper import EseDatabaseViewDumper, find_ese_dumper
from ingest.exceptions import DumperError


def test_command_dumps_every_table_as_csv(tmp_path):
    tool = EseDatabaseViewDumper(Path("C:/Tools/ESEDatabaseView.exe"))
    cmd = tool.command(tmp_path / "WebCacheV0112.dat", tmp_path / "results12")

    assert cmd[0].endswith("ESEDatabaseView.exe")
    assert cmd[1:5] == ["/table", str(tmp_path / "WebCacheV0112.dat"), "*", "/scomma"]
    assert cmd[5] == f"{tmp_path / 'results12'}\\*.csv"


class TestFindEseDumper:
    """Tests for dump tool discovery."""

    def test_existing_override_wins(self, tmp_path, monkeypatch):
        tool = tmp_path / "ESEDatabaseView.exe"
        tool.write_bytes(b"")
        monkeypatch.setattr(dumper_module.shutil, "which", lambda name: "/usr/bin/other")

        assert find_ese_dumper(tool) == tool

    def test_missing_override_falls_back_to_path(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            dumper_module.shutil, "which",
            lambda name: "/opt/ese/ESEDatabaseView" if name == "ESEDatabaseView" else None,
        )

        assert find_ese_dumper(tmp_path / "missing.exe") == Path("/opt/ese/ESEDatabaseView")

    def test_not_found(self, monkeypatch):
        monkeypatch.setattr(dumper_module.shutil, "which", lambda name: None)

        assert find_ese_dumper() is None


class TestDump:
    """Tests for running the dump tool."""

    def test_tool_output_is_kept_in_results_dir(self, tmp_path, monkeypatch):
        calls = []

        def fake_run(cmd, stdout, stderr, check, timeout):
            calls.append(cmd)
            stdout.write(b"dumped 12 tables")
            return subprocess.CompletedProcess(cmd, 0)

        monkeypatch.setattr(dumper_module.subprocess, "run", fake_run)
        out = tmp_path / "results1"

        EseDatabaseViewDumper(Path("ESEDatabaseView.exe")).dump(tmp_path / "db.dat", out)

        assert len(calls) == 1
        assert (out / "Output.txt").read_bytes() == b"dumped 12 tables"
        assert (out / "File.txt").exists()

    def test_nonzero_exit_raises(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            dumper_module.subprocess, "run",
            lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 3),
        )
        with pytest.raises(DumperError, match="exited with code 3"):
            EseDatabaseViewDumper(Path("ESEDatabaseView.exe")).dump(tmp_path / "db.dat", tmp_path / "out")

    def test_missing_tool_raises(self, tmp_path):
        tool = EseDatabaseViewDumper(tmp_path / "does-not-exist.exe")
        with pytest.raises(DumperError, match="Unable to run"):
            tool.dump(tmp_path / "db.dat", tmp_path / "out")

    def test_timeout_raises(self, tmp_path, monkeypatch):
        def slow_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(dumper_module.subprocess, "run", slow_run)
        with pytest.raises(DumperError, match="timed out"):
            EseDatabaseViewDumper(Path("ESEDatabaseView.exe"), timeout=5).dump(
                tmp_path / "db.dat", tmp_path / "out"
            )
