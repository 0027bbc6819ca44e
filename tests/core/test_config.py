"""Tests for src/core/config.py - config.yml loading."""

import json
from pathlib import Path

import pytest

from core.config import TEMP_DIR_ENV, IngestConfig, load_app_config, load_ingest_config


def _write_config(base_dir: Path, text: str) -> None:
    config_dir = base_dir / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "config.yml").write_text(text, encoding="utf-8")


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv(TEMP_DIR_ENV, raising=False)
    config = load_app_config(tmp_path)

    assert config.logs_dir == tmp_path / "logs"
    assert config.logs_dir.is_dir()
    assert config.logging.level == "INFO"
    assert config.ingest == IngestConfig()
    assert config.ingest.report_file_names == ("SearchResults.txt", "users.txt")


def test_values_from_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv(TEMP_DIR_ENV, raising=False)
    _write_config(
        tmp_path,
        """
logging:
  level: DEBUG
  max_mb: 5
ingest:
  results_file_name: Results.txt
  logical_root_fallback: false
  progress_every: 25
  temp_dir: /var/tmp/ingest
  dumper_path: C:/Tools/ESEDatabaseView.exe
""",
    )

    config = load_app_config(tmp_path)

    assert config.logging.level == "DEBUG"
    assert config.logging.max_mb == 5
    assert config.logging.backup_count == 10
    assert config.ingest.results_file_name == "Results.txt"
    assert config.ingest.logical_root_fallback is False
    assert config.ingest.progress_every == 25
    assert config.ingest.temp_dir == Path("/var/tmp/ingest")
    assert config.ingest.dumper_path == Path("C:/Tools/ESEDatabaseView.exe")


def test_temp_dir_environment_override(tmp_path, monkeypatch):
    monkeypatch.setenv(TEMP_DIR_ENV, str(tmp_path / "scratch"))

    config = load_ingest_config({"temp_dir": "/ignored"})

    assert config.temp_dir == tmp_path / "scratch"


def test_progress_interval_must_be_positive():
    with pytest.raises(ValueError, match="progress_every"):
        load_ingest_config({"progress_every": 0})


def test_top_level_must_be_mapping(tmp_path):
    _write_config(tmp_path, "- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        load_app_config(tmp_path)


def test_to_json(tmp_path, monkeypatch):
    monkeypatch.delenv(TEMP_DIR_ENV, raising=False)
    data = json.loads(load_app_config(tmp_path).to_json())

    assert data["results_file_name"] == "SearchResults.txt"
    assert data["temp_dir"] is None
    assert data["logical_root_fallback"] is True
