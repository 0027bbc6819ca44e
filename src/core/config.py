from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

TEMP_DIR_ENV = "CASE_INGEST_TEMP_DIR"


@dataclass(slots=True)
class LoggingConfig:
    """Logging configuration from config.yml."""

    level: str = "INFO"
    max_mb: int = 50
    backup_count: int = 10


@dataclass(slots=True)
class IngestConfig:
    """Ingestion configuration from config.yml."""

    results_file_name: str = "SearchResults.txt"
    users_file_name: str = "users.txt"
    report_source: str = "LogicalImager"
    interesting_module_name: str = "Logical Imager"
    browser_module_name: str = "Microsoft Edge"
    temp_dir: Optional[Path] = None
    # Add <dest>/root when no VHD is present instead of enumerating subdirectories
    logical_root_fallback: bool = True
    progress_every: int = 10
    dumper_path: Optional[Path] = None

    @property
    def report_file_names(self) -> tuple[str, ...]:
        return (self.results_file_name, self.users_file_name)


@dataclass(slots=True)
class AppConfig:
    """Top-level configuration resolved from disk."""

    base_dir: Path
    logs_dir: Path
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)

    def to_json(self) -> str:
        """Serialize the configuration into a JSON string for run manifests."""
        data = {
            "logs_dir": str(self.logs_dir),
            "results_file_name": self.ingest.results_file_name,
            "temp_dir": str(self.ingest.temp_dir) if self.ingest.temp_dir else None,
            "logical_root_fallback": self.ingest.logical_root_fallback,
            "dumper_path": str(self.ingest.dumper_path) if self.ingest.dumper_path else None,
        }
        return json.dumps(data, indent=2, sort_keys=True)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}
        if not isinstance(content, dict):
            raise ValueError(f"Config file {path} must contain a mapping at the top level.")
        return content


def _optional_path(value: Any) -> Optional[Path]:
    if value in (None, ""):
        return None
    return Path(value)


def load_ingest_config(overrides: Dict[str, Any]) -> IngestConfig:
    """Build an IngestConfig from the ``ingest`` section of config.yml."""
    defaults = IngestConfig()
    temp_dir = _optional_path(os.environ.get(TEMP_DIR_ENV) or overrides.get("temp_dir"))
    progress_every = int(overrides.get("progress_every", defaults.progress_every))
    if progress_every < 1:
        raise ValueError(f"ingest.progress_every must be positive, got {progress_every}")

    return IngestConfig(
        results_file_name=overrides.get("results_file_name", defaults.results_file_name),
        users_file_name=overrides.get("users_file_name", defaults.users_file_name),
        report_source=overrides.get("report_source", defaults.report_source),
        interesting_module_name=overrides.get(
            "interesting_module_name", defaults.interesting_module_name
        ),
        browser_module_name=overrides.get("browser_module_name", defaults.browser_module_name),
        temp_dir=temp_dir,
        logical_root_fallback=bool(
            overrides.get("logical_root_fallback", defaults.logical_root_fallback)
        ),
        progress_every=progress_every,
        dumper_path=_optional_path(overrides.get("dumper_path")),
    )


def load_app_config(base_dir: Path) -> AppConfig:
    """Load application configuration from disk, providing sensible defaults."""

    config_yaml = base_dir / "config" / "config.yml"
    config_overrides = _load_yaml(config_yaml)

    logs_dir = base_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging_cfg = config_overrides.get("logging", {})
    logging_config = LoggingConfig(
        level=logging_cfg.get("level", "INFO"),
        max_mb=logging_cfg.get("max_mb", 50),
        backup_count=logging_cfg.get("backup_count", 10),
    )

    return AppConfig(
        base_dir=base_dir,
        logs_dir=logs_dir,
        logging=logging_config,
        ingest=load_ingest_config(config_overrides.get("ingest", {})),
    )
