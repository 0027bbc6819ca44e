"""
External table dump tool interface.

The browser databases (WebCacheV01.dat, spartan.edb) are ESE databases that
are dumped to one CSV file per table by an external tool. The engine only
depends on the ``TableDumper`` protocol; ``EseDatabaseViewDumper`` drives
NirSoft ESEDatabaseView.
"""
from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Iterable, Optional, Protocol

from core.logging import get_logger

from .exceptions import DumperError

LOGGER = get_logger("ingest.dumper")

ESE_TOOL_CANDIDATES: Iterable[str] = ("ESEDatabaseView.exe", "ESEDatabaseView")
OUTPUT_FILE_NAME = "Output.txt"
ERROR_FILE_NAME = "File.txt"


class TableDumper(Protocol):
    """Dumps every table of a database file into ``output_dir`` as ``<table>.csv``."""

    def dump(self, database_path: Path, output_dir: Path) -> None:
        ...


def find_ese_dumper(override: Optional[Path] = None) -> Optional[Path]:
    """Locate ESEDatabaseView, preferring an explicitly configured path."""
    if override is not None:
        if Path(override).exists():
            LOGGER.debug("Using configured table dumper: %s", override)
            return Path(override)
        LOGGER.warning("Configured table dumper not found: %s", override)
    for candidate in ESE_TOOL_CANDIDATES:
        found = shutil.which(candidate)
        if found:
            return Path(found)
    return None


class EseDatabaseViewDumper:
    """Runs ESEDatabaseView once per database, comma-separated output."""

    def __init__(self, tool_path: Path, timeout: Optional[float] = 600):
        self.tool_path = Path(tool_path)
        self.timeout = timeout

    def command(self, database_path: Path, output_dir: Path) -> list[str]:
        return [
            str(self.tool_path),
            "/table",
            str(database_path),
            "*",
            "/scomma",
            f"{output_dir}\\*.csv",
        ]

    def dump(self, database_path: Path, output_dir: Path) -> None:
        """
        Dump all tables of ``database_path`` into ``output_dir``.

        Tool stdout and stderr are kept next to the dumped tables.

        Raises:
            DumperError: The tool could not be started, timed out or failed
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.command(database_path, output_dir)
        LOGGER.info("Writing ESEDatabaseView results to: %s", output_dir)

        try:
            with (output_dir / OUTPUT_FILE_NAME).open("wb") as stdout, \
                    (output_dir / ERROR_FILE_NAME).open("wb") as stderr:
                result = subprocess.run(
                    cmd,
                    stdout=stdout,
                    stderr=stderr,
                    check=False,
                    timeout=self.timeout,
                )
        except subprocess.TimeoutExpired as exc:
            raise DumperError(f"Table dump of {database_path} timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise DumperError(f"Unable to run {self.tool_path}: {exc}") from exc

        if result.returncode != 0:
            raise DumperError(
                f"{self.tool_path.name} exited with code {result.returncode} for {database_path}"
            )
