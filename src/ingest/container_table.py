"""
Container table of a dumped WebCache database and table classification.

WebCacheV01.dat stores its records in ``Container_<id>`` tables; the
``Containers`` table says which kind of data each id holds. A ContainerTable
is read once per dump directory and handed to ``classify_table`` explicitly.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from core.enums import TableType
from core.logging import get_logger

from .exceptions import MissingColumnError
from .table_parser import TABLE_DIALECT, TableExportParser

LOGGER = get_logger("ingest.container_table")

CONTAINERS_FILE_NAME = "Containers.csv"
FAVORITES_FILE_NAME = "Favorites.csv"
CONTAINER_FILE_PREFIX = "Container_"
TABLE_FILE_SUFFIX = ".csv"

# Container names in the Containers table
HISTORY_CONTAINER = "History"
DOWNLOAD_CONTAINER = "iedownload"
COOKIE_KEYWORD = "cookie"


class ContainerTable:
    """Container name -> list of container ids."""

    def __init__(self, ids_by_name: Optional[Dict[str, List[str]]] = None):
        self.ids_by_name: Dict[str, List[str]] = ids_by_name or {}

    @classmethod
    def load(cls, path: Path, parser: Optional[TableExportParser] = None) -> "ContainerTable":
        """
        Read a dumped Containers table.

        Args:
            path: Containers.csv, or the dump directory holding it

        Returns:
            ContainerTable; empty if the file does not exist

        Raises:
            MissingColumnError: The table lacks the name or containerid column
        """
        path = Path(path)
        if path.is_dir():
            path = path / CONTAINERS_FILE_NAME
        if not path.exists():
            LOGGER.info("No %s in %s", CONTAINERS_FILE_NAME, path.parent)
            return cls()

        parser = parser or TableExportParser(TABLE_DIALECT)
        ids_by_name: Dict[str, List[str]] = {}
        with parser.open(path) as export:
            for column in export.missing_columns(("name", "containerid")):
                raise MissingColumnError(export.source, column)
            for row in export:
                name = row["name"].strip()
                container_id = row["containerid"].strip()
                ids_by_name.setdefault(name, []).append(container_id)

        LOGGER.debug("Loaded %d container names from %s", len(ids_by_name), path)
        return cls(ids_by_name)

    def ids_for(self, name: str) -> List[str]:
        return list(self.ids_by_name.get(name, []))

    def container_type(self, container_id: str) -> Optional[TableType]:
        """Table type of a container id, if the Containers table names it."""
        if container_id in self.ids_by_name.get(HISTORY_CONTAINER, ()):
            return TableType.HISTORY
        if container_id in self.ids_by_name.get(DOWNLOAD_CONTAINER, ()):
            return TableType.DOWNLOAD
        return None

    def __len__(self) -> int:
        return len(self.ids_by_name)


def classify_table(path: Path, containers: ContainerTable) -> Optional[TableType]:
    """
    Decide the table type of a dumped table file from its name.

    Returns:
        TableType, or None for tables that carry no browser artifacts
    """
    file_name = Path(path).name
    if file_name == FAVORITES_FILE_NAME:
        return TableType.BOOKMARK
    stem = Path(file_name).stem
    if stem.startswith(CONTAINER_FILE_PREFIX) and file_name.endswith(TABLE_FILE_SUFFIX):
        table_type = containers.container_type(stem[len(CONTAINER_FILE_PREFIX):])
        if table_type is not None:
            return table_type
    if COOKIE_KEYWORD in file_name.lower():
        return TableType.COOKIE
    return None
