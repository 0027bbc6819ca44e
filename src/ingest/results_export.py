"""
Column layout of the extraction tool's results export (SearchResults.txt).

The export is tab separated with a header line. Fields are resolved through
the header, so older and newer tool versions that reorder or rename columns
still parse. Each known field accepts a few header spellings.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .exceptions import MissingColumnError
from .table_parser import ExportRow, TableExport

# Field -> accepted (lower-cased) header spellings, preferred first
RESULTS_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "container_name": ("vhd file name", "vhd filename", "image file name", "container"),
    "fs_offset": ("file system offset", "fs offset", "filesystem offset"),
    "meta_addr": ("file meta address", "meta address", "meta addr"),
    "extract_status": ("extract status", "extraction status"),
    "rule_set_name": ("rule set name", "ruleset name"),
    "rule_name": ("rule name",),
    "description": ("description",),
    "file_name": ("filename", "file name"),
    "parent_path": ("path", "parent path"),
}

REQUIRED_FIELDS = (
    "container_name",
    "meta_addr",
    "rule_set_name",
    "rule_name",
    "file_name",
    "parent_path",
)

# Header line as written by the extraction tool
RESULTS_HEADER = "\t".join(spellings[0] for spellings in RESULTS_COLUMNS.values())


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One hit of the extraction tool: a file matched by a rule."""

    line_number: int
    container_name: str
    meta_addr: str
    rule_set_name: str
    rule_name: str
    file_name: str
    parent_path: str
    fs_offset: str = ""
    extract_status: str = ""
    description: str = ""

    @property
    def meta_address(self) -> Optional[int]:
        """Metadata address as an integer, or None when the field is not a number."""
        try:
            return int(self.meta_addr.strip())
        except ValueError:
            return None


class ResultsColumns:
    """Header-resolved positions of the results export fields."""

    def __init__(self, columns: Dict[str, str]):
        self.columns = columns

    @classmethod
    def from_export(cls, export: TableExport) -> "ResultsColumns":
        """
        Resolve every known field against the export header.

        Raises:
            MissingColumnError: A required field has no matching header column
        """
        columns: Dict[str, str] = {}
        for field_name, spellings in RESULTS_COLUMNS.items():
            for spelling in spellings:
                if export.has_column(spelling):
                    columns[field_name] = spelling
                    break
        for field_name in REQUIRED_FIELDS:
            if field_name not in columns:
                raise MissingColumnError(export.source, RESULTS_COLUMNS[field_name][0])
        return cls(columns)

    def _value(self, row: ExportRow, field_name: str) -> str:
        column = self.columns.get(field_name)
        if column is None:
            return ""
        return row.get(column, "") or ""

    def read(self, row: ExportRow) -> SearchResult:
        return SearchResult(
            line_number=row.line_number,
            container_name=self._value(row, "container_name"),
            meta_addr=self._value(row, "meta_addr"),
            rule_set_name=self._value(row, "rule_set_name"),
            rule_name=self._value(row, "rule_name"),
            file_name=self._value(row, "file_name"),
            parent_path=self._value(row, "parent_path"),
            fs_offset=self._value(row, "fs_offset"),
            extract_status=self._value(row, "extract_status"),
            description=self._value(row, "description"),
        )
