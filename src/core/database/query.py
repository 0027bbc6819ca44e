"""
Structured file filter expressions for case file lookups.

A FileFilter is built from (column, operator, value) clauses over the
filterable file columns and rendered to a SQL boolean expression. String
literals are escaped by doubling single quotes, so a quote inside a file name
can never terminate the literal early.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Tuple


class FilterOp(StrEnum):
    """Supported filter operations for file lookups."""

    EQ = "="
    LIKE = "LIKE"


# Column name -> Python type of its values
FILTERABLE_COLUMNS: dict[str, type] = {
    "data_source_id": int,
    "meta_addr": int,
    "name": str,
    "parent_path": str,
}

LIKE_ESCAPE = "\\"


def quote_literal(value: str) -> str:
    """Render a string as a SQL literal, doubling embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value matches literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def normalize_parent_path(path: str) -> str:
    """
    Normalize a parent path to the case's ``/a/b/`` form.

    Backslashes become slashes, duplicate slashes collapse, and the result
    always starts and ends with a slash.
    """
    parts = [part for part in path.replace("\\", "/").split("/") if part and part != "."]
    if not parts:
        return "/"
    return "/" + "/".join(parts) + "/"


@dataclass(frozen=True, slots=True)
class FileFilter:
    """Immutable conjunction of column filters."""

    clauses: Tuple[Tuple[str, FilterOp, Any], ...] = ()

    def where(self, column: str, value: Any, op: FilterOp = FilterOp.EQ) -> "FileFilter":
        """Return a new filter with one more clause."""
        expected = FILTERABLE_COLUMNS.get(column)
        if expected is None:
            raise ValueError(
                f"Column '{column}' not filterable. Allowed: {sorted(FILTERABLE_COLUMNS)}"
            )
        if expected is int:
            if op is not FilterOp.EQ:
                raise ValueError(f"Operator '{op}' not allowed for column '{column}'")
            value = int(value)
        elif not isinstance(value, str):
            raise TypeError(f"Column '{column}' expects a string, got {type(value).__name__}")
        return FileFilter(self.clauses + ((column, op, value),))

    @classmethod
    def for_image_file(cls, data_source_id: int, meta_addr: int, name: str) -> "FileFilter":
        return (
            cls()
            .where("data_source_id", data_source_id)
            .where("meta_addr", meta_addr)
            .where("name", name)
        )

    @classmethod
    def for_logical_file(cls, parent_path: str, name: str) -> "FileFilter":
        return cls().where("name", name).where("parent_path", parent_path)

    @classmethod
    def in_folder(cls, data_source_id: int, name: str, folder: str) -> "FileFilter":
        """Files named ``name`` (ASCII case-insensitive) whose parent path contains ``folder``."""
        return (
            cls()
            .where("data_source_id", data_source_id)
            .where("name", escape_like(name), FilterOp.LIKE)
            .where("parent_path", f"%{escape_like(folder)}%", FilterOp.LIKE)
        )

    def to_sql(self) -> str:
        """Render the filter as a SQL boolean expression."""
        if not self.clauses:
            return "1 = 1"
        parts = []
        for column, op, value in self.clauses:
            if isinstance(value, int):
                parts.append(f"{column} = {value}")
            elif op is FilterOp.LIKE:
                parts.append(
                    f"{column} LIKE {quote_literal(value)} ESCAPE {quote_literal(LIKE_ESCAPE)}"
                )
            else:
                parts.append(f"{column} = {quote_literal(value)}")
        return " AND ".join(parts)

    def __str__(self) -> str:
        return self.to_sql()
