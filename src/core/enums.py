"""
Core Enumerations

Centralized enum definitions for consistent typing across the codebase.
Using StrEnum (Python 3.11+) for string-based enums that serialize naturally.
"""

from enum import StrEnum


class Severity(StrEnum):
    """Task-level outcome classification, ordered NO_ERRORS < NON_CRITICAL < CRITICAL."""

    NO_ERRORS = "no_errors"
    NON_CRITICAL = "non_critical"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def worst(cls, *levels: "Severity") -> "Severity":
        """Return the most severe of the given levels (NO_ERRORS if none)."""
        return max(levels, key=lambda level: level.rank, default=cls.NO_ERRORS)


_SEVERITY_ORDER = (Severity.NO_ERRORS, Severity.NON_CRITICAL, Severity.CRITICAL)


class IngestState(StrEnum):
    """Stages of an ingest task."""

    PENDING = "pending"
    COPYING = "copying"
    ATTACHING_REPORTS = "attaching_reports"
    ADDING_DATA_SOURCES = "adding_data_sources"
    EXTRACTING = "extracting"
    PARSING_EXPORTS = "parsing_exports"
    CORRELATING = "correlating"
    WRITING_ARTIFACTS = "writing_artifacts"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IngestState.DONE, IngestState.CANCELLED, IngestState.FAILED)


class CorrelationMode(StrEnum):
    """How export rows are tied to case files."""

    IMAGE = "image"      # rows reference a disk image/container
    LOGICAL = "logical"  # rows reference a flat logical file set


class DataSourceKind(StrEnum):
    """Kinds of top-level ingestible units."""

    IMAGE = "image"
    LOCAL_FILES = "local_files"


class TableType(StrEnum):
    """Closed set of export table kinds, chosen once per file."""

    HISTORY = "history"
    COOKIE = "cookie"
    BOOKMARK = "bookmark"
    DOWNLOAD = "download"
    INTERESTING = "interesting"


class ArtifactKind(StrEnum):
    """Artifact types produced by ingestion."""

    WEB_HISTORY = "web_history"
    WEB_COOKIE = "web_cookie"
    WEB_BOOKMARK = "web_bookmark"
    WEB_DOWNLOAD = "web_download"
    INTERESTING_FILE_HIT = "interesting_file_hit"


class AttributeType(StrEnum):
    """Attribute types carried by artifacts."""

    URL = "url"
    DATETIME = "datetime"
    DATETIME_ACCESSED = "datetime_accessed"
    DATETIME_CREATED = "datetime_created"
    REFERRER = "referrer"
    TITLE = "title"
    PROG_NAME = "prog_name"
    DOMAIN = "domain"
    USER_NAME = "user_name"
    NAME = "name"
    VALUE = "value"
    PATH = "path"
    PATH_ID = "path_id"
    SET_NAME = "set_name"
    CATEGORY = "category"


# Artifact kind produced for each table type
TABLE_ARTIFACT_KINDS: dict[TableType, ArtifactKind] = {
    TableType.HISTORY: ArtifactKind.WEB_HISTORY,
    TableType.COOKIE: ArtifactKind.WEB_COOKIE,
    TableType.BOOKMARK: ArtifactKind.WEB_BOOKMARK,
    TableType.DOWNLOAD: ArtifactKind.WEB_DOWNLOAD,
    TableType.INTERESTING: ArtifactKind.INTERESTING_FILE_HIT,
}
