"""
Exceptions for the ingest engine.

Scope of each error:
- MalformedRowError, UnresolvedCorrelationError: one row, file continues
- MissingSourceIdentifierError, MissingColumnError: one export file
- CopyFailureError: recorded, task continues best-effort
- RequiredExportMissingError: whole task, critical
- ArtifactIndexingError: logged only, the artifact stands
"""

from core.database.exceptions import ArtifactExistsError, ArtifactIndexingError, CaseStoreError

__all__ = [
    "IngestError",
    "MalformedRowError",
    "UnresolvedCorrelationError",
    "MissingSourceIdentifierError",
    "MissingColumnError",
    "CopyFailureError",
    "RequiredExportMissingError",
    "ConfigurationError",
    "DumperError",
    "ArtifactExistsError",
    "ArtifactIndexingError",
    "CaseStoreError",
]


class IngestError(Exception):
    """Base exception for ingest errors."""
    pass


class MalformedRowError(IngestError):
    """A data line whose field count differs from the header's."""

    def __init__(self, source: str, line_number: int, got: int, expected: int):
        self.source = source
        self.line_number = line_number
        self.got = got
        self.expected = expected
        super().__init__(
            f"Malformed row in {source} at line {line_number}: "
            f"got {got} fields, expecting {expected}"
        )


class UnresolvedCorrelationError(IngestError):
    """No case file matched an export row."""

    def __init__(self, source: str, line_number: int, description: str):
        self.source = source
        self.line_number = line_number
        super().__init__(f"No matching case file for {description} ({source}, line {line_number})")


class MissingSourceIdentifierError(IngestError):
    """The data source of an export's originating container could not be resolved."""

    def __init__(self, container_path: str):
        self.container_path = container_path
        super().__init__(f"Cannot find data source id for image {container_path}")


class MissingColumnError(IngestError):
    """An export lacks a column required by its table type."""

    def __init__(self, source: str, column: str):
        self.source = source
        self.column = column
        super().__init__(f"Export {source} is missing required column '{column}'")


class CopyFailureError(IngestError):
    """Copying the source tree to the working destination failed."""

    def __init__(self, src: str, dest: str, reason: str = ""):
        self.src = src
        self.dest = dest
        message = f"Failed to copy directory {src} to {dest}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class RequiredExportMissingError(IngestError):
    """The primary results export is not present."""

    def __init__(self, file_name: str, directory: str):
        self.file_name = file_name
        self.directory = directory
        super().__init__(f"Cannot find {file_name} in {directory}")


class ConfigurationError(IngestError):
    """Raised when ingest configuration is invalid (e.g. mixed correlation modes)."""
    pass


class DumperError(IngestError):
    """Raised when the external table dump tool fails."""
    pass
