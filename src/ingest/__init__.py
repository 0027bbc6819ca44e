"""
Forensic export ingestion engine.

- table_parser: header-indexed delimited export parsing
- correlator: export row to case file correlation
- artifact_specs / artifact_writer: typed, idempotent artifact creation
- ingest_task: the cancellable multi-stage ingest pipeline
- workers: Qt thread wrapper for the UI
"""

from .artifact_writer import ArtifactWriter, WriteResult  # noqa: F401
from .case import CaseHandle  # noqa: F401
from .correlator import FileCorrelator, ImageKey, LogicalKey, MatchedFile, SourceIndex  # noqa: F401
from .ingest_task import IngestResult, IngestTask, run_ingest  # noqa: F401
from .table_parser import (  # noqa: F401
    RESULTS_DIALECT,
    TABLE_DIALECT,
    ExportRow,
    TableExport,
    TableExportParser,
    decode_hex_field,
)
