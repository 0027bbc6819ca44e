"""
End-to-end ingestion of one extraction tool output directory.

Stages:
    COPYING             copy the tool output into the case folder
    ATTACHING_REPORTS   attach SearchResults.txt / users.txt to the case
    ADDING_DATA_SOURCES image data source for *.vhd files, else logical files
    PARSING_EXPORTS / CORRELATING / WRITING_ARTIFACTS
                        interesting-file hits from the results export
    EXTRACTING          dump browser databases found in the new data sources
                        and ingest their tables (only with a table dumper)
    DONE | CANCELLED | FAILED

A task never raises out of ``run()``: every failure becomes an error message
with a severity, and the result sink is called exactly once.
"""
from __future__ import annotations

import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence

from core.config import IngestConfig
from core.enums import CorrelationMode, IngestState, Severity, TableType
from core.logging import get_logger
from core.models import CaseFile, DataSource

from .artifact_specs import builder_for, interesting_file_spec, resolve_time_zone
from .artifact_writer import ArtifactWriter
from .callbacks import ProgressSink, ResultSink
from .case import CaseHandle
from .container_table import ContainerTable, classify_table
from .correlator import CONTAINER_SUFFIX, LOGICAL_ROOT, FileCorrelator, SourceIndex
from .dumper import TableDumper
from .exceptions import (
    CaseStoreError,
    CopyFailureError,
    DumperError,
    MalformedRowError,
    MissingColumnError,
    MissingSourceIdentifierError,
    RequiredExportMissingError,
    UnresolvedCorrelationError,
)
from .results_export import ResultsColumns
from .table_parser import RESULTS_DIALECT, TABLE_DIALECT, TableExportParser

LOGGER = get_logger("ingest.ingest_task")


@dataclass(frozen=True, slots=True)
class BrowserDatabase:
    """A browser database to dump, and the table types it carries."""

    file_name: str
    folder: str
    table_types: FrozenSet[TableType]


BROWSER_DATABASES = (
    BrowserDatabase(
        "WebCacheV01.dat",
        "WebCache",
        frozenset({TableType.HISTORY, TableType.COOKIE, TableType.DOWNLOAD}),
    ),
    BrowserDatabase("spartan.edb", "MicrosoftEdge", frozenset({TableType.BOOKMARK})),
)


@dataclass
class IngestResult:
    """
    Outcome of one ingest task.

    Mutated only by the owning task; ``freeze()`` is called right before the
    result is emitted, after which it no longer changes.
    """

    errors: Sequence[str] = field(default_factory=list)
    severity: Severity = Severity.NO_ERRORS
    new_data_sources: Sequence[DataSource] = field(default_factory=list)
    state: IngestState = IngestState.PENDING
    cancelled: bool = False
    mode: Optional[CorrelationMode] = None
    artifacts_created: int = 0
    frozen: bool = False

    def add_error(self, message: str, severity: Severity) -> None:
        if self.frozen:
            raise RuntimeError("IngestResult is frozen")
        self.errors.append(message)
        self.severity = Severity.worst(self.severity, severity)

    def freeze(self) -> "IngestResult":
        if not self.frozen:
            self.errors = tuple(self.errors)
            self.new_data_sources = tuple(self.new_data_sources)
            self.frozen = True
        return self


class IngestTask:
    """Runs the ingest pipeline for one source directory."""

    def __init__(
        self,
        device_id: str,
        time_zone: str,
        source_path: Path,
        dest_path: Path,
        progress_sink: ProgressSink,
        result_sink: ResultSink,
        *,
        case: CaseHandle,
        config: Optional[IngestConfig] = None,
        dumper: Optional[TableDumper] = None,
    ):
        self.device_id = device_id
        self.time_zone = time_zone
        self.source_path = Path(source_path)
        self.dest_path = Path(dest_path)
        self.progress_sink = progress_sink
        self.result_sink = result_sink
        self.case = case
        self.config = config or IngestConfig()
        self.dumper = dumper
        self.result = IngestResult()

        self._tz = resolve_time_zone(time_zone)
        self._cancel_event = threading.Event()
        self._emit_lock = threading.Lock()
        self._emitted = False
        self._temp_dir: Optional[Path] = None
        self._correlator: Optional[FileCorrelator] = None
        self._writers: List[ArtifactWriter] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation; safe to call from any thread."""
        LOGGER.warning("Ingest task cancelled, processing may be incomplete")
        self._cancel_event.set()

    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set() or self.progress_sink.is_cancelled()

    def run(self) -> IngestResult:
        """Run every stage, emit the result once and return it."""
        if self.result.frozen:
            LOGGER.warning("Ingest task for %s has already run", self.source_path)
            return self.result
        LOGGER.info("Ingesting %s into %s", self.source_path, self.dest_path)
        try:
            self._run_stages()
        except Exception as exc:
            LOGGER.exception("Ingest of %s failed unexpectedly", self.source_path)
            self.result.add_error(f"Unexpected error during ingest: {exc}", Severity.CRITICAL)
            self._set_state(IngestState.FAILED)
        finally:
            self._remove_temp_dir()
            self.result.artifacts_created = sum(writer.created for writer in self._writers)
            self._emit()
        return self.result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run_stages(self) -> None:
        self._copy_source()
        if self._stopped():
            return

        results_path = self.dest_path / self.config.results_file_name
        if not results_path.is_file():
            error = RequiredExportMissingError(self.config.results_file_name, str(self.dest_path))
            LOGGER.error("%s", error)
            self._fail(str(error))
            return
        if self._stopped():
            return

        self._attach_reports()
        if self._stopped():
            return

        mode = self._add_data_sources()
        if mode is None or self._stopped():
            return

        self._ingest_results_export(results_path, mode)
        if self._stopped():
            return

        if self.dumper is not None:
            self._extract_browser_databases()
            if self._stopped():
                return

        self._set_state(IngestState.DONE)

    def _copy_source(self) -> None:
        self._set_state(IngestState.COPYING)
        self._progress(f"Copying image from {self.source_path} to {self.dest_path}")
        try:
            shutil.copytree(self.source_path, self.dest_path, dirs_exist_ok=True)
        except OSError as exc:
            error = CopyFailureError(str(self.source_path), str(self.dest_path), str(exc))
            LOGGER.warning("%s", error)
            self.result.add_error(str(error), Severity.NON_CRITICAL)
            return
        self._progress("Done copying")

    def _attach_reports(self) -> None:
        self._set_state(IngestState.ATTACHING_REPORTS)
        for file_name in self.config.report_file_names:
            report_path = self.dest_path / file_name
            if not report_path.is_file():
                LOGGER.info("No %s in %s, not attaching it", file_name, self.dest_path)
                continue
            self._progress(f"Adding {file_name} to report")
            label = f"{file_name} {self.source_path.name}"
            try:
                self.case.reports.add_report(report_path, self.config.report_source, label)
            except (CaseStoreError, OSError) as exc:
                message = f"Failed to add report {report_path}. Reason= {exc}"
                LOGGER.error(message)
                self.result.add_error(message, Severity.NON_CRITICAL)
                continue
            self._progress(f"Done adding {file_name} to report")

    def _add_data_sources(self) -> Optional[CorrelationMode]:
        """Register the copied output as a data source; None means the task failed."""
        self._set_state(IngestState.ADDING_DATA_SOURCES)
        containers = sorted(
            path for path in self.dest_path.iterdir()
            if path.is_file() and path.suffix.lower() == CONTAINER_SUFFIX
        )
        try:
            if containers:
                self._progress(f"Adding {len(containers)} image file(s)")
                data_source = self.case.data_sources.add_image_data_source(
                    self.device_id,
                    [str(path.resolve()) for path in containers],
                    self.time_zone,
                )
                mode = CorrelationMode.IMAGE
            else:
                roots = self._logical_roots()
                if not roots:
                    message = f"Directory {self.dest_path} does not contain any images or logical files"
                    LOGGER.error(message)
                    self._fail(message)
                    return None
                self._progress("Adding local files")
                data_source = self.case.data_sources.add_local_files_data_source(
                    self.device_id,
                    [str(root) for root in roots],
                    progress=self._make_file_progress(),
                )
                mode = CorrelationMode.LOGICAL
        except (CaseStoreError, OSError) as exc:
            LOGGER.error("Failed to add datasource: %s", exc, exc_info=True)
            self._fail(f"Failed to add data source: {exc}")
            return None

        self.result.new_data_sources.append(data_source)
        self.result.mode = mode
        LOGGER.info("Added %s data source %d (%s)", mode, data_source.id, data_source.name)
        return mode

    def _logical_roots(self) -> List[Path]:
        if self.config.logical_root_fallback:
            root = self.dest_path / LOGICAL_ROOT
            return [root] if root.is_dir() else []
        return sorted(path for path in self.dest_path.iterdir() if path.is_dir())

    def _make_file_progress(self):
        every = self.config.progress_every
        count = 0

        def on_file_added(case_file: CaseFile) -> None:
            nonlocal count
            count += 1
            if count % every == 0:
                self._progress(f"Adding: {case_file.parent_path.rstrip('/')}/{case_file.name}")

        return on_file_added

    def _ingest_results_export(self, results_path: Path, mode: CorrelationMode) -> None:
        self._set_state(IngestState.PARSING_EXPORTS)
        self._progress("Adding interesting files")
        source_index = SourceIndex.from_lookup(self.case.files) if mode is CorrelationMode.IMAGE else None
        correlator = FileCorrelator(
            mode, self.case.files, dest_dir=self.dest_path, source_index=source_index
        )
        self._correlator = correlator
        writer = self._new_writer(self.config.interesting_module_name)
        parser = TableExportParser(RESULTS_DIALECT)

        with parser.open(
            results_path, is_cancelled=self.is_cancelled, on_malformed=self._on_malformed
        ) as export:
            try:
                columns = ResultsColumns.from_export(export)
            except MissingColumnError as exc:
                LOGGER.error("%s", exc)
                self.result.add_error(str(exc), Severity.NON_CRITICAL)
                return

            try:
                for row in export:
                    hit = columns.read(row)
                    self._set_state(IngestState.CORRELATING)
                    key = correlator.key_for(
                        hit.container_name, hit.meta_address, hit.file_name, hit.parent_path
                    )
                    matches = correlator.correlate(key) if key is not None else []
                    if not matches:
                        error = UnresolvedCorrelationError(
                            export.source, row.line_number, f"{hit.parent_path}/{hit.file_name}"
                        )
                        LOGGER.warning("%s", error)
                        self.result.add_error(str(error), Severity.NON_CRITICAL)
                        continue

                    self._set_state(IngestState.WRITING_ARTIFACTS)
                    spec = interesting_file_spec(
                        hit.rule_set_name, hit.rule_name, self.config.interesting_module_name
                    )
                    for match in matches:
                        writer.write(match.file, spec)
            except MissingSourceIdentifierError as exc:
                LOGGER.error("%s", exc)
                self.result.add_error(str(exc), Severity.CRITICAL)
                return
            except CaseStoreError as exc:
                message = f"Failed to add interesting files: {exc}"
                LOGGER.error(message)
                self.result.add_error(message, Severity.NON_CRITICAL)
                return

        LOGGER.info("Interesting files from %s: %s", results_path.name, writer.summary())
        if not export.cancelled:
            self._progress("Done adding interesting files")

    def _extract_browser_databases(self) -> None:
        self._set_state(IngestState.EXTRACTING)
        correlator = self._correlator or FileCorrelator(CorrelationMode.LOGICAL, self.case.files)
        writer = self._new_writer(self.config.browser_module_name)

        for data_source in self.result.new_data_sources:
            for database in BROWSER_DATABASES:
                if self.is_cancelled():
                    return
                try:
                    origin_files = correlator.find_origin_files(
                        data_source.id, database.file_name, database.folder
                    )
                except CaseStoreError as exc:
                    message = f"Unable to find {database.file_name} files: {exc}"
                    LOGGER.error(message)
                    self.result.add_error(message, Severity.NON_CRITICAL)
                    continue
                for origin in origin_files:
                    if self.is_cancelled():
                        return
                    self._process_database(origin, database, writer)

        LOGGER.info("Browser artifacts: %s", writer.summary())

    def _process_database(self, origin: CaseFile, database: BrowserDatabase, writer: ArtifactWriter) -> None:
        temp_dir = self._ensure_temp_dir()
        db_copy = temp_dir / f"{Path(origin.name).stem}{origin.id}{Path(origin.name).suffix}"
        results_dir = temp_dir / f"results{origin.id}"
        self._progress(f"Extracting {origin.path}")
        try:
            self.case.files.export_file(origin, db_copy)
            self.dumper.dump(db_copy, results_dir)
            if self.is_cancelled():
                return
            containers = ContainerTable.load(results_dir)
            for table_path in sorted(results_dir.glob("*.csv")):
                if self.is_cancelled():
                    return
                table_type = classify_table(table_path, containers)
                if table_type is None or table_type not in database.table_types:
                    continue
                self._ingest_table(origin, table_path, table_type, writer)
        except (CaseStoreError, DumperError, MissingColumnError, OSError) as exc:
            message = f"Error processing {origin.name} ({origin.path}): {exc}"
            LOGGER.error(message)
            self.result.add_error(message, Severity.NON_CRITICAL)
        finally:
            _remove_path(db_copy)
            _remove_path(results_dir)

    def _ingest_table(
        self, origin: CaseFile, table_path: Path, table_type: TableType, writer: ArtifactWriter
    ) -> None:
        builder = builder_for(table_type, self.config.browser_module_name, self._tz)
        parser = TableExportParser(TABLE_DIALECT)
        with parser.open(
            table_path, is_cancelled=self.is_cancelled, on_malformed=self._on_malformed
        ) as export:
            if not export.header:
                return
            missing = export.missing_columns(builder.required_columns)
            if missing:
                error = MissingColumnError(export.source, missing[0])
                LOGGER.warning("%s", error)
                self.result.add_error(str(error), Severity.NON_CRITICAL)
                return
            self._set_state(IngestState.WRITING_ARTIFACTS)
            for row in export:
                writer.write(origin, builder.build(row))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_writer(self, module_name: str) -> ArtifactWriter:
        writer = ArtifactWriter(self.case.artifacts, module_name)
        self._writers.append(writer)
        return writer

    def _on_malformed(self, error: MalformedRowError) -> None:
        self.result.add_error(str(error), Severity.NON_CRITICAL)

    def _progress(self, text: str) -> None:
        LOGGER.debug("Progress: %s", text)
        self.progress_sink.report_progress(text)

    def _set_state(self, state: IngestState) -> None:
        if self.result.state is not state:
            LOGGER.debug("Ingest state %s -> %s", self.result.state, state)
            self.result.state = state

    def _fail(self, message: str) -> None:
        self.result.add_error(message, Severity.CRITICAL)
        self._set_state(IngestState.FAILED)

    def _stopped(self) -> bool:
        """Check for cancellation at a stage boundary."""
        if not self.is_cancelled():
            return False
        self.result.cancelled = True
        self._set_state(IngestState.CANCELLED)
        return True

    def _ensure_temp_dir(self) -> Path:
        if self._temp_dir is None:
            base = self.config.temp_dir
            if base is not None:
                Path(base).mkdir(parents=True, exist_ok=True)
            self._temp_dir = Path(tempfile.mkdtemp(prefix="ingest-", dir=base))
        return self._temp_dir

    def _remove_temp_dir(self) -> None:
        if self._temp_dir is not None:
            _remove_path(self._temp_dir)
            self._temp_dir = None

    def _emit(self) -> None:
        with self._emit_lock:
            if self._emitted:
                return
            self._emitted = True
        result = self.result.freeze()
        LOGGER.info(
            "Ingest of %s finished: state=%s severity=%s errors=%d",
            self.source_path, result.state, result.severity, len(result.errors),
        )
        try:
            self.result_sink.done(result.severity, result.errors, result.new_data_sources)
        except Exception:
            LOGGER.exception("Result sink raised while receiving the ingest result")


def _remove_path(path: Path) -> None:
    """Delete a temporary file or directory; failures are logged only."""
    try:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
    except OSError as exc:
        LOGGER.warning("Unable to remove temporary path %s: %s", path, exc)


def run_ingest(
    device_id: str,
    time_zone: str,
    source_path: Path,
    dest_path: Path,
    progress_sink: ProgressSink,
    result_sink: ResultSink,
    *,
    case: CaseHandle,
    config: Optional[IngestConfig] = None,
    dumper: Optional[TableDumper] = None,
) -> IngestResult:
    """Build an IngestTask and run it on the calling thread."""
    task = IngestTask(
        device_id,
        time_zone,
        source_path,
        dest_path,
        progress_sink,
        result_sink,
        case=case,
        config=config,
        dumper=dumper,
    )
    return task.run()
