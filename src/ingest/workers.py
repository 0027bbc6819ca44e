"""
Qt worker thread for ingest tasks.
"""

import traceback
from pathlib import Path
from typing import Optional, Sequence

from PySide6.QtCore import QObject, QThread, Signal

from core.config import IngestConfig
from core.enums import Severity
from core.logging import get_logger
from core.models import DataSource

from .case import CaseHandle
from .dumper import TableDumper
from .ingest_task import IngestTask

LOGGER = get_logger("ingest.workers")


class IngestWorkerCallbacks(QObject):
    """
    Qt-compatible progress and result sink.

    Implements the ProgressSink and ResultSink protocols via Qt signals.

    Signals:
        progress(str): human-readable progress text
        result_ready(str, object, object): severity, error messages, new data sources

    Usage:
        callbacks = IngestWorkerCallbacks()
        callbacks.progress.connect(status_label.setText)
        callbacks.result_ready.connect(on_ingest_done)
    """

    progress = Signal(str)
    result_ready = Signal(str, object, object)  # severity, errors, new data sources

    def __init__(self, parent=None):
        super().__init__(parent)
        self._cancelled = False

    def report_progress(self, text: str) -> None:
        """Emit progress signal."""
        self.progress.emit(text)

    def done(
        self,
        severity: Severity,
        errors: Sequence[str],
        new_data_sources: Sequence[DataSource],
    ) -> None:
        """Emit the final result."""
        self.result_ready.emit(str(severity), list(errors), list(new_data_sources))

    def is_cancelled(self) -> bool:
        """Check if cancelled."""
        return self._cancelled

    def cancel(self):
        """Mark as cancelled."""
        self._cancelled = True


class IngestWorker(QThread):
    """
    Worker thread for one ingest task.

    Runs IngestTask.run() in a background thread and reports the result.

    Signals:
        ingest_finished(object): the frozen IngestResult
        error(str): error message

    Usage:
        worker = IngestWorker("device-1", "UTC", source_dir, dest_dir, case=CaseHandle.from_store(store))
        worker.callbacks.progress.connect(status_label.setText)
        worker.ingest_finished.connect(on_ingest_finished)
        worker.start()
    """

    ingest_finished = Signal(object)  # IngestResult
    error = Signal(str)               # error message

    def __init__(
        self,
        device_id: str,
        time_zone: str,
        source_path: Path,
        dest_path: Path,
        *,
        case: CaseHandle,
        config: Optional[IngestConfig] = None,
        dumper: Optional[TableDumper] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.callbacks = IngestWorkerCallbacks()
        self.task = IngestTask(
            device_id,
            time_zone,
            source_path,
            dest_path,
            self.callbacks,
            self.callbacks,
            case=case,
            config=config,
            dumper=dumper,
        )

    def run(self):
        """Run the ingest task in the background thread."""
        LOGGER.info("IngestWorker.run() started for %s", self.task.source_path)
        try:
            result = self.task.run()
        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}\n{traceback.format_exc()}"
            LOGGER.error("Ingest worker failed: %s", error_msg)
            self.error.emit(error_msg)
            return
        self.ingest_finished.emit(result)

    def cancel(self):
        """Request cancellation."""
        self.callbacks.cancel()
        self.task.cancel()
