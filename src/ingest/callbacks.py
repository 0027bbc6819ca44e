"""
Callback interfaces for ingest progress and result reporting.
"""

from typing import Protocol, Sequence

from core.enums import Severity
from core.models import DataSource


class ProgressSink(Protocol):
    """
    Progress and cancellation interface supplied by the caller.

    Implementations can be synchronous (for testing) or signal-based (for Qt UI).
    """

    def report_progress(self, text: str) -> None:
        """
        Report a human-readable progress message.

        Example:
            progress.report_progress("Copying image from /mnt/usb to /case/li")
        """
        ...

    def is_cancelled(self) -> bool:
        """
        Check if the user cancelled the operation.

        Returns:
            True if the task should stop at the next row or file boundary
        """
        ...


class ResultSink(Protocol):
    """Terminal result callback; invoked exactly once per task."""

    def done(
        self,
        severity: Severity,
        errors: Sequence[str],
        new_data_sources: Sequence[DataSource],
    ) -> None:
        """
        Receive the final outcome of an ingest task.

        Args:
            severity: Worst severity observed
            errors: Ordered human-readable error messages
            new_data_sources: Data sources added to the case by the task
        """
        ...


class NullProgressSink:
    """Progress sink that discards messages and is never cancelled."""

    def report_progress(self, text: str) -> None:
        pass

    def is_cancelled(self) -> bool:
        return False
