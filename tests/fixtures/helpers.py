from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from core.enums import Severity
from core.models import DataSource
from ingest.results_export import RESULTS_HEADER


class RecordingSink:
    """Progress/result sink that records everything it receives.

    ``cancel_on`` turns cancellation on as soon as a progress message
    containing that text has been reported.
    """

    def __init__(self, cancel_on: Optional[str] = None, cancelled: bool = False):
        self.messages: List[str] = []
        self.results: List[tuple] = []
        self.cancel_on = cancel_on
        self.cancelled = cancelled

    def report_progress(self, text: str) -> None:
        self.messages.append(text)
        if self.cancel_on and self.cancel_on in text:
            self.cancelled = True

    def is_cancelled(self) -> bool:
        return self.cancelled

    def done(self, severity: Severity, errors: Sequence[str], new_data_sources: Sequence[DataSource]) -> None:
        self.results.append((severity, list(errors), list(new_data_sources)))

    @property
    def severity(self) -> Severity:
        return self.results[-1][0]

    @property
    def errors(self) -> List[str]:
        return self.results[-1][1]

    @property
    def data_sources(self) -> List[DataSource]:
        return self.results[-1][2]


def result_row(
    container: str,
    meta_addr: str,
    rule_set: str,
    rule: str,
    file_name: str,
    parent_path: str,
    description: str = "",
) -> List[str]:
    """One SearchResults.txt data row in the tool's column order."""
    return [container, "0", meta_addr, "0", rule_set, rule, description, file_name, parent_path]


def write_search_results(
    path: Path,
    rows: Iterable[Sequence[str]],
    header: str = RESULTS_HEADER,
    encoding: str = "utf-8",
) -> Path:
    lines = [header] + ["\t".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding=encoding)
    return path


def make_logical_output(
    base: Path,
    files: Dict[str, bytes],
    rows: Iterable[Sequence[str]],
    *,
    users: Optional[str] = "user1\n",
    name: str = "Logical_Imager_1",
) -> Path:
    """Create an extraction tool output directory holding a ``root`` tree."""
    source = base / name
    (source / "root").mkdir(parents=True, exist_ok=True)
    for rel_path, content in files.items():
        target = source / "root" / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    write_search_results(source / "SearchResults.txt", rows)
    if users is not None:
        (source / "users.txt").write_text(users, encoding="utf-8")
    return source


@dataclass
class FakeDumper:
    """Table dumper writing canned CSV tables instead of running a tool."""

    tables: Dict[str, str] = field(default_factory=dict)
    error: Optional[Exception] = None
    calls: List[tuple] = field(default_factory=list)

    def dump(self, database_path: Path, output_dir: Path) -> None:
        self.calls.append((Path(database_path).name, Path(database_path).read_bytes()))
        if self.error is not None:
            raise self.error
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, content in self.tables.items():
            (output_dir / name).write_text(content, encoding="utf-8")
