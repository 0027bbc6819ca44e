"""
Case collaborator interfaces consumed by the ingest engine.

The engine never resolves an ambient "current case": every component gets a
CaseHandle (or the single capability it needs) passed in explicitly.
``core.database.CaseStore`` implements all of these protocols.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from core.database.query import FileFilter
from core.models import ArtifactRef, ArtifactSpec, CaseFile, DataSource


class FileLookup(Protocol):
    """Read-only query-by-expression access to case files."""

    def find_files(self, file_filter: FileFilter) -> List[CaseFile]:
        ...

    def image_paths(self) -> Dict[int, List[str]]:
        ...

    def export_file(self, case_file: CaseFile, dest_path: Path) -> Path:
        ...


class ArtifactStore(Protocol):
    """Artifact persistence and search indexing."""

    def artifact_exists(self, case_file: CaseFile, spec: ArtifactSpec) -> bool:
        ...

    def find_artifact(self, case_file: CaseFile, spec: ArtifactSpec) -> Optional[ArtifactRef]:
        ...

    def create_artifact(self, case_file: CaseFile, spec: ArtifactSpec) -> ArtifactRef:
        ...

    def index_artifact(self, artifact: ArtifactRef, module_name: str) -> None:
        ...


class ReportAttacher(Protocol):
    """Attaches report files to the case."""

    def add_report(self, path: Path, source_module: str, label: str) -> int:
        ...


class DataSourceRegistry(Protocol):
    """Registers new data sources in the case."""

    def add_image_data_source(
        self, device_id: str, image_paths: Iterable[str], time_zone: str = ""
    ) -> DataSource:
        ...

    def add_local_files_data_source(
        self,
        device_id: str,
        paths: Iterable[str],
        progress: Optional[Callable[[CaseFile], None]] = None,
        name: str = "",
    ) -> DataSource:
        ...


@dataclass(frozen=True)
class CaseHandle:
    """Explicit handle on the case an ingest task writes into."""

    files: FileLookup
    artifacts: ArtifactStore
    reports: ReportAttacher
    data_sources: DataSourceRegistry

    @classmethod
    def from_store(cls, store) -> "CaseHandle":
        """Build a handle whose capabilities are all served by one store."""
        return cls(files=store, artifacts=store, reports=store, data_sources=store)
