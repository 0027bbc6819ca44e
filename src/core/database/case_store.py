"""
SQLite case store.

Implements every case collaborator the ingest engine consumes:
- file lookup by structured filter expression (find_files)
- data source registration (images, logical file sets) and image paths
- idempotent artifact persistence and keyword index queueing
- report attachment

One store may be shared by several ingest tasks running in parallel; all
access is serialised through a re-entrant lock and duplicate artifacts are
rejected by a UNIQUE(file_id, kind, fingerprint) constraint.
"""
from __future__ import annotations

import os
import shutil
import sqlite3
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from core.enums import ArtifactKind, AttributeType, DataSourceKind
from core.logging import get_logger
from core.models import ArtifactRef, ArtifactSpec, Attribute, CaseFile, DataSource

from .connection import init_db, utc_now
from .exceptions import ArtifactExistsError, ArtifactIndexingError, CaseStoreError
from .query import FileFilter, normalize_parent_path

__all__ = ["CaseStore", "FileAddedCallback"]

LOGGER = get_logger("core.database.case_store")

FileAddedCallback = Callable[[CaseFile], None]

_FILE_COLUMNS = "id, data_source_id, name, parent_path, meta_addr, local_path"


def _row_to_file(row: sqlite3.Row) -> CaseFile:
    return CaseFile(
        id=row["id"],
        data_source_id=row["data_source_id"],
        name=row["name"],
        parent_path=row["parent_path"],
        meta_addr=row["meta_addr"],
        local_path=row["local_path"],
    )


class CaseStore:
    """SQLite-backed case store."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._lock = threading.RLock()

    @classmethod
    def open(cls, db_path: Path) -> "CaseStore":
        """Open (or create) a case database and return a store for it."""
        return cls(init_db(db_path))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Data sources
    # ------------------------------------------------------------------

    def add_image_data_source(
        self,
        device_id: str,
        image_paths: Iterable[str],
        time_zone: str = "",
    ) -> DataSource:
        """Register a disk image data source made of one or more image files."""
        paths = [str(p) for p in image_paths]
        if not paths:
            raise CaseStoreError("An image data source needs at least one image path")
        name = Path(paths[0]).name
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO data_sources(device_id, kind, name, time_zone, added_at_utc) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (device_id, DataSourceKind.IMAGE.value, name, time_zone, utc_now()),
                )
                source_id = int(cur.lastrowid)
                self._conn.executemany(
                    "INSERT INTO image_names(data_source_id, sequence, path) VALUES (?, ?, ?)",
                    [(source_id, seq, path) for seq, path in enumerate(paths)],
                )
        except sqlite3.Error as exc:
            raise CaseStoreError(f"Failed to add image data source {name}: {exc}") from exc

        LOGGER.info("Added image data source %d (%s, %d image file(s))", source_id, name, len(paths))
        return DataSource(
            id=source_id,
            device_id=device_id,
            kind=DataSourceKind.IMAGE,
            name=name,
            time_zone=time_zone,
            paths=tuple(paths),
        )

    def add_local_files_data_source(
        self,
        device_id: str,
        paths: Iterable[str],
        progress: Optional[FileAddedCallback] = None,
        name: str = "",
    ) -> DataSource:
        """
        Register a logical file set and add every file found under ``paths``.

        Each directory keeps its own name as the top-level folder, so
        ``<dest>/root/a/b.txt`` is stored with parent path ``/root/a/``.

        Raises:
            CaseStoreError: if a path does not exist or the insert fails
        """
        roots = [Path(p) for p in paths]
        if not roots:
            raise CaseStoreError("A local files data source needs at least one path")
        for root in roots:
            if not root.exists():
                raise CaseStoreError(f"Path does not exist: {root}")

        name = name or "LogicalFileSet"
        added: List[CaseFile] = []
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO data_sources(device_id, kind, name, time_zone, added_at_utc) "
                    "VALUES (?, ?, ?, '', ?)",
                    (device_id, DataSourceKind.LOCAL_FILES.value, name, utc_now()),
                )
                source_id = int(cur.lastrowid)
                self._conn.executemany(
                    "INSERT INTO local_paths(data_source_id, sequence, path) VALUES (?, ?, ?)",
                    [(source_id, seq, str(root)) for seq, root in enumerate(roots)],
                )
                for root in roots:
                    for file_path in _walk_files(root):
                        rel_parent = file_path.relative_to(root.parent).parent
                        case_file = self._insert_file(
                            source_id,
                            file_path.name,
                            normalize_parent_path(rel_parent.as_posix()),
                            None,
                            str(file_path),
                        )
                        added.append(case_file)
        except sqlite3.Error as exc:
            raise CaseStoreError(f"Failed to add local files data source: {exc}") from exc
        except OSError as exc:
            raise CaseStoreError(f"Failed to read local files: {exc}") from exc

        # Callbacks run after commit so a slow consumer never holds the lock
        if progress is not None:
            for case_file in added:
                progress(case_file)

        LOGGER.info("Added local files data source %d with %d file(s)", source_id, len(added))
        return DataSource(
            id=source_id,
            device_id=device_id,
            kind=DataSourceKind.LOCAL_FILES,
            name=name,
            paths=tuple(str(root) for root in roots),
        )

    def get_data_source(self, data_source_id: int) -> Optional[DataSource]:
        with self._lock:
            row = self._conn.execute(
                "SELECT id, device_id, kind, name, time_zone FROM data_sources WHERE id = ?",
                (data_source_id,),
            ).fetchone()
            if row is None:
                return None
            table = "image_names" if row["kind"] == DataSourceKind.IMAGE.value else "local_paths"
            paths = [
                r["path"]
                for r in self._conn.execute(
                    f"SELECT path FROM {table} WHERE data_source_id = ? ORDER BY sequence",
                    (data_source_id,),
                )
            ]
        return DataSource(
            id=row["id"],
            device_id=row["device_id"],
            kind=DataSourceKind(row["kind"]),
            name=row["name"],
            time_zone=row["time_zone"],
            paths=tuple(paths),
        )

    def image_paths(self) -> Dict[int, List[str]]:
        """Return image file paths keyed by data source id."""
        result: Dict[int, List[str]] = {}
        with self._lock:
            rows = self._conn.execute(
                "SELECT data_source_id, path FROM image_names ORDER BY data_source_id, sequence"
            ).fetchall()
        for row in rows:
            result.setdefault(row["data_source_id"], []).append(row["path"])
        return result

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def add_file(
        self,
        data_source_id: int,
        name: str,
        parent_path: str,
        *,
        meta_addr: Optional[int] = None,
        local_path: Optional[str] = None,
    ) -> CaseFile:
        """Add a single file object to a data source."""
        try:
            with self._lock, self._conn:
                return self._insert_file(
                    data_source_id, name, normalize_parent_path(parent_path), meta_addr, local_path
                )
        except sqlite3.Error as exc:
            raise CaseStoreError(f"Failed to add file {name}: {exc}") from exc

    def _insert_file(
        self,
        data_source_id: int,
        name: str,
        parent_path: str,
        meta_addr: Optional[int],
        local_path: Optional[str],
    ) -> CaseFile:
        cur = self._conn.execute(
            "INSERT INTO files(data_source_id, name, parent_path, meta_addr, local_path) "
            "VALUES (?, ?, ?, ?, ?)",
            (data_source_id, name, parent_path, meta_addr, local_path),
        )
        return CaseFile(
            id=int(cur.lastrowid),
            data_source_id=data_source_id,
            name=name,
            parent_path=parent_path,
            meta_addr=meta_addr,
            local_path=local_path,
        )

    def find_files(self, file_filter: FileFilter) -> List[CaseFile]:
        """Return files matching the filter, ordered by file id."""
        sql = f"SELECT {_FILE_COLUMNS} FROM files WHERE {file_filter.to_sql()} ORDER BY id"
        try:
            with self._lock:
                rows = self._conn.execute(sql).fetchall()
        except sqlite3.Error as exc:
            raise CaseStoreError(f"File query failed ({file_filter}): {exc}") from exc
        return [_row_to_file(row) for row in rows]

    def get_file(self, file_id: int) -> Optional[CaseFile]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE id = ?", (file_id,)
            ).fetchone()
        return _row_to_file(row) if row else None

    def export_file(self, case_file: CaseFile, dest_path: Path) -> Path:
        """Write the content of a case file to ``dest_path``."""
        if not case_file.local_path:
            raise CaseStoreError(f"No readable content for file {case_file.id} ({case_file.name})")
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(case_file.local_path, dest_path)
        except OSError as exc:
            raise CaseStoreError(f"Error writing {case_file.path} to {dest_path}: {exc}") from exc
        return dest_path

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    def find_artifact(self, case_file: CaseFile, spec: ArtifactSpec) -> Optional[ArtifactRef]:
        """Return the artifact of the same kind and attributes on the file, if any."""
        fingerprint = spec.fingerprint()
        with self._lock:
            row = self._conn.execute(
                "SELECT id FROM artifacts WHERE file_id = ? AND kind = ? AND fingerprint = ?",
                (case_file.id, spec.kind.value, fingerprint),
            ).fetchone()
        if row is None:
            return None
        return ArtifactRef(id=row["id"], file_id=case_file.id, kind=spec.kind, fingerprint=fingerprint)

    def artifact_exists(self, case_file: CaseFile, spec: ArtifactSpec) -> bool:
        return self.find_artifact(case_file, spec) is not None

    def create_artifact(self, case_file: CaseFile, spec: ArtifactSpec) -> ArtifactRef:
        """
        Persist a new artifact with its attributes.

        Raises:
            ArtifactExistsError: an identical artifact is already on the file
            CaseStoreError: any other database failure
        """
        fingerprint = spec.fingerprint()
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO artifacts(file_id, kind, fingerprint, created_at_utc) "
                    "VALUES (?, ?, ?, ?)",
                    (case_file.id, spec.kind.value, fingerprint, utc_now()),
                )
                artifact_id = int(cur.lastrowid)
                self._conn.executemany(
                    "INSERT INTO artifact_attributes"
                    "(artifact_id, sequence, attribute_type, value_text, value_int, source) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    [
                        (
                            artifact_id,
                            seq,
                            attr.type.value,
                            attr.value if isinstance(attr.value, str) else None,
                            attr.value if isinstance(attr.value, int) else None,
                            attr.source,
                        )
                        for seq, attr in enumerate(spec.attributes)
                    ],
                )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc).upper():
                raise ArtifactExistsError(case_file.id, spec.kind.value, fingerprint) from exc
            raise CaseStoreError(f"Failed to create artifact on file {case_file.id}: {exc}") from exc
        except sqlite3.Error as exc:
            raise CaseStoreError(f"Failed to create artifact on file {case_file.id}: {exc}") from exc

        return ArtifactRef(id=artifact_id, file_id=case_file.id, kind=spec.kind, fingerprint=fingerprint)

    def index_artifact(self, artifact: ArtifactRef, module_name: str) -> None:
        """Queue an artifact for keyword search indexing."""
        try:
            attributes = self.get_attributes(artifact.id)
            text = " ".join(str(attr.value) for attr in attributes if isinstance(attr.value, str) and attr.value)
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO keyword_index"
                    "(artifact_id, module_name, indexed_text, indexed_at_utc) VALUES (?, ?, ?, ?)",
                    (artifact.id, module_name, text, utc_now()),
                )
        except sqlite3.Error as exc:
            raise ArtifactIndexingError(artifact.id, str(exc)) from exc

    def get_artifacts(
        self,
        *,
        file_id: Optional[int] = None,
        kind: Optional[ArtifactKind] = None,
    ) -> List[ArtifactRef]:
        sql = "SELECT id, file_id, kind, fingerprint FROM artifacts WHERE 1 = 1"
        params: List[object] = []
        if file_id is not None:
            sql += " AND file_id = ?"
            params.append(file_id)
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind.value)
        sql += " ORDER BY id"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [
            ArtifactRef(
                id=row["id"],
                file_id=row["file_id"],
                kind=ArtifactKind(row["kind"]),
                fingerprint=row["fingerprint"],
            )
            for row in rows
        ]

    def get_attributes(self, artifact_id: int) -> List[Attribute]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT attribute_type, value_text, value_int, source FROM artifact_attributes "
                "WHERE artifact_id = ? ORDER BY sequence",
                (artifact_id,),
            ).fetchall()
        return [
            Attribute(
                type=AttributeType(row["attribute_type"]),
                value=row["value_int"] if row["value_text"] is None else row["value_text"],
                source=row["source"],
            )
            for row in rows
        ]

    def is_indexed(self, artifact_id: int) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM keyword_index WHERE artifact_id = ?", (artifact_id,)
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def add_report(self, path: Path, source_module: str, label: str) -> int:
        """Attach a report file to the case."""
        if not Path(path).is_file():
            raise CaseStoreError(f"Report file not found: {path}")
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO reports(path, source_module, label, added_at_utc) VALUES (?, ?, ?, ?)",
                    (str(path), source_module, label, utc_now()),
                )
        except sqlite3.Error as exc:
            raise CaseStoreError(f"Failed to add report {path}: {exc}") from exc
        return int(cur.lastrowid)

    def get_reports(self) -> List[Dict[str, str]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT path, source_module, label FROM reports ORDER BY id"
            ).fetchall()
        return [dict(row) for row in rows]


def _walk_files(root: Path) -> List[Path]:
    """Return every regular file under ``root`` in a stable order."""
    if root.is_file():
        return [root]
    files: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            files.append(Path(dirpath) / filename)
    return files
