"""
Idempotent artifact creation.

Creating the same artifact twice on the same file must leave exactly one
artifact. The writer checks for an identical artifact before creating one and
treats a store-level duplicate (another writer won the race) as "exists".
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from core.logging import get_logger
from core.models import ArtifactRef, ArtifactSpec, CaseFile

from .case import ArtifactStore
from .exceptions import ArtifactExistsError, ArtifactIndexingError

LOGGER = get_logger("ingest.artifact_writer")


@dataclass(frozen=True, slots=True)
class WriteResult:
    """Outcome of one write: the artifact (if any) and whether it is new."""

    artifact: Optional[ArtifactRef]
    created: bool

    @property
    def skipped(self) -> bool:
        return self.artifact is None


NO_ARTIFACT = WriteResult(artifact=None, created=False)


class ArtifactWriter:
    """Writes artifacts through an ArtifactStore, at most once per (file, spec)."""

    def __init__(self, store: ArtifactStore, module_name: str):
        self.store = store
        self.module_name = module_name
        self.created = 0
        self.existing = 0
        self.index_failures = 0
        self._lock = threading.Lock()

    def write(self, case_file: CaseFile, spec: Optional[ArtifactSpec]) -> WriteResult:
        """
        Create the artifact unless an identical one already exists on the file.

        Args:
            case_file: File the artifact is attached to
            spec: Artifact to create; None means the row did not qualify

        Returns:
            WriteResult with ``created`` False when the artifact already existed
        """
        if spec is None:
            return NO_ARTIFACT

        with self._lock:
            existing = self.store.find_artifact(case_file, spec)
            if existing is not None:
                self.existing += 1
                return WriteResult(existing, created=False)
            try:
                artifact = self.store.create_artifact(case_file, spec)
            except ArtifactExistsError:
                existing = self.store.find_artifact(case_file, spec)
                LOGGER.debug("Artifact %s on file %d created concurrently", spec.kind, case_file.id)
                self.existing += 1
                return WriteResult(existing, created=False)
            self.created += 1

        self._index(artifact)
        return WriteResult(artifact, created=True)

    def _index(self, artifact: ArtifactRef) -> None:
        try:
            self.store.index_artifact(artifact, self.module_name)
        except ArtifactIndexingError as exc:
            # The artifact stands; it is just not searchable yet
            self.index_failures += 1
            LOGGER.error("Unable to index artifact %d: %s", artifact.id, exc)

    def summary(self) -> str:
        return (
            f"{self.created} created, {self.existing} already present, "
            f"{self.index_failures} not indexed"
        )
