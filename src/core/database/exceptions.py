"""
Exceptions raised by the case store.
"""


class CaseStoreError(Exception):
    """Base exception for case store failures."""
    pass


class ArtifactExistsError(CaseStoreError):
    """Raised when an identical artifact already exists on the file (racing writer)."""

    def __init__(self, file_id: int, kind: str, fingerprint: str):
        self.file_id = file_id
        self.kind = kind
        self.fingerprint = fingerprint
        super().__init__(f"Artifact {kind} already exists on file {file_id}")


class ArtifactIndexingError(CaseStoreError):
    """Raised when an artifact could not be queued for keyword search indexing."""

    def __init__(self, artifact_id: int, reason: str):
        self.artifact_id = artifact_id
        super().__init__(f"Unable to index artifact {artifact_id}: {reason}")
