"""
Case database package.

- connection: init_db / migrate
- query: structured file filter expressions with literal escaping
- case_store: SQLite implementation of the case collaborators
"""
from .case_store import CaseStore, FileAddedCallback
from .connection import init_db, migrate, utc_now
from .exceptions import ArtifactExistsError, ArtifactIndexingError, CaseStoreError
from .query import FileFilter, FilterOp, escape_like, normalize_parent_path, quote_literal

__all__ = [
    "CaseStore",
    "FileAddedCallback",
    "init_db",
    "migrate",
    "utc_now",
    "ArtifactExistsError",
    "ArtifactIndexingError",
    "CaseStoreError",
    "FileFilter",
    "FilterOp",
    "escape_like",
    "normalize_parent_path",
    "quote_literal",
]
