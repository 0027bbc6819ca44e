"""Core layer: configuration, logging, case data model and case store."""

from .config import AppConfig, IngestConfig, load_app_config  # noqa: F401
from .database import CaseStore, CaseStoreError, FileFilter, init_db, migrate  # noqa: F401
from .models import ArtifactRef, ArtifactSpec, Attribute, CaseFile, DataSource  # noqa: F401
