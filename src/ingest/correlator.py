"""
Row to case-file correlation.

An export row names a file by where the extraction tool found it. Depending
on how the extraction landed in the case, that is either a (data source,
metadata address, name) triple inside a disk image, or a (parent path, name)
pair inside a flat logical file set. Each mode accepts exactly one key
variant; handing it the other one is a configuration error.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from core.database.query import FileFilter, normalize_parent_path
from core.enums import CorrelationMode
from core.logging import get_logger
from core.models import CaseFile

from .case import FileLookup
from .exceptions import ConfigurationError, MissingSourceIdentifierError

LOGGER = get_logger("ingest.correlator")

CONTAINER_SUFFIX = ".vhd"
LOGICAL_ROOT = "root"


@dataclass(frozen=True, slots=True)
class ImageKey:
    """Locates a file inside an image data source."""

    data_source_id: int
    meta_addr: int
    name: str


@dataclass(frozen=True, slots=True)
class LogicalKey:
    """Locates a file inside a logical file set by path."""

    parent_path: str
    name: str


CorrelationKey = Union[ImageKey, LogicalKey]


@dataclass(frozen=True, slots=True)
class MatchedFile:
    """A case file together with the key that matched it."""

    file: CaseFile
    key: CorrelationKey


def _path_key(path: Union[str, Path]) -> str:
    return os.path.normcase(os.path.realpath(os.fspath(path)))


class SourceIndex:
    """
    Task-scoped map from image file path to data source id.

    Built once from the case's image paths; lookups normalise the path so the
    same container resolves regardless of separators or relative segments.
    """

    def __init__(self, image_paths: Mapping[int, Iterable[str]]):
        self._ids: Dict[str, int] = {}
        for data_source_id, paths in image_paths.items():
            for path in paths:
                self._ids[_path_key(path)] = data_source_id

    @classmethod
    def from_lookup(cls, lookup: FileLookup) -> "SourceIndex":
        return cls(lookup.image_paths())

    def __len__(self) -> int:
        return len(self._ids)

    def get(self, path: Union[str, Path]) -> Optional[int]:
        return self._ids.get(_path_key(path))

    def resolve(self, path: Union[str, Path]) -> int:
        """Return the data source id of an image path or raise MissingSourceIdentifierError."""
        data_source_id = self.get(path)
        if data_source_id is None:
            raise MissingSourceIdentifierError(str(path))
        return data_source_id


def logical_parent_path(container_name: str, parent_path: str) -> str:
    """
    Parent path of a file from a container extracted as a logical file set.

    ``"/" + "root/<container minus .vhd>" + "/" + parent_path`` with
    backslashes converted and slashes collapsed.
    """
    container = container_name
    if container.lower().endswith(CONTAINER_SUFFIX):
        container = container[: -len(CONTAINER_SUFFIX)]
    return normalize_parent_path(f"/{LOGICAL_ROOT}/{container}/{parent_path}")


class FileCorrelator:
    """Maps export rows to case files for one ingestion mode."""

    def __init__(
        self,
        mode: CorrelationMode,
        lookup: FileLookup,
        *,
        dest_dir: Optional[Path] = None,
        source_index: Optional[SourceIndex] = None,
    ):
        self.mode = mode
        self.lookup = lookup
        self.dest_dir = Path(dest_dir) if dest_dir is not None else None
        if mode is CorrelationMode.IMAGE and source_index is None:
            source_index = SourceIndex.from_lookup(lookup)
        self.source_index = source_index

    def key_for(
        self, container_name: str, meta_addr: Optional[int], name: str, parent_path: str
    ) -> Optional[CorrelationKey]:
        """
        Build the key of the current mode from the fields of a results row.

        Returns:
            The key, or None in image mode when the row has no usable metadata address

        Raises:
            MissingSourceIdentifierError: image mode and the container is not a known image
        """
        if self.mode is CorrelationMode.IMAGE:
            if self.dest_dir is None:
                raise ConfigurationError("Image correlation needs the destination directory")
            data_source_id = self.source_index.resolve(self.dest_dir / container_name)
            if meta_addr is None:
                return None
            return ImageKey(data_source_id, meta_addr, name)
        return LogicalKey(logical_parent_path(container_name, parent_path), name)

    def _check_key(self, key: CorrelationKey) -> None:
        expected = ImageKey if self.mode is CorrelationMode.IMAGE else LogicalKey
        if not isinstance(key, expected):
            raise ConfigurationError(
                f"{type(key).__name__} is not valid in {self.mode} correlation mode"
            )

    def filter_for(self, key: CorrelationKey) -> FileFilter:
        self._check_key(key)
        if isinstance(key, ImageKey):
            return FileFilter.for_image_file(key.data_source_id, key.meta_addr, key.name)
        return FileFilter.for_logical_file(key.parent_path, key.name)

    def correlate(self, key: CorrelationKey) -> List[MatchedFile]:
        """
        Return every case file matching the key, ordered by file id.

        An empty list means the row is unresolved; callers record that and
        move on.
        """
        file_filter = self.filter_for(key)
        files = sorted(self.lookup.find_files(file_filter), key=lambda case_file: case_file.id)
        if not files:
            LOGGER.debug("No case file matches %s", file_filter)
        return [MatchedFile(case_file, key) for case_file in files]

    def find_origin_files(self, data_source_id: int, name: str, folder: str) -> List[CaseFile]:
        """Files called ``name`` in a data source whose parent path contains ``folder``."""
        files = self.lookup.find_files(FileFilter.in_folder(data_source_id, name, folder))
        return sorted(files, key=lambda case_file: case_file.id)
