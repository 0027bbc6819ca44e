"""
Case data model shared by the ingest engine and the case store.

- CaseFile: a file object already known to the case
- DataSource: a top-level ingestible unit (disk image or logical file set)
- Attribute / ArtifactSpec: a typed artifact and its ordered attributes
- ArtifactRef: a persisted artifact as returned by the store
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .enums import ArtifactKind, AttributeType, DataSourceKind

AttributeValue = Union[str, int]


@dataclass(frozen=True, slots=True)
class CaseFile:
    """A file object held by the case."""

    id: int
    data_source_id: int
    name: str
    parent_path: str
    meta_addr: Optional[int] = None
    local_path: Optional[str] = None

    @property
    def path(self) -> str:
        return f"{self.parent_path}{self.name}"


@dataclass(frozen=True, slots=True)
class DataSource:
    """A data source registered in the case."""

    id: int
    device_id: str
    kind: DataSourceKind
    name: str
    time_zone: str = ""
    paths: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Attribute:
    """One (attribute type, value) pair of an artifact."""

    type: AttributeType
    value: AttributeValue
    source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": str(self.type), "value": self.value, "source": self.source}


@dataclass(frozen=True, slots=True)
class ArtifactSpec:
    """
    A typed artifact kind plus an ordered set of attributes.

    Equal inputs always build equal specs; ``fingerprint()`` is the stable
    identity used for duplicate detection in the artifact store.
    """

    kind: ArtifactKind
    attributes: Tuple[Attribute, ...] = field(default_factory=tuple)

    def canonical_json(self) -> str:
        payload = {
            "kind": str(self.kind),
            "attributes": [attr.to_dict() for attr in self.attributes],
        }
        return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    def fingerprint(self) -> str:
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()

    def value_of(self, attribute_type: AttributeType) -> Optional[AttributeValue]:
        """Return the first value of the given attribute type, if present."""
        for attr in self.attributes:
            if attr.type == attribute_type:
                return attr.value
        return None


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """A persisted artifact."""

    id: int
    file_id: int
    kind: ArtifactKind
    fingerprint: str
