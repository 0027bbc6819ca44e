"""
Row to ArtifactSpec builders, one per table type.

Builders are pure: the same row always produces the same spec, which is what
makes artifact creation idempotent downstream. A builder returns None when a
row does not qualify for an artifact (e.g. a bookmark without a URL).

Browser tables come from the dumped WebCache/Spartan databases:
- History:  ``url`` holds ``Visited: <user>@<url>``
- Download: ``url`` holds ``iedownload:<user>@<url>``
- Cookie:   ``rdomain`` is the reversed domain, ``name``/``value`` are hex
- Bookmark: ``url`` and ``title`` from the Favorites table
"""
from __future__ import annotations

import ipaddress
import re
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional, Tuple, Type
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import tldextract

from core.enums import TABLE_ARTIFACT_KINDS, ArtifactKind, AttributeType, TableType
from core.logging import get_logger
from core.models import Attribute, ArtifactSpec

from .table_parser import ExportRow

LOGGER = get_logger("ingest.artifact_specs")

HISTORY_MARKER = "Visited:"
DOWNLOAD_MARKER = "iedownload:"

# Date format of the dumped browser tables, e.g. "01/31/2019 10:15:00 PM"
EXPORT_TIME_FORMAT = "%m/%d/%Y %I:%M:%S %p"

_ILLEGAL_DOMAIN_CHARS = re.compile(r"[~`!@#$%^&*()+={}\[\];:?<>,/ ]")

# Bundled public suffix snapshot; no network fetch during ingest
_TLD_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


def resolve_time_zone(name: str) -> tzinfo:
    """Return the tzinfo for an IANA zone name, falling back to UTC."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning("Unknown time zone '%s', using UTC", name)
        return timezone.utc


def parse_export_time(value: Optional[str], tz: tzinfo = timezone.utc) -> Optional[int]:
    """Parse a browser table timestamp to epoch seconds, or None if unparsable."""
    if not value or not value.strip():
        return None
    try:
        parsed = datetime.strptime(value.strip(), EXPORT_TIME_FORMAT)
    except ValueError:
        LOGGER.warning("The time format in the browser table seems invalid: %s", value)
        return None
    return int(parsed.replace(tzinfo=tz).timestamp())


def flip_domain(domain: Optional[str]) -> Optional[str]:
    """
    Reverse a WebCache ``rdomain`` value (``com.microsoft.www`` -> ``www.microsoft.com``).

    Only values with two or three labels are flipped; anything else is junk
    and comes back unchanged.
    """
    if not domain:
        return None
    tokens = domain.split(".")
    if len(tokens) < 2 or len(tokens) > 3:
        return domain
    return ".".join(reversed(tokens))


def _host_of(url: str) -> str:
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    if host:
        return host
    # No scheme: strip a stray protocol prefix and anything after the host
    return re.sub(r"^.*?://", "", url, count=1).split("/")[0]


def extract_domain(url: Optional[str]) -> str:
    """
    Registered domain (eTLD+1) of a URL, IP addresses unchanged.

    Uses tldextract so multi-part suffixes resolve correctly
    (accounts.google.co.uk -> google.co.uk). Works with or without a scheme.
    Returns "" when nothing usable is found.
    """
    if not url:
        return ""
    host = _host_of(url.strip())
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    extracted = _TLD_EXTRACT(host)
    if extracted.domain and extracted.suffix:
        base = f"{extracted.domain}.{extracted.suffix}"
    else:
        base = extracted.domain or extracted.suffix
    if _ILLEGAL_DOMAIN_CHARS.search(base):
        return ""
    return base


def _split_user_url(value: str, marker: str) -> Optional[Tuple[str, str]]:
    """Split ``<marker> <user>@<url>`` into (user, url)."""
    user_part, sep, url = value.partition("@")
    if not sep:
        return None
    return user_part.replace(marker, "").strip(), url


class ArtifactBuilder:
    """Base class for per-table row builders."""

    table_type: TableType
    required_columns: Tuple[str, ...] = ()

    def __init__(self, module_name: str, tz: tzinfo = timezone.utc):
        self.module_name = module_name
        self.tz = tz

    @property
    def artifact_kind(self) -> ArtifactKind:
        return TABLE_ARTIFACT_KINDS[self.table_type]

    def accepts(self, row: ExportRow) -> bool:
        """Cheap pre-filter; rows that fail it produce no artifact."""
        return True

    def build(self, row: ExportRow) -> Optional[ArtifactSpec]:
        raise NotImplementedError

    def _attr(self, attribute_type: AttributeType, value) -> Attribute:
        return Attribute(attribute_type, value if value is not None else "", self.module_name)

    def _spec(self, attributes: List[Attribute]) -> ArtifactSpec:
        return ArtifactSpec(self.artifact_kind, tuple(attributes))


class HistoryBuilder(ArtifactBuilder):
    table_type = TableType.HISTORY
    required_columns = ("url", "accessedtime")

    def accepts(self, row: ExportRow) -> bool:
        return HISTORY_MARKER in (row.get("url") or "")

    def build(self, row: ExportRow) -> Optional[ArtifactSpec]:
        if not self.accepts(row):
            return None
        split = _split_user_url(row["url"], HISTORY_MARKER)
        if split is None:
            LOGGER.debug("History row without user@url at line %d", row.line_number)
            return None
        user, url = split
        accessed = parse_export_time(row.get("accessedtime"), self.tz)

        attributes = [self._attr(AttributeType.URL, url)]
        if accessed is not None:
            attributes.append(self._attr(AttributeType.DATETIME_ACCESSED, accessed))
        attributes.extend([
            self._attr(AttributeType.REFERRER, ""),
            self._attr(AttributeType.TITLE, ""),
            self._attr(AttributeType.PROG_NAME, self.module_name),
            self._attr(AttributeType.DOMAIN, extract_domain(url)),
            self._attr(AttributeType.USER_NAME, user),
        ])
        return self._spec(attributes)


class DownloadBuilder(ArtifactBuilder):
    table_type = TableType.DOWNLOAD
    required_columns = ("url", "accessedtime")

    def accepts(self, row: ExportRow) -> bool:
        return DOWNLOAD_MARKER in (row.get("url") or "")

    def build(self, row: ExportRow) -> Optional[ArtifactSpec]:
        if not self.accepts(row):
            return None
        split = _split_user_url(row["url"], DOWNLOAD_MARKER)
        if split is None:
            return None
        _user, url = split
        accessed = parse_export_time(row.get("accessedtime"), self.tz)

        attributes = [
            self._attr(AttributeType.PATH, ""),
            self._attr(AttributeType.URL, url),
        ]
        if accessed is not None:
            attributes.append(self._attr(AttributeType.DATETIME_ACCESSED, accessed))
        attributes.extend([
            self._attr(AttributeType.DOMAIN, extract_domain(url)),
            self._attr(AttributeType.PROG_NAME, self.module_name),
        ])
        return self._spec(attributes)


class CookieBuilder(ArtifactBuilder):
    table_type = TableType.COOKIE
    required_columns = ("lastmodified", "rdomain", "name", "value")

    def build(self, row: ExportRow) -> Optional[ArtifactSpec]:
        created = parse_export_time(row.get("lastmodified"), self.tz)
        url = flip_domain((row.get("rdomain") or "").strip()) or ""
        name = row.decoded("name")
        value = row.decoded("value")

        attributes = [self._attr(AttributeType.URL, url)]
        if created is not None:
            attributes.append(self._attr(AttributeType.DATETIME, created))
        attributes.extend([
            self._attr(AttributeType.NAME, name),
            self._attr(AttributeType.VALUE, value),
            self._attr(AttributeType.PROG_NAME, self.module_name),
            self._attr(AttributeType.DOMAIN, extract_domain(url)),
        ])
        return self._spec(attributes)


class BookmarkBuilder(ArtifactBuilder):
    table_type = TableType.BOOKMARK
    required_columns = ("url", "title")

    def accepts(self, row: ExportRow) -> bool:
        return bool(row.get("url"))

    def build(self, row: ExportRow) -> Optional[ArtifactSpec]:
        if not self.accepts(row):
            return None
        url = row["url"]
        title = (row.get("title") or "").replace('"', "")
        return self._spec([
            self._attr(AttributeType.URL, url),
            self._attr(AttributeType.TITLE, title),
            self._attr(AttributeType.PROG_NAME, self.module_name),
            self._attr(AttributeType.DOMAIN, extract_domain(url)),
        ])


BUILDERS: Dict[TableType, Type[ArtifactBuilder]] = {
    TableType.HISTORY: HistoryBuilder,
    TableType.DOWNLOAD: DownloadBuilder,
    TableType.COOKIE: CookieBuilder,
    TableType.BOOKMARK: BookmarkBuilder,
}


def builder_for(table_type: TableType, module_name: str, tz: tzinfo = timezone.utc) -> ArtifactBuilder:
    """Return the row builder for a browser table type."""
    try:
        builder_cls = BUILDERS[table_type]
    except KeyError:
        raise ValueError(f"No row builder for table type '{table_type}'") from None
    return builder_cls(module_name, tz)


def interesting_file_spec(rule_set_name: str, rule_name: str, module_name: str) -> ArtifactSpec:
    """Interesting-file hit: the rule set is the set name, the rule is the category."""
    return ArtifactSpec(
        TABLE_ARTIFACT_KINDS[TableType.INTERESTING],
        (
            Attribute(AttributeType.SET_NAME, rule_set_name, module_name),
            Attribute(AttributeType.CATEGORY, rule_name, module_name),
        ),
    )
