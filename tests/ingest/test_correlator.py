"""
Tests for export row to case file correlation.
"""
from pathlib import Path

import pytest

from core.enums import CorrelationMode
from ingest.correlator import (
    FileCorrelator,
    ImageKey,
    LogicalKey,
    SourceIndex,
    logical_parent_path,
)
from ingest.exceptions import ConfigurationError, MissingSourceIdentifierError


class TestLogicalParentPath:
    """Tests for the logical file set parent path rule."""

    def test_container_suffix_is_removed(self):
        assert logical_parent_path("image.vhd", "Users/bob") == "/root/image/Users/bob/"

    def test_backslashes_and_duplicate_slashes_are_normalised(self):
        assert logical_parent_path("image.vhd", "\\Users\\bob\\") == "/root/image/Users/bob/"
        assert logical_parent_path("image.VHD", "//a//b") == "/root/image/a/b/"

    def test_empty_parent_path(self):
        assert logical_parent_path("image.vhd", "") == "/root/image/"


class TestSourceIndex:
    """Tests for the image path to data source id map."""

    def test_resolves_equivalent_paths(self, tmp_path):
        image = tmp_path / "dest" / "image.vhd"
        index = SourceIndex({7: [str(image)]})

        assert index.resolve(tmp_path / "dest" / "." / "image.vhd") == 7
        assert len(index) == 1

    def test_unknown_image_raises(self, tmp_path):
        index = SourceIndex({})
        with pytest.raises(MissingSourceIdentifierError) as excinfo:
            index.resolve(tmp_path / "missing.vhd")
        assert "missing.vhd" in str(excinfo.value)


def test_logical_correlation_matches_by_path_and_name(case_store):
    source = case_store.add_image_data_source("dev", ["/unused.vhd"])
    wanted = case_store.add_file(source.id, "secret.doc", "/root/image/Users/bob/")
    case_store.add_file(source.id, "secret.doc", "/root/image/Users/alice/")
    correlator = FileCorrelator(CorrelationMode.LOGICAL, case_store)

    key = correlator.key_for("image.vhd", None, "secret.doc", "Users\\bob")
    matches = correlator.correlate(key)

    assert key == LogicalKey("/root/image/Users/bob/", "secret.doc")
    assert [match.file.id for match in matches] == [wanted.id]
    assert matches[0].key == key


def test_image_correlation_uses_source_index(case_store, tmp_path):
    dest = tmp_path / "dest"
    dest.mkdir()
    image = dest / "image.vhd"
    image.write_bytes(b"")
    source = case_store.add_image_data_source("dev", [str(image.resolve())])
    wanted = case_store.add_file(source.id, "a.txt", "/x/", meta_addr=42)
    case_store.add_file(source.id, "a.txt", "/x/", meta_addr=43)

    correlator = FileCorrelator(CorrelationMode.IMAGE, case_store, dest_dir=dest)
    key = correlator.key_for("image.vhd", 42, "a.txt", "/ignored")
    matches = correlator.correlate(key)

    assert key == ImageKey(source.id, 42, "a.txt")
    assert [match.file.id for match in matches] == [wanted.id]


def test_image_mode_unknown_container_is_fatal(case_store, tmp_path):
    correlator = FileCorrelator(CorrelationMode.IMAGE, case_store, dest_dir=tmp_path)
    with pytest.raises(MissingSourceIdentifierError):
        correlator.key_for("other.vhd", 1, "a.txt", "")


def test_image_mode_without_meta_address_has_no_key(case_store, tmp_path):
    image = tmp_path / "image.vhd"
    image.write_bytes(b"")
    case_store.add_image_data_source("dev", [str(image)])
    correlator = FileCorrelator(CorrelationMode.IMAGE, case_store, dest_dir=tmp_path)

    assert correlator.key_for("image.vhd", None, "a.txt", "") is None


def test_wrong_key_variant_is_a_configuration_error(case_store):
    correlator = FileCorrelator(CorrelationMode.LOGICAL, case_store)
    with pytest.raises(ConfigurationError):
        correlator.correlate(ImageKey(1, 2, "a.txt"))


def test_results_are_ordered_by_file_id(case_store):
    source = case_store.add_image_data_source("dev", ["/unused.vhd"])
    ids = [case_store.add_file(source.id, "dup.txt", "/root/c/").id for _ in range(3)]
    correlator = FileCorrelator(CorrelationMode.LOGICAL, case_store)

    matches = correlator.correlate(LogicalKey("/root/c/", "dup.txt"))

    assert [match.file.id for match in matches] == sorted(ids)


def test_no_match_returns_empty_list(case_store):
    correlator = FileCorrelator(CorrelationMode.LOGICAL, case_store)
    assert correlator.correlate(LogicalKey("/root/none/", "nothing.txt")) == []


def test_quote_in_name_does_not_break_lookup(case_store):
    """Names are escaped before they reach the query expression."""
    source = case_store.add_image_data_source("dev", ["/unused.vhd"])
    quoted = case_store.add_file(source.id, "it's.txt", "/root/img/o'brien/")
    case_store.add_file(source.id, "x' OR '1'='1", "/root/img/")
    correlator = FileCorrelator(CorrelationMode.LOGICAL, case_store)

    matches = correlator.correlate(correlator.key_for("img.vhd", None, "it's.txt", "o'brien"))
    injected = correlator.correlate(LogicalKey("/root/img/", "x' OR '1'='2"))

    assert [match.file.id for match in matches] == [quoted.id]
    assert injected == []


def test_find_origin_files_matches_folder_substring(case_store):
    source = case_store.add_image_data_source("dev", ["/unused.vhd"])
    webcache = case_store.add_file(
        source.id, "WebCacheV01.dat", "/Users/bob/AppData/Local/Microsoft/Windows/WebCache/"
    )
    case_store.add_file(source.id, "WebCacheV01.dat", "/Users/bob/Backup/")
    spartan = case_store.add_file(source.id, "Spartan.edb", "/Users/bob/MicrosoftEdge/User/Default/")
    correlator = FileCorrelator(CorrelationMode.LOGICAL, case_store)

    assert [f.id for f in correlator.find_origin_files(source.id, "WebCacheV01.dat", "WebCache")] == [webcache.id]
    assert [f.id for f in correlator.find_origin_files(source.id, "spartan.edb", "MicrosoftEdge")] == [spartan.id]
