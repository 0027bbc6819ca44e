"""Tests for the SQLite case store."""

import pytest

from core.database import CaseStore
from core.database.exceptions import CaseStoreError
from core.database.query import FileFilter
from core.enums import ArtifactKind, AttributeType, DataSourceKind
from core.models import ArtifactSpec, Attribute


def _spec(value: str = "https://a.test") -> ArtifactSpec:
    return ArtifactSpec(
        ArtifactKind.WEB_BOOKMARK,
        (Attribute(AttributeType.URL, value, "Test"), Attribute(AttributeType.DATETIME, 5, "Test")),
    )


def test_migrations_are_applied_once(case_context):
    reopened = CaseStore.open(case_context.case_db_path)
    try:
        versions = [row[0] for row in reopened.connection.execute("SELECT version FROM schema_version")]
    finally:
        reopened.close()

    assert versions == [1]


class TestDataSources:
    def test_image_data_source_round_trip(self, case_store):
        source = case_store.add_image_data_source("dev", ["/e/disk.vhd", "/e/disk2.vhd"], "UTC")

        loaded = case_store.get_data_source(source.id)
        assert loaded == source
        assert loaded.kind == DataSourceKind.IMAGE
        assert loaded.name == "disk.vhd"
        assert case_store.image_paths() == {source.id: ["/e/disk.vhd", "/e/disk2.vhd"]}

    def test_image_data_source_needs_a_path(self, case_store):
        with pytest.raises(CaseStoreError):
            case_store.add_image_data_source("dev", [])

    def test_local_files_keep_folder_name(self, case_store, tmp_path):
        root = tmp_path / "root"
        (root / "img" / "docs").mkdir(parents=True)
        (root / "img" / "docs" / "a.txt").write_text("a")
        (root / "top.txt").write_text("t")
        added = []

        source = case_store.add_local_files_data_source("dev", [str(root)], progress=added.append)

        assert source.kind == DataSourceKind.LOCAL_FILES
        assert [(f.parent_path, f.name) for f in added] == [
            ("/root/", "top.txt"),
            ("/root/img/docs/", "a.txt"),
        ]
        assert added[1].local_path == str(root / "img" / "docs" / "a.txt")
        assert case_store.image_paths() == {}

    def test_local_files_missing_path(self, case_store, tmp_path):
        with pytest.raises(CaseStoreError, match="does not exist"):
            case_store.add_local_files_data_source("dev", [str(tmp_path / "missing")])


class TestFiles:
    def test_find_files_by_filter(self, case_store):
        source = case_store.add_image_data_source("dev", ["/e/disk.vhd"])
        wanted = case_store.add_file(source.id, "a.txt", "\\x\\y", meta_addr=9)
        case_store.add_file(source.id, "a.txt", "/x/z/", meta_addr=10)

        found = case_store.find_files(FileFilter.for_logical_file("/x/y/", "a.txt"))

        assert found == [wanted]
        assert wanted.path == "/x/y/a.txt"

    def test_find_files_wraps_sql_errors(self, case_store):
        class BrokenFilter:
            def to_sql(self):
                return "no_such_column = 1"

        with pytest.raises(CaseStoreError, match="File query failed"):
            case_store.find_files(BrokenFilter())

    def test_export_file_copies_content(self, case_store, tmp_path):
        content = tmp_path / "orig.dat"
        content.write_bytes(b"ese")
        source = case_store.add_image_data_source("dev", ["/e/disk.vhd"])
        case_file = case_store.add_file(source.id, "orig.dat", "/", local_path=str(content))

        out = case_store.export_file(case_file, tmp_path / "temp" / "copy.dat")

        assert out.read_bytes() == b"ese"

    def test_export_without_content_fails(self, case_store, tmp_path):
        source = case_store.add_image_data_source("dev", ["/e/disk.vhd"])
        case_file = case_store.add_file(source.id, "orig.dat", "/")

        with pytest.raises(CaseStoreError, match="No readable content"):
            case_store.export_file(case_file, tmp_path / "copy.dat")


class TestArtifacts:
    @pytest.fixture
    def case_file(self, case_store):
        source = case_store.add_image_data_source("dev", ["/e/disk.vhd"])
        return case_store.add_file(source.id, "a.txt", "/")

    def test_attributes_keep_order_and_types(self, case_store, case_file):
        artifact = case_store.create_artifact(case_file, _spec())

        assert case_store.get_attributes(artifact.id) == list(_spec().attributes)
        assert case_store.find_artifact(case_file, _spec()) == artifact
        assert case_store.artifact_exists(case_file, _spec())
        assert not case_store.artifact_exists(case_file, _spec("https://b.test"))

    def test_index_artifact(self, case_store, case_file):
        artifact = case_store.create_artifact(case_file, _spec())
        case_store.index_artifact(artifact, "Microsoft Edge")

        row = case_store.connection.execute(
            "SELECT module_name, indexed_text FROM keyword_index WHERE artifact_id = ?", (artifact.id,)
        ).fetchone()
        assert row["module_name"] == "Microsoft Edge"
        assert row["indexed_text"] == "https://a.test"


class TestReports:
    def test_add_report(self, case_store, tmp_path):
        report = tmp_path / "SearchResults.txt"
        report.write_text("x")

        case_store.add_report(report, "LogicalImager", "SearchResults.txt li")

        assert case_store.get_reports() == [
            {"path": str(report), "source_module": "LogicalImager", "label": "SearchResults.txt li"}
        ]

    def test_missing_report_file(self, case_store, tmp_path):
        with pytest.raises(CaseStoreError, match="not found"):
            case_store.add_report(tmp_path / "nope.txt", "LogicalImager", "x")

