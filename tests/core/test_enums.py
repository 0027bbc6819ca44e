"""Tests for src/core/enums.py - Core enumerations."""

import pytest

from core.enums import (
    TABLE_ARTIFACT_KINDS,
    ArtifactKind,
    IngestState,
    Severity,
    TableType,
)


class TestSeverity:
    """Tests for Severity enum."""

    def test_severity_values(self):
        """Verify severity string values."""
        assert Severity.NO_ERRORS == "no_errors"
        assert Severity.NON_CRITICAL == "non_critical"
        assert Severity.CRITICAL == "critical"

    def test_rank_order(self):
        assert Severity.NO_ERRORS.rank < Severity.NON_CRITICAL.rank < Severity.CRITICAL.rank

    @pytest.mark.parametrize(
        "levels, expected",
        [
            ((), Severity.NO_ERRORS),
            ((Severity.NO_ERRORS,), Severity.NO_ERRORS),
            ((Severity.NON_CRITICAL, Severity.NO_ERRORS), Severity.NON_CRITICAL),
            ((Severity.NON_CRITICAL, Severity.CRITICAL, Severity.NON_CRITICAL), Severity.CRITICAL),
        ],
    )
    def test_worst(self, levels, expected):
        """Severity never decreases when combined."""
        assert Severity.worst(*levels) is expected


class TestIngestState:
    """Tests for IngestState enum."""

    def test_terminal_states(self):
        terminal = {state for state in IngestState if state.is_terminal}
        assert terminal == {IngestState.DONE, IngestState.CANCELLED, IngestState.FAILED}


class TestTableArtifactKinds:
    """Every table type maps to exactly one artifact kind."""

    def test_all_table_types_mapped(self):
        assert set(TABLE_ARTIFACT_KINDS) == set(TableType)

    def test_interesting_files(self):
        assert TABLE_ARTIFACT_KINDS[TableType.INTERESTING] is ArtifactKind.INTERESTING_FILE_HIT
