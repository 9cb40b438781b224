"""Unit tests for three-tier column detection."""

from __future__ import annotations

from takeoff.ingestion.column_mapper import map_columns
from takeoff.models import CanonicalField, MatchTier


def _by_field(result):
    return {m.canonical_field: m for m in result.mappings}


class TestMapColumns:
    """Test column mapping tiers and bookkeeping."""

    def test_exact_headers(self):
        result = map_columns(["DRAWING", "TYPE", "QTY", "CMDTY CODE"])

        assert result.has_all_required_fields
        assert result.missing_required_fields == []
        assert {m.confidence for m in result.mappings} == {100}
        assert {m.match_tier for m in result.mappings} == {MatchTier.EXACT}

    def test_case_insensitive_headers(self):
        result = map_columns(["drawing", "Type", "qty", "Cmdty Code"])
        mapped = _by_field(result)

        assert result.has_all_required_fields
        assert mapped[CanonicalField.DRAWING].confidence == 95
        assert mapped[CanonicalField.CMDTY_CODE].match_tier == MatchTier.CASE_INSENSITIVE

    def test_synonym_headers(self):
        result = map_columns(["DWG", "Type", "Quantity", "Commodity Code", "Test Pkg"])
        mapped = _by_field(result)

        assert result.has_all_required_fields
        assert mapped[CanonicalField.DRAWING].confidence == 85
        assert mapped[CanonicalField.QTY].source_column == "Quantity"
        assert mapped[CanonicalField.TEST_PACKAGE].match_tier == MatchTier.SYNONYM

    def test_exact_match_beats_earlier_synonym(self):
        """A synonym further left does not steal the field from an exact header."""
        result = map_columns(["DWG", "DRAWING", "TYPE", "QTY", "CMDTY CODE"])
        mapped = _by_field(result)

        assert mapped[CanonicalField.DRAWING].source_column == "DRAWING"
        assert "DWG" in result.unmapped_columns

    def test_each_field_maps_once(self):
        result = map_columns(["QTY", "Quantity", "DRAWING", "TYPE", "CMDTY CODE"])

        qty_columns = [m.source_column for m in result.mappings if m.canonical_field == CanonicalField.QTY]
        assert qty_columns == ["QTY"]
        assert result.unmapped_columns == ["Quantity"]

    def test_mappings_follow_header_order(self):
        result = map_columns(["CMDTY CODE", "QTY", "TYPE", "DRAWING"])
        assert [m.source_column for m in result.mappings] == ["CMDTY CODE", "QTY", "TYPE", "DRAWING"]

    def test_missing_required_fields(self):
        result = map_columns(["DRAWING", "Description", "Notes"])

        assert not result.has_all_required_fields
        assert result.missing_required_fields == [
            CanonicalField.TYPE,
            CanonicalField.QTY,
            CanonicalField.CMDTY_CODE,
        ]

    def test_unknown_and_blank_headers(self):
        result = map_columns(["DRAWING", "TYPE", "QTY", "CMDTY CODE", "Item #", "", "  "])
        assert result.unmapped_columns == ["Item #"]

    def test_custom_synonyms(self):
        result = map_columns(
            ["Sheet", "TYPE", "QTY", "CMDTY CODE"],
            synonyms={CanonicalField.DRAWING: ["sheet"]},
        )
        assert _by_field(result)[CanonicalField.DRAWING].source_column == "Sheet"

    def test_lookup(self):
        result = map_columns(["DWG", "TYPE"])
        assert result.lookup() == {"DWG": CanonicalField.DRAWING, "TYPE": CanonicalField.TYPE}
