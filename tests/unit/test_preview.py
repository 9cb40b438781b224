"""Unit tests for import previews (no database)."""

from __future__ import annotations

import pytest

from takeoff.config import ImportConfig
from takeoff.errors import RowLimitError
from takeoff.ingestion.metadata_analyzer import build_preview, count_components, extract_unique_metadata
from takeoff.ingestion.reader import read_takeoff
from takeoff.models import ComponentType, ParsedRow


class TestBuildPreview:
    """Test mapping + validation summaries."""

    def test_ready_file(self, sample_csv):
        table = read_takeoff(sample_csv)

        preview = build_preview(table.headers, table.records, "takeoff.csv", len(sample_csv))

        assert preview.can_import
        assert preview.mapping.unmapped_columns == ["Item #"]
        assert preview.component_counts == {"valve": 2, "flange": 1, "pipe": 1}
        assert preview.total_components == 4
        assert len(preview.sample_rows) == 4

    def test_sample_rows_are_capped(self, sample_csv):
        table = read_takeoff(sample_csv)
        preview = build_preview(
            table.headers, table.records, "takeoff.csv", 0, ImportConfig(preview_sample_size=2)
        )
        assert len(preview.sample_rows) == 2

    def test_missing_columns_block_import(self):
        table = read_takeoff("DRAWING,TYPE\nP-001,Valve\n")

        preview = build_preview(table.headers, table.records, "takeoff.csv", 0)

        assert not preview.can_import
        body = preview.to_dict()
        assert body["columnMappings"]["missingRequiredFields"] == ["QTY", "CMDTY CODE"]
        assert body["canImport"] is False

    def test_errors_and_warnings_in_body(self):
        table = read_takeoff(
            "DRAWING,TYPE,QTY,CMDTY CODE\nP-001,Valve,0,V1\nP-001,Gasket,1,G1\n"
        )

        body = build_preview(table.headers, table.records, "t.csv", 0).to_dict()

        assert body["errors"] == [{"row": 2, "issue": "Unsupported component type: Gasket", "drawing": "P-001"}]
        assert body["warnings"][0]["issue"] == "Quantity is 0"
        assert body["validation"]["errorCount"] == 1
        assert "results" not in body["validation"]

    def test_row_limit(self, sample_csv):
        table = read_takeoff(sample_csv)
        with pytest.raises(RowLimitError):
            build_preview(table.headers, table.records, "t.csv", 0, ImportConfig(max_rows=3))


def _row(type, qty, drawing="P-001", code="C1", **extra):
    return ParsedRow(drawing=drawing, type=type, qty=qty, commodity_code=code, **extra)


def test_count_components():
    rows = [
        _row(ComponentType.VALVE, 3),
        _row(ComponentType.INSTRUMENT, 5, code="FT"),
        _row(ComponentType.PIPE, 10, code="P"),
        _row(ComponentType.PIPE, 15, drawing="p-001", code="P"),
    ]
    assert count_components(rows) == {"valve": 3, "instrument": 1, "pipe": 1}


def test_extract_unique_metadata():
    rows = [
        _row(ComponentType.VALVE, 1, area="North", system="Cooling"),
        _row(ComponentType.VALVE, 1, code="C2", area=" North ", test_package="TP-1"),
        _row(ComponentType.VALVE, 1, code="C3", area="South"),
    ]

    metadata = extract_unique_metadata(rows)

    assert metadata.areas == ["North", "South"]
    assert metadata.systems == ["Cooling"]
    assert metadata.test_packages == ["TP-1"]
