"""Unit tests for drawing and size normalization."""

from __future__ import annotations

import pytest

from takeoff.canonical.normalize import NOSIZE, clean_cell, normalize_drawing, normalize_size


class TestNormalizeDrawing:
    """Test drawing number normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("  p-001 ", "P-001"),
            ("P-001", "P-001"),
            ("dwg   12\t a", "DWG 12 A"),
            ("P-0001", "P-0001"),
        ],
    )
    def test_trims_uppercases_and_collapses_whitespace(self, raw, expected):
        assert normalize_drawing(raw) == expected

    def test_keeps_hyphens_and_leading_zeros(self):
        """P-001 and P-1 stay distinct."""
        assert normalize_drawing("P-001") != normalize_drawing("P-1")

    @pytest.mark.parametrize("raw", ["  p-001 ", "a  b   c", "Iso-22/B", ""])
    def test_idempotent(self, raw):
        once = normalize_drawing(raw)
        assert normalize_drawing(once) == once

    def test_blank_is_empty(self):
        assert normalize_drawing(None) == ""
        assert normalize_drawing("   ") == ""


class TestNormalizeSize:
    """Test nominal size normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('2"', "2"),
            ("1/2\"", "1X2"),
            (" 3 / 4 ", "3X4"),
            ("4in", "4IN"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_size(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_sizes_become_nosize(self, raw):
        assert normalize_size(raw) == NOSIZE

    @pytest.mark.parametrize("raw", ['1/2"', "NOSIZE", "6", None])
    def test_idempotent(self, raw):
        once = normalize_size(raw)
        assert normalize_size(once) == once


def test_clean_cell():
    assert clean_cell(None) == ""
    assert clean_cell("  x ") == "x"
    assert clean_cell(3) == "3"
