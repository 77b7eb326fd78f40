"""Tests for layout_report module."""

import pandas as pd
import pytest

from config import PackingConfig
from layout_optimizer import bin_packing
from layout_report import (
    PARTS_TAB,
    PLACEMENTS_TAB,
    SHEETS_TAB,
    parts_summary,
    placements_table,
    save_report,
    sheets_summary,
)
from part import Part


@pytest.fixture
def result():
    parts = [
        Part.from_dimensions("panel", 150, 100, quantity=3),
        Part.from_dimensions("strip", 40, 200, quantity=2),
    ]
    config = PackingConfig(
        sheet_width=300, sheet_height=250, allow_rotation=True, edge_gap=5, part_spacing=5
    )
    return bin_packing(parts, config)


class TestTables:
    def test_sheets_summary(self, result):
        df = sheets_summary(result)
        assert len(df) == result.total_sheets
        assert df["parts"].sum() == 5
        assert list(df["sheet"]) == list(range(1, result.total_sheets + 1))
        assert (df["utilization_pct"] > 0).all()

    def test_placements_table(self, result):
        df = placements_table(result)
        assert len(df) == 5
        assert set(df["part"]) == {"panel", "strip"}
        assert df.columns.tolist() == [
            "sheet",
            "part",
            "x",
            "y",
            "width",
            "height",
            "rotation",
            "mirrored",
        ]

    def test_parts_summary(self, result):
        df = parts_summary(result).set_index("part")
        assert df.loc["panel", "placed"] == 3
        assert df.loc["strip", "placed"] == 2

    def test_empty_result(self):
        empty = bin_packing([], PackingConfig(sheet_width=100, sheet_height=100))
        assert sheets_summary(empty).empty
        assert placements_table(empty).empty
        assert parts_summary(empty).empty


class TestSaveReport:
    def test_workbook_tabs(self, result, tmp_path):
        path = save_report(result, tmp_path / "reports" / "layout.xlsx")
        assert path.exists()

        workbook = pd.read_excel(path, sheet_name=None, engine="openpyxl")
        assert set(workbook) == {SHEETS_TAB, PLACEMENTS_TAB, PARTS_TAB}
        assert len(workbook[PLACEMENTS_TAB]) == 5
