"""Tabular summaries of a packing result, exported to Excel."""

import logging
from pathlib import Path

import pandas as pd

from part import PackingResult

logger = logging.getLogger(__name__)

SHEETS_TAB = "Sheets"
PLACEMENTS_TAB = "Placements"
PARTS_TAB = "Parts"


def sheets_summary(result: PackingResult) -> pd.DataFrame:
    """One row per sheet: size, number of parts, used area and utilization."""
    rows = [
        {
            "sheet": sheet.index + 1,
            "width_mm": sheet.width,
            "height_mm": sheet.height,
            "parts": len(sheet.items),
            "used_area_mm2": sheet.used_area,
            "utilization_pct": round(sheet.utilization * 100, 2),
            "free_rectangles": len(sheet.free_rectangles),
        }
        for sheet in result.sheets
    ]
    return pd.DataFrame(
        rows,
        columns=[
            "sheet",
            "width_mm",
            "height_mm",
            "parts",
            "used_area_mm2",
            "utilization_pct",
            "free_rectangles",
        ],
    )


def placements_table(result: PackingResult) -> pd.DataFrame:
    """Every placed copy with its position and orientation."""
    rows = []
    for sheet in result.sheets:
        for item in sheet.items:
            rows.append({"sheet": sheet.index + 1, **item.to_dict()})
    return pd.DataFrame(
        rows, columns=["sheet", "part", "x", "y", "width", "height", "rotation", "mirrored"]
    )


def parts_summary(result: PackingResult) -> pd.DataFrame:
    """Placed copies per part and the sheets they ended up on."""
    placements = placements_table(result)
    if placements.empty:
        return pd.DataFrame(columns=["part", "placed", "sheets", "rotated", "mirrored"])

    grouped = placements.groupby("part", sort=False)
    summary = pd.DataFrame(
        {
            "placed": grouped.size(),
            "sheets": grouped["sheet"].agg(lambda s: ", ".join(str(n) for n in sorted(set(s)))),
            "rotated": grouped["rotation"].agg(lambda r: int((r != 0).sum())),
            "mirrored": grouped["mirrored"].agg(lambda m: int(m.sum())),
        }
    )
    return summary.reset_index()


def save_report(result: PackingResult, output_path: str | Path) -> Path:
    """Write the three tables as tabs of one xlsx workbook."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        sheets_summary(result).to_excel(writer, sheet_name=SHEETS_TAB, index=False)
        placements_table(result).to_excel(writer, sheet_name=PLACEMENTS_TAB, index=False)
        parts_summary(result).to_excel(writer, sheet_name=PARTS_TAB, index=False)
    logger.info(f"Report for {result.total_sheets} sheets saved to {output_path}")
    return output_path
