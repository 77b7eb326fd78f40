"""Geometric checks of a finished layout: overlaps, sheet bounds and free-space tiling."""

import logging

from shapely.geometry import Polygon, box
from shapely.ops import unary_union

from config import PackingConfig
from part import PackingResult, PlacedItem, Sheet

logger = logging.getLogger(__name__)

AREA_TOLERANCE = 1e-6


def _footprint_box(item: PlacedItem, spacing: float) -> Polygon:
    x, y, width, height = item.footprint(spacing)
    return box(x, y, x + width, y + height)


def _interior_box(config: PackingConfig) -> Polygon:
    x, y, width, height = config.interior
    return box(x, y, x + width, y + height)


def _tolerance(area: float) -> float:
    return AREA_TOLERANCE * max(1.0, area)


def find_overlaps(sheet: Sheet, spacing: float = 0.0) -> list[tuple[PlacedItem, PlacedItem]]:
    """Pairs of items whose spacing-inflated rectangles share area."""
    boxes = [_footprint_box(item, spacing) for item in sheet.items]
    overlaps = []
    for i in range(len(boxes)):
        for j in range(i + 1, len(boxes)):
            if boxes[i].intersection(boxes[j]).area > AREA_TOLERANCE:
                overlaps.append((sheet.items[i], sheet.items[j]))
    return overlaps


def find_out_of_bounds(sheet: Sheet, config: PackingConfig) -> list[PlacedItem]:
    """Items whose inflated rectangle leaves the sheet interior (sheet minus edge gap)."""
    interior = _interior_box(config)
    outside = []
    for item in sheet.items:
        footprint = _footprint_box(item, config.part_spacing)
        if footprint.difference(interior).area > _tolerance(footprint.area):
            outside.append(item)
    return outside


def check_tiling(sheet: Sheet, config: PackingConfig) -> list[str]:
    """Free rectangles plus inflated footprints must cover the interior exactly once."""
    interior = _interior_box(config)
    pieces = [_footprint_box(item, config.part_spacing) for item in sheet.items]
    pieces += [box(r.x, r.y, r.right, r.top) for r in sheet.free_rectangles]

    problems = []
    tolerance = _tolerance(interior.area)
    total_area = sum(piece.area for piece in pieces)
    if abs(total_area - interior.area) > tolerance:
        problems.append(
            f"sheet {sheet.index + 1}: pieces cover {total_area:.6f} of {interior.area:.6f} mm²"
        )
    union = unary_union(pieces)
    if union.symmetric_difference(interior).area > tolerance:
        problems.append(f"sheet {sheet.index + 1}: free space does not tile the interior")
    return problems


def verify_sheet(sheet: Sheet, config: PackingConfig) -> list[str]:
    problems = []
    for first, second in find_overlaps(sheet, config.part_spacing):
        problems.append(f"sheet {sheet.index + 1}: {first} overlaps {second}")
    for item in find_out_of_bounds(sheet, config):
        problems.append(f"sheet {sheet.index + 1}: {item} is outside the usable area")
    problems += check_tiling(sheet, config)
    return problems


def verify_result(result: PackingResult) -> list[str]:
    """All layout problems of a packing result, empty when the layout is sound."""
    problems = []
    placed = sum(len(sheet.items) for sheet in result.sheets)
    if placed != result.total_items:
        problems.append(f"{placed} items placed, {result.total_items} requested")
    for sheet in result.sheets:
        problems += verify_sheet(sheet, result.config)
    for problem in problems:
        logger.error(f"❌ {problem}")
    return problems
