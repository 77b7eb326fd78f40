"""Sheet layout optimization: bounding-box bin packing of DXF parts."""

# Package version, also reported by pyproject.toml
__version__ = "2.0.0"

import logging
import math
from typing import Any, Callable

from check_overlaps import verify_result
from config import EPSILON, PackingConfig
from errors import InvalidSheetConfig, LayoutError, PackingInternalError, UnplaceablePart
from free_rectangles import FreeRectanglePool, check_collision
from part import FreeRectangle, Orientation, PackingResult, Part, PartInstance, PlacedItem, Sheet

logger = logging.getLogger(__name__)

__all__ = [
    "generate_orientations",
    "check_collision",
    "bin_packing",
    "calculate_utilization",
    "optimize_multiple_parts",
    "optimize_single_part",
]

ProgressCallback = Callable[[int, str], None]


def generate_orientations(
    width: float, height: float, allow_rotation: bool, allow_mirroring: bool
) -> list[Orientation]:
    """Distinct placements of a width x height box.

    Only 0 and 90 degrees: any other angle only grows the bounding box.
    Mirroring keeps the footprint, it just doubles the set.
    """
    orientations: dict[tuple[int, bool], Orientation] = {}
    orientations[(0, False)] = Orientation(width, height, 0, False)
    if allow_rotation:
        orientations[(90, False)] = Orientation(height, width, 90, False)
    if allow_mirroring:
        for orientation in list(orientations.values()):
            mirrored = Orientation(orientation.width, orientation.height, orientation.rotation, True)
            orientations.setdefault(mirrored.key, mirrored)
    return list(orientations.values())


def calculate_utilization(parts: list[Part], sheet_count: int, config: PackingConfig) -> float:
    """Requested part area over total area of the produced sheets."""
    if sheet_count == 0:
        return 0.0
    used_area = sum(part.width * part.height * part.quantity for part in parts)
    return used_area / (config.sheet_width * config.sheet_height * sheet_count)


def _fits_empty_sheet(part: Part, config: PackingConfig) -> bool:
    spacing = config.part_spacing
    return any(
        o.width + spacing <= config.usable_width + EPSILON
        and o.height + spacing <= config.usable_height + EPSILON
        for o in generate_orientations(
            part.width, part.height, config.allow_rotation, config.allow_mirroring
        )
    )


def _open_sheet(index: int, config: PackingConfig) -> Sheet:
    logger.debug(f"Opening sheet {index + 1}")
    return Sheet(
        index=index,
        width=config.sheet_width,
        height=config.sheet_height,
        pool=FreeRectanglePool.for_interior(*config.interior),
    )


def _find_best_placement(
    sheet: Sheet, remaining: list[PartInstance], config: PackingConfig
) -> tuple[float, int, Orientation, FreeRectangle] | None:
    """Best (score, instance index, orientation, rectangle) over all remaining instances."""
    spacing = config.part_spacing
    best = None
    evaluated: set[int] = set()

    for index, instance in enumerate(remaining):
        # Copies of the same part give the same candidates, and ties keep the first
        if instance.part.part_id in evaluated:
            continue
        evaluated.add(instance.part.part_id)

        for orientation in generate_orientations(
            instance.width, instance.height, config.allow_rotation, config.allow_mirroring
        ):
            fit = sheet.pool.best_fit(
                orientation.width + spacing,
                orientation.height + spacing,
                sheet.items,
                spacing,
                orientation.rotation,
                orientation.mirrored,
            )
            if fit is None:
                continue
            rect, score = fit
            if best is None or score < best[0]:
                best = (score, index, orientation, rect)
    return best


def _fill_sheet(sheet: Sheet, remaining: list[PartInstance], config: PackingConfig) -> int:
    """Place instances on the sheet until nothing else fits. Returns the number placed."""
    spacing = config.part_spacing
    placed = 0
    while remaining:
        best = _find_best_placement(sheet, remaining, config)
        if best is None:
            break
        score, index, orientation, rect = best
        instance = remaining.pop(index)

        item = PlacedItem(
            part=instance.part,
            x=rect.x,
            y=rect.y,
            width=orientation.width,
            height=orientation.height,
            rotation=orientation.rotation,
            mirrored=orientation.mirrored,
        )
        sheet.items.append(item)
        sheet.pool.split(rect, orientation.width + spacing, orientation.height + spacing)
        sheet.pool.merge()
        placed += 1
        logger.debug(f"Sheet {sheet.index + 1}: {item} (score {score:g})")
    return placed


def bin_packing(
    parts: list[Part],
    config: PackingConfig,
    progress_callback: ProgressCallback | None = None,
) -> PackingResult:
    """Pack all requested copies of the parts onto as few sheets as the heuristic finds.

    Largest instances go first; after every placement all remaining instances and
    orientations are re-scored against the updated free rectangles and the single
    best short-side fit is committed. A sheet is closed when nothing fits any more.

    Raises InvalidSheetConfig, UnplaceablePart or PackingInternalError.
    """
    config.validate()
    active_parts = [part for part in parts if part.quantity > 0]

    for part in active_parts:
        if not _fits_empty_sheet(part, config):
            raise UnplaceablePart(part, config.usable_width, config.usable_height)

    instances = [
        PartInstance(part, i) for part in active_parts for i in range(part.quantity)
    ]
    # sorted() is stable, equal areas keep the input order
    remaining = sorted(instances, key=lambda inst: inst.area, reverse=True)
    total_items = len(remaining)

    logger.info(
        f"=== Packing {total_items} items of {len(active_parts)} parts on "
        f"{config.sheet_width:g} x {config.sheet_height:g} sheets "
        f"(rotation={config.allow_rotation}, mirroring={config.allow_mirroring}, "
        f"gap={config.edge_gap:g}, spacing={config.part_spacing:g}) ==="
    )
    if progress_callback:
        progress_callback(0, f"Packing {total_items} items...")

    sheets: list[Sheet] = []
    while remaining:
        sheet = _open_sheet(len(sheets), config)
        placed = _fill_sheet(sheet, remaining, config)
        if placed == 0:
            raise PackingInternalError(
                f"Sheet {sheet.index + 1} stayed empty with {len(remaining)} items left"
            )
        sheets.append(sheet)
        logger.info(
            f"Sheet {sheet.index + 1}: {placed} items, {sheet.utilization * 100:.1f}% used, "
            f"{len(sheet.pool)} free rectangles"
        )
        if progress_callback:
            done = total_items - len(remaining)
            progress_callback(
                int(done / total_items * 100), f"Sheet {len(sheets)}: {done}/{total_items} placed"
            )

    utilization = calculate_utilization(active_parts, len(sheets), config)
    logger.info(f"✅ Done: {total_items} items on {len(sheets)} sheets, {utilization * 100:.1f}% utilization")
    if progress_callback:
        progress_callback(100, f"Done: {len(sheets)} sheets")
    return PackingResult(total_items, sheets, utilization, config)


def _failure(error: Exception, error_type: str, part: Part | None = None) -> dict[str, Any]:
    return {
        "success": False,
        "error": str(error),
        "error_type": error_type,
        "part": part.name if part is not None else None,
    }


def _build_config(
    sheet_width, sheet_height, allow_rotation, allow_mirroring, edge_gap, part_spacing
) -> PackingConfig:
    try:
        return PackingConfig(
            sheet_width=float(sheet_width),
            sheet_height=float(sheet_height),
            allow_rotation=bool(allow_rotation),
            allow_mirroring=bool(allow_mirroring),
            edge_gap=float(edge_gap or 0),
            part_spacing=float(part_spacing or 0),
        )
    except (TypeError, ValueError):
        raise InvalidSheetConfig(
            f"Sheet settings must be numbers: {sheet_width!r} x {sheet_height!r}, "
            f"gap {edge_gap!r}, spacing {part_spacing!r}"
        )


def optimize_multiple_parts(
    parts: list[Part],
    sheet_width: float,
    sheet_height: float,
    allow_rotation: bool = False,
    allow_mirroring: bool = False,
    edge_gap: float = 0,
    part_spacing: float = 0,
    verify: bool = True,
    progress_callback: ProgressCallback | None = None,
) -> dict[str, Any]:
    """Run the packer and report a structured result instead of raising.

    On success the dict carries the result interface (total_items, total_sheets,
    utilization, sheets) plus the PackingResult under "result".
    """
    try:
        config = _build_config(
            sheet_width, sheet_height, allow_rotation, allow_mirroring, edge_gap, part_spacing
        )
        result = bin_packing(parts, config, progress_callback)
        if verify:
            problems = verify_result(result)
            if problems:
                raise PackingInternalError(
                    f"Layout check failed: {'; '.join(problems[:5])}"
                )
    except UnplaceablePart as error:
        logger.warning(f"❌ {error}")
        return _failure(error, error.kind, error.part)
    except LayoutError as error:
        logger.warning(f"❌ Optimization failed: {error}")
        return _failure(error, error.kind)
    except Exception as error:
        logger.exception("Unexpected error in the packing loop")
        return _failure(error, PackingInternalError.kind)

    return {"success": True, "result": result, **result.to_dict()}


# Single-part mode: one layout repeated over as many sheets as needed


def _grid_capacity(orientation: Orientation, config: PackingConfig) -> tuple[int, int]:
    pitch_x = orientation.width + config.part_spacing
    pitch_y = orientation.height + config.part_spacing
    cols = int((config.usable_width + EPSILON) // pitch_x)
    rows = int((config.usable_height + EPSILON) // pitch_y)
    return cols, rows


def _grid_sheet(
    index: int, orientation: Orientation, count: int, cols: int, config: PackingConfig, part: Part
) -> Sheet:
    x0, y0, usable_w, usable_h = config.interior
    pitch_x = orientation.width + config.part_spacing
    pitch_y = orientation.height + config.part_spacing

    items = [
        PlacedItem(
            part,
            x0 + (i % cols) * pitch_x,
            y0 + (i // cols) * pitch_y,
            orientation.width,
            orientation.height,
            orientation.rotation,
            orientation.mirrored,
        )
        for i in range(count)
    ]

    # Free space of a row-major grid: right strip, unfinished row, top strip
    used_cols = min(count, cols)
    full_rows, partial = divmod(count, cols)
    used_rows = full_rows + (1 if partial else 0)
    free: list[FreeRectangle] = []
    if usable_w - used_cols * pitch_x > EPSILON:
        free.append(
            FreeRectangle(x0 + used_cols * pitch_x, y0, usable_w - used_cols * pitch_x, usable_h)
        )
    if partial and used_cols > partial:
        free.append(
            FreeRectangle(
                x0 + partial * pitch_x, y0 + full_rows * pitch_y, (used_cols - partial) * pitch_x, pitch_y
            )
        )
    if usable_h - used_rows * pitch_y > EPSILON:
        free.append(
            FreeRectangle(x0, y0 + used_rows * pitch_y, used_cols * pitch_x, usable_h - used_rows * pitch_y)
        )
    return Sheet(index, config.sheet_width, config.sheet_height, FreeRectanglePool(free), items)


def _guillotine_sheet(
    index: int, orientation: Orientation, limit: int, config: PackingConfig, part: Part
) -> Sheet:
    sheet = _open_sheet(index, config)
    width = orientation.width + config.part_spacing
    height = orientation.height + config.part_spacing
    while len(sheet.items) < limit:
        # Identical boxes never overlap the pool, no collision test needed
        fit = sheet.pool.best_fit(width, height, [], config.part_spacing)
        if fit is None:
            break
        rect, _ = fit
        sheet.items.append(
            PlacedItem(
                part,
                rect.x,
                rect.y,
                orientation.width,
                orientation.height,
                orientation.rotation,
                orientation.mirrored,
            )
        )
        sheet.pool.split(rect, width, height)
        sheet.pool.merge()
    return sheet


def _waste_area(sheet: Sheet) -> float:
    """Bounding box of the placed items minus the items themselves."""
    if not sheet.items:
        return 0.0
    min_x = min(item.x for item in sheet.items)
    min_y = min(item.y for item in sheet.items)
    max_x = max(item.x + item.width for item in sheet.items)
    max_y = max(item.y + item.height for item in sheet.items)
    return (max_x - min_x) * (max_y - min_y) - sheet.used_area


def optimize_single_part(part: Part, config: PackingConfig) -> PackingResult:
    """Lay out copies of one part with a repeated per-sheet pattern.

    For each allowed orientation a regular grid and a guillotine fill are compared.
    The one holding most items per sheet wins; equal counts go to the layout
    wasting less of its bounding box, then to the earlier candidate.
    """
    config.validate()
    if part.quantity == 0:
        return PackingResult(0, [], 0.0, config)

    orientations = generate_orientations(part.width, part.height, config.allow_rotation, False)
    best: tuple[int, float, str, Orientation] | None = None
    for orientation in orientations:
        cols, rows = _grid_capacity(orientation, config)
        candidates = [
            _guillotine_sheet(0, orientation, part.quantity, config, part),
        ]
        grid_count = min(cols * rows, part.quantity)
        if grid_count:
            candidates.insert(0, _grid_sheet(0, orientation, grid_count, cols, config, part))
        methods = ["grid", "guillotine"] if grid_count else ["guillotine"]

        for sheet, method in zip(candidates, methods):
            count = len(sheet.items)
            waste = _waste_area(sheet)
            if (
                best is None
                or count > best[0]
                or (count == best[0] and waste < best[1] - EPSILON)
            ):
                best = (count, waste, method, orientation)

    per_sheet, _, method, orientation = best
    if per_sheet == 0:
        raise UnplaceablePart(part, config.usable_width, config.usable_height)

    sheet_count = math.ceil(part.quantity / per_sheet)
    logger.info(
        f"Single part '{part.name}': {per_sheet} per sheet ({method}, {orientation.rotation}°), "
        f"{sheet_count} sheets"
    )

    sheets = []
    cols, _ = _grid_capacity(orientation, config)
    for index in range(sheet_count):
        count = min(per_sheet, part.quantity - index * per_sheet)
        if method == "grid":
            sheets.append(_grid_sheet(index, orientation, count, cols, config, part))
        else:
            sheets.append(_guillotine_sheet(index, orientation, count, config, part))

    utilization = calculate_utilization([part], sheet_count, config)
    return PackingResult(part.quantity, sheets, utilization, config)
