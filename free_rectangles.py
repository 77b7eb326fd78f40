"""Free-rectangle bookkeeping for one sheet: best short-side fit, guillotine split, merge."""

import logging

from config import EPSILON, MERGE_TOLERANCE, ROTATION_SAFETY_MARGIN
from part import FreeRectangle, PlacedItem

logger = logging.getLogger(__name__)


def _overlaps(a: tuple[float, float, float, float], b: tuple[float, float, float, float]) -> bool:
    """Strict overlap of (left, bottom, right, top) boxes, touching edges do not count."""
    return a[0] < b[2] and a[2] > b[0] and a[1] < b[3] and a[3] > b[1]


def check_collision(
    placed_items: list[PlacedItem],
    x: float,
    y: float,
    width: float,
    height: float,
    spacing: float = 0.0,
    rotation: int = 0,
    mirrored: bool = False,
) -> bool:
    """Check a candidate footprint against already placed items.

    The candidate (x, y, width, height) already includes spacing. Placed items
    are grown by spacing on their trailing edges. When the candidate or the item
    is rotated or mirrored, both boxes are grown by ROTATION_SAFETY_MARGIN of the
    candidate's larger side: a conservative stand-in for exact rotated-rectangle
    intersection.
    """
    if not placed_items:
        return False

    candidate_transformed = rotation != 0 or mirrored
    margin = max(width, height) * ROTATION_SAFETY_MARGIN

    for item in placed_items:
        candidate = (x, y, x + width, y + height)
        item_x, item_y, item_w, item_h = item.footprint(spacing)
        other = (item_x, item_y, item_x + item_w, item_y + item_h)

        if candidate_transformed or item.transformed:
            candidate = (
                candidate[0] - margin,
                candidate[1] - margin,
                candidate[2] + margin,
                candidate[3] + margin,
            )
            other = (other[0] - margin, other[1] - margin, other[2] + margin, other[3] + margin)

        if _overlaps(candidate, other):
            return True

    return False


class FreeRectanglePool:
    """Ordered set of free rectangles of one sheet.

    Insertion order is the tie-break for best_fit, so layouts are reproducible.
    """

    def __init__(self, rectangles: list[FreeRectangle] | None = None):
        self.rectangles: list[FreeRectangle] = list(rectangles or [])

    @classmethod
    def for_interior(cls, x: float, y: float, width: float, height: float) -> "FreeRectanglePool":
        return cls([FreeRectangle(x, y, width, height)])

    def __len__(self):
        return len(self.rectangles)

    def __iter__(self):
        return iter(self.rectangles)

    @property
    def free_area(self) -> float:
        return sum(rect.area for rect in self.rectangles)

    def best_fit(
        self,
        width: float,
        height: float,
        placed_items: list[PlacedItem],
        spacing: float = 0.0,
        rotation: int = 0,
        mirrored: bool = False,
    ) -> tuple[FreeRectangle, float] | None:
        """Best short-side fit for a (spacing-inflated) candidate size.

        Returns (rectangle, score) or None. Lower score wins, first rectangle wins ties.
        """
        best: tuple[FreeRectangle, float] | None = None
        for rect in self.rectangles:
            if not rect.fits(width, height, EPSILON):
                continue
            if check_collision(
                placed_items, rect.x, rect.y, width, height, spacing, rotation, mirrored
            ):
                continue
            score = min(rect.width - width, rect.height - height)
            if best is None or score < best[1]:
                best = (rect, score)
        return best

    def split(self, rect: FreeRectangle, used_width: float, used_height: float) -> None:
        """Guillotine split of rect after placing used_width x used_height at its corner."""
        self.rectangles.remove(rect)

        remaining_width = rect.width - used_width
        remaining_height = rect.height - used_height
        has_width = remaining_width > EPSILON
        has_height = remaining_height > EPSILON

        if has_width and has_height:
            if remaining_width >= remaining_height:
                # Larger leftover is the full-height strip on the right
                self.rectangles.append(
                    FreeRectangle(rect.x + used_width, rect.y, remaining_width, rect.height)
                )
                self.rectangles.append(
                    FreeRectangle(rect.x, rect.y + used_height, used_width, remaining_height)
                )
            else:
                self.rectangles.append(
                    FreeRectangle(rect.x, rect.y + used_height, rect.width, remaining_height)
                )
                self.rectangles.append(
                    FreeRectangle(rect.x + used_width, rect.y, remaining_width, used_height)
                )
        elif has_width:
            self.rectangles.append(
                FreeRectangle(rect.x + used_width, rect.y, remaining_width, rect.height)
            )
        elif has_height:
            self.rectangles.append(
                FreeRectangle(rect.x, rect.y + used_height, rect.width, remaining_height)
            )

    def merge(self) -> int:
        """Merge free rectangles sharing a full edge until nothing changes.

        Every merge removes one rectangle, so the loop is bounded by the pool size.
        Returns the number of merges done.
        """
        merges = 0
        for _ in range(len(self.rectangles)):
            if not self._merge_first_pair():
                break
            merges += 1
        if merges:
            logger.debug(f"Merged {merges} free rectangles, {len(self.rectangles)} left")
        return merges

    def _merge_first_pair(self) -> bool:
        rects = self.rectangles
        for i in range(len(rects)):
            for j in range(i + 1, len(rects)):
                merged = _merge_pair(rects[i], rects[j])
                if merged is not None:
                    rects[i] = merged
                    del rects[j]
                    return True
        return False


def _close(a: float, b: float) -> bool:
    return abs(a - b) <= MERGE_TOLERANCE


def _merge_pair(a: FreeRectangle, b: FreeRectangle) -> FreeRectangle | None:
    # Side by side with the same vertical extent
    if _close(a.y, b.y) and _close(a.height, b.height):
        if _close(a.right, b.x):
            return FreeRectangle(a.x, a.y, a.width + b.width, a.height)
        if _close(b.right, a.x):
            return FreeRectangle(b.x, b.y, a.width + b.width, b.height)
    # Stacked with the same horizontal extent
    if _close(a.x, b.x) and _close(a.width, b.width):
        if _close(a.top, b.y):
            return FreeRectangle(a.x, a.y, a.width, a.height + b.height)
        if _close(b.top, a.y):
            return FreeRectangle(b.x, b.y, b.width, a.height + b.height)
    return None
