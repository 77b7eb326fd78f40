"""
Configuration and constants for the sheet layout optimizer.
"""

from dataclasses import dataclass

from errors import InvalidSheetConfig

DEFAULT_SHEET_SIZE = (3000, 1500)  # mm
DEFAULT_EDGE_GAP = 10
DEFAULT_PART_SPACING = 5

# Coordinates are rounded to this many decimals after unit scaling
COORDINATE_PRECISION = 6

# Extra clearance for rotated/mirrored items, fraction of the candidate's larger side
ROTATION_SAFETY_MARGIN = 0.1

EPSILON = 1e-9
MERGE_TOLERANCE = 1e-6

SHEET_BOUNDARY_LAYER = "SHEET_BOUNDARY"
DEFAULT_DXF_VERSION = "R2010"
OUTPUT_FOLDER = "output_layouts"


@dataclass
class PackingConfig:
    sheet_width: float = DEFAULT_SHEET_SIZE[0]
    sheet_height: float = DEFAULT_SHEET_SIZE[1]
    allow_rotation: bool = False
    allow_mirroring: bool = False
    edge_gap: float = DEFAULT_EDGE_GAP
    part_spacing: float = DEFAULT_PART_SPACING

    @property
    def usable_width(self) -> float:
        return self.sheet_width - 2 * self.edge_gap

    @property
    def usable_height(self) -> float:
        return self.sheet_height - 2 * self.edge_gap

    @property
    def interior(self) -> tuple[float, float, float, float]:
        """Usable area of a sheet as (x, y, width, height)."""
        return self.edge_gap, self.edge_gap, self.usable_width, self.usable_height

    def validate(self) -> None:
        """Raise InvalidSheetConfig unless the sheet can hold anything at all."""
        if self.sheet_width <= 0 or self.sheet_height <= 0:
            raise InvalidSheetConfig(
                f"Sheet dimensions must be positive, got {self.sheet_width} x {self.sheet_height}"
            )
        if self.edge_gap < 0:
            raise InvalidSheetConfig(f"Edge gap must not be negative, got {self.edge_gap}")
        if self.part_spacing < 0:
            raise InvalidSheetConfig(
                f"Part spacing must not be negative, got {self.part_spacing}"
            )
        if self.usable_width <= 0 or self.usable_height <= 0:
            raise InvalidSheetConfig(
                f"Edge gap {self.edge_gap} leaves no usable area on a "
                f"{self.sheet_width} x {self.sheet_height} sheet"
            )
