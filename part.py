from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from config import COORDINATE_PRECISION, PackingConfig
from entities import Entity, Polyline, Vertex
from units import Unit

if TYPE_CHECKING:
    from free_rectangles import FreeRectanglePool


@dataclass(frozen=True)
class BoundingBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return abs(self.max_x - self.min_x)

    @property
    def height(self) -> float:
        return abs(self.max_y - self.min_y)

    def to_dict(self) -> dict[str, float]:
        return {
            "width": self.width,
            "height": self.height,
            "min_x": self.min_x,
            "min_y": self.min_y,
            "max_x": self.max_x,
            "max_y": self.max_y,
        }


def round_up_mm(length: float) -> int:
    # Round away float noise first so 100.0000000001 stays 100
    return math.ceil(round(length, COORDINATE_PRECISION))


@dataclass(eq=False)
class Part:
    """A named flat shape requested in `quantity` copies.

    Geometry is stored in millimeters; `unit` and `scale_factor` remember
    what the source file used.
    """

    name: str
    entities: list[Entity]
    bbox: BoundingBox
    quantity: int = 1
    unit: Unit = Unit.MILLIMETERS
    scale_factor: float = 1.0
    content: bytes | None = None
    part_id: int = field(default_factory=lambda: Part._get_next_id())

    _id_counter: ClassVar[int] = 0

    @classmethod
    def _get_next_id(cls) -> int:
        cls._id_counter += 1
        return cls._id_counter

    def __post_init__(self):
        if self.quantity < 0:
            raise ValueError(f"Quantity of '{self.name}' must not be negative")

    @classmethod
    def from_dimensions(
        cls, name: str, width: float, height: float, quantity: int = 1
    ) -> "Part":
        """Rectangular part with its lower-left corner at the origin."""
        outline = Polyline(
            (Vertex(0, 0), Vertex(width, 0), Vertex(width, height), Vertex(0, height)),
            closed=True,
        )
        return cls(
            name=name,
            entities=[outline],
            bbox=BoundingBox(0.0, 0.0, float(width), float(height)),
            quantity=quantity,
        )

    @property
    def width(self) -> int:
        return round_up_mm(self.bbox.width)

    @property
    def height(self) -> int:
        return round_up_mm(self.bbox.height)

    @property
    def area(self) -> float:
        return self.width * self.height

    def increment(self, count: int = 1) -> int:
        self.quantity += count
        return self.quantity

    def decrement(self, count: int = 1) -> int:
        self.quantity = max(0, self.quantity - count)
        return self.quantity

    def __eq__(self, other):
        if not isinstance(other, Part):
            return False
        return self.part_id == other.part_id

    def __hash__(self):
        return hash(self.part_id)

    def __repr__(self):
        return f"Part(id={self.part_id}, name='{self.name}', size={self.width}x{self.height}, qty={self.quantity})"


@dataclass(frozen=True)
class PartInstance:
    part: Part
    index: int = 0

    @property
    def width(self) -> int:
        return self.part.width

    @property
    def height(self) -> int:
        return self.part.height

    @property
    def area(self) -> float:
        return self.part.area


@dataclass(frozen=True)
class Orientation:
    width: float
    height: float
    rotation: int = 0
    mirrored: bool = False

    @property
    def key(self) -> tuple[int, bool]:
        return self.rotation, self.mirrored


@dataclass(frozen=True)
class FreeRectangle:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def top(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def fits(self, width: float, height: float, tolerance: float = 0.0) -> bool:
        return width <= self.width + tolerance and height <= self.height + tolerance

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class PlacedItem:
    """Final position of one part copy. width/height are the true, uninflated size."""

    part: Part
    x: float
    y: float
    width: float
    height: float
    rotation: int = 0
    mirrored: bool = False

    @property
    def transformed(self) -> bool:
        return self.rotation != 0 or self.mirrored

    def footprint(self, spacing: float = 0.0) -> tuple[float, float, float, float]:
        """(x, y, width, height) grown by spacing on the right and top edges."""
        return self.x, self.y, self.width + spacing, self.height + spacing

    def to_dict(self) -> dict[str, Any]:
        return {
            "part": self.part.name,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "rotation": self.rotation,
            "mirrored": self.mirrored,
        }

    def __repr__(self):
        return f"PlacedItem(part='{self.part.name}', pos=({self.x:.1f}, {self.y:.1f}), angle={self.rotation}°, mirrored={self.mirrored})"


@dataclass
class Sheet:
    index: int
    width: float
    height: float
    pool: FreeRectanglePool
    items: list[PlacedItem] = field(default_factory=list)

    @property
    def free_rectangles(self) -> list[FreeRectangle]:
        return list(self.pool.rectangles)

    @property
    def used_area(self) -> float:
        return sum(item.width * item.height for item in self.items)

    @property
    def utilization(self) -> float:
        return self.used_area / (self.width * self.height)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "width": self.width,
            "height": self.height,
            "items": [item.to_dict() for item in self.items],
            "free_rectangles": [rect.to_dict() for rect in self.free_rectangles],
        }


@dataclass
class PackingResult:
    total_items: int
    sheets: list[Sheet]
    utilization: float
    config: PackingConfig

    @property
    def total_sheets(self) -> int:
        return len(self.sheets)

    def count_for(self, part: Part) -> int:
        return sum(1 for sheet in self.sheets for item in sheet.items if item.part == part)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_items": self.total_items,
            "total_sheets": self.total_sheets,
            "utilization": self.utilization,
            "sheets": [sheet.to_dict() for sheet in self.sheets],
        }
