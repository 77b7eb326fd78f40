import logging
import math
from dataclasses import dataclass, replace

from config import COORDINATE_PRECISION
from entities import Arc, Circle, Ellipse, Entity, Line, Point, Polyline, Spline, Text, Vertex
from errors import ParseFailure
from part import BoundingBox
from units import Unit, detect_from_dimensions, detect_from_header, scale_factor, unit_name

logger = logging.getLogger(__name__)

FULL_TURN = 2 * math.pi


def _round(value: float) -> float:
    return round(value, COORDINATE_PRECISION)


def _extent_points(entity: Entity) -> list[tuple[float, float]]:
    """Corner points that bound an entity, empty when it has no measurable geometry."""
    if isinstance(entity, Line):
        return [entity.start[:2], entity.end[:2]]
    if isinstance(entity, Polyline):
        return [v[:2] for v in entity.vertices]
    if isinstance(entity, Spline):
        return [v[:2] for v in entity.defining_points]
    if isinstance(entity, (Circle, Arc)):
        cx, cy, r = entity.center.x, entity.center.y, abs(entity.radius)
        return [(cx - r, cy - r), (cx + r, cy + r)]
    if isinstance(entity, Ellipse):
        # Major axis length bounds the whole ellipse whatever its tilt
        r = math.hypot(entity.major_axis.x, entity.major_axis.y)
        cx, cy = entity.center.x, entity.center.y
        return [(cx - r, cy - r), (cx + r, cy + r)]
    if isinstance(entity, Point):
        return [entity.location[:2]]
    if isinstance(entity, Text):
        return [entity.insert[:2]]
    return []


def compute_bounding_box(entities: list[Entity]) -> BoundingBox:
    """Axis-aligned bounds of all entities. Entities without geometry are ignored."""
    if not entities:
        raise ParseFailure("No entities found in the drawing")

    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for entity in entities:
        for x, y in _extent_points(entity):
            min_x = min(min_x, x)
            min_y = min(min_y, y)
            max_x = max(max_x, x)
            max_y = max(max_y, y)

    if min_x == math.inf:
        raise ParseFailure("Drawing has no measurable geometry")
    return BoundingBox(min_x, min_y, max_x, max_y)


def _scale_vertex(vertex: Vertex, factor: float) -> Vertex:
    return Vertex(_round(vertex.x * factor), _round(vertex.y * factor), _round(vertex.z * factor))


def scale_entity(entity: Entity, factor: float) -> Entity:
    if isinstance(entity, Line):
        return replace(
            entity, start=_scale_vertex(entity.start, factor), end=_scale_vertex(entity.end, factor)
        )
    if isinstance(entity, (Circle, Arc)):
        return replace(
            entity,
            center=_scale_vertex(entity.center, factor),
            radius=_round(entity.radius * factor),
        )
    if isinstance(entity, Polyline):
        return replace(entity, vertices=tuple(_scale_vertex(v, factor) for v in entity.vertices))
    if isinstance(entity, Spline):
        return replace(
            entity,
            control_points=tuple(_scale_vertex(v, factor) for v in entity.control_points),
            fit_points=tuple(_scale_vertex(v, factor) for v in entity.fit_points),
        )
    if isinstance(entity, Ellipse):
        # ratio and params are dimensionless
        return replace(
            entity,
            center=_scale_vertex(entity.center, factor),
            major_axis=_scale_vertex(entity.major_axis, factor),
        )
    if isinstance(entity, Point):
        return replace(entity, location=_scale_vertex(entity.location, factor))
    if isinstance(entity, Text):
        return replace(
            entity,
            insert=_scale_vertex(entity.insert, factor),
            height=_round(entity.height * factor),
        )
    raise TypeError(f"Unknown entity {entity!r}")


def scale_entities(entities: list[Entity], factor: float) -> list[Entity]:
    """New entity list with all lengths multiplied by factor."""
    return [scale_entity(entity, factor) for entity in entities]


@dataclass(frozen=True)
class NormalizedGeometry:
    entities: list[Entity]
    bbox: BoundingBox
    unit: Unit
    scale_factor: float

    @property
    def unit_name(self) -> str:
        return unit_name(self.unit)


def normalize_entities(entities: list[Entity], header: dict | None = None) -> NormalizedGeometry:
    """Detect units, scale to millimeters and measure.

    Header units win; the raw-size heuristic is used only when the header says nothing.
    """
    raw_bbox = compute_bounding_box(entities)

    unit = detect_from_header(header)
    if unit == Unit.UNSPECIFIED:
        unit = detect_from_dimensions(raw_bbox.width, raw_bbox.height)
        logger.info(f"No units in header, guessed {unit_name(unit)} from drawing size")

    factor = scale_factor(unit, Unit.MILLIMETERS)
    scaled = scale_entities(entities, factor) if factor != 1 else list(entities)
    bbox = compute_bounding_box(scaled)
    logger.info(
        f"Normalized {len(scaled)} entities from {unit_name(unit)} (x{factor:g}): "
        f"{bbox.width:.2f} x {bbox.height:.2f} mm"
    )
    return NormalizedGeometry(scaled, bbox, unit, factor)


# Placement transforms: mirror -> rotate -> translate


def transform_point(
    point: Vertex, offset_x: float, offset_y: float, rotation: float, mirrored: bool
) -> Vertex:
    x, y = point.x, point.y
    if mirrored:
        x = -x
    if rotation:
        radians = math.radians(rotation)
        cos_a, sin_a = math.cos(radians), math.sin(radians)
        x, y = x * cos_a - y * sin_a, x * sin_a + y * cos_a
    return Vertex(_round(x + offset_x), _round(y + offset_y), point.z)


def _transform_direction(vector: Vertex, rotation: float, mirrored: bool) -> Vertex:
    return transform_point(vector, 0.0, 0.0, rotation, mirrored)


def _transform_arc_angles(start: float, end: float, rotation: float, mirrored: bool):
    if mirrored:
        # Reflection across the Y axis reverses the sweep direction
        start, end = 180.0 - end, 180.0 - start
    if rotation or mirrored:
        start, end = (start + rotation) % 360, (end + rotation) % 360
    return start, end


def _transform_ellipse_params(start: float, end: float, mirrored: bool):
    if not mirrored or math.isclose(abs(end - start), FULL_TURN):
        return start, end
    return (-end) % FULL_TURN, (-start) % FULL_TURN


def transform_entity(
    entity: Entity, offset_x: float, offset_y: float, rotation: float, mirrored: bool
) -> Entity:
    def move(point: Vertex) -> Vertex:
        return transform_point(point, offset_x, offset_y, rotation, mirrored)

    if isinstance(entity, Line):
        return replace(entity, start=move(entity.start), end=move(entity.end))
    if isinstance(entity, Circle):
        return replace(entity, center=move(entity.center))
    if isinstance(entity, Arc):
        start, end = _transform_arc_angles(
            entity.start_angle, entity.end_angle, rotation, mirrored
        )
        return replace(entity, center=move(entity.center), start_angle=start, end_angle=end)
    if isinstance(entity, Polyline):
        bulges = tuple(-b for b in entity.bulges) if mirrored else entity.bulges
        return replace(entity, vertices=tuple(move(v) for v in entity.vertices), bulges=bulges)
    if isinstance(entity, Spline):
        return replace(
            entity,
            control_points=tuple(move(v) for v in entity.control_points),
            fit_points=tuple(move(v) for v in entity.fit_points),
        )
    if isinstance(entity, Ellipse):
        start, end = _transform_ellipse_params(entity.start_param, entity.end_param, mirrored)
        return replace(
            entity,
            center=move(entity.center),
            major_axis=_transform_direction(entity.major_axis, rotation, mirrored),
            start_param=start,
            end_param=end,
        )
    if isinstance(entity, Point):
        return replace(entity, location=move(entity.location))
    if isinstance(entity, Text):
        return replace(
            entity, insert=move(entity.insert), rotation=(entity.rotation + rotation) % 360
        )
    raise TypeError(f"Unknown entity {entity!r}")


def transform_entities(
    entities: list[Entity],
    offset_x: float,
    offset_y: float,
    rotation: float = 0,
    mirrored: bool = False,
) -> list[Entity]:
    """Place a copy of the entities: mirror (negate x), rotate CCW, then translate.

    The order matters: swapping mirror and rotation moves parts that use both.
    """
    return [transform_entity(e, offset_x, offset_y, rotation, mirrored) for e in entities]


def placement_offset(
    bbox: BoundingBox, x: float, y: float, rotation: float = 0, mirrored: bool = False
) -> tuple[float, float]:
    """Translation that puts the transformed bbox's lower-left corner at (x, y)."""
    corners = [
        Vertex(bbox.min_x, bbox.min_y),
        Vertex(bbox.max_x, bbox.min_y),
        Vertex(bbox.max_x, bbox.max_y),
        Vertex(bbox.min_x, bbox.max_y),
    ]
    moved = [transform_point(c, 0.0, 0.0, rotation, mirrored) for c in corners]
    return x - min(p.x for p in moved), y - min(p.y for p in moved)
