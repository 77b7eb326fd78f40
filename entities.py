"""Typed geometric entities of a flat part.

Every DXF primitive the optimizer understands is one frozen dataclass.
Entities never change in place: scaling and placement produce new objects.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, NamedTuple, Union

import logging

from errors import EntityRenderWarning

logger = logging.getLogger(__name__)


class Vertex(NamedTuple):
    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class Line:
    dxftype: ClassVar[str] = "LINE"
    start: Vertex
    end: Vertex
    layer: str = "0"


@dataclass(frozen=True)
class Circle:
    dxftype: ClassVar[str] = "CIRCLE"
    center: Vertex
    radius: float
    layer: str = "0"


@dataclass(frozen=True)
class Arc:
    """Circular arc, angles in degrees counter-clockwise from +X."""

    dxftype: ClassVar[str] = "ARC"
    center: Vertex
    radius: float
    start_angle: float
    end_angle: float
    layer: str = "0"


@dataclass(frozen=True)
class Polyline:
    dxftype: ClassVar[str] = "POLYLINE"
    vertices: tuple[Vertex, ...]
    closed: bool = False
    bulges: tuple[float, ...] = ()
    kind: str = "LWPOLYLINE"
    layer: str = "0"


@dataclass(frozen=True)
class Spline:
    dxftype: ClassVar[str] = "SPLINE"
    control_points: tuple[Vertex, ...] = ()
    fit_points: tuple[Vertex, ...] = ()
    knots: tuple[float, ...] = ()
    degree: int = 3
    closed: bool = False
    layer: str = "0"

    @property
    def defining_points(self) -> tuple[Vertex, ...]:
        return self.control_points or self.fit_points


@dataclass(frozen=True)
class Ellipse:
    """Ellipse with major axis vector relative to center, params in radians."""

    dxftype: ClassVar[str] = "ELLIPSE"
    center: Vertex
    major_axis: Vertex
    ratio: float
    start_param: float = 0.0
    end_param: float = 6.283185307179586
    layer: str = "0"


@dataclass(frozen=True)
class Point:
    dxftype: ClassVar[str] = "POINT"
    location: Vertex
    layer: str = "0"


@dataclass(frozen=True)
class Text:
    dxftype: ClassVar[str] = "TEXT"
    insert: Vertex
    text: str = ""
    height: float = 2.5
    rotation: float = 0.0
    kind: str = "TEXT"
    layer: str = "0"


Entity = Union[Line, Circle, Arc, Polyline, Spline, Ellipse, Point, Text]

SUPPORTED_TYPES = (
    "LINE",
    "CIRCLE",
    "ARC",
    "POLYLINE",
    "LWPOLYLINE",
    "SPLINE",
    "ELLIPSE",
    "POINT",
    "TEXT",
    "MTEXT",
)


def entity_type(entity: Entity) -> str:
    """DXF type name, keeping LWPOLYLINE/POLYLINE and TEXT/MTEXT apart."""
    if isinstance(entity, (Polyline, Text)):
        return entity.kind
    return entity.dxftype


# Parsed-record conversion (dxf-parser style dictionaries)


def _vertex(value: Any, entity_type_name: str, field_name: str) -> Vertex:
    if value is None:
        raise EntityRenderWarning(entity_type_name, f"missing '{field_name}'")
    try:
        if isinstance(value, dict):
            return Vertex(float(value["x"]), float(value["y"]), float(value.get("z") or 0.0))
        coords = list(value)
        return Vertex(
            float(coords[0]), float(coords[1]), float(coords[2]) if len(coords) > 2 else 0.0
        )
    except (KeyError, IndexError, TypeError, ValueError):
        raise EntityRenderWarning(entity_type_name, f"malformed '{field_name}': {value!r}")


def _vertices(values: Any, entity_type_name: str, field_name: str) -> tuple[Vertex, ...]:
    if not values:
        return ()
    return tuple(_vertex(v, entity_type_name, field_name) for v in values)


def _float(value: Any, entity_type_name: str, field_name: str) -> float:
    """Optional numeric field, None counts as 0."""
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        raise EntityRenderWarning(entity_type_name, f"malformed '{field_name}': {value!r}")


def _number(record: dict, entity_type_name: str, *names: str, default: Any = None) -> float:
    for name in names:
        if record.get(name) is not None:
            try:
                return float(record[name])
            except (TypeError, ValueError):
                raise EntityRenderWarning(
                    entity_type_name, f"'{name}' is not a number: {record[name]!r}"
                )
    if default is None:
        raise EntityRenderWarning(entity_type_name, f"missing '{names[0]}'")
    return default


def entity_from_record(record: dict) -> Entity:
    """Build a typed entity from a parsed-record dictionary.

    Raises EntityRenderWarning for unsupported types or missing required fields.
    """
    if not isinstance(record, dict):
        raise EntityRenderWarning(type(record).__name__, "record is not a mapping")
    kind = str(record.get("type", "")).upper()
    layer = str(record.get("layer") or "0")

    if kind == "LINE":
        if record.get("vertices"):
            points = _vertices(record["vertices"], kind, "vertices")
            if len(points) < 2:
                raise EntityRenderWarning(kind, "needs two vertices")
            return Line(points[0], points[1], layer=layer)
        return Line(
            _vertex(record.get("start"), kind, "start"),
            _vertex(record.get("end"), kind, "end"),
            layer=layer,
        )

    if kind == "CIRCLE":
        return Circle(
            _vertex(record.get("center"), kind, "center"),
            _number(record, kind, "radius"),
            layer=layer,
        )

    if kind == "ARC":
        return Arc(
            _vertex(record.get("center"), kind, "center"),
            _number(record, kind, "radius"),
            _number(record, kind, "startAngle", "start_angle", default=0.0),
            _number(record, kind, "endAngle", "end_angle", default=360.0),
            layer=layer,
        )

    if kind in ("POLYLINE", "LWPOLYLINE"):
        raw_vertices = record.get("vertices") or []
        vertices = _vertices(raw_vertices, kind, "vertices")
        if not vertices:
            raise EntityRenderWarning(kind, "has no vertices")
        bulges = tuple(
            _float(v.get("bulge"), kind, "bulge") if isinstance(v, dict) else 0.0
            for v in raw_vertices
        )
        if not any(bulges):
            bulges = ()
        closed = bool(record.get("shape") or record.get("closed"))
        return Polyline(vertices, closed=closed, bulges=bulges, kind=kind, layer=layer)

    if kind == "SPLINE":
        control_points = _vertices(
            record.get("controlPoints") or record.get("control_points"), kind, "controlPoints"
        )
        fit_points = _vertices(
            record.get("fitPoints") or record.get("fit_points"), kind, "fitPoints"
        )
        if not control_points and not fit_points:
            raise EntityRenderWarning(kind, "has neither control nor fit points")
        raw_knots = record.get("knotValues") or record.get("knots") or ()
        if not isinstance(raw_knots, (list, tuple)):
            raise EntityRenderWarning(kind, f"malformed 'knotValues': {raw_knots!r}")
        knots = tuple(_float(k, kind, "knotValues") for k in raw_knots)
        degree = int(_number(record, kind, "degreeOfSplineCurve", "degree", default=3))
        return Spline(
            control_points=control_points,
            fit_points=fit_points,
            knots=knots,
            degree=degree,
            closed=bool(record.get("closed")),
            layer=layer,
        )

    if kind == "ELLIPSE":
        major = record.get("majorAxisEndPoint") or record.get("majorAxis") or record.get("major_axis")
        return Ellipse(
            _vertex(record.get("center"), kind, "center"),
            _vertex(major, kind, "majorAxis"),
            _number(record, kind, "axisRatio", "ratio"),
            _number(record, kind, "startAngle", "start_param", default=0.0),
            _number(record, kind, "endAngle", "end_param", default=6.283185307179586),
            layer=layer,
        )

    if kind == "POINT":
        return Point(_vertex(record.get("position"), kind, "position"), layer=layer)

    if kind in ("TEXT", "MTEXT"):
        insert = record.get("position") or record.get("startPoint") or record.get("insert")
        return Text(
            _vertex(insert, kind, "position"),
            text=str(record.get("text") or ""),
            height=_number(record, kind, "height", "textHeight", default=2.5),
            rotation=_number(record, kind, "rotation", default=0.0),
            kind=kind,
            layer=layer,
        )

    raise EntityRenderWarning(kind or "UNKNOWN", "unsupported entity type")


def entities_from_records(records: list[dict] | None) -> tuple[list[Entity], dict[str, int]]:
    """Convert parsed records, skipping the ones that cannot be used.

    Returns the entities and a per-type count of skipped records.
    """
    entities: list[Entity] = []
    skipped: dict[str, int] = {}
    for record in records or []:
        try:
            entities.append(entity_from_record(record))
        except EntityRenderWarning as warning:
            logger.warning(f"⚠️ Skipping entity {warning}")
            skipped[warning.entity_type] = skipped.get(warning.entity_type, 0) + 1
    return entities, skipped
