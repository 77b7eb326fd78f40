import io
import logging
import os
import re
import tempfile
from io import BytesIO
from itertools import repeat
from pathlib import Path
from typing import Any

import ezdxf
from ezdxf.document import Drawing

from config import DEFAULT_DXF_VERSION, OUTPUT_FOLDER, SHEET_BOUNDARY_LAYER
from entities import (
    Arc,
    Circle,
    Ellipse,
    Entity,
    Line,
    Point,
    Polyline,
    Spline,
    Text,
    Vertex,
)
from errors import EntityRenderWarning, ParseFailure
from geometry_utils import normalize_entities, placement_offset, scale_entities, transform_entities
from part import PackingResult, Part, Sheet, round_up_mm
from units import Unit, insunits_from_unit, scale_factor, unit_name

logger = logging.getLogger(__name__)

logging.getLogger("ezdxf").setLevel(logging.ERROR)

HEADER_UNIT_VARIABLES = ("$INSUNITS", "$MEASUREMENT")

_INVALID_LAYER_CHARS = re.compile(r'[<>/\\":;?*|=`]')


def _read_document(file: BytesIO | bytes | str | Path) -> Drawing:
    """Load a DXF document from a path, raw bytes or a file-like object."""
    try:
        if isinstance(file, (str, Path)):
            return ezdxf.readfile(str(file))

        if isinstance(file, bytes):
            data = file
        else:
            file.seek(0)  # Ensure we're at the beginning
            data = file.read()

        # ezdxf detects the encoding itself when reading from disk
        with tempfile.NamedTemporaryFile(suffix=".dxf", delete=False) as tmp_file:
            tmp_file.write(data if isinstance(data, bytes) else data.encode("utf-8"))
            temp_path = tmp_file.name
        try:
            return ezdxf.readfile(temp_path)
        finally:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
    except (IOError, ValueError, ezdxf.DXFError) as error:
        raise ParseFailure(f"Failed to parse DXF file, make sure it is a valid DXF: {error}")


def _vertex(value) -> Vertex:
    return Vertex(float(value[0]), float(value[1]), float(value[2]) if len(value) > 2 else 0.0)


def entity_from_dxf(entity) -> Entity:
    """Convert an ezdxf entity. Raises EntityRenderWarning when it cannot be used."""
    dxftype = entity.dxftype()
    layer = entity.dxf.get("layer", "0")

    try:
        if dxftype == "LINE":
            return Line(_vertex(entity.dxf.start), _vertex(entity.dxf.end), layer=layer)

        if dxftype == "CIRCLE":
            return Circle(_vertex(entity.dxf.center), float(entity.dxf.radius), layer=layer)

        if dxftype == "ARC":
            return Arc(
                _vertex(entity.dxf.center),
                float(entity.dxf.radius),
                float(entity.dxf.start_angle),
                float(entity.dxf.end_angle),
                layer=layer,
            )

        if dxftype == "LWPOLYLINE":
            elevation = float(entity.dxf.get("elevation", 0.0))
            points = list(entity.get_points("xyb"))
            if not points:
                raise EntityRenderWarning(dxftype, "has no vertices")
            bulges = tuple(float(p[2]) for p in points)
            return Polyline(
                tuple(Vertex(float(p[0]), float(p[1]), elevation) for p in points),
                closed=bool(entity.closed),
                bulges=bulges if any(bulges) else (),
                kind="LWPOLYLINE",
                layer=layer,
            )

        if dxftype == "POLYLINE":
            mode = entity.get_mode()
            if mode not in ("AcDb2dPolyline", "AcDb3dPolyline"):
                raise EntityRenderWarning(dxftype, f"{mode} is not supported")
            vertices = list(entity.vertices)
            if not vertices:
                raise EntityRenderWarning(dxftype, "has no vertices")
            bulges = tuple(float(v.dxf.get("bulge", 0.0)) for v in vertices)
            return Polyline(
                tuple(_vertex(v.dxf.location) for v in vertices),
                closed=bool(entity.is_closed),
                bulges=bulges if any(bulges) else (),
                kind="POLYLINE",
                layer=layer,
            )

        if dxftype == "SPLINE":
            control_points = tuple(_vertex(p) for p in entity.control_points)
            fit_points = tuple(_vertex(p) for p in entity.fit_points)
            if not control_points and not fit_points:
                raise EntityRenderWarning(dxftype, "has neither control nor fit points")
            return Spline(
                control_points=control_points,
                fit_points=fit_points,
                knots=tuple(float(k) for k in entity.knots),
                degree=int(entity.dxf.degree),
                closed=bool(entity.closed),
                layer=layer,
            )

        if dxftype == "ELLIPSE":
            return Ellipse(
                _vertex(entity.dxf.center),
                _vertex(entity.dxf.major_axis),
                float(entity.dxf.ratio),
                float(entity.dxf.start_param),
                float(entity.dxf.end_param),
                layer=layer,
            )

        if dxftype == "POINT":
            return Point(_vertex(entity.dxf.location), layer=layer)

        if dxftype == "TEXT":
            return Text(
                _vertex(entity.dxf.insert),
                text=entity.dxf.get("text", ""),
                height=float(entity.dxf.get("height", 2.5)),
                rotation=float(entity.dxf.get("rotation", 0.0)),
                kind="TEXT",
                layer=layer,
            )

        if dxftype == "MTEXT":
            return Text(
                _vertex(entity.dxf.insert),
                text=entity.text,
                height=float(entity.dxf.get("char_height", 2.5)),
                rotation=float(entity.dxf.get("rotation", 0.0)),
                kind="MTEXT",
                layer=layer,
            )
    except (AttributeError, TypeError, ValueError, IndexError, ezdxf.DXFError) as error:
        raise EntityRenderWarning(dxftype, f"malformed entity: {error}")

    raise EntityRenderWarning(dxftype, "unsupported entity type")


def read_dxf(file: BytesIO | bytes | str | Path) -> tuple[dict[str, Any], list[Entity], dict[str, int]]:
    """Read header units and modelspace entities of a DXF file.

    Returns (header, entities, skipped) where skipped counts unusable entities per type.
    Entities on the sheet boundary layer of an exported layout are left out.
    """
    doc = _read_document(file)
    header = {name: doc.header[name] for name in HEADER_UNIT_VARIABLES if name in doc.header}

    entities: list[Entity] = []
    skipped: dict[str, int] = {}
    for dxf_entity in doc.modelspace():
        if dxf_entity.dxf.get("layer", "0") == SHEET_BOUNDARY_LAYER:
            continue
        try:
            entities.append(entity_from_dxf(dxf_entity))
        except EntityRenderWarning as warning:
            logger.warning(f"⚠️ Skipping entity {warning}")
            skipped[warning.entity_type] = skipped.get(warning.entity_type, 0) + 1

    logger.info(f"Read {len(entities)} entities, skipped {sum(skipped.values())}, header {header}")
    return header, entities, skipped


def parse_dxf_part(file: BytesIO | bytes | str | Path) -> dict[str, Any]:
    """Parse, detect units, scale to millimeters and measure one part file.

    Never raises for bad input: failures come back as {"success": False, "error": ...}.
    """
    try:
        header, entities, skipped = read_dxf(file)
        geometry = normalize_entities(entities, header)
    except ParseFailure as error:
        logger.warning(f"❌ {error}")
        return {"success": False, "error": str(error)}

    bbox = geometry.bbox
    return {
        "success": True,
        "dimensions": {
            "width": round_up_mm(bbox.width),
            "height": round_up_mm(bbox.height),
            "min_x": bbox.min_x,
            "min_y": bbox.min_y,
        },
        "bbox": bbox,
        "units": geometry.unit_name,
        "unit": geometry.unit,
        "scale_factor": geometry.scale_factor,
        "entities": geometry.entities,
        "skipped": skipped,
    }


def _source_name(file) -> str:
    if isinstance(file, (str, Path)):
        return Path(file).stem
    name = getattr(file, "name", None)
    return Path(str(name)).stem if name else "part"


def load_part(
    file: BytesIO | bytes | str | Path, name: str | None = None, quantity: int = 1
) -> Part:
    """Create a Part from a DXF file. Raises ParseFailure."""
    parsed = parse_dxf_part(file)
    if not parsed["success"]:
        raise ParseFailure(parsed["error"])

    if isinstance(file, (str, Path)):
        content = Path(file).read_bytes()
    elif isinstance(file, bytes):
        content = file
    else:
        file.seek(0)
        content = file.read()

    part = Part(
        name=name or _source_name(file),
        entities=parsed["entities"],
        bbox=parsed["bbox"],
        quantity=quantity,
        unit=parsed["unit"],
        scale_factor=parsed["scale_factor"],
        content=content,
    )
    logger.info(f"Loaded {part} ({parsed['units']})")
    return part


# Layout export


def layer_name_for(part: Part) -> str:
    return _INVALID_LAYER_CHARS.sub("_", part.name) or "0"


def sheet_output_unit(sheet: Sheet) -> Unit:
    """Common source unit of the sheet's parts, millimeters when they differ."""
    units = {item.part.unit for item in sheet.items}
    if len(units) == 1:
        unit = units.pop()
        if unit != Unit.UNSPECIFIED:
            return unit
    return Unit.MILLIMETERS


def add_entity(msp, entity: Entity, layer: str) -> None:
    """Add one entity to a layout. Raises EntityRenderWarning if it cannot be drawn."""
    attribs = {"layer": layer}

    if isinstance(entity, Line):
        msp.add_line(entity.start, entity.end, dxfattribs=attribs)
    elif isinstance(entity, Circle):
        msp.add_circle(entity.center, entity.radius, dxfattribs=attribs)
    elif isinstance(entity, Arc):
        msp.add_arc(
            entity.center, entity.radius, entity.start_angle, entity.end_angle, dxfattribs=attribs
        )
    elif isinstance(entity, Polyline):
        if len(entity.vertices) < 2:
            raise EntityRenderWarning(entity.kind, "needs at least two vertices")
        bulges = entity.bulges or repeat(0.0)
        if entity.kind == "LWPOLYLINE":
            msp.add_lwpolyline(
                [(v.x, v.y, b) for v, b in zip(entity.vertices, bulges)],
                format="xyb",
                close=entity.closed,
                dxfattribs={**attribs, "elevation": entity.vertices[0].z},
            )
        elif any(v.z for v in entity.vertices):
            msp.add_polyline3d(list(entity.vertices), close=entity.closed, dxfattribs=attribs)
        else:
            polyline = msp.add_polyline2d(
                [(v.x, v.y) for v in entity.vertices], close=entity.closed, dxfattribs=attribs
            )
            for vertex, bulge in zip(polyline.vertices, bulges):
                if bulge:
                    vertex.dxf.bulge = bulge
    elif isinstance(entity, Spline):
        if entity.control_points:
            knots = entity.knots
            if len(knots) != len(entity.control_points) + entity.degree + 1:
                knots = None
            spline = msp.add_open_spline(
                list(entity.control_points), degree=entity.degree, knots=knots, dxfattribs=attribs
            )
            if entity.fit_points:
                spline.fit_points = list(entity.fit_points)
        elif entity.fit_points:
            spline = msp.add_spline(list(entity.fit_points), degree=entity.degree, dxfattribs=attribs)
        else:
            raise EntityRenderWarning("SPLINE", "has neither control nor fit points")
        if entity.closed:
            spline.closed = True
    elif isinstance(entity, Ellipse):
        msp.add_ellipse(
            entity.center,
            major_axis=entity.major_axis,
            ratio=entity.ratio,
            start_param=entity.start_param,
            end_param=entity.end_param,
            dxfattribs=attribs,
        )
    elif isinstance(entity, Point):
        msp.add_point(entity.location, dxfattribs=attribs)
    elif isinstance(entity, Text):
        if entity.kind == "MTEXT":
            msp.add_mtext(
                entity.text,
                dxfattribs={
                    **attribs,
                    "insert": entity.insert,
                    "char_height": entity.height,
                    "rotation": entity.rotation,
                },
            )
        else:
            msp.add_text(
                entity.text,
                dxfattribs={
                    **attribs,
                    "insert": entity.insert,
                    "height": entity.height,
                    "rotation": entity.rotation,
                },
            )
    else:
        raise EntityRenderWarning(type(entity).__name__, "unsupported entity type")


def build_sheet_document(sheet: Sheet, unit: Unit | None = None) -> Drawing:
    """DXF document of one sheet: boundary plus every placed part, in `unit`."""
    unit = sheet_output_unit(sheet) if unit is None else Unit(unit)
    factor = scale_factor(Unit.MILLIMETERS, unit)

    doc = ezdxf.new(DEFAULT_DXF_VERSION)
    doc.header["$INSUNITS"] = insunits_from_unit(unit)
    doc.header["$MEASUREMENT"] = 0 if unit in (Unit.INCHES, Unit.FEET) else 1
    doc.header["$LUNITS"] = 2  # decimal units
    msp = doc.modelspace()

    if SHEET_BOUNDARY_LAYER not in doc.layers:
        doc.layers.add(SHEET_BOUNDARY_LAYER, color=8)
    width, height = sheet.width * factor, sheet.height * factor
    msp.add_lwpolyline(
        [(0, 0), (width, 0), (width, height), (0, height)],
        close=True,
        dxfattribs={"layer": SHEET_BOUNDARY_LAYER},
    )

    skipped = 0
    for item in sheet.items:
        layer = layer_name_for(item.part)
        if layer not in doc.layers:
            doc.layers.add(layer)

        offset_x, offset_y = placement_offset(
            item.part.bbox, item.x, item.y, item.rotation, item.mirrored
        )
        placed = transform_entities(
            item.part.entities, offset_x, offset_y, item.rotation, item.mirrored
        )
        if factor != 1:
            placed = scale_entities(placed, factor)

        for entity in placed:
            try:
                add_entity(msp, entity, layer)
            except EntityRenderWarning as warning:
                skipped += 1
                logger.warning(f"⚠️ Not drawn on sheet {sheet.index + 1}: {warning}")
            except (ezdxf.DXFError, ValueError) as error:
                skipped += 1
                logger.warning(
                    f"⚠️ Not drawn on sheet {sheet.index + 1}: {entity.dxftype}: {error}"
                )

    logger.info(
        f"Sheet {sheet.index + 1} exported in {unit_name(unit)}: {len(sheet.items)} parts"
        + (f", {skipped} entities skipped" if skipped else "")
    )
    return doc


def generate_dxf_for_sheet(
    result: PackingResult, sheet_index: int, unit: Unit | None = None
) -> str | None:
    """DXF text of one sheet of a result, None if there is no such sheet."""
    if not 0 <= sheet_index < len(result.sheets):
        return None
    doc = build_sheet_document(result.sheets[sheet_index], unit)
    stream = io.StringIO()
    doc.write(stream)
    return stream.getvalue()


def save_dxf_layout(sheet: Sheet, output_path: str | Path, unit: Unit | None = None) -> Path:
    doc = build_sheet_document(sheet, unit)
    doc.saveas(str(output_path))
    return Path(output_path)


def save_all_sheets(
    result: PackingResult,
    output_folder: str | Path = OUTPUT_FOLDER,
    prefix: str = "sheet",
    unit: Unit | None = None,
) -> list[Path]:
    """Write every sheet as <prefix>_<n>.dxf and return the paths."""
    folder = Path(output_folder)
    folder.mkdir(parents=True, exist_ok=True)
    return [
        save_dxf_layout(sheet, folder / f"{prefix}_{sheet.index + 1}.dxf", unit)
        for sheet in result.sheets
    ]
