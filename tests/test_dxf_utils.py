"""Tests for dxf_utils module."""

from io import BytesIO, StringIO

import ezdxf
import pytest

from config import PackingConfig, SHEET_BOUNDARY_LAYER
from dxf_utils import (
    build_sheet_document,
    entity_from_dxf,
    generate_dxf_for_sheet,
    layer_name_for,
    load_part,
    parse_dxf_part,
    read_dxf,
    save_all_sheets,
    save_dxf_layout,
    sheet_output_unit,
)
from entities import Arc, Circle, Ellipse, Point, Polyline, Spline, Text
from errors import EntityRenderWarning, ParseFailure
from free_rectangles import FreeRectanglePool
from geometry_utils import compute_bounding_box
from layout_optimizer import bin_packing
from part import Part, PlacedItem, Sheet
from units import Unit


@pytest.fixture
def mixed_entities_dxf(tmp_path):
    doc = ezdxf.new("R2010")
    doc.header["$INSUNITS"] = 4
    msp = doc.modelspace()
    msp.add_lwpolyline([(0, 0, 0), (100, 0, 0.5), (100, 50, 0), (0, 50, 0)], format="xyb", close=True)
    msp.add_circle((20, 20), 5)
    msp.add_arc((50, 25), 10, 0, 180)
    msp.add_ellipse((70, 25), major_axis=(8, 0), ratio=0.5)
    msp.add_spline([(10, 40), (20, 45), (30, 40)])
    msp.add_point((5, 5))
    msp.add_text("A-1", dxfattribs={"insert": (60, 10), "height": 3})
    msp.add_mtext("note", dxfattribs={"insert": (60, 30), "char_height": 2})
    msp.add_3dface([(0, 0, 0), (1, 0, 0), (1, 1, 0)])
    path = tmp_path / "mixed.dxf"
    doc.saveas(path)
    return path


class TestReadDxf:
    def test_entities_and_header(self, mixed_entities_dxf):
        header, entities, skipped = read_dxf(mixed_entities_dxf)

        assert header["$INSUNITS"] == 4
        assert [type(e) for e in entities] == [
            Polyline,
            Circle,
            Arc,
            Ellipse,
            Spline,
            Point,
            Text,
            Text,
        ]
        assert skipped == {"3DFACE": 1}

    def test_polyline_details(self, mixed_entities_dxf):
        _, entities, _ = read_dxf(mixed_entities_dxf)
        polyline = entities[0]
        assert polyline.closed
        assert polyline.kind == "LWPOLYLINE"
        assert polyline.bulges == (0.0, 0.5, 0.0, 0.0)

    def test_text_kinds(self, mixed_entities_dxf):
        _, entities, _ = read_dxf(mixed_entities_dxf)
        text, mtext = entities[-2:]
        assert (text.kind, text.text, text.height) == ("TEXT", "A-1", 3)
        assert (mtext.kind, mtext.text) == ("MTEXT", "note")

    def test_boundary_layer_ignored(self, tmp_path):
        doc = ezdxf.new("R2010")
        doc.layers.add(SHEET_BOUNDARY_LAYER)
        msp = doc.modelspace()
        msp.add_line((0, 0), (10, 0))
        msp.add_lwpolyline(
            [(0, 0), (500, 0), (500, 500)], dxfattribs={"layer": SHEET_BOUNDARY_LAYER}
        )
        path = tmp_path / "layout.dxf"
        doc.saveas(path)

        _, entities, _ = read_dxf(path)
        assert len(entities) == 1

    def test_unreadable_input(self):
        with pytest.raises(ParseFailure):
            read_dxf(b"this is not a drawing")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseFailure):
            read_dxf(tmp_path / "missing.dxf")


class TestEntityFromDxf:
    def test_unsupported(self):
        doc = ezdxf.new()
        face = doc.modelspace().add_3dface([(0, 0, 0), (1, 0, 0), (1, 1, 0)])
        with pytest.raises(EntityRenderWarning) as info:
            entity_from_dxf(face)
        assert info.value.entity_type == "3DFACE"

    def test_polyline_2d(self):
        doc = ezdxf.new()
        polyline = doc.modelspace().add_polyline2d([(0, 0), (10, 0), (10, 10)], close=True)
        converted = entity_from_dxf(polyline)
        assert converted.kind == "POLYLINE"
        assert converted.closed
        assert len(converted.vertices) == 3


class TestParseDxfPart:
    def test_millimeters(self, create_test_dxf, rectangle_coords):
        path = create_test_dxf([rectangle_coords(100, 50, 10, 20)], units=4)
        parsed = parse_dxf_part(path)

        assert parsed["success"] is True
        assert parsed["units"] == "millimeters"
        assert parsed["dimensions"]["width"] == 100
        assert parsed["dimensions"]["height"] == 50
        assert parsed["dimensions"]["min_x"] == 10
        assert parsed["dimensions"]["min_y"] == 20
        assert parsed["skipped"] == {}

    def test_inches_scaled_to_millimeters(self, create_test_dxf, rectangle_coords):
        path = create_test_dxf([rectangle_coords(2, 1)], units=1)
        parsed = parse_dxf_part(path)

        assert parsed["units"] == "inches"
        assert parsed["scale_factor"] == 25.4
        assert parsed["bbox"].width == pytest.approx(50.8)
        assert parsed["dimensions"]["width"] == 51
        assert parsed["dimensions"]["height"] == 26

    def test_unitless_uses_size_heuristic(self, create_test_dxf, rectangle_coords):
        path = create_test_dxf([rectangle_coords(5, 3)], units=0)
        parsed = parse_dxf_part(path)

        assert parsed["unit"] == Unit.CENTIMETERS
        assert parsed["dimensions"]["width"] == 50
        assert parsed["dimensions"]["height"] == 30

    def test_bytes_and_stream_input(self, create_test_dxf, rectangle_coords):
        path = create_test_dxf([rectangle_coords(40, 30)])
        data = path.read_bytes()
        assert parse_dxf_part(data)["dimensions"]["width"] == 40
        assert parse_dxf_part(BytesIO(data))["dimensions"]["height"] == 30

    def test_empty_drawing_fails(self, create_test_dxf):
        parsed = parse_dxf_part(create_test_dxf([]))
        assert parsed["success"] is False
        assert "No entities" in parsed["error"]

    def test_garbage_fails(self):
        parsed = parse_dxf_part(BytesIO(b"0\nSECTION\nnonsense"))
        assert parsed["success"] is False
        assert parsed["error"]


class TestLoadPart:
    def test_from_path(self, create_test_dxf, rectangle_coords):
        path = create_test_dxf([rectangle_coords(120, 80)], name="door_panel.dxf")
        part = load_part(path, quantity=3)

        assert part.name == "door_panel"
        assert (part.width, part.height, part.quantity) == (120, 80, 3)
        assert part.content == path.read_bytes()

    def test_custom_name(self, create_test_dxf, rectangle_coords):
        path = create_test_dxf([rectangle_coords(10, 10)])
        assert load_part(BytesIO(path.read_bytes()), name="washer").name == "washer"

    def test_failure_raises(self, create_test_dxf):
        with pytest.raises(ParseFailure):
            load_part(create_test_dxf([]))


def _single_item_sheet(part, rotation=0, mirrored=False):
    width, height = (part.height, part.width) if rotation == 90 else (part.width, part.height)
    item = PlacedItem(part, 30, 40, width, height, rotation, mirrored)
    return Sheet(0, 300, 200, FreeRectanglePool(), [item])


def _part_bbox(doc, layer):
    _, entities, _ = read_dxf(_to_bytes(doc))
    return compute_bounding_box([e for e in entities if e.layer == layer])


def _to_bytes(doc):
    stream = StringIO()
    doc.write(stream)
    return stream.getvalue().encode("utf-8")


class TestBuildSheetDocument:
    def test_header_and_boundary(self, create_test_dxf, rectangle_coords):
        part = load_part(create_test_dxf([rectangle_coords(100, 50)]))
        doc = build_sheet_document(_single_item_sheet(part))

        assert doc.header["$INSUNITS"] == 4
        boundary = [
            e for e in doc.modelspace() if e.dxf.layer == SHEET_BOUNDARY_LAYER
        ]
        assert len(boundary) == 1
        points = list(boundary[0].get_points("xy"))
        assert max(x for x, _ in points) == 300
        assert max(y for _, y in points) == 200

    @pytest.mark.parametrize("rotation, mirrored", [(0, False), (90, False), (0, True), (90, True)])
    def test_part_lands_on_its_placement(self, create_test_dxf, rectangle_coords, rotation, mirrored):
        part = load_part(create_test_dxf([rectangle_coords(100, 50, 7, 9)]), name="plate")
        doc = build_sheet_document(_single_item_sheet(part, rotation, mirrored))

        bbox = _part_bbox(doc, layer_name_for(part))
        expected = (50, 100) if rotation == 90 else (100, 50)
        assert bbox.min_x == pytest.approx(30)
        assert bbox.min_y == pytest.approx(40)
        assert (bbox.width, bbox.height) == pytest.approx(expected)

    def test_source_unit_is_kept(self, create_test_dxf, rectangle_coords):
        part = load_part(create_test_dxf([rectangle_coords(2, 1)], units=1), name="imperial")
        sheet = _single_item_sheet(part)
        assert sheet_output_unit(sheet) == Unit.INCHES

        doc = build_sheet_document(sheet)
        assert doc.header["$INSUNITS"] == 1
        bbox = _part_bbox(doc, "imperial")
        assert bbox.min_x == pytest.approx(30 / 25.4, abs=1e-4)
        assert bbox.width == pytest.approx(2, abs=1e-4)

    def test_mixed_units_fall_back_to_millimeters(self, create_test_dxf, rectangle_coords):
        inch_part = load_part(create_test_dxf([rectangle_coords(2, 1)], units=1))
        mm_part = load_part(create_test_dxf([rectangle_coords(20, 10)], units=4))
        sheet = Sheet(
            0,
            300,
            300,
            FreeRectanglePool(),
            [PlacedItem(inch_part, 0, 0, 51, 26), PlacedItem(mm_part, 100, 0, 20, 10)],
        )
        assert sheet_output_unit(sheet) == Unit.MILLIMETERS

    def test_layer_names_are_sanitized(self):
        assert layer_name_for(Part.from_dimensions("a/b:c", 1, 1)) == "a_b_c"


class TestExport:
    @pytest.fixture
    def result(self, create_test_dxf, rectangle_coords):
        part = load_part(create_test_dxf([rectangle_coords(100, 50)]), name="rect", quantity=5)
        config = PackingConfig(sheet_width=220, sheet_height=120, edge_gap=5, part_spacing=5)
        return bin_packing([part], config)

    def test_generate_dxf_for_sheet(self, result):
        text = generate_dxf_for_sheet(result, 0)
        assert "SECTION" in text[:50]

        header, entities, _ = read_dxf(text.encode("utf-8"))
        assert header["$INSUNITS"] == 4
        assert len(entities) == len(result.sheets[0].items)

    def test_generate_missing_sheet(self, result):
        assert generate_dxf_for_sheet(result, 99) is None
        assert generate_dxf_for_sheet(result, -1) is None

    def test_save_dxf_layout(self, result, tmp_path):
        path = save_dxf_layout(result.sheets[0], tmp_path / "one.dxf")
        assert path.exists()
        _, entities, _ = read_dxf(path)
        assert len(entities) == len(result.sheets[0].items)

    def test_save_all_sheets(self, result, tmp_path):
        paths = save_all_sheets(result, tmp_path / "out")
        assert [p.name for p in paths] == [f"sheet_{i + 1}.dxf" for i in range(result.total_sheets)]
        assert all(p.exists() for p in paths)
