"""Tests for entities module."""

import pytest

from entities import (
    Arc,
    Circle,
    Ellipse,
    Line,
    Point,
    Polyline,
    Spline,
    Text,
    Vertex,
    entities_from_records,
    entity_from_record,
    entity_type,
)
from errors import EntityRenderWarning


class TestEntityFromRecord:
    def test_line_from_vertices(self):
        line = entity_from_record(
            {"type": "LINE", "vertices": [{"x": 0, "y": 0}, {"x": 10, "y": 5, "z": 1}]}
        )
        assert isinstance(line, Line)
        assert line.start == Vertex(0, 0, 0)
        assert line.end == Vertex(10, 5, 1)

    def test_circle_and_arc(self):
        circle = entity_from_record({"type": "CIRCLE", "center": {"x": 5, "y": 5}, "radius": 2})
        arc = entity_from_record(
            {
                "type": "ARC",
                "center": {"x": 0, "y": 0},
                "radius": 3,
                "startAngle": 0,
                "endAngle": 90,
                "layer": "CUT",
            }
        )
        assert circle == Circle(Vertex(5, 5), 2.0)
        assert isinstance(arc, Arc)
        assert (arc.start_angle, arc.end_angle) == (0, 90)
        assert arc.layer == "CUT"

    def test_closed_polyline_with_bulge(self):
        polyline = entity_from_record(
            {
                "type": "LWPOLYLINE",
                "shape": True,
                "vertices": [{"x": 0, "y": 0, "bulge": 0.5}, {"x": 10, "y": 0}, {"x": 10, "y": 10}],
            }
        )
        assert isinstance(polyline, Polyline)
        assert polyline.closed
        assert polyline.kind == "LWPOLYLINE"
        assert polyline.bulges == (0.5, 0.0, 0.0)

    def test_polyline_without_bulges_has_empty_tuple(self):
        polyline = entity_from_record(
            {"type": "POLYLINE", "vertices": [{"x": 0, "y": 0}, {"x": 1, "y": 1}]}
        )
        assert polyline.bulges == ()
        assert entity_type(polyline) == "POLYLINE"

    def test_spline_and_ellipse(self):
        spline = entity_from_record(
            {
                "type": "SPLINE",
                "controlPoints": [{"x": 0, "y": 0}, {"x": 1, "y": 2}, {"x": 3, "y": 0}],
                "degreeOfSplineCurve": 2,
            }
        )
        ellipse = entity_from_record(
            {
                "type": "ELLIPSE",
                "center": {"x": 0, "y": 0},
                "majorAxisEndPoint": {"x": 10, "y": 0},
                "axisRatio": 0.5,
            }
        )
        assert isinstance(spline, Spline)
        assert spline.degree == 2
        assert len(spline.defining_points) == 3
        assert isinstance(ellipse, Ellipse)
        assert ellipse.ratio == 0.5

    def test_point_and_text(self):
        point = entity_from_record({"type": "POINT", "position": {"x": 1, "y": 2}})
        text = entity_from_record(
            {"type": "MTEXT", "position": {"x": 1, "y": 1}, "text": "A-12", "height": 5}
        )
        assert point == Point(Vertex(1, 2))
        assert isinstance(text, Text)
        assert entity_type(text) == "MTEXT"
        assert text.height == 5

    def test_unsupported_type(self):
        with pytest.raises(EntityRenderWarning) as info:
            entity_from_record({"type": "HATCH"})
        assert info.value.entity_type == "HATCH"

    @pytest.mark.parametrize(
        "record",
        [
            {"type": "CIRCLE", "center": {"x": 0, "y": 0}},
            {"type": "CIRCLE", "radius": 5},
            {"type": "LINE", "vertices": [{"x": 0, "y": 0}]},
            {"type": "LWPOLYLINE", "vertices": []},
            {"type": "SPLINE"},
            {"type": "ARC", "center": {"x": "a", "y": 0}, "radius": 1},
        ],
    )
    def test_malformed_records(self, record):
        with pytest.raises(EntityRenderWarning):
            entity_from_record(record)


class TestEntitiesFromRecords:
    def test_skips_bad_records(self):
        entities, skipped = entities_from_records(
            [
                {"type": "CIRCLE", "center": {"x": 0, "y": 0}, "radius": 1},
                {"type": "HATCH"},
                {"type": "HATCH"},
                {"type": "CIRCLE"},
            ]
        )
        assert len(entities) == 1
        assert skipped == {"HATCH": 2, "CIRCLE": 1}

    @pytest.mark.parametrize(
        "bad_record",
        [
            {
                "type": "LWPOLYLINE",
                "vertices": [{"x": 0, "y": 0, "bulge": "x"}, {"x": 10, "y": 0}],
            },
            {
                "type": "SPLINE",
                "controlPoints": [{"x": 0, "y": 0}, {"x": 1, "y": 2}, {"x": 3, "y": 0}],
                "knotValues": ["bad"],
            },
            {
                "type": "SPLINE",
                "controlPoints": [{"x": 0, "y": 0}, {"x": 1, "y": 2}],
                "knotValues": 7,
            },
        ],
    )
    def test_malformed_optional_field_skips_only_that_record(self, bad_record):
        line = {"type": "LINE", "vertices": [{"x": 0, "y": 0}, {"x": 5, "y": 5}]}
        entities, skipped = entities_from_records([line, bad_record])
        assert [type(e) for e in entities] == [Line]
        assert skipped == {bad_record["type"]: 1}

    def test_empty_input(self):
        assert entities_from_records(None) == ([], {})
