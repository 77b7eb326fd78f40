"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import ezdxf
import pytest

# Add the parent directory to sys.path so we can import the project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import PackingConfig  # noqa: E402
from part import Part  # noqa: E402


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def create_test_dxf(tmp_path):
    """Fixture that writes a DXF file with closed outlines for testing.

    units is the $INSUNITS header code (4 = millimeters, 1 = inches, 0 = unitless).
    """
    counter = {"n": 0}

    def _create_dxf(polygons_coords, units=4, name=None):
        counter["n"] += 1
        doc = ezdxf.new("R2010")
        doc.header["$INSUNITS"] = units
        msp = doc.modelspace()

        for coords in polygons_coords:
            msp.add_lwpolyline(coords, close=True)

        path = tmp_path / (name or f"part_{counter['n']}.dxf")
        doc.saveas(path)
        return path

    return _create_dxf


@pytest.fixture
def rectangle_coords():
    def _rectangle(width, height, x=0.0, y=0.0):
        return [(x, y), (x + width, y), (x + width, y + height), (x, y + height)]

    return _rectangle


@pytest.fixture
def small_config():
    return PackingConfig(sheet_width=300, sheet_height=300, edge_gap=0, part_spacing=0)


@pytest.fixture
def mixed_parts():
    return [
        Part.from_dimensions("panel", 120, 80, quantity=3),
        Part.from_dimensions("strip", 200, 30, quantity=2),
        Part.from_dimensions("square", 50, 50, quantity=6),
    ]
