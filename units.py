"""Length units: conversion factors and detection from DXF headers or raw sizes."""

import logging
from enum import IntEnum
from typing import Any

logger = logging.getLogger(__name__)


class Unit(IntEnum):
    # Fixed external codes, do not renumber
    UNSPECIFIED = 0
    INCHES = 1
    FEET = 2
    MILLIMETERS = 3
    CENTIMETERS = 4
    METERS = 5


TO_MILLIMETERS = {
    Unit.INCHES: 25.4,
    Unit.FEET: 304.8,
    Unit.MILLIMETERS: 1.0,
    Unit.CENTIMETERS: 10.0,
    Unit.METERS: 1000.0,
    Unit.UNSPECIFIED: 1.0,
}

# DXF $INSUNITS header codes
_INSUNITS_TO_UNIT = {
    1: Unit.INCHES,
    2: Unit.FEET,
    4: Unit.MILLIMETERS,
    5: Unit.CENTIMETERS,
    6: Unit.METERS,
}
_UNIT_TO_INSUNITS = {unit: code for code, unit in _INSUNITS_TO_UNIT.items()}

_UNIT_NAMES = {
    Unit.INCHES: "inches",
    Unit.FEET: "feet",
    Unit.MILLIMETERS: "millimeters",
    Unit.CENTIMETERS: "centimeters",
    Unit.METERS: "meters",
}


def _as_unit(value: Any) -> Unit:
    try:
        return Unit(int(value))
    except (TypeError, ValueError):
        return Unit.UNSPECIFIED


def scale_factor(source_unit: Unit | int, target_unit: Unit | int = Unit.MILLIMETERS) -> float:
    """Factor that converts lengths in source_unit to target_unit."""
    source = _as_unit(source_unit)
    target = _as_unit(target_unit)
    return TO_MILLIMETERS[source] / TO_MILLIMETERS[target]


def unit_from_insunits(code: Any) -> Unit:
    try:
        return _INSUNITS_TO_UNIT.get(int(code), Unit.UNSPECIFIED)
    except (TypeError, ValueError):
        return Unit.UNSPECIFIED


def insunits_from_unit(unit: Unit | int) -> int:
    """DXF $INSUNITS code for a unit (0 = unitless)."""
    return _UNIT_TO_INSUNITS.get(_as_unit(unit), 0)


def unit_name(unit: Unit | int) -> str:
    return _UNIT_NAMES.get(_as_unit(unit), "unknown")


def detect_from_header(header: dict | None) -> Unit:
    """Read units from $INSUNITS, falling back to $MEASUREMENT (0 = imperial)."""
    header = header or {}
    if header.get("$INSUNITS") is not None:
        return unit_from_insunits(header["$INSUNITS"])
    if header.get("$MEASUREMENT") is not None:
        return Unit.INCHES if header["$MEASUREMENT"] == 0 else Unit.MILLIMETERS
    return Unit.UNSPECIFIED


def detect_from_dimensions(width: float, height: float) -> Unit:
    """Guess the unit from the raw drawing size.

    Only meaningful when the header carries no unit information.
    """
    max_dim = max(abs(width), abs(height))
    if max_dim < 1:
        unit = Unit.INCHES
    elif max_dim > 1000:
        unit = Unit.METERS
    elif max_dim < 10:
        unit = Unit.CENTIMETERS
    else:
        unit = Unit.MILLIMETERS
    logger.debug(f"Unit guessed from size {width:g} x {height:g}: {unit_name(unit)}")
    return unit
