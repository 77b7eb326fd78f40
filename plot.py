import hashlib
import math
from io import BytesIO

import matplotlib

matplotlib.use("Agg")

import numpy as np
from matplotlib import pyplot as plt
from matplotlib.ticker import MultipleLocator

from entities import Arc, Circle, Ellipse, Entity, Line, Point, Polyline, Spline, Text
from geometry_utils import placement_offset, transform_entities
from part import PackingResult, Part, Sheet

CURVE_SEGMENTS = 64


def get_color_for_file(filename: str) -> tuple[float, float, float]:
    """Generate a consistent color for a given filename."""
    if isinstance(filename, (int, float)):
        filename = str(filename)
    elif filename is None:
        filename = "unknown"

    hash_hex = hashlib.md5(str(filename).encode()).hexdigest()

    # Convert first 6 characters of hash to RGB
    r = int(hash_hex[0:2], 16) / 255.0
    g = int(hash_hex[2:4], 16) / 255.0
    b = int(hash_hex[4:6], 16) / 255.0

    # Ensure colors are not too dark or too light
    r = max(0.2, min(0.9, r))
    g = max(0.2, min(0.9, g))
    b = max(0.2, min(0.9, b))

    return (r, g, b)


def _bulge_points(start, end, bulge: float) -> np.ndarray:
    """Points along the arc segment between two polyline vertices."""
    chord = math.hypot(end[0] - start[0], end[1] - start[1])
    if not bulge or chord == 0:
        return np.array([start[:2], end[:2]])
    sweep = 4 * math.atan(bulge)
    radius = chord / (2 * math.sin(sweep / 2))
    mid_x, mid_y = (start[0] + end[0]) / 2, (start[1] + end[1]) / 2
    # Distance from chord midpoint to the center, signed by sweep direction
    offset = radius * math.cos(sweep / 2)
    nx, ny = -(end[1] - start[1]) / chord, (end[0] - start[0]) / chord
    cx, cy = mid_x + nx * offset, mid_y + ny * offset
    start_angle = math.atan2(start[1] - cy, start[0] - cx)
    angles = np.linspace(start_angle, start_angle + sweep, CURVE_SEGMENTS // 4)
    r = abs(radius)
    return np.column_stack((cx + r * np.cos(angles), cy + r * np.sin(angles)))


def entity_outline(entity: Entity) -> np.ndarray | None:
    """Sampled (N, 2) outline of an entity, None for entities drawn as markers or text."""
    if isinstance(entity, Line):
        return np.array([entity.start[:2], entity.end[:2]])

    if isinstance(entity, Circle):
        angles = np.linspace(0, 2 * np.pi, CURVE_SEGMENTS)
        return np.column_stack(
            (
                entity.center.x + entity.radius * np.cos(angles),
                entity.center.y + entity.radius * np.sin(angles),
            )
        )

    if isinstance(entity, Arc):
        start, end = entity.start_angle, entity.end_angle
        if end <= start:
            end += 360
        angles = np.radians(np.linspace(start, end, CURVE_SEGMENTS))
        return np.column_stack(
            (
                entity.center.x + entity.radius * np.cos(angles),
                entity.center.y + entity.radius * np.sin(angles),
            )
        )

    if isinstance(entity, Polyline):
        vertices = list(entity.vertices)
        if entity.closed and len(vertices) > 1:
            vertices.append(vertices[0])
        bulges = list(entity.bulges) or [0.0] * len(entity.vertices)
        segments = [
            _bulge_points(vertices[i], vertices[i + 1], bulges[i % len(bulges)])
            for i in range(len(vertices) - 1)
        ]
        if not segments:
            return np.array([vertices[0][:2]])
        return np.vstack(segments)

    if isinstance(entity, Spline):
        # Control polygon is close enough for a preview
        return np.array([p[:2] for p in entity.defining_points])

    if isinstance(entity, Ellipse):
        start, end = entity.start_param, entity.end_param
        if end <= start:
            end += 2 * np.pi
        params = np.linspace(start, end, CURVE_SEGMENTS)
        major = np.array(entity.major_axis[:2])
        minor = np.array([-major[1], major[0]]) * entity.ratio
        center = np.array(entity.center[:2])
        return center + np.outer(np.cos(params), major) + np.outer(np.sin(params), minor)

    return None


def _draw_entities(ax, entities: list[Entity], color, linewidth: float = 1.0) -> None:
    for entity in entities:
        outline = entity_outline(entity)
        if outline is not None:
            ax.plot(outline[:, 0], outline[:, 1], color=color, linewidth=linewidth)
        elif isinstance(entity, Point):
            ax.plot(entity.location.x, entity.location.y, ".", color=color, markersize=3)
        elif isinstance(entity, Text) and entity.text:
            ax.text(
                entity.insert.x,
                entity.insert.y,
                entity.text,
                fontsize=6,
                rotation=entity.rotation,
                color=color,
            )


def _to_png(fig) -> BytesIO:
    fig.tight_layout()
    buf = BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight", dpi=150)
    plt.close(fig)
    buf.seek(0)
    return buf


def plot_part(part: Part) -> BytesIO:
    """Plot a single part with its bounding box."""
    fig, ax = plt.subplots(figsize=(8, 6))
    color = get_color_for_file(part.name)

    _draw_entities(ax, part.entities, color, linewidth=1.5)

    bbox = part.bbox
    ax.add_patch(
        plt.Rectangle(
            (bbox.min_x, bbox.min_y),
            bbox.width,
            bbox.height,
            fill=False,
            edgecolor="gray",
            linestyle="--",
            linewidth=1,
        )
    )

    padding = 0.1 * max(bbox.width, bbox.height, 1.0)
    ax.set_xlim(bbox.min_x - padding, bbox.max_x + padding)
    ax.set_ylim(bbox.min_y - padding, bbox.max_y + padding)
    ax.set_aspect("equal")

    ax.set_title(f"{part.name}\n{part.width} × {part.height} mm, quantity {part.quantity}")
    ax.set_xlabel("X (mm)")
    ax.set_ylabel("Y (mm)")
    ax.grid(True, alpha=0.3)
    return _to_png(fig)


def plot_input_parts(parts: list[Part]) -> dict[str, BytesIO]:
    """Create individual plots for each part."""
    return {part.name: plot_part(part) for part in parts}


def plot_layout(sheet: Sheet, edge_gap: float = 0.0, show_free: bool = False) -> BytesIO:
    """Plot one sheet: boundary, usable area, placed parts with their labels."""
    fig, ax = plt.subplots(figsize=(10, 8))

    ax.set_xlim(0, sheet.width)
    ax.set_ylim(0, sheet.height)
    ax.set_aspect("equal")

    major = max(10, round(max(sheet.width, sheet.height) / 15, -1))
    ax.xaxis.set_major_locator(MultipleLocator(major))
    ax.yaxis.set_major_locator(MultipleLocator(major))
    ax.xaxis.set_minor_locator(MultipleLocator(major / 4))
    ax.yaxis.set_minor_locator(MultipleLocator(major / 4))

    ax.add_patch(
        plt.Rectangle(
            (0, 0), sheet.width, sheet.height, fill=False, edgecolor="black", linewidth=2
        )
    )
    if edge_gap:
        ax.add_patch(
            plt.Rectangle(
                (edge_gap, edge_gap),
                sheet.width - 2 * edge_gap,
                sheet.height - 2 * edge_gap,
                fill=False,
                edgecolor="gray",
                linewidth=1,
                linestyle="--",
            )
        )

    if show_free:
        for rect in sheet.free_rectangles:
            ax.add_patch(
                plt.Rectangle(
                    (rect.x, rect.y),
                    rect.width,
                    rect.height,
                    fill=True,
                    facecolor="lightgray",
                    alpha=0.3,
                    edgecolor="lightgray",
                    hatch="//",
                )
            )

    labelled = set()
    for item in sheet.items:
        color = get_color_for_file(item.part.name)
        ax.add_patch(
            plt.Rectangle(
                (item.x, item.y),
                item.width,
                item.height,
                fill=True,
                facecolor=color,
                alpha=0.25,
                edgecolor=color,
                linewidth=1,
                label=item.part.name if item.part.name not in labelled else None,
            )
        )
        labelled.add(item.part.name)

        offset_x, offset_y = placement_offset(
            item.part.bbox, item.x, item.y, item.rotation, item.mirrored
        )
        placed = transform_entities(
            item.part.entities, offset_x, offset_y, item.rotation, item.mirrored
        )
        _draw_entities(ax, placed, color)

        label = item.part.name
        if item.rotation:
            label += f" ({item.rotation}°)"
        if item.mirrored:
            label += " M"
        ax.annotate(
            label,
            (item.x + item.width / 2, item.y + item.height / 2),
            ha="center",
            va="center",
            fontsize=8,
            weight="bold",
        )

    if sheet.items:
        ax.legend(bbox_to_anchor=(1.05, 1), loc="upper left")
    ax.set_title(
        f"Sheet {sheet.index + 1}: {sheet.width:g} × {sheet.height:g} mm, "
        f"{len(sheet.items)} parts, {sheet.utilization:.1%} used"
    )
    ax.set_xlabel("Width (mm)")
    ax.set_ylabel("Height (mm)")

    ax.grid(True, which="major", alpha=0.4, linewidth=0.8)
    ax.grid(True, which="minor", alpha=0.2, linestyle=":")
    return _to_png(fig)


def plot_result(result: PackingResult, show_free: bool = False) -> list[BytesIO]:
    """One PNG per sheet of a packing result."""
    return [
        plot_layout(sheet, result.config.edge_gap, show_free=show_free) for sheet in result.sheets
    ]
