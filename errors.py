"""Error types raised by the layout pipeline."""


class LayoutError(Exception):
    """Base class for all layout errors."""

    kind = "LayoutError"


class ParseFailure(LayoutError):
    """DXF input is unreadable, empty or has no measurable geometry."""

    kind = "ParseFailure"


class InvalidSheetConfig(LayoutError):
    kind = "InvalidSheetConfig"


class UnplaceablePart(LayoutError):
    """A part does not fit an empty sheet in any allowed orientation."""

    kind = "UnplaceablePart"

    def __init__(self, part, usable_width: float, usable_height: float):
        self.part = part
        self.usable_width = usable_width
        self.usable_height = usable_height
        super().__init__(
            f"Part '{part.name}' ({part.width:g} x {part.height:g} mm) exceeds sheet "
            f"capacity ({usable_width:g} x {usable_height:g} mm usable)"
        )


class EntityRenderWarning(LayoutError):
    """An entity cannot be converted or drawn. The entity is skipped."""

    kind = "EntityRenderWarning"

    def __init__(self, entity_type: str, reason: str):
        self.entity_type = entity_type
        self.reason = reason
        super().__init__(f"{entity_type}: {reason}")


class PackingInternalError(LayoutError):
    kind = "PackingInternalError"
