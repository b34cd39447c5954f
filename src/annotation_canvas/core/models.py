"""Data models for annotation canvas shapes, categories and masks."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import numpy as np
from PyQt6.QtCore import QPointF, QRectF
from PyQt6.QtGui import QColor

from .geometry import bounding_rect, point_in_polygon

logger = logging.getLogger(__name__)

DEFAULT_MASK_COLOR = (0, 200, 0)
DEFAULT_MASK_OPACITY = 0.4


class ShapeKind(str, Enum):
    """Kind of annotation shape."""

    RECT = "rect"
    POLYGON = "polygon"


def new_shape_id() -> str:
    """Generate a fresh opaque shape id."""
    return uuid.uuid4().hex


@dataclass
class Shape:
    """
    Data model for a single text-detection annotation.

    Rectangles always carry exactly four points; polygons carry three or
    more points forming an open ring. All points are in image space.
    """

    kind: ShapeKind
    points: List[QPointF]
    id: str = ""
    text: str = ""
    category: Optional[str] = None

    def __post_init__(self) -> None:
        """Coerce the kind and copy points into independent QPointF values."""
        self.kind = ShapeKind(self.kind)
        self.points = [QPointF(p) for p in self.points]

    def copy(self) -> Shape:
        """Return a deep, independent copy of this shape."""
        return Shape(
            kind=self.kind,
            points=[QPointF(p) for p in self.points],
            id=self.id,
            text=self.text,
            category=self.category,
        )

    @property
    def is_rect(self) -> bool:
        return self.kind == ShapeKind.RECT

    def move_by(self, delta: QPointF) -> None:
        """
        Translate every point by the same offset.

        Args:
            delta: Offset in image space
        """
        self.points = [QPointF(p.x() + delta.x(), p.y() + delta.y()) for p in self.points]

    def bounding_rect(self) -> QRectF:
        """Axis-aligned bounding box in image space."""
        return bounding_rect(self.points)

    def contains(self, pos: QPointF) -> bool:
        """Check if an image-space point lies inside the shape outline."""
        return point_in_polygon(self.points, pos)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the plain-data form exchanged with backends."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "points": [{"x": p.x(), "y": p.y()} for p in self.points],
            "text": self.text,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Shape:
        """
        Create a shape from plain data.

        Accepts either ``type`` or ``shape_type`` for the kind and coerces
        numeric ids to strings.
        """
        raw_id = data.get("id")
        return cls(
            kind=ShapeKind(data.get("type") or data.get("shape_type") or ShapeKind.RECT.value),
            points=[QPointF(float(p["x"]), float(p["y"])) for p in data.get("points") or []],
            id=raw_id if isinstance(raw_id, str) else str(raw_id if raw_id is not None else ""),
            text=data.get("text") or "",
            category=data.get("category"),
        )


def clone_shapes(shapes: List[Shape]) -> List[Shape]:
    """Deep copy a shape collection."""
    return [shape.copy() for shape in shapes]


def parse_color(color: Optional[str]) -> tuple[QColor, float]:
    """
    Parse a category color string into a color and an opacity.

    Supports ``rgba(r, g, b, a)`` strings, where ``a`` becomes the opacity,
    and ``#rrggbb`` hex strings, which get the default mask opacity.

    Args:
        color: Color string, or None for the default green tint

    Returns:
        Tuple of (QColor, opacity in [0, 1])
    """
    if not color:
        return QColor(*DEFAULT_MASK_COLOR), DEFAULT_MASK_OPACITY

    value = color.strip()
    if value.startswith("rgb"):
        inner = value[value.index("(") + 1:value.rindex(")")]
        parts = [part.strip() for part in inner.split(",")]
        try:
            r, g, b = (int(float(part)) for part in parts[:3])
            a = float(parts[3]) if len(parts) > 3 else 1.0
        except (ValueError, IndexError):
            logger.warning(f"Unparseable color '{color}', using default tint")
            return QColor(*DEFAULT_MASK_COLOR), DEFAULT_MASK_OPACITY
        return QColor(r, g, b), a

    qcolor = QColor(value if value.startswith("#") else f"#{value}")
    if not qcolor.isValid():
        logger.warning(f"Invalid color '{color}', using default tint")
        return QColor(*DEFAULT_MASK_COLOR), DEFAULT_MASK_OPACITY
    return qcolor, DEFAULT_MASK_OPACITY


@dataclass
class Category:
    """
    An annotation category.

    The ``name`` is the join key used by shapes and masks.
    """

    id: int
    name: str
    color: QColor = field(default_factory=lambda: QColor(*DEFAULT_MASK_COLOR))
    opacity: float = DEFAULT_MASK_OPACITY

    @classmethod
    def from_color_string(cls, id: int, name: str, color: Optional[str]) -> Category:
        """Create a category from a CSS-like color string."""
        qcolor, opacity = parse_color(color)
        return cls(id=id, name=name, color=qcolor, opacity=opacity)


@dataclass
class PromptPoint:
    """A segmentation prompt point; include points add, exclude points carve."""

    x: float
    y: float
    include: bool = True


RasterHandle = Union[str, np.ndarray, None]


@dataclass
class SegmentationMask:
    """
    Raster mask for one category of one image.

    ``raster`` is either a path/URL-like handle to a single-channel image
    or an already decoded ``uint8`` array; pixel values above zero are in
    the mask.
    """

    category: str
    points: List[PromptPoint] = field(default_factory=list)
    raster: RasterHandle = None


@dataclass
class MaskResult:
    """Answer of a mask generation request."""

    raster: RasterHandle
    points: List[PromptPoint] = field(default_factory=list)


@dataclass
class MaskLayer:
    """
    One category mask ready for compositing.

    ``raster`` is a decoded single-channel ``uint8`` array (H, W), or an
    RGB(A) array whose red channel is used. ``None`` means the raster
    could not be loaded.
    """

    raster: Optional[np.ndarray]
    color: QColor
    opacity: float
    category: str = ""
