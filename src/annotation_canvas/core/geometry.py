"""Geometry helpers for rectangle topology, hit testing and selection."""

from __future__ import annotations

import math
from typing import Dict, List, Sequence, Tuple

from PyQt6.QtCore import QPointF, QRectF

# left, top, right, bottom
Bounds = Tuple[float, float, float, float]

# Corner roles in clockwise order on screen (y grows downwards)
TOP_LEFT = "tl"
TOP_RIGHT = "tr"
BOTTOM_RIGHT = "br"
BOTTOM_LEFT = "bl"
ROLE_ORDER = (TOP_LEFT, TOP_RIGHT, BOTTOM_RIGHT, BOTTOM_LEFT)

DIAGONAL = {
    TOP_LEFT: BOTTOM_RIGHT,
    TOP_RIGHT: BOTTOM_LEFT,
    BOTTOM_RIGHT: TOP_LEFT,
    BOTTOM_LEFT: TOP_RIGHT,
}


def normalize_rect(start: QPointF, end: QPointF) -> List[QPointF]:
    """
    Build the four corners of the axis-aligned rectangle spanned by two points.

    The result is always ordered top-left, top-right, bottom-right,
    bottom-left, whatever direction the rectangle was drawn in.
    """
    left, right = min(start.x(), end.x()), max(start.x(), end.x())
    top, bottom = min(start.y(), end.y()), max(start.y(), end.y())
    return [
        QPointF(left, top),
        QPointF(right, top),
        QPointF(right, bottom),
        QPointF(left, bottom),
    ]


def bounding_rect(points: Sequence[QPointF]) -> QRectF:
    """Axis-aligned bounding box of a point sequence (empty rect for no points)."""
    if not points:
        return QRectF()
    xs = [p.x() for p in points]
    ys = [p.y() for p in points]
    return QRectF(QPointF(min(xs), min(ys)), QPointF(max(xs), max(ys)))


def point_bounds(points: Sequence[QPointF]) -> Bounds:
    """
    Exact extent of a non-empty point sequence.

    ``QRectF`` stores origin and size, so its ``right()``/``bottom()`` can
    differ from the largest coordinate by an ulp; comparisons go through
    these raw values instead.
    """
    xs = [p.x() for p in points]
    ys = [p.y() for p in points]
    return min(xs), min(ys), max(xs), max(ys)


def rects_intersect(a: Bounds, b: Bounds) -> bool:
    """
    Check whether two axis-aligned extents overlap.

    Zero-sized extents are accepted and touching edges count as overlap.
    """
    a_left, a_top, a_right, a_bottom = a
    b_left, b_top, b_right, b_bottom = b
    return (
        a_left <= b_right and b_left <= a_right and
        a_top <= b_bottom and b_top <= a_bottom
    )


def point_in_polygon(points: Sequence[QPointF], pos: QPointF) -> bool:
    """Even-odd ray casting test of an image-space point against a ring."""
    inside = False
    count = len(points)
    j = count - 1
    for i in range(count):
        xi, yi = points[i].x(), points[i].y()
        xj, yj = points[j].x(), points[j].y()
        if (yi > pos.y()) != (yj > pos.y()):
            crossing = (xj - xi) * (pos.y() - yi) / (yj - yi) + xi
            if pos.x() < crossing:
                inside = not inside
        j = i
    return inside


def distance(a: QPointF, b: QPointF) -> float:
    """Euclidean distance between two points."""
    return math.hypot(a.x() - b.x(), a.y() - b.y())


def signed_area(points: Sequence[QPointF]) -> float:
    """
    Twice the signed area of a ring (shoelace formula).

    Positive for rings running clockwise on screen.
    """
    total = 0.0
    count = len(points)
    for i in range(count):
        p, q = points[i], points[(i + 1) % count]
        total += p.x() * q.y() - q.x() * p.y()
    return total


def corner_role(point: QPointF, opposite: QPointF) -> str:
    """Role of a corner given the position of its diagonal counterpart."""
    horizontal = "l" if point.x() < opposite.x() else "r"
    vertical = "t" if point.y() < opposite.y() else "b"
    return vertical + horizontal


def _mirror(role: str, flip_horizontal: bool, flip_vertical: bool) -> str:
    vertical, horizontal = role[0], role[1]
    if flip_vertical:
        vertical = "b" if vertical == "t" else "t"
    if flip_horizontal:
        horizontal = "r" if horizontal == "l" else "l"
    return vertical + horizontal


def _current_roles(points: Sequence[QPointF], index: int) -> Dict[int, str]:
    """
    Work out which role every index of a rectangle plays right now.

    Roles follow the ring's winding starting from the role of ``index``.
    Degenerate rectangles fall back to the canonical ordering.
    """
    opposite = points[(index + 2) % 4]
    point = points[index]
    area = signed_area(points)
    degenerate = area == 0 or point.x() == opposite.x() or point.y() == opposite.y()

    if degenerate:
        return {i: ROLE_ORDER[i] for i in range(4)}

    start = ROLE_ORDER.index(corner_role(point, opposite))
    step = 1 if area > 0 else -1
    return {(index + k) % 4: ROLE_ORDER[(start + step * k) % 4] for k in range(4)}


def reassign_rect_corners(points: Sequence[QPointF], index: int, pos: QPointF) -> List[QPointF]:
    """
    Move one corner of a rectangle while keeping its four points consistent.

    The corner diagonally opposite ``index`` stays fixed. The dragged
    corner's new role (top-left, top-right, ...) is derived from which side
    of the fixed corner ``pos`` falls on, the fixed corner takes the
    diagonal role, and the two untouched corners are mirrored along the
    same axes the dragged corner crossed. Dragging a corner past the
    other axis therefore flips roles instead of folding the quad over
    itself.

    Args:
        points: The rectangle's four corners
        index: Index of the dragged corner
        pos: New image-space position of the dragged corner

    Returns:
        New list of four corners, indexed like the input
    """
    if len(points) != 4:
        raise ValueError("Rectangle must have exactly 4 points")

    opposite_index = (index + 2) % 4
    opposite = points[opposite_index]
    roles = _current_roles(points, index)

    left, right = min(pos.x(), opposite.x()), max(pos.x(), opposite.x())
    top, bottom = min(pos.y(), opposite.y()), max(pos.y(), opposite.y())
    corners = {
        TOP_LEFT: QPointF(left, top),
        TOP_RIGHT: QPointF(right, top),
        BOTTOM_RIGHT: QPointF(right, bottom),
        BOTTOM_LEFT: QPointF(left, bottom),
    }

    old_role = roles[index]
    new_role = corner_role(pos, opposite)
    flip_vertical = old_role[0] != new_role[0]
    flip_horizontal = old_role[1] != new_role[1]

    new_roles = {
        index: new_role,
        opposite_index: DIAGONAL[new_role],
    }
    for other in ((index + 1) % 4, (index + 3) % 4):
        new_roles[other] = _mirror(roles[other], flip_horizontal, flip_vertical)

    return [QPointF(corners[new_roles[i]]) for i in range(4)]


def is_valid_rect(points: Sequence[QPointF]) -> bool:
    """
    Check that four points form an axis-aligned, non-self-intersecting rectangle.

    Adjacent corners must share exactly one coordinate and diagonal
    corners none, unless the rectangle is degenerate.
    """
    if len(points) != 4:
        return False
    left, top, right, bottom = point_bounds(points)
    if left == right or top == bottom:
        return True
    for i in range(4):
        p, q = points[i], points[(i + 1) % 4]
        shares_x = p.x() == q.x()
        shares_y = p.y() == q.y()
        if shares_x == shares_y:
            return False
        diagonal = points[(i + 2) % 4]
        if p.x() == diagonal.x() or p.y() == diagonal.y():
            return False
    corners = {(left, top), (right, top), (right, bottom), (left, bottom)}
    return {(p.x(), p.y()) for p in points} == corners
