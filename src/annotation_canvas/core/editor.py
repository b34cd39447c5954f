"""Shape editor state machine: drafting, selection, dragging and resizing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Union

from PyQt6.QtCore import QObject, QPointF, QRectF, pyqtSignal

from .config import CanvasConfig
from .geometry import (
    distance, normalize_rect, point_bounds, reassign_rect_corners, rects_intersect
)
from .input import NO_MODIFIERS, InputModifiers, MouseButton
from .models import Shape, ShapeKind, new_shape_id
from .viewport import ViewportController

if TYPE_CHECKING:
    from .session import AnnotationSession

logger = logging.getLogger(__name__)


class Tool(str, Enum):
    """Active editing tool."""

    SELECT = "select"
    RECT = "rect"
    POLYGON = "polygon"


@dataclass
class Idle:
    pass


@dataclass
class DraftingRect:
    """A rectangle being drawn; ``dragged`` is set once the pointer moved while held."""

    start: QPointF
    current: QPointF
    dragged: bool = False


@dataclass
class DraftingPolygon:
    points: List[QPointF]
    cursor: QPointF


@dataclass
class DraggingShape:
    """Body drag of the selected shapes; ``last`` is in screen space."""

    shape_ids: List[str]
    last: QPointF
    before: List[Shape]
    moved: bool = False


@dataclass
class DraggingCorner:
    shape_id: str
    index: int
    before: List[Shape]
    moved: bool = False


@dataclass
class RubberBandSelecting:
    start: QPointF
    current: QPointF
    additive: bool = False
    base_selection: List[str] = field(default_factory=list)


EditorState = Union[Idle, DraftingRect, DraftingPolygon, DraggingShape, DraggingCorner, RubberBandSelecting]


class ShapeEditor(QObject):
    """
    Turns pointer and keyboard input into shape edits.

    All positions passed in are screen positions relative to the canvas
    container; they are converted to image space through the viewport.
    Mutations during a drag are applied locally right away, and a single
    commit goes to the session when the pointer is released.
    """

    state_changed = pyqtSignal()
    tool_changed = pyqtSignal(str)

    def __init__(
        self,
        viewport: ViewportController,
        session: AnnotationSession,
        config: Optional[CanvasConfig] = None
    ) -> None:
        """
        Initialize the editor.

        Args:
            viewport: Viewport providing the screen/image transform
            session: Session receiving the edits
            config: Canvas configuration
        """
        super().__init__()
        self.viewport = viewport
        self.session = session
        self.config = config or CanvasConfig()
        self.tool = Tool.SELECT
        self.state: EditorState = Idle()
        self._button_down = False

    # === Tool and state ===

    def set_tool(self, tool: Tool) -> None:
        """Switch the active tool, discarding any draft in progress."""
        tool = Tool(tool)
        self.cancel()
        if tool != self.tool:
            self.tool = tool
            logger.debug(f"Tool set to {tool.value}")
            self.tool_changed.emit(tool.value)

    def reset(self) -> None:
        """Return to the idle select tool (used when the image changes)."""
        self.state = Idle()
        self._button_down = False
        self.set_tool(Tool.SELECT)
        self.state_changed.emit()

    def _set_state(self, state: EditorState) -> None:
        self.state = state
        self.state_changed.emit()

    @property
    def is_drafting(self) -> bool:
        return isinstance(self.state, (DraftingRect, DraftingPolygon))

    @property
    def is_dragging(self) -> bool:
        return isinstance(self.state, (DraggingShape, DraggingCorner))

    # === Pointer input ===

    def press(
        self,
        pos: QPointF,
        button: MouseButton = MouseButton.LEFT,
        modifiers: InputModifiers = NO_MODIFIERS
    ) -> None:
        """Handle a pointer press at a screen position."""
        if button != MouseButton.LEFT:
            return
        self._button_down = True
        image_pos = self.viewport.screen_to_image(pos)

        if self.tool == Tool.RECT:
            self._press_rect(image_pos)
        elif self.tool == Tool.POLYGON:
            self._press_polygon(pos, image_pos)
        else:
            self._press_select(pos, image_pos, modifiers)

    def move(self, pos: QPointF) -> None:
        """Handle pointer motion at a screen position (button held or not)."""
        state = self.state
        image_pos = self.viewport.screen_to_image(pos)

        if isinstance(state, DraftingRect):
            if self._button_down and (image_pos.x() != state.start.x() or image_pos.y() != state.start.y()):
                state.dragged = True
            state.current = image_pos
        elif isinstance(state, DraftingPolygon):
            state.cursor = image_pos
        elif isinstance(state, DraggingShape):
            self._drag_shapes(state, pos)
        elif isinstance(state, DraggingCorner):
            self._drag_corner(state, image_pos)
        elif isinstance(state, RubberBandSelecting):
            state.current = image_pos
        else:
            return
        self.state_changed.emit()

    def release(self, pos: QPointF, button: MouseButton = MouseButton.LEFT) -> None:
        """Handle a pointer release at a screen position."""
        if button != MouseButton.LEFT:
            return
        self._button_down = False
        state = self.state

        if isinstance(state, DraftingRect):
            if state.dragged:
                self._finish_rect(self.viewport.screen_to_image(pos))
        elif isinstance(state, (DraggingShape, DraggingCorner)):
            self._set_state(Idle())
            if state.moved:
                ids = state.shape_ids if isinstance(state, DraggingShape) else [state.shape_id]
                self.session.commit_shapes(state.before, ids)
        elif isinstance(state, RubberBandSelecting):
            state.current = self.viewport.screen_to_image(pos)
            self._finish_rubber_band(state)

    def double_click(self, pos: QPointF) -> None:
        """Finish a polygon draft with at least three vertices."""
        state = self.state
        if isinstance(state, DraftingPolygon) and len(state.points) >= 3:
            self._finish_polygon(state.points)

    def leave(self) -> None:
        """Pointer left the canvas; drafts are discarded, drags are kept."""
        if self.is_drafting:
            self._set_state(Idle())

    def cancel(self) -> None:
        """Abort the current interaction, restoring shapes moved by a drag."""
        state = self.state
        if isinstance(state, (DraggingShape, DraggingCorner)) and state.moved:
            self.session.restore_local(state.before)
        if not isinstance(state, Idle):
            self._set_state(Idle())

    # === Keyboard input ===

    def key_press(self, key: str, modifiers: InputModifiers = NO_MODIFIERS) -> bool:
        """
        Handle a key by name.

        Returns:
            True if the key was consumed
        """
        if key == "Escape":
            self.cancel()
            return True
        if key in ("Delete", "Backspace"):
            if self.is_drafting or self.is_dragging:
                return False
            selected = self.session.selected_ids()
            if not selected:
                return False
            self.session.delete_shapes(selected)
            return True
        if key == "A" and modifiers.matches("ctrl"):
            self.select_all()
            return True
        return False

    def select_all(self) -> None:
        if self.tool == Tool.SELECT and isinstance(self.state, Idle):
            self.session.set_selection([shape.id for shape in self.session.shapes()])

    # === Previews ===

    def draft_points(self) -> List[QPointF]:
        """Image-space points of the shape being drafted, including the live cursor."""
        state = self.state
        if isinstance(state, DraftingRect):
            return normalize_rect(state.start, state.current)
        if isinstance(state, DraftingPolygon):
            return [QPointF(p) for p in state.points] + [QPointF(state.cursor)]
        return []

    def rubber_band_rect(self) -> Optional[QRectF]:
        """Image-space rubber band rectangle, or None when not band-selecting."""
        state = self.state
        if not isinstance(state, RubberBandSelecting):
            return None
        return QRectF(state.start, state.current).normalized()

    # === Drafting ===

    def _press_rect(self, image_pos: QPointF) -> None:
        state = self.state
        if isinstance(state, DraftingRect):
            self._finish_rect(image_pos)
        else:
            self._set_state(DraftingRect(start=image_pos, current=QPointF(image_pos)))

    def _finish_rect(self, end: QPointF) -> None:
        state = self.state
        assert isinstance(state, DraftingRect)
        self._set_state(Idle())

        points = normalize_rect(state.start, end)
        if points[0].x() == points[2].x() or points[0].y() == points[2].y():
            logger.debug("Discarding zero-sized rectangle")
            return

        self.session.add_shape(Shape(
            kind=ShapeKind.RECT,
            points=points,
            id=new_shape_id(),
            category=self.session.active_category,
        ))

    def _press_polygon(self, pos: QPointF, image_pos: QPointF) -> None:
        state = self.state
        if not isinstance(state, DraftingPolygon):
            self._set_state(DraftingPolygon(points=[image_pos], cursor=QPointF(image_pos)))
            return

        first = self.viewport.image_to_screen(state.points[0])
        if len(state.points) >= 3 and distance(first, pos) <= self.config.polygon_close_radius:
            self._finish_polygon(state.points)
            return

        state.points.append(image_pos)
        state.cursor = QPointF(image_pos)
        self.state_changed.emit()

    def _finish_polygon(self, points: List[QPointF]) -> None:
        self._set_state(Idle())
        if len(points) < 3:
            return
        self.session.add_shape(Shape(
            kind=ShapeKind.POLYGON,
            points=points,
            id=new_shape_id(),
            category=self.session.active_category,
        ))

    # === Selection and dragging ===

    def _hit_handle(self, pos: QPointF) -> Optional[tuple[str, int]]:
        """Find a corner handle of a selected shape near a screen position."""
        selected = set(self.session.selected_ids())
        for shape in reversed(self.session.shapes()):
            if shape.id not in selected:
                continue
            for index, point in enumerate(shape.points):
                if distance(self.viewport.image_to_screen(point), pos) <= self.config.handle_radius:
                    return shape.id, index
        return None

    def _hit_shape(self, image_pos: QPointF) -> Optional[Shape]:
        """Topmost shape whose outline contains an image-space position."""
        for shape in reversed(self.session.shapes()):
            if shape.contains(image_pos):
                return shape
        return None

    def _press_select(self, pos: QPointF, image_pos: QPointF, modifiers: InputModifiers) -> None:
        additive = modifiers.matches(self.config.multi_select_modifier)
        selected = self.session.selected_ids()

        handle = None if additive else self._hit_handle(pos)
        if handle is not None:
            shape_id, index = handle
            self._set_state(DraggingCorner(
                shape_id=shape_id,
                index=index,
                before=self.session.snapshot(),
            ))
            return

        shape = self._hit_shape(image_pos)
        if shape is None:
            self._set_state(RubberBandSelecting(
                start=image_pos,
                current=QPointF(image_pos),
                additive=additive,
                base_selection=selected if additive else [],
            ))
            return

        if additive:
            if shape.id in selected:
                self.session.set_selection([i for i in selected if i != shape.id])
                return
            selected = selected + [shape.id]
        elif shape.id not in selected:
            selected = [shape.id]
        self.session.set_selection(selected)

        self._set_state(DraggingShape(
            shape_ids=list(selected),
            last=QPointF(pos),
            before=self.session.snapshot(),
        ))

    def _drag_shapes(self, state: DraggingShape, pos: QPointF) -> None:
        delta = self.viewport.screen_delta_to_image(
            QPointF(pos.x() - state.last.x(), pos.y() - state.last.y())
        )
        state.last = QPointF(pos)
        if delta.x() == 0 and delta.y() == 0:
            return

        moved = []
        for shape_id in state.shape_ids:
            shape = self.session.find_shape(shape_id)
            if shape is None:
                continue
            shape = shape.copy()
            shape.move_by(delta)
            moved.append(shape)

        if moved:
            state.moved = True
            self.session.update_local(moved)

    def _drag_corner(self, state: DraggingCorner, image_pos: QPointF) -> None:
        shape = self.session.find_shape(state.shape_id)
        if shape is None or state.index >= len(shape.points):
            return

        current = shape
        shape = shape.copy()
        if shape.is_rect:
            shape.points = reassign_rect_corners(shape.points, state.index, image_pos)
        else:
            shape.points[state.index] = QPointF(image_pos)

        if [(p.x(), p.y()) for p in shape.points] == [(p.x(), p.y()) for p in current.points]:
            return
        state.moved = True
        self.session.update_local([shape])

    def _finish_rubber_band(self, state: RubberBandSelecting) -> None:
        self._set_state(Idle())

        if state.start.x() == state.current.x() and state.start.y() == state.current.y():
            if not state.additive:
                self.session.clear_selection()
            return

        band = point_bounds([state.start, state.current])
        hits = [
            shape.id for shape in self.session.shapes()
            if rects_intersect(band, point_bounds(shape.points))
        ]
        if state.additive:
            hits = state.base_selection + [i for i in hits if i not in state.base_selection]
        self.session.set_selection(hits)
