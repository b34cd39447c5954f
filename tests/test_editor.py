"""Tests for the shape editor state machine."""

import pytest
from PyQt6.QtCore import QPointF

from annotation_canvas.core.editor import (
    DraftingPolygon,
    DraftingRect,
    DraggingCorner,
    DraggingShape,
    Idle,
    RubberBandSelecting,
    ShapeEditor,
    Tool,
)
from annotation_canvas.core.input import InputModifiers, MouseButton
from annotation_canvas.core.models import Shape, ShapeKind
from annotation_canvas.core.viewport import ViewportController

from conftest import make_rect, point_tuples

CTRL = InputModifiers(ctrl=True)


def calls(backend, name):
    return [call for call in backend.calls if call[0] == name]


@pytest.fixture
def viewport(config):
    """Identity viewport."""
    return ViewportController(config)


@pytest.fixture
def editor(viewport, session, config):
    """Editor on an empty image."""
    return ShapeEditor(viewport, session, config)


def click(editor, x, y, modifiers=InputModifiers()):
    editor.press(QPointF(x, y), MouseButton.LEFT, modifiers)
    editor.release(QPointF(x, y))


def drag(editor, start, end, modifiers=InputModifiers()):
    editor.press(QPointF(*start), MouseButton.LEFT, modifiers)
    editor.move(QPointF(*end))
    editor.release(QPointF(*end))


class TestRectTool:
    """Tests for drawing rectangles."""

    def test_click_click(self, editor, session, backend):
        """Test that a second press finalizes the rectangle."""
        editor.set_tool(Tool.RECT)

        click(editor, 10, 10)
        assert isinstance(editor.state, DraftingRect)
        editor.move(QPointF(110, 60))
        click(editor, 110, 60)

        assert isinstance(editor.state, Idle)
        assert len(session.shapes()) == 1
        shape = session.shapes()[0]
        assert shape.kind == ShapeKind.RECT
        assert point_tuples(shape.points) == [(10, 10), (110, 10), (110, 60), (10, 60)]
        assert len(calls(backend, "save_shapes")) == 1

    def test_drag_to_draw(self, editor, session):
        """Test that releasing after a drag finalizes the rectangle."""
        editor.set_tool(Tool.RECT)

        drag(editor, (10, 10), (110, 60))

        assert len(session.shapes()) == 1

    def test_any_direction_normalized(self, editor, session):
        """Test that drawing up-left still yields tl, tr, br, bl."""
        editor.set_tool(Tool.RECT)

        drag(editor, (110, 60), (10, 10))

        assert point_tuples(session.shapes()[0].points) == [(10, 10), (110, 10), (110, 60), (10, 60)]

    def test_preview_follows_cursor(self, editor):
        """Test the live draft preview."""
        editor.set_tool(Tool.RECT)
        click(editor, 10, 10)

        editor.move(QPointF(30, 40))

        assert point_tuples(editor.draft_points()) == [(10, 10), (30, 10), (30, 40), (10, 40)]

    def test_zero_sized_discarded(self, editor, session, backend):
        """Test that zero-width rectangles are dropped."""
        editor.set_tool(Tool.RECT)

        click(editor, 10, 10)
        click(editor, 10, 50)

        assert session.shapes() == []
        assert calls(backend, "save_shapes") == []

    def test_new_shape_gets_active_category(self, editor, session):
        """Test that new shapes take the active category."""
        session.add_category("title")
        session.select_category("title")
        editor.set_tool(Tool.RECT)

        drag(editor, (0, 0), (20, 20))

        assert session.shapes()[0].category == "title"

    def test_rect_uses_viewport_transform(self, editor, viewport, session):
        """Test that screen positions are converted to image space."""
        viewport.set_transform(2, QPointF(10, 10))
        editor.set_tool(Tool.RECT)

        drag(editor, (30, 30), (50, 70))

        assert point_tuples(session.shapes()[0].points) == [(10, 10), (20, 10), (20, 30), (10, 30)]


class TestPolygonTool:
    """Tests for drawing polygons."""

    def test_double_click_finishes(self, editor, session, backend):
        """Test finishing a polygon with a double click."""
        editor.set_tool(Tool.POLYGON)

        click(editor, 0, 0)
        click(editor, 100, 0)
        click(editor, 50, 80)
        editor.double_click(QPointF(50, 80))

        assert len(session.shapes()) == 1
        shape = session.shapes()[0]
        assert shape.kind == ShapeKind.POLYGON
        assert point_tuples(shape.points) == [(0, 0), (100, 0), (50, 80)]
        assert len(calls(backend, "save_shapes")) == 1

    def test_double_click_needs_three_points(self, editor, session):
        """Test that a two-point draft is not finalized."""
        editor.set_tool(Tool.POLYGON)

        click(editor, 0, 0)
        click(editor, 100, 0)
        editor.double_click(QPointF(100, 0))

        assert session.shapes() == []
        assert isinstance(editor.state, DraftingPolygon)

    def test_click_near_first_vertex_closes(self, editor, session):
        """Test closing the ring by clicking near the first vertex."""
        editor.set_tool(Tool.POLYGON)

        click(editor, 0, 0)
        click(editor, 100, 0)
        click(editor, 100, 100)
        click(editor, 3, 2)

        assert len(session.shapes()) == 1
        assert len(session.shapes()[0].points) == 3

    def test_preview_includes_cursor(self, editor):
        """Test that the draft preview follows the cursor."""
        editor.set_tool(Tool.POLYGON)
        click(editor, 0, 0)
        click(editor, 10, 0)

        editor.move(QPointF(5, 5))

        assert point_tuples(editor.draft_points()) == [(0, 0), (10, 0), (5, 5)]

    def test_escape_discards(self, editor, session):
        """Test that Escape drops the draft."""
        editor.set_tool(Tool.POLYGON)
        click(editor, 0, 0)
        click(editor, 10, 0)

        assert editor.key_press("Escape")

        assert isinstance(editor.state, Idle)
        assert session.shapes() == []

    def test_leave_discards(self, editor):
        """Test that leaving the canvas drops the draft."""
        editor.set_tool(Tool.POLYGON)
        click(editor, 0, 0)

        editor.leave()

        assert isinstance(editor.state, Idle)

    def test_switching_tool_discards(self, editor, session):
        """Test that changing tools cancels the draft."""
        editor.set_tool(Tool.POLYGON)
        click(editor, 0, 0)
        click(editor, 10, 0)
        click(editor, 10, 10)

        editor.set_tool(Tool.RECT)

        assert isinstance(editor.state, Idle)
        assert session.shapes() == []


class TestSelection:
    """Tests for click and rubber band selection."""

    @pytest.fixture
    def two_shapes(self, session):
        session.set_image("img", [make_rect("a", 0, 0, 50, 50), make_rect("b", 100, 100, 150, 150)])

    def test_click_selects(self, editor, session, two_shapes):
        """Test that clicking a body replaces the selection."""
        click(editor, 25, 25)
        assert session.selected_ids() == ["a"]

        click(editor, 125, 125)
        assert session.selected_ids() == ["b"]

    def test_modifier_toggles_membership(self, editor, session, two_shapes):
        """Test that the multi-select modifier toggles shapes in and out."""
        click(editor, 25, 25)
        click(editor, 125, 125, CTRL)
        assert session.selected_ids() == ["a", "b"]

        click(editor, 25, 25, CTRL)
        assert session.selected_ids() == ["b"]

    def test_rubber_band_intersection(self, editor, session):
        """Test that any bounding box overlap selects a shape."""
        session.set_image("img", [make_rect("hit", 40, 40, 60, 60), make_rect("miss", 60, 60, 80, 80)])
        session.set_selection([])

        editor.press(QPointF(10, 10))
        assert isinstance(editor.state, RubberBandSelecting)
        editor.move(QPointF(50, 50))
        assert editor.rubber_band_rect() is not None
        editor.release(QPointF(50, 50))

        assert session.selected_ids() == ["hit"]
        assert editor.rubber_band_rect() is None

    def test_rubber_band_drawn_backwards(self, editor, session):
        """Test a band dragged from bottom-right to top-left."""
        session.set_image("img", [make_rect("hit", 40, 40, 60, 60), make_rect("miss", 60, 60, 80, 80)])

        drag(editor, (45, 30), (10, 50))

        assert session.selected_ids() == ["hit"]

    def test_empty_click_clears_selection(self, editor, session, two_shapes):
        """Test that a band that never moved clears the selection."""
        click(editor, 25, 25)

        click(editor, 80, 80)

        assert session.selected_ids() == []

    def test_additive_band(self, editor, session, two_shapes):
        """Test that the modifier adds band hits to the selection."""
        click(editor, 25, 25)

        drag(editor, (90, 90), (110, 110), CTRL)

        assert session.selected_ids() == ["a", "b"]

    def test_select_all(self, editor, session, two_shapes):
        """Test selecting every shape."""
        editor.select_all()

        assert session.selected_ids() == ["a", "b"]


class TestDragging:
    """Tests for moving and resizing shapes."""

    @pytest.fixture
    def one_shape(self, session):
        session.set_image("img", [make_rect("a", 0, 0, 50, 50)])

    def test_body_drag(self, editor, session, backend, one_shape):
        """Test that a body drag moves the shape and commits once."""
        editor.press(QPointF(25, 25))
        assert isinstance(editor.state, DraggingShape)
        editor.move(QPointF(30, 35))
        editor.move(QPointF(35, 45))
        editor.release(QPointF(35, 45))

        assert point_tuples(session.shapes()[0].points)[0] == (10, 20)
        assert len(calls(backend, "save_shapes")) == 1
        assert session.history.undo_count("img") == 1

    def test_body_drag_scales_with_zoom(self, editor, viewport, session, one_shape):
        """Test that the screen delta is converted to image space."""
        viewport.set_transform(2, QPointF(0, 0))

        drag(editor, (50, 50), (70, 90))

        assert point_tuples(session.shapes()[0].points)[0] == (10, 20)

    def test_click_without_motion_commits_nothing(self, editor, session, backend, one_shape):
        """Test that a press and release in place triggers no call."""
        click(editor, 25, 25)

        assert calls(backend, "save_shapes") == []
        assert session.history.undo_count("img") == 0

    def test_drag_back_to_start_commits_nothing(self, editor, session, backend, one_shape):
        """Test that a drag ending where it started triggers no call."""
        editor.press(QPointF(25, 25))
        editor.move(QPointF(40, 40))
        editor.move(QPointF(25, 25))
        editor.release(QPointF(25, 25))

        assert point_tuples(session.shapes()[0].points)[0] == (0, 0)
        assert calls(backend, "save_shapes") == []
        assert session.history.undo_count("img") == 0

    def test_corner_jitter_commits_nothing(self, editor, session, backend, one_shape):
        """Test that moving a handle onto its own position is not an edit."""
        session.set_selection(["a"])

        editor.press(QPointF(50, 50))
        editor.move(QPointF(50, 50))
        assert not editor.state.moved
        editor.move(QPointF(70, 60))
        editor.move(QPointF(50, 50))
        editor.release(QPointF(50, 50))

        assert point_tuples(session.shapes()[0].points) == [(0, 0), (50, 0), (50, 50), (0, 50)]
        assert calls(backend, "save_shapes") == []
        assert session.history.undo_count("img") == 0

    def test_drag_moves_whole_selection(self, editor, session):
        """Test that dragging a selected shape moves every selected shape."""
        session.set_image("img", [make_rect("a", 0, 0, 50, 50), make_rect("b", 100, 100, 150, 150)])
        session.set_selection(["a", "b"])

        drag(editor, (25, 25), (35, 25))

        assert point_tuples(session.shapes()[0].points)[0] == (10, 0)
        assert point_tuples(session.shapes()[1].points)[0] == (110, 100)

    def test_corner_drag(self, editor, session, backend, one_shape):
        """Test resizing through a corner handle of a selected shape."""
        session.set_selection(["a"])

        editor.press(QPointF(50, 50))
        assert isinstance(editor.state, DraggingCorner)
        editor.move(QPointF(80, 70))
        editor.release(QPointF(80, 70))

        assert point_tuples(session.shapes()[0].points) == [(0, 0), (80, 0), (80, 70), (0, 70)]
        assert len(calls(backend, "save_shapes")) == 1

    def test_handles_only_on_selected_shapes(self, editor, session, one_shape):
        """Test that an unselected corner starts a body drag instead."""
        editor.press(QPointF(49, 49))

        assert isinstance(editor.state, DraggingShape)

    def test_handle_radius_in_screen_pixels(self, editor, viewport, session, one_shape):
        """Test that the handle radius does not grow with zoom."""
        viewport.set_transform(4, QPointF(0, 0))
        session.set_selection(["a"])

        editor.press(QPointF(205, 200))
        assert isinstance(editor.state, DraggingCorner)
        editor.cancel()

        editor.press(QPointF(190, 190))
        assert isinstance(editor.state, DraggingShape)

    def test_polygon_vertex_drag(self, editor, session):
        """Test that dragging a polygon vertex replaces it."""
        polygon = Shape(
            kind=ShapeKind.POLYGON,
            points=[QPointF(0, 0), QPointF(100, 0), QPointF(50, 80)],
            id="p",
        )
        session.set_image("img", [polygon])
        session.set_selection(["p"])

        drag(editor, (50, 80), (60, 120))

        assert point_tuples(session.shapes()[0].points) == [(0, 0), (100, 0), (60, 120)]

    def test_cancel_restores_drag(self, editor, session, backend, one_shape):
        """Test that Escape during a drag puts the shape back."""
        editor.press(QPointF(25, 25))
        editor.move(QPointF(45, 45))

        editor.key_press("Escape")

        assert point_tuples(session.shapes()[0].points)[0] == (0, 0)
        assert calls(backend, "save_shapes") == []

    def test_end_to_end_draw_then_resize(self, editor, session):
        """Test drawing a rectangle, selecting it and dragging its corner."""
        editor.set_tool(Tool.RECT)
        drag(editor, (10, 10), (110, 60))
        editor.set_tool(Tool.SELECT)
        click(editor, 60, 35)

        drag(editor, (110, 60), (200, 200))

        assert point_tuples(session.shapes()[0].points) == [(10, 10), (200, 10), (200, 200), (10, 200)]


class TestDeletion:
    """Tests for keyboard deletion."""

    def test_delete_selected(self, editor, session, backend):
        """Test that Delete removes the selection in one call."""
        session.set_image("img", [
            make_rect("a", 0, 0, 10, 10),
            make_rect("b", 20, 20, 30, 30),
            make_rect("c", 40, 40, 50, 50),
        ])
        session.set_selection(["a", "c"])

        assert editor.key_press("Delete")

        assert [s.id for s in session.shapes()] == ["b"]
        assert session.selected_ids() == []
        assert len(calls(backend, "delete_shapes")) == 1

    def test_backspace_without_selection(self, editor, backend):
        """Test that deleting with nothing selected is ignored."""
        assert not editor.key_press("Backspace")
        assert calls(backend, "delete_shapes") == []


class TestReset:
    """Tests for resetting the editor."""

    def test_reset_selects_select_tool(self, editor):
        """Test that a reset returns to the idle select tool."""
        editor.set_tool(Tool.POLYGON)
        click(editor, 0, 0)

        editor.reset()

        assert editor.tool == Tool.SELECT
        assert isinstance(editor.state, Idle)
