"""Tests for core models."""

import pytest
from PyQt6.QtCore import QPointF

from annotation_canvas.core.models import (
    Category,
    PromptPoint,
    Shape,
    ShapeKind,
    clone_shapes,
    new_shape_id,
    parse_color,
)

from conftest import make_rect, point_tuples


class TestShape:
    """Tests for the Shape class."""

    def test_create_rect(self):
        """Test creating a rectangle shape."""
        shape = make_rect("a", 10, 10, 110, 60)

        assert shape.kind == ShapeKind.RECT
        assert shape.is_rect
        assert len(shape.points) == 4
        assert shape.text == ""
        assert shape.category is None

    def test_kind_is_coerced(self):
        """Test that a string kind becomes a ShapeKind."""
        shape = Shape(kind="polygon", points=[QPointF(0, 0), QPointF(10, 0), QPointF(5, 5)])

        assert shape.kind == ShapeKind.POLYGON
        assert not shape.is_rect

    def test_points_are_copied(self):
        """Test that the shape does not share point objects with the caller."""
        points = [QPointF(0, 0), QPointF(10, 0), QPointF(5, 5)]
        shape = Shape(kind=ShapeKind.POLYGON, points=points)

        points[0].setX(99)

        assert shape.points[0].x() == 0

    def test_copy_is_independent(self):
        """Test that copies do not share state."""
        shape = make_rect("a", 0, 0, 10, 10)
        copy = shape.copy()

        copy.move_by(QPointF(5, 5))
        copy.text = "changed"

        assert point_tuples(shape.points)[0] == (0, 0)
        assert shape.text == ""

    def test_move_by(self):
        """Test moving shape by delta."""
        shape = make_rect("a", 10, 10, 100, 100)

        shape.move_by(QPointF(5, -5))

        assert point_tuples(shape.points) == [(15, 5), (105, 5), (105, 95), (15, 95)]

    def test_bounding_rect(self):
        """Test getting the bounding rectangle."""
        shape = Shape(
            kind=ShapeKind.POLYGON,
            points=[QPointF(10, 20), QPointF(110, 40), QPointF(50, 120)]
        )

        box = shape.bounding_rect()

        assert (box.left(), box.top(), box.right(), box.bottom()) == (10, 20, 110, 120)

    def test_contains(self):
        """Test point containment."""
        shape = make_rect("a", 0, 0, 100, 100)

        assert shape.contains(QPointF(50, 50))
        assert not shape.contains(QPointF(150, 50))

    def test_to_dict(self):
        """Test converting a shape to plain data."""
        shape = make_rect("a", 1, 2, 3, 4, category="title")
        shape.text = "hello"

        data = shape.to_dict()

        assert data["id"] == "a"
        assert data["type"] == "rect"
        assert data["points"][2] == {"x": 3, "y": 4}
        assert data["text"] == "hello"
        assert data["category"] == "title"

    def test_from_dict_accepts_shape_type(self):
        """Test that shape_type is accepted as the kind key and ids become strings."""
        data = {
            "id": 42,
            "shape_type": "polygon",
            "points": [{"x": 0, "y": 0}, {"x": 10, "y": 0}, {"x": 5, "y": 8}],
        }

        shape = Shape.from_dict(data)

        assert shape.id == "42"
        assert shape.kind == ShapeKind.POLYGON
        assert shape.text == ""
        assert point_tuples(shape.points)[2] == (5, 8)

    def test_from_dict_defaults_to_rect(self):
        """Test that a missing kind defaults to rect."""
        shape = Shape.from_dict({"points": []})

        assert shape.kind == ShapeKind.RECT
        assert shape.id == ""

    def test_from_dict_round_trip(self):
        """Test that to_dict output is accepted by from_dict."""
        shape = make_rect("a", 1, 2, 3, 4, category="body")

        restored = Shape.from_dict(shape.to_dict())

        assert restored.id == shape.id
        assert restored.category == "body"
        assert point_tuples(restored.points) == point_tuples(shape.points)

    def test_clone_shapes(self):
        """Test deep copying a collection."""
        shapes = [make_rect("a", 0, 0, 1, 1), make_rect("b", 2, 2, 3, 3)]

        clones = clone_shapes(shapes)
        clones[0].move_by(QPointF(1, 1))

        assert point_tuples(shapes[0].points)[0] == (0, 0)
        assert [s.id for s in clones] == ["a", "b"]

    def test_new_shape_id_is_unique(self):
        """Test that generated ids differ."""
        assert new_shape_id() != new_shape_id()


class TestParseColor:
    """Tests for category color parsing."""

    def test_rgba(self):
        """Test that the alpha of an rgba string becomes the opacity."""
        color, opacity = parse_color("rgba(255, 10, 20, 0.5)")

        assert (color.red(), color.green(), color.blue()) == (255, 10, 20)
        assert opacity == 0.5

    def test_rgb_without_alpha(self):
        """Test that rgb strings are fully opaque."""
        color, opacity = parse_color("rgb(1, 2, 3)")

        assert (color.red(), color.green(), color.blue()) == (1, 2, 3)
        assert opacity == 1.0

    def test_hex(self):
        """Test that hex colors get the default opacity."""
        color, opacity = parse_color("#ff8800")

        assert (color.red(), color.green(), color.blue()) == (255, 136, 0)
        assert opacity == 0.4

    def test_missing_color(self):
        """Test the default green tint."""
        color, opacity = parse_color(None)

        assert (color.red(), color.green(), color.blue()) == (0, 200, 0)
        assert opacity == 0.4

    @pytest.mark.parametrize("value", ["rgba(a, b, c)", "not-a-color"])
    def test_invalid_falls_back(self, value):
        """Test that unparseable strings fall back to the default tint."""
        color, opacity = parse_color(value)

        assert (color.red(), color.green(), color.blue()) == (0, 200, 0)
        assert opacity == 0.4


class TestCategory:
    """Tests for the Category class."""

    def test_from_color_string(self):
        """Test creating a category from a color string."""
        category = Category.from_color_string(3, "title", "rgba(0, 0, 255, 0.25)")

        assert category.id == 3
        assert category.name == "title"
        assert category.color.blue() == 255
        assert category.opacity == 0.25

    def test_default_color(self):
        """Test the default category tint."""
        category = Category(id=1, name="body")

        assert category.color.green() == 200
        assert category.opacity == 0.4


class TestPromptPoint:
    """Tests for prompt points."""

    def test_include_defaults_to_true(self):
        """Test the default include flag."""
        assert PromptPoint(0, 0).include is True
