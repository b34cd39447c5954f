"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

import pytest
from PyQt6.QtCore import QPointF

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from annotation_canvas.core.backend import InMemoryBackend  # noqa: E402
from annotation_canvas.core.config import CanvasConfig  # noqa: E402
from annotation_canvas.core.models import Category, Shape, ShapeKind  # noqa: E402
from annotation_canvas.core.session import AnnotationSession  # noqa: E402


@pytest.fixture(scope="session")
def qapp():
    """Create a QApplication for tests that need it."""
    from PyQt6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])

    yield app


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def config():
    """Default canvas configuration."""
    return CanvasConfig()


@pytest.fixture
def backend():
    """In-memory backend knowing one 100x80 image."""
    return InMemoryBackend(image_sizes={"img": (100, 80)}, recognizer=lambda shape: "text")


@pytest.fixture
def session(qapp, backend, config):
    """Session with image 'img' loaded and no shapes."""
    session = AnnotationSession(backend, config)
    session.set_image("img", [])
    return session


def make_rect(shape_id, left, top, right, bottom, category=None):
    """Build a rectangle shape from its bounds."""
    return Shape(
        kind=ShapeKind.RECT,
        points=[
            QPointF(left, top),
            QPointF(right, top),
            QPointF(right, bottom),
            QPointF(left, bottom),
        ],
        id=shape_id,
        category=category,
    )


def point_tuples(points):
    """Points as (x, y) tuples for exact comparison."""
    return [(p.x(), p.y()) for p in points]


@pytest.fixture
def sample_categories():
    """Two categories with distinct colors."""
    return [
        Category.from_color_string(1, "title", "rgba(255, 0, 0, 0.5)"),
        Category.from_color_string(2, "body", "#0000ff"),
    ]
