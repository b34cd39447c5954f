"""UI components for the annotation canvas."""

from .canvas_widget import CanvasWidget
from .main_window import MainWindow

__all__ = [
    "CanvasWidget",
    "MainWindow",
]
