"""Core canvas logic: viewport, editor, history, session and data models."""

from .models import Category, PromptPoint, SegmentationMask, Shape, ShapeKind
from .config import CanvasConfig, ConfigManager
from .history import HistoryStack
from .viewport import FitMode, ViewportController
from .backend import AnnotationBackend, BackendError, InMemoryBackend
from .session import AnnotationSession
from .editor import ShapeEditor, Tool

__all__ = [
    "Category",
    "PromptPoint",
    "SegmentationMask",
    "Shape",
    "ShapeKind",
    "CanvasConfig",
    "ConfigManager",
    "HistoryStack",
    "FitMode",
    "ViewportController",
    "AnnotationBackend",
    "BackendError",
    "InMemoryBackend",
    "AnnotationSession",
    "ShapeEditor",
    "Tool",
]
