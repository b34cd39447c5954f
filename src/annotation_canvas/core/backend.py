"""Collaborator contract between the canvas core and its backend."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Hashable, List, Optional, Tuple

import numpy as np

from .models import MaskResult, PromptPoint, Shape, clone_shapes, new_shape_id

logger = logging.getLogger(__name__)

TextRecognizer = Callable[[Shape], str]


class BackendError(Exception):
    """Raised when a backend request fails."""


class AnnotationBackend(ABC):
    """
    Abstract backend the annotation session talks to.

    Every method receives and returns plain data models. Failures of any
    kind are reported by raising :class:`BackendError`.
    """

    @abstractmethod
    def save_shapes(self, image_id: Hashable, shapes: List[Shape]) -> List[Shape]:
        """
        Upsert shapes by id.

        Shapes with an empty id get one assigned by the backend.

        Returns:
            The stored shapes, in request order
        """

    @abstractmethod
    def delete_shapes(self, image_id: Hashable, ids: List[str]) -> None:
        """Delete shapes by id; an empty list is a valid no-op request."""

    @abstractmethod
    def generate_mask(
        self,
        image_id: Hashable,
        points: List[PromptPoint],
        category: str
    ) -> MaskResult:
        """Generate a raster mask for a category from prompt points."""

    @abstractmethod
    def recognize_text(self, image_id: Hashable, shapes: List[Shape]) -> List[Shape]:
        """Run text recognition on shapes and return them with text filled in."""

    @abstractmethod
    def delete_mask(self, image_id: Hashable, category: str) -> None:
        """Drop the stored mask of a category."""


class InMemoryBackend(AnnotationBackend):
    """
    Backend keeping everything in process memory.

    Masks are synthesized as discs around include points with exclude
    discs carved out, which is enough to drive the compositor without a
    segmentation model.
    """

    def __init__(
        self,
        image_sizes: Optional[Dict[Hashable, Tuple[int, int]]] = None,
        recognizer: Optional[TextRecognizer] = None,
        prompt_radius: int = 24
    ) -> None:
        """
        Initialize the backend.

        Args:
            image_sizes: Mapping of image id to (width, height) for mask generation
            recognizer: Callable returning the text for a shape
            prompt_radius: Radius in pixels of a synthesized prompt disc
        """
        self.image_sizes: Dict[Hashable, Tuple[int, int]] = dict(image_sizes or {})
        self.recognizer = recognizer
        self.prompt_radius = prompt_radius
        self.shapes: Dict[Hashable, Dict[str, Shape]] = {}
        self.masks: Dict[Hashable, Dict[str, MaskResult]] = {}
        self.calls: List[Tuple[str, Hashable]] = []

    def set_image_size(self, image_id: Hashable, width: int, height: int) -> None:
        self.image_sizes[image_id] = (width, height)

    def save_shapes(self, image_id: Hashable, shapes: List[Shape]) -> List[Shape]:
        self.calls.append(("save_shapes", image_id))
        stored = self.shapes.setdefault(image_id, {})
        saved = []
        for shape in clone_shapes(shapes):
            if not shape.id:
                shape.id = new_shape_id()
            stored[shape.id] = shape
            saved.append(shape.copy())
        logger.debug(f"Saved {len(saved)} shapes for image {image_id}")
        return saved

    def delete_shapes(self, image_id: Hashable, ids: List[str]) -> None:
        self.calls.append(("delete_shapes", image_id))
        stored = self.shapes.setdefault(image_id, {})
        if not ids:
            return
        for shape_id in ids:
            stored.pop(shape_id, None)
        logger.debug(f"Deleted {len(ids)} shapes for image {image_id}")

    def generate_mask(
        self,
        image_id: Hashable,
        points: List[PromptPoint],
        category: str
    ) -> MaskResult:
        self.calls.append(("generate_mask", image_id))
        if image_id not in self.image_sizes:
            raise BackendError(f"Unknown image size for {image_id}")

        width, height = self.image_sizes[image_id]
        raster = np.zeros((height, width), dtype=np.uint8)
        ys, xs = np.mgrid[0:height, 0:width]
        radius_sq = self.prompt_radius ** 2

        for point in points:
            disc = (xs - point.x) ** 2 + (ys - point.y) ** 2 <= radius_sq
            raster[disc] = 255 if point.include else 0

        result = MaskResult(raster=raster, points=list(points))
        self.masks.setdefault(image_id, {})[category] = result
        return result

    def recognize_text(self, image_id: Hashable, shapes: List[Shape]) -> List[Shape]:
        self.calls.append(("recognize_text", image_id))
        if self.recognizer is None:
            raise BackendError("No text recognizer configured")

        recognized = clone_shapes(shapes)
        for shape in recognized:
            shape.text = self.recognizer(shape)
        return recognized

    def delete_mask(self, image_id: Hashable, category: str) -> None:
        self.calls.append(("delete_mask", image_id))
        self.masks.get(image_id, {}).pop(category, None)
