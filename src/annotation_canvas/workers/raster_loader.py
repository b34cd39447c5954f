"""Background decoding of mask rasters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np
from PyQt6.QtCore import QThread, pyqtSignal
from PyQt6.QtGui import QColor, QImage

from ..core.models import MaskLayer

logger = logging.getLogger(__name__)

RasterSource = Union[str, np.ndarray, QImage, None]


@dataclass
class MaskSource:
    """A mask still to be decoded: raster handle plus its category styling."""

    raster: RasterSource
    color: QColor
    opacity: float
    category: str = ""


def qimage_to_array(image: QImage) -> np.ndarray:
    """
    Copy a QImage into a single-channel ``uint8`` array.

    The image is converted to 8-bit grayscale first; row padding is
    stripped using the image stride.
    """
    gray = image.convertToFormat(QImage.Format.Format_Grayscale8)
    width, height = gray.width(), gray.height()
    ptr = gray.constBits()
    ptr.setsize(gray.sizeInBytes())
    pixels = np.frombuffer(ptr, dtype=np.uint8).reshape(height, gray.bytesPerLine())
    return pixels[:, :width].copy()


def load_raster(handle: RasterSource) -> Optional[np.ndarray]:
    """
    Decode a raster handle.

    Args:
        handle: File path, QImage or already decoded array

    Returns:
        ``uint8`` array of shape (H, W), or None if nothing could be decoded
    """
    if handle is None:
        return None

    if isinstance(handle, np.ndarray):
        if handle.ndim == 3:
            handle = handle[..., 0]
        if handle.ndim != 2 or handle.size == 0:
            logger.warning(f"Unsupported raster shape {handle.shape}")
            return None
        return np.ascontiguousarray(handle, dtype=np.uint8)

    image = handle if isinstance(handle, QImage) else QImage(str(handle))
    if image.isNull():
        logger.warning(f"Could not decode raster {handle!r}")
        return None
    return qimage_to_array(image)


def load_layers(sources: Sequence[MaskSource]) -> List[MaskLayer]:
    """Decode every source, keeping failed ones as layers without a raster."""
    return [
        MaskLayer(
            raster=load_raster(source.raster),
            color=source.color,
            opacity=source.opacity,
            category=source.category,
        )
        for source in sources
    ]


class RasterLoader(QThread):
    """
    Background thread decoding the rasters of one composite request.

    The generation of the request travels with the result so the receiver
    can discard loads that were superseded while running.
    """

    # Signal emitted when all rasters are decoded (generation, layers)
    loaded = pyqtSignal(int, list)

    def __init__(self, generation: int, sources: List[MaskSource]) -> None:
        """
        Initialize the raster loader.

        Args:
            generation: Generation of the composite request
            sources: Masks to decode
        """
        super().__init__()
        self.generation = generation
        self.sources = sources
        self._is_running = True

    def run(self) -> None:
        """Decode the rasters and report them unless stopped."""
        layers = []
        for source in self.sources:
            if not self._is_running:
                logger.debug(f"Raster load {self.generation} cancelled")
                return
            layers.extend(load_layers([source]))

        self.loaded.emit(self.generation, layers)

    def stop(self) -> None:
        """Request the loader to stop."""
        self._is_running = False
