"""Raster mask compositing: category tint, edge outline and highlight flash."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PyQt6.QtCore import QObject, QTimer, pyqtSignal
from PyQt6.QtGui import QImage

from ..workers.raster_loader import MaskSource, RasterLoader, load_layers
from .config import CanvasConfig
from .models import MaskLayer

logger = logging.getLogger(__name__)

EDGE_BRIGHTEN = 40
EDGE_BASE_ALPHA = 120
EDGE_ALPHA_GAIN = 0.45


def _alpha_channel(raster: np.ndarray) -> np.ndarray:
    """Luminance of a decoded raster as float alpha values in [0, 255]."""
    if raster.ndim == 3:
        raster = raster[..., 0]
    return raster.astype(np.float64)


def _resize_nearest(alpha: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    width, height = size
    src_h, src_w = alpha.shape
    if (src_w, src_h) == (width, height):
        return alpha
    rows = (np.arange(height) * src_h // height).clip(0, src_h - 1)
    cols = (np.arange(width) * src_w // width).clip(0, src_w - 1)
    return alpha[rows[:, None], cols[None, :]]


def edge_mask(inside: np.ndarray) -> np.ndarray:
    """
    Edge pixels of a boolean mask.

    A pixel is an edge pixel when it is inside the mask and either lies on
    the raster border or has a 4-neighbor outside the mask.
    """
    padded = np.pad(inside, 1, mode="constant", constant_values=False)
    neighbors_inside = (
        padded[:-2, 1:-1] & padded[2:, 1:-1] &
        padded[1:-1, :-2] & padded[1:-1, 2:]
    )
    return inside & ~neighbors_inside


def _over(
    dst_rgb: np.ndarray,
    dst_a: np.ndarray,
    src_rgb: Sequence[float],
    src_a: np.ndarray,
    where: np.ndarray
) -> None:
    """Straight-alpha source-over of ``src`` onto ``dst`` at ``where``, in place."""
    sa = np.where(where, src_a / 255.0, 0.0)
    da = dst_a
    out_a = sa + da * (1.0 - sa)
    safe = np.where(out_a > 0, out_a, 1.0)
    for c in range(3):
        dst_rgb[..., c] = np.where(
            out_a > 0,
            (src_rgb[c] * sa + dst_rgb[..., c] * da * (1.0 - sa)) / safe,
            0.0,
        )
    dst_a[...] = out_a


def composite_masks(
    layers: Sequence[MaskLayer],
    flash_category: Optional[str] = None,
    size: Optional[Tuple[int, int]] = None
) -> np.ndarray:
    """
    Composite category masks into one RGBA buffer.

    Layers are drawn back to front in the given order. For every pixel of
    a layer with raster value ``alpha > 0`` the fill is the category color
    at ``min(255, alpha * opacity)``; edge pixels are drawn again with the
    color brightened by 40 at ``min(255, 120 + 0.45 * alpha)``. The flash
    category uses ``min(1, 2 * opacity)``.

    Args:
        layers: Masks to composite; layers without a raster are skipped
        flash_category: Category currently flashing, if any
        size: Output (width, height); defaults to the first raster's size

    Returns:
        ``uint8`` array of shape (height, width, 4) in RGBA order
    """
    usable = [layer for layer in layers if layer.raster is not None and layer.raster.size > 0]
    if size is None:
        if not usable:
            return np.zeros((0, 0, 4), dtype=np.uint8)
        height, width = usable[0].raster.shape[:2]
    else:
        width, height = size

    dst_rgb = np.zeros((height, width, 3), dtype=np.float64)
    dst_a = np.zeros((height, width), dtype=np.float64)

    for layer in usable:
        alpha = _resize_nearest(_alpha_channel(layer.raster), (width, height))
        inside = alpha > 0
        if not inside.any():
            continue

        opacity = layer.opacity
        if flash_category is not None and layer.category == flash_category:
            opacity = min(1.0, 2 * opacity)

        color = (layer.color.red(), layer.color.green(), layer.color.blue())
        fill_a = np.minimum(255.0, np.rint(alpha * opacity))
        _over(dst_rgb, dst_a, color, fill_a, inside)

        edge_color = tuple(min(255, c + EDGE_BRIGHTEN) for c in color)
        edge_a = np.minimum(255.0, np.rint(EDGE_BASE_ALPHA + EDGE_ALPHA_GAIN * alpha))
        _over(dst_rgb, dst_a, edge_color, edge_a, edge_mask(inside))

    out = np.empty((height, width, 4), dtype=np.uint8)
    out[..., :3] = np.rint(dst_rgb).clip(0, 255).astype(np.uint8)
    out[..., 3] = np.rint(dst_a * 255.0).clip(0, 255).astype(np.uint8)
    return out


def to_qimage(buffer: np.ndarray) -> QImage:
    """Copy an RGBA ``uint8`` buffer into an owned QImage."""
    height, width = buffer.shape[:2]
    data = np.ascontiguousarray(buffer, dtype=np.uint8)
    image = QImage(data.tobytes(), width, height, width * 4, QImage.Format.Format_RGBA8888)
    return image.copy()


class MaskCompositor(QObject):
    """
    Keeps the composited mask overlay of the current image up to date.

    Every :meth:`request` bumps a generation counter; raster loads that
    finish for an older generation are dropped so they never draw over
    newer state.
    """

    composited = pyqtSignal(QImage)
    cleared = pyqtSignal()

    def __init__(self, config: Optional[CanvasConfig] = None) -> None:
        """
        Initialize the compositor.

        Args:
            config: Canvas configuration (flash duration)
        """
        super().__init__()
        self.config = config or CanvasConfig()
        self.generation = 0
        self.layers: List[MaskLayer] = []
        self.size: Optional[Tuple[int, int]] = None
        self.flash_category: Optional[str] = None
        self.buffer: Optional[np.ndarray] = None
        self.image: Optional[QImage] = None
        self._loaders: List[RasterLoader] = []

        self._flash_timer = QTimer(self)
        self._flash_timer.setSingleShot(True)
        self._flash_timer.timeout.connect(self.end_flash)

    def request(
        self,
        sources: Sequence[MaskSource],
        size: Tuple[int, int],
        asynchronous: bool = True
    ) -> int:
        """
        Request a new composite.

        Args:
            sources: Masks to load, in drawing order
            size: Natural (width, height) of the displayed image
            asynchronous: Decode rasters on a worker thread

        Returns:
            The generation of this request
        """
        self.generation += 1
        generation = self.generation
        self.size = size

        for loader in self._loaders:
            loader.stop()

        if not asynchronous:
            self.on_rasters_loaded(generation, load_layers(sources))
            return generation

        loader = RasterLoader(generation, list(sources))
        loader.loaded.connect(self.on_rasters_loaded)
        loader.finished.connect(lambda: self._forget_loader(loader))
        self._loaders.append(loader)
        loader.start()
        return generation

    def _forget_loader(self, loader: RasterLoader) -> None:
        if loader in self._loaders:
            self._loaders.remove(loader)
        loader.deleteLater()

    def wait(self) -> None:
        """Block until every running raster load has finished."""
        for loader in list(self._loaders):
            loader.wait()

    def on_rasters_loaded(self, generation: int, layers: list) -> None:
        """Accept decoded layers unless a newer request superseded them."""
        if generation != self.generation:
            logger.debug(f"Dropping stale raster load {generation} (current {self.generation})")
            return
        self.layers = [layer for layer in layers if layer.raster is not None]
        self.render()

    def flash(self, category: str) -> None:
        """Temporarily double the opacity of a category's mask."""
        self.flash_category = category
        self.render()
        self._flash_timer.start(self.config.flash_duration_ms)

    def end_flash(self) -> None:
        if self.flash_category is None:
            return
        self.flash_category = None
        self.render()

    def clear(self) -> None:
        self.generation += 1
        self.layers = []
        self.buffer = None
        self.image = None
        self.cleared.emit()

    def render(self) -> None:
        """Composite the current layers and publish the result."""
        if not self.layers or self.size is None:
            self.buffer = None
            self.image = None
            self.cleared.emit()
            return

        self.buffer = composite_masks(self.layers, self.flash_category, self.size)
        self.image = to_qimage(self.buffer)
        self.composited.emit(self.image)
