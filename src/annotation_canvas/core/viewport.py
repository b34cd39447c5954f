"""Zoom, pan and fit-to-container transform for one image surface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from PyQt6.QtCore import QObject, QPointF, QSizeF, pyqtSignal

from .config import CanvasConfig
from .input import InputModifiers

logger = logging.getLogger(__name__)


class FitMode(str, Enum):
    """How the image is fitted into its container."""

    INSIDE = "inside"
    OUTSIDE = "outside"


@dataclass
class ViewportState:
    """Zoom level and pan offset; ``screen = image * zoom + pan``."""

    zoom: float = 1.0
    pan: QPointF = field(default_factory=QPointF)


class ViewportController(QObject):
    """
    Owns the zoom/pan transform between screen and image space.

    Knows nothing about shapes. Screen coordinates are relative to the
    container's top-left corner.
    """

    changed = pyqtSignal()

    def __init__(self, config: Optional[CanvasConfig] = None) -> None:
        """
        Initialize the viewport.

        Args:
            config: Canvas configuration (zoom limits, factors, pan modifier)
        """
        super().__init__()
        self.config = config or CanvasConfig()
        self.state = ViewportState()
        self.container_size = QSizeF()
        self.image_size = QSizeF()
        self.fit_mode = FitMode(self.config.fit_mode)
        self.keep_zoom_pan = self.config.keep_zoom_pan

        self._panning = False
        self._pan_start = QPointF()

    # === Transform ===

    @property
    def zoom(self) -> float:
        return self.state.zoom

    @property
    def pan(self) -> QPointF:
        return QPointF(self.state.pan)

    @property
    def is_panning(self) -> bool:
        return self._panning

    def screen_to_image(self, pos: QPointF) -> QPointF:
        """Transform a container position to image coordinates."""
        zoom = self.state.zoom
        return QPointF(
            (pos.x() - self.state.pan.x()) / zoom,
            (pos.y() - self.state.pan.y()) / zoom,
        )

    def image_to_screen(self, pos: QPointF) -> QPointF:
        """Transform image coordinates to a container position."""
        zoom = self.state.zoom
        return QPointF(
            pos.x() * zoom + self.state.pan.x(),
            pos.y() * zoom + self.state.pan.y(),
        )

    def screen_delta_to_image(self, delta: QPointF) -> QPointF:
        """Convert a screen-space displacement to image space."""
        return QPointF(delta.x() / self.state.zoom, delta.y() / self.state.zoom)

    def clamp_zoom(self, value: float) -> float:
        return max(self.config.min_zoom, min(value, self.config.max_zoom))

    def set_transform(self, zoom: float, pan: QPointF) -> None:
        """Set zoom and pan directly (zoom is clamped)."""
        self.state = ViewportState(zoom=self.clamp_zoom(zoom), pan=QPointF(pan))
        self.changed.emit()

    # === Sizes ===

    def set_container_size(self, width: float, height: float) -> None:
        self.container_size = QSizeF(width, height)

    def set_image_size(self, width: float, height: float) -> None:
        self.image_size = QSizeF(width, height)

    def on_image_loaded(self, width: float, height: float) -> None:
        """Record a new image's natural size and refit unless zoom/pan is kept."""
        self.set_image_size(width, height)
        if not self.keep_zoom_pan:
            self.fit()

    def on_container_resized(self, width: float, height: float) -> None:
        """Record the new container size and refit unless zoom/pan is kept."""
        self.set_container_size(width, height)
        if not self.keep_zoom_pan:
            self.fit()

    # === Fit ===

    def compute_fit(self, mode: FitMode) -> ViewportState:
        """
        Compute the zoom/pan that fits the image into the container.

        ``inside`` shows the whole image, ``outside`` fills the container.
        The image is centered on both axes. Degenerate sizes give the
        identity transform.
        """
        cw, ch = self.container_size.width(), self.container_size.height()
        iw, ih = self.image_size.width(), self.image_size.height()

        if cw <= 0 or ch <= 0 or iw <= 0 or ih <= 0:
            return ViewportState(zoom=1.0, pan=QPointF(0, 0))

        scale_x = cw / iw
        scale_y = ch / ih
        zoom = max(scale_x, scale_y) if mode == FitMode.OUTSIDE else min(scale_x, scale_y)

        return ViewportState(
            zoom=zoom,
            pan=QPointF((cw - iw * zoom) / 2, (ch - ih * zoom) / 2),
        )

    def fit(self, mode: Optional[FitMode] = None) -> None:
        """
        Apply a fit mode (defaults to the current one).

        Args:
            mode: inside or outside
        """
        if mode is not None:
            self.fit_mode = FitMode(mode)
        self.state = self.compute_fit(self.fit_mode)
        logger.debug(f"Fit {self.fit_mode.value}: zoom={self.state.zoom:.3f}")
        self.changed.emit()

    def toggle_fit(self) -> None:
        """Switch between inside and outside fitting and apply it."""
        self.fit(FitMode.OUTSIDE if self.fit_mode == FitMode.INSIDE else FitMode.INSIDE)

    def toggle_keep_zoom_pan(self) -> bool:
        """Toggle whether image changes and resizes keep the current transform."""
        self.keep_zoom_pan = not self.keep_zoom_pan
        return self.keep_zoom_pan

    # === Zoom ===

    def zoom_at_point(self, factor: float, origin: Optional[QPointF] = None) -> None:
        """
        Zoom by a factor keeping the image point under ``origin`` stationary.

        Args:
            factor: Multiplier applied to the current zoom
            origin: Screen position to zoom around, container center if None
        """
        if factor <= 0:
            return

        if origin is None:
            origin = QPointF(self.container_size.width() / 2, self.container_size.height() / 2)

        old_zoom = self.state.zoom
        new_zoom = self.clamp_zoom(old_zoom * factor)
        ratio = new_zoom / old_zoom
        pan = self.state.pan

        self.state = ViewportState(
            zoom=new_zoom,
            pan=QPointF(
                origin.x() - (origin.x() - pan.x()) * ratio,
                origin.y() - (origin.y() - pan.y()) * ratio,
            ),
        )
        self.changed.emit()

    def zoom_in(self) -> None:
        """Toolbar zoom in around the container center."""
        self.zoom_at_point(self.config.wheel_zoom_in_factor)

    def zoom_out(self) -> None:
        """Toolbar zoom out around the container center."""
        self.zoom_at_point(1 / self.config.wheel_zoom_in_factor)

    def wheel(self, delta: float, pos: QPointF) -> None:
        """
        Zoom for a wheel step at the cursor.

        Args:
            delta: Wheel delta, positive when scrolling forward (zoom in)
            pos: Cursor position in screen coordinates
        """
        if delta == 0:
            return
        factor = self.config.wheel_zoom_in_factor if delta > 0 else self.config.wheel_zoom_out_factor
        self.zoom_at_point(factor, pos)

    # === Pan ===

    def begin_pan(self, pos: QPointF, modifiers: InputModifiers) -> bool:
        """
        Start panning if the configured pan modifier is held.

        Returns:
            True if the press was consumed by panning
        """
        if not modifiers.matches(self.config.pan_modifier):
            return False
        self._panning = True
        self._pan_start = QPointF(pos)
        return True

    def pan_to(self, pos: QPointF) -> None:
        """Continue a pan; the raw screen delta is added to the offset."""
        if not self._panning:
            return
        delta = QPointF(pos.x() - self._pan_start.x(), pos.y() - self._pan_start.y())
        self._pan_start = QPointF(pos)
        self.pan_by(delta)

    def pan_by(self, delta: QPointF) -> None:
        pan = self.state.pan
        self.state = ViewportState(
            zoom=self.state.zoom,
            pan=QPointF(pan.x() + delta.x(), pan.y() + delta.y()),
        )
        self.changed.emit()

    def end_pan(self) -> None:
        self._panning = False
