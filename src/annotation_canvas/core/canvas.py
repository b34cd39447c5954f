"""Input routing between the viewport, the shape editor and mask prompting."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Hashable, List, Optional

from PyQt6.QtCore import QObject, QPointF, pyqtSignal

from ..workers.raster_loader import MaskSource
from .compositor import MaskCompositor
from .config import CanvasConfig
from .editor import ShapeEditor, Tool
from .input import NO_MODIFIERS, InputModifiers, MouseButton
from .models import SegmentationMask, Shape, parse_color
from .session import AnnotationSession
from .viewport import ViewportController

logger = logging.getLogger(__name__)


class CanvasMode(str, Enum):
    """What pointer input on the image edits."""

    SHAPES = "shapes"
    MASK = "mask"


class CanvasController(QObject):
    """
    Wires the canvas components together and routes input to them.

    The viewport sees every event first (wheel zoom, modifier panning);
    remaining events go to the shape editor, or become prompt points in
    mask mode (left click includes, right click excludes).
    """

    repaint_requested = pyqtSignal()
    mode_changed = pyqtSignal(str)

    def __init__(
        self,
        session: AnnotationSession,
        config: Optional[CanvasConfig] = None,
        asynchronous_masks: bool = True
    ) -> None:
        """
        Initialize the controller.

        Args:
            session: Annotation state of the loaded images
            config: Canvas configuration
            asynchronous_masks: Decode mask rasters on a worker thread
        """
        super().__init__()
        self.config = config or session.config
        self.session = session
        self.viewport = ViewportController(self.config)
        self.editor = ShapeEditor(self.viewport, session, self.config)
        self.compositor = MaskCompositor(self.config)
        self.asynchronous_masks = asynchronous_masks
        self.mode = CanvasMode.SHAPES

        self.session.masks_changed.connect(self.refresh_masks)
        self.session.categories_changed.connect(self.refresh_masks)
        self.session.highlight_requested.connect(self.compositor.flash)

        for signal in (
            self.viewport.changed,
            self.editor.state_changed,
            self.session.shapes_changed,
            self.session.selection_changed,
            self.compositor.composited,
            self.compositor.cleared,
        ):
            signal.connect(self._request_repaint)

    def _request_repaint(self, *args) -> None:
        self.repaint_requested.emit()

    # === Image and mode ===

    def set_image(
        self,
        image_id: Hashable,
        width: int,
        height: int,
        shapes: Optional[List[Shape]] = None,
        masks: Optional[List[SegmentationMask]] = None
    ) -> None:
        """
        Show a new image.

        Resets the editor to the select tool and refits the viewport unless
        zoom/pan is kept.
        """
        self.editor.reset()
        self.viewport.on_image_loaded(width, height)
        self.session.set_image(image_id, shapes, masks)

    def close_image(self) -> None:
        """Drop the current image and every loaded annotation."""
        self.editor.reset()
        self.session.reload()

    def set_mode(self, mode: CanvasMode) -> None:
        mode = CanvasMode(mode)
        if mode == self.mode:
            return
        self.editor.cancel()
        self.mode = mode
        logger.debug(f"Canvas mode set to {mode.value}")
        self.mode_changed.emit(mode.value)

    def resize(self, width: float, height: float) -> None:
        """Container was resized (already debounced by the widget)."""
        self.viewport.on_container_resized(width, height)

    # === Masks ===

    def mask_sources(self) -> List[MaskSource]:
        """Masks of the current image with their category colors, in drawing order."""
        sources = []
        for mask in self.session.masks():
            if mask.raster is None:
                continue
            category = self.session.category(mask.category)
            if category is not None:
                color, opacity = category.color, category.opacity
            else:
                color, opacity = parse_color(None)
            sources.append(MaskSource(mask.raster, color, opacity, mask.category))
        return sources

    def refresh_masks(self) -> None:
        """Recomposite the masks of the current image."""
        size = self.viewport.image_size
        sources = self.mask_sources()
        if not sources or size.width() <= 0 or size.height() <= 0:
            self.compositor.clear()
            return
        self.compositor.request(
            sources,
            (int(size.width()), int(size.height())),
            asynchronous=self.asynchronous_masks,
        )

    # === Pointer input ===

    def press(
        self,
        pos: QPointF,
        button: MouseButton = MouseButton.LEFT,
        modifiers: InputModifiers = NO_MODIFIERS
    ) -> None:
        if button == MouseButton.LEFT and self.viewport.begin_pan(pos, modifiers):
            return

        if self.mode == CanvasMode.MASK:
            if button in (MouseButton.LEFT, MouseButton.RIGHT):
                self.session.add_prompt_point(
                    self.viewport.screen_to_image(pos),
                    include=button == MouseButton.LEFT,
                )
            return

        self.editor.press(pos, button, modifiers)

    def move(self, pos: QPointF) -> None:
        if self.viewport.is_panning:
            self.viewport.pan_to(pos)
            return
        if self.mode == CanvasMode.SHAPES:
            self.editor.move(pos)

    def release(self, pos: QPointF, button: MouseButton = MouseButton.LEFT) -> None:
        if self.viewport.is_panning:
            self.viewport.end_pan()
            return
        if self.mode == CanvasMode.SHAPES:
            self.editor.release(pos, button)

    def double_click(self, pos: QPointF) -> None:
        """A quick second click; in rectangle mode it still places a corner."""
        if self.mode != CanvasMode.SHAPES:
            return
        if self.editor.tool == Tool.RECT:
            self.editor.press(pos)
        else:
            self.editor.double_click(pos)

    def wheel(self, delta: float, pos: QPointF) -> None:
        self.viewport.wheel(delta, pos)

    def leave(self) -> None:
        self.viewport.end_pan()
        self.editor.leave()

    # === Keyboard input ===

    def key_press(self, key: str, modifiers: InputModifiers = NO_MODIFIERS) -> bool:
        """
        Handle a key by name.

        Returns:
            True if the key was consumed
        """
        if modifiers.matches("ctrl") and key in ("Z", "Y"):
            # History is frozen until the drag is released or cancelled
            if self.editor.is_dragging:
                return False
            if (key == "Z" and modifiers.shift) or key == "Y":
                return self.session.redo()
            if key == "Z":
                return self.session.undo()
        if self.mode == CanvasMode.MASK:
            return False
        return self.editor.key_press(key, modifiers)
