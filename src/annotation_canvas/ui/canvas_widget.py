"""Canvas widget painting the image, masks and shapes of an annotation session."""

from __future__ import annotations

import logging
from typing import Optional

from PyQt6.QtCore import QPointF, QRectF, Qt, QTimer
from PyQt6.QtGui import (
    QColor, QFont, QFontMetrics, QImage, QKeyEvent, QMouseEvent,
    QPainter, QPen, QPixmap, QPolygonF, QWheelEvent
)
from PyQt6.QtWidgets import QInputDialog, QWidget

from ..core.canvas import CanvasController, CanvasMode
from ..core.editor import DraftingPolygon, DraftingRect, Tool
from ..core.input import InputModifiers, MouseButton
from ..core.models import Shape

logger = logging.getLogger(__name__)

INCLUDE_POINT_COLOR = QColor(0, 200, 0)
EXCLUDE_POINT_COLOR = QColor(220, 0, 0)


class CanvasWidget(QWidget):
    """
    Paints the annotation canvas and forwards Qt input to a controller.

    The widget holds no editing state of its own. Resizes are debounced
    before the viewport refits.
    """

    def __init__(self, controller: CanvasController, parent: Optional[QWidget] = None) -> None:
        """
        Initialize the canvas widget.

        Args:
            controller: Controller owning viewport, editor and compositor
            parent: Parent widget
        """
        super().__init__(parent)
        self.controller = controller
        self.config = controller.config
        self.font_size = 10

        self._pixmap: Optional[QPixmap] = None
        self._mask_image: Optional[QImage] = None

        self._resize_timer = QTimer(self)
        self._resize_timer.setSingleShot(True)
        self._resize_timer.setInterval(self.config.resize_debounce_ms)
        self._resize_timer.timeout.connect(self._apply_resize)

        controller.repaint_requested.connect(self.update)
        controller.compositor.composited.connect(self._set_mask_image)
        controller.compositor.cleared.connect(self._clear_mask_image)

        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMinimumSize(200, 150)

    # === Image ===

    def set_pixmap(self, pixmap: Optional[QPixmap]) -> None:
        self._pixmap = pixmap
        self.controller.viewport.set_container_size(self.width(), self.height())
        self.update()

    def pixmap(self) -> Optional[QPixmap]:
        return self._pixmap

    def _set_mask_image(self, image: QImage) -> None:
        self._mask_image = image
        self.update()

    def _clear_mask_image(self) -> None:
        self._mask_image = None
        self.update()

    # === Qt events ===

    def resizeEvent(self, event) -> None:
        """Restart the debounce timer; the viewport refits once resizing settles."""
        super().resizeEvent(event)
        self._resize_timer.start()

    def _apply_resize(self) -> None:
        self.controller.resize(self.width(), self.height())

    def showEvent(self, event) -> None:
        super().showEvent(event)
        self._apply_resize()

    def wheelEvent(self, event: QWheelEvent) -> None:
        """Zoom at the cursor."""
        self.controller.wheel(event.angleDelta().y(), event.position())
        event.accept()

    def mousePressEvent(self, event: QMouseEvent) -> None:
        self.setFocus()
        modifiers = InputModifiers.from_qt(event.modifiers())
        self.controller.press(event.position(), MouseButton.from_qt(event.button()), modifiers)
        if self.controller.viewport.is_panning:
            self.setCursor(Qt.CursorShape.ClosedHandCursor)

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        self.controller.move(event.position())

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if self.controller.viewport.is_panning:
            self.unsetCursor()
        self.controller.release(event.position(), MouseButton.from_qt(event.button()))

    def mouseDoubleClickEvent(self, event: QMouseEvent) -> None:
        """Finish a polygon, or edit the text of the shape under the cursor."""
        editor = self.controller.editor
        if (
            self.controller.mode == CanvasMode.SHAPES and
            editor.tool == Tool.SELECT and
            event.button() == Qt.MouseButton.LeftButton
        ):
            image_pos = self.controller.viewport.screen_to_image(event.position())
            for shape in reversed(self.controller.session.shapes()):
                if shape.contains(image_pos):
                    self.edit_text(shape)
                    return
        self.controller.double_click(event.position())

    def leaveEvent(self, event) -> None:
        super().leaveEvent(event)
        self.unsetCursor()
        self.controller.leave()

    def keyPressEvent(self, event: QKeyEvent) -> None:
        try:
            key = Qt.Key(event.key()).name.removeprefix("Key_")
        except ValueError:
            super().keyPressEvent(event)
            return
        modifiers = InputModifiers.from_qt(event.modifiers())
        if not self.controller.key_press(key, modifiers):
            super().keyPressEvent(event)

    def edit_text(self, shape: Shape) -> None:
        """Edit the text of a shape."""
        text, ok = QInputDialog.getText(self, "Edit Text", "Enter text:", text=shape.text)
        if ok:
            self.controller.session.set_shape_text(shape.id, text)

    # === Painting ===

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), self.palette().window())

        viewport = self.controller.viewport
        zoom = viewport.zoom
        pan = viewport.pan

        painter.save()
        painter.translate(pan)
        painter.scale(zoom, zoom)

        image_rect = QRectF(0, 0, viewport.image_size.width(), viewport.image_size.height())
        if self._pixmap is not None and not self._pixmap.isNull():
            painter.drawPixmap(image_rect, self._pixmap, QRectF(self._pixmap.rect()))
        if self._mask_image is not None:
            painter.drawImage(image_rect, self._mask_image)

        selected = set(self.controller.session.selected_ids())
        for shape in self.controller.session.shapes():
            self._draw_shape(painter, shape, shape.id in selected)

        self._draw_draft(painter)
        self._draw_rubber_band(painter)
        if self.controller.mode == CanvasMode.MASK:
            self._draw_prompt_points(painter)

        painter.restore()
        painter.end()

    def _draw_shape(self, painter: QPainter, shape: Shape, selected: bool) -> None:
        """Draw a single shape with its text label and, when selected, its handles."""
        zoom = self.controller.viewport.zoom
        color = QColor(self.config.selected_color if selected else self.config.shape_color)

        painter.setPen(QPen(color, self.config.line_thickness / zoom))
        painter.setBrush(QColor(color.red(), color.green(), color.blue(), 48))
        painter.drawPolygon(QPolygonF(shape.points))

        label = shape.text or shape.category
        if label:
            self._draw_label(painter, label, shape.points[0], color)

        if selected:
            radius = self.config.handle_radius / zoom
            painter.setBrush(QColor(255, 255, 255))
            for point in shape.points:
                painter.drawEllipse(point, radius / 2, radius / 2)

    def _draw_label(self, painter: QPainter, label: str, point: QPointF, color: QColor) -> None:
        """Draw a label with background at the given position.

        The label size is adjusted inversely to the zoom level so it
        maintains a consistent visual size on screen.
        """
        zoom = self.controller.viewport.zoom
        adjusted_font_size = self.font_size / zoom
        font = QFont("Arial")
        font.setPointSizeF(adjusted_font_size)
        font_metrics = QFontMetrics(font)

        padding = 4 / zoom
        rect_width = font_metrics.horizontalAdvance(label) + 2 * padding
        rect_height = font_metrics.height() + 2 * padding
        background_rect = QRectF(point.x(), point.y() - rect_height, rect_width, rect_height)

        background_color = QColor(color)
        background_color.setAlpha(180)

        # Dark text on bright backgrounds
        brightness = (
            background_color.red() * 299 +
            background_color.green() * 587 +
            background_color.blue() * 114
        ) / 1000
        text_color = Qt.GlobalColor.black if brightness > 128 else Qt.GlobalColor.white

        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(background_color)
        painter.drawRect(background_rect)

        painter.setFont(font)
        painter.setPen(text_color)
        painter.drawText(background_rect, Qt.AlignmentFlag.AlignCenter, label)

    def _draw_draft(self, painter: QPainter) -> None:
        editor = self.controller.editor
        points = editor.draft_points()
        if not points:
            return

        zoom = self.controller.viewport.zoom
        pen = QPen(QColor(self.config.shape_color), self.config.line_thickness / zoom)
        pen.setStyle(Qt.PenStyle.DashLine)
        painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)

        if isinstance(editor.state, DraftingRect):
            painter.drawPolygon(QPolygonF(points))
        elif isinstance(editor.state, DraftingPolygon):
            painter.drawPolyline(QPolygonF(points))
            painter.setBrush(QColor(self.config.shape_color))
            for point in points[:-1]:
                painter.drawEllipse(point, 3 / zoom, 3 / zoom)

    def _draw_rubber_band(self, painter: QPainter) -> None:
        band = self.controller.editor.rubber_band_rect()
        if band is None:
            return
        zoom = self.controller.viewport.zoom
        pen = QPen(QColor(0, 120, 215), 1 / zoom)
        pen.setStyle(Qt.PenStyle.DashLine)
        painter.setPen(pen)
        painter.setBrush(QColor(0, 120, 215, 40))
        painter.drawRect(band)

    def _draw_prompt_points(self, painter: QPainter) -> None:
        zoom = self.controller.viewport.zoom
        radius = 5 / zoom
        painter.setPen(QPen(QColor(255, 255, 255), 1 / zoom))
        for mask in self.controller.session.masks():
            for point in mask.points:
                painter.setBrush(INCLUDE_POINT_COLOR if point.include else EXCLUDE_POINT_COLOR)
                painter.drawEllipse(QPointF(point.x, point.y), radius, radius)
