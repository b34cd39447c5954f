"""Main window hosting the annotation canvas."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QActionGroup, QColor, QPixmap
from PyQt6.QtWidgets import (
    QApplication, QColorDialog, QDockWidget, QFileDialog, QInputDialog,
    QListWidget, QListWidgetItem, QMainWindow, QMessageBox, QPushButton, QStatusBar,
    QToolBar, QVBoxLayout, QWidget
)

from ..core.backend import AnnotationBackend, InMemoryBackend
from ..core.canvas import CanvasController, CanvasMode
from ..core.config import ConfigManager
from ..core.editor import Tool
from ..core.session import AnnotationSession
from .canvas_widget import CanvasWidget

logger = logging.getLogger(__name__)

IMAGE_FILTER = "Images (*.png *.jpg *.jpeg *.bmp *.gif *.webp)"
STATUS_TIMEOUT_MS = 5000


class MainWindow(QMainWindow):
    """
    Main application window.

    Provides the canvas, a toolbar with tools, undo/redo and view
    actions, and a category list.
    """

    def __init__(
        self,
        backend: Optional[AnnotationBackend] = None,
        config_manager: Optional[ConfigManager] = None
    ) -> None:
        """
        Initialize the main window.

        Args:
            backend: Backend used by the session, in-memory if None
            config_manager: Configuration source
        """
        super().__init__()

        self.config_manager = config_manager or ConfigManager()
        self.backend = backend or InMemoryBackend()
        self.session = AnnotationSession(self.backend, self.config)
        self.controller = CanvasController(self.session, self.config)

        self.tool_actions: Dict[str, QAction] = {}
        self.canvas: Optional[CanvasWidget] = None
        self.category_list: Optional[QListWidget] = None
        self.status_bar: Optional[QStatusBar] = None

        self._init_ui()
        self._setup_connections()

        logger.info("MainWindow initialization complete")

    @property
    def config(self):
        """Get the current configuration."""
        return self.config_manager.config

    def _init_ui(self) -> None:
        """Initialize the user interface."""
        self.setWindowTitle("Annotation Canvas")
        self.setGeometry(100, 100, 1200, 800)

        self.canvas = CanvasWidget(self.controller)
        self.setCentralWidget(self.canvas)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)

        self._create_category_dock()
        self._create_toolbar()

    def _create_toolbar(self) -> None:
        """Create the main toolbar."""
        toolbar = QToolBar()
        toolbar.setObjectName("MainToolBar")
        self.addToolBar(toolbar)

        open_action = QAction("Open Image", self)
        open_action.setShortcut("Ctrl+O")
        open_action.triggered.connect(self._open_image)
        toolbar.addAction(open_action)

        close_action = QAction("Close Image", self)
        close_action.triggered.connect(self.close_image)
        toolbar.addAction(close_action)

        toolbar.addSeparator()

        self.undo_action = QAction("Undo", self)
        self.undo_action.triggered.connect(self.session.undo)
        self.undo_action.setEnabled(False)
        toolbar.addAction(self.undo_action)

        self.redo_action = QAction("Redo", self)
        self.redo_action.triggered.connect(self.session.redo)
        self.redo_action.setEnabled(False)
        toolbar.addAction(self.redo_action)

        toolbar.addSeparator()

        # Drawing tools; mask prompting shares the group
        tools = QActionGroup(self)
        for name, label in (
            (Tool.SELECT.value, "Select"),
            (Tool.RECT.value, "Draw Rectangle"),
            (Tool.POLYGON.value, "Draw Polygon"),
            (CanvasMode.MASK.value, "Mask Points"),
        ):
            action = QAction(label, self)
            action.setCheckable(True)
            action.triggered.connect(lambda checked, n=name: self._set_tool(n))
            tools.addAction(action)
            toolbar.addAction(action)
            self.tool_actions[name] = action
        self.tool_actions[Tool.SELECT.value].setChecked(True)

        toolbar.addSeparator()

        zoom_in_action = QAction("Zoom In", self)
        zoom_in_action.setShortcut("Ctrl+=")
        zoom_in_action.triggered.connect(self.controller.viewport.zoom_in)
        toolbar.addAction(zoom_in_action)

        zoom_out_action = QAction("Zoom Out", self)
        zoom_out_action.setShortcut("Ctrl+-")
        zoom_out_action.triggered.connect(self.controller.viewport.zoom_out)
        toolbar.addAction(zoom_out_action)

        fit_action = QAction("Toggle Fit", self)
        fit_action.setShortcut("Ctrl+0")
        fit_action.triggered.connect(self.controller.viewport.toggle_fit)
        toolbar.addAction(fit_action)

        keep_action = QAction("Keep Zoom/Pan", self)
        keep_action.setCheckable(True)
        keep_action.setChecked(self.controller.viewport.keep_zoom_pan)
        keep_action.triggered.connect(self._toggle_keep_zoom_pan)
        toolbar.addAction(keep_action)

        toolbar.addSeparator()

        recognize_action = QAction("Recognize Text", self)
        recognize_action.triggered.connect(self.session.recognize_selected)
        toolbar.addAction(recognize_action)

        clear_mask_action = QAction("Clear Mask", self)
        clear_mask_action.triggered.connect(lambda: self.session.clear_mask_points())
        toolbar.addAction(clear_mask_action)

    def _create_category_dock(self) -> None:
        """Create the category list dock."""
        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.category_list = QListWidget()
        self.category_list.itemClicked.connect(self._on_category_clicked)
        self.category_list.itemDoubleClicked.connect(self._rename_category)
        layout.addWidget(self.category_list)

        add_button = QPushButton("Add Category")
        add_button.clicked.connect(self._add_category)
        layout.addWidget(add_button)

        color_button = QPushButton("Change Color")
        color_button.clicked.connect(self._change_category_color)
        layout.addWidget(color_button)

        delete_button = QPushButton("Delete Category")
        delete_button.clicked.connect(self._delete_category)
        layout.addWidget(delete_button)

        dock = QDockWidget("Categories", self)
        dock.setObjectName("CategoriesDock")
        dock.setWidget(widget)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, dock)

    def _setup_connections(self) -> None:
        """Connect session and controller signals to the UI."""
        self.session.history.state_changed.connect(self._update_undo_redo_actions)
        self.session.image_changed.connect(lambda _: self._update_undo_redo_actions())
        self.session.categories_changed.connect(self._refresh_categories)
        self.session.notification.connect(self._show_notification)
        self.session.busy_started.connect(self._on_busy_started)
        self.session.busy_finished.connect(self._on_busy_finished)
        self.controller.editor.tool_changed.connect(self._on_tool_changed)

    # === Actions ===

    def _open_image(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open Image", "", IMAGE_FILTER)
        if path:
            self.load_image(path)

    def load_image(self, path: str) -> bool:
        """Load an image file and show it on the canvas."""
        pixmap = QPixmap(path)
        if pixmap.isNull():
            logger.error(f"Failed to load image: {path}")
            self._show_notification(f"Failed to load image: {path}", "error")
            return False

        if isinstance(self.backend, InMemoryBackend):
            self.backend.set_image_size(path, pixmap.width(), pixmap.height())

        self.canvas.set_pixmap(pixmap)
        self.controller.set_image(path, pixmap.width(), pixmap.height())
        self.setWindowTitle(f"Annotation Canvas - {Path(path).name}")
        logger.info(f"Displayed image {path}")
        return True

    def close_image(self) -> None:
        """Drop the displayed image together with every loaded annotation."""
        self.canvas.set_pixmap(None)
        self.controller.close_image()
        self.setWindowTitle("Annotation Canvas")

    def _set_tool(self, name: str) -> None:
        if name == CanvasMode.MASK.value:
            self.controller.set_mode(CanvasMode.MASK)
            return
        self.controller.set_mode(CanvasMode.SHAPES)
        self.controller.editor.set_tool(Tool(name))

    def _on_tool_changed(self, name: str) -> None:
        action = self.tool_actions.get(name)
        if action is not None and self.controller.mode == CanvasMode.SHAPES:
            action.setChecked(True)

    def _toggle_keep_zoom_pan(self) -> None:
        keep = self.controller.viewport.toggle_keep_zoom_pan()
        self.config_manager.update(keep_zoom_pan=keep)

    def _update_undo_redo_actions(self) -> None:
        self.undo_action.setEnabled(self.session.can_undo())
        self.redo_action.setEnabled(self.session.can_redo())

    # === Categories ===

    def _refresh_categories(self) -> None:
        self.category_list.clear()
        for category in self.session.categories:
            item = QListWidgetItem(category.name)
            item.setForeground(category.color)
            self.category_list.addItem(item)
            if category.name == self.session.active_category:
                item.setSelected(True)

    def _add_category(self) -> None:
        name, ok = QInputDialog.getText(self, "Add Category", "Enter category name:")
        if not ok or not name:
            return
        color = QColorDialog.getColor(QColor(0, 200, 0), self, "Category Color")
        self.session.add_category(name, color.name() if color.isValid() else None)

    def _rename_category(self, item: QListWidgetItem) -> None:
        old = item.text()
        new, ok = QInputDialog.getText(self, "Rename Category", "Enter new name:", text=old)
        if ok and new:
            self.session.rename_category(old, new)

    def _current_category(self) -> Optional[str]:
        item = self.category_list.currentItem()
        return item.text() if item is not None else self.session.active_category

    def _change_category_color(self) -> None:
        name = self._current_category()
        category = self.session.category(name) if name else None
        if category is None:
            return
        initial = QColor(category.color)
        initial.setAlphaF(category.opacity)
        color = QColorDialog.getColor(
            initial, self, "Category Color", QColorDialog.ColorDialogOption.ShowAlphaChannel
        )
        if color.isValid():
            self.session.set_category_color(name, color, color.alphaF())

    def _delete_category(self) -> None:
        name = self._current_category()
        if not name:
            return
        answer = QMessageBox.question(
            self, "Delete Category", f"Delete category '{name}' and its masks?"
        )
        if answer == QMessageBox.StandardButton.Yes:
            self.session.delete_category(name)

    def _on_category_clicked(self, item: QListWidgetItem) -> None:
        self.session.select_category(item.text())

    # === Feedback ===

    def _show_notification(self, message: str, severity: str) -> None:
        self.status_bar.showMessage(message, STATUS_TIMEOUT_MS)

    def _on_busy_started(self, message: str) -> None:
        self.status_bar.showMessage(message)
        QApplication.setOverrideCursor(Qt.CursorShape.WaitCursor)

    def _on_busy_finished(self) -> None:
        QApplication.restoreOverrideCursor()
        self.status_bar.clearMessage()
