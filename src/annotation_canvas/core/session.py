"""Annotation session: shapes, categories, masks and history for the open image."""

from __future__ import annotations

import logging
from typing import Dict, Hashable, Iterable, List, Optional

from PyQt6.QtCore import QObject, QPointF, pyqtSignal
from PyQt6.QtGui import QColor

from .backend import AnnotationBackend, BackendError
from .config import CanvasConfig
from .history import HistoryStack, shapes_equal
from .models import (
    Category,
    PromptPoint,
    SegmentationMask,
    Shape,
    ShapeKind,
    clone_shapes,
)

logger = logging.getLogger(__name__)

NO_CATEGORY_MESSAGE = "Create/select a category before adding points."


class AnnotationSession(QObject):
    """
    Owns the annotation state of the loaded images.

    Every replacement of an image's shape collection that should be
    undoable goes through :meth:`commit_shapes`, :meth:`add_shape`,
    :meth:`delete_shapes` or :meth:`clear_shapes`, which record a history
    snapshot and then issue exactly one backend call. Local state is
    updated before the call and is left as is when the call fails.
    """

    image_changed = pyqtSignal(object)
    shapes_changed = pyqtSignal()
    selection_changed = pyqtSignal()
    categories_changed = pyqtSignal()
    masks_changed = pyqtSignal()
    highlight_requested = pyqtSignal(str)
    notification = pyqtSignal(str, str)  # message, severity
    busy_started = pyqtSignal(str)
    busy_finished = pyqtSignal()

    def __init__(self, backend: AnnotationBackend, config: Optional[CanvasConfig] = None) -> None:
        """
        Initialize the session.

        Args:
            backend: Collaborator that persists shapes and generates masks
            config: Canvas configuration
        """
        super().__init__()
        self.backend = backend
        self.config = config or CanvasConfig()
        self.history = HistoryStack(self.config.max_history_entries)

        self.image_id: Optional[Hashable] = None
        self.categories: List[Category] = []
        self.active_category: Optional[str] = None

        self._shapes: Dict[Hashable, List[Shape]] = {}
        self._masks: Dict[Hashable, Dict[str, SegmentationMask]] = {}
        self._selection: List[str] = []
        self._applying_history = False
        self._next_category_id = 1

    # === Images ===

    def set_image(
        self,
        image_id: Hashable,
        shapes: Optional[List[Shape]] = None,
        masks: Optional[List[SegmentationMask]] = None
    ) -> None:
        """
        Make an image current, optionally replacing its known state.

        Args:
            image_id: Identity of the image
            shapes: Authoritative shapes for the image, or None to keep what is loaded
            masks: Authoritative masks for the image, or None to keep what is loaded
        """
        self.image_id = image_id
        if shapes is not None:
            self._shapes[image_id] = clone_shapes(shapes)
        else:
            self._shapes.setdefault(image_id, [])
        if masks is not None:
            self._masks[image_id] = {mask.category: mask for mask in masks}
        else:
            self._masks.setdefault(image_id, {})

        self._selection = []
        logger.info(f"Image {image_id} loaded with {len(self._shapes[image_id])} shapes")

        self.image_changed.emit(image_id)
        self.shapes_changed.emit()
        self.selection_changed.emit()
        self.masks_changed.emit()

    def reload(self) -> None:
        """Forget every image and its history (project reload)."""
        self._shapes.clear()
        self._masks.clear()
        self._selection = []
        self.image_id = None
        self.history.clear()
        self.shapes_changed.emit()
        self.selection_changed.emit()
        self.masks_changed.emit()

    # === Shape access ===

    def shapes(self, image_id: Optional[Hashable] = None) -> List[Shape]:
        """Live shape list of an image (the current one by default)."""
        key = self.image_id if image_id is None else image_id
        if key is None:
            return []
        return self._shapes.setdefault(key, [])

    def snapshot(self) -> List[Shape]:
        """Deep copy of the current image's shapes."""
        return clone_shapes(self.shapes())

    def find_shape(self, shape_id: str) -> Optional[Shape]:
        for shape in self.shapes():
            if shape.id == shape_id:
                return shape
        return None

    # === Selection ===

    def selected_ids(self) -> List[str]:
        return list(self._selection)

    def selected_shapes(self) -> List[Shape]:
        selected = set(self._selection)
        return [shape for shape in self.shapes() if shape.id in selected]

    def set_selection(self, ids: Iterable[str]) -> None:
        known = {shape.id for shape in self.shapes()}
        selection = []
        for shape_id in ids:
            if shape_id in known and shape_id not in selection:
                selection.append(shape_id)
        if selection != self._selection:
            self._selection = selection
            self.selection_changed.emit()

    def clear_selection(self) -> None:
        self.set_selection([])

    # === Local (unrecorded) updates ===

    def update_local(self, shapes: List[Shape]) -> None:
        """
        Replace shapes by id without recording history or calling the backend.

        Used for live feedback while a drag is in progress.
        """
        current = self.shapes()
        by_id = {shape.id: shape for shape in shapes}
        for i, shape in enumerate(current):
            if shape.id in by_id:
                current[i] = by_id[shape.id].copy()
        self.shapes_changed.emit()

    def restore_local(self, snapshot: List[Shape]) -> None:
        """Replace the whole collection without recording history or calling the backend."""
        self._replace(snapshot)

    def _replace(self, shapes: List[Shape]) -> None:
        if self.image_id is None:
            return
        self._shapes[self.image_id] = clone_shapes(shapes)
        known = {shape.id for shape in shapes}
        selection = [i for i in self._selection if i in known]
        if selection != self._selection:
            self._selection = selection
            self.selection_changed.emit()
        self.shapes_changed.emit()

    # === Recorded edits ===

    @staticmethod
    def is_valid_shape(shape: Shape) -> bool:
        """Check the point-count and size invariants of a shape."""
        if shape.kind == ShapeKind.RECT:
            if len(shape.points) != 4:
                return False
            box = shape.bounding_rect()
            return box.width() > 0 and box.height() > 0
        return len(shape.points) >= 3

    def add_shape(self, shape: Shape) -> bool:
        """
        Append a new shape to the current image and save it.

        Returns:
            True if the shape was added
        """
        if self.image_id is None:
            logger.warning("Cannot add a shape without an image")
            return False
        if not self.is_valid_shape(shape):
            logger.warning(f"Rejected invalid {shape.kind.value} with {len(shape.points)} points")
            return False

        before = self.snapshot()
        self.shapes().append(shape.copy())
        self.history.record(self.image_id, before, self.shapes())
        self.shapes_changed.emit()

        self._save([shape])
        return True

    def commit_shapes(self, before: List[Shape], changed_ids: Iterable[str]) -> None:
        """
        Commit an edit already applied locally.

        Records ``before`` against the current collection and saves the
        changed shapes in one call.

        Args:
            before: Snapshot taken before the edit started
            changed_ids: Ids of the shapes the edit touched
        """
        if self.image_id is None:
            return
        if shapes_equal(before, self.shapes()):
            return
        self.history.record(self.image_id, before, self.shapes())
        self.shapes_changed.emit()

        wanted = set(changed_ids)
        changed = [shape for shape in self.shapes() if shape.id in wanted]
        if changed:
            self._save(changed)

    def set_shape_text(self, shape_id: str, text: str) -> None:
        """Commit a text edit of one shape."""
        shape = self.find_shape(shape_id)
        if shape is None or shape.text == text:
            return
        before = self.snapshot()
        shape.text = text
        self.commit_shapes(before, [shape_id])

    def delete_shapes(self, ids: Iterable[str]) -> None:
        """Remove shapes from the current image in one backend call."""
        ids = list(ids)
        if self.image_id is None or not ids:
            return

        before = self.snapshot()
        doomed = set(ids)
        self._shapes[self.image_id] = [s for s in self.shapes() if s.id not in doomed]
        self._selection = [i for i in self._selection if i not in doomed]
        self.history.record(self.image_id, before, self.shapes())

        self.shapes_changed.emit()
        self.selection_changed.emit()

        try:
            self.backend.delete_shapes(self.image_id, ids)
        except BackendError as e:
            self._report("delete shapes", e)

    def clear_shapes(self) -> None:
        """Bulk remove every shape of the current image."""
        ids = [shape.id for shape in self.shapes()]
        if ids:
            self.delete_shapes(ids)

    def _save(self, shapes: List[Shape]) -> None:
        """Save shapes and reconcile the answer into local state without recording it."""
        image_id = self.image_id
        try:
            saved = self.backend.save_shapes(image_id, clone_shapes(shapes))
        except BackendError as e:
            self._report("save shapes", e)
            return

        current = self.shapes(image_id)
        positions = {shape.id: i for i, shape in enumerate(current)}
        reconciled = False
        for requested, answer in zip(shapes, saved):
            index = positions.get(requested.id)
            if index is None:
                continue
            if answer.id != requested.id and requested.id in self._selection:
                self._selection = [answer.id if i == requested.id else i for i in self._selection]
            current[index] = answer.copy()
            reconciled = True

        if reconciled:
            self.shapes_changed.emit()

    def _report(self, action: str, error: Exception) -> None:
        message = f"Failed to {action}: {error}"
        logger.error(message)
        self.notification.emit(message, "error")

    # === Undo / redo ===

    def can_undo(self) -> bool:
        return self.image_id is not None and self.history.can_undo(self.image_id)

    def can_redo(self) -> bool:
        return self.image_id is not None and self.history.can_redo(self.image_id)

    def undo(self) -> bool:
        """Restore the previous snapshot of the current image."""
        return self._step(self.history.undo)

    def redo(self) -> bool:
        """Re-apply the next snapshot of the current image."""
        return self._step(self.history.redo)

    def _step(self, pop) -> bool:
        if self._applying_history or self.image_id is None:
            return False

        current = self.shapes()
        snapshot = pop(self.image_id, current)
        if snapshot is None:
            return False

        self._applying_history = True
        try:
            with self.history.suppressed():
                previous_ids = [shape.id for shape in current]
                self._replace(snapshot)
                self._sync(previous_ids, snapshot)
        finally:
            self._applying_history = False
        return True

    def _sync(self, previous_ids: List[str], target: List[Shape]) -> None:
        """Bring the backend in line with a restored snapshot."""
        target_ids = {shape.id for shape in target}
        removed = [i for i in previous_ids if i not in target_ids]

        try:
            if removed:
                self.backend.delete_shapes(self.image_id, removed)
            if not target and not removed:
                self.backend.delete_shapes(self.image_id, [])
        except BackendError as e:
            self._report("delete shapes", e)

        if target:
            self._save(target)

    # === Categories ===

    def category(self, name: Optional[str]) -> Optional[Category]:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def add_category(self, name: str, color: Optional[str] = None) -> Optional[Category]:
        """
        Add a category.

        Args:
            name: Unique category name
            color: ``rgba(...)`` or ``#rrggbb`` color string

        Returns:
            The new category, or None if the name is empty or taken
        """
        name = name.strip()
        if not name:
            return None
        if self.category(name) is not None:
            self.notification.emit(f"Category '{name}' already exists", "warning")
            return None

        category = Category.from_color_string(self._next_category_id, name, color)
        self._next_category_id += 1
        self.categories.append(category)
        logger.info(f"Added category '{name}'")
        self.categories_changed.emit()
        return category

    def rename_category(self, old: str, new: str) -> bool:
        """Rename a category and every shape and mask referring to it."""
        new = new.strip()
        category = self.category(old)
        if category is None or not new or old == new:
            return False
        if self.category(new) is not None:
            self.notification.emit(f"Category '{new}' already exists", "warning")
            return False

        category.name = new
        for shapes in self._shapes.values():
            for shape in shapes:
                if shape.category == old:
                    shape.category = new
        for masks in self._masks.values():
            if old in masks:
                mask = masks.pop(old)
                mask.category = new
                masks[new] = mask
        self.history.rename_category(old, new)
        if self.active_category == old:
            self.active_category = new

        logger.info(f"Renamed category '{old}' to '{new}'")
        self.categories_changed.emit()
        self.shapes_changed.emit()
        self.masks_changed.emit()
        return True

    def delete_category(self, name: str) -> bool:
        """
        Remove a category and its masks on every image.

        Shapes keep their category name. The first remaining category
        becomes active when the deleted one was active.
        """
        category = self.category(name)
        if category is None:
            return False

        self.categories.remove(category)
        for masks in self._masks.values():
            masks.pop(name, None)
        if self.active_category == name:
            self.active_category = self.categories[0].name if self.categories else None

        logger.info(f"Deleted category '{name}'")
        self.categories_changed.emit()
        self.masks_changed.emit()
        return True

    def set_category_color(
        self,
        name: str,
        color: Optional[QColor] = None,
        opacity: Optional[float] = None
    ) -> bool:
        """Change the mask color and/or opacity of a category."""
        category = self.category(name)
        if category is None:
            return False
        if color is not None and color.isValid():
            category.color = QColor(color.red(), color.green(), color.blue())
        if opacity is not None:
            category.opacity = min(max(float(opacity), 0.0), 1.0)

        self.categories_changed.emit()
        self.masks_changed.emit()
        return True

    def select_category(self, name: Optional[str]) -> None:
        """
        Make a category active.

        The category's mask is flashed and the category is applied to
        every selected shape.
        """
        if name is not None and self.category(name) is None:
            logger.warning(f"Unknown category '{name}'")
            return

        self.active_category = name
        self.categories_changed.emit()
        if name is None:
            return
        self.highlight_requested.emit(name)

        targets = [shape for shape in self.selected_shapes() if shape.category != name]
        if not targets:
            return
        before = self.snapshot()
        for shape in targets:
            shape.category = name
        self.commit_shapes(before, [shape.id for shape in targets])

    # === Text recognition ===

    def recognize_selected(self) -> bool:
        """Recognize the text of the selected shapes and merge the answer by id."""
        selected = self.selected_shapes()
        if not selected:
            self.notification.emit("Select shapes to recognize", "info")
            return False

        self.busy_started.emit("Recognizing text")
        try:
            results = self.backend.recognize_text(self.image_id, clone_shapes(selected))
        except BackendError as e:
            self._report("recognize text", e)
            return False
        finally:
            self.busy_finished.emit()

        before = self.snapshot()
        current = self.shapes()
        positions = {shape.id: i for i, shape in enumerate(current)}
        for result in results:
            if result.id in positions:
                current[positions[result.id]] = result.copy()
            else:
                current.append(result.copy())

        self.history.record(self.image_id, before, current)
        self.shapes_changed.emit()
        return True

    # === Masks ===

    def masks(self, image_id: Optional[Hashable] = None) -> List[SegmentationMask]:
        """Masks of an image in category order."""
        key = self.image_id if image_id is None else image_id
        if key is None:
            return []
        masks = self._masks.get(key, {})
        order = {category.name: i for i, category in enumerate(self.categories)}
        return sorted(masks.values(), key=lambda mask: order.get(mask.category, len(order)))

    def mask(self, category: str) -> Optional[SegmentationMask]:
        if self.image_id is None:
            return None
        return self._masks.get(self.image_id, {}).get(category)

    def add_prompt_point(self, point: QPointF, include: bool = True) -> bool:
        """
        Add a prompt point to the active category's mask and regenerate it.

        Args:
            point: Image-space position
            include: Include (True) or exclude (False) point

        Returns:
            True if a new mask was generated
        """
        category = self.active_category
        if category is None or self.category(category) is None:
            self.notification.emit(NO_CATEGORY_MESSAGE, "warning")
            return False
        if self.image_id is None:
            return False

        masks = self._masks.setdefault(self.image_id, {})
        mask = masks.setdefault(category, SegmentationMask(category=category))
        points = mask.points + [PromptPoint(point.x(), point.y(), include)]
        mask.points = points
        self.masks_changed.emit()

        self.busy_started.emit("Generating mask")
        try:
            result = self.backend.generate_mask(self.image_id, points, category)
        except BackendError as e:
            self._report("generate mask", e)
            return False
        finally:
            self.busy_finished.emit()

        mask.raster = result.raster
        mask.points = list(result.points) or points
        logger.debug(f"Mask for '{category}' regenerated from {len(mask.points)} points")
        self.masks_changed.emit()
        return True

    def clear_mask_points(self, category: Optional[str] = None) -> None:
        """Remove a category's mask (the active one by default)."""
        category = category or self.active_category
        if category is None or self.image_id is None:
            return
        masks = self._masks.get(self.image_id, {})
        if masks.pop(category, None) is None:
            return
        self.masks_changed.emit()

        try:
            self.backend.delete_mask(self.image_id, category)
        except BackendError as e:
            self._report("delete mask", e)
