"""Snapshot-based undo/redo history for per-image shape collections."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterator, List, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from .models import Shape, clone_shapes

logger = logging.getLogger(__name__)


def shapes_equal(a: List[Shape], b: List[Shape]) -> bool:
    """
    Compare two shape collections irrespective of order.

    Collections are equal when they have the same length and, sorted by
    id, every pair matches on id, kind, text, category and exact point
    coordinates.
    """
    if len(a) != len(b):
        return False

    sorted_a = sorted(a, key=lambda s: s.id)
    sorted_b = sorted(b, key=lambda s: s.id)

    for left, right in zip(sorted_a, sorted_b):
        if (
            left.id != right.id or
            left.kind != right.kind or
            left.text != right.text or
            left.category != right.category
        ):
            return False
        if len(left.points) != len(right.points):
            return False
        for p, q in zip(left.points, right.points):
            # QPointF.__eq__ is fuzzy, snapshots need exact equality
            if p.x() != q.x() or p.y() != q.y():
                return False
    return True


@dataclass
class HistoryEntry:
    """Undo and redo snapshots for a single image."""

    past: List[List[Shape]] = field(default_factory=list)
    future: List[List[Shape]] = field(default_factory=list)


class HistoryStack(QObject):
    """
    Manages per-image undo/redo snapshots.

    Every entry is a deep copy of a whole shape collection. Recording a
    new snapshot clears the redo stack, and consecutive identical
    snapshots are only stored once.
    """

    state_changed = pyqtSignal()

    def __init__(self, max_history: int = 100) -> None:
        """
        Initialize the history stack.

        Args:
            max_history: Maximum number of undo snapshots kept per image
        """
        super().__init__()
        self._entries: Dict[Hashable, HistoryEntry] = {}
        self._max_history = max(1, max_history)
        self._suppressed = False

    @property
    def is_suppressed(self) -> bool:
        return self._suppressed

    @contextmanager
    def suppressed(self) -> Iterator[None]:
        """Ignore every record() made inside the block (used while replaying)."""
        previous = self._suppressed
        self._suppressed = True
        try:
            yield
        finally:
            self._suppressed = previous

    def entry(self, image_id: Hashable) -> HistoryEntry:
        """Get the history entry for an image, creating it lazily."""
        if image_id not in self._entries:
            self._entries[image_id] = HistoryEntry()
        return self._entries[image_id]

    def record(self, image_id: Hashable, before: List[Shape], after: List[Shape]) -> bool:
        """
        Record a change of an image's shape collection.

        Args:
            image_id: Image the collection belongs to
            before: Collection before the change
            after: Collection after the change

        Returns:
            True if a snapshot was pushed
        """
        if self._suppressed:
            return False
        if shapes_equal(before, after):
            return False

        entry = self.entry(image_id)
        if entry.past and shapes_equal(entry.past[-1], before):
            return False

        entry.past.append(clone_shapes(before))
        entry.future.clear()

        while len(entry.past) > self._max_history:
            entry.past.pop(0)

        logger.debug(f"Recorded snapshot for image {image_id} ({len(entry.past)} undo steps)")
        self.state_changed.emit()
        return True

    def undo(self, image_id: Hashable, current: List[Shape]) -> Optional[List[Shape]]:
        """
        Step back one snapshot.

        Args:
            image_id: Image to undo on
            current: The live collection, pushed onto the redo stack

        Returns:
            Copy of the snapshot to apply, or None if there is nothing to undo
        """
        entry = self._entries.get(image_id)
        if entry is None or not entry.past:
            return None

        snapshot = entry.past.pop()
        entry.future.append(clone_shapes(current))

        logger.debug(f"Undo on image {image_id}")
        self.state_changed.emit()
        return clone_shapes(snapshot)

    def redo(self, image_id: Hashable, current: List[Shape]) -> Optional[List[Shape]]:
        """
        Step forward one snapshot.

        Args:
            image_id: Image to redo on
            current: The live collection, pushed onto the undo stack

        Returns:
            Copy of the snapshot to apply, or None if there is nothing to redo
        """
        entry = self._entries.get(image_id)
        if entry is None or not entry.future:
            return None

        snapshot = entry.future.pop()
        entry.past.append(clone_shapes(current))

        logger.debug(f"Redo on image {image_id}")
        self.state_changed.emit()
        return clone_shapes(snapshot)

    def can_undo(self, image_id: Hashable) -> bool:
        """Check if undo is available for an image."""
        entry = self._entries.get(image_id)
        return bool(entry and entry.past)

    def can_redo(self, image_id: Hashable) -> bool:
        """Check if redo is available for an image."""
        entry = self._entries.get(image_id)
        return bool(entry and entry.future)

    def undo_count(self, image_id: Hashable) -> int:
        entry = self._entries.get(image_id)
        return len(entry.past) if entry else 0

    def redo_count(self, image_id: Hashable) -> int:
        entry = self._entries.get(image_id)
        return len(entry.future) if entry else 0

    def clear(self, image_id: Optional[Hashable] = None) -> None:
        """
        Discard history.

        Args:
            image_id: Image whose history to drop, or None to drop everything
        """
        if image_id is None:
            self._entries.clear()
        else:
            self._entries.pop(image_id, None)
        self.state_changed.emit()

    def rename_category(self, old: str, new: str) -> None:
        """Rewrite a category name in every stored snapshot of every image."""
        for entry in self._entries.values():
            for snapshot in entry.past + entry.future:
                for shape in snapshot:
                    if shape.category == old:
                        shape.category = new

    def set_max_history(self, max_history: int) -> None:
        """
        Update the maximum history size.

        Args:
            max_history: New maximum number of snapshots to keep per image
        """
        self._max_history = max(1, max_history)

        for entry in self._entries.values():
            while len(entry.past) > self._max_history:
                entry.past.pop(0)

        self.state_changed.emit()
