"""Pointer and keyboard interaction state machine for the annotation canvas."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from PyQt6.QtCore import QObject, QPointF, QSizeF, Qt, pyqtSignal
from PyQt6.QtGui import QImage

from .config import AppConfig
from .errors import (
    BoxNotFoundError,
    DegenerateBoxError,
    DuplicateLabelError,
    InvalidClassError,
)
from .geometry import Handle, Rect, handle_at
from .session import Session
from .store import AnnotationStore

logger = logging.getLogger(__name__)

# Asks the user for a new label given the current one; None means cancelled
LabelProvider = Callable[[str], Optional[str]]


class InteractionMode(str, Enum):
    """Active pointer gesture."""

    NONE = "none"
    DRAW = "draw"
    SELECT = "select"
    MOVE = "move"
    RESIZE = "resize"
    PAN = "pan"


@dataclass(frozen=True)
class PointerEvent:
    """Pointer event in viewport (logical pixel) coordinates."""

    position: QPointF
    button: Qt.MouseButton = Qt.MouseButton.LeftButton

    @property
    def is_primary(self) -> bool:
        return self.button == Qt.MouseButton.LeftButton


@dataclass(frozen=True)
class WheelEvent:
    """Wheel event; delta > 0 zooms in."""

    position: QPointF
    delta: float


@dataclass(frozen=True)
class KeyEvent:
    """
    Key press.

    key is a single character ("a", "+") or one of the names
    "left", "right", "delete", "backspace", "escape".
    """

    key: str
    ctrl: bool = False
    alt: bool = False
    meta: bool = False


@dataclass
class InteractionState:
    """Transient gesture state, reset when a gesture ends."""

    mode: InteractionMode = InteractionMode.NONE
    handle: Optional[Handle] = None
    anchor: Optional[QPointF] = None
    last: Optional[QPointF] = None
    dragging: bool = False
    # Image-space working copy of the edited box during move/resize
    working: Optional[Rect] = None

    def reset(self) -> None:
        self.mode = InteractionMode.NONE
        self.handle = None
        self.anchor = None
        self.last = None
        self.dragging = False
        self.working = None


def resize_cursor(handle: Handle) -> Qt.CursorShape:
    """Diagonal resize cursor matching a corner."""
    if handle in (Handle.NW, Handle.SE):
        return Qt.CursorShape.SizeFDiagCursor
    return Qt.CursorShape.SizeBDiagCursor


class InteractionController(QObject):
    """
    Turns typed pointer and key events into store edits.

    The controller is the only writer of the annotation store during
    interaction. Gestures edit a working copy; the store sees a single
    commit on pointer-up. All feedback goes out through signals.
    """

    repaint_requested = pyqtSignal()
    status_message = pyqtSignal(str)
    error_reported = pyqtSignal(str)
    selection_changed = pyqtSignal(object)  # Optional[int]
    annotations_changed = pyqtSignal()
    cursor_changed = pyqtSignal(object)  # Qt.CursorShape
    navigation_requested = pyqtSignal(int)
    export_requested = pyqtSignal()

    def __init__(
        self,
        session: Session,
        config: Optional[AppConfig] = None,
        label_provider: Optional[LabelProvider] = None,
        parent: Optional[QObject] = None
    ) -> None:
        """
        Initialize the controller.

        Args:
            session: Session whose store, transform and selection are edited
            config: Interaction tuning values
            label_provider: Callback used to ask for a new label on double-click
            parent: Parent QObject
        """
        super().__init__(parent)
        self.session = session
        self.config = config if config is not None else AppConfig()
        self.label_provider = label_provider
        self.state = InteractionState()
        self.viewport_size = QSizeF()

    @property
    def store(self) -> AnnotationStore:
        return self.session.store

    # === Image lifecycle ===

    def set_viewport_size(self, size: QSizeF, refit: bool = True) -> None:
        """Record the canvas size; the image is refitted on change."""
        self.viewport_size = QSizeF(size)
        if refit and self.session.has_image and self.fit_image():
            self.repaint_requested.emit()

    def fit_image(self) -> bool:
        return self.session.transform.fit_to_viewport(self.session.image_size(), self.viewport_size)

    def begin_image(self, index: int) -> Optional[int]:
        """
        Switch to an image and return the load token for its decode.

        Any gesture in progress is dropped.
        """
        self.state.reset()
        token = self.session.begin_load(index)
        if token is not None:
            self.selection_changed.emit(None)
            self.annotations_changed.emit()
            self.repaint_requested.emit()
        return token

    def navigate(self, delta: int) -> Optional[int]:
        if self.session.current_index < 0:
            return None
        return self.begin_image(self.session.current_index + delta)

    def image_loaded(self, token: int, image_id: str, image: QImage) -> bool:
        """Install a decoded image unless the result is stale."""
        if not self.session.accept_image(token, image_id, image):
            return False
        self.fit_image()
        self.update_cursor()
        self.status_message.emit(f"Showing {self.session.image_info()}")
        self.annotations_changed.emit()
        self.repaint_requested.emit()
        return True

    # === Actions ===

    def select_box(self, index: Optional[int]) -> None:
        """Select a box of the current image, or clear the selection with None."""
        if index == self.session.selected_index:
            return
        image_id = self.session.current_image_id
        if index is not None and (image_id is None or not (0 <= index < len(self.store.boxes(image_id)))):
            logger.warning(f"Cannot select annotation {index}: out of range")
            return
        self.session.selected_index = index
        self.selection_changed.emit(index)
        self.repaint_requested.emit()

    def set_current_class(self, label: Optional[str]) -> None:
        self.session.current_class = label or None

    def toggle_draw_mode(self) -> None:
        if self.session.current_entry is None:
            return
        self.session.draw_mode = not self.session.draw_mode
        self.select_box(None)
        self.state.reset()
        self.update_cursor()
        self.status_message.emit(
            "Draw mode enabled." if self.session.draw_mode else "Draw mode disabled."
        )

    def delete_selected(self) -> bool:
        """Delete the selected box of the current image."""
        image_id = self.session.current_image_id
        index = self.session.selected_index
        if image_id is None or index is None:
            self.status_message.emit("No annotation selected to delete.")
            return False

        try:
            removed = self.store.delete_box(image_id, index)
        except BoxNotFoundError as e:
            logger.warning(f"Delete failed: {e}")
            self.select_box(None)
            return False

        self.select_box(None)
        self.annotations_changed.emit()
        self.repaint_requested.emit()
        self.status_message.emit(f"Annotation {index} ('{removed.label}') deleted.")
        return True

    def zoom_in(self) -> bool:
        return self._zoom(self.config.zoom_step)

    def zoom_out(self) -> bool:
        return self._zoom(1 / self.config.zoom_step)

    def _zoom(self, factor: float, pivot: Optional[QPointF] = None) -> bool:
        if not self.session.has_image:
            return False
        if pivot is None:
            pivot = QPointF(self.viewport_size.width() / 2, self.viewport_size.height() / 2)
        if not self.session.transform.zoom_at(factor, pivot):
            return False
        self.status_message.emit(self.session.image_info())
        self.repaint_requested.emit()
        return True

    def cancel_interaction(self) -> bool:
        """Drop the gesture in progress; the committed box is untouched."""
        if not self.state.dragging:
            return False
        mode = self.state.mode
        self.state.reset()
        self.update_cursor()
        self.repaint_requested.emit()
        self.status_message.emit("Drawing cancelled." if mode == InteractionMode.DRAW else "Edit cancelled.")
        return True

    # === Hit testing ===

    def _selected_handle(self, position: QPointF) -> Optional[Handle]:
        image_id = self.session.current_image_id
        index = self.session.selected_index
        if image_id is None or index is None:
            return None
        try:
            box = self.store.box(image_id, index)
        except BoxNotFoundError:
            return None
        viewport_rect = self.session.transform.rect_to_viewport(box.rect)
        return handle_at(viewport_rect, position, self.config.handle_hit_radius)

    def _box_under(self, position: QPointF) -> Optional[int]:
        image_id = self.session.current_image_id
        return self.store.box_at(image_id, self.session.transform.to_image(position))

    def update_cursor(self, position: Optional[QPointF] = None) -> None:
        """Emit the hover cursor for a viewport position (or the idle cursor)."""
        if position is not None and self.session.has_image:
            handle = self._selected_handle(position)
            if handle is not None:
                self.cursor_changed.emit(resize_cursor(handle))
                return
            if self._box_under(position) is not None:
                self.cursor_changed.emit(Qt.CursorShape.SizeAllCursor)
                return
        if self.session.draw_mode:
            self.cursor_changed.emit(Qt.CursorShape.CrossCursor)
        else:
            self.cursor_changed.emit(Qt.CursorShape.OpenHandCursor)

    # === Pointer events ===

    def on_pointer_down(self, event: PointerEvent) -> None:
        """Start a gesture: resize, select, draw or pan, first match wins."""
        if not event.is_primary or not self.session.has_image:
            return

        state = self.state
        position = QPointF(event.position)
        state.dragging = True
        state.anchor = position
        state.last = position

        handle = self._selected_handle(position)
        if handle is not None:
            box = self.store.box(self.session.current_image_id, self.session.selected_index)
            state.mode = InteractionMode.RESIZE
            state.handle = handle
            state.working = box.rect
            self.cursor_changed.emit(resize_cursor(handle))
            self.status_message.emit(
                f"Resizing annotation {self.session.selected_index} ({handle.value})"
            )
            return

        hit = self._box_under(position)
        if hit is not None:
            self.select_box(hit)
            state.mode = InteractionMode.SELECT
            state.working = self.store.box(self.session.current_image_id, hit).rect
            self.cursor_changed.emit(Qt.CursorShape.SizeAllCursor)
            self.status_message.emit(
                f"Annotation {hit} selected. Drag to move or double-click to edit."
            )
            return

        self.select_box(None)
        if self.session.draw_mode:
            state.mode = InteractionMode.DRAW
            self.cursor_changed.emit(Qt.CursorShape.CrossCursor)
            self.status_message.emit(f"Drawing new annotation for class: {self.session.current_class or '-'}")
            return

        state.mode = InteractionMode.PAN
        self.cursor_changed.emit(Qt.CursorShape.ClosedHandCursor)
        self.status_message.emit("Panning the image.")

    def on_pointer_move(self, event: PointerEvent) -> None:
        """Track the gesture in progress, or update the hover cursor."""
        state = self.state
        position = QPointF(event.position)
        if not state.dragging or not self.session.has_image:
            self.update_cursor(position)
            return

        dx = position.x() - state.last.x()
        dy = position.y() - state.last.y()
        scale = self.session.transform.scale

        if state.mode == InteractionMode.RESIZE:
            state.working = state.working.with_corner(
                state.handle, self.session.transform.to_image(position)
            )
        elif state.mode == InteractionMode.SELECT:
            moved = math.hypot(position.x() - state.anchor.x(), position.y() - state.anchor.y())
            if moved > self.config.drag_threshold_px:
                state.mode = InteractionMode.MOVE
                # The move starts from the press point
                state.working = state.working.translated(
                    (position.x() - state.anchor.x()) / scale,
                    (position.y() - state.anchor.y()) / scale,
                )
                self.status_message.emit(f"Moving annotation {self.session.selected_index}.")
        elif state.mode == InteractionMode.MOVE:
            state.working = state.working.translated(dx / scale, dy / scale)
        elif state.mode == InteractionMode.PAN:
            self.session.transform.pan_by(dx, dy)

        state.last = position
        if state.mode != InteractionMode.SELECT:
            self.repaint_requested.emit()

    def on_pointer_up(self, event: PointerEvent) -> None:
        """Finish the gesture in progress and commit its result."""
        state = self.state
        if not state.dragging or not event.is_primary:
            return

        position = QPointF(event.position)
        mode = state.mode
        if mode == InteractionMode.DRAW:
            self._finish_draw(state.anchor, position)
        elif mode in (InteractionMode.RESIZE, InteractionMode.MOVE):
            self._commit_edit(mode, state.working)
        elif mode == InteractionMode.PAN:
            self.status_message.emit(f"Showing {self.session.image_info()}")
        elif mode == InteractionMode.SELECT and self.session.selected_index is not None:
            self.status_message.emit(f"Annotation {self.session.selected_index} selected.")

        state.reset()
        self.update_cursor(position)
        self.repaint_requested.emit()

    def on_pointer_leave(self, event: PointerEvent) -> None:
        """Leaving the canvas mid-gesture finishes it at the last known point."""
        if self.state.dragging:
            last = self.state.last if self.state.last is not None else event.position
            self.on_pointer_up(PointerEvent(last, Qt.MouseButton.LeftButton))
        self.cursor_changed.emit(Qt.CursorShape.ArrowCursor)

    def on_double_click(self, event: PointerEvent) -> None:
        """Edit the label of the selected box under the pointer."""
        if not event.is_primary or not self.session.has_image:
            return

        image_id = self.session.current_image_id
        hit = self._box_under(event.position)
        if hit is None or hit != self.session.selected_index or self.label_provider is None:
            return

        box = self.store.box(image_id, hit)
        new_label = self.label_provider(box.label)
        if new_label is None:
            return

        try:
            changed = self.store.update_label(image_id, hit, new_label)
        except (InvalidClassError, DuplicateLabelError) as e:
            logger.warning(f"Label edit rejected: {e}")
            self.status_message.emit(f"Error: {e}")
            self.error_reported.emit(str(e))
            return

        if changed:
            label = self.store.box(image_id, hit).label
            self.annotations_changed.emit()
            self.repaint_requested.emit()
            self.status_message.emit(f"Annotation {hit} class changed to '{label}'")

    def on_wheel(self, event: WheelEvent) -> None:
        """Zoom around the pointer."""
        if event.delta == 0:
            return
        factor = self.config.zoom_step if event.delta > 0 else 1 / self.config.zoom_step
        self._zoom(factor, QPointF(event.position))

    # === Keyboard ===

    def on_key_down(self, event: KeyEvent) -> bool:
        """
        Handle a shortcut key.

        Returns:
            True if the key was consumed
        """
        key = event.key.lower() if len(event.key) == 1 else event.key
        ctrl = event.ctrl or event.meta

        # Ctrl+S is the only modifier combination
        if (ctrl or event.alt) and not (ctrl and key == "s"):
            return False

        has_image = self.session.has_image

        if key in ("left", "a"):
            if self.session.can_go_previous():
                self.navigation_requested.emit(-1)
                return True
        elif key in ("right", "d"):
            if self.session.can_go_next():
                self.navigation_requested.emit(1)
                return True
        elif key in ("delete", "backspace"):
            if has_image and self.session.selected_index is not None:
                return self.delete_selected()
        elif key in ("+", "="):
            if has_image:
                self.zoom_in()
                return True
        elif key in ("-", "_"):
            if has_image:
                self.zoom_out()
                return True
        elif key == "w":
            if has_image:
                self.toggle_draw_mode()
                return True
        elif key == "escape":
            return self._escape()
        elif key == "s" and ctrl:
            if self.store.has_annotations():
                self.export_requested.emit()
                return True
            self.status_message.emit("Nothing to save.")
        return False

    def _escape(self) -> bool:
        """Cancel a gesture, else deselect, else leave draw mode."""
        if self.cancel_interaction():
            return True
        if self.session.selected_index is not None:
            self.select_box(None)
            self.status_message.emit("Annotation deselected.")
            return True
        if self.session.draw_mode:
            self.toggle_draw_mode()
            return True
        return False

    # === Commits ===

    def _finish_draw(self, start: QPointF, end: QPointF) -> None:
        min_size = self.config.min_box_size_px
        if abs(end.x() - start.x()) < min_size or abs(end.y() - start.y()) < min_size:
            self.status_message.emit("Drawing cancelled (box too small).")
            return

        label = self.session.current_class
        if not label:
            self.status_message.emit("Error: no valid class selected.")
            self.error_reported.emit("Please select a class before drawing.")
            return

        image_id = self.session.current_image_id
        transform = self.session.transform
        rect = Rect.from_points(transform.to_image(start), transform.to_image(end))
        try:
            index, _ = self.store.add_box(image_id, rect, label)
        except DuplicateLabelError as e:
            logger.warning(f"Box rejected: {e}")
            self.status_message.emit(f"Error: class '{label}' already exists for this image.")
            self.error_reported.emit(
                f"Class '{label}' already exists on this image. Only one annotation per class is allowed."
            )
            return
        except DegenerateBoxError as e:
            logger.warning(f"Box rejected: {e}")
            self.status_message.emit("Drawing cancelled (box is empty after clamping to the image).")
            return
        except InvalidClassError as e:
            logger.warning(f"Box rejected: {e}")
            self.status_message.emit("Error: no valid class selected.")
            self.error_reported.emit(str(e))
            return

        self.select_box(index)
        self.annotations_changed.emit()
        self.status_message.emit(f"Added annotation {index} ('{label}')")

    def _commit_edit(self, mode: InteractionMode, working: Optional[Rect]) -> None:
        image_id = self.session.current_image_id
        index = self.session.selected_index
        if image_id is None or index is None or working is None:
            return

        try:
            if mode == InteractionMode.MOVE:
                current = self.store.box(image_id, index)
                self.store.transform_box(
                    image_id, index, translation=(working.x1 - current.x1, working.y1 - current.y1)
                )
            else:
                self.store.transform_box(image_id, index, corners=working)
        except DegenerateBoxError as e:
            logger.warning(f"Edit discarded: {e}")
            self.status_message.emit("Error: edit produced an invalid box, previous geometry kept.")
            return
        except BoxNotFoundError as e:
            logger.error(f"Edit failed: {e}")
            self.select_box(None)
            return

        self.annotations_changed.emit()
        self.status_message.emit(
            f"Annotation {index} {'moved' if mode == InteractionMode.MOVE else 'resized'}."
        )
