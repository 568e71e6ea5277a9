"""Session state: image list, navigation, view transform and selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from PyQt6.QtCore import QSizeF
from PyQt6.QtGui import QImage

from .geometry import Transform
from .store import AnnotationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageEntry:
    """An image known to the session, identified by its filename."""

    name: str
    path: Path

    @classmethod
    def from_path(cls, path: Path) -> ImageEntry:
        path = Path(path)
        return cls(path.name, path)


class Session:
    """
    Explicit context for one annotation session.

    Holds the ordered image list, the current image and its decoded
    bitmap, the view transform, the selection and the draw settings.
    Every image switch bumps load_token; a decode result carrying an
    older token is discarded.
    """

    def __init__(self, store: Optional[AnnotationStore] = None) -> None:
        self.store = store if store is not None else AnnotationStore()
        self.images: List[ImageEntry] = []
        self.current_index: int = -1
        self.image: Optional[QImage] = None
        self.transform = Transform()
        self.selected_index: Optional[int] = None
        self.draw_mode: bool = False
        self.current_class: Optional[str] = None
        self.load_token: int = 0

    # === Image list ===

    def open_images(self, paths: Iterable[Path]) -> int:
        """
        Replace the image set.

        Annotations, cached dimensions and discovered classes are reset.

        Returns:
            Number of images in the new set
        """
        entries = {}
        for path in paths:
            entry = ImageEntry.from_path(path)
            entries.setdefault(entry.name, entry)

        self.images = sorted(entries.values(), key=lambda e: e.name)
        self.store.reset()
        self._clear_current()
        self.current_index = -1
        logger.info(f"Opened {len(self.images)} images")
        return len(self.images)

    def add_images(self, paths: Iterable[Path]) -> int:
        """
        Add images to the set, skipping filenames already present.

        The list stays sorted by name and the current image is kept.

        Returns:
            Number of images actually added
        """
        current = self.current_image_id
        names = {entry.name for entry in self.images}
        added = 0
        for path in paths:
            entry = ImageEntry.from_path(path)
            if entry.name in names:
                logger.info(f"Skipping duplicate image {entry.name}")
                continue
            names.add(entry.name)
            self.images.append(entry)
            added += 1

        self.images.sort(key=lambda e: e.name)
        if current is not None:
            self.current_index = self.index_of(current)
        logger.info(f"Added {added} images ({len(self.images)} total)")
        return added

    def index_of(self, image_id: str) -> int:
        for i, entry in enumerate(self.images):
            if entry.name == image_id:
                return i
        return -1

    def entry(self, image_id: str) -> Optional[ImageEntry]:
        index = self.index_of(image_id)
        return self.images[index] if index >= 0 else None

    @property
    def current_entry(self) -> Optional[ImageEntry]:
        if 0 <= self.current_index < len(self.images):
            return self.images[self.current_index]
        return None

    @property
    def current_image_id(self) -> Optional[str]:
        entry = self.current_entry
        return entry.name if entry is not None else None

    @property
    def has_image(self) -> bool:
        """True once the current image is decoded and ready for interaction."""
        return self.current_entry is not None and self.image is not None

    # === Navigation ===

    def _clear_current(self) -> None:
        self.image = None
        self.selected_index = None
        self.transform.reset()

    def begin_load(self, index: int) -> Optional[int]:
        """
        Make an image current and start a new load generation.

        Returns:
            The new load token, or None if index is out of range
        """
        if not (0 <= index < len(self.images)):
            return None
        self.current_index = index
        self._clear_current()
        self.load_token += 1
        logger.debug(f"Loading {self.images[index].name} (token {self.load_token})")
        return self.load_token

    def navigate(self, delta: int) -> Optional[int]:
        """
        Move to a neighbouring image.

        Returns:
            The new load token, or None at either end of the list
        """
        if self.current_index < 0:
            return None
        return self.begin_load(self.current_index + delta)

    def can_go_previous(self) -> bool:
        return bool(self.images) and self.current_index > 0

    def can_go_next(self) -> bool:
        return bool(self.images) and 0 <= self.current_index < len(self.images) - 1

    def accept_image(self, token: int, image_id: str, image: QImage) -> bool:
        """
        Install a decoded bitmap if it is still the one being waited for.

        Returns:
            False if the completion is stale and was ignored
        """
        if token != self.load_token or image_id != self.current_image_id:
            logger.debug(f"Ignoring stale decode of {image_id} (token {token}, current {self.load_token})")
            return False

        self.image = image
        self.store.set_dimensions(image_id, image.width(), image.height())
        return True

    def image_size(self) -> QSizeF:
        if self.image is None:
            return QSizeF()
        return QSizeF(self.image.width(), self.image.height())

    def image_info(self) -> str:
        """Status text such as 'hand.jpg (2/5) Z:1.00x'."""
        entry = self.current_entry
        if entry is None or self.image is None:
            return "No image"
        return f"{entry.name} ({self.current_index + 1}/{len(self.images)}) Z:{self.transform.scale:.2f}x"
