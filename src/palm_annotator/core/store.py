"""Annotation store: per-image boxes, known classes and image dimensions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from PyQt6.QtCore import QPointF

from .errors import (
    BoxNotFoundError,
    DegenerateBoxError,
    DuplicateLabelError,
    InvalidClassError,
)
from .geometry import Rect
from .models import PREDEFINED_CLASSES, Box, ImageAnnotations, normalize_label

logger = logging.getLogger(__name__)


@dataclass
class MergeReport:
    """Outcome of merging imported boxes into one image."""

    image_id: str
    added: List[Box] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


class AnnotationStore:
    """
    Owner of all box data.

    Enforces the per-image invariants: every stored box is
    non-degenerate, clamped to the image when its size is known, and
    labels are unique within one image.
    """

    def __init__(self, classes: Optional[Iterable[str]] = None) -> None:
        """
        Initialize the store.

        Args:
            classes: Initial class vocabulary (defaults to PREDEFINED_CLASSES);
                names are normalized and empty or repeated ones dropped
        """
        self._seed_classes: List[str] = []
        for label in classes if classes is not None else PREDEFINED_CLASSES:
            name = normalize_label(label)
            if name and name not in self._seed_classes:
                self._seed_classes.append(name)
        self._annotations: Dict[str, ImageAnnotations] = {}
        self._dimensions: Dict[str, Tuple[int, int]] = {}
        self.known_classes: Set[str] = set(self._seed_classes)

    def reset(self) -> None:
        """Drop all boxes, dimensions and discovered classes."""
        self._annotations.clear()
        self._dimensions.clear()
        self.known_classes = set(self._seed_classes)
        logger.info("Annotation store reset")

    def snapshot(self) -> AnnotationStore:
        """Independent copy for readers on other threads."""
        copy = AnnotationStore(self._seed_classes)
        copy.known_classes = set(self.known_classes)
        copy._dimensions = dict(self._dimensions)
        for image_id, annotations in self._annotations.items():
            copy._annotations[image_id] = ImageAnnotations(image_id, list(annotations.boxes))
        return copy

    # === Classes ===

    def sorted_classes(self) -> List[str]:
        """Known classes in sorted order (the YOLO class index order)."""
        return sorted(self.known_classes)

    def add_class(self, label: str) -> str:
        """Register a class name, returning its normalized form."""
        name = normalize_label(label)
        if not name:
            raise InvalidClassError(label)
        self.known_classes.add(name)
        return name

    # === Dimensions ===

    def set_dimensions(self, image_id: str, width: int, height: int) -> None:
        self._dimensions[image_id] = (int(width), int(height))

    def dimensions(self, image_id: str) -> Optional[Tuple[int, int]]:
        return self._dimensions.get(image_id)

    # === Queries ===

    def _image(self, image_id: str) -> ImageAnnotations:
        if image_id not in self._annotations:
            self._annotations[image_id] = ImageAnnotations(image_id)
        return self._annotations[image_id]

    def boxes(self, image_id: Optional[str]) -> List[Box]:
        """Copy of the box list of an image (empty if unknown)."""
        if image_id is None or image_id not in self._annotations:
            return []
        return list(self._annotations[image_id].boxes)

    def box(self, image_id: str, index: int) -> Box:
        boxes = self._annotations.get(image_id)
        if boxes is None or not (0 <= index < len(boxes)):
            raise BoxNotFoundError(image_id, index)
        return boxes.boxes[index]

    def box_at(self, image_id: Optional[str], point: QPointF) -> Optional[int]:
        """Topmost box index containing an image-space point."""
        if image_id is None or image_id not in self._annotations:
            return None
        return self._annotations[image_id].box_at(point)

    def annotated_images(self) -> List[str]:
        """Image ids that currently have at least one box."""
        return [image_id for image_id, ann in self._annotations.items() if len(ann) > 0]

    def has_annotations(self, image_id: Optional[str] = None) -> bool:
        if image_id is not None:
            return len(self.boxes(image_id)) > 0
        return bool(self.annotated_images())

    # === Mutations ===

    def _clamp(self, image_id: str, rect: Rect, label: str) -> Box:
        """Normalize and clamp a rect, raising DegenerateBoxError if it collapses."""
        dims = self._dimensions.get(image_id)
        working = rect.clamped(*dims) if dims else rect.normalized()
        if working.is_degenerate():
            raise DegenerateBoxError(
                f"Box '{label}' on {image_id} has no area after clamping"
            )
        return Box.from_rect(working, label)

    def add_box(self, image_id: str, rect: Rect, label: str) -> Tuple[int, Box]:
        """
        Append a new box to an image.

        Args:
            image_id: Image filename
            rect: Box geometry in image coordinates (any corner order)
            label: Class label

        Returns:
            Tuple of (index, stored box)

        Raises:
            DuplicateLabelError: If the label already exists on the image
            DegenerateBoxError: If the clamped box has no area
            InvalidClassError: If the label is empty
        """
        label = normalize_label(label)
        if not label:
            raise InvalidClassError(label)

        annotations = self._image(image_id)
        if annotations.has_label(label):
            raise DuplicateLabelError(label, image_id)

        box = self._clamp(image_id, rect, label)
        annotations.boxes.append(box)
        index = len(annotations.boxes) - 1
        logger.debug(f"Added box {index} '{label}' on {image_id}")
        return index, box

    def update_label(self, image_id: str, index: int, new_label: str) -> bool:
        """
        Change the label of a box.

        Returns:
            True if the label changed, False if it was already equal

        Raises:
            InvalidClassError: If the label is empty or not a known class
            DuplicateLabelError: If another box on the image uses the label
            BoxNotFoundError: If index is out of range
        """
        current = self.box(image_id, index)
        label = normalize_label(new_label)
        if not label or label not in self.known_classes:
            raise InvalidClassError(label)

        annotations = self._annotations[image_id]
        if annotations.has_label(label, ignore_index=index):
            raise DuplicateLabelError(label, image_id)

        if label == current.label:
            return False

        annotations.boxes[index] = current.with_label(label)
        logger.debug(f"Box {index} on {image_id} relabeled '{current.label}' -> '{label}'")
        return True

    def transform_box(
        self,
        image_id: str,
        index: int,
        corners: Optional[Rect] = None,
        translation: Optional[Tuple[float, float]] = None,
    ) -> Box:
        """
        Commit a geometric edit to a box.

        Pass either new corners (resize) or a translation (move). The
        result is clamped to the image; a move keeps the box size and
        shifts it back inside the image instead of clipping it. Corners
        must stay ordered (x1 < x2, y1 < y2).

        Raises:
            DegenerateBoxError: If the result has no area; the stored box
                is left unchanged
            BoxNotFoundError: If index is out of range
        """
        if (corners is None) == (translation is None):
            raise ValueError("Pass exactly one of corners or translation")

        current = self.box(image_id, index)
        dims = self._dimensions.get(image_id)

        if translation is not None:
            moved = current.rect.translated(*translation)
            if dims:
                moved = moved.shifted_inside(*dims)
            box = self._clamp(image_id, moved, current.label)
        else:
            # Corners keep their identity: a dragged corner crossing the fixed one is rejected
            if corners.is_degenerate():
                raise DegenerateBoxError(
                    f"Resize of box {index} on {image_id} inverts or collapses it"
                )
            box = self._clamp(image_id, corners, current.label)

        self._annotations[image_id].boxes[index] = box
        return box

    def delete_box(self, image_id: str, index: int) -> Box:
        """Remove and return a box."""
        self.box(image_id, index)
        removed = self._annotations[image_id].boxes.pop(index)
        logger.debug(f"Deleted box {index} '{removed.label}' on {image_id}")
        return removed

    def merge(self, image_id: str, incoming: Iterable[Box]) -> MergeReport:
        """
        Merge imported boxes into an image.

        The first occurrence of a label wins: labels already on the image
        or seen earlier in the same batch are reported as conflicts and
        skipped. Accepted labels are registered as known classes.
        """
        annotations = self._image(image_id)
        report = MergeReport(image_id)

        for box in incoming:
            label = normalize_label(box.label)
            if not label:
                report.rejected.append(box.label)
                continue
            if annotations.has_label(label):
                logger.warning(f"Class '{label}' already exists on {image_id}, skipping imported box")
                report.conflicts.append(label)
                continue

            try:
                clamped = self._clamp(image_id, box.rect, label)
            except DegenerateBoxError as e:
                logger.warning(f"Skipping imported box: {e}")
                report.rejected.append(label)
                continue

            annotations.boxes.append(clamped)
            self.known_classes.add(label)
            report.added.append(clamped)

        return report
