"""Abstract base class for annotation format codecs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, List, Optional, Sequence

from .errors import AnnotationError
from .models import Box


@dataclass
class EncodeResult:
    """
    Encoded annotations of one image.

    content is None when no box could be encoded; skipped holds the
    per-box errors that were reported instead of aborting the image.
    """

    filename: str
    content: Optional[str]
    skipped: List[AnnotationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.content is not None


def base_name(filename: str) -> str:
    """Filename without its last extension."""
    return PurePath(filename).stem


class AnnotationFormat(ABC):
    """
    Abstract base class for annotation format codecs.

    Codecs are pure: they turn a box list into text and back, and never
    touch the file system. Each format exports into its own folder with
    one file per annotated image, plus optional dataset-wide files.
    """

    def __init__(self, classes: Optional[Sequence[str]] = None) -> None:
        """
        Initialize the codec.

        Args:
            classes: Ordered class names; the position is the class ID
        """
        self.classes: List[str] = list(classes or [])

    def set_classes(self, classes: Sequence[str]) -> None:
        """Update the ordered class list."""
        self.classes = list(classes)

    def get_class_id(self, label: str) -> int:
        """Get class ID from label, or -1 if unknown."""
        try:
            return self.classes.index(label)
        except ValueError:
            return -1

    def get_class_name(self, class_id: int) -> str:
        """Get class name from ID."""
        if 0 <= class_id < len(self.classes):
            return self.classes[class_id]
        return str(class_id)

    @property
    @abstractmethod
    def format_name(self) -> str:
        """Return the format name (e.g., 'yolo', 'pascal_voc')."""
        pass

    @property
    @abstractmethod
    def file_extension(self) -> str:
        """Return the file extension for annotation files (e.g., '.txt', '.xml')."""
        pass

    @property
    @abstractmethod
    def folder_name(self) -> str:
        """Top-level export folder for this format."""
        pass

    def get_annotation_name(self, image_filename: str) -> str:
        """Annotation filename for an image (base name + format extension)."""
        return f"{base_name(image_filename)}{self.file_extension}"

    def dataset_files(self) -> Dict[str, str]:
        """
        Dataset-wide files written next to the per-image files.

        Returns:
            Mapping of filename to text content
        """
        return {}

    @abstractmethod
    def encode_image(
        self,
        image_filename: str,
        img_width: int,
        img_height: int,
        boxes: Sequence[Box]
    ) -> EncodeResult:
        """
        Encode the boxes of one image.

        Args:
            image_filename: Name of the annotated image
            img_width: Image width in pixels
            img_height: Image height in pixels
            boxes: Boxes to encode

        Returns:
            EncodeResult with the file content and skipped boxes
        """
        pass

    @abstractmethod
    def decode(
        self,
        content: str,
        img_width: int,
        img_height: int
    ) -> List[Box]:
        """
        Decode annotation text into boxes.

        Malformed entries are skipped; only an unreadable document raises
        DecodeFailureError.
        """
        pass
