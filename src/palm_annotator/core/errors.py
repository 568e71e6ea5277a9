"""Exception types raised by the annotation store and format codecs."""

from __future__ import annotations

from typing import Optional


class AnnotationError(Exception):
    """Base class for all annotation errors."""


class DuplicateLabelError(AnnotationError):
    """A label is already used by another box on the same image."""

    def __init__(self, label: str, image_id: Optional[str] = None) -> None:
        self.label = label
        self.image_id = image_id
        where = f" on {image_id}" if image_id else ""
        super().__init__(f"Class '{label}' already exists{where}")


class DegenerateBoxError(AnnotationError):
    """Geometry collapsed to zero width or height."""


class InvalidClassError(AnnotationError):
    """Label is empty or not one of the known classes."""

    def __init__(self, label: str) -> None:
        self.label = label
        if label:
            message = f"Class '{label}' is not a known class"
        else:
            message = "Class name cannot be empty"
        super().__init__(message)


class UnknownClassError(AnnotationError):
    """Label is missing from the ordered class list used for export."""

    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"Class '{label}' not found in class list")


class InvalidDimensionsError(AnnotationError):
    """Image dimensions are not usable for normalization."""

    def __init__(self, width: float, height: float) -> None:
        self.width = width
        self.height = height
        super().__init__(f"Invalid image dimensions W={width}, H={height}")


class DecodeFailureError(AnnotationError):
    """An annotation file could not be parsed."""


class BoxNotFoundError(AnnotationError, IndexError):
    """No box at the requested index."""

    def __init__(self, image_id: str, index: int) -> None:
        self.image_id = image_id
        self.index = index
        super().__init__(f"No annotation {index} on {image_id}")
