"""Background image decoding worker threads."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from PyQt6.QtCore import QThread, pyqtSignal
from PyQt6.QtGui import QImage, QImageReader

logger = logging.getLogger(__name__)

# Supported image extensions
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp"}


def is_image_file(path: Path) -> bool:
    """Check if a file has a supported image extension."""
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


def filter_image_files(paths: Iterable[Path]) -> List[Path]:
    """Keep only files with a supported image extension."""
    return [Path(p) for p in paths if is_image_file(p)]


def read_image_size(path: Path) -> Optional[Tuple[int, int]]:
    """
    Read the pixel size of an image from its header.

    Args:
        path: Image file

    Returns:
        (width, height), or None if the file cannot be read
    """
    reader = QImageReader(str(path))
    size = reader.size()
    if not size.isValid() or size.width() <= 0 or size.height() <= 0:
        logger.error(f"Could not read image size of {path}: {reader.errorString()}")
        return None
    return size.width(), size.height()


def decode_image(path: Path) -> QImage:
    """
    Decode an image, applying its EXIF orientation.

    Returns:
        Decoded image, null if decoding failed
    """
    reader = QImageReader(str(path))
    reader.setAutoTransform(True)
    image = reader.read()
    if image.isNull():
        logger.warning(f"Failed to load image {path}: {reader.errorString()}")
    return image


class ImageDecodeWorker(QThread):
    """
    Background thread decoding the image being switched to.

    Results carry the load token they were started with so the receiver
    can discard a decode that was superseded by a newer switch.
    """

    # Signal emitted when decoding succeeded (token, image id, image)
    image_decoded = pyqtSignal(int, str, QImage)

    # Signal emitted when decoding failed (token, image id, message)
    decode_failed = pyqtSignal(int, str, str)

    def __init__(self, token: int, image_id: str, path: Path) -> None:
        """
        Initialize the decode worker.

        Args:
            token: Load token of the switch that requested this decode
            image_id: Identifier (filename) of the image
            path: Image file to decode
        """
        super().__init__()
        self.token = token
        self.image_id = image_id
        self.path = Path(path)

    def run(self) -> None:
        """Decode the image in the background thread."""
        image = decode_image(self.path)
        if image.isNull():
            self.decode_failed.emit(self.token, self.image_id, f"Could not load {self.path.name}")
            return
        logger.debug(f"Decoded {self.image_id} ({image.width()}x{image.height()})")
        self.image_decoded.emit(self.token, self.image_id, image)
