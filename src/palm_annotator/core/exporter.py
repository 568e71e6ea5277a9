"""Annotation and crop export: encode the store into a file map and package it."""

from __future__ import annotations

import logging
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from PyQt6.QtCore import QBuffer, QIODevice, QRect, QRunnable, QThreadPool
from PyQt6.QtGui import QImage, QImageWriter

from .annotation_format import AnnotationFormat, base_name
from .errors import AnnotationError, InvalidDimensionsError
from .format_registry import FormatRegistry
from .geometry import round_half_up
from .models import Box
from .store import AnnotationStore

logger = logging.getLogger(__name__)

ANNOTATIONS_ARCHIVE = "image_annotations.zip"
DEFAULT_CROP_FORMAT = "png"
DEFAULT_CROP_QUALITY = 92

# Returns (width, height) of an image by id, or None if it cannot be read
SizeProvider = Callable[[str], Optional[Tuple[int, int]]]


@dataclass
class ExportResult:
    """
    Files produced by an export, keyed by their path inside the archive.

    failed maps an image (or crop) to the reason it produced no output;
    skipped lists the per-box problems that were reported and passed over.
    """

    files: Dict[str, bytes] = field(default_factory=dict)
    exported: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.exported)


@dataclass
class _ImageExport:
    image_id: str
    files: Dict[str, bytes] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _encode_image(
    store: AnnotationStore,
    image_id: str,
    handlers: Sequence[AnnotationFormat],
    size_provider: Optional[SizeProvider]
) -> _ImageExport:
    """Encode one image with every handler. Reads the store only."""
    outcome = _ImageExport(image_id)
    boxes = store.boxes(image_id)

    size = store.dimensions(image_id)
    if size is None and size_provider is not None:
        size = size_provider(image_id)
    if size is None or size[0] <= 0 or size[1] <= 0:
        width, height = size if size is not None else (0, 0)
        outcome.error = str(InvalidDimensionsError(width, height))
        return outcome

    width, height = size
    for handler in handlers:
        result = handler.encode_image(image_id, width, height, boxes)
        outcome.skipped.extend(f"{image_id}: {e}" for e in result.skipped)
        if result.content is not None:
            path = f"{handler.folder_name}/{result.filename}"
            outcome.files[path] = result.content.encode("utf-8")

    if not outcome.files:
        outcome.error = "No valid annotations in any format"
    return outcome


class _EncodeTask(QRunnable):
    """Pool job encoding one image; the outcome is appended to a shared list."""

    def __init__(
        self,
        store: AnnotationStore,
        image_id: str,
        handlers: Sequence[AnnotationFormat],
        size_provider: Optional[SizeProvider],
        outcomes: List[_ImageExport]
    ) -> None:
        super().__init__()
        self.store = store
        self.image_id = image_id
        self.handlers = handlers
        self.size_provider = size_provider
        self.outcomes = outcomes

    def run(self) -> None:
        # An exception escaping a pool thread would abort the process
        try:
            outcome = _encode_image(self.store, self.image_id, self.handlers, self.size_provider)
        except (AnnotationError, OSError, ValueError) as e:
            logger.error(f"Encoding {self.image_id} failed: {e}")
            outcome = _ImageExport(self.image_id, error=str(e))
        self.outcomes.append(outcome)


def export_annotations(
    store: AnnotationStore,
    size_provider: Optional[SizeProvider] = None,
    max_workers: int = 4,
    formats: Optional[Sequence[str]] = None
) -> ExportResult:
    """
    Encode every annotated image into YOLO and Pascal VOC files.

    Images are encoded concurrently and the call returns once all of
    them are done. Class IDs follow the sorted known classes.

    Args:
        store: Annotation store to export
        size_provider: Fallback for images whose dimensions are not cached
        max_workers: Encoder threads
        formats: Format names to export (defaults to all registered)

    Returns:
        ExportResult with paths like "yolo_annotations/img.txt"
    """
    classes = store.sorted_classes()
    handlers = [
        FormatRegistry.get_handler(name, classes)
        for name in (formats or FormatRegistry.get_format_names())
    ]
    result = ExportResult()
    image_ids = store.annotated_images()
    if not image_ids:
        logger.warning("No annotations to export")
        return result

    outcomes: List[_ImageExport] = []
    pool = QThreadPool()
    pool.setMaxThreadCount(max(1, max_workers))
    tasks = [
        _EncodeTask(store, image_id, handlers, size_provider, outcomes)
        for image_id in image_ids
    ]
    for task in tasks:
        task.setAutoDelete(False)
        pool.start(task)
    pool.waitForDone()

    for outcome in sorted(outcomes, key=lambda o: o.image_id):
        result.skipped.extend(outcome.skipped)
        if outcome.error is not None:
            logger.error(f"Annotations of {outcome.image_id} not exported: {outcome.error}")
            result.failed[outcome.image_id] = outcome.error
            continue
        result.files.update(outcome.files)
        result.exported.append(outcome.image_id)

    if result.exported:
        for handler in handlers:
            for name, content in handler.dataset_files().items():
                result.files[f"{handler.folder_name}/{name}"] = content.encode("utf-8")

    logger.info(
        f"Encoded {len(result.exported)} images ({len(result.files)} files, "
        f"{len(result.failed)} failed, {len(result.skipped)} boxes skipped)"
    )
    return result


# === Crops ===

def sanitize_label(label: str) -> str:
    """Replace everything but ASCII letters and digits with underscores."""
    return re.sub(r"[^a-z0-9]", "_", label, flags=re.IGNORECASE)


def crop_filename(image_id: str, label: str, index: int, extension: str) -> str:
    """Crop file name such as 'hand_palma_0.png'."""
    return f"{base_name(image_id)}_{sanitize_label(label)}_{index}.{extension}"


def crops_folder(image_id: str) -> str:
    return f"{base_name(image_id)}_crops"


def crops_archive_name(image_id: str) -> str:
    return f"{crops_folder(image_id)}.zip"


def supported_crop_format(image_format: str) -> str:
    """Return image_format if Qt can write it, otherwise png."""
    image_format = image_format.lower()
    available = {f.data().decode("ascii").lower() for f in QImageWriter.supportedImageFormats()}
    if image_format in available:
        return image_format
    logger.warning(f"No image writer for '{image_format}', falling back to {DEFAULT_CROP_FORMAT}")
    return DEFAULT_CROP_FORMAT


def encode_qimage(image: QImage, image_format: str, quality: int = DEFAULT_CROP_QUALITY) -> bytes:
    """
    Encode a QImage in memory.

    Raises:
        OSError: If the image writer fails
    """
    buffer = QBuffer()
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    writer = QImageWriter(buffer, image_format.encode("ascii"))
    writer.setQuality(quality)
    if not writer.write(image):
        buffer.close()
        raise OSError(f"Could not encode {image_format} image: {writer.errorString()}")
    buffer.close()
    return buffer.data().data()


def export_crops(
    image: QImage,
    image_id: str,
    boxes: Sequence[Box],
    image_format: str = DEFAULT_CROP_FORMAT,
    quality: int = DEFAULT_CROP_QUALITY
) -> ExportResult:
    """
    Cut every box out of an image.

    Files are placed under '<base>_crops/' and named
    '<base>_<label>_<index>.<ext>'. Boxes that round to an empty
    rectangle are skipped.
    """
    result = ExportResult()
    image_format = supported_crop_format(image_format)
    folder = crops_folder(image_id)

    for index, box in enumerate(boxes):
        x, y = round_half_up(box.x1), round_half_up(box.y1)
        w, h = round_half_up(box.width), round_half_up(box.height)
        name = crop_filename(image_id, box.label, index, image_format)
        if w <= 0 or h <= 0:
            logger.warning(f"Skipping crop {index} ('{box.label}'): zero width or height")
            result.skipped.append(name)
            continue

        try:
            data = encode_qimage(image.copy(QRect(x, y, w, h)), image_format, quality)
        except OSError as e:
            logger.error(f"Crop {name} failed: {e}")
            result.failed[name] = str(e)
            continue

        result.files[f"{folder}/{name}"] = data
        result.exported.append(name)

    logger.info(f"Generated {len(result.exported)} crops for {image_id}")
    return result


# === Packaging ===

def write_archive(files: Dict[str, bytes], archive_path: Path) -> Path:
    """Write a file map into a zip archive."""
    archive_path = Path(archive_path)
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name in sorted(files):
            zf.writestr(name, files[name])
    logger.info(f"Wrote {len(files)} files to {archive_path}")
    return archive_path


def write_files(files: Dict[str, bytes], directory: Path) -> List[Path]:
    """Write a file map as individual files below a directory."""
    directory = Path(directory)
    written: List[Path] = []
    for name in sorted(files):
        path = directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(files[name])
        written.append(path)
    logger.info(f"Wrote {len(written)} files to {directory}")
    return written


def package(
    files: Dict[str, bytes],
    directory: Path,
    archive_name: Optional[str] = None
) -> List[Path]:
    """
    Store exported files, zipped when archive_name is given.

    Raises:
        OSError: If writing fails
    """
    if archive_name:
        return [write_archive(files, Path(directory) / archive_name)]
    return write_files(files, directory)
