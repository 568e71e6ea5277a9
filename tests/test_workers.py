"""Tests for the background workers, run synchronously."""

from pathlib import Path

import pytest
from PyQt6.QtGui import QImage

from palm_annotator.core.exporter import ExportResult
from palm_annotator.workers.export_worker import ExportWorker
from palm_annotator.workers.image_loader import (
    ImageDecodeWorker,
    decode_image,
    filter_image_files,
    is_image_file,
    read_image_size,
)


@pytest.fixture
def png_file(qapp, tmp_path):
    path = tmp_path / "hand.png"
    image = QImage(64, 32, QImage.Format.Format_RGB32)
    image.fill(0)
    assert image.save(str(path))
    return path


class TestImageLoader:
    """Tests for image loading helpers."""

    def test_is_image_file(self):
        """Extensions are matched case-insensitively."""
        assert is_image_file(Path("a.JPG"))
        assert not is_image_file(Path("a.xml"))
        assert filter_image_files([Path("a.png"), Path("b.txt")]) == [Path("a.png")]

    def test_read_image_size(self, png_file):
        """The size is read from the header."""
        assert read_image_size(png_file) == (64, 32)

    def test_read_image_size_missing(self, tmp_path, qapp):
        """Unreadable files give None."""
        assert read_image_size(tmp_path / "missing.png") is None

    def test_decode_image(self, png_file):
        """Decoding returns the full image."""
        image = decode_image(png_file)
        assert (image.width(), image.height()) == (64, 32)

    def test_decode_worker_signals(self, png_file, tmp_path):
        """The worker reports success or failure with its token."""
        decoded, failed = [], []
        worker = ImageDecodeWorker(7, "hand.png", png_file)
        worker.image_decoded.connect(lambda token, name, image: decoded.append((token, name)))
        worker.run()
        assert decoded == [(7, "hand.png")]

        worker = ImageDecodeWorker(8, "gone.png", tmp_path / "gone.png")
        worker.decode_failed.connect(lambda token, name, message: failed.append((token, name)))
        worker.run()
        assert failed == [(8, "gone.png")]


class TestExportWorker:
    """Tests for ExportWorker."""

    def test_writes_archive(self, qapp, tmp_path):
        """A successful job is packaged into the target directory."""
        finished = []
        result = ExportResult(files={"yolo_annotations/a.txt": b"0 0.5 0.5 0.1 0.1"}, exported=["a.jpg"])
        worker = ExportWorker(lambda: result, tmp_path, "out.zip")
        worker.export_finished.connect(lambda res, written: finished.append(written))
        worker.run()

        assert finished == [[tmp_path / "out.zip"]]
        assert (tmp_path / "out.zip").is_file()

    def test_empty_result_fails(self, qapp, tmp_path):
        """A job that exported nothing reports a failure."""
        failed = []
        worker = ExportWorker(ExportResult, tmp_path)
        worker.export_failed.connect(failed.append)
        worker.run()

        assert failed == ["No valid annotations found to save in any format."]
        assert list(tmp_path.iterdir()) == []

    def test_job_exception_reports_failure(self, qapp, tmp_path):
        """An unexpected error in the job is reported instead of ending the thread silently."""
        failed = []

        def job():
            raise RuntimeError("encoder crashed")

        worker = ExportWorker(job, tmp_path)
        worker.export_failed.connect(failed.append)
        worker.run()

        assert failed == ["Export failed: encoder crashed"]
        assert list(tmp_path.iterdir()) == []
