"""Tests for annotation and crop export."""

import xml.etree.ElementTree as ET
import zipfile

import pytest
from PyQt6.QtGui import QColor, QImage

from palm_annotator.core.exporter import (
    ANNOTATIONS_ARCHIVE,
    crop_filename,
    crops_archive_name,
    crops_folder,
    export_annotations,
    export_crops,
    package,
    sanitize_label,
    supported_crop_format,
)
from palm_annotator.core.geometry import Rect
from palm_annotator.core.models import Box
from palm_annotator.core.store import AnnotationStore


@pytest.fixture(autouse=True)
def app(qapp):
    """Encoding runs on a Qt thread pool."""
    return qapp


@pytest.fixture
def filled_store(store):
    """Two annotated images with known sizes and one without boxes."""
    store.set_dimensions("hand.jpg", 200, 100)
    store.add_box("hand.jpg", Rect(80, 45, 120, 55), "palma")
    store.add_box("hand.jpg", Rect(40, 20, 60, 40), "tenar")
    store.set_dimensions("foot.png", 100, 100)
    store.add_box("foot.png", Rect(0, 0, 50, 50), "lateral")
    store.set_dimensions("empty.jpg", 10, 10)
    return store


class TestExportAnnotations:
    """Tests for export_annotations."""

    def test_file_layout(self, filled_store):
        """Each annotated image gets a YOLO and a VOC file plus classes.txt."""
        result = export_annotations(filled_store)

        assert result.ok
        assert result.exported == ["foot.png", "hand.jpg"]
        assert sorted(result.files) == [
            "voc_annotations/foot.xml",
            "voc_annotations/hand.xml",
            "yolo_annotations/classes.txt",
            "yolo_annotations/foot.txt",
            "yolo_annotations/hand.txt",
        ]

    def test_yolo_content(self, filled_store):
        """Class IDs follow the sorted class list."""
        files = export_annotations(filled_store).files

        classes = files["yolo_annotations/classes.txt"].decode("utf-8").split("\n")
        assert classes == ["hipotenar", "infradigital", "lateral", "palma", "tenar"]
        assert files["yolo_annotations/hand.txt"].decode("utf-8") == (
            "3 0.500000 0.500000 0.200000 0.100000\n"
            "4 0.250000 0.300000 0.100000 0.200000"
        )

    def test_mixed_case_configured_classes(self):
        """Boxes drawn with configured mixed-case classes are exported."""
        store = AnnotationStore(["Palma", "Tenar"])
        store.set_dimensions("hand.jpg", 200, 100)
        store.add_box("hand.jpg", Rect(80, 45, 120, 55), "Palma")

        result = export_annotations(store)

        assert result.skipped == []
        assert result.files["yolo_annotations/classes.txt"] == b"palma\ntenar"
        assert result.files["yolo_annotations/hand.txt"] == b"0 0.500000 0.500000 0.200000 0.100000"

    def test_voc_content(self, filled_store):
        """VOC files carry the image name and size."""
        root = ET.fromstring(export_annotations(filled_store).files["voc_annotations/hand.xml"])
        assert root.findtext("filename") == "hand.jpg"
        assert root.findtext("size/width") == "200"
        assert [o.findtext("name") for o in root.iter("object")] == ["palma", "tenar"]

    def test_missing_dimensions_use_provider(self, store):
        """Images without cached size ask the size provider."""
        store.add_box("hand.jpg", Rect(10, 10, 20, 20), "palma")
        result = export_annotations(store, size_provider=lambda image_id: (100, 100))
        assert result.exported == ["hand.jpg"]

    def test_invalid_dimensions_skip_image(self, store):
        """Images whose size cannot be determined are reported, others continue."""
        store.add_box("hand.jpg", Rect(10, 10, 20, 20), "palma")
        store.set_dimensions("ok.jpg", 50, 50)
        store.add_box("ok.jpg", Rect(10, 10, 20, 20), "palma")

        result = export_annotations(store, size_provider=lambda image_id: None)

        assert result.exported == ["ok.jpg"]
        assert "hand.jpg" in result.failed
        assert "yolo_annotations/hand.txt" not in result.files

    def test_nothing_to_export(self, store):
        """An empty store produces no files."""
        result = export_annotations(store)
        assert not result.ok
        assert result.files == {}

    def test_single_worker(self, filled_store):
        """The result does not depend on the number of workers."""
        assert export_annotations(filled_store, max_workers=1).files == export_annotations(
            filled_store, max_workers=8
        ).files


class TestPackage:
    """Tests for writing exported files."""

    def test_archive(self, filled_store, tmp_path):
        """Files are zipped under their folders."""
        result = export_annotations(filled_store)
        written = package(result.files, tmp_path, ANNOTATIONS_ARCHIVE)

        assert written == [tmp_path / ANNOTATIONS_ARCHIVE]
        with zipfile.ZipFile(written[0]) as zf:
            assert sorted(zf.namelist()) == sorted(result.files)
            assert zf.read("yolo_annotations/hand.txt") == result.files["yolo_annotations/hand.txt"]

    def test_individual_files(self, filled_store, tmp_path):
        """Without an archive name every file is written on its own."""
        result = export_annotations(filled_store)
        written = package(result.files, tmp_path)

        assert len(written) == len(result.files)
        assert (tmp_path / "voc_annotations" / "hand.xml").is_file()
        assert (tmp_path / "yolo_annotations" / "classes.txt").is_file()


class TestCrops:
    """Tests for crop export."""

    def test_names(self):
        """Crop names use the image base name and a sanitized label."""
        assert sanitize_label("palma izq.") == "palma_izq_"
        assert crop_filename("hand.v1.jpg", "palma", 0, "png") == "hand.v1_palma_0.png"
        assert crops_folder("hand.jpg") == "hand_crops"
        assert crops_archive_name("hand.jpg") == "hand_crops.zip"

    def test_export_crops(self, qapp):
        """Each box becomes an image of its rounded size."""
        image = QImage(200, 100, QImage.Format.Format_RGB32)
        image.fill(QColor(10, 200, 30))
        boxes = [Box(10.4, 20.2, 60.4, 70.2, "palma"), Box(100, 10, 130, 90, "tenar")]

        result = export_crops(image, "hand.jpg", boxes, "png")

        assert result.exported == ["hand_palma_0.png", "hand_tenar_1.png"]
        crop = QImage.fromData(result.files["hand_crops/hand_palma_0.png"])
        assert (crop.width(), crop.height()) == (50, 50)
        assert crop.pixelColor(5, 5) == QColor(10, 200, 30)
        crop = QImage.fromData(result.files["hand_crops/hand_tenar_1.png"])
        assert (crop.width(), crop.height()) == (30, 80)

    def test_half_pixel_bounds_round_up(self, qapp):
        """Crop origin and size round halves up."""
        image = QImage(200, 100, QImage.Format.Format_RGB32)
        image.fill(QColor(10, 200, 30))

        result = export_crops(image, "hand.jpg", [Box(0.5, 2.5, 11.0, 23.0, "palma")], "png")

        crop = QImage.fromData(result.files["hand_crops/hand_palma_0.png"])
        assert (crop.width(), crop.height()) == (11, 21)

    def test_unsupported_format_falls_back(self, qapp):
        """Formats without a writer plugin fall back to png."""
        assert supported_crop_format("PNG") == "png"
        assert supported_crop_format("no-such-format") == "png"
