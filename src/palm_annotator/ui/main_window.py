"""Main application window for Palm Annotator."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from PyQt6.QtCore import Qt, QSize
from PyQt6.QtGui import QAction, QCloseEvent, QImage, QImageReader
from PyQt6.QtWidgets import (
    QAbstractItemView, QComboBox, QDockWidget, QFileDialog, QInputDialog,
    QLabel, QListWidget, QListWidgetItem, QMainWindow, QMessageBox,
    QPushButton, QStatusBar, QToolBar, QVBoxLayout, QWidget
)

from ..core.config import CROP_FORMATS, AppConfig, ConfigManager
from ..core.exporter import (
    ANNOTATIONS_ARCHIVE, ExportResult, crops_archive_name, export_annotations, export_crops
)
from ..core.importer import import_voc_files
from ..core.interaction import InteractionController
from ..core.session import Session
from ..core.store import AnnotationStore
from ..workers.export_worker import ExportWorker
from ..workers.image_loader import (
    IMAGE_EXTENSIONS, ImageDecodeWorker, filter_image_files, read_image_size
)
from .canvas import AnnotationCanvas

logger = logging.getLogger(__name__)


def increase_image_allocation_limit() -> None:
    """Remove image allocation limit for large images."""
    QImageReader.setAllocationLimit(0)


def image_file_filter() -> str:
    """File dialog filter for the supported image extensions."""
    patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
    return f"Images ({patterns});;All Files (*)"


class MainWindow(QMainWindow):
    """
    Main application window for Palm Annotator.

    Provides:
    - Image set management (open, add, previous/next)
    - The annotation canvas and the per-image annotation list
    - Class selection for new boxes
    - Pascal VOC import
    - YOLO + VOC export and crop export in the background
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None) -> None:
        """
        Initialize the main window.

        Args:
            config_manager: Configuration source (defaults to config.yaml)
        """
        super().__init__()

        increase_image_allocation_limit()

        self.config_manager = config_manager if config_manager is not None else ConfigManager()
        self.session = Session(AnnotationStore(self.config.predefined_classes))
        self.controller = InteractionController(
            self.session, self.config, label_provider=self._ask_label, parent=self
        )

        # Running workers are kept referenced until they finish
        self._decode_workers: Dict[int, ImageDecodeWorker] = {}
        self._export_worker: Optional[ExportWorker] = None

        # UI elements (initialized in _init_ui)
        self.canvas: Optional[AnnotationCanvas] = None
        self.annotation_list: Optional[QListWidget] = None
        self.class_combo: Optional[QComboBox] = None
        self.crop_format_combo: Optional[QComboBox] = None
        self.status_bar: Optional[QStatusBar] = None
        self.info_label: Optional[QLabel] = None
        self._actions: Dict[str, QAction] = {}

        self._init_ui()
        self._setup_connections()
        self._refresh_classes()
        self._update_actions()

        logger.info("MainWindow initialization complete")

    @property
    def config(self) -> AppConfig:
        """Get the current configuration."""
        return self.config_manager.config

    @property
    def store(self) -> AnnotationStore:
        return self.session.store

    # === UI construction ===

    def _init_ui(self) -> None:
        """Initialize the user interface."""
        self.setWindowTitle("Palm Annotator")
        self.setGeometry(100, 100, 1200, 800)

        self.canvas = AnnotationCanvas(self.controller, self.config)
        self.setCentralWidget(self.canvas)

        self._create_status_bar()
        self._create_annotations_dock()
        self._create_toolbar()
        self._create_menus()

    def _create_status_bar(self) -> None:
        """Create the status bar."""
        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)

        self.info_label = QLabel("No image")
        self.status_bar.addPermanentWidget(self.info_label)

    def _create_annotations_dock(self) -> None:
        """Create the dock listing the boxes of the current image."""
        dock = QDockWidget("Annotations", self)
        dock.setObjectName("AnnotationsDock")
        dock.setAllowedAreas(
            Qt.DockWidgetArea.LeftDockWidgetArea | Qt.DockWidgetArea.RightDockWidgetArea
        )

        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.annotation_list = QListWidget()
        self.annotation_list.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.annotation_list.itemClicked.connect(self._on_annotation_clicked)
        layout.addWidget(self.annotation_list)

        delete_button = QPushButton("Delete selected annotation")
        delete_button.clicked.connect(self.controller.delete_selected)
        layout.addWidget(delete_button)

        dock.setWidget(widget)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, dock)

    def _add_action(
        self,
        key: str,
        text: str,
        slot: Callable[[], object],
        shortcut: Optional[str] = None,
        checkable: bool = False
    ) -> QAction:
        action = QAction(text, self)
        action.setCheckable(checkable)
        if shortcut:
            action.setShortcut(shortcut)
        action.triggered.connect(lambda checked=False: slot())
        self._actions[key] = action
        return action

    def _create_toolbar(self) -> None:
        """Create the main toolbar."""
        self.toolbar = QToolBar()
        self.toolbar.setObjectName("MainToolBar")
        self.toolbar.setIconSize(QSize(24, 24))
        self.addToolBar(self.toolbar)

        self.toolbar.addAction(self._add_action("open", "Open Images", self._open_images))
        self.toolbar.addAction(self._add_action("add", "Add Images", self._add_images))
        self.toolbar.addAction(self._add_action("import", "Load VOC", self._import_annotations))
        self.toolbar.addSeparator()

        self.toolbar.addAction(self._add_action("previous", "Previous", lambda: self._navigate(-1)))
        self.toolbar.addAction(self._add_action("next", "Next", lambda: self._navigate(1)))
        self.toolbar.addSeparator()

        self.toolbar.addAction(self._add_action("zoom_in", "Zoom In", self.controller.zoom_in))
        self.toolbar.addAction(self._add_action("zoom_out", "Zoom Out", self.controller.zoom_out))
        self.toolbar.addSeparator()

        self.toolbar.addAction(
            self._add_action("draw", "Draw", self.controller.toggle_draw_mode, checkable=True)
        )
        self.toolbar.addWidget(QLabel(" Class: "))
        self.class_combo = QComboBox()
        self.class_combo.setMinimumWidth(140)
        self.class_combo.currentIndexChanged.connect(self._on_class_changed)
        self.toolbar.addWidget(self.class_combo)

        self.toolbar.addAction(self._add_action("delete", "Delete", self.controller.delete_selected))
        self.toolbar.addSeparator()

        self.toolbar.addAction(self._add_action("export", "Save Annotations", self._export_annotations))
        self.toolbar.addWidget(QLabel(" Crops: "))
        self.crop_format_combo = QComboBox()
        self.crop_format_combo.addItems(list(CROP_FORMATS))
        self.crop_format_combo.setCurrentText(self.config.crop_format)
        self.crop_format_combo.currentTextChanged.connect(self._on_crop_format_changed)
        self.toolbar.addWidget(self.crop_format_combo)
        self.toolbar.addAction(self._add_action("crops", "Save Crops", self._export_crops))

    def _create_menus(self) -> None:
        """Create the menu bar."""
        menubar = self.menuBar()

        # File menu
        file_menu = menubar.addMenu("File")
        file_menu.addAction(self._actions["open"])
        self._actions["open"].setShortcut("Ctrl+O")

        open_dir_action = self._add_action("open_directory", "Open Directory...", self._open_directory)
        file_menu.addAction(open_dir_action)
        file_menu.addAction(self._actions["add"])

        # Recent Paths submenu
        self.recent_paths_menu = file_menu.addMenu("Recent Paths")
        self._update_recent_paths_menu()

        file_menu.addSeparator()
        file_menu.addAction(self._actions["import"])
        self._actions["import"].setShortcut("Ctrl+I")
        file_menu.addAction(self._actions["export"])
        file_menu.addAction(self._actions["crops"])

        archive_action = self._add_action(
            "archive", "Export as Zip Archive", self._toggle_archive_export, checkable=True
        )
        archive_action.setChecked(self.config.export_as_archive)
        file_menu.addAction(archive_action)

        file_menu.addSeparator()
        exit_action = QAction("Exit", self)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        # View menu
        view_menu = menubar.addMenu("View")
        view_menu.addAction(self._actions["previous"])
        view_menu.addAction(self._actions["next"])
        view_menu.addSeparator()
        view_menu.addAction(self._actions["zoom_in"])
        view_menu.addAction(self._actions["zoom_out"])
        view_menu.addAction(self._actions["draw"])

        # Info menu
        info_menu = menubar.addMenu("Info")
        about_action = QAction("About", self)
        about_action.triggered.connect(self._show_about)
        info_menu.addAction(about_action)

    def _setup_connections(self) -> None:
        """Set up signal/slot connections."""
        self.controller.status_message.connect(self._show_status_message)
        self.controller.error_reported.connect(self._show_error)
        self.controller.selection_changed.connect(self._on_selection_changed)
        self.controller.annotations_changed.connect(self._on_annotations_changed)
        self.controller.navigation_requested.connect(self._navigate)
        self.controller.export_requested.connect(self._export_annotations)

    # === Image set ===

    def _open_images(self) -> None:
        """Replace the image set with files picked by the user."""
        files, _ = QFileDialog.getOpenFileNames(
            self, "Open Images", self.config.default_directory, image_file_filter()
        )
        if files:
            self._load_image_set([Path(f) for f in files])

    def _open_directory(self) -> None:
        """Replace the image set with every image in a directory."""
        directory = QFileDialog.getExistingDirectory(
            self, "Select Image Directory", self.config.default_directory
        )
        if directory:
            self._open_image_directory(directory)

    def _open_image_directory(self, directory: str) -> None:
        path = Path(directory)
        if not path.is_dir():
            QMessageBox.warning(self, "Open Directory", f"Directory not found:\n{directory}")
            return
        try:
            files = filter_image_files(p for p in path.iterdir() if p.is_file())
        except OSError as e:
            logger.error(f"Error listing {directory}: {e}")
            QMessageBox.warning(self, "Open Directory", f"Could not read directory:\n{e}")
            return
        if not files:
            self._show_status_message(f"No images found in {directory}")
            return
        self._load_image_set(files)

    def _load_image_set(self, files: List[Path]) -> None:
        if self.session.open_images(files) == 0:
            return
        directory = str(files[0].parent)
        self.config.default_directory = directory
        self._add_recent_path(directory)
        self._refresh_classes()
        self._show_image(0)

    def _add_images(self) -> None:
        """Add images to the current set, keeping the current image."""
        files, _ = QFileDialog.getOpenFileNames(
            self, "Add Images", self.config.default_directory, image_file_filter()
        )
        if not files:
            return

        had_images = bool(self.session.images)
        added = self.session.add_images(Path(f) for f in files)
        self._show_status_message(f"Added {added} images ({len(self.session.images)} total).")
        if not had_images and self.session.images:
            self._show_image(0)
        self._update_actions()

    def _add_recent_path(self, path: str) -> None:
        """Add a path to the recent paths list."""
        self.config.add_recent_path(path)
        self._update_recent_paths_menu()

    def _update_recent_paths_menu(self) -> None:
        """Update the recent paths submenu."""
        self.recent_paths_menu.clear()

        if self.config.max_recent_paths <= 0:
            disabled_action = self.recent_paths_menu.addAction("(Disabled)")
            disabled_action.setEnabled(False)
            return

        if not self.config.recent_paths:
            no_recent_action = self.recent_paths_menu.addAction("No recent paths")
            no_recent_action.setEnabled(False)
            return

        for path in self.config.recent_paths:
            action = self.recent_paths_menu.addAction(path)
            action.triggered.connect(lambda checked=False, p=path: self._open_image_directory(p))

    # === Navigation and decoding ===

    def _navigate(self, delta: int) -> None:
        token = self.controller.navigate(delta)
        if token is not None:
            self._start_decode(token)
        self._update_actions()

    def _show_image(self, index: int) -> None:
        token = self.controller.begin_image(index)
        if token is not None:
            self._start_decode(token)
        self._update_actions()

    def _start_decode(self, token: int) -> None:
        entry = self.session.current_entry
        if entry is None:
            return
        self._show_status_message(f"Loading {entry.name}...")
        self.info_label.setText(entry.name)

        worker = ImageDecodeWorker(token, entry.name, entry.path)
        worker.image_decoded.connect(self._on_image_decoded)
        worker.decode_failed.connect(self._on_decode_failed)
        worker.finished.connect(lambda t=token: self._decode_workers.pop(t, None))
        self._decode_workers[token] = worker
        worker.start()

    def _on_image_decoded(self, token: int, image_id: str, image: QImage) -> None:
        if self.controller.image_loaded(token, image_id, image):
            self._update_actions()

    def _on_decode_failed(self, token: int, image_id: str, message: str) -> None:
        if token != self.session.load_token:
            logger.debug(f"Ignoring stale decode failure for {image_id}")
            return
        self._show_status_message(f"Error: {message}")
        QMessageBox.warning(self, "Image Load Failed", message)

    # === Classes and annotation list ===

    def _refresh_classes(self) -> None:
        """Rebuild the class selector from the known classes."""
        current = self.session.current_class
        self.class_combo.blockSignals(True)
        self.class_combo.clear()
        self.class_combo.addItem("Select class...", None)
        for name in self.store.sorted_classes():
            self.class_combo.addItem(name, name)
        index = self.class_combo.findData(current) if current else 0
        self.class_combo.setCurrentIndex(max(index, 0))
        self.class_combo.blockSignals(False)
        self.controller.set_current_class(self.class_combo.currentData())

    def _on_class_changed(self, index: int) -> None:
        label = self.class_combo.itemData(index)
        self.controller.set_current_class(label)
        if label:
            self._show_status_message(f"Current class: {label}")

    def _refresh_annotation_list(self) -> None:
        self.annotation_list.blockSignals(True)
        self.annotation_list.clear()
        for i, box in enumerate(self.store.boxes(self.session.current_image_id)):
            self.annotation_list.addItem(QListWidgetItem(box.describe(i)))
        selected = self.session.selected_index
        if selected is not None and selected < self.annotation_list.count():
            self.annotation_list.setCurrentRow(selected)
        self.annotation_list.blockSignals(False)

    def _on_annotation_clicked(self, item: QListWidgetItem) -> None:
        self.controller.select_box(self.annotation_list.row(item))
        self.canvas.setFocus()

    def _on_selection_changed(self, index: Optional[int]) -> None:
        self.annotation_list.blockSignals(True)
        if index is None:
            self.annotation_list.clearSelection()
            self.annotation_list.setCurrentRow(-1)
        elif index < self.annotation_list.count():
            self.annotation_list.setCurrentRow(index)
        self.annotation_list.blockSignals(False)
        self._update_actions()

    def _on_annotations_changed(self) -> None:
        self._refresh_annotation_list()
        if set(self.store.sorted_classes()) != {
            self.class_combo.itemData(i) for i in range(1, self.class_combo.count())
        }:
            self._refresh_classes()
        self._update_actions()

    def _ask_label(self, current: str) -> Optional[str]:
        """Prompt for a new class name; None when cancelled."""
        text, ok = QInputDialog.getText(self, "Edit Class", "Enter new class name:", text=current)
        if not ok:
            return None
        return text

    def _on_crop_format_changed(self, image_format: str) -> None:
        self.config.crop_format = image_format

    def _toggle_archive_export(self) -> None:
        self.config.export_as_archive = self._actions["archive"].isChecked()

    # === Import ===

    def _import_annotations(self) -> None:
        """Merge Pascal VOC files into the loaded images."""
        if not self.session.images:
            QMessageBox.information(self, "Load VOC", "Load images before importing annotations.")
            return

        files, _ = QFileDialog.getOpenFileNames(
            self, "Load VOC Annotations", self.config.default_directory,
            "Pascal VOC (*.xml);;All Files (*)"
        )
        if not files:
            return

        report = import_voc_files(
            self.store, [entry.name for entry in self.session.images], [Path(f) for f in files]
        )
        self._refresh_classes()
        self._refresh_annotation_list()
        self.canvas.update()
        self._update_actions()
        self._show_status_message(report.summary())

        if report.errors or report.unmatched or report.not_xml:
            details = [f"{name}: {reason}" for name, reason in report.errors.items()]
            details += [f"{name}: no matching image" for name in report.unmatched]
            details += [f"{name}: not an XML file" for name in report.not_xml]
            QMessageBox.warning(self, "Load VOC", "Some files were skipped:\n" + "\n".join(details))

    # === Export ===

    def _export_running(self) -> bool:
        if self._export_worker is not None and self._export_worker.isRunning():
            self._show_status_message("An export is already running.")
            return True
        return False

    def _ask_export_directory(self) -> Optional[Path]:
        start = self.config.export_directory or self.config.default_directory
        directory = QFileDialog.getExistingDirectory(self, "Select Export Directory", start)
        if not directory:
            return None
        self.config.export_directory = directory
        return Path(directory)

    def _export_annotations(self) -> None:
        """Export YOLO and Pascal VOC annotations of every image."""
        if self._export_running():
            return
        if not self.store.has_annotations():
            self._show_status_message("Nothing to save.")
            return

        directory = self._ask_export_directory()
        if directory is None:
            return

        store = self.store.snapshot()
        paths = {entry.name: entry.path for entry in self.session.images}
        workers = self.config.export_workers

        def size_provider(image_id: str):
            path = paths.get(image_id)
            return read_image_size(path) if path is not None else None

        archive = ANNOTATIONS_ARCHIVE if self.config.export_as_archive else None
        self._start_export(lambda: export_annotations(store, size_provider, workers), directory, archive)

    def _export_crops(self) -> None:
        """Export the boxes of the current image as cropped images."""
        if self._export_running():
            return
        image_id = self.session.current_image_id
        if image_id is None or not self.session.has_image:
            self._show_status_message("No image loaded.")
            return
        boxes = self.store.boxes(image_id)
        if not boxes:
            self._show_status_message("No annotations to crop.")
            return

        directory = self._ask_export_directory()
        if directory is None:
            return

        image = self.session.image.copy()
        image_format = self.config.crop_format
        quality = self.config.crop_quality
        archive = crops_archive_name(image_id) if self.config.export_as_archive else None
        self._start_export(
            lambda: export_crops(image, image_id, boxes, image_format, quality), directory, archive
        )

    def _start_export(
        self,
        job: Callable[[], ExportResult],
        directory: Path,
        archive_name: Optional[str]
    ) -> None:
        self._show_status_message("Exporting...")
        worker = ExportWorker(job, directory, archive_name)
        worker.export_finished.connect(self._on_export_finished)
        worker.export_failed.connect(self._on_export_failed)
        self._export_worker = worker
        worker.start()

    def _on_export_finished(self, result: ExportResult, written: List[Path]) -> None:
        target = written[0] if self._export_worker.archive_name else self._export_worker.directory
        self._show_status_message(f"Saved {len(result.exported)} items to {target}")

        problems = [f"{name}: {reason}" for name, reason in result.failed.items()]
        problems += result.skipped
        if problems:
            QMessageBox.warning(
                self, "Export", "Export finished with problems:\n" + "\n".join(problems)
            )

    def _on_export_failed(self, message: str) -> None:
        self._show_status_message(f"Error: {message}")
        QMessageBox.warning(self, "Export Failed", message)

    # === Status ===

    def _show_status_message(self, message: str) -> None:
        """Show a status bar message."""
        self.status_bar.showMessage(message)
        if self.session.has_image:
            self.info_label.setText(self.session.image_info())
        self._actions["draw"].setChecked(self.session.draw_mode)

    def _show_error(self, message: str) -> None:
        QMessageBox.warning(self, "Palm Annotator", message)

    def _update_actions(self) -> None:
        """Enable actions that apply to the current state."""
        has_images = bool(self.session.images)
        has_image = self.session.current_entry is not None
        self._actions["previous"].setEnabled(self.session.can_go_previous())
        self._actions["next"].setEnabled(self.session.can_go_next())
        self._actions["zoom_in"].setEnabled(has_image)
        self._actions["zoom_out"].setEnabled(has_image)
        self._actions["draw"].setEnabled(has_image)
        self._actions["draw"].setChecked(self.session.draw_mode)
        self._actions["delete"].setEnabled(self.session.selected_index is not None)
        self._actions["import"].setEnabled(has_images)
        self._actions["export"].setEnabled(self.store.has_annotations())
        self._actions["crops"].setEnabled(self.store.has_annotations(self.session.current_image_id))
        if self.session.has_image or self.session.current_entry is None:
            self.info_label.setText(self.session.image_info())

    def _show_about(self) -> None:
        """Show about dialog."""
        QMessageBox.about(
            self,
            "About Palm Annotator",
            "Palm Annotator\nVersion 1.0.0\n\n"
            "Bounding box annotation of hand regions with YOLO and Pascal VOC export."
        )

    # === Event Handlers ===

    def closeEvent(self, event: QCloseEvent) -> None:
        """Handle window close."""
        self.config_manager.save()

        for worker in list(self._decode_workers.values()):
            worker.wait()
        if self._export_worker is not None:
            self._export_worker.wait()

        super().closeEvent(event)
