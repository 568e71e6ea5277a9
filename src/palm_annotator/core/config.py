"""Configuration management for Palm Annotator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .models import PREDEFINED_CLASSES

logger = logging.getLogger(__name__)

# Default configuration file path
DEFAULT_CONFIG_PATH = Path("config.yaml")

# Image formats offered for crop export
CROP_FORMATS = ("png", "jpeg", "bmp", "webp")


@dataclass
class AppConfig:
    """
    Application configuration settings.

    Stores user preferences and interaction tuning values.
    """

    default_directory: str = ""
    export_directory: str = ""
    line_thickness: int = 2
    font_size: int = 14
    handle_size: int = 8  # Handle square side in screen pixels
    handle_hit_tolerance: int = 6  # Extra hit radius around a handle
    min_box_size_px: int = 4  # Smaller drawn boxes are discarded
    drag_threshold_px: int = 5  # Movement before a click becomes a move
    zoom_step: float = 1.2
    predefined_classes: List[str] = field(default_factory=lambda: list(PREDEFINED_CLASSES))
    crop_format: str = "png"  # One of CROP_FORMATS
    crop_quality: int = 92  # 0-100, used by lossy crop formats
    export_as_archive: bool = True  # Zip exports instead of writing loose files
    export_workers: int = 4  # Threads encoding images during export
    max_recent_paths: int = 10  # Number of recent paths to remember (0-20, 0 = disabled)
    recent_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            "defaultDirectory": self.default_directory,
            "exportDirectory": self.export_directory,
            "lineThickness": self.line_thickness,
            "fontSize": self.font_size,
            "handleSize": self.handle_size,
            "handleHitTolerance": self.handle_hit_tolerance,
            "minBoxSizePx": self.min_box_size_px,
            "dragThresholdPx": self.drag_threshold_px,
            "zoomStep": self.zoom_step,
            "predefinedClasses": list(self.predefined_classes),
            "cropFormat": self.crop_format,
            "cropQuality": self.crop_quality,
            "exportAsArchive": self.export_as_archive,
            "exportWorkers": self.export_workers,
            "maxRecentPaths": self.max_recent_paths,
            "recentPaths": list(self.recent_paths),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Create config from dictionary."""
        crop_format = str(data.get("cropFormat", "png")).lower()
        if crop_format not in CROP_FORMATS:
            logger.warning(f"Unsupported crop format '{crop_format}', using png")
            crop_format = "png"

        return cls(
            default_directory=data.get("defaultDirectory", ""),
            export_directory=data.get("exportDirectory", ""),
            line_thickness=data.get("lineThickness", 2),
            font_size=data.get("fontSize", 14),
            handle_size=data.get("handleSize", 8),
            handle_hit_tolerance=data.get("handleHitTolerance", 6),
            min_box_size_px=data.get("minBoxSizePx", 4),
            drag_threshold_px=data.get("dragThresholdPx", 5),
            zoom_step=data.get("zoomStep", 1.2),
            predefined_classes=data.get("predefinedClasses", list(PREDEFINED_CLASSES)),
            crop_format=crop_format,
            crop_quality=max(0, min(100, int(data.get("cropQuality", 92)))),
            export_as_archive=data.get("exportAsArchive", True),
            export_workers=max(1, int(data.get("exportWorkers", 4))),
            max_recent_paths=data.get("maxRecentPaths", 10),
            recent_paths=data.get("recentPaths", []),
        )

    @property
    def handle_hit_radius(self) -> float:
        """Screen-space radius used to hit-test resize handles."""
        return self.handle_size / 2 + self.handle_hit_tolerance

    def add_recent_path(self, path: str) -> None:
        """Move a path to the front of the recent list, trimming it."""
        if self.max_recent_paths <= 0:
            self.recent_paths = []
            return
        paths = [p for p in self.recent_paths if p != path]
        paths.insert(0, path)
        self.recent_paths = paths[:self.max_recent_paths]


class ConfigManager:
    """
    Manager for loading and saving application configuration.

    Handles YAML serialization and provides a clean interface
    for configuration access.
    """

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> AppConfig:
        """
        Load configuration from file.

        Returns:
            AppConfig instance with loaded or default values
        """
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            return AppConfig()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                logger.error(f"Config file {self.config_path} is not a mapping, using defaults")
                return AppConfig()
            logger.info(f"Loaded configuration from {self.config_path}")
            return AppConfig.from_dict(data)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing config file: {e}")
            return AppConfig()
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error loading config: {e}")
            return AppConfig()

    def save(self, config: Optional[AppConfig] = None) -> bool:
        """
        Save configuration to file.

        Args:
            config: Configuration to save, or use current config

        Returns:
            True if save was successful
        """
        if config is not None:
            self._config = config

        if self._config is None:
            logger.warning("No configuration to save")
            return False

        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                yaml.dump(self._config.to_dict(), f, default_flow_style=False)
            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except OSError as e:
            logger.error(f"Error saving config: {e}")
            return False

    def update(self, **kwargs: Any) -> None:
        """
        Update configuration with new values.

        Args:
            **kwargs: Key-value pairs to update
        """
        config = self.config
        for key, value in kwargs.items():
            if hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.warning(f"Unknown config key: {key}")
        self.save()
