"""Tests for configuration management."""

from pathlib import Path

from palm_annotator.core.config import CROP_FORMATS, AppConfig, ConfigManager
from palm_annotator.core.models import PREDEFINED_CLASSES


class TestAppConfig:
    """Tests for AppConfig."""

    def test_default_config(self):
        """Test creating config with defaults."""
        config = AppConfig()

        assert config.default_directory == ""
        assert config.line_thickness == 2
        assert config.handle_size == 8
        assert config.handle_hit_tolerance == 6
        assert config.min_box_size_px == 4
        assert config.drag_threshold_px == 5
        assert config.zoom_step == 1.2
        assert config.crop_format == "png"
        assert config.crop_quality == 92
        assert config.export_as_archive is True
        assert config.predefined_classes == PREDEFINED_CLASSES

    def test_handle_hit_radius(self):
        """The hit radius is half the handle plus the tolerance."""
        assert AppConfig(handle_size=8, handle_hit_tolerance=6).handle_hit_radius == 10

    def test_to_dict(self):
        """Test converting config to dictionary."""
        config = AppConfig(default_directory="/path/to/dir", crop_format="webp")

        data = config.to_dict()

        assert data["defaultDirectory"] == "/path/to/dir"
        assert data["cropFormat"] == "webp"
        assert data["exportAsArchive"] is True
        assert "handleSize" in data

    def test_from_dict(self):
        """Test creating config from dictionary."""
        data = {
            "defaultDirectory": "/test/path",
            "lineThickness": 3,
            "zoomStep": 1.5,
            "cropFormat": "JPEG",
            "exportAsArchive": False,
        }

        config = AppConfig.from_dict(data)

        assert config.default_directory == "/test/path"
        assert config.line_thickness == 3
        assert config.zoom_step == 1.5
        assert config.crop_format == "jpeg"
        assert config.export_as_archive is False

    def test_from_dict_with_defaults(self):
        """Test creating config from partial dictionary."""
        config = AppConfig.from_dict({"defaultDirectory": "/test/path"})

        assert config.default_directory == "/test/path"
        assert config.line_thickness == 2  # default
        assert config.export_workers == 4  # default

    def test_from_dict_sanitizes_values(self):
        """Out of range values fall back or are clamped."""
        config = AppConfig.from_dict({"cropFormat": "tiff", "cropQuality": 150, "exportWorkers": 0})

        assert config.crop_format == "png"
        assert config.crop_format in CROP_FORMATS
        assert config.crop_quality == 100
        assert config.export_workers == 1

    def test_add_recent_path(self):
        """Recent paths move to the front and are trimmed."""
        config = AppConfig(max_recent_paths=2)
        config.add_recent_path("/a")
        config.add_recent_path("/b")
        config.add_recent_path("/a")
        config.add_recent_path("/c")

        assert config.recent_paths == ["/c", "/a"]

    def test_recent_paths_disabled(self):
        """A zero limit keeps no paths."""
        config = AppConfig(max_recent_paths=0)
        config.add_recent_path("/a")
        assert config.recent_paths == []


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_nonexistent_file(self, tmp_path):
        """Test loading config when file doesn't exist."""
        manager = ConfigManager(tmp_path / "nonexistent.yaml")

        config = manager.load()

        assert config.default_directory == ""
        assert config.line_thickness == 2

    def test_save_and_load(self, tmp_path):
        """Test saving and loading config."""
        config_path = tmp_path / "config.yaml"
        manager = ConfigManager(config_path)

        manager.save(AppConfig(default_directory="/test/dir", crop_quality=70))
        loaded = ConfigManager(config_path).load()

        assert loaded.default_directory == "/test/dir"
        assert loaded.crop_quality == 70
        assert "cropQuality: 70" in config_path.read_text(encoding="utf-8")

    def test_invalid_yaml_uses_defaults(self, tmp_path):
        """A broken file falls back to defaults."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("lineThickness: [unclosed\n", encoding="utf-8")

        config = ConfigManager(config_path).load()

        assert config.line_thickness == 2

    def test_non_mapping_uses_defaults(self, tmp_path):
        """A YAML list is not a configuration."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("- a\n- b\n", encoding="utf-8")

        assert ConfigManager(config_path).load().line_thickness == 2

    def test_save_to_unwritable_path(self, tmp_path):
        """Write errors are reported, not raised."""
        manager = ConfigManager(tmp_path / "missing" / "config.yaml")
        assert manager.save(AppConfig()) is False

    def test_update(self, tmp_path):
        """Test updating config values."""
        manager = ConfigManager(tmp_path / "config.yaml")

        manager.update(default_directory="/new/path", unknown_key=1)

        assert manager.config.default_directory == "/new/path"
        assert not hasattr(manager.config, "unknown_key")

    def test_config_property(self, tmp_path):
        """Test config property lazy loading."""
        manager = ConfigManager(Path(tmp_path) / "config.yaml")

        assert manager.config is manager.config
