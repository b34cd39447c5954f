"""Tests for configuration management."""

import pytest

from annotation_canvas.core.config import CanvasConfig, ConfigManager


class TestCanvasConfig:
    """Tests for CanvasConfig."""

    def test_default_config(self):
        """Test creating config with defaults."""
        config = CanvasConfig()

        assert config.keep_zoom_pan is False
        assert config.fit_mode == "inside"
        assert config.pan_modifier == "shift"
        assert config.multi_select_modifier == "ctrl"
        assert (config.min_zoom, config.max_zoom) == (0.05, 5.0)
        assert config.wheel_zoom_in_factor == 1.15
        assert config.wheel_zoom_out_factor == 0.85
        assert config.resize_debounce_ms == 100
        assert config.flash_duration_ms == 200

    def test_to_dict(self):
        """Test converting config to dictionary."""
        config = CanvasConfig(keep_zoom_pan=True, fit_mode="outside")

        data = config.to_dict()

        assert data["keepZoomPan"] is True
        assert data["fitMode"] == "outside"
        assert "maxHistoryEntries" in data

    def test_from_dict(self):
        """Test creating config from dictionary."""
        data = {
            "keepZoomPan": True,
            "panModifier": "ctrl",
            "maxZoom": 8.0,
            "flashDurationMs": 350,
        }

        config = CanvasConfig.from_dict(data)

        assert config.keep_zoom_pan is True
        assert config.pan_modifier == "ctrl"
        assert config.max_zoom == 8.0
        assert config.flash_duration_ms == 350

    def test_from_dict_with_defaults(self):
        """Test creating config from partial dictionary."""
        config = CanvasConfig.from_dict({"fitMode": "outside"})

        assert config.fit_mode == "outside"
        assert config.handle_radius == 6.0  # default

    @pytest.mark.parametrize("kwargs,field,expected", [
        ({"fit_mode": "stretch"}, "fit_mode", "inside"),
        ({"pan_modifier": "hyper"}, "pan_modifier", "shift"),
        ({"min_zoom": 10, "max_zoom": 1}, "min_zoom", 0.05),
        ({"max_history_entries": 0}, "max_history_entries", 1),
    ])
    def test_invalid_values_fall_back(self, kwargs, field, expected):
        """Test that out-of-range values are replaced by defaults."""
        config = CanvasConfig(**kwargs)

        assert getattr(config, field) == expected

    def test_modifiers_do_not_collide(self):
        """Test that the multi-select modifier differs from the pan modifier."""
        config = CanvasConfig(pan_modifier="ctrl")

        assert config.multi_select_modifier == "shift"


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_nonexistent_file(self, temp_dir):
        """Test loading config when file doesn't exist."""
        manager = ConfigManager(temp_dir / "nonexistent.yaml")

        config = manager.load()

        assert config == CanvasConfig()

    def test_save_and_load(self, temp_dir):
        """Test saving and loading config."""
        manager = ConfigManager(temp_dir / "canvas.yaml")

        assert manager.save(CanvasConfig(keep_zoom_pan=True, max_history_entries=20))
        loaded = manager.load()

        assert loaded.keep_zoom_pan is True
        assert loaded.max_history_entries == 20

    def test_broken_yaml_uses_defaults(self, temp_dir):
        """Test that an unparseable file falls back to defaults."""
        path = temp_dir / "canvas.yaml"
        path.write_text("fitMode: [unclosed\n")

        config = ConfigManager(path).load()

        assert config == CanvasConfig()

    def test_non_mapping_yaml_uses_defaults(self, temp_dir):
        """Test that a YAML list is rejected."""
        path = temp_dir / "canvas.yaml"
        path.write_text("- keepZoomPan\n")

        config = ConfigManager(path).load()

        assert config == CanvasConfig()

    def test_update(self, temp_dir):
        """Test updating config values persists them."""
        path = temp_dir / "canvas.yaml"
        manager = ConfigManager(path)

        manager.update(keep_zoom_pan=True, unknown_key=1)

        assert manager.config.keep_zoom_pan is True
        assert ConfigManager(path).load().keep_zoom_pan is True

    def test_update_validates_in_place(self, temp_dir):
        """Test that updates go through validation and keep the shared instance."""
        manager = ConfigManager(temp_dir / "canvas.yaml")
        config = manager.config

        updated = manager.update(pan_modifier="ctrl", max_history_entries=0)

        assert updated is config
        assert config.pan_modifier == "ctrl"
        assert config.multi_select_modifier == "shift"
        assert config.max_history_entries == 1

    def test_config_property(self, temp_dir):
        """Test config property lazy loading."""
        manager = ConfigManager(temp_dir / "canvas.yaml")

        config1 = manager.config
        config2 = manager.config

        assert config1 is config2
