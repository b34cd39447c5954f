"""Configuration management for the annotation canvas."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# Default configuration file path
DEFAULT_CONFIG_PATH = Path("canvas.yaml")

PAN_MODIFIERS = ("shift", "ctrl")


@dataclass
class CanvasConfig:
    """
    Canvas configuration settings.

    Stores viewport, editing and rendering preferences.
    """

    keep_zoom_pan: bool = False  # Keep zoom/pan when the image changes or the container resizes
    fit_mode: str = "inside"  # inside or outside
    pan_modifier: str = "shift"  # Modifier that turns a drag into a pan: shift or ctrl
    multi_select_modifier: str = "ctrl"  # Modifier that toggles selection membership
    min_zoom: float = 0.05
    max_zoom: float = 5.0
    wheel_zoom_in_factor: float = 1.15
    wheel_zoom_out_factor: float = 0.85
    resize_debounce_ms: int = 100
    flash_duration_ms: int = 200
    handle_radius: float = 6.0  # Corner handle hit radius in screen pixels
    polygon_close_radius: float = 6.0  # Snap distance to the first vertex in screen pixels
    max_history_entries: int = 100  # Maximum undo steps per image
    line_thickness: float = 1.5
    shape_color: str = "#5ad8ff"
    selected_color: str = "#ffaf45"

    def __post_init__(self) -> None:
        """Fall back to defaults for out-of-range values."""
        if self.fit_mode not in ("inside", "outside"):
            logger.warning(f"Unknown fit mode '{self.fit_mode}', using 'inside'")
            self.fit_mode = "inside"
        if self.pan_modifier not in PAN_MODIFIERS:
            logger.warning(f"Unknown pan modifier '{self.pan_modifier}', using 'shift'")
            self.pan_modifier = "shift"
        if self.multi_select_modifier == self.pan_modifier:
            self.multi_select_modifier = "ctrl" if self.pan_modifier == "shift" else "shift"
        if not 0 < self.min_zoom <= self.max_zoom:
            logger.warning("Invalid zoom range, using defaults")
            self.min_zoom, self.max_zoom = 0.05, 5.0
        self.max_history_entries = max(1, self.max_history_entries)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            "keepZoomPan": self.keep_zoom_pan,
            "fitMode": self.fit_mode,
            "panModifier": self.pan_modifier,
            "multiSelectModifier": self.multi_select_modifier,
            "minZoom": self.min_zoom,
            "maxZoom": self.max_zoom,
            "wheelZoomInFactor": self.wheel_zoom_in_factor,
            "wheelZoomOutFactor": self.wheel_zoom_out_factor,
            "resizeDebounceMs": self.resize_debounce_ms,
            "flashDurationMs": self.flash_duration_ms,
            "handleRadius": self.handle_radius,
            "polygonCloseRadius": self.polygon_close_radius,
            "maxHistoryEntries": self.max_history_entries,
            "lineThickness": self.line_thickness,
            "shapeColor": self.shape_color,
            "selectedColor": self.selected_color,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CanvasConfig:
        """Create config from dictionary."""
        return cls(
            keep_zoom_pan=data.get("keepZoomPan", False),
            fit_mode=data.get("fitMode", "inside"),
            pan_modifier=data.get("panModifier", "shift"),
            multi_select_modifier=data.get("multiSelectModifier", "ctrl"),
            min_zoom=data.get("minZoom", 0.05),
            max_zoom=data.get("maxZoom", 5.0),
            wheel_zoom_in_factor=data.get("wheelZoomInFactor", 1.15),
            wheel_zoom_out_factor=data.get("wheelZoomOutFactor", 0.85),
            resize_debounce_ms=data.get("resizeDebounceMs", 100),
            flash_duration_ms=data.get("flashDurationMs", 200),
            handle_radius=data.get("handleRadius", 6.0),
            polygon_close_radius=data.get("polygonCloseRadius", 6.0),
            max_history_entries=data.get("maxHistoryEntries", 100),
            line_thickness=data.get("lineThickness", 1.5),
            shape_color=data.get("shapeColor", "#5ad8ff"),
            selected_color=data.get("selectedColor", "#ffaf45"),
        )


class ConfigManager:
    """
    Loads the canvas configuration from YAML and writes changes back.

    The loaded :class:`CanvasConfig` instance is shared with the canvas
    components, so :meth:`update` changes it in place.
    """

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        self.config_path = Path(config_path)
        self._config: Optional[CanvasConfig] = None

    @property
    def config(self) -> CanvasConfig:
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> CanvasConfig:
        """
        Read the configuration file.

        Missing, unparseable or non-mapping files give the defaults.
        """
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            return CanvasConfig()

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing config file: {e}")
            return CanvasConfig()
        except OSError as e:
            logger.error(f"Error reading config file: {e}")
            return CanvasConfig()

        if not isinstance(data, dict):
            logger.error(f"Config file {self.config_path} does not hold a mapping, using defaults")
            return CanvasConfig()

        logger.info(f"Loaded configuration from {self.config_path}")
        return CanvasConfig.from_dict(data)

    def save(self, config: Optional[CanvasConfig] = None) -> bool:
        """
        Write the configuration, replacing the current one if given.

        Returns:
            True if the file was written
        """
        if config is not None:
            self._config = config
        try:
            with open(self.config_path, "w") as f:
                yaml.safe_dump(self.config.to_dict(), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            logger.error(f"Error saving config: {e}")
            return False
        logger.info(f"Saved configuration to {self.config_path}")
        return True

    def update(self, **changes: Any) -> CanvasConfig:
        """
        Change settings by attribute name and persist them.

        Values are validated like freshly loaded ones; unknown names are
        logged and skipped.
        """
        config = self.config
        names = {f.name for f in fields(CanvasConfig)}
        for key in changes.keys() - names:
            logger.warning(f"Unknown config key: {key}")

        validated = replace(config, **{k: v for k, v in changes.items() if k in names})
        for name in names:
            setattr(config, name, getattr(validated, name))
        self.save()
        return config
