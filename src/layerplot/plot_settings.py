"""Plot settings and their persistence (platformdirs + JSON).

Persisted items (schema v1):
- settings: PlotSettings dict representation

Behavior:
- If the settings file is missing or unreadable -> defaults are used
- If schema_version mismatches:
  - default: reset to defaults
  - optional: keep loaded but update version
- Unknown keys in loaded JSON are ignored with warnings
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_config_dir

from layerplot.algorithms.confidence_ellipse import DEFAULT_LEVEL, DEFAULT_SEGMENTS
from layerplot.mapping import CATEGORICAL_CHANNELS
from layerplot.scales import AXIS_POSITIONS, TRANSFORM_NAMES
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

# Increment when you make a breaking change to the on-disk JSON schema.
SCHEMA_VERSION: int = 1


@dataclass
class PlotSettings:
    """User-adjustable settings of a vowel-chart style plot.

    Applied to a :class:`layerplot.plot.Plot` with ``Plot.apply_settings``.
    Axis transforms named "identity" leave the plot's own declaration alone.
    """
    level: float = DEFAULT_LEVEL               # confidence level for ellipse layers
    segments: int = DEFAULT_SEGMENTS           # vertices per ellipse
    x_transform: str = "identity"
    y_transform: str = "identity"
    x_position: Optional[str] = None           # "bottom" / "top"
    y_position: Optional[str] = None           # "left" / "right"
    breaks: dict[str, list[Any]] = field(default_factory=dict)  # channel -> legend order
    theme: list[dict[str, Any]] = field(default_factory=list)   # ThemeSettings.to_list()
    show_legend: bool = True
    point_size: float = 6.0
    point_alpha: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict."""
        return {
            "level": self.level,
            "segments": self.segments,
            "x_transform": self.x_transform,
            "y_transform": self.y_transform,
            "x_position": self.x_position,
            "y_position": self.y_position,
            "breaks": {k: list(v) for k, v in self.breaks.items()},
            "theme": [dict(op) for op in self.theme],
            "show_legend": self.show_legend,
            "point_size": self.point_size,
            "point_alpha": self.point_alpha,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlotSettings":
        """Tolerant loader: invalid values fall back to defaults with a warning.

        Raises:
            TypeError: If ``data`` is not a dict.
        """
        if not isinstance(data, dict):
            raise TypeError(f"PlotSettings.from_dict expects a dict, got {type(data)!r}")
        defaults = cls()

        def _get(key: str, conv, valid=lambda v: True):
            if key not in data or data[key] is None:
                return getattr(defaults, key)
            try:
                value = conv(data[key])
            except (TypeError, ValueError):
                logger.warning(f"Invalid value for {key!r}: {data[key]!r}, using default")
                return getattr(defaults, key)
            if not valid(value):
                logger.warning(f"Out-of-range value for {key!r}: {value!r}, using default")
                return getattr(defaults, key)
            return value

        breaks_raw = data.get("breaks") or {}
        breaks: dict[str, list[Any]] = {}
        if isinstance(breaks_raw, dict):
            for channel, values in breaks_raw.items():
                if channel in CATEGORICAL_CHANNELS and isinstance(values, list):
                    breaks[channel] = list(values)
                else:
                    logger.warning(f"Ignoring breaks entry {channel!r}: {values!r}")
        else:
            logger.warning("breaks is not a dict, ignoring")

        theme_raw = data.get("theme") or []
        theme = [dict(op) for op in theme_raw if isinstance(op, dict)] if isinstance(theme_raw, list) else []

        x_position = data.get("x_position")
        if x_position is not None and x_position not in AXIS_POSITIONS["x"]:
            logger.warning(f"Invalid x_position {x_position!r}, using default")
            x_position = None
        y_position = data.get("y_position")
        if y_position is not None and y_position not in AXIS_POSITIONS["y"]:
            logger.warning(f"Invalid y_position {y_position!r}, using default")
            y_position = None

        known = set(defaults.to_dict())
        for key in data:
            if key not in known:
                logger.warning(f"Unknown key '{key}' in plot settings, ignoring")

        return cls(
            level=_get("level", float, lambda v: 0.0 < v < 1.0),
            segments=_get("segments", int, lambda v: v >= 3),
            x_transform=_get("x_transform", str, lambda v: v in TRANSFORM_NAMES),
            y_transform=_get("y_transform", str, lambda v: v in TRANSFORM_NAMES),
            x_position=x_position,
            y_position=y_position,
            breaks=breaks,
            theme=theme,
            show_legend=_get("show_legend", bool),
            point_size=_get("point_size", float, lambda v: v > 0),
            point_alpha=_get("point_alpha", float, lambda v: 0.0 <= v <= 1.0),
        )


class PlotSettingsStore:
    """
    Manager for loading/saving PlotSettings to disk.
    """

    def __init__(self, *, path: Path, settings: Optional[PlotSettings] = None, schema_version: int = SCHEMA_VERSION):
        self.path = path
        self.settings = settings if settings is not None else PlotSettings()
        self.schema_version = schema_version

    @staticmethod
    def default_config_path(
        app_name: str = "layerplot",
        filename: str = "plot_settings.json",
        app_author: str | None = None,
    ) -> Path:
        """
        Determine OS-appropriate per-user config path.

        macOS:   ~/Library/Application Support/layerplot/plot_settings.json
        Linux:   ~/.config/layerplot/plot_settings.json
        Windows: %APPDATA%\\layerplot\\plot_settings.json
        """
        d = Path(user_config_dir(app_name, app_author))
        d.mkdir(parents=True, exist_ok=True)
        return d / filename

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        app_name: str = "layerplot",
        filename: str = "plot_settings.json",
        app_author: str | None = None,
        schema_version: int = SCHEMA_VERSION,
        reset_on_version_mismatch: bool = True,
        create_if_missing: bool = False,
    ) -> "PlotSettingsStore":
        """
        Load settings from disk.

        If the file doesn't exist or is unreadable -> defaults.
        If schema mismatch:
          - reset_on_version_mismatch=True -> defaults
          - else -> keep loaded settings, save under the new version

        If create_if_missing=True and the file is missing -> immediately write defaults.
        """
        path = config_path or cls.default_config_path(app_name=app_name, filename=filename, app_author=app_author)

        def _defaults() -> "PlotSettingsStore":
            return cls(path=path, schema_version=schema_version)

        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(parsed, dict):
                logger.warning(f"Plot settings file at {path} does not contain a dict, using defaults")
                return _defaults()

            loaded_version = int(parsed.get("schema_version", -1))
            if loaded_version != int(schema_version):
                if reset_on_version_mismatch:
                    logger.warning(
                        f"Plot settings schema version mismatch: loaded={loaded_version}, "
                        f"expected={schema_version}, resetting to defaults"
                    )
                    store = _defaults()
                    if create_if_missing:
                        store.save()
                    return store

            for key in parsed:
                if key not in ("schema_version", "settings"):
                    logger.warning(f"Unknown key '{key}' in plot settings file, ignoring")
            settings_raw = parsed.get("settings", {})
            if not isinstance(settings_raw, dict):
                logger.warning("settings is not a dict, using defaults")
                settings_raw = {}
            return cls(path=path, settings=PlotSettings.from_dict(settings_raw), schema_version=schema_version)
        except FileNotFoundError:
            logger.debug(f"Plot settings file not found at {path}, using defaults")
            store = _defaults()
            if create_if_missing:
                store.save()
            return store
        except json.JSONDecodeError as e:
            logger.warning(f"Plot settings file at {path} is not valid JSON: {e}, using defaults")
            return _defaults()
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Error loading plot settings from {path}: {e}, using defaults")
            return _defaults()

    def to_json_dict(self) -> Dict[str, Any]:
        return {"schema_version": self.schema_version, "settings": self.settings.to_dict()}

    def save(self) -> None:
        """Write settings to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.to_json_dict(), indent=2), encoding="utf-8")
            logger.info(f"Saved plot settings to {self.path}")
        except Exception as e:
            logger.error(f"Error saving plot settings to {self.path}: {e}")
            raise
