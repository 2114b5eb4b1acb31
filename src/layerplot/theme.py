"""Global theme settings.

A theme is an ordered list of property-setting operations folded into one
style record. The last write to a key wins, including writes made by a
complete preset: applying ``preset("bw")`` after
``set(legend_position="none")`` brings the legend back, because the preset
sets every key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

LEGEND_POSITIONS: tuple[str, ...] = ("right", "left", "top", "bottom", "none")

# key -> default value; these are all the keys a theme knows
THEME_DEFAULTS: dict[str, Any] = {
    "legend_position": "right",
    "base_size": 11.0,
    "background": "#EBEBEB",
    "grid": "#FFFFFF",
}

PRESETS: dict[str, dict[str, Any]] = {
    "grey": dict(THEME_DEFAULTS),
    "bw": {"legend_position": "right", "base_size": 11.0, "background": "#FFFFFF", "grid": "#EBEBEB"},
    "minimal": {"legend_position": "right", "base_size": 11.0, "background": "#FFFFFF", "grid": "#F0F0F0"},
    "classic": {"legend_position": "right", "base_size": 11.0, "background": "#FFFFFF", "grid": None},
}


@dataclass(frozen=True)
class ThemeOp:
    """One theme operation: either a preset or a partial set of keys."""

    values: tuple[tuple[str, Any], ...]
    preset: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        if self.preset is not None:
            return {"preset": self.preset}
        return {"set": dict(self.values)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ThemeOp":
        if "preset" in data:
            return _preset_op(str(data["preset"]))
        return _set_op(dict(data.get("set", {})))


def _validate(key: str, value: Any) -> None:
    if key not in THEME_DEFAULTS:
        raise ValueError(f"unknown theme key {key!r}; expected one of {tuple(THEME_DEFAULTS)}")
    if key == "legend_position" and value not in LEGEND_POSITIONS:
        raise ValueError(f"legend_position must be one of {LEGEND_POSITIONS}, got {value!r}")
    if key == "base_size" and (not isinstance(value, (int, float)) or value <= 0):
        raise ValueError(f"base_size must be a positive number, got {value!r}")


def _set_op(values: dict[str, Any]) -> ThemeOp:
    for k, v in values.items():
        _validate(k, v)
    return ThemeOp(values=tuple(values.items()))


def _preset_op(name: str) -> ThemeOp:
    if name not in PRESETS:
        raise ValueError(f"unknown theme preset {name!r}; expected one of {tuple(PRESETS)}")
    return ThemeOp(values=tuple(PRESETS[name].items()), preset=name)


@dataclass(frozen=True)
class ResolvedTheme:
    """The global style record after all operations were applied."""

    legend_position: str = THEME_DEFAULTS["legend_position"]
    base_size: float = THEME_DEFAULTS["base_size"]
    background: Optional[str] = THEME_DEFAULTS["background"]
    grid: Optional[str] = THEME_DEFAULTS["grid"]

    @property
    def legend_visible(self) -> bool:
        return self.legend_position != "none"


@dataclass
class ThemeSettings:
    """Ordered theme operations; resolve() folds them, last write per key wins."""

    ops: list[ThemeOp] = field(default_factory=list)

    def set(self, **values: Any) -> "ThemeSettings":
        """Append a partial update, e.g. ``set(legend_position="none")``."""
        self.ops.append(_set_op(values))
        return self

    def preset(self, name: str) -> "ThemeSettings":
        """Append a complete theme that overwrites every key."""
        self.ops.append(_preset_op(name))
        return self

    def extend(self, other: "ThemeSettings") -> "ThemeSettings":
        self.ops.extend(other.ops)
        return self

    def resolve(self) -> ResolvedTheme:
        record = dict(THEME_DEFAULTS)
        for op in self.ops:
            record.update(dict(op.values))
        return ResolvedTheme(**record)

    def to_list(self) -> list[dict[str, Any]]:
        return [op.to_dict() for op in self.ops]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]]) -> "ThemeSettings":
        ops: list[ThemeOp] = []
        for item in data:
            try:
                ops.append(ThemeOp.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring invalid theme operation {item!r}: {e}")
        return cls(ops=ops)
