"""Scales: per-axis coordinate transforms and categorical palettes.

Two independent concerns live here:

- Coordinate transforms (:class:`AxisTransform`, :class:`AxisScale`) map raw
  positional values into drawing space. They apply to every layer's x/y
  values; a layer cannot opt out. Tick labels always show raw values, so on a
  reversed axis larger values sit further left/down.
- Palettes (:class:`PaletteAssignment`, :class:`CategoricalScale`) map
  categorical values to colours or marker symbols in canonical category order.
  ``breaks`` only affects which legend entries appear and in which order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np

from layerplot.errors import CompositionError, ConflictingScaleError, ScaleDomainError, UnknownCategoryError
from layerplot.mapping import CATEGORICAL_CHANNELS
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

AXES: tuple[str, ...] = ("x", "y")
AXIS_POSITIONS: dict[str, tuple[str, ...]] = {
    "x": ("bottom", "top"),
    "y": ("left", "right"),
}

# Plotly marker symbols, in assignment order for the shape channel.
PLOTLY_SYMBOLS = [
    "circle", "triangle-up", "square", "cross", "square-x",
    "asterisk", "diamond", "triangle-down", "star", "hexagon",
    "pentagon", "x", "triangle-left", "triangle-right", "hexagram",
    "octagon", "star-square", "diamond-wide", "hourglass", "bowtie",
]

# Missing-value encodings for manual scales that do not list a category.
NA_COLOR = "#7F7F7F"
NA_SHAPE = "circle-open"


# -----------------------------------------------------------------------------
# Coordinate transforms
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AxisTransform:
    """Named, invertible transform for one axis.

    Supported names: "identity", "reverse" (x' = -x), "log10".
    """

    name: str = "identity"

    def __post_init__(self) -> None:
        if self.name not in TRANSFORM_NAMES:
            raise ValueError(f"unknown axis transform {self.name!r}; expected one of {TRANSFORM_NAMES}")

    def forward(self, values: Any) -> np.ndarray:
        """Map raw values into drawing space.

        Raises:
            ScaleDomainError: log10 of a non-positive finite value.
        """
        v = np.asarray(values, dtype=float)
        if self.name == "reverse":
            return -v
        if self.name == "log10":
            finite = v[np.isfinite(v)]
            if np.any(finite <= 0):
                raise ScaleDomainError("log10 axis transform requires positive values")
            return np.log10(v)
        return v.copy()

    def inverse(self, values: Any) -> np.ndarray:
        """Map drawing-space values back to raw values."""
        v = np.asarray(values, dtype=float)
        if self.name == "reverse":
            return -v
        if self.name == "log10":
            return np.power(10.0, v)
        return v.copy()

    def ticks(self, raw_min: float, raw_max: float, target: int = 5) -> list[tuple[float, str]]:
        """Tick marks as (position in drawing space, label of raw value).

        Positions are sorted ascending in drawing space.
        """
        if not (np.isfinite(raw_min) and np.isfinite(raw_max)):
            return []
        lo, hi = min(raw_min, raw_max), max(raw_min, raw_max)
        if self.name == "log10":
            if lo <= 0:
                return []
            t_lo, t_hi = math.log10(lo), math.log10(hi)
            tick_t = generate_nice_ticks(t_lo, t_hi, target)
            tick_t = tick_t[(tick_t >= t_lo - 1e-9) & (tick_t <= t_hi + 1e-9)]
            labels = [format_tick(float(10.0**t)) for t in tick_t]
            return [(float(t), lab) for t, lab in zip(tick_t, labels)]

        raw = generate_nice_ticks(lo, hi, target)
        raw = raw[(raw >= lo - 1e-9 * max(1.0, abs(lo))) & (raw <= hi + 1e-9 * max(1.0, abs(hi)))]
        labels = format_ticks_for_axis(raw)
        positions = self.forward(raw)
        out = [(float(p), lab) for p, lab in zip(positions, labels)]
        return sorted(out, key=lambda t: t[0])


TRANSFORM_NAMES: tuple[str, ...] = ("identity", "reverse", "log10")
IDENTITY = AxisTransform("identity")


@dataclass(frozen=True)
class AxisScale:
    """Plot-level settings for one positional axis.

    Attributes:
        transform: Declared transform, or None when never declared (identity).
        title: Axis title; None means "use the bound field name".
        position: "bottom"/"top" for x, "left"/"right" for y; None = default.
        n_breaks: Target number of ticks.
    """

    transform: Optional[AxisTransform] = None
    title: Optional[str] = None
    position: Optional[str] = None
    n_breaks: int = 5

    @property
    def effective_transform(self) -> AxisTransform:
        return self.transform if self.transform is not None else IDENTITY


# -----------------------------------------------------------------------------
# Nice ticks
# -----------------------------------------------------------------------------


def generate_nice_ticks(vmin: float, vmax: float, target: int) -> np.ndarray:
    """Evenly spaced 1/2/5 x 10^k ticks covering [vmin, vmax]."""
    if target <= 0:
        raise ValueError("target must be > 0")
    if vmin == vmax:
        return np.asarray([vmin], dtype=np.float64)

    span = _nice_number(vmax - vmin, round_result=False)
    step = _nice_number(span / max(target - 1, 1), round_result=True)
    tick_min = np.floor(vmin / step) * step
    tick_max = np.ceil(vmax / step) * step

    ticks = np.arange(tick_min, tick_max + 0.5 * step, step, dtype=np.float64)
    # Normalize floating-point drift so values like -4.44e-16 become 0.
    ticks = np.rint(ticks / step) * step
    ticks[np.isclose(ticks, 0.0, rtol=0.0, atol=step * 1e-9)] = 0.0
    return ticks


def format_tick(value: float, *, step: Optional[float] = None) -> str:
    """Short decimal label for a tick value."""
    if not np.isfinite(value):
        return str(value)
    if step is not None and np.isfinite(step) and step > 0 and abs(value) <= step * 1e-9:
        value = 0.0
    abs_v = abs(value)
    if abs_v != 0 and (abs_v >= 1e6 or abs_v < 1e-6):
        return f"{value:.4e}"

    decimals = _decimals_from_step(step) if step is not None else 6
    d = Decimal(str(value))
    quant = Decimal("1").scaleb(-decimals)
    try:
        q = d.quantize(quant)
    except InvalidOperation:
        q = d
    out = format(q, "f")
    if "." in out:
        out = out.rstrip("0").rstrip(".")
    if out == "-0":
        out = "0"
    return out


def format_ticks_for_axis(ticks: np.ndarray) -> list[str]:
    if ticks.size == 0:
        return []
    if ticks.size == 1:
        return [format_tick(float(ticks[0]))]
    step = float(abs(ticks[1] - ticks[0]))
    return [format_tick(float(v), step=step) for v in ticks]


def _nice_number(value: float, *, round_result: bool) -> float:
    exp = np.floor(np.log10(value))
    frac = value / (10**exp)

    if round_result:
        if frac < 1.5:
            nice_frac = 1.0
        elif frac < 3.0:
            nice_frac = 2.0
        elif frac < 7.0:
            nice_frac = 5.0
        else:
            nice_frac = 10.0
    else:
        if frac <= 1.0:
            nice_frac = 1.0
        elif frac <= 2.0:
            nice_frac = 2.0
        elif frac <= 5.0:
            nice_frac = 5.0
        else:
            nice_frac = 10.0

    return float(nice_frac * (10**exp))


def _decimals_from_step(step: float) -> int:
    if step <= 0 or not np.isfinite(step):
        return 6
    d = Decimal(str(step)).normalize()
    exp = d.as_tuple().exponent
    return min(12, max(0, -int(exp)))


# -----------------------------------------------------------------------------
# Palettes
# -----------------------------------------------------------------------------

# D65 reference white
_XN, _YN, _ZN = 95.047, 100.000, 108.883


def hcl_to_hex(h: float, c: float, l: float) -> str:
    """Convert a polar CIE-LUV (HCL) colour to an sRGB hex string.

    Out-of-gamut channels are clipped.
    """
    if l <= 0:
        return "#000000"
    hr = math.radians(h)
    u = c * math.cos(hr)
    v = c * math.sin(hr)

    y = _YN * ((l + 16.0) / 116.0) ** 3 if l > 7.999592 else _YN * l / 903.3
    denom = _XN + 15.0 * _YN + 3.0 * _ZN
    un = 4.0 * _XN / denom
    vn = 9.0 * _YN / denom
    up = u / (13.0 * l) + un
    vp = v / (13.0 * l) + vn
    x = 9.0 * y * up / (4.0 * vp)
    z = -x / 3.0 - 5.0 * y + 3.0 * y / vp

    x, y, z = x / 100.0, y / 100.0, z / 100.0
    rgb_lin = (
        3.240479 * x - 1.537150 * y - 0.498535 * z,
        -0.969256 * x + 1.875992 * y + 0.041556 * z,
        0.055648 * x - 0.204043 * y + 1.057311 * z,
    )

    def _gamma(t: float) -> float:
        t = 1.055 * t ** (1.0 / 2.4) - 0.055 if t > 0.00304 else 12.92 * t
        return min(1.0, max(0.0, t))

    r, g, b = (int(round(255 * _gamma(t))) for t in rgb_lin)
    return f"#{r:02X}{g:02X}{b:02X}"


def hue_palette(n: int, *, h: tuple[float, float] = (15.0, 375.0), c: float = 100.0, l: float = 65.0) -> list[str]:
    """``n`` colours with evenly spaced hues on the HCL wheel."""
    if n <= 0:
        return []
    h0, h1 = h
    if (h1 - h0) % 360 < 1:
        h1 -= 360.0 / n
    hues = np.linspace(h0, h1, n) if n > 1 else np.asarray([h0])
    return [hcl_to_hex(float(hue) % 360.0, c, l) for hue in hues]


def shape_palette(n: int) -> list[str]:
    """``n`` plotly marker symbols, cycling through PLOTLY_SYMBOLS."""
    if n > len(PLOTLY_SYMBOLS):
        logger.warning(f"shape palette has {len(PLOTLY_SYMBOLS)} symbols; {n} categories will reuse symbols")
    return [PLOTLY_SYMBOLS[i % len(PLOTLY_SYMBOLS)] for i in range(max(n, 0))]


def default_palette(channel: str, n: int) -> list[str]:
    if channel == "shape":
        return shape_palette(n)
    return hue_palette(n)


PaletteValues = Union[Sequence[Any], Mapping[Any, Any]]


@dataclass(frozen=True)
class PaletteAssignment:
    """Deterministic category -> visual encoding map for one (channel, field).

    Attributes:
        channel: "color", "fill" or "shape".
        field: Data field the channel is bound to.
        categories: Canonical category order the map was built from.
        mapping: category -> encoding (hex colour or symbol name).
    """

    channel: str
    field: str
    categories: tuple[Any, ...]
    mapping: Mapping[Any, Any]

    @classmethod
    def build(
        cls,
        channel: str,
        field: str,
        categories: Sequence[Any],
        values: Optional[PaletteValues] = None,
    ) -> "PaletteAssignment":
        """Assign encodings in canonical category order.

        Args:
            channel: Channel name.
            field: Bound field name.
            categories: Distinct values in canonical order.
            values: Optional manual palette: a list used in category order, or
                a dict category -> encoding.

        Raises:
            CompositionError: A manual list has fewer values than categories.
        """
        categories = tuple(categories)
        na = NA_SHAPE if channel == "shape" else NA_COLOR
        if values is None:
            encodings = default_palette(channel, len(categories))
            mapping = dict(zip(categories, encodings))
        elif isinstance(values, Mapping):
            mapping = {}
            for cat in categories:
                if cat in values:
                    mapping[cat] = values[cat]
                else:
                    logger.warning(f"manual {channel} scale has no value for {cat!r}; using {na}")
                    mapping[cat] = na
        else:
            values = list(values)
            if len(values) < len(categories):
                raise CompositionError(
                    f"manual {channel} scale has {len(values)} values but {field!r} has "
                    f"{len(categories)} categories"
                )
            mapping = dict(zip(categories, values))
        logger.debug(f"palette {channel}<-{field}: {mapping}")
        return cls(channel=channel, field=field, categories=categories, mapping=MappingProxyType(mapping))

    def encode(self, value: Any) -> Any:
        """Encoding for ``value``; unseen values get the missing-value encoding."""
        na = NA_SHAPE if self.channel == "shape" else NA_COLOR
        return self.mapping.get(value, na)

    def legend_order(
        self,
        breaks: Optional[Sequence[Any]] = None,
        *,
        among: Optional[Sequence[Any]] = None,
    ) -> tuple[list[Any], list[UnknownCategoryError]]:
        """Categories to show in the legend, and the errors for unknown breaks.

        Without ``breaks`` the canonical order is used. With ``breaks`` only
        listed known values appear, in the listed order; values absent from the
        data are reported and dropped. ``among`` restricts the entries to the
        values legend-contributing layers actually use. The encoding map itself
        never changes.
        """
        eligible = set(self.categories if among is None else among)
        if breaks is None:
            return [c for c in self.categories if c in eligible], []
        known = set(self.categories)
        shown: list[Any] = []
        unknown: list[UnknownCategoryError] = []
        for value in breaks:
            if value not in known:
                unknown.append(UnknownCategoryError(self.channel, value))
            elif value in eligible and value not in shown:
                shown.append(value)
        return shown, unknown


@dataclass(frozen=True)
class CategoricalScale:
    """Plot-level settings for one categorical channel.

    Attributes:
        channel: "color", "fill" or "shape".
        breaks: Legend display order/membership; None = canonical order.
        values: Manual palette (list or dict); None = default palette.
        title: Legend title; None = bound field name.
    """

    channel: str
    breaks: Optional[tuple[Any, ...]] = None
    values: Optional[PaletteValues] = None
    title: Optional[str] = None


# -----------------------------------------------------------------------------
# Scale set
# -----------------------------------------------------------------------------


@dataclass
class ScaleSet:
    """All scales of one plot: two axes plus any categorical channels."""

    axes: dict[str, AxisScale] = field(default_factory=lambda: {a: AxisScale() for a in AXES})
    categorical: dict[str, CategoricalScale] = field(default_factory=dict)

    def axis(self, axis: str) -> AxisScale:
        if axis not in AXES:
            raise ValueError(f"unknown axis {axis!r}")
        return self.axes.get(axis, AxisScale())

    def set_axis(
        self,
        axis: str,
        *,
        transform: Optional[Union[str, AxisTransform]] = None,
        title: Optional[str] = None,
        position: Optional[str] = None,
        n_breaks: Optional[int] = None,
    ) -> None:
        """Declare or update an axis scale.

        Raises:
            ConflictingScaleError: ``transform`` differs from one already declared.
            ValueError: Unknown axis, transform or position.
        """
        current = self.axis(axis)
        updates: dict[str, Any] = {}
        if transform is not None:
            new = transform if isinstance(transform, AxisTransform) else AxisTransform(transform)
            if current.transform not in (None, IDENTITY) and current.transform != new:
                raise ConflictingScaleError(
                    f"axis {axis!r} already uses transform {current.transform.name!r}; "
                    f"cannot also declare {new.name!r}"
                )
            updates["transform"] = new
        if title is not None:
            updates["title"] = title
        if position is not None:
            if position not in AXIS_POSITIONS[axis]:
                raise ValueError(f"{axis}-axis position must be one of {AXIS_POSITIONS[axis]}, got {position!r}")
            updates["position"] = position
        if n_breaks is not None:
            if n_breaks <= 0:
                raise ValueError("n_breaks must be > 0")
            updates["n_breaks"] = int(n_breaks)
        self.axes[axis] = replace(current, **updates)

    def set_categorical(
        self,
        channel: str,
        *,
        breaks: Optional[Sequence[Any]] = None,
        values: Optional[PaletteValues] = None,
        title: Optional[str] = None,
    ) -> None:
        """Declare or update a categorical scale; unset arguments keep their value."""
        if channel not in CATEGORICAL_CHANNELS:
            raise ValueError(f"{channel!r} is not a categorical channel; expected one of {CATEGORICAL_CHANNELS}")
        current = self.categorical.get(channel, CategoricalScale(channel=channel))
        updates: dict[str, Any] = {}
        if breaks is not None:
            updates["breaks"] = tuple(breaks)
        if values is not None:
            updates["values"] = dict(values) if isinstance(values, Mapping) else tuple(values)
        if title is not None:
            updates["title"] = title
        self.categorical[channel] = replace(current, **updates)

    def categorical_scale(self, channel: str) -> CategoricalScale:
        return self.categorical.get(channel, CategoricalScale(channel=channel))

    def validate(self) -> None:
        """Check global consistency before composition.

        Raises:
            CompositionError: Malformed axis or categorical entries.
        """
        for axis, scale in self.axes.items():
            if axis not in AXES:
                raise CompositionError(f"unknown axis {axis!r} in scale set")
            if scale.position is not None and scale.position not in AXIS_POSITIONS[axis]:
                raise CompositionError(f"invalid {axis}-axis position {scale.position!r}")
        for channel, scale in self.categorical.items():
            if scale.channel != channel:
                raise CompositionError(f"categorical scale registered under {channel!r} is for {scale.channel!r}")
