"""RenderPlan: the fully resolved output of composition.

Pure frozen dataclasses. A plan holds draw primitives in draw order, axis
descriptors, the legend descriptor, the resolved theme and diagnostics.
Rendering it to an image is left to a renderer (see layerplot.render).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from layerplot.errors import Diagnostic, Severity
from layerplot.theme import ResolvedTheme


@dataclass(frozen=True)
class PointPrimitive:
    """A positioned marker."""
    z: int
    layer_index: int
    x: float
    y: float
    color: str
    fill: Optional[str]
    shape: str
    size: float
    alpha: float
    group: Any = None


@dataclass(frozen=True)
class TextPrimitive:
    """A positioned text glyph; ``boxed`` draws a background box with a border."""
    z: int
    layer_index: int
    x: float
    y: float
    text: str
    color: str
    size: float
    alpha: float
    boxed: bool = False
    fill: Optional[str] = None
    group: Any = None


@dataclass(frozen=True)
class PolygonPrimitive:
    """A closed polygon; the last vertex connects back to the first."""
    z: int
    layer_index: int
    vertices: tuple[tuple[float, float], ...]
    color: Optional[str]
    fill: Optional[str]
    alpha: float
    stroke_width: float = 1.0
    group: Any = None


Primitive = Union[PointPrimitive, TextPrimitive, PolygonPrimitive]


@dataclass(frozen=True)
class AxisDescriptor:
    """One axis in drawing space.

    Attributes:
        axis: "x" or "y".
        title: Axis title.
        transform: Transform name ("identity", "reverse", "log10").
        position: "bottom"/"top" or "left"/"right".
        range: (min, max) of drawing-space positions, or None if nothing is drawn.
        ticks: (drawing-space position, raw-value label) pairs.
    """

    axis: str
    title: str
    transform: str
    position: str
    range: Optional[tuple[float, float]]
    ticks: tuple[tuple[float, str], ...] = ()


@dataclass(frozen=True)
class LegendEntry:
    value: Any
    encoding: Any


@dataclass(frozen=True)
class LegendGuide:
    """Legend for one categorical channel."""
    channel: str
    field: str
    title: str
    entries: tuple[LegendEntry, ...]

    def values(self) -> list[Any]:
        return [e.value for e in self.entries]


@dataclass(frozen=True)
class LegendDescriptor:
    visible: bool
    position: str
    guides: tuple[LegendGuide, ...] = ()

    def guide(self, channel: str) -> Optional[LegendGuide]:
        for g in self.guides:
            if g.channel == channel:
                return g
        return None


@dataclass(frozen=True)
class RenderPlan:
    """Ordered draw primitives plus legend, axes, theme and diagnostics."""

    primitives: tuple[Primitive, ...]
    legend: LegendDescriptor
    axes: tuple[AxisDescriptor, ...]
    theme: ResolvedTheme
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)
    palettes: tuple[tuple[str, str, tuple[tuple[Any, Any], ...]], ...] = ()

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    def axis(self, axis: str) -> AxisDescriptor:
        for a in self.axes:
            if a.axis == axis:
                return a
        raise KeyError(axis)

    def layer_primitives(self, layer_index: int) -> list[Primitive]:
        return [p for p in self.primitives if p.layer_index == layer_index]

    def of_type(self, kind: type) -> list[Primitive]:
        return [p for p in self.primitives if isinstance(p, kind)]

    def palette(self, channel: str, field: str) -> dict[Any, Any]:
        """category -> encoding used for (channel, field); empty if not bound."""
        for ch, f, pairs in self.palettes:
            if ch == channel and f == field:
                return dict(pairs)
        return {}
