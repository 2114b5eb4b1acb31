"""Layer definitions and the ordered layer stack.

A layer is one visual contribution to a plot: a geometry, an optional data
source, an optional partial aesthetic binding and static style parameters.
Layer order is draw order: later layers are drawn on top of earlier ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Union

from layerplot.dataset import Dataset
from layerplot.errors import Diagnostic
from layerplot.mapping import AestheticBinding


class Geometry(Enum):
    """Enumeration of supported geometry kinds."""
    POINT = "point"
    TEXT = "text"
    LABEL = "label"
    POLYGON = "polygon"


@dataclass(frozen=True)
class LayerStyle:
    """Static style parameters for a layer.

    A non-None ``color``, ``fill`` or ``shape`` fixes that visual property for
    every primitive of the layer, overriding any binding of the channel; such a
    layer adds no legend keys for that channel.

    Example:
      LayerStyle(size=4, alpha=0.3, color="black")
    """

    size: Optional[float] = None
    alpha: float = 1.0
    color: Optional[str] = None
    fill: Optional[str] = None
    shape: Optional[str] = None
    stroke_width: float = 1.0

    def __post_init__(self) -> None:
        if not (0.0 <= float(self.alpha) <= 1.0):
            raise ValueError(f"alpha must be in [0, 1], got {self.alpha}")
        if self.size is not None and self.size <= 0:
            raise ValueError(f"size must be > 0, got {self.size}")

    def fixed(self, channel: str) -> Optional[str]:
        """Static override for ``channel`` (color/fill/shape), if any."""
        return getattr(self, channel, None) if channel in ("color", "fill", "shape") else None


# default glyph sizes per geometry when LayerStyle.size is None
DEFAULT_SIZES: dict[Geometry, float] = {
    Geometry.POINT: 6.0,
    Geometry.TEXT: 11.0,
    Geometry.LABEL: 11.0,
    Geometry.POLYGON: 1.0,
}


@dataclass(frozen=True)
class DerivedSource:
    """Caller-produced layer data (group means, ellipse vertices).

    Attributes:
        dataset: Derived records, or None when producing them failed entirely.
        group_field: Field that splits records into polygons (polygon layers).
        diagnostics: Problems met while producing the source.
        description: Short human-readable origin, e.g. "ellipse(level=0.95)".
    """

    dataset: Optional[Dataset]
    group_field: Optional[str] = None
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)
    description: str = ""

    @property
    def failed(self) -> bool:
        return self.dataset is None


LayerData = Union[Dataset, DerivedSource, None]


@dataclass(frozen=True)
class Layer:
    """One render layer.

    Attributes:
        geometry: Geometry kind.
        data: Own Dataset, a DerivedSource, or None to use the plot's Dataset.
        mapping: Partial binding; bound channels replace the global binding.
        style: Static style parameters.
        show_legend: False keeps the layer's bindings out of the legend.
        group_field: Field that splits polygon vertices into polygons; falls
            back to the DerivedSource's group field, then the first drawn
            channel among color, fill and label bound to a field.
        name: Optional label for diagnostics and renderers.
    """

    geometry: Geometry
    data: LayerData = None
    mapping: Optional[AestheticBinding] = None
    style: LayerStyle = field(default_factory=LayerStyle)
    show_legend: bool = True
    group_field: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.geometry, Geometry):
            object.__setattr__(self, "geometry", Geometry(self.geometry))

    def describe(self, index: int) -> str:
        return self.name or f"{self.geometry.value}[{index}]"


class LayerStack:
    """Ordered, append-only sequence of layers. Index = z-order."""

    def __init__(self, layers: Optional[list[Layer]] = None) -> None:
        self._layers: list[Layer] = list(layers or [])

    def append(self, layer: Layer) -> int:
        """Add ``layer`` on top of the stack and return its index."""
        if not isinstance(layer, Layer):
            raise TypeError(f"expected Layer, got {type(layer)!r}")
        self._layers.append(layer)
        return len(self._layers) - 1

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def __getitem__(self, index: int) -> Layer:
        return self._layers[index]

