"""Fluent plot builder.

Plot collects a dataset, a global aesthetic binding, layers, scales and theme
operations, and hands them to :func:`layerplot.compositor.compose` on
``build()``.

Group means and confidence ellipses are caller-side aggregation: their layers
are recorded as deferred specs and their derived data is computed at
``build()`` time from the layer's resolved binding, then attached as a
:class:`DerivedSource`. The compositor itself never aggregates.

Example:
    plot = (
        Plot(df, aes(x="F2", y="F1", color="vowel", label="vowel"))
        .points(alpha=0.3)
        .ellipses(level=0.95)
        .group_means(geometry="label")
        .scale_x(transform="reverse")
        .scale_y(transform="reverse")
    )
    render_plan = plot.build()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

from layerplot.algorithms.confidence_ellipse import (
    DEFAULT_LEVEL,
    DEFAULT_SEGMENTS,
    MIN_SEGMENTS,
    chi2_quantile_2df,
    ellipses_to_dataset,
    estimate_groups,
)
from layerplot.algorithms.group_summary import aggregate, summaries_to_dataset
from layerplot.compositor import compose
from layerplot.dataset import Dataset
from layerplot.errors import Diagnostic, LayerError, LayerPlotError, UnresolvedChannelError
from layerplot.layers import DerivedSource, Geometry, Layer, LayerStack, LayerStyle
from layerplot.mapping import GROUP_FIELD_CHANNELS, AestheticBinding, EffectiveBinding, aes, resolve_binding
from layerplot.plot_settings import PlotSettings
from layerplot.render_plan import RenderPlan
from layerplot.scales import AxisTransform, PaletteValues, ScaleSet
from layerplot.theme import ThemeSettings
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

MappingLike = Union[AestheticBinding, Mapping[str, Any], None]


def _as_binding(mapping: MappingLike) -> Optional[AestheticBinding]:
    if mapping is None or isinstance(mapping, AestheticBinding):
        return mapping
    return aes(**dict(mapping))


@dataclass
class _LayerSpec:
    """A layer as declared on the builder; turned into a Layer at build()."""
    geometry: Geometry
    data: Optional[Dataset] = None
    mapping: Optional[AestheticBinding] = None
    style: dict[str, Any] = field(default_factory=dict)  # LayerStyle kwargs given explicitly
    show_legend: bool = True
    group: Optional[str] = None
    name: Optional[str] = None
    derived: Optional[str] = None  # None, "means" or "ellipse"
    level: Optional[float] = None
    segments: Optional[int] = None
    layer: Optional[Layer] = None  # ready-made layer from add_layer()


class Plot:
    """Declarative layered plot.

    Args:
        data: Plot-level data (Dataset, pandas/polars DataFrame or list of
            dicts), inherited by layers that bring none.
        mapping: Global aesthetic binding, ``aes(...)`` or a plain dict.
    """

    def __init__(self, data: Any = None, mapping: MappingLike = None) -> None:
        self.dataset: Optional[Dataset] = Dataset.coerce(data) if data is not None else None
        self.mapping: AestheticBinding = _as_binding(mapping) or AestheticBinding()
        self.scales = ScaleSet()
        self.theme_settings = ThemeSettings()
        self.level: float = DEFAULT_LEVEL
        self.segments: int = DEFAULT_SEGMENTS
        self.point_size: Optional[float] = None
        self.point_alpha: Optional[float] = None
        self._specs: list[_LayerSpec] = []

    def __repr__(self) -> str:
        return f"Plot(dataset={self.dataset!r}, mapping={self.mapping!r}, layers={len(self._specs)})"

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def add_layer(self, layer: Layer) -> "Plot":
        """Append a ready-made Layer on top."""
        if not isinstance(layer, Layer):
            raise TypeError(f"expected Layer, got {type(layer)!r}")
        self._specs.append(_LayerSpec(geometry=layer.geometry, layer=layer))
        return self

    def _add(self, geometry: Geometry, mapping: MappingLike, data: Any, style: dict[str, Any], **kw: Any) -> "Plot":
        self._specs.append(
            _LayerSpec(
                geometry=geometry,
                data=Dataset.coerce(data) if data is not None else None,
                mapping=_as_binding(mapping),
                style={k: v for k, v in style.items() if v is not None},
                **kw,
            )
        )
        return self

    def points(
        self,
        mapping: MappingLike = None,
        data: Any = None,
        *,
        size: Optional[float] = None,
        alpha: Optional[float] = None,
        color: Optional[str] = None,
        fill: Optional[str] = None,
        shape: Optional[str] = None,
        show_legend: bool = True,
        name: Optional[str] = None,
    ) -> "Plot":
        """Scatter points, one marker per record."""
        style = dict(size=size, alpha=alpha, color=color, fill=fill, shape=shape)
        return self._add(Geometry.POINT, mapping, data, style, show_legend=show_legend, name=name)

    def text(
        self,
        mapping: MappingLike = None,
        data: Any = None,
        *,
        size: Optional[float] = None,
        alpha: Optional[float] = None,
        color: Optional[str] = None,
        show_legend: bool = True,
        name: Optional[str] = None,
    ) -> "Plot":
        """Plain text glyphs at (x, y) showing the ``label`` channel."""
        style = dict(size=size, alpha=alpha, color=color)
        return self._add(Geometry.TEXT, mapping, data, style, show_legend=show_legend, name=name)

    def labels(
        self,
        mapping: MappingLike = None,
        data: Any = None,
        *,
        size: Optional[float] = None,
        alpha: Optional[float] = None,
        color: Optional[str] = None,
        fill: Optional[str] = None,
        show_legend: bool = True,
        name: Optional[str] = None,
    ) -> "Plot":
        """Boxed text labels (text on a background box with a border)."""
        style = dict(size=size, alpha=alpha, color=color, fill=fill)
        return self._add(Geometry.LABEL, mapping, data, style, show_legend=show_legend, name=name)

    def polygons(
        self,
        mapping: MappingLike = None,
        data: Any = None,
        *,
        group: Optional[str] = None,
        alpha: Optional[float] = None,
        color: Optional[str] = None,
        fill: Optional[str] = None,
        stroke_width: Optional[float] = None,
        show_legend: bool = True,
        name: Optional[str] = None,
    ) -> "Plot":
        """Closed polygons, one per value of ``group`` (else fill/color field)."""
        style = dict(alpha=alpha, color=color, fill=fill, stroke_width=stroke_width)
        return self._add(Geometry.POLYGON, mapping, data, style, show_legend=show_legend, group=group, name=name)

    def group_means(
        self,
        mapping: MappingLike = None,
        data: Any = None,
        *,
        group: Optional[str] = None,
        geometry: Union[str, Geometry] = Geometry.LABEL,
        size: Optional[float] = None,
        alpha: Optional[float] = None,
        color: Optional[str] = None,
        fill: Optional[str] = None,
        show_legend: bool = True,
        name: Optional[str] = None,
    ) -> "Plot":
        """One glyph per group at the mean of its x and y fields.

        ``geometry`` is "label" (boxed, default), "text" or "point".
        """
        geometry = Geometry(geometry)
        if geometry is Geometry.POLYGON:
            raise ValueError("group_means cannot be drawn as polygons")
        style = dict(size=size, alpha=alpha, color=color, fill=fill)
        return self._add(
            geometry, mapping, data, style, show_legend=show_legend, group=group, name=name, derived="means"
        )

    def ellipses(
        self,
        mapping: MappingLike = None,
        data: Any = None,
        *,
        level: Optional[float] = None,
        segments: Optional[int] = None,
        group: Optional[str] = None,
        alpha: Optional[float] = None,
        color: Optional[str] = None,
        fill: Optional[str] = None,
        stroke_width: Optional[float] = None,
        show_legend: bool = True,
        name: Optional[str] = None,
    ) -> "Plot":
        """Confidence ellipse per group (bivariate normal, chi-squared scaled).

        ``level`` and ``segments`` default to the plot's settings at build time.

        Raises:
            ValueError: ``level`` outside (0, 1) or fewer than 3 ``segments``.
        """
        if level is not None:
            chi2_quantile_2df(level)
        if segments is not None and segments < MIN_SEGMENTS:
            raise ValueError(f"segments must be >= {MIN_SEGMENTS}, got {segments}")
        style = dict(alpha=alpha, color=color, fill=fill, stroke_width=stroke_width)
        return self._add(
            Geometry.POLYGON,
            mapping,
            data,
            style,
            show_legend=show_legend,
            group=group,
            name=name,
            derived="ellipse",
            level=level,
            segments=segments,
        )

    # ------------------------------------------------------------------
    # Scales and theme
    # ------------------------------------------------------------------

    def scale_x(
        self,
        transform: Optional[Union[str, AxisTransform]] = None,
        *,
        title: Optional[str] = None,
        position: Optional[str] = None,
        n_breaks: Optional[int] = None,
    ) -> "Plot":
        """Declare the x axis; a second, different transform raises ConflictingScaleError."""
        self.scales.set_axis("x", transform=transform, title=title, position=position, n_breaks=n_breaks)
        return self

    def scale_y(
        self,
        transform: Optional[Union[str, AxisTransform]] = None,
        *,
        title: Optional[str] = None,
        position: Optional[str] = None,
        n_breaks: Optional[int] = None,
    ) -> "Plot":
        self.scales.set_axis("y", transform=transform, title=title, position=position, n_breaks=n_breaks)
        return self

    def scale_color(
        self,
        *,
        breaks: Optional[Sequence[Any]] = None,
        values: Optional[PaletteValues] = None,
        title: Optional[str] = None,
    ) -> "Plot":
        """Legend order (``breaks``), manual palette (``values``) or title for colour."""
        self.scales.set_categorical("color", breaks=breaks, values=values, title=title)
        return self

    def scale_fill(
        self,
        *,
        breaks: Optional[Sequence[Any]] = None,
        values: Optional[PaletteValues] = None,
        title: Optional[str] = None,
    ) -> "Plot":
        self.scales.set_categorical("fill", breaks=breaks, values=values, title=title)
        return self

    def scale_shape(
        self,
        *,
        breaks: Optional[Sequence[Any]] = None,
        values: Optional[PaletteValues] = None,
        title: Optional[str] = None,
    ) -> "Plot":
        self.scales.set_categorical("shape", breaks=breaks, values=values, title=title)
        return self

    def theme(self, preset: Optional[str] = None, **values: Any) -> "Plot":
        """Append theme operations: a complete preset first, then key updates."""
        if preset is not None:
            self.theme_settings.preset(preset)
        if values:
            self.theme_settings.set(**values)
        return self

    def hide_legend(self) -> "Plot":
        return self.theme(legend_position="none")

    def apply_settings(self, settings: PlotSettings) -> "Plot":
        """Apply persisted settings through the builder methods.

        Raises:
            ConflictingScaleError: A non-identity transform contradicts one
                already declared on this plot.
        """
        self.level = settings.level
        self.segments = settings.segments
        self.point_size = settings.point_size
        self.point_alpha = settings.point_alpha
        self.scale_x(
            transform=None if settings.x_transform == "identity" else settings.x_transform,
            position=settings.x_position,
        )
        self.scale_y(
            transform=None if settings.y_transform == "identity" else settings.y_transform,
            position=settings.y_position,
        )
        for channel, breaks in settings.breaks.items():
            self.scales.set_categorical(channel, breaks=breaks)
        self.theme_settings.extend(ThemeSettings.from_list(settings.theme))
        if not settings.show_legend:
            self.hide_legend()
        return self

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _style(self, entry: _LayerSpec) -> LayerStyle:
        kw = dict(entry.style)
        if entry.geometry is Geometry.POINT and entry.derived is None:
            if "size" not in kw and self.point_size is not None:
                kw["size"] = self.point_size
            if "alpha" not in kw and self.point_alpha is not None:
                kw["alpha"] = self.point_alpha
        return LayerStyle(**kw)

    def _group_field(self, entry: _LayerSpec, binding: EffectiveBinding) -> str:
        if entry.group is not None:
            return entry.group
        for channel in GROUP_FIELD_CHANNELS:
            f = binding.field(channel)
            if f is not None:
                return f
        raise LayerError(
            f"{entry.derived} layer needs a group field: pass group= or bind color, fill or label to a field"
        )

    def _derive(self, entry: _LayerSpec, index: int) -> DerivedSource:
        """Compute a deferred layer's data; failures become the source's diagnostics."""
        data = entry.data if entry.data is not None else self.dataset
        try:
            binding = resolve_binding(self.mapping, entry.mapping, entry.geometry.value, index)
        except UnresolvedChannelError:
            # reported by the compositor when it resolves the same binding
            return DerivedSource(dataset=None, description=entry.derived or "")

        try:
            if data is None:
                raise LayerError(f"layer {index}: no data to aggregate", layer_index=index)
            group = self._group_field(entry, binding)
            x_field, y_field = binding.field("x"), binding.field("y")
            if x_field is None or y_field is None:
                raise LayerError(
                    f"layer {index}: {entry.derived} needs x and y bound to fields", layer_index=index
                )

            if entry.derived == "means":
                summaries = aggregate(data, group, [x_field, y_field])
                return DerivedSource(
                    dataset=summaries_to_dataset(summaries, group, source=data),
                    group_field=group,
                    description="group_means",
                )

            level = entry.level if entry.level is not None else self.level
            segments = entry.segments if entry.segments is not None else self.segments
            description = f"ellipse(level={level})"
            batch = estimate_groups(data, group, x_field, y_field, level=level, segments=segments)
            diagnostics = tuple(d.with_layer(index) for d in batch.diagnostics)
            if not batch.polygons:
                logger.warning(f"layer {index}: no group produced an ellipse")
                return DerivedSource(dataset=None, group_field=group, diagnostics=diagnostics, description=description)
            return DerivedSource(
                dataset=ellipses_to_dataset(batch.polygons, group, x_field, y_field, source=data),
                group_field=group,
                diagnostics=diagnostics,
                description=description,
            )
        except LayerPlotError as e:
            diag = Diagnostic.from_exception(e, layer_index=index)
            logger.warning(f"layer {index}: {entry.derived} failed: {diag.message}")
            return DerivedSource(dataset=None, diagnostics=(diag,), description=entry.derived or "")

    def layers(self) -> LayerStack:
        """Materialise the layer stack, computing derived sources."""
        stack = LayerStack()
        for index, entry in enumerate(self._specs):
            if entry.layer is not None:
                stack.append(entry.layer)
                continue
            data: Any = entry.data
            if entry.derived is not None:
                data = self._derive(entry, index)
            stack.append(
                Layer(
                    geometry=entry.geometry,
                    data=data,
                    mapping=entry.mapping,
                    style=self._style(entry),
                    show_legend=entry.show_legend,
                    group_field=entry.group if entry.derived is None else None,
                    name=entry.name,
                )
            )
        return stack

    def build(self) -> RenderPlan:
        """Compose the plot into a RenderPlan.

        Raises:
            CompositionError: Global configuration is inconsistent.
        """
        return compose(self.layers(), self.scales, self.mapping, self.dataset, self.theme_settings)
