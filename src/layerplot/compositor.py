"""Compositor: layers + scales + bindings -> RenderPlan.

Composition runs in two passes over the layer stack, in declaration order:

  1. Prepare: resolve each layer's effective binding, its data source and its
     transformed positions. A layer that fails here is left out of the plan
     and reported as a diagnostic; the other layers carry on.
  2. Emit: build one palette per (channel, field) from the surviving layers,
     then emit primitives layer by layer. Primitive z values increase
     monotonically, so later layers draw on top of earlier ones.

The compositor never aggregates on its own; group means and ellipses arrive
as caller-attached DerivedSource data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from layerplot.dataset import Dataset
from layerplot.errors import (
    CompositionError,
    Diagnostic,
    FieldNotFoundError,
    LayerError,
    Severity,
)
from layerplot.layers import DEFAULT_SIZES, DerivedSource, Geometry, Layer, LayerStack
from layerplot.mapping import (
    CATEGORICAL_CHANNELS,
    AestheticBinding,
    Constant,
    GROUP_FIELD_CHANNELS,
    EffectiveBinding,
    Field,
    resolve_binding,
)
from layerplot.algorithms.confidence_ellipse import VERTEX_FIELD
from layerplot.render_plan import (
    AxisDescriptor,
    LegendDescriptor,
    LegendEntry,
    LegendGuide,
    PointPrimitive,
    PolygonPrimitive,
    Primitive,
    RenderPlan,
    TextPrimitive,
)
from layerplot.scales import AXIS_POSITIONS, PaletteAssignment, ScaleSet
from layerplot.theme import ResolvedTheme, ThemeSettings
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_INK = "#000000"
DEFAULT_SHAPE = "circle"
DEFAULT_LABEL_FILL = "#FFFFFF"


@dataclass
class _PreparedLayer:
    """Pass-1 result for one layer."""
    index: int
    layer: Layer
    binding: EffectiveBinding
    data: Dataset
    x: np.ndarray
    y: np.ndarray
    group_field: Optional[str]


def _resolve_source(layer: Layer, dataset: Optional[Dataset]) -> tuple[Optional[Dataset], Optional[str], tuple[Diagnostic, ...]]:
    """Return (data, group field from the source, diagnostics from the source)."""
    if isinstance(layer.data, DerivedSource):
        return layer.data.dataset, layer.data.group_field, layer.data.diagnostics
    if isinstance(layer.data, Dataset):
        return layer.data, None, ()
    if layer.data is not None:
        return Dataset.coerce(layer.data), None, ()
    return dataset, None, ()


def _group_field(binding: EffectiveBinding) -> Optional[str]:
    """First field bound to a drawn grouping channel (color, fill, label)."""
    for channel in GROUP_FIELD_CHANNELS:
        f = binding.field(channel)
        if f is not None and binding.consumes(channel):
            return f
    return None


def _channel_values(binding: EffectiveBinding, channel: str, data: Dataset) -> Optional[list[Any]]:
    """Per-record values of ``channel`` (None when unbound)."""
    value = binding.get(channel)
    if value is None:
        return None
    if isinstance(value, Field):
        return data.column(value.name).tolist()
    return [value.value] * len(data)


def _positions(binding: EffectiveBinding, channel: str, data: Dataset, layer_index: int) -> np.ndarray:
    value = binding[channel]
    if isinstance(value, Field):
        return data.numeric_column(value.name)
    try:
        constant = float(value.value)
    except (TypeError, ValueError) as e:
        raise LayerError(
            f"layer {layer_index}: constant {channel} value {value.value!r} is not numeric",
            layer_index=layer_index,
        ) from e
    return np.full(len(data), constant, dtype=float)


def _prepare_layer(
    index: int,
    layer: Layer,
    global_binding: Optional[AestheticBinding],
    dataset: Optional[Dataset],
    scales: ScaleSet,
    diagnostics: list[Diagnostic],
) -> Optional[_PreparedLayer]:
    """Pass 1 for one layer; returns None (and records diagnostics) on failure."""
    try:
        binding = resolve_binding(global_binding, layer.mapping, layer.geometry.value, index)

        data, source_group, source_diags = _resolve_source(layer, dataset)
        diagnostics.extend(d if d.layer_index is not None else d.with_layer(index) for d in source_diags)
        if data is None:
            if isinstance(layer.data, DerivedSource) and layer.data.failed:
                logger.warning(f"layer {index} ({layer.describe(index)}): derived source failed, layer omitted")
                if not source_diags:
                    diagnostics.append(
                        Diagnostic(
                            severity=Severity.ERROR,
                            code="DerivedSourceFailed",
                            message=f"layer {index}: {layer.data.description or 'derived source'} produced no data",
                            layer_index=index,
                        )
                    )
                return None
            raise LayerError(f"layer {index}: no data source (no layer data and no plot dataset)", layer_index=index)

        for f in binding.consumed_fields():
            if not data.has_field(f):
                raise FieldNotFoundError(f, data.fields)

        x = scales.axis("x").effective_transform.forward(_positions(binding, "x", data, index))
        y = scales.axis("y").effective_transform.forward(_positions(binding, "y", data, index))
    except (LayerError, FieldNotFoundError) as e:
        diag = Diagnostic.from_exception(e, layer_index=index)
        logger.warning(f"layer {index} ({layer.describe(index)}) omitted: {diag.code}: {diag.message}")
        diagnostics.append(diag)
        return None

    group_field = layer.group_field or source_group or _group_field(binding)
    if group_field is not None and not data.has_field(group_field):
        diag = Diagnostic.from_exception(FieldNotFoundError(group_field, data.fields), layer_index=index)
        logger.warning(f"layer {index} ({layer.describe(index)}) omitted: {diag.message}")
        diagnostics.append(diag)
        return None

    return _PreparedLayer(index=index, layer=layer, binding=binding, data=data, x=x, y=y, group_field=group_field)


def _build_palettes(prepared: Sequence[_PreparedLayer], scales: ScaleSet) -> dict[tuple[str, str], PaletteAssignment]:
    """One palette per (channel, field) across every layer that uses it."""
    palettes: dict[tuple[str, str], PaletteAssignment] = {}
    for channel in CATEGORICAL_CHANNELS:
        users: dict[str, list[Dataset]] = {}
        for p in prepared:
            f = p.binding.field(channel)
            if f is None or not p.binding.consumes(channel) or p.layer.style.fixed(channel) is not None:
                continue
            users.setdefault(f, []).append(p.data)

        for f, datasets in users.items():
            canonical: Optional[tuple[Any, ...]] = None
            for ds in datasets:
                canonical = ds.canonical_order(f)
                if canonical is not None:
                    break
            seen: list[Any] = []
            for ds in datasets:
                for v in ds.distinct_values(f):
                    if v not in seen:
                        seen.append(v)
            if canonical is not None:
                present = set(seen)
                categories = [v for v in canonical if v in present]
                categories.extend(v for v in seen if v not in categories)
            else:
                categories = seen
            palettes[(channel, f)] = PaletteAssignment.build(
                channel, f, categories, values=scales.categorical_scale(channel).values
            )
    return palettes


def _encode(
    p: _PreparedLayer,
    channel: str,
    palettes: dict[tuple[str, str], PaletteAssignment],
    default: Optional[str],
) -> list[Optional[str]]:
    """Visual values of ``channel`` for each record of a prepared layer."""
    n = len(p.data)
    fixed = p.layer.style.fixed(channel)
    if fixed is not None:
        return [fixed] * n
    if not p.binding.consumes(channel):
        return [default] * n
    value = p.binding.get(channel)
    if isinstance(value, Field):
        palette = palettes[(channel, value.name)]
        return [palette.encode(v) for v in p.data.column(value.name).tolist()]
    if isinstance(value, Constant):
        return [None if value.value is None else str(value.value)] * n
    return [default] * n


def _group_values(p: _PreparedLayer) -> list[Any]:
    for channel in ("color", "fill", "shape", "label"):
        f = p.binding.field(channel)
        if f is not None and p.binding.consumes(channel):
            return p.data.column(f).tolist()
    return [None] * len(p.data)


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


class _Emitter:
    """Pass 2: turns prepared layers into primitives with increasing z."""

    def __init__(self, palettes: dict[tuple[str, str], PaletteAssignment], diagnostics: list[Diagnostic]) -> None:
        self.palettes = palettes
        self.diagnostics = diagnostics
        self.primitives: list[Primitive] = []
        self._z = 0

    def _next_z(self) -> int:
        z = self._z
        self._z += 1
        return z

    def _report_dropped(self, p: _PreparedLayer, dropped: int, what: str) -> None:
        if dropped:
            msg = f"layer {p.index}: removed {dropped} row(s) with missing {what}"
            logger.warning(msg)
            self.diagnostics.append(
                Diagnostic(severity=Severity.WARNING, code="MissingValues", message=msg, layer_index=p.index)
            )

    def emit(self, p: _PreparedLayer) -> None:
        if p.layer.geometry is Geometry.POLYGON:
            self._emit_polygons(p)
        elif p.layer.geometry is Geometry.POINT:
            self._emit_points(p)
        else:
            self._emit_text(p, boxed=p.layer.geometry is Geometry.LABEL)

    def _emit_points(self, p: _PreparedLayer) -> None:
        style = p.layer.style
        colors = _encode(p, "color", self.palettes, DEFAULT_INK)
        fills = _encode(p, "fill", self.palettes, None)
        shapes = _encode(p, "shape", self.palettes, DEFAULT_SHAPE)
        groups = _group_values(p)
        size = style.size if style.size is not None else DEFAULT_SIZES[Geometry.POINT]

        finite = np.isfinite(p.x) & np.isfinite(p.y)
        self._report_dropped(p, int((~finite).sum()), "positions")
        for i in np.flatnonzero(finite):
            self.primitives.append(
                PointPrimitive(
                    z=self._next_z(),
                    layer_index=p.index,
                    x=float(p.x[i]),
                    y=float(p.y[i]),
                    color=colors[i] or DEFAULT_INK,
                    fill=fills[i],
                    shape=shapes[i] or DEFAULT_SHAPE,
                    size=float(size),
                    alpha=float(style.alpha),
                    group=groups[i],
                )
            )

    def _emit_text(self, p: _PreparedLayer, *, boxed: bool) -> None:
        style = p.layer.style
        labels = _channel_values(p.binding, "label", p.data) or []
        colors = _encode(p, "color", self.palettes, DEFAULT_INK)
        fills = _encode(p, "fill", self.palettes, DEFAULT_LABEL_FILL if boxed else None)
        groups = _group_values(p)
        size = style.size if style.size is not None else DEFAULT_SIZES[p.layer.geometry]

        keep = np.isfinite(p.x) & np.isfinite(p.y) & np.array([not _is_missing(v) for v in labels], dtype=bool)
        self._report_dropped(p, int((~keep).sum()), "positions or labels")
        for i in np.flatnonzero(keep):
            self.primitives.append(
                TextPrimitive(
                    z=self._next_z(),
                    layer_index=p.index,
                    x=float(p.x[i]),
                    y=float(p.y[i]),
                    text=str(labels[i]),
                    color=colors[i] or DEFAULT_INK,
                    size=float(size),
                    alpha=float(style.alpha),
                    boxed=boxed,
                    fill=(fills[i] or DEFAULT_LABEL_FILL) if boxed else fills[i],
                    group=groups[i],
                )
            )

    def _emit_polygons(self, p: _PreparedLayer) -> None:
        style = p.layer.style
        colors = _encode(p, "color", self.palettes, DEFAULT_INK)
        fills = _encode(p, "fill", self.palettes, None)
        frame = pd.DataFrame({"_x": p.x, "_y": p.y})
        frame["_row"] = np.arange(len(frame))
        if p.data.has_field(VERTEX_FIELD):
            frame["_order"] = p.data.numeric_column(VERTEX_FIELD)
        else:
            frame["_order"] = frame["_row"]

        if p.group_field is None:
            parts = [(None, frame)]
        else:
            keys = p.data.column(p.group_field).tolist()
            parts = []
            for key in p.data.distinct_values(p.group_field):
                mask = np.array([k == key for k in keys], dtype=bool)
                parts.append((key, frame.loc[mask]))

        dropped = 0
        for key, sub in parts:
            sub = sub.sort_values(["_order", "_row"], kind="mergesort")
            finite = np.isfinite(sub["_x"].to_numpy()) & np.isfinite(sub["_y"].to_numpy())
            dropped += int((~finite).sum())
            sub = sub.loc[finite]
            if sub.empty:
                continue
            first = int(sub["_row"].iloc[0])
            self.primitives.append(
                PolygonPrimitive(
                    z=self._next_z(),
                    layer_index=p.index,
                    vertices=tuple((float(x), float(y)) for x, y in zip(sub["_x"], sub["_y"])),
                    color=colors[first],
                    fill=fills[first],
                    alpha=float(style.alpha),
                    stroke_width=float(style.stroke_width),
                    group=key,
                )
            )
        self._report_dropped(p, dropped, "vertex positions")


def _build_legend(
    prepared: Sequence[_PreparedLayer],
    palettes: dict[tuple[str, str], PaletteAssignment],
    scales: ScaleSet,
    theme: ResolvedTheme,
    diagnostics: list[Diagnostic],
) -> LegendDescriptor:
    if not theme.legend_visible:
        # hidden legend: breaks are not consulted, so they cannot fail
        return LegendDescriptor(visible=False, position=theme.legend_position, guides=())

    guides: list[LegendGuide] = []
    for channel in CATEGORICAL_CHANNELS:
        contributed: dict[str, list[Any]] = {}
        for p in prepared:
            f = p.binding.field(channel)
            if f is None or not p.layer.show_legend or not p.binding.consumes(channel):
                continue
            if p.layer.style.fixed(channel) is not None:  # static override
                continue
            values = contributed.setdefault(f, [])
            for v in p.data.distinct_values(f):
                if v not in values:
                    values.append(v)

        scale = scales.categorical_scale(channel)
        for f, values in contributed.items():
            palette = palettes[(channel, f)]
            shown, unknown = palette.legend_order(scale.breaks, among=values)
            for err in unknown:
                logger.warning(f"legend: {err}; entry dropped")
                diagnostics.append(Diagnostic.from_exception(err, severity=Severity.WARNING))
            guides.append(
                LegendGuide(
                    channel=channel,
                    field=f,
                    title=scale.title or f,
                    entries=tuple(LegendEntry(value=v, encoding=palette.encode(v)) for v in shown),
                )
            )
    return LegendDescriptor(visible=True, position=theme.legend_position, guides=tuple(guides))


def _axis_bounds(primitives: Iterable[Primitive], axis: str) -> Optional[tuple[float, float]]:
    values: list[float] = []
    for prim in primitives:
        if isinstance(prim, PolygonPrimitive):
            idx = 0 if axis == "x" else 1
            values.extend(v[idx] for v in prim.vertices)
        else:
            values.append(prim.x if axis == "x" else prim.y)
    if not values:
        return None
    return (float(min(values)), float(max(values)))


def _build_axes(
    prepared: Sequence[_PreparedLayer],
    primitives: Sequence[Primitive],
    scales: ScaleSet,
) -> tuple[AxisDescriptor, ...]:
    out: list[AxisDescriptor] = []
    for axis in ("x", "y"):
        scale = scales.axis(axis)
        transform = scale.effective_transform
        title = scale.title
        if title is None:
            title = next((p.binding.field(axis) for p in prepared if p.binding.field(axis)), None) or axis
        bounds = _axis_bounds(primitives, axis)
        ticks: tuple[tuple[float, str], ...] = ()
        if bounds is not None:
            raw = transform.inverse(np.asarray(bounds))
            ticks = tuple(transform.ticks(float(raw.min()), float(raw.max()), scale.n_breaks))
        out.append(
            AxisDescriptor(
                axis=axis,
                title=title,
                transform=transform.name,
                position=scale.position or AXIS_POSITIONS[axis][0],
                range=bounds,
                ticks=ticks,
            )
        )
    return tuple(out)


def compose(
    layers: Iterable[Layer] | LayerStack,
    scales: Optional[ScaleSet],
    global_binding: Optional[AestheticBinding],
    dataset: Any = None,
    theme: Optional[ThemeSettings] = None,
) -> RenderPlan:
    """Compose layers into a RenderPlan.

    Args:
        layers: Layers in draw order (index 0 is drawn first).
        scales: Axis transforms and categorical scales; None = defaults.
        global_binding: Plot-level aesthetic binding.
        dataset: Plot-level data (Dataset, DataFrame, list of dicts); used by
            layers without their own data.
        theme: Theme operations; None = defaults.

    Returns:
        RenderPlan. Layers that failed are absent and described in
        ``plan.diagnostics``.

    Raises:
        CompositionError: Global configuration is inconsistent.
    """
    scales = scales if scales is not None else ScaleSet()
    scales.validate()
    resolved_theme = (theme or ThemeSettings()).resolve()
    global_ds = Dataset.coerce(dataset) if dataset is not None else None

    layer_list = list(layers)
    for i, layer in enumerate(layer_list):
        if not isinstance(layer, Layer):
            raise CompositionError(f"item {i} of the layer stack is not a Layer: {type(layer)!r}")

    logger.info(f"compose: {len(layer_list)} layer(s), dataset={global_ds!r}")

    diagnostics: list[Diagnostic] = []
    prepared: list[_PreparedLayer] = []
    for i, layer in enumerate(layer_list):
        p = _prepare_layer(i, layer, global_binding, global_ds, scales, diagnostics)
        if p is not None:
            prepared.append(p)

    palettes = _build_palettes(prepared, scales)

    emitter = _Emitter(palettes, diagnostics)
    for p in prepared:
        emitter.emit(p)

    legend = _build_legend(prepared, palettes, scales, resolved_theme, diagnostics)
    axes = _build_axes(prepared, emitter.primitives, scales)

    plan = RenderPlan(
        primitives=tuple(emitter.primitives),
        legend=legend,
        axes=axes,
        theme=resolved_theme,
        diagnostics=tuple(diagnostics),
        palettes=tuple(
            (ch, f, tuple(pa.mapping.items())) for (ch, f), pa in palettes.items()
        ),
    )
    logger.info(
        f"compose: {len(plan.primitives)} primitive(s) from {len(prepared)}/{len(layer_list)} layer(s), "
        f"{len(plan.errors)} error(s), {len(plan.warnings)} warning(s)"
    )
    return plan
