"""Plotly figure generation from a RenderPlan.

This module provides the PlotlyFigureBuilder class that turns a finished
RenderPlan into a Plotly figure dictionary. The plan is already fully
resolved (positions are in drawing space, encodings are concrete colours and
symbols), so the builder only translates; it makes no plotting decisions.

Z-order: traces are added in plan order. Consecutive primitives of the same
layer and kind are batched into one trace. Boxed labels become layout
annotations, which Plotly always draws above traces; a label run that has
later traces above it in the plan is drawn as a plain text trace instead
(no box) so that the later traces still cover it.
"""

from __future__ import annotations

from itertools import groupby
from typing import Any, Optional

import plotly.graph_objects as go

from layerplot.render_plan import (
    AxisDescriptor,
    LegendDescriptor,
    PointPrimitive,
    PolygonPrimitive,
    RenderPlan,
    TextPrimitive,
)
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

# fraction of the data span added on each side of an axis
AXIS_PADDING = 0.05

# legend placement per theme legend_position
_LEGEND_LAYOUT: dict[str, dict[str, Any]] = {
    "right": dict(orientation="v", x=1.02, xanchor="left", y=1.0, yanchor="top"),
    "left": dict(orientation="v", x=-0.15, xanchor="right", y=1.0, yanchor="top"),
    "top": dict(orientation="h", x=0.5, xanchor="center", y=1.02, yanchor="bottom"),
    "bottom": dict(orientation="h", x=0.5, xanchor="center", y=-0.15, yanchor="top"),
}


def _rgba(color: Optional[str], alpha: float) -> Optional[str]:
    """'#RRGGBB' + alpha -> 'rgba(r, g, b, a)'; other colour strings pass through."""
    if color is None:
        return None
    if isinstance(color, str) and color.startswith("#") and len(color) == 7:
        r, g, b = (int(color[i:i + 2], 16) for i in (1, 3, 5))
        return f"rgba({r}, {g}, {b}, {alpha:g})"
    return color


class PlotlyFigureBuilder:
    """Generates Plotly figure dictionaries from RenderPlans.

    Attributes:
        margin: Layout margin dict passed to Plotly.
    """

    def __init__(self, *, margin: Optional[dict[str, int]] = None) -> None:
        self.margin = margin if margin is not None else dict(l=50, r=20, t=40, b=50)

    def make_figure(self, plan: RenderPlan) -> dict:
        """Generate a Plotly figure dictionary.

        Args:
            plan: Composed plan.

        Returns:
            Plotly figure dictionary (``go.Figure.to_dict()``).
        """
        logger.info(
            f"PlotlyFigureBuilder.make_figure: primitives={len(plan.primitives)}, "
            f"guides={len(plan.legend.guides)}, diagnostics={len(plan.diagnostics)}"
        )
        fig = go.Figure()
        annotations: list[dict[str, Any]] = []
        # highest z drawn as a trace; labels below it cannot be annotations
        top_trace_z = max((p.z for p in plan.primitives if not getattr(p, "boxed", False)), default=-1)

        # batch consecutive primitives of one layer and kind into one trace
        runs = groupby(plan.primitives, key=lambda p: (p.layer_index, type(p), getattr(p, "boxed", False)))
        for (layer_index, kind, boxed), run in runs:
            prims = list(run)
            if kind is PointPrimitive:
                self._add_points(fig, prims)
            elif kind is PolygonPrimitive:
                for prim in prims:
                    self._add_polygon(fig, prim)
            elif boxed and prims[0].z > top_trace_z:
                annotations.extend(self._label_annotation(prim) for prim in prims)
            elif boxed:
                logger.warning(
                    f"layer {layer_index}: labels lie below later layers; drawn as text without boxes"
                )
                self._add_text(fig, prims)
            else:
                self._add_text(fig, prims)

        self._add_legend_traces(fig, plan.legend)

        layout_updates: dict[str, Any] = {
            "margin": self.margin,
            "showlegend": plan.legend.visible and bool(plan.legend.guides),
            "plot_bgcolor": plan.theme.background,
            "font": dict(size=plan.theme.base_size),
            "annotations": annotations,
            "uirevision": "keep",
        }
        if plan.legend.visible:
            layout_updates["legend"] = dict(_LEGEND_LAYOUT.get(plan.legend.position, _LEGEND_LAYOUT["right"]))
        for axis in plan.axes:
            layout_updates[f"{axis.axis}axis"] = self._axis_layout(axis, plan.theme.grid)

        fig.update_layout(**layout_updates)
        return fig.to_dict()

    def _add_points(self, fig: go.Figure, prims: list[PointPrimitive]) -> None:
        first = prims[0]
        fig.add_trace(go.Scatter(
            x=[p.x for p in prims],
            y=[p.y for p in prims],
            mode="markers",
            name=f"layer {first.layer_index}",
            showlegend=False,
            marker=dict(
                size=[p.size for p in prims],
                symbol=[p.shape for p in prims],
                color=[p.fill or p.color for p in prims],
                line=dict(color=[p.color for p in prims], width=1 if any(p.fill for p in prims) else 0),
                opacity=first.alpha,
            ),
            customdata=[str(p.group) if p.group is not None else "" for p in prims],
            hovertemplate="%{customdata}<br>x=%{x}<br>y=%{y}<extra></extra>",
        ))

    def _add_text(self, fig: go.Figure, prims: list[TextPrimitive]) -> None:
        first = prims[0]
        fig.add_trace(go.Scatter(
            x=[p.x for p in prims],
            y=[p.y for p in prims],
            mode="text",
            name=f"layer {first.layer_index}",
            showlegend=False,
            text=[p.text for p in prims],
            textposition="middle center",
            textfont=dict(color=[_rgba(p.color, p.alpha) for p in prims], size=[p.size for p in prims]),
            hoverinfo="skip",
        ))

    def _add_polygon(self, fig: go.Figure, prim: PolygonPrimitive) -> None:
        xs = [v[0] for v in prim.vertices]
        ys = [v[1] for v in prim.vertices]
        # close the ring
        xs.append(xs[0])
        ys.append(ys[0])
        fig.add_trace(go.Scatter(
            x=xs,
            y=ys,
            mode="lines",
            name=str(prim.group) if prim.group is not None else f"layer {prim.layer_index}",
            showlegend=False,
            fill="toself" if prim.fill is not None else "none",
            fillcolor=_rgba(prim.fill, prim.alpha),
            line=dict(
                color=_rgba(prim.color, prim.alpha) or "rgba(0, 0, 0, 0)",
                width=prim.stroke_width if prim.color is not None else 0,
            ),
            hoverinfo="skip",
        ))

    @staticmethod
    def _label_annotation(prim: TextPrimitive) -> dict[str, Any]:
        return dict(
            x=prim.x,
            y=prim.y,
            xref="x",
            yref="y",
            text=prim.text,
            showarrow=False,
            font=dict(color=prim.color, size=prim.size),
            bgcolor=prim.fill,
            bordercolor=prim.color,
            borderwidth=1,
            borderpad=2,
            opacity=prim.alpha,
        )

    @staticmethod
    def _add_legend_traces(fig: go.Figure, legend: LegendDescriptor) -> None:
        """One legend-only trace per entry, in the plan's declared order."""
        if not legend.visible:
            return
        for guide in legend.guides:
            group = f"{guide.channel}:{guide.field}"
            for i, entry in enumerate(guide.entries):
                if guide.channel == "shape":
                    marker = dict(symbol=entry.encoding, color="#000000", size=10)
                elif guide.channel == "fill":
                    marker = dict(symbol="square", color=entry.encoding, size=12, line=dict(color="#000000", width=1))
                else:
                    marker = dict(symbol="circle", color=entry.encoding, size=10)
                fig.add_trace(go.Scatter(
                    x=[None],
                    y=[None],
                    mode="markers",
                    name=str(entry.value),
                    marker=marker,
                    legendgroup=group,
                    legendgrouptitle=dict(text=guide.title) if i == 0 else None,
                    showlegend=True,
                    hoverinfo="skip",
                ))

    @staticmethod
    def _axis_layout(axis: AxisDescriptor, grid: Optional[str]) -> dict[str, Any]:
        out: dict[str, Any] = {
            "title": dict(text=axis.title),
            "side": axis.position,
            "showgrid": grid is not None,
            "zeroline": False,
        }
        if grid is not None:
            out["gridcolor"] = grid
        if axis.ticks:
            out["tickmode"] = "array"
            out["tickvals"] = [t[0] for t in axis.ticks]
            out["ticktext"] = [t[1] for t in axis.ticks]
        if axis.range is not None:
            lo, hi = axis.range
            pad = (hi - lo) * AXIS_PADDING if hi > lo else max(abs(hi) * AXIS_PADDING, 1.0)
            out["range"] = [lo - pad, hi + pad]
        return out
