"""Renderers that turn a RenderPlan into something displayable."""

from layerplot.render.plotly_figure import PlotlyFigureBuilder

__all__ = ["PlotlyFigureBuilder"]
