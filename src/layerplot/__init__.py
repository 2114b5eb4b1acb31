"""
layerplot: layered, declarative 2-D statistical plots for grouped scatter data.

This package provides:
- Plot: fluent builder (points, labels, group means, confidence ellipses)
- compose(): layers + scales + bindings -> RenderPlan
- PlotlyFigureBuilder: RenderPlan -> Plotly figure dict
- Logging utilities for library and application use

For logging configuration in standalone scripts/demos:
    ```python
    from layerplot.utils.logging import configure_logging
    configure_logging(level="DEBUG")
    ```

When used as a library, logging is handled by the parent application's
configuration.
"""

import logging

from layerplot.utils.logging import configure_logging, get_logger

from layerplot.compositor import compose
from layerplot.dataset import Dataset, load_csv, with_canonical_order
from layerplot.errors import (
    CompositionError,
    ConflictingScaleError,
    Diagnostic,
    FieldNotFoundError,
    InsufficientSamplesError,
    LayerError,
    LayerPlotError,
    ScaleDomainError,
    Severity,
    UnknownCategoryError,
    UnresolvedChannelError,
)
from layerplot.layers import DerivedSource, Geometry, Layer, LayerStack, LayerStyle
from layerplot.mapping import Constant, Field, aes, resolve_binding
from layerplot.plot import Plot
from layerplot.plot_settings import PlotSettings, PlotSettingsStore
from layerplot.render.plotly_figure import PlotlyFigureBuilder
from layerplot.render_plan import RenderPlan
from layerplot.scales import ScaleSet
from layerplot.theme import ThemeSettings

# Ensure layerplot logger has NullHandler so logs don't propagate to root
# when no application has configured logging.
_logger = logging.getLogger("layerplot")
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())

__all__ = [
    "CompositionError",
    "ConflictingScaleError",
    "Constant",
    "Dataset",
    "DerivedSource",
    "Diagnostic",
    "Field",
    "FieldNotFoundError",
    "Geometry",
    "InsufficientSamplesError",
    "Layer",
    "LayerError",
    "LayerPlotError",
    "LayerStack",
    "LayerStyle",
    "Plot",
    "PlotSettings",
    "PlotSettingsStore",
    "PlotlyFigureBuilder",
    "RenderPlan",
    "ScaleDomainError",
    "ScaleSet",
    "Severity",
    "ThemeSettings",
    "UnknownCategoryError",
    "UnresolvedChannelError",
    "aes",
    "compose",
    "configure_logging",
    "get_logger",
    "load_csv",
    "resolve_binding",
    "with_canonical_order",
]

__version__ = "0.1.0"
