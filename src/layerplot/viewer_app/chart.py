"""Vowel chart assembly for the viewer app (no GUI imports)."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from layerplot.dataset import Dataset, load_csv
from layerplot.demo import make_formant_dataset
from layerplot.mapping import aes
from layerplot.plot import Plot
from layerplot.plot_settings import PlotSettings
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)


def load_viewer_dataset(csv_path: Optional[Union[str, Path]] = None) -> Dataset:
    """Load ``csv_path``, or the synthetic formant demo data when None.

    Raises:
        FileNotFoundError: ``csv_path`` is given and does not exist.
    """
    if csv_path:
        return load_csv(csv_path)
    logger.info("No CSV given, using synthetic formant data")
    return Dataset.from_frame(make_formant_dataset())


def build_vowel_plot(
    dataset: Dataset,
    settings: Optional[PlotSettings] = None,
    *,
    x: str = "F2",
    y: str = "F1",
    group: str = "vowel",
) -> Plot:
    """Classic vowel chart: reversed F2/F1 axes, tokens, ellipses and mean labels."""
    settings = settings if settings is not None else PlotSettings()
    plot = (
        Plot(dataset, aes(x=x, y=y, color=group, label=group))
        .points(alpha=0.4, show_legend=True)
        .ellipses()
        .group_means(geometry="label", show_legend=False)
        .scale_x("reverse", position="top")
        .scale_y("reverse", position="right")
    )
    return plot.apply_settings(settings)
