"""NiceGUI viewer for vowel charts.

Chart assembly lives in :mod:`layerplot.viewer_app.chart` and does not
import nicegui; the page itself is in :mod:`layerplot.viewer_app.viewer_app`.
"""

from layerplot.viewer_app.chart import build_vowel_plot, load_viewer_dataset

__all__ = ["build_vowel_plot", "load_viewer_dataset"]
