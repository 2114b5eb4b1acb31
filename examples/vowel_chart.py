"""Build a vowel chart from synthetic formant data and write it to HTML.

Run:
    python examples/vowel_chart.py [out.html]
"""

import sys

import plotly.graph_objects as go

from layerplot import Plot, aes
from layerplot.demo import make_formant_dataset
from layerplot.render import PlotlyFigureBuilder
from layerplot.utils.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

df = make_formant_dataset(["i", "æ", "ɑ", "u"], n_per_group=40, seed=1)

plot = (
    Plot(df, aes(x="F2", y="F1", color="vowel", label="vowel"))
    .points(alpha=0.4)
    .ellipses(level=0.95)
    .group_means(geometry="label", show_legend=False)
    .scale_x("reverse", title="F2 (Hz)", position="top")
    .scale_y("reverse", title="F1 (Hz)", position="right")
    .theme("bw", legend_position="bottom")
)
plan = plot.build()
for diag in plan.diagnostics:
    logger.warning(f"{diag.code}: {diag.message}")

out = sys.argv[1] if len(sys.argv) > 1 else "vowel_chart.html"
go.Figure(PlotlyFigureBuilder().make_figure(plan)).write_html(out)
logger.info(f"Wrote {out}")
