"""Unit tests for PlotlyFigureBuilder."""

from layerplot.mapping import aes
from layerplot.plot import Plot
from layerplot.render.plotly_figure import PlotlyFigureBuilder


def _plan(df, **theme):
    plot = (
        Plot(df, aes(x="F2", y="F1", color="vowel", label="vowel"))
        .points()
        .ellipses(segments=20)
        .group_means(geometry="label")
        .scale_x("reverse", position="top")
        .scale_y("reverse", position="right")
    )
    if theme:
        plot.theme(**theme)
    return plot.build()


def test_make_figure_returns_dict(formant_df):
    fig = PlotlyFigureBuilder().make_figure(_plan(formant_df))
    assert isinstance(fig, dict)
    assert "data" in fig and "layout" in fig


def test_traces_follow_plan_order(formant_df):
    fig = PlotlyFigureBuilder().make_figure(_plan(formant_df))
    data = fig["data"]
    # one marker trace for the point layer, then one polygon trace per vowel
    assert data[0]["mode"] == "markers"
    assert len(data[0]["x"]) == 12
    polygons = [t for t in data if t.get("fill") == "none" or t.get("mode") == "lines"]
    assert len(polygons) == 3
    first_polygon = polygons[0]
    assert len(first_polygon["x"]) == 21  # closed ring
    assert first_polygon["x"][0] == first_polygon["x"][-1]


def test_labels_become_annotations(formant_df):
    fig = PlotlyFigureBuilder().make_figure(_plan(formant_df))
    annotations = fig["layout"]["annotations"]
    assert [a["text"] for a in annotations] == ["i", "a", "u"]
    assert all(a["bgcolor"] == "#FFFFFF" for a in annotations)


def test_legend_only_traces_in_declared_order(formant_df):
    fig = PlotlyFigureBuilder().make_figure(_plan(formant_df))
    legend = [t for t in fig["data"] if t.get("showlegend")]
    assert [t["name"] for t in legend] == ["i", "a", "u"]
    assert fig["layout"]["showlegend"] is True


def test_axes_use_plan_ticks_and_sides(formant_df):
    plan = _plan(formant_df)
    layout = PlotlyFigureBuilder().make_figure(plan)["layout"]
    x_axis = plan.axis("x")
    assert list(layout["xaxis"]["tickvals"]) == [t[0] for t in x_axis.ticks]
    assert list(layout["xaxis"]["ticktext"]) == [t[1] for t in x_axis.ticks]
    assert layout["xaxis"]["side"] == "top"
    assert layout["yaxis"]["side"] == "right"


def test_hidden_legend(formant_df):
    fig = PlotlyFigureBuilder().make_figure(_plan(formant_df, legend_position="none"))
    assert fig["layout"]["showlegend"] is False
    assert not any(t.get("showlegend") for t in fig["data"])


def test_labels_below_later_layers_stay_traces(formant_df):
    plan = (
        Plot(formant_df, aes(x="F2", y="F1", color="vowel", label="vowel"))
        .group_means(geometry="label")
        .ellipses(segments=20)
        .build()
    )
    fig = PlotlyFigureBuilder().make_figure(plan)
    assert not fig["layout"].get("annotations")
    data = fig["data"]
    assert data[0]["mode"] == "text"
    assert list(data[0]["text"]) == ["i", "a", "u"]
    assert all(t["mode"] == "lines" for t in data[1:4])
