"""Unit tests for compose(): layer isolation, z-order, palettes and legends."""

import numpy as np
import pandas as pd
import pytest

from layerplot.compositor import compose
from layerplot.dataset import Dataset, with_canonical_order
from layerplot.errors import CompositionError
from layerplot.layers import Geometry, Layer, LayerStack, LayerStyle
from layerplot.mapping import Constant, aes
from layerplot.render_plan import PointPrimitive, PolygonPrimitive, TextPrimitive
from layerplot.scales import ScaleSet, hue_palette
from layerplot.theme import ThemeSettings


@pytest.fixture
def binding():
    return aes(x="F2", y="F1", color="vowel", label="vowel")


def test_z_order_follows_declaration(formant_df, binding):
    layers = [Layer(Geometry.POINT), Layer(Geometry.LABEL)]
    plan = compose(layers, None, binding, formant_df)

    zs = [p.z for p in plan.primitives]
    assert zs == sorted(zs) and len(set(zs)) == len(zs)
    points = plan.layer_primitives(0)
    labels = plan.layer_primitives(1)
    assert len(points) == 12 and len(labels) == 12
    assert max(p.z for p in points) < min(p.z for p in labels)


def test_layer_stack_input(formant_df, binding):
    stack = LayerStack()
    assert stack.append(Layer(Geometry.POINT)) == 0
    assert stack.append(Layer(Geometry.TEXT)) == 1
    plan = compose(stack, ScaleSet(), binding, formant_df)
    assert len(plan.of_type(TextPrimitive)) == 12


def test_layer_label_override(formant_df, binding):
    """A text layer binding label='word' shows words; the global label is untouched."""
    layers = [
        Layer(Geometry.TEXT, mapping=aes(label="word")),
        Layer(Geometry.TEXT),
    ]
    plan = compose(layers, None, binding, formant_df)
    first = {p.text for p in plan.layer_primitives(0)}
    second = {p.text for p in plan.layer_primitives(1)}
    assert first == {"heed", "had", "who'd"}
    assert second == {"i", "a", "u"}


def test_one_palette_shared_by_all_layers(formant_df, binding):
    layers = [Layer(Geometry.POINT), Layer(Geometry.TEXT)]
    plan = compose(layers, None, binding, formant_df)
    palette = plan.palette("color", "vowel")
    assert list(palette) == ["i", "a", "u"]
    assert list(palette.values()) == hue_palette(3)
    for prim in plan.primitives:
        assert prim.color == palette[prim.group]


def test_canonical_order_drives_palette_and_legend(formant_df, binding):
    ds = with_canonical_order(Dataset.from_frame(formant_df), "vowel", ["u", "a", "i"])
    plan = compose([Layer(Geometry.POINT)], None, binding, ds)
    assert list(plan.palette("color", "vowel")) == ["u", "a", "i"]
    assert plan.legend.guide("color").values() == ["u", "a", "i"]


def test_breaks_reorder_legend_without_changing_palette(formant_df, binding):
    plain = compose([Layer(Geometry.POINT)], None, binding, formant_df)

    scales = ScaleSet()
    scales.set_categorical("color", breaks=["u", "i"])
    with_breaks = compose([Layer(Geometry.POINT)], scales, binding, formant_df)

    assert with_breaks.palette("color", "vowel") == plain.palette("color", "vowel")
    assert with_breaks.legend.guide("color").values() == ["u", "i"]
    assert plain.legend.guide("color").values() == ["i", "a", "u"]
    assert [p.color for p in with_breaks.primitives] == [p.color for p in plain.primitives]


def test_unresolved_channel_omits_only_that_layer(formant_df):
    layers = [Layer(Geometry.POINT), Layer(Geometry.LABEL), Layer(Geometry.POINT)]
    plan = compose(layers, None, aes(x="F2", y="F1"), formant_df)

    assert len(plan.layer_primitives(0)) == 12
    assert plan.layer_primitives(1) == []
    assert len(plan.layer_primitives(2)) == 12
    assert [(d.code, d.layer_index) for d in plan.errors] == [("UnresolvedChannelError", 1)]
    assert plan.errors[0].channel == "label"


def test_missing_field_omits_layer(formant_df):
    layers = [Layer(Geometry.POINT, mapping=aes(color="speaker")), Layer(Geometry.POINT)]
    plan = compose(layers, None, aes(x="F2", y="F1"), formant_df)
    assert plan.layer_primitives(0) == []
    assert len(plan.layer_primitives(1)) == 12
    assert plan.errors[0].code == "FieldNotFoundError"
    assert "speaker" in plan.errors[0].message


def test_log10_domain_error_omits_layer():
    df = pd.DataFrame({"x": [1.0, 0.0, 10.0], "y": [1.0, 2.0, 3.0]})
    own = Dataset.from_records([{"x": 1.0, "y": 1.0}, {"x": 100.0, "y": 2.0}])
    scales = ScaleSet()
    scales.set_axis("x", transform="log10")
    layers = [Layer(Geometry.POINT), Layer(Geometry.POINT, data=own)]
    plan = compose(layers, scales, aes(x="x", y="y"), df)

    assert plan.errors[0].code == "ScaleDomainError"
    assert plan.errors[0].layer_index == 0
    assert [p.x for p in plan.layer_primitives(1)] == pytest.approx([0.0, 2.0])


def test_static_override_contributes_no_legend(formant_df, binding):
    layers = [
        Layer(Geometry.POINT, style=LayerStyle(color="#000000")),
        Layer(Geometry.TEXT, show_legend=False),
    ]
    plan = compose(layers, None, binding, formant_df)
    assert all(p.color == "#000000" for p in plan.layer_primitives(0))
    assert plan.legend.visible
    assert plan.legend.guides == ()


def test_constant_binding_applies_to_every_record(formant_df):
    plan = compose([Layer(Geometry.POINT)], None, aes(x="F2", y="F1", color=Constant("#112233")), formant_df)
    assert {p.color for p in plan.primitives} == {"#112233"}
    assert plan.legend.guides == ()


def test_missing_positions_dropped_with_warning():
    df = pd.DataFrame({"x": [1.0, np.nan, 3.0], "y": [1.0, 2.0, 3.0]})
    plan = compose([Layer(Geometry.POINT)], None, aes(x="x", y="y"), df)
    assert len(plan.primitives) == 2
    assert [d.code for d in plan.warnings] == ["MissingValues"]


def test_polygons_grouped_by_fill_field():
    square = [(0, 0), (1, 0), (1, 1), (0, 1)]
    rows = [{"g": g, "x": x + 5 * k, "y": y} for k, g in enumerate(["a", "b"]) for x, y in square]
    plan = compose([Layer(Geometry.POLYGON)], None, aes(x="x", y="y", fill="g"), rows)
    polys = plan.of_type(PolygonPrimitive)
    assert [p.group for p in polys] == ["a", "b"]
    assert polys[0].vertices == ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))
    assert polys[0].fill == hue_palette(2)[0]
    assert polys[0].color == "#000000"


def test_labels_are_boxed_and_text_is_not(formant_df, binding):
    plan = compose([Layer(Geometry.TEXT), Layer(Geometry.LABEL)], None, binding, formant_df)
    assert not any(p.boxed for p in plan.layer_primitives(0))
    assert all(p.boxed and p.fill == "#FFFFFF" for p in plan.layer_primitives(1))


def test_axis_titles_default_to_field_names(formant_df, binding):
    scales = ScaleSet()
    scales.set_axis("y", title="F1 (Hz)", position="right")
    plan = compose([Layer(Geometry.POINT)], scales, binding, formant_df)
    assert plan.axis("x").title == "F2"
    assert plan.axis("x").position == "bottom"
    assert plan.axis("y").title == "F1 (Hz)"
    assert plan.axis("y").position == "right"


def test_hidden_legend_skips_break_validation(formant_df, binding):
    scales = ScaleSet()
    scales.set_categorical("color", breaks=["i", "Z"])
    plan = compose([Layer(Geometry.POINT)], scales, binding, formant_df, ThemeSettings().set(legend_position="none"))
    assert not plan.legend.visible
    assert plan.legend.guides == ()
    assert plan.diagnostics == ()


def test_identical_inputs_give_equal_plans(formant_df, binding):
    layers = [Layer(Geometry.POINT), Layer(Geometry.LABEL)]
    scales = ScaleSet()
    scales.set_axis("x", transform="reverse")
    assert compose(layers, scales, binding, formant_df) == compose(layers, scales, binding, formant_df)


def test_non_layer_in_stack_is_composition_error(formant_df, binding):
    with pytest.raises(CompositionError):
        compose([Layer(Geometry.POINT), "points"], None, binding, formant_df)


def test_point_defaults(formant_df):
    plan = compose([Layer(Geometry.POINT)], None, aes(x="F2", y="F1"), formant_df)
    prim = plan.primitives[0]
    assert isinstance(prim, PointPrimitive)
    assert (prim.color, prim.shape, prim.size, prim.alpha) == ("#000000", "circle", 6.0, 1.0)
    assert plan.diagnostics == ()


def test_fields_of_undrawn_channels_need_not_exist():
    square = [{"g": "a", "x": x, "y": y} for x, y in [(0, 0), (1, 0), (1, 1), (0, 1)]]
    binding = aes(x="x", y="y", color="g", label="word", shape="speaker")
    layers = [Layer(Geometry.POLYGON), Layer(Geometry.TEXT, mapping=aes(label="g"))]
    plan = compose(layers, None, binding, square)

    assert plan.errors == []
    assert [p.group for p in plan.of_type(PolygonPrimitive)] == ["a"]
    assert [p.text for p in plan.of_type(TextPrimitive)] == ["a"] * 4
    assert [g.channel for g in plan.legend.guides] == ["color"]


def test_polygon_group_field_prefers_color_over_fill():
    square = [(0, 0), (1, 0), (1, 1), (0, 1)]
    rows = [{"c": c, "g": "z", "x": x + 5 * k, "y": y} for k, c in enumerate(["p", "q"]) for x, y in square]
    plan = compose([Layer(Geometry.POLYGON)], None, aes(x="x", y="y", color="c", fill="g"), rows)
    polys = plan.of_type(PolygonPrimitive)
    assert [p.group for p in polys] == ["p", "q"]
    assert all(len(p.vertices) == 4 for p in polys)
