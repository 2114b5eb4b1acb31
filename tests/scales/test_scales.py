"""Unit tests for axis transforms, ticks, palettes and the scale set."""

import numpy as np
import pytest

from layerplot.errors import CompositionError, ConflictingScaleError, ScaleDomainError, UnknownCategoryError
from layerplot.scales import (
    NA_COLOR,
    PLOTLY_SYMBOLS,
    AxisTransform,
    PaletteAssignment,
    ScaleSet,
    format_tick,
    generate_nice_ticks,
    hcl_to_hex,
    hue_palette,
    shape_palette,
)


# -----------------------------------------------------------------------------
# Transforms and ticks
# -----------------------------------------------------------------------------


def test_reverse_forward_inverse():
    t = AxisTransform("reverse")
    np.testing.assert_array_equal(t.forward([1.0, 2.0]), [-1.0, -2.0])
    np.testing.assert_array_equal(t.inverse(t.forward([3.5])), [3.5])


def test_log10_rejects_non_positive():
    with pytest.raises(ScaleDomainError):
        AxisTransform("log10").forward([1.0, 0.0])


def test_log10_ignores_nan_when_checking_domain():
    out = AxisTransform("log10").forward([10.0, np.nan])
    assert out[0] == pytest.approx(1.0)
    assert np.isnan(out[1])


def test_unknown_transform():
    with pytest.raises(ValueError):
        AxisTransform("sqrt")


def test_reverse_ticks_show_raw_values_decreasing_left_to_right():
    ticks = AxisTransform("reverse").ticks(0.0, 100.0, 5)
    positions = [p for p, _ in ticks]
    labels = [float(lab) for _, lab in ticks]
    assert positions == sorted(positions)
    assert labels == sorted(labels, reverse=True)
    assert all(p == -v for p, v in zip(positions, labels))


def test_log10_ticks_positions_in_log_space():
    ticks = AxisTransform("log10").ticks(1.0, 1000.0, 4)
    assert ticks[0] == (0.0, "1")
    for position, label in ticks:
        assert float(label) == pytest.approx(10.0 ** position)


def test_nice_ticks_and_format():
    ticks = generate_nice_ticks(0.0, 1.0, 5)
    np.testing.assert_allclose(ticks, [0.0, 0.2, 0.4, 0.6, 0.8, 1.0])
    assert format_tick(0.30000000000000004, step=0.1) == "0.3"
    assert format_tick(-0.0) == "0"


# -----------------------------------------------------------------------------
# Palettes
# -----------------------------------------------------------------------------


def test_hcl_to_hex_shape():
    out = hcl_to_hex(15.0, 100.0, 65.0)
    assert out.startswith("#") and len(out) == 7


def test_hue_palette_distinct_and_deterministic():
    pal = hue_palette(10)
    assert len(set(pal)) == 10
    assert pal == hue_palette(10)
    assert hue_palette(0) == []


def test_shape_palette_cycles():
    shapes = shape_palette(len(PLOTLY_SYMBOLS) + 2)
    assert shapes[0] == PLOTLY_SYMBOLS[0]
    assert shapes[len(PLOTLY_SYMBOLS)] == PLOTLY_SYMBOLS[0]


def test_palette_assignment_in_category_order():
    pa = PaletteAssignment.build("color", "g", ["b", "a", "c"])
    assert list(pa.mapping) == ["b", "a", "c"]
    assert pa.encode("b") == hue_palette(3)[0]
    assert pa.encode("zzz") == NA_COLOR


def test_palette_breaks_change_only_legend():
    pa = PaletteAssignment.build("color", "g", ["a", "b", "c"])
    shown, unknown = pa.legend_order(["c", "a"])
    assert shown == ["c", "a"]
    assert unknown == []
    assert pa.encode("a") == hue_palette(3)[0]


def test_palette_unknown_break_reported():
    pa = PaletteAssignment.build("color", "g", ["a", "b"])
    shown, unknown = pa.legend_order(["b", "Z", "a"])
    assert shown == ["b", "a"]
    assert len(unknown) == 1
    assert isinstance(unknown[0], UnknownCategoryError)
    assert unknown[0].value == "Z"


def test_palette_legend_order_restricted_to_contributed_values():
    pa = PaletteAssignment.build("color", "g", ["a", "b", "c"])
    shown, _ = pa.legend_order(among=["c", "a"])
    assert shown == ["a", "c"]


def test_manual_palette_list_too_short():
    with pytest.raises(CompositionError):
        PaletteAssignment.build("color", "g", ["a", "b", "c"], values=["red", "blue"])


def test_manual_palette_dict_missing_category_uses_na():
    pa = PaletteAssignment.build("color", "g", ["a", "b"], values={"a": "red"})
    assert pa.encode("a") == "red"
    assert pa.encode("b") == NA_COLOR


# -----------------------------------------------------------------------------
# ScaleSet
# -----------------------------------------------------------------------------


def test_conflicting_transform_raises():
    scales = ScaleSet()
    scales.set_axis("x", transform="reverse")
    with pytest.raises(ConflictingScaleError):
        scales.set_axis("x", transform="log10")


def test_same_transform_is_idempotent_and_title_updates():
    scales = ScaleSet()
    scales.set_axis("y", transform="reverse")
    scales.set_axis("y", transform="reverse", title="F1 (Hz)")
    assert scales.axis("y").effective_transform.name == "reverse"
    assert scales.axis("y").title == "F1 (Hz)"


def test_invalid_axis_position():
    with pytest.raises(ValueError):
        ScaleSet().set_axis("x", position="left")


def test_set_categorical_rejects_position_channel():
    with pytest.raises(ValueError):
        ScaleSet().set_categorical("x", breaks=["a"])


def test_validate_rejects_malformed_entries():
    scales = ScaleSet()
    scales.set_categorical("color", breaks=["a"])
    scales.categorical["fill"] = scales.categorical["color"]
    with pytest.raises(CompositionError):
        scales.validate()
