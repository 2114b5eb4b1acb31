"""Unit tests for ThemeSettings (last write wins, presets)."""

import pytest

from layerplot.theme import PRESETS, THEME_DEFAULTS, ThemeSettings


def test_defaults_when_empty():
    resolved = ThemeSettings().resolve()
    assert resolved.legend_position == THEME_DEFAULTS["legend_position"]
    assert resolved.legend_visible


def test_preset_after_hiding_legend_restores_it():
    """A complete preset overwrites every key, including an earlier legend_position."""
    resolved = ThemeSettings().set(legend_position="none").preset("bw").resolve()
    assert resolved.legend_position == "right"
    assert resolved.legend_visible
    assert resolved.background == PRESETS["bw"]["background"]


def test_hiding_legend_after_preset_wins():
    resolved = ThemeSettings().preset("bw").set(legend_position="none").resolve()
    assert not resolved.legend_visible
    assert resolved.background == PRESETS["bw"]["background"]


def test_partial_update_keeps_other_keys():
    resolved = ThemeSettings().preset("minimal").set(base_size=14).resolve()
    assert resolved.base_size == 14
    assert resolved.grid == PRESETS["minimal"]["grid"]


@pytest.mark.parametrize("kwargs", [{"legend_position": "middle"}, {"base_size": -1}, {"font": "x"}])
def test_invalid_operations_rejected(kwargs):
    with pytest.raises(ValueError):
        ThemeSettings().set(**kwargs)


def test_unknown_preset():
    with pytest.raises(ValueError):
        ThemeSettings().preset("dark")


def test_to_list_from_list_round_trip():
    theme = ThemeSettings().preset("classic").set(legend_position="bottom")
    restored = ThemeSettings.from_list(theme.to_list())
    assert restored.resolve() == theme.resolve()


def test_from_list_skips_invalid_ops():
    restored = ThemeSettings.from_list([{"set": {"legend_position": "nowhere"}}, {"preset": "bw"}])
    assert len(restored.ops) == 1
    assert restored.resolve().background == PRESETS["bw"]["background"]
