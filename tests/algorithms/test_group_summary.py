"""Unit tests for group_summary.aggregate and summaries_to_dataset."""

import math

import pandas as pd
import pytest

from layerplot.algorithms.group_summary import GroupSummary, aggregate, summaries_to_dataset
from layerplot.dataset import Dataset, with_canonical_order
from layerplot.errors import FieldNotFoundError


def test_aggregate_means_per_group(formant_df):
    summaries = aggregate(formant_df, "vowel", ["F1", "F2"])
    assert [s.key for s in summaries] == ["i", "a", "u"]
    i = summaries[0]
    assert i.count == 4
    assert i.means["F1"] == pytest.approx(295.0)
    assert i.means["F2"] == pytest.approx(2257.5)


def test_aggregate_is_pure(formant_df):
    """Same input -> equal output; input frame is left untouched."""
    before = formant_df.copy()
    first = aggregate(formant_df, "vowel", ["F1", "F2"])
    second = aggregate(formant_df, "vowel", ["F1", "F2"])
    assert first == second
    pd.testing.assert_frame_equal(formant_df, before)


def test_aggregate_follows_canonical_order(formant_df):
    ds = with_canonical_order(Dataset.from_frame(formant_df), "vowel", ["u", "i", "a"])
    assert [s.key for s in aggregate(ds, "vowel", ["F1"])] == ["u", "i", "a"]


def test_aggregate_ignores_missing_values():
    rows = [{"g": "a", "v": 1.0}, {"g": "a", "v": None}, {"g": "a", "v": 3.0}, {"g": "b", "v": None}]
    summaries = aggregate(rows, "g", ["v"])
    assert summaries[0].means["v"] == pytest.approx(2.0)
    assert summaries[0].count == 3
    assert math.isnan(summaries[1].means["v"])


def test_aggregate_unknown_field(formant_df):
    with pytest.raises(FieldNotFoundError):
        aggregate(formant_df, "vowel", ["F3"])
    with pytest.raises(FieldNotFoundError):
        aggregate(formant_df, "speaker", ["F1"])


def test_summaries_to_dataset_keeps_field_names_and_order(formant_df):
    source = with_canonical_order(Dataset.from_frame(formant_df), "vowel", ["a", "i", "u"])
    summaries = aggregate(source, "vowel", ["F2", "F1"])
    derived = summaries_to_dataset(summaries, "vowel", source=source)
    assert derived.fields == ["vowel", "F2", "F1"]
    assert len(derived) == 3
    assert derived.canonical_order("vowel") == ("a", "i", "u")


def test_group_summary_equality_ignores_mapping_type():
    a = GroupSummary(key="x", means={"v": 1.0}, count=2)
    b = GroupSummary(key="x", means={"v": 1.0}, count=2)
    assert a == b
    assert hash(a) == hash(b)
