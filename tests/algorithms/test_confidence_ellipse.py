"""Unit tests for the confidence ellipse estimator."""

import math

import numpy as np
import pandas as pd
import pytest

from layerplot.algorithms.confidence_ellipse import (
    VERTEX_FIELD,
    chi2_quantile_2df,
    ellipses_to_dataset,
    estimate,
    estimate_groups,
)
from layerplot.dataset import Dataset
from layerplot.errors import InsufficientSamplesError, Severity


def _circle(n: int, r: float, cx: float = 0.0, cy: float = 0.0) -> np.ndarray:
    t = 2.0 * np.pi * np.arange(n) / n
    return np.column_stack([cx + r * np.cos(t), cy + r * np.sin(t)])


def _correlated(n: int = 200, seed: int = 1) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.multivariate_normal([10.0, -5.0], [[4.0, 1.5], [1.5, 1.0]], size=n)


def test_chi2_quantile_known_values():
    assert chi2_quantile_2df(0.95) == pytest.approx(5.991464547, rel=1e-9)
    assert chi2_quantile_2df(0.5) == pytest.approx(2.0 * math.log(2.0))


@pytest.mark.parametrize("level", [0.0, 1.0, -0.1, 1.5])
def test_chi2_quantile_rejects_out_of_range(level):
    with pytest.raises(ValueError):
        chi2_quantile_2df(level)


def test_circle_samples_give_circular_ellipse():
    """Evenly spaced samples on a circle: every vertex at sqrt(q) * sigma from the centre."""
    n, r = 12, 2.0
    poly = estimate(_circle(n, r, cx=3.0, cy=-1.0), level=0.95, segments=64)
    sigma = math.sqrt(r * r / 2.0 * n / (n - 1))
    expected = math.sqrt(chi2_quantile_2df(0.95)) * sigma

    assert poly.center == pytest.approx((3.0, -1.0), abs=1e-12)
    radii = [math.hypot(x - 3.0, y + 1.0) for x, y in poly.vertices]
    assert np.mean(radii) == pytest.approx(expected, rel=1e-9)
    assert max(radii) - min(radii) < 1e-9
    assert len(poly.vertices) == 64
    assert not poly.degenerate


def test_level_monotonic_and_rescales_about_same_centre():
    pts = _correlated()
    small = estimate(pts, level=0.5)
    large = estimate(pts, level=0.95)

    assert large.area() > small.area()
    assert large.center == small.center
    assert large.angle == pytest.approx(small.angle)
    ratio = math.sqrt(chi2_quantile_2df(0.95) / chi2_quantile_2df(0.5))
    for (xs, ys), (xl, yl) in zip(small.vertices, large.vertices):
        assert xl - large.center[0] == pytest.approx(ratio * (xs - small.center[0]))
        assert yl - large.center[1] == pytest.approx(ratio * (ys - small.center[1]))


def test_orientation_follows_positive_correlation():
    poly = estimate(_correlated())
    assert 0.0 < poly.angle < math.pi / 2
    assert poly.semi_axes[0] >= poly.semi_axes[1]


def test_estimate_is_deterministic():
    pts = _correlated()
    assert estimate(pts) == estimate(pts)


def test_two_samples_insufficient():
    with pytest.raises(InsufficientSamplesError) as exc_info:
        estimate([(0.0, 0.0), (1.0, 1.0)], key="G")
    assert exc_info.value.group == "G"
    assert exc_info.value.n_samples == 2


def test_non_finite_samples_dropped_before_count():
    with pytest.raises(InsufficientSamplesError):
        estimate([(0.0, 0.0), (1.0, np.nan), (np.inf, 2.0), (2.0, 1.0)])


def test_collinear_samples_are_degenerate():
    poly = estimate([(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0)])
    assert poly.degenerate
    assert poly.semi_axes[1] == pytest.approx(0.0, abs=1e-6)
    assert len(poly.vertices) == 100


def test_segments_minimum():
    with pytest.raises(ValueError):
        estimate(_circle(5, 1.0), segments=2)


def test_estimate_groups_reports_small_groups(formant_df):
    extra = pd.DataFrame({"vowel": ["e", "e"], "word": ["hayed"] * 2, "F1": [450.0, 460.0], "F2": [2000.0, 2050.0]})
    ds = Dataset.from_frame(pd.concat([formant_df, extra], ignore_index=True))
    batch = estimate_groups(ds, "vowel", "F2", "F1")

    assert [p.key for p in batch.polygons] == ["i", "a", "u"]
    assert len(batch.failures) == 1
    failure = batch.failures[0]
    assert failure.code == "InsufficientSamplesError"
    assert failure.group == "e"
    assert failure.severity is Severity.ERROR


def test_estimate_groups_degenerate_is_warning():
    ds = Dataset.from_records([{"g": "a", "x": float(i), "y": 2.0 * i} for i in range(5)])
    batch = estimate_groups(ds, "g", "x", "y")
    assert len(batch.polygons) == 1
    assert batch.failures == ()
    assert [d.code for d in batch.diagnostics] == ["DegenerateCovarianceWarning"]


def test_ellipses_to_dataset_long_format(formant_df):
    ds = Dataset.from_frame(formant_df)
    batch = estimate_groups(ds, "vowel", "F2", "F1", segments=10)
    out = ellipses_to_dataset(batch.polygons, "vowel", "F2", "F1", source=ds)
    assert out.fields == ["vowel", "F2", "F1", VERTEX_FIELD]
    assert len(out) == 30
    assert out.distinct_values("vowel") == ["i", "a", "u"]
    assert list(out.column(VERTEX_FIELD)[:10]) == list(range(10))
