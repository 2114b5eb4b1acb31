"""
Confidence ellipse algorithm: pure numpy reference.

For one group's (x, y) samples:

  1. Sample mean vector and 2x2 sample covariance (ddof=1).
  2. Symmetric eigendecomposition of the covariance -> principal axes and
     their variances.
  3. Confidence level -> chi-squared quantile with 2 degrees of freedom,
     q = -2 ln(1 - level); scale factor sqrt(q).
  4. Semi-axes scale * sqrt(eigenvalue) along each eigenvector, centred at the
     mean, sampled at `segments` evenly spaced angles.

The level only enters through the scale factor, so changing it rescales the
polygon uniformly about a fixed centre and orientation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from layerplot.dataset import Dataset
from layerplot.errors import (
    DegenerateCovarianceWarning,
    Diagnostic,
    InsufficientSamplesError,
    Severity,
)
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LEVEL = 0.95
DEFAULT_SEGMENTS = 100
MIN_SAMPLES = 3
MIN_SEGMENTS = 3
# det(cov) / (trace(cov)/2)**2 below this counts as collinear
DEGENERATE_RTOL = 1e-10

VERTEX_FIELD = "_vertex"


@dataclass(frozen=True)
class EllipsePolygon:
    """Closed polygon approximating a confidence region.

    Attributes:
        key: Group value the polygon belongs to.
        vertices: Ordered (x, y) vertices; the loop closes from last to first.
        center: Sample mean (x, y).
        semi_axes: Semi-axis lengths (major, minor).
        angle: Direction of the major axis in radians, in (-pi/2, pi/2].
        level: Confidence level used.
        degenerate: True when the samples were (nearly) collinear.
    """

    key: Any
    vertices: tuple[tuple[float, float], ...]
    center: tuple[float, float]
    semi_axes: tuple[float, float]
    angle: float
    level: float
    degenerate: bool = False

    def area(self) -> float:
        """Shoelace area of the vertex loop."""
        if len(self.vertices) < 3:
            return 0.0
        xs = np.array([v[0] for v in self.vertices])
        ys = np.array([v[1] for v in self.vertices])
        return float(0.5 * abs(np.dot(xs, np.roll(ys, -1)) - np.dot(ys, np.roll(xs, -1))))


@dataclass(frozen=True)
class EllipseBatch:
    """Result of estimating one ellipse per group.

    Attributes:
        polygons: Successful polygons in group order.
        diagnostics: Failed groups (errors) and degenerate groups (warnings).
    """

    polygons: tuple[EllipsePolygon, ...]
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)

    @property
    def failures(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity is Severity.ERROR)


def chi2_quantile_2df(level: float) -> float:
    """Quantile of the chi-squared distribution with 2 degrees of freedom.

    With 2 dof the CDF is 1 - exp(-q/2), so the quantile is -2 ln(1 - level).
    """
    level = float(level)
    if not (0.0 < level < 1.0):
        raise ValueError(f"level must be in (0, 1), got {level}")
    return -2.0 * math.log1p(-level)


def _normalize_sign(vec: np.ndarray) -> np.ndarray:
    """Flip ``vec`` so its first non-negligible component is positive."""
    for comp in vec:
        if abs(comp) > 1e-12:
            return vec if comp > 0 else -vec
    return vec


def estimate(
    samples: Iterable[Sequence[float]],
    level: float = DEFAULT_LEVEL,
    segments: int = DEFAULT_SEGMENTS,
    *,
    key: Any = None,
) -> EllipsePolygon:
    """Estimate a confidence ellipse for 2-D samples.

    Args:
        samples: Iterable of (x, y) pairs; non-finite pairs are ignored.
        level: Confidence level in (0, 1).
        segments: Number of vertices (>= 3).
        key: Group value stored on the polygon and reported in errors.

    Returns:
        EllipsePolygon. Collinear samples yield a thin polygon with
        ``degenerate=True`` and a DegenerateCovarianceWarning logged.

    Raises:
        InsufficientSamplesError: Fewer than 3 finite samples.
        ValueError: ``level`` outside (0, 1) or ``segments`` < 3.
    """
    scale = math.sqrt(chi2_quantile_2df(level))
    segments = int(segments)
    if segments < MIN_SEGMENTS:
        raise ValueError(f"segments must be >= {MIN_SEGMENTS}, got {segments}")

    pts = np.asarray(list(samples), dtype=float)
    if pts.size == 0:
        pts = pts.reshape(0, 2)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError("samples must be a sequence of (x, y) pairs")
    pts = pts[np.isfinite(pts).all(axis=1)]
    n = pts.shape[0]
    if n < MIN_SAMPLES:
        raise InsufficientSamplesError(key, n)

    center = pts.mean(axis=0)
    cov = np.cov(pts, rowvar=False, ddof=1)

    # eigh: ascending eigenvalues, orthonormal eigenvectors in columns
    eigvals, eigvecs = np.linalg.eigh(cov)
    eigvals = np.clip(eigvals, 0.0, None)
    major = _normalize_sign(eigvecs[:, 1])
    minor = np.array([-major[1], major[0]])

    half_trace = 0.5 * float(eigvals.sum())
    degenerate = half_trace == 0.0 or float(eigvals[0] * eigvals[1]) <= DEGENERATE_RTOL * half_trace**2
    if degenerate:
        logger.warning(
            f"samples of group {key!r} are collinear; returning a degenerate ellipse "
            f"({DegenerateCovarianceWarning.__name__})"
        )

    a = scale * math.sqrt(float(eigvals[1]))
    b = scale * math.sqrt(float(eigvals[0]))

    theta = 2.0 * np.pi * np.arange(segments) / segments
    offsets = np.outer(a * np.cos(theta), major) + np.outer(b * np.sin(theta), minor)
    verts = center + offsets

    angle = math.atan2(major[1], major[0])
    return EllipsePolygon(
        key=key,
        vertices=tuple((float(x), float(y)) for x, y in verts),
        center=(float(center[0]), float(center[1])),
        semi_axes=(a, b),
        angle=angle,
        level=float(level),
        degenerate=bool(degenerate),
    )


def estimate_groups(
    dataset: Dataset,
    group_field: str,
    x_field: str,
    y_field: str,
    level: float = DEFAULT_LEVEL,
    segments: int = DEFAULT_SEGMENTS,
) -> EllipseBatch:
    """Estimate one ellipse per group of ``dataset``.

    Groups that fail with InsufficientSamplesError are left out and reported
    as error diagnostics; degenerate groups are kept and reported as warnings.

    Raises:
        FieldNotFoundError: One of the fields is missing.
        ValueError: Invalid ``level`` or ``segments`` (applies to every group).
    """
    chi2_quantile_2df(level)  # validate once, up front
    dataset.numeric_column(x_field)
    dataset.numeric_column(y_field)

    polygons: list[EllipsePolygon] = []
    diagnostics: list[Diagnostic] = []
    for key, sub in dataset.partition(group_field):
        xs = pd.to_numeric(sub[x_field], errors="coerce").to_numpy(dtype=float)
        ys = pd.to_numeric(sub[y_field], errors="coerce").to_numpy(dtype=float)
        try:
            poly = estimate(np.column_stack([xs, ys]), level=level, segments=segments, key=key)
        except InsufficientSamplesError as e:
            logger.warning(f"ellipse skipped: {e}")
            diagnostics.append(Diagnostic.from_exception(e))
            continue
        if poly.degenerate:
            diagnostics.append(
                Diagnostic(
                    severity=Severity.WARNING,
                    code=DegenerateCovarianceWarning.__name__,
                    message=f"group {key!r}: collinear samples, ellipse is degenerate",
                    group=key,
                )
            )
        polygons.append(poly)

    return EllipseBatch(polygons=tuple(polygons), diagnostics=tuple(diagnostics))


def ellipses_to_dataset(
    polygons: Sequence[EllipsePolygon],
    group_field: str,
    x_field: str,
    y_field: str,
    source: Optional[Dataset] = None,
) -> Dataset:
    """Long-format vertex table: one row per vertex, polygons in order.

    Columns: ``group_field``, ``x_field``, ``y_field`` and ``_vertex`` (vertex
    index within its polygon). Inherits the canonical order of
    ``group_field`` from ``source`` when present.
    """
    rows: list[dict[str, Any]] = []
    for poly in polygons:
        for i, (x, y) in enumerate(poly.vertices):
            rows.append({group_field: poly.key, x_field: x, y_field: y, VERTEX_FIELD: i})
    frame = pd.DataFrame(rows, columns=[group_field, x_field, y_field, VERTEX_FIELD])

    orders: dict[str, Sequence[Any]] = {}
    if source is not None and source.has_field(group_field):
        order = source.canonical_order(group_field)
        if order is not None:
            orders[group_field] = order
    return Dataset(frame, canonical_orders=orders)
