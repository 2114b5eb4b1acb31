"""
Group summary algorithm: per-group means of numeric fields.

Partition records by a categorical field and compute the arithmetic mean of
each requested numeric field over exactly that partition. Groups come out in
the dataset's distinct-value order (first-encountered, or the canonical order
when one is annotated), so summaries line up with palettes and legends.

The result is a fresh structure; the input is never modified. To draw the
summaries (e.g. one text label per group at its mean position) convert them
with summaries_to_dataset() and attach the result to a layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from layerplot.dataset import Dataset, RecordsLike
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GroupSummary:
    """Summary statistics for one group.

    Attributes:
        key: Value of the grouping field.
        means: numeric field -> arithmetic mean over the group's finite values.
        count: Number of records in the group.
    """

    key: Any
    means: Mapping[str, float]
    count: int

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GroupSummary):
            return NotImplemented
        return self.key == other.key and self.count == other.count and dict(self.means) == dict(other.means)

    def __hash__(self) -> int:
        return hash((self.key, self.count, tuple(self.means.items())))


def aggregate(
    records: RecordsLike,
    group_field: str,
    numeric_fields: Sequence[str],
) -> list[GroupSummary]:
    """Compute per-group means.

    Args:
        records: Dataset, pandas DataFrame or list of record mappings.
        group_field: Categorical field that induces the partition.
        numeric_fields: Fields to average; values are coerced to float
            (non-numeric -> NaN) and NaNs are ignored, as pandas mean() does.

    Returns:
        One GroupSummary per distinct group value, in distinct-value order.
        A group whose values for a field are all missing gets NaN for it.

    Raises:
        FieldNotFoundError: ``group_field`` or a numeric field is missing.
    """
    dataset = Dataset.coerce(records)
    numeric_fields = list(numeric_fields)
    for f in numeric_fields:
        dataset.numeric_column(f)  # validates the field

    summaries: list[GroupSummary] = []
    for key, sub in dataset.partition(group_field):
        means: dict[str, float] = {}
        for f in numeric_fields:
            values = pd.to_numeric(sub[f], errors="coerce").to_numpy(dtype=float)
            finite = values[~np.isnan(values)]
            means[f] = float(np.mean(finite)) if finite.size else float("nan")
        summaries.append(GroupSummary(key=key, means=MappingProxyType(means), count=int(len(sub))))

    logger.debug(f"aggregate: {len(summaries)} groups by {group_field!r} over {numeric_fields}")
    return summaries


def summaries_to_dataset(
    summaries: Sequence[GroupSummary],
    group_field: str,
    source: Optional[Dataset] = None,
) -> Dataset:
    """Turn summaries into a Dataset with one row per group.

    Columns are ``group_field`` followed by the mean fields, named as in the
    source, so a layer can bind the same field names it uses for raw data.
    When ``source`` carries a canonical order for ``group_field`` the derived
    Dataset carries it too.
    """
    fields: list[str] = []
    for s in summaries:
        for f in s.means:
            if f not in fields:
                fields.append(f)

    rows = [{group_field: s.key, **{f: s.means.get(f, float("nan")) for f in fields}} for s in summaries]
    frame = pd.DataFrame(rows, columns=[group_field, *fields])

    orders: dict[str, Sequence[Any]] = {}
    if source is not None and source.has_field(group_field):
        order = source.canonical_order(group_field)
        if order is not None:
            orders[group_field] = order
    return Dataset(frame, canonical_orders=orders)
