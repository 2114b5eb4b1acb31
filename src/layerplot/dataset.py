"""Immutable tabular dataset consumed by the plotting engine.

A :class:`Dataset` wraps a private pandas DataFrame. It is never mutated after
construction: every operation that changes ordering metadata returns a new
Dataset bound to the same records (see :func:`with_canonical_order`).
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Union, TYPE_CHECKING

import numpy as np
import pandas as pd

from layerplot.errors import FieldNotFoundError
from layerplot.utils.logging import get_logger

logger = get_logger(__name__)

# Optional polars
try:  # pragma: no cover - import guard
    import polars as _pl  # type: ignore[import]
    HAS_POLARS = True
except ImportError:  # pragma: no cover - polars optional
    _pl = None  # type: ignore[assignment]
    HAS_POLARS = False

if TYPE_CHECKING:  # for type checkers only
    import polars as pl
else:  # runtime alias (may be None)
    pl = _pl  # type: ignore[assignment]


Record = Mapping[str, Any]
RecordsLike = Union["Dataset", pd.DataFrame, Sequence[Mapping[str, Any]]]


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


class Dataset:
    """Ordered, immutable collection of records with named fields.

    Record order is the insertion order of the source. It does not affect
    grouping, but it fixes the first-encountered order of categorical values,
    which is what palettes and legends use when no canonical order is set.

    Attributes:
        fields: Field names in source column order.
    """

    __slots__ = ("_frame", "_orders")

    def __init__(self, frame: pd.DataFrame, *, canonical_orders: Optional[Mapping[str, Sequence[Any]]] = None) -> None:
        """Wrap a copy of ``frame``.

        Args:
            frame: Source data, one row per record.
            canonical_orders: Optional field -> ordered categories annotations.
        """
        if not isinstance(frame, pd.DataFrame):
            raise TypeError(f"Dataset expects a pandas DataFrame, got {type(frame)!r}")
        self._frame = frame.reset_index(drop=True).copy()
        self._frame.columns = [str(c) for c in self._frame.columns]
        self._orders: dict[str, tuple[Any, ...]] = {}
        for field, order in (canonical_orders or {}).items():
            self._require(field)
            self._orders[field] = tuple(order)

    @classmethod
    def _share(cls, frame: pd.DataFrame, orders: Mapping[str, tuple[Any, ...]]) -> "Dataset":
        """Build a Dataset that shares ``frame`` without copying it."""
        ds = cls.__new__(cls)
        ds._frame = frame
        ds._orders = dict(orders)
        return ds

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "Dataset":
        """Build a Dataset from a pandas DataFrame (copied)."""
        return cls(df)

    @classmethod
    def from_records(cls, rows: Iterable[Mapping[str, Any]]) -> "Dataset":
        """Build a Dataset from an iterable of mappings (one per record)."""
        rows = list(rows)
        if not all(isinstance(row, Mapping) for row in rows):
            raise TypeError("records must be mapping/dict-like rows")
        return cls(pd.DataFrame([dict(row) for row in rows]))

    @classmethod
    def from_polars(cls, df: "pl.DataFrame") -> "Dataset":
        """Build a Dataset from a Polars DataFrame.

        Raises:
            ImportError: If Polars is not installed in the environment.
        """
        if not HAS_POLARS:
            raise ImportError("Polars is not available. Install 'polars' to use from_polars().")
        assert pl is not None  # for type checkers
        return cls(pd.DataFrame(df.to_dicts(), columns=list(df.columns)))

    @classmethod
    def coerce(cls, data: Any) -> "Dataset":
        """Return ``data`` as a Dataset (Dataset, pandas, polars or list of dicts)."""
        if isinstance(data, Dataset):
            return data
        if isinstance(data, pd.DataFrame):
            return cls.from_frame(data)
        if HAS_POLARS and pl is not None and isinstance(data, pl.DataFrame):
            return cls.from_polars(data)
        if isinstance(data, (list, tuple)):
            return cls.from_records(data)
        raise TypeError(
            "Unsupported data type for Dataset. "
            "Expected Dataset, pandas.DataFrame, polars.DataFrame, or list[dict]."
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def fields(self) -> list[str]:
        return list(self._frame.columns)

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return f"Dataset(n={len(self)}, fields={self.fields!r}, canonical_orders={sorted(self._orders)!r})"

    def has_field(self, field: str) -> bool:
        return field in self._frame.columns

    def _require(self, field: str) -> None:
        if field not in self._frame.columns:
            raise FieldNotFoundError(field, self.fields)

    def records(self) -> Iterator[Record]:
        """Iterate records in insertion order as read-only mappings."""
        for row in self._frame.to_dict(orient="records"):
            yield MappingProxyType(row)

    def column(self, field: str) -> np.ndarray:
        """Return a copy of one field's values as a numpy array."""
        self._require(field)
        return self._frame[field].to_numpy(copy=True)

    def numeric_column(self, field: str) -> np.ndarray:
        """Return one field as float64, non-numeric entries coerced to NaN."""
        self._require(field)
        return pd.to_numeric(self._frame[field], errors="coerce").to_numpy(dtype=float, copy=True)

    def to_frame(self) -> pd.DataFrame:
        """Return a copy of the underlying DataFrame. Changes do not affect the Dataset."""
        return self._frame.copy()

    def canonical_order(self, field: str) -> Optional[tuple[Any, ...]]:
        """Return the explicit category order annotated for ``field``, if any."""
        self._require(field)
        return self._orders.get(field)

    def distinct_values(self, field: str) -> list[Any]:
        """Distinct non-missing values of ``field`` present in the data.

        Canonical order when annotated (values missing from the annotation
        follow in first-encountered order), otherwise first-encountered order.
        """
        self._require(field)
        series = self._frame[field]
        seen = [v for v in pd.unique(series[~series.isna()]).tolist()]
        order = self._orders.get(field)
        if order is None:
            return seen
        present = set(seen)
        ordered = [v for v in order if v in present]
        listed = set(ordered)
        ordered.extend(v for v in seen if v not in listed)
        return ordered

    def partition(self, field: str) -> list[tuple[Any, pd.DataFrame]]:
        """Split records by ``field`` into (value, rows) pairs in distinct-value order.

        Rows with a missing group value belong to no partition. The returned
        frames are copies.
        """
        self._require(field)
        keys = self.distinct_values(field)
        series = self._frame[field]
        out: list[tuple[Any, pd.DataFrame]] = []
        for key in keys:
            mask = (series == key) & ~series.isna()
            out.append((key, self._frame.loc[mask].copy()))
        return out


def with_canonical_order(dataset: Dataset, field: str, ordered_values: Sequence[Any]) -> Dataset:
    """Return a new Dataset carrying an explicit category order for ``field``.

    The new Dataset shares the records of ``dataset``; the source is not
    modified. Listed values absent from the data are dropped from the
    annotation; data values missing from the list follow the listed ones in
    first-encountered order.
    """
    dataset._require(field)
    series = dataset._frame[field]
    seen = pd.unique(series[~series.isna()]).tolist()
    present = set(seen)

    order: list[Any] = []
    for value in ordered_values:
        if _is_missing(value) or value in order:
            continue
        if value not in present:
            logger.debug(f"with_canonical_order: {value!r} is not a value of {field!r}, dropping")
            continue
        order.append(value)
    order.extend(v for v in seen if v not in order)

    orders = dict(dataset._orders)
    orders[field] = tuple(order)
    return Dataset._share(dataset._frame, orders)


def load_csv(path: Union[str, Path], **read_csv_kwargs: Any) -> Dataset:
    """Load a CSV file into a Dataset.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"CSV not found: {path}")
    df = pd.read_csv(path, **read_csv_kwargs)
    logger.info(f"Loaded {len(df)} records from {path}")
    return Dataset.from_frame(df)
