"""
Table: the typed, read-only in-memory dataset.

A Table is the "I have data" abstraction. It knows which columns are
numeric and which are categorical (with an ordered level set) but
nothing about models. The design builder reads from it; nothing ever
writes to it.

Usage:
    from pylongreg.data import Table

    tbl = Table.from_arrays(distance=d, age=a, Sex=sex, Subject=subj)
    tbl = Table.from_dataframe(df)
    tbl = Table.from_rows([{'admit': 1, 'gre': 380.0, 'rank': '3'}, ...])

    tbl.keys()            # ('distance', 'age', 'Sex', 'Subject')
    tbl['age']            # float64 array
    tbl['Sex']            # object array of level labels
    tbl.levels('Sex')     # ('Female', 'Male')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from pylongreg.core.exceptions import FormatError, ValidationError


def format_level(value: Any) -> str:
    """Label a value the way R prints factor levels (1.0 -> '1')."""
    if isinstance(value, (bool, np.bool_)):
        return str(int(value))
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        if float(value).is_integer():
            return str(int(value))
        return repr(float(value))
    return str(value)


@dataclass(frozen=True, eq=False)
class Table:
    """
    Immutable typed table. Construct via factory classmethods.

    Numeric columns are stored as float64 (NaN marks a missing value);
    categorical columns as pandas Categorical with a fixed level order.
    Every accessor returns a copy.
    """
    _frame: pd.DataFrame
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column access ===

    def keys(self) -> tuple[str, ...]:
        """Column names in table order."""
        return tuple(self._frame.columns)

    def __getitem__(self, key: str) -> NDArray:
        """
        Column values as a NumPy array.

        Numeric columns come back as float64; categorical columns as an
        object array of level labels (None for missing).

        Raises:
            KeyError: If the column does not exist, listing available columns
        """
        if key not in self._frame.columns:
            raise KeyError(
                f"Table has no column '{key}'. Available: {list(self.keys())}"
            )
        col = self._frame[key]
        if self.is_categorical(key):
            values = col.astype(object).to_numpy(copy=True)
            values[pd.isna(values)] = None
            return values
        return col.to_numpy(dtype=np.float64, copy=True)

    def __contains__(self, key: str) -> bool:
        return key in self._frame.columns

    def __len__(self) -> int:
        return len(self._frame)

    def is_categorical(self, name: str) -> bool:
        self._require(name)
        return isinstance(self._frame[name].dtype, pd.CategoricalDtype)

    def levels(self, name: str) -> tuple[str, ...]:
        """
        Ordered levels of a categorical column.

        Raises:
            ValidationError: If the column is numeric
        """
        self._require(name)
        if not self.is_categorical(name):
            raise ValidationError(f"Column '{name}' is numeric, not categorical")
        return tuple(str(c) for c in self._frame[name].cat.categories)

    def codes(self, name: str) -> NDArray[np.intp]:
        """Integer level codes of a categorical column (-1 for missing)."""
        self._require(name)
        if not self.is_categorical(name):
            raise ValidationError(f"Column '{name}' is numeric, not categorical")
        return self._frame[name].cat.codes.to_numpy(dtype=np.intp, copy=True)

    def is_missing(self, name: str) -> NDArray[np.bool_]:
        self._require(name)
        return self._frame[name].isna().to_numpy(copy=True)

    def rows(self) -> list[dict[str, Any]]:
        """Rows as plain dicts (categorical values as labels)."""
        records = []
        for rec in self._frame.astype(object).to_dict(orient='records'):
            records.append({k: (None if _is_missing(v) else v) for k, v in rec.items()})
        return records

    def to_frame(self) -> pd.DataFrame:
        """A copy of the underlying DataFrame."""
        return self._frame.copy()

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of rows."""
        return len(self._frame)

    @property
    def metadata(self) -> dict[str, Any]:
        """Source metadata (origin, path, delimiter)."""
        return self._metadata.copy()

    def with_column(self, name: str, values: pd.Series | Sequence[Any]) -> Table:
        """
        Return a new Table with one column replaced or appended.

        The values are typed like a column of from_dataframe(): numbers
        stay numeric, a pandas Categorical keeps its level order, and
        anything else becomes categorical with sorted levels.

        Raises:
            FormatError: If the number of values differs from the row count
        """
        if len(values) != len(self._frame):
            raise FormatError(
                f"Column '{name}' has {len(values)} values for a table of "
                f"{len(self._frame)} rows"
            )
        col = values.reset_index(drop=True) if isinstance(values, pd.Series) else pd.Series(
            values, index=self._frame.index
        )
        frame = self._frame.copy()
        frame[name] = _typed_column(name, col, force=False)
        metadata = self._metadata.copy()
        metadata['columns'] = list(frame.columns)
        return Table(_frame=frame, _metadata=metadata)

    def _require(self, name: str) -> None:
        if name not in self._frame.columns:
            raise KeyError(
                f"Table has no column '{name}'. Available: {list(self.keys())}"
            )

    def __repr__(self) -> str:
        kinds = ', '.join(
            f"{c}:{'factor' if self.is_categorical(c) else 'num'}"
            for c in self.keys()
        )
        return f"Table(n={self.n_observations}, [{kinds}])"

    # === Factory Methods ===

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        *,
        categorical: Iterable[str] | None = None,
        source: str = 'dataframe',
    ) -> Table:
        """
        Construct from a pandas DataFrame.

        Numeric and boolean columns become float64; pandas Categorical
        columns keep their category order; any other column becomes
        categorical with sorted levels. Columns named in `categorical`
        are forced to categorical.
        """
        forced = set(categorical or ())
        missing = forced - set(df.columns)
        if missing:
            raise KeyError(
                f"Cannot make unknown columns categorical: {sorted(missing)}. "
                f"Available: {list(df.columns)}"
            )
        frame = pd.DataFrame(index=pd.RangeIndex(len(df)))
        for name in df.columns:
            col = df[name].reset_index(drop=True)
            frame[str(name)] = _typed_column(str(name), col, force=name in forced)
        return cls(
            _frame=frame,
            _metadata={'source': source, 'columns': list(frame.columns)},
        )

    @classmethod
    def from_arrays(cls, **columns: Sequence[Any]) -> Table:
        """Construct from named 1-D arrays of equal length."""
        lengths = {name: len(values) for name, values in columns.items()}
        if len(set(lengths.values())) > 1:
            raise FormatError(f"Columns have inconsistent lengths: {lengths}")
        df = pd.DataFrame(dict(columns))
        return cls.from_dataframe(df, source='arrays')

    @classmethod
    def from_rows(
        cls,
        rows: Sequence[Mapping[str, Any]],
        *,
        categorical: Iterable[str] | None = None,
    ) -> Table:
        """
        Construct from a sequence of row mappings.

        Raises:
            FormatError: If rows do not all have the same column set
        """
        if not rows:
            raise FormatError("Cannot build a Table from zero rows")
        columns = list(rows[0].keys())
        expected = set(columns)
        for i, row in enumerate(rows):
            if set(row.keys()) != expected:
                raise FormatError(
                    f"Row {i} has columns {sorted(row.keys())}, "
                    f"expected {sorted(expected)}",
                    line=i + 1,
                )
        df = pd.DataFrame([[row[c] for c in columns] for row in rows], columns=columns)
        return cls.from_dataframe(df, categorical=categorical, source='rows')


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and np.isnan(value)) or value is pd.NA


def _typed_column(name: str, col: pd.Series, *, force: bool) -> pd.Series:
    """Convert one column to float64 or Categorical."""
    if isinstance(col.dtype, pd.CategoricalDtype):
        cats = [format_level(c) for c in col.cat.categories]
        labels = col.astype(object).map(lambda v: None if _is_missing(v) else format_level(v))
        return pd.Series(pd.Categorical(labels, categories=cats), name=name)

    if is_bool_dtype(col.dtype) or is_numeric_dtype(col.dtype):
        numeric = col.astype(np.float64)
        if force:
            return numeric_to_categorical(name, numeric)
        return numeric

    # object / string column: all-numeric strings become numbers
    present = ~col.map(_is_missing).astype(bool)
    numeric = pd.to_numeric(col.where(present), errors='coerce').astype(np.float64)
    if present.any() and numeric[present].notna().all():
        return numeric_to_categorical(name, numeric) if force else numeric
    labels = col.map(lambda v: None if _is_missing(v) else str(v))
    levels = sorted(set(labels.dropna()))
    return pd.Series(pd.Categorical(labels, categories=levels), name=name)


def numeric_to_categorical(name: str, values: pd.Series) -> pd.Series:
    """Categorical column from numeric codes, levels sorted numerically."""
    uniques = np.unique(values.dropna().to_numpy(dtype=np.float64))
    levels = [format_level(u) for u in uniques]
    labels = values.map(lambda v: None if _is_missing(v) else format_level(v))
    return pd.Series(pd.Categorical(labels, categories=levels), name=name)
