"""
Design matrix construction.

build_design() evaluates a ModelSpec against a Table and produces the
numeric pieces every fitter consumes: the model matrix X, the response
y, the column names and the cluster codes. It knows it is building a
regression design; the Table does not.

Coding rules follow R's model.matrix with treatment contrasts:
    - '(Intercept)' column when spec.intercept is set
    - numeric variable → one column named after the variable
    - categorical variable → indicator columns named variable + level;
      the first level is the reference and is dropped whenever the term
      with that variable removed is already in the model (the empty
      term being the intercept)
    - interaction → column-wise products, named with ':', first
      variable varying fastest
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray

from pylongreg.core.compute.linalg import check_full_rank
from pylongreg.core.exceptions import UnknownLevelError, ValidationError
from pylongreg.data.table import Table, format_level
from pylongreg.design.spec import ModelSpec, Term

INTERCEPT = '(Intercept)'


@dataclass(frozen=True)
class DesignMatrix:
    """
    Numeric design evaluated from a Table and a ModelSpec.

    Attributes:
        X: Model matrix (n, p).
        y: Response vector (n,).
        column_names: Names of the p columns of X.
        term_columns: Term label → indices of its columns in X
            ('(Intercept)' included when present).
        factor_levels: Categorical variable → ordered levels, as coded.
        group_codes: Cluster code per row (n,), or None without a group.
        group_labels: Cluster labels in code order.
        warnings: Zero-variance warnings raised while building.
    """
    X: NDArray[np.floating[Any]]
    y: NDArray[np.floating[Any]]
    column_names: tuple[str, ...]
    term_columns: dict[str, tuple[int, ...]]
    factor_levels: dict[str, tuple[str, ...]]
    group_codes: NDArray[np.intp] | None = None
    group_labels: tuple[str, ...] = field(default_factory=tuple)
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def n(self) -> int:
        return self.X.shape[0]

    @property
    def p(self) -> int:
        return self.X.shape[1]

    def clusters(self) -> tuple[NDArray[np.intp], ...]:
        """Row indices of each cluster, in label order."""
        if self.group_codes is None:
            return tuple(np.array([i], dtype=np.intp) for i in range(self.n))
        return tuple(
            np.flatnonzero(self.group_codes == g).astype(np.intp)
            for g in range(len(self.group_labels))
        )


def build_design(table: Table, spec: ModelSpec) -> DesignMatrix:
    """
    Build the model matrix and response for a spec.

    Args:
        table: Source table.
        spec: Model specification (validated against the table here).

    Returns:
        DesignMatrix with full column rank.

    Raises:
        ValidationError: If a column is missing, a used column has
            missing values, or the response is categorical.
        RankDeficientError: If some columns of X are aliased.
    """
    spec.validate(table)
    _check_complete(table, spec)

    if table.is_categorical(spec.response):
        raise ValidationError(
            f"Response '{spec.response}' is categorical; expected a numeric column"
        )
    y = table[spec.response]

    X, names, term_columns, factor_levels = model_matrix(table, spec)
    check_full_rank(X, names)

    messages = _zero_variance_messages(table, spec)
    for msg in messages:
        warnings.warn(msg, RuntimeWarning, stacklevel=2)

    group_codes = None
    group_labels: tuple[str, ...] = ()
    if spec.group is not None:
        group_codes, group_labels = _group_codes(table, spec.group)

    return DesignMatrix(
        X=X,
        y=y,
        column_names=names,
        term_columns=term_columns,
        factor_levels=factor_levels,
        group_codes=group_codes,
        group_labels=group_labels,
        warnings=tuple(messages),
    )


def model_matrix(
    table: Table,
    spec: ModelSpec,
    factor_levels: Mapping[str, tuple[str, ...]] | None = None,
) -> tuple[NDArray, tuple[str, ...], dict[str, tuple[int, ...]], dict[str, tuple[str, ...]]]:
    """
    Evaluate the predictor side of a spec.

    Args:
        table: Source table (the response column is not read).
        spec: Model specification.
        factor_levels: Level sets to code against. Defaults to the
            table's own levels; pass a fitted model's levels to build
            rows for prediction.

    Returns:
        (X, column_names, term_columns, factor_levels)

    Raises:
        UnknownLevelError: If a categorical value is not among the
            given factor levels.
    """
    n = len(table)
    levels = dict(factor_levels or {})
    for v in spec.variables:
        if table.is_categorical(v) and v not in levels:
            levels[v] = table.levels(v)

    present = {t.key for t in spec.terms}
    if spec.intercept:
        present.add(frozenset())

    blocks: list[NDArray] = []
    names: list[str] = []
    term_columns: dict[str, tuple[int, ...]] = {}

    if spec.intercept:
        blocks.append(np.ones((n, 1)))
        names.append(INTERCEPT)
        term_columns[INTERCEPT] = (0,)

    for term in spec.terms:
        cols = [('', np.ones(n))]
        for v in term.variables:
            contrasts = (term.key - {v}) in present
            block = _variable_block(table, v, levels.get(v), contrasts)
            cols = [
                (f"{name}:{bname}" if name else bname, vec * bvec)
                for bname, bvec in block
                for name, vec in cols
            ]
        start = len(names)
        for name, vec in cols:
            blocks.append(vec.reshape(-1, 1))
            names.append(name)
        term_columns[term.label] = tuple(range(start, len(names)))

    X = np.hstack(blocks) if blocks else np.empty((n, 0))
    used = {v: levels[v] for v in spec.variables if v in levels}
    return X, tuple(names), term_columns, used


# =====================================================================
# Helpers
# =====================================================================

def _variable_block(
    table: Table,
    variable: str,
    levels: tuple[str, ...] | None,
    contrasts: bool,
) -> list[tuple[str, NDArray]]:
    """Columns contributed by one variable: [(name, vector), ...]."""
    if not table.is_categorical(variable):
        return [(variable, table[variable])]

    labels = table[variable]
    unknown = sorted({v for v in labels if v is not None and v not in levels})
    if unknown:
        raise UnknownLevelError(
            f"Column '{variable}' has levels not seen when the model was "
            f"built: {unknown}",
            column=variable,
            values=tuple(unknown),
        )
    used = levels[1:] if contrasts else levels
    return [
        (f"{variable}{level}", (labels == level).astype(np.float64))
        for level in used
    ]


def _check_complete(table: Table, spec: ModelSpec) -> None:
    """Fail if any used column has a missing value."""
    used = [spec.response, *spec.variables]
    if spec.group is not None:
        used.append(spec.group)
    counts = {c: int(table.is_missing(c).sum()) for c in used}
    bad = {c: k for c, k in counts.items() if k > 0}
    if bad:
        raise ValidationError(
            f"Missing values in model columns: {bad}. "
            f"Drop or impute incomplete rows before fitting"
        )


def _group_codes(table: Table, column: str) -> tuple[NDArray[np.intp], tuple[str, ...]]:
    if table.is_categorical(column):
        levels = table.levels(column)
        codes = table.codes(column)
        observed = np.unique(codes)
        remap = np.full(len(levels), -1, dtype=np.intp)
        remap[observed] = np.arange(len(observed))
        return remap[codes], tuple(levels[i] for i in observed)
    values = table[column]
    uniques, codes = np.unique(values, return_inverse=True)
    return codes.astype(np.intp), tuple(format_level(u) for u in uniques)


def _zero_variance_messages(table: Table, spec: ModelSpec) -> list[str]:
    """
    Describe zero-variance cells that leave the design estimable.

    Two situations are reported: a categorical level (or combination of
    levels within an interaction) observed exactly once, and a numeric
    variable constant within a cell of the categorical variables it
    interacts with.
    """
    messages: list[str] = []
    seen: set[tuple] = set()

    for term in spec.terms:
        factors = [v for v in term.variables if table.is_categorical(v)]
        numerics = [v for v in term.variables if not table.is_categorical(v)]
        if not factors:
            continue
        cells = _cells(table, factors)

        key = ('cell', tuple(factors))
        if key not in seen:
            seen.add(key)
            for cell, idx in cells.items():
                if len(idx) == 1:
                    messages.append(
                        f"Only one observation for {_cell_label(factors, cell)}; "
                        f"its effect is estimated without replication"
                    )

        for v in numerics:
            values = table[v]
            for cell, idx in cells.items():
                if len(idx) > 1 and np.ptp(values[idx]) == 0.0:
                    messages.append(
                        f"'{v}' is constant within {_cell_label(factors, cell)}; "
                        f"the {term.label} slope there has zero variance"
                    )
    return messages


def _cells(table: Table, factors: list[str]) -> dict[tuple[str, ...], NDArray[np.intp]]:
    labels = [table[f] for f in factors]
    cells: dict[tuple[str, ...], list[int]] = {}
    for i in range(len(table)):
        cells.setdefault(tuple(col[i] for col in labels), []).append(i)
    return {k: np.asarray(v, dtype=np.intp) for k, v in sorted(cells.items())}


def _cell_label(factors: list[str], cell: tuple[str, ...]) -> str:
    return ', '.join(f"{f}={level}" for f, level in zip(factors, cell))
