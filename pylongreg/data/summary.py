"""
Grouped summaries of a Table.

Produces the per-group means, standard deviations and counts that
exploratory plots and tables consume (e.g. mean distance by Sex and
age). Pure and deterministic: keys follow level order for categorical
grouping columns and numeric order otherwise.
"""

from __future__ import annotations

from typing import Any, Sequence

from pylongreg.core.exceptions import ValidationError
from pylongreg.core.validation import check_choice
from pylongreg.data.table import Table, format_level

AGGREGATORS = ('mean', 'sd', 'count')


def group_summary(
    table: Table,
    group_columns: str | Sequence[str],
    value_column: str,
    aggregator: str = 'mean',
) -> dict[tuple[Any, ...], float]:
    """
    Aggregate a numeric column within groups.

    Args:
        table: Source table.
        group_columns: One or more grouping columns.
        value_column: Numeric column to aggregate.
        aggregator: 'mean', 'sd' (n - 1 denominator) or 'count'
            (non-missing values).

    Returns:
        Mapping from group-key tuple to aggregate. Categorical keys are
        level labels; numeric keys are formatted like R factor levels.
        Only groups that occur in the data are present. Missing values
        in value_column are skipped; a group with a single value has
        sd = NaN.

    Raises:
        ValidationError: If the aggregator is unknown or value_column is
            categorical.
        KeyError: If a column does not exist.
    """
    check_choice(aggregator, AGGREGATORS, 'aggregator')
    if isinstance(group_columns, str):
        group_columns = (group_columns,)
    group_columns = tuple(group_columns)
    if not group_columns:
        raise ValidationError("group_columns: at least one grouping column required")

    for name in (*group_columns, value_column):
        if name not in table:
            raise KeyError(
                f"Table has no column '{name}'. Available: {list(table.keys())}"
            )
    if table.is_categorical(value_column):
        raise ValidationError(
            f"value_column '{value_column}' is categorical; expected numeric"
        )

    frame = table.to_frame()
    grouped = frame.groupby(list(group_columns), observed=True, sort=True, dropna=True)
    values = grouped[value_column]
    if aggregator == 'mean':
        agg = values.mean()
    elif aggregator == 'sd':
        agg = values.std(ddof=1)
    else:
        agg = values.count()

    out: dict[tuple[Any, ...], float] = {}
    for key, value in agg.items():
        key = key if isinstance(key, tuple) else (key,)
        out[tuple(format_level(k) for k in key)] = float(value)
    return out
