"""
Delimited-text loading and categorical coercion.

load() turns whitespace- or comma-delimited text into a typed Table.
Parsing is delegated to pandas.read_csv; this module only decides the
delimiter, rejects ragged rows, and infers a type per column.

Column typing rules:
    - every non-missing value parses as a number  → numeric (float64)
    - no value parses as a number                 → categorical, sorted levels
    - a mix of both                               → FormatError

A header with one field fewer than the data rows (R's write.table
default) is read as row names into a leading 'rownames' column.
"""

from __future__ import annotations

import csv
import io
import re
from pathlib import Path
from typing import Iterable, Sequence, TextIO

import numpy as np
import pandas as pd

from pylongreg.core.exceptions import FormatError, UnknownLevelError, ValidationError
from pylongreg.core.validation import check_choice
from pylongreg.data.table import Table, format_level, numeric_to_categorical

DELIMITERS = ('auto', 'whitespace', 'comma')
DEFAULT_NA_VALUES = ('NA', '', '.')


def load(
    source: str | Path | TextIO,
    *,
    delimiter: str = 'auto',
    na_values: Iterable[str] = DEFAULT_NA_VALUES,
    categorical: Iterable[str] | None = None,
) -> Table:
    """
    Parse delimited text into a Table.

    Args:
        source: Path to a file, or an open text stream.
        delimiter: 'comma', 'whitespace', or 'auto' (comma if the first
            non-empty line contains one, whitespace otherwise).
        na_values: Tokens that mark a missing value.
        categorical: Columns to force to categorical even when numeric
            (e.g. a numerically coded rank).

    Returns:
        Table with one typed column per header field.

    Raises:
        FormatError: If a row's field count differs from the header, or
            a column mixes numeric and non-numeric values.
        KeyError: If `categorical` names a column that does not exist.
    """
    check_choice(delimiter, DELIMITERS, 'delimiter')
    text, origin = _read_text(source)
    if not text.strip():
        raise FormatError(f"{origin}: no data")

    if delimiter == 'auto':
        delimiter = _sniff_delimiter(text)
    sep = ',' if delimiter == 'comma' else r'\s+'
    has_rownames = _check_field_counts(text, delimiter, origin)

    try:
        raw = pd.read_csv(
            io.StringIO(text),
            sep=sep,
            dtype=str,
            na_filter=False,
            skip_blank_lines=True,
            skipinitialspace=True,
        )
    except pd.errors.ParserError as e:
        raise FormatError(f"{origin}: inconsistent field count: {e}") from e
    except pd.errors.EmptyDataError as e:
        raise FormatError(f"{origin}: no columns to parse") from e

    if has_rownames:
        raw.index = raw.index.astype(str)
        raw = raw.reset_index(names='rownames')

    na_tokens = frozenset(na_values)
    forced = set(categorical or ())
    unknown = forced - set(raw.columns)
    if unknown:
        raise KeyError(
            f"Cannot make unknown columns categorical: {sorted(unknown)}. "
            f"Available: {list(raw.columns)}"
        )

    frame = pd.DataFrame(index=raw.index)
    for name in raw.columns:
        frame[name] = _infer_column(
            name, raw[name].str.strip(), na_tokens, force=name in forced
        )

    table = Table.from_dataframe(frame, source='file')
    return Table(
        _frame=table.to_frame(),
        _metadata={
            'source': 'file',
            'origin': origin,
            'delimiter': delimiter,
            'columns': list(frame.columns),
        },
    )


def coerce_categorical(
    table: Table,
    column: str,
    level_order: Sequence[str],
) -> Table:
    """
    Return a new Table with `column` recoded to the given level order.

    The first level becomes the reference level in treatment contrasts.
    Numeric columns are labelled the way R labels factor levels, so a
    column coded 1-4 can be coerced with level_order=('1', '2', '3', '4').

    Raises:
        UnknownLevelError: If a non-missing value is outside level_order.
        ValidationError: If level_order contains duplicates.
    """
    levels = [str(level) for level in level_order]
    if len(set(levels)) != len(levels):
        raise ValidationError(f"level_order for '{column}' contains duplicates: {levels}")

    values = table[column]
    if table.is_categorical(column):
        labels = [v for v in values]
    else:
        labels = [None if np.isnan(v) else format_level(v) for v in values]

    offending = sorted({v for v in labels if v is not None and v not in levels})
    if offending:
        raise UnknownLevelError(
            f"Column '{column}' has values outside the declared levels "
            f"{levels}: {offending}",
            column=column,
            values=tuple(offending),
        )
    coded = pd.Categorical(labels, categories=levels)
    return table.with_column(column, pd.Series(coded))


# =====================================================================
# Helpers
# =====================================================================

def _read_text(source: str | Path | TextIO) -> tuple[str, str]:
    if isinstance(source, (str, Path)):
        path = Path(source)
        with path.open('r', encoding='utf-8') as handle:
            return handle.read(), str(path)
    if hasattr(source, 'read'):
        return source.read(), getattr(source, 'name', '<stream>')
    raise ValidationError(
        f"source: expected a path or text stream, got {type(source).__name__}"
    )


_WHITESPACE_FIELD = re.compile(r'"[^"]*"|\S+')


def _split_fields(text: str, delimiter: str) -> list[tuple[int, list[str]]]:
    """Non-blank records as (line number, fields)."""
    if delimiter == 'comma':
        reader = csv.reader(io.StringIO(text), skipinitialspace=True)
        return [(reader.line_num, row) for row in reader if row]
    return [
        (i + 1, _WHITESPACE_FIELD.findall(line))
        for i, line in enumerate(text.splitlines())
        if line.strip()
    ]


def _check_field_counts(text: str, delimiter: str, origin: str) -> bool:
    """Verify every data row has as many fields as the header.

    Returns:
        True when every data row has exactly one extra leading field
        (row names without a header entry).

    Raises:
        FormatError: On the first row whose field count is inconsistent.
    """
    records = _split_fields(text, delimiter)
    header_width = len(records[0][1])
    body = records[1:]
    has_rownames = bool(body) and all(len(f) == header_width + 1 for _, f in body)
    expected = header_width + 1 if has_rownames else header_width
    for line, fields in body:
        if len(fields) != expected:
            raise FormatError(
                f"{origin}: line {line} has {len(fields)} fields, "
                f"expected {expected}",
                line=line,
            )
    return has_rownames


def _sniff_delimiter(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return 'comma' if ',' in line else 'whitespace'
    return 'whitespace'


def _infer_column(
    name: str,
    raw: pd.Series,
    na_tokens: frozenset[str],
    *,
    force: bool,
) -> pd.Series:
    """Type one column of strings."""
    raw = raw.str.strip('"')
    missing = raw.isin(na_tokens)
    numeric = pd.to_numeric(raw.where(~missing), errors='coerce')
    parsed = numeric.notna() | missing

    if parsed.all():
        values = numeric.astype(np.float64)
        return numeric_to_categorical(name, values) if force else values

    if (numeric.notna() & ~missing).any():
        bad = raw[~parsed].unique()[:5].tolist()
        good = raw[numeric.notna()].unique()[:3].tolist()
        raise FormatError(
            f"Column '{name}' mixes numeric values (e.g. {good}) with "
            f"non-numeric values {bad}",
            column=name,
        )

    labels = raw.where(~missing, None)
    levels = sorted(set(labels.dropna()))
    return pd.Series(pd.Categorical(labels, categories=levels), name=name, index=raw.index)
