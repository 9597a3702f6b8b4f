"""
Dataset loading: typed tables, categorical coercion, grouped summaries.

Public API:
    load()                — parse whitespace/comma-delimited text into a Table
    coerce_categorical()  — recode a column to a declared level order
    group_summary()       — mean / sd / count of a column within groups
    Table                 — immutable typed table
"""

from pylongreg.data.table import Table
from pylongreg.data.loaders import load, coerce_categorical
from pylongreg.data.summary import group_summary

__all__ = [
    "Table",
    "load",
    "coerce_categorical",
    "group_summary",
]
