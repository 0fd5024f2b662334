# areareg/output/__init__.py
"""Aggregated tables and text/LaTeX summaries."""
from .summary import (
    AggregatedResults,
    aggregate,
    coefficient_table,
    fit_summary,
    modelsummary,
    residual_table,
    variable_order,
)

__all__ = [
    "AggregatedResults",
    "aggregate",
    "coefficient_table",
    "fit_summary",
    "modelsummary",
    "residual_table",
    "variable_order",
]
