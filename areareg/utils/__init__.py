# areareg/utils/__init__.py
"""Utility functions module."""
from .design import DesignMatrix, build_design_matrix, categorical_levels
from .helpers import collect_variable_index

__all__ = [
    "DesignMatrix",
    "build_design_matrix",
    "categorical_levels",
    "collect_variable_index",
]
