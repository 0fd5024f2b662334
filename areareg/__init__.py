"""areareg: penalized area-level regression with bootstrap uncertainty.

This package fits LASSO models by coordinate descent, selects the penalty by
cross-validation with the one-standard-error rule, and reports pairs-bootstrap
percentile intervals for the whole territory and for each super-region.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "AggregatedResults",
    "BaseEstimator",
    "BootConfig",
    "EstimationResult",
    "Lasso",
    "PipelineConfig",
    "RegionMapping",
    "RegionPartitioner",
    "TableSchema",
    "aggregate",
    "build_design_matrix",
    "cross_validate",
    "modelsummary",
    "pairs_bootstrap",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseEstimator": ("areareg.estimators.base", "BaseEstimator"),
    "BootConfig": ("areareg.estimators.base", "BootConfig"),
    "EstimationResult": ("areareg.estimators.base", "EstimationResult"),
    "Lasso": ("areareg.estimators.lasso", "Lasso"),
    "cross_validate": ("areareg.estimators.cv", "cross_validate"),
    "pairs_bootstrap": ("areareg.core.bootstrap", "pairs_bootstrap"),
    "build_design_matrix": ("areareg.utils.design", "build_design_matrix"),
    "PipelineConfig": ("areareg.config", "PipelineConfig"),
    "TableSchema": ("areareg.config", "TableSchema"),
    "RegionMapping": ("areareg.spatial.partition", "RegionMapping"),
    "RegionPartitioner": ("areareg.spatial.partition", "RegionPartitioner"),
    "AggregatedResults": ("areareg.output.summary", "AggregatedResults"),
    "aggregate": ("areareg.output.summary", "aggregate"),
    "modelsummary": ("areareg.output.summary", "modelsummary"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public classes and functions on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'areareg' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
