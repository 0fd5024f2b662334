"""Estimator exports with lazy loading.

The LASSO solver, penalty selection and the shared result containers. Uses
lazy imports so that ``areareg.core.bootstrap`` can depend on the solver.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "BaseEstimator",
    "BootConfig",
    "CVResult",
    "EstimationResult",
    "Lasso",
    "cross_validate",
    "fit_lasso",
    "kfold_indices",
    "penalty_grid",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseEstimator": ("areareg.estimators.base", "BaseEstimator"),
    "BootConfig": ("areareg.estimators.base", "BootConfig"),
    "EstimationResult": ("areareg.estimators.base", "EstimationResult"),
    "Lasso": ("areareg.estimators.lasso", "Lasso"),
    "fit_lasso": ("areareg.estimators.lasso", "fit_lasso"),
    "CVResult": ("areareg.estimators.cv", "CVResult"),
    "cross_validate": ("areareg.estimators.cv", "cross_validate"),
    "kfold_indices": ("areareg.estimators.cv", "kfold_indices"),
    "penalty_grid": ("areareg.estimators.cv", "penalty_grid"),
}


def __getattr__(name: str) -> Any:
    """Lazily import estimator classes and shared containers."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'areareg.estimators' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Expose lazily loaded attributes to ``dir()``."""
    return sorted(set(globals()) | set(__all__))
