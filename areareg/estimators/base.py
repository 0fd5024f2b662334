"""Base classes and bootstrap configuration.

This module defines the abstract base estimator, the bootstrap configuration
data structure, and the fitted-model container shared by the solver, the
cross-validator and the bootstrap.
"""

# areareg/estimators/base.py
from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

if TYPE_CHECKING:  # import-only typing
    from numpy.typing import NDArray

__all__ = [
    "DEFAULT_BOOTSTRAP_ITERATIONS",
    "BaseEstimator",
    "BootConfig",
    "EstimationResult",
    "default_n_jobs",
    "normalize_ci_level",
]

# Default bootstrap replications
DEFAULT_BOOTSTRAP_ITERATIONS: int = 1000


def default_n_jobs() -> int:
    """Worker count from ``AREAREG_N_JOBS`` (serial when unset or invalid)."""
    raw = str(os.environ.get("AREAREG_N_JOBS", "")).strip()
    try:
        n = int(raw)
    except ValueError:
        return 1
    return max(1, n)


def normalize_ci_level(level: float | None, *, default: float = 0.95) -> float:
    """Normalize confidence level to a probability (0, 1)."""
    if not (0.0 < float(default) < 1.0):
        raise ValueError("default confidence level must lie in (0, 1)")
    if level is None:
        coerced = float(default)
    else:
        coerced = float(level)
        # Accept percentage-style inputs (e.g., 90 for 90%)
        if coerced > 1.0:
            coerced /= 100.0
    if not (0.0 < coerced < 1.0):
        raise ValueError("ci_level must be in (0, 1); supply e.g. 0.95 or 95")
    return coerced


# ---------------------------------------------------------------------
# Results container
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class EstimationResult:
    """Fitted penalized linear model.

    ``params`` is aligned one-to-one with the design's covariate names; a
    dropped covariate has an exact zero, it is never omitted.
    """

    params: pd.Series
    intercept: float
    penalty: float
    residuals: NDArray[np.float64]
    fitted: NDArray[np.float64]
    n_obs: int
    converged: bool = True
    n_iter: int = 0
    model_info: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    """Dictionary for solver diagnostics (standardization, warm-start state)."""

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        nz = int(np.count_nonzero(self.params.to_numpy()))
        return (
            f"EstimationResult(k={len(self.params)}, nonzero={nz}, n={self.n_obs}, "
            f"penalty={self.penalty:.6g}, converged={self.converged})"
        )

    @property
    def var_names(self) -> list[str]:
        return [str(v) for v in self.params.index]

    @property
    def coef(self) -> NDArray[np.float64]:
        return self.params.to_numpy(dtype=np.float64)

    def predict(self, X: NDArray[np.float64]) -> NDArray[np.float64]:
        """Evaluate ``intercept + X @ params`` on a design with the same columns."""
        Xd = np.asarray(X, dtype=np.float64)
        if Xd.ndim != 2 or Xd.shape[1] != len(self.params):
            raise ValueError(
                f"X must have shape (n, {len(self.params)}); got {Xd.shape}.",
            )
        return self.intercept + Xd @ self.coef

    def r_squared(self, y: NDArray[np.float64] | None = None) -> float:
        """In-sample coefficient of determination."""
        resid = np.asarray(self.residuals, dtype=np.float64)
        yy = (
            np.asarray(y, dtype=np.float64)
            if y is not None
            else np.asarray(self.fitted, dtype=np.float64) + resid
        )
        sst = float(np.sum((yy - yy.mean()) ** 2))
        if sst <= 0.0:
            return float("nan")
        return 1.0 - float(np.sum(resid * resid)) / sst


# ---------------------------------------------------------------------
# Bootstrap configuration (pairs bootstrap at a fixed penalty)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BootConfig:
    """Pairs bootstrap configuration.

    Notes
    -----
    - Replications: default is 1000.
    - Resampling: observations are drawn uniformly with replacement, n draws
      per replicate; the penalty is held at the cross-validated value.
    - Failed replicates (non-convergence or numerical failure) are skipped
      and counted; when their share exceeds ``max_skip_rate`` the result is
      flagged as having a reduced effective replicate count.
    - Reproducibility: ``seed`` drives a ``numpy.random.SeedSequence`` from
      which one generator per replicate is spawned, so draws are identical
      regardless of ``n_jobs``.

    """

    n_boot: int = DEFAULT_BOOTSTRAP_ITERATIONS
    seed: int | None = None
    ci_level: float = 0.95
    max_skip_rate: float = 0.01
    n_jobs: int | None = None

    def __post_init__(self) -> None:
        if int(self.n_boot) < 2:
            raise ValueError(f"n_boot must be at least 2; got {self.n_boot}.")
        if not (0.0 <= float(self.max_skip_rate) <= 1.0):
            raise ValueError("max_skip_rate must lie in [0, 1].")
        if self.n_jobs is not None and int(self.n_jobs) < 1:
            raise ValueError("n_jobs must be a positive integer or None.")
        # Store the normalized level (accepts 95 as well as 0.95)
        object.__setattr__(self, "ci_level", normalize_ci_level(self.ci_level))

    @property
    def alpha(self) -> float:
        return 1.0 - float(self.ci_level)

    @property
    def workers(self) -> int:
        return int(self.n_jobs) if self.n_jobs is not None else default_n_jobs()


# ---------------------------------------------------------------------
# Base interface
# ---------------------------------------------------------------------
class BaseEstimator(ABC):
    """Abstract base class for all `areareg` estimators.

    Principles
    ----------
    1) All linear algebra goes through `core.linalg`.
    2) Resampling goes through `core.bootstrap`.
    3) Estimators never mutate the design they were given.
    """

    def __init__(self) -> None:
        self._results: EstimationResult | None = None

    @abstractmethod
    def fit(
        self, *args: Any, **kwargs: Any,
    ) -> EstimationResult:  # pragma: no cover - abstract
        """Fit the estimator and return EstimationResult (abstract)."""
        ...

    # -- convenience accessors ----------------------------------------
    @property
    def results(self) -> EstimationResult:
        if self._results is None:
            msg = "Model has not been fitted yet. Call .fit() first."
            raise RuntimeError(msg)
        return self._results

    @property
    def params(self) -> pd.Series:
        return self.results.params

    @property
    def n_obs(self) -> int | None:
        return self.results.n_obs
