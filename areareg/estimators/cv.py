"""K-fold cross-validation for penalty selection.

Sweeps a log-spaced penalty grid, scores held-out mean squared error per fold
and selects the penalty by the one-standard-error rule: the largest penalty
whose mean CV error is within one standard error of the minimum.
"""

from __future__ import annotations

import concurrent.futures as cf
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from areareg.core import linalg as la
from areareg.errors import NumericalError

from .base import default_n_jobs
from .lasso import Lasso

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from areareg.utils.design import DesignMatrix

__all__ = ["CVResult", "cross_validate", "kfold_indices", "penalty_grid"]

LOGGER = logging.getLogger(__name__)

DEFAULT_N_FOLDS: int = 10
DEFAULT_N_LAMBDAS: int = 100
DEFAULT_LAMBDA_MIN_RATIO: float = 1e-4


def penalty_grid(
    design: DesignMatrix,
    *,
    n_lambdas: int = DEFAULT_N_LAMBDAS,
    lambda_min_ratio: float = DEFAULT_LAMBDA_MIN_RATIO,
) -> NDArray[np.float64]:
    """Log-spaced, strictly decreasing penalty grid.

    The first value is ``lambda_max`` (all coefficients zero), the last is
    ``lambda_max * lambda_min_ratio``.
    """
    if int(n_lambdas) < 2:
        raise ValueError("n_lambdas must be at least 2.")
    if not (0.0 < float(lambda_min_ratio) < 1.0):
        raise ValueError("lambda_min_ratio must lie in (0, 1).")
    Z, _, _ = la.standardize(np.asarray(design.X, dtype=np.float64))
    y = np.asarray(design.y, dtype=np.float64)
    lmax = la.lambda_max(Z, y - y.mean())
    if lmax <= 0.0:
        # Constant outcome or no usable covariate: any penalty zeroes everything.
        lmax = 1.0
    return np.geomspace(lmax, lmax * float(lambda_min_ratio), int(n_lambdas))


def kfold_indices(n_obs: int, n_folds: int, *, seed: int | None = None) -> list[NDArray[np.int64]]:
    """Split ``range(n_obs)`` into ``n_folds`` disjoint, nearly equal folds.

    Assignment is a seeded random permutation; fold sizes differ by at most
    one.
    """
    n = int(n_obs)
    k = int(n_folds)
    if k < 2:
        raise ValueError(f"n_folds must be at least 2; got {n_folds}.")
    if n < k:
        raise ValueError(f"cannot split {n} observations into {k} folds.")
    perm = np.random.default_rng(seed).permutation(n)
    return [np.sort(f).astype(np.int64) for f in np.array_split(perm, k)]


@dataclass(frozen=True)
class CVResult:
    """Outcome of penalty selection.

    ``curve`` has one row per grid penalty with columns
    ``lambda``, ``mean_mse`` and ``se_mse``; ``fold_mse`` is the raw
    (n_folds, n_lambdas) error matrix.
    """

    selected_lambda: float
    lambda_min: float
    curve: pd.DataFrame
    fold_mse: NDArray[np.float64]
    n_folds: int
    cv_r2: float

    @property
    def grid(self) -> NDArray[np.float64]:
        return self.curve["lambda"].to_numpy(dtype=np.float64)


def _fold_errors(  # noqa: PLR0913
    design: DesignMatrix,
    train: NDArray[np.int64],
    test: NDArray[np.int64],
    grid: NDArray[np.float64],
    tol: float,
    max_iter: int,
    warm_start: bool,
) -> NDArray[np.float64]:
    """Held-out MSE for every grid penalty, fitting on ``train``."""
    model = Lasso(design.take(train))
    X_test = np.asarray(design.X, dtype=np.float64)[test]
    y_test = np.asarray(design.y, dtype=np.float64)[test]
    out = np.empty(grid.shape[0], dtype=np.float64)
    for i, res in enumerate(model.path(grid, tol=tol, max_iter=max_iter, warm_start=warm_start)):
        err = y_test - res.predict(X_test)
        out[i] = float(np.mean(err * err))
    return out


def _one_standard_error(
    grid: NDArray[np.float64], mean_mse: NDArray[np.float64], se_mse: NDArray[np.float64],
) -> tuple[float, float]:
    """Return ``(lambda_1se, lambda_min)``."""
    i_min = int(np.argmin(mean_mse))
    threshold = mean_mse[i_min] + se_mse[i_min]
    ok = np.flatnonzero(mean_mse <= threshold)
    i_sel = int(ok[np.argmax(grid[ok])])
    return float(grid[i_sel]), float(grid[i_min])


def cross_validate(  # noqa: PLR0913
    design: DesignMatrix,
    grid: NDArray[np.float64] | None = None,
    *,
    n_folds: int = DEFAULT_N_FOLDS,
    seed: int | None = None,
    tol: float = 1e-7,
    max_iter: int = 10_000,
    n_jobs: int | None = None,
    warm_start: bool = True,
) -> CVResult:
    """Select a penalty by k-fold cross-validation and the one-SE rule.

    Parameters
    ----------
    design : DesignMatrix
        Full-sample design of one partition.
    grid : array, optional
        Penalty grid; defaults to :func:`penalty_grid`. Sorted descending
        internally.
    n_folds : int
        Number of folds (clipped to the number of observations).
    seed : int, optional
        Seed for fold assignment.
    tol, max_iter : float, int
        Solver settings.
    n_jobs : int, optional
        Worker threads for the fold fits. Defaults to ``AREAREG_N_JOBS``.
    warm_start : bool
        Warm-start consecutive penalties within a fold. When False every
        (fold, penalty) fit is independent.

    Returns
    -------
    CVResult

    """
    grid_arr = penalty_grid(design) if grid is None else np.asarray(grid, dtype=np.float64)
    if grid_arr.ndim != 1 or grid_arr.size == 0:
        raise ValueError("grid must be a non-empty 1-D sequence of penalties.")
    if np.any(grid_arr < 0.0) or not np.all(np.isfinite(grid_arr)):
        raise ValueError("grid penalties must be finite and non-negative.")
    grid_arr = np.sort(grid_arr)[::-1]

    n = design.n_obs
    k = min(int(n_folds), n)
    if k < 2:
        raise NumericalError(f"cross-validation needs at least 2 observations; got {n}.")
    folds = kfold_indices(n, k, seed=seed)
    all_idx = np.arange(n)
    tasks = [(np.setdiff1d(all_idx, f, assume_unique=True), f) for f in folds]

    workers = int(n_jobs) if n_jobs is not None else default_n_jobs()
    if workers > 1 and k > 1:
        with cf.ThreadPoolExecutor(max_workers=min(workers, k)) as ex:
            rows = list(
                ex.map(
                    lambda t: _fold_errors(design, t[0], t[1], grid_arr, tol, max_iter, warm_start),
                    tasks,
                ),
            )
    else:
        rows = [
            _fold_errors(design, tr, te, grid_arr, tol, max_iter, warm_start)
            for tr, te in tasks
        ]
    fold_mse = np.vstack(rows)

    mean_mse = fold_mse.mean(axis=0)
    se_mse = fold_mse.std(axis=0, ddof=1) / np.sqrt(float(k))
    lam_sel, lam_min = _one_standard_error(grid_arr, mean_mse, se_mse)

    y = np.asarray(design.y, dtype=np.float64)
    var_y = float(np.var(y))
    i_sel = int(np.flatnonzero(grid_arr == lam_sel)[0])
    cv_r2 = 1.0 - float(mean_mse[i_sel]) / var_y if var_y > 0.0 else float("nan")

    LOGGER.debug(
        "scope=%s: %d folds x %d penalties; lambda_1se=%.4g lambda_min=%.4g",
        design.scope, k, grid_arr.size, lam_sel, lam_min,
    )
    curve = pd.DataFrame({"lambda": grid_arr, "mean_mse": mean_mse, "se_mse": se_mse})
    return CVResult(
        selected_lambda=lam_sel,
        lambda_min=lam_min,
        curve=curve,
        fold_mse=fold_mse,
        n_folds=k,
        cv_r2=cv_r2,
    )
