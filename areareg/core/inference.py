"""Percentile intervals from bootstrap draws.

This module turns a :class:`~areareg.core.bootstrap.BootstrapResult` into
per-variable coefficient intervals and per-observation prediction intervals,
and classifies coefficient signs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from areareg.core.bootstrap import BootstrapResult
    from areareg.estimators.base import EstimationResult

__all__ = [
    "classify_sign",
    "coefficient_estimates",
    "coefficient_intervals",
    "percentile_interval",
    "prediction_intervals",
]

Interval = tuple["NDArray[np.float64]", "NDArray[np.float64]"]


def percentile_interval(draws: NDArray[np.float64], alpha: float = 0.05, *, axis: int = 0) -> Interval:
    """Equal-tailed ``(alpha/2, 1 - alpha/2)`` percentiles along ``axis``.

    Returns NaN bounds when no draw is available.
    """
    arr = np.asarray(draws, dtype=np.float64)
    if not (0.0 < float(alpha) < 1.0):
        raise ValueError("alpha must lie in (0, 1)")
    if arr.shape[axis] == 0:
        shape = list(arr.shape)
        del shape[axis]
        nan = np.full(shape, np.nan, dtype=np.float64)
        return nan, nan.copy()
    lo = np.percentile(arr, 100.0 * (alpha / 2.0), axis=axis)
    hi = np.percentile(arr, 100.0 * (1.0 - alpha / 2.0), axis=axis)
    return np.asarray(lo, dtype=np.float64), np.asarray(hi, dtype=np.float64)


def coefficient_intervals(result: BootstrapResult, alpha: float = 0.05) -> pd.DataFrame:
    """Per-variable percentile bounds over successful replicates."""
    lo, hi = percentile_interval(result.ok_coef_draws, alpha, axis=0)
    return pd.DataFrame(
        {"lower": lo, "upper": hi}, index=pd.Index(list(result.var_names), name="variable"),
    )


def prediction_intervals(result: BootstrapResult, alpha: float = 0.05) -> pd.DataFrame:
    """Per-observation percentile bounds of the replicate predictions."""
    lo, hi = percentile_interval(result.ok_predictions, alpha, axis=1)
    return pd.DataFrame({"prediction_lower": lo, "prediction_upper": hi})


def classify_sign(observed: float, lower: float, upper: float) -> str:
    """Label an estimate ``positive``, ``negative``, ``zero`` or ``ambiguous``."""
    if not (np.isfinite(lower) and np.isfinite(upper)):
        return "ambiguous"
    if observed == 0.0 and lower == 0.0 and upper == 0.0:
        return "zero"
    if lower > 0.0:
        return "positive"
    if upper < 0.0:
        return "negative"
    return "ambiguous"


def coefficient_estimates(
    model: EstimationResult,
    result: BootstrapResult,
    *,
    alpha: float = 0.05,
    partition: str = "global",
) -> pd.DataFrame:
    """Coefficient estimates for one partition.

    One row per variable of the model, in model order, with the observed
    full-sample coefficient, percentile bounds, sign, uncertainty
    (``upper - lower``), the model's convergence flag, and any
    replicate-skip warning.
    """
    if tuple(model.var_names) != tuple(result.var_names):
        raise ValueError("model and bootstrap result cover different variables.")
    ci = coefficient_intervals(result, alpha)
    observed = model.params.to_numpy(dtype=np.float64)
    lower = ci["lower"].to_numpy()
    upper = ci["upper"].to_numpy()

    notes = []
    if not model.converged:
        notes.append("full-sample fit did not converge")
    if model.model_info.get("lambda_floor_applied"):
        notes.append("penalty floor applied")
    if result.warning:
        notes.append(result.warning)
    warning = "; ".join(notes) if notes else None

    return pd.DataFrame(
        {
            "partition": partition,
            "variable": list(model.var_names),
            "observed": observed,
            "lower": lower,
            "upper": upper,
            "sign": [classify_sign(o, lo, hi) for o, lo, hi in zip(observed, lower, upper)],
            "uncertainty": upper - lower,
            "converged": bool(model.converged),
            "warning": warning,
        },
    )
