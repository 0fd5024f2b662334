"""LASSO estimator fitted by cyclic coordinate descent.

Covariates are standardized to zero mean and unit variance before
optimization; coefficients are mapped back to original units on output and
the intercept is recomputed on the unstandardized scale.
"""

from __future__ import annotations

import logging
import warnings
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from areareg.core import linalg as la
from areareg.errors import ConvergenceError, ConvergenceWarning, NumericalError

from .base import BaseEstimator, EstimationResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from areareg.utils.design import DesignMatrix

__all__ = ["DEFAULT_LAMBDA_FLOOR_RATIO", "Lasso", "fit_lasso"]

LOGGER = logging.getLogger(__name__)

# Fallback penalty (relative to lambda_max) used when lambda == 0 meets a
# rank-deficient design.
DEFAULT_LAMBDA_FLOOR_RATIO: float = 1e-4


class Lasso(BaseEstimator):
    """L1-penalized least squares on a :class:`~areareg.utils.design.DesignMatrix`.

    Minimizes ``(1/2n) ||y - b0 - Z b||^2 + lam ||b||_1`` over the
    standardized covariates ``Z``. At ``lam = 0`` the fit reduces to ordinary
    least squares; at ``lam >= lambda_max`` every coefficient is zero.

    Parameters
    ----------
    design : DesignMatrix
        Outcome and covariates. Not modified.

    Attributes
    ----------
    lambda_max : float
        Smallest penalty that zeroes every coefficient.

    Examples
    --------
    >>> model = Lasso(design)
    >>> res = model.fit(0.01)
    >>> res.params

    """

    def __init__(self, design: DesignMatrix) -> None:
        super().__init__()
        self.design = design
        X = np.asarray(design.X, dtype=np.float64)
        y = np.asarray(design.y, dtype=np.float64)
        if design.n_obs < 2:
            raise NumericalError(
                f"at least 2 observations are required to fit; got {design.n_obs}.",
            )
        la._assert_all_finite(X, y)  # noqa: SLF001
        self._Z, self._center, self._scale = la.standardize(X)
        self._ybar = float(y.mean())
        self._G, self._c = la.gram(self._Z, y - self._ybar)
        self._active = self._scale > 0.0
        self.lambda_max = la.lambda_max(self._Z, y - self._ybar)
        self._full_rank: bool | None = None

    @property
    def var_names(self) -> tuple[str, ...]:
        return self.design.var_names

    def _is_full_rank(self) -> bool:
        if self._full_rank is None:
            Za = self._Z[:, self._active]
            k = int(Za.shape[1])
            self._full_rank = k == 0 or (
                k <= self.design.n_obs and la.numerical_rank(Za) == k
            )
        return self._full_rank

    # ------------------------------------------------------------------
    def fit(  # noqa: PLR0913
        self,
        penalty: float,
        *,
        tol: float = 1e-7,
        max_iter: int = 10_000,
        beta0: NDArray[np.float64] | None = None,
        strict: bool = False,
        lambda_floor_ratio: float = DEFAULT_LAMBDA_FLOOR_RATIO,
    ) -> EstimationResult:
        """Fit at a single penalty value.

        Parameters
        ----------
        penalty : float
            Non-negative penalty ``lam``.
        tol : float
            Convergence tolerance on the largest standardized coefficient
            change over one full cycle.
        max_iter : int
            Cycle cap.
        beta0 : array, optional
            Warm start on the standardized scale (``extra['beta_std']`` of a
            previous fit).
        strict : bool
            Raise ``ConvergenceError`` / ``NumericalError`` instead of the
            warning-and-fallback behaviour.
        lambda_floor_ratio : float
            Penalty floor, relative to ``lambda_max``, applied when
            ``penalty == 0`` on a rank-deficient design.

        Returns
        -------
        EstimationResult

        """
        lam = float(penalty)
        if not np.isfinite(lam) or lam < 0.0:
            raise ValueError(f"penalty must be a finite non-negative number; got {penalty!r}")

        floor_applied = False
        if lam == 0.0 and not self._is_full_rank():
            if strict:
                raise NumericalError(
                    "design is rank-deficient at penalty 0; OLS is not identified.",
                )
            lam = float(lambda_floor_ratio) * self.lambda_max
            floor_applied = True
            warnings.warn(
                f"Rank-deficient design at penalty 0 in scope '{self.design.scope}'; "
                f"using penalty floor {lam:.3g}.",
                RuntimeWarning,
                stacklevel=2,
            )

        state = la.coordinate_descent(
            self._G,
            self._c,
            lam,
            beta0=beta0,
            active=self._active,
            tol=tol,
            max_iter=max_iter,
        )
        if not state.converged:
            msg = (
                f"coordinate descent did not converge in {state.n_iter} cycles "
                f"(max change {state.max_delta:.3g} > tol {tol:.3g}, penalty {lam:.3g})"
            )
            if strict:
                raise ConvergenceError(msg)
            warnings.warn(msg, ConvergenceWarning, stacklevel=2)
            LOGGER.debug("scope=%s: %s", self.design.scope, msg)

        beta = np.zeros_like(state.beta)
        beta[self._active] = state.beta[self._active] / self._scale[self._active]
        intercept = self._ybar - float(self._center @ beta)
        X = np.asarray(self.design.X, dtype=np.float64)
        fitted = intercept + X @ beta
        resid = np.asarray(self.design.y, dtype=np.float64) - fitted

        res = EstimationResult(
            params=pd.Series(beta, index=list(self.var_names), dtype=np.float64),
            intercept=float(intercept),
            penalty=lam,
            residuals=resid,
            fitted=fitted,
            n_obs=self.design.n_obs,
            converged=bool(state.converged),
            n_iter=int(state.n_iter),
            model_info={
                "Estimator": "LASSO",
                "scope": self.design.scope,
                "penalty_requested": float(penalty),
                "lambda_floor_applied": floor_applied,
                "lambda_max": self.lambda_max,
            },
            extra={
                "beta_std": state.beta.copy(),
                "max_delta": state.max_delta,
                "constant_columns": [
                    v for v, a in zip(self.var_names, self._active) if not a
                ],
            },
        )
        self._results = res
        return res

    def path(
        self,
        penalties: Sequence[float],
        *,
        tol: float = 1e-7,
        max_iter: int = 10_000,
        warm_start: bool = True,
    ) -> list[EstimationResult]:
        """Fit a sequence of penalties, warm-starting each from the previous fit."""
        out: list[EstimationResult] = []
        beta0 = None
        for lam in penalties:
            res = self.fit(lam, tol=tol, max_iter=max_iter, beta0=beta0)
            out.append(res)
            if warm_start:
                beta0 = res.extra["beta_std"]
        return out


def fit_lasso(  # noqa: PLR0913
    design: DesignMatrix,
    penalty: float,
    *,
    tol: float = 1e-7,
    max_iter: int = 10_000,
    strict: bool = False,
    lambda_floor_ratio: float = DEFAULT_LAMBDA_FLOOR_RATIO,
) -> EstimationResult:
    """Convenience wrapper: ``Lasso(design).fit(penalty, ...)``."""
    return Lasso(design).fit(
        penalty,
        tol=tol,
        max_iter=max_iter,
        strict=strict,
        lambda_floor_ratio=lambda_floor_ratio,
    )
