"""Linear algebra routines for penalized regression.

This module provides column standardization, rank detection by pivoted QR,
the soft-threshold operator and the cyclic coordinate-descent kernel used by
:class:`areareg.estimators.lasso.Lasso`. Explicit matrix inversion is avoided.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

import numpy as np
import scipy.linalg as sla

from areareg.errors import NumericalError

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = [
    "CDState",
    "coordinate_descent",
    "gram",
    "lambda_max",
    "numerical_rank",
    "soft_threshold",
    "standardize",
]

# Columns whose population standard deviation falls below this are treated
# as constant and held at zero.
_SCALE_TOL = 1e-12
# Relative slack applied to the threshold so that |z| == lambda up to rounding
# clamps to zero (duplicate columns produce exact ties).
_THRESH_RTOL = 1e-10


class CDState(NamedTuple):
    """Final state of a coordinate-descent run."""

    beta: NDArray[np.float64]
    n_iter: int
    converged: bool
    max_delta: float


def _assert_all_finite(*arrays: NDArray[np.float64]) -> None:
    """Raise NumericalError if any input contains NaN or Inf."""
    for a in arrays:
        if a is None:
            continue
        if not np.all(np.isfinite(np.asarray(a))):
            raise NumericalError("Input contains NaN/Inf; clean rows before fitting.")


def standardize(
    X: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Center columns and scale them to unit population variance.

    Returns ``(Z, center, scale)``. Constant columns get ``scale == 0`` and an
    all-zero column in ``Z``.
    """
    Xd = np.asarray(X, dtype=np.float64)
    if Xd.ndim != 2:
        raise ValueError("X must be 2D.")
    center = Xd.mean(axis=0) if Xd.shape[0] else np.zeros(Xd.shape[1])
    Xc = Xd - center
    scale = np.sqrt(np.mean(Xc * Xc, axis=0)) if Xd.shape[0] else np.zeros(Xd.shape[1])
    keep = scale > _SCALE_TOL
    Z = np.zeros_like(Xc)
    Z[:, keep] = Xc[:, keep] / scale[keep]
    scale = np.where(keep, scale, 0.0)
    return Z, center.astype(np.float64), scale.astype(np.float64)


def gram(Z: NDArray[np.float64], r: NDArray[np.float64]) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Return ``(Z'Z/n, Z'r/n)`` for covariance-update coordinate descent."""
    n = Z.shape[0]
    G = (Z.T @ Z) / float(n)
    c = (Z.T @ r) / float(n)
    return G, c.reshape(-1)


def lambda_max(Z: NDArray[np.float64], yc: NDArray[np.float64]) -> float:
    """Smallest penalty at which every standardized coefficient is zero."""
    n = Z.shape[0]
    if n == 0 or Z.shape[1] == 0:
        return 0.0
    return float(np.max(np.abs(Z.T @ yc)) / float(n))


def _rank_from_diag(diagR: NDArray[np.float64]) -> int:
    """Determine numerical rank from R diagonal entries."""
    d = np.asarray(diagR, dtype=float).reshape(-1)
    if d.size == 0:
        return 0
    # R's lm.fit default: tol = 1e-7 * max(|diag(R)|)
    tol = 1e-7 * float(np.max(np.abs(d)))
    return int(np.sum(np.abs(d) > tol))


def numerical_rank(A: NDArray[np.float64]) -> int:
    """Numerical column rank via QR with column pivoting."""
    Ad = np.asarray(A, dtype=np.float64)
    if Ad.size == 0:
        return 0
    _, R, _ = sla.qr(Ad, mode="economic", pivoting=True)
    return _rank_from_diag(np.diag(R))


def soft_threshold(z: float, lam: float) -> float:
    """Shrink ``z`` toward zero by ``lam``; zero when ``|z| <= lam``."""
    az = abs(z)
    if az <= lam * (1.0 + _THRESH_RTOL):
        return 0.0
    return float(np.sign(z) * (az - lam))


def coordinate_descent(  # noqa: PLR0913
    G: NDArray[np.float64],
    c: NDArray[np.float64],
    lam: float,
    *,
    beta0: NDArray[np.float64] | None = None,
    active: NDArray[np.bool_] | None = None,
    tol: float = 1e-7,
    max_iter: int = 10_000,
) -> CDState:
    """Cyclic coordinate descent for the standardized LASSO problem.

    Minimizes ``(1/2) b'Gb - c'b + lam * ||b||_1`` (the standardized least
    squares objective up to a constant) one coordinate at a time. For each
    coordinate the partial-residual correlation
    ``z_j = c_j - sum_{k != j} G_jk b_k`` gives the single-coordinate least
    squares update ``z_j / G_jj``, which is soft-thresholded by ``lam``.

    Parameters
    ----------
    G : (p, p) array
        Gram matrix ``Z'Z/n`` of the standardized design.
    c : (p,) array
        ``Z'(y - ybar)/n``.
    lam : float
        Non-negative penalty.
    beta0 : (p,) array, optional
        Warm start.
    active : (p,) bool array, optional
        Coordinates allowed to move; the rest stay at zero (constant columns).
    tol : float
        Stop once the largest coefficient change over a full cycle is below
        ``tol``.
    max_iter : int
        Maximum number of full cycles.

    Returns
    -------
    CDState
        ``converged`` is False when ``max_iter`` cycles ran out; ``beta`` is
        then the last iterate.

    """
    if lam < 0.0 or not np.isfinite(lam):
        raise ValueError(f"penalty must be a finite non-negative number; got {lam!r}")
    p = int(c.shape[0])
    beta = np.zeros(p, dtype=np.float64) if beta0 is None else np.array(beta0, dtype=np.float64)
    if active is None:
        active = np.diag(G) > 0.0
    idx = np.flatnonzero(active)
    beta[~active] = 0.0
    if idx.size == 0:
        return CDState(beta, 0, True, 0.0)

    diag = np.diag(G)
    max_delta = np.inf
    for it in range(1, int(max_iter) + 1):
        max_delta = 0.0
        for j in idx:
            old = beta[j]
            z = c[j] - float(G[j] @ beta) + diag[j] * old
            new = soft_threshold(z, lam) / diag[j]
            if new != old:
                beta[j] = new
                max_delta = max(max_delta, abs(new - old))
        if not np.isfinite(max_delta) or not np.all(np.isfinite(beta)):
            raise NumericalError("coordinate descent produced a non-finite iterate")
        if max_delta < tol:
            return CDState(beta, it, True, float(max_delta))
    return CDState(beta, int(max_iter), False, float(max_delta))
