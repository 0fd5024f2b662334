"""Pairs bootstrap for penalized regression.

This module resamples observations with replacement, refits the LASSO at a
fixed penalty per replicate, and collects coefficient and prediction draws.
The penalty is not re-selected per replicate.
"""

from __future__ import annotations

import concurrent.futures as cf
import logging
import threading
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from areareg.errors import BootstrapCancelled, ConvergenceError, NumericalError
from areareg.estimators.base import BootConfig
from areareg.estimators.lasso import Lasso

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from areareg.utils.design import DesignMatrix

__all__ = [
    "BootstrapResult",
    "draw_indices",
    "oob_r_squared",
    "pairs_bootstrap",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BootstrapResult:
    """Replicate draws for one partition.

    Rows of ``coef_draws`` / ``intercept_draws`` and columns of
    ``predictions`` belonging to failed replicates are NaN; ``failed`` marks
    them. Every successful row spans the full variable list (dropped
    variables are zero).
    """

    var_names: tuple[str, ...]
    penalty: float
    coef_draws: NDArray[np.float64]  # (B, p)
    intercept_draws: NDArray[np.float64]  # (B,)
    predictions: NDArray[np.float64]  # (n, B), on the original observations
    indices: NDArray[np.int64]  # (B, n)
    failed: NDArray[np.bool_]  # (B,)
    max_skip_rate: float
    seed: int | None = None

    @property
    def n_boot(self) -> int:
        return int(self.failed.shape[0])

    @property
    def n_failed(self) -> int:
        return int(np.sum(self.failed))

    @property
    def n_effective(self) -> int:
        return self.n_boot - self.n_failed

    @property
    def skip_rate(self) -> float:
        return self.n_failed / float(self.n_boot) if self.n_boot else 0.0

    @property
    def reduced_replicates(self) -> bool:
        """True when the share of skipped replicates exceeds ``max_skip_rate``."""
        return self.skip_rate > float(self.max_skip_rate)

    @property
    def warning(self) -> str | None:
        if not self.reduced_replicates:
            return None
        return (
            f"{self.n_failed} of {self.n_boot} bootstrap replicates skipped "
            f"({self.skip_rate:.1%} > {self.max_skip_rate:.1%}); "
            f"intervals use {self.n_effective} replicates"
        )

    @property
    def ok_coef_draws(self) -> NDArray[np.float64]:
        return self.coef_draws[~self.failed]

    @property
    def ok_predictions(self) -> NDArray[np.float64]:
        return self.predictions[:, ~self.failed]

    def out_of_bag(self) -> NDArray[np.bool_]:
        """(n, B) mask: observation i was not drawn in replicate b."""
        n = self.predictions.shape[0]
        oob = np.ones((n, self.n_boot), dtype=bool)
        for b in range(self.n_boot):
            oob[self.indices[b], b] = False
        return oob


def draw_indices(n_obs: int, rng: np.random.Generator) -> NDArray[np.int64]:
    """Draw ``n_obs`` indices uniformly with replacement."""
    return rng.integers(0, int(n_obs), size=int(n_obs), dtype=np.int64)


def _one_replicate(  # noqa: PLR0913
    design: DesignMatrix,
    penalty: float,
    idx: NDArray[np.int64],
    tol: float,
    max_iter: int,
    cancel: threading.Event | None,
) -> tuple[NDArray[np.float64], float, NDArray[np.float64]] | None:
    """Fit one replicate; ``None`` marks a skipped (failed) replicate."""
    if cancel is not None and cancel.is_set():
        raise BootstrapCancelled("bootstrap cancelled")
    try:
        # strict fits raise instead of warning
        res = Lasso(design.take(idx)).fit(penalty, tol=tol, max_iter=max_iter, strict=True)
    except (ConvergenceError, NumericalError) as exc:
        LOGGER.debug("scope=%s: replicate skipped: %s", design.scope, exc)
        return None
    preds = res.predict(np.asarray(design.X, dtype=np.float64))
    return res.coef, res.intercept, preds


def pairs_bootstrap(  # noqa: PLR0913
    design: DesignMatrix,
    penalty: float,
    boot: BootConfig | None = None,
    *,
    tol: float = 1e-7,
    max_iter: int = 10_000,
    cancel_event: threading.Event | None = None,
) -> BootstrapResult:
    """Resample observations, refit at ``penalty``, and collect draws.

    Parameters
    ----------
    design : DesignMatrix
        Full-sample design of one partition (n observations).
    penalty : float
        Fixed penalty, normally the cross-validated choice.
    boot : BootConfig, optional
        Replicate count, seed, skip threshold and worker count.
    tol, max_iter : float, int
        Solver settings.
    cancel_event : threading.Event, optional
        Checked before each replicate. When set, everything drawn so far is
        discarded and ``BootstrapCancelled`` is raised.

    Returns
    -------
    BootstrapResult

    """
    cfg = boot if boot is not None else BootConfig()
    B = int(cfg.n_boot)
    n = design.n_obs
    p = design.n_features

    # One child generator per replicate: draws do not depend on scheduling.
    children = np.random.SeedSequence(cfg.seed).spawn(B)
    indices = np.vstack(
        [draw_indices(n, np.random.default_rng(ss)) for ss in children],
    ) if B else np.zeros((0, n), dtype=np.int64)

    def _task(b: int):
        return _one_replicate(design, penalty, indices[b], tol, max_iter, cancel_event)

    workers = cfg.workers
    try:
        if workers > 1:
            with cf.ThreadPoolExecutor(max_workers=workers) as ex:
                outputs = list(ex.map(_task, range(B)))
        else:
            outputs = [_task(b) for b in range(B)]
    except BootstrapCancelled:
        LOGGER.info("scope=%s: bootstrap cancelled; all replicates discarded", design.scope)
        raise

    coef_draws = np.full((B, p), np.nan, dtype=np.float64)
    intercepts = np.full(B, np.nan, dtype=np.float64)
    predictions = np.full((n, B), np.nan, dtype=np.float64)
    failed = np.zeros(B, dtype=bool)
    for b, out in enumerate(outputs):
        if out is None:
            failed[b] = True
            continue
        coef_draws[b] = out[0]
        intercepts[b] = out[1]
        predictions[:, b] = out[2]

    result = BootstrapResult(
        var_names=tuple(design.var_names),
        penalty=float(penalty),
        coef_draws=coef_draws,
        intercept_draws=intercepts,
        predictions=predictions,
        indices=indices,
        failed=failed,
        max_skip_rate=float(cfg.max_skip_rate),
        seed=cfg.seed,
    )
    if result.n_failed:
        LOGGER.info(
            "scope=%s: %d/%d replicates skipped", design.scope, result.n_failed, B,
        )
    if result.reduced_replicates:
        warnings.warn(
            f"scope '{design.scope}': {result.warning}", RuntimeWarning, stacklevel=2,
        )
    if result.n_effective == 0:
        LOGGER.warning("scope=%s: every bootstrap replicate failed", design.scope)
    return result


def oob_r_squared(result: BootstrapResult, y: NDArray[np.float64]) -> float:
    """Out-of-bag R^2 from the bootstrap prediction matrix.

    Each observation is predicted by the mean over successful replicates that
    did not draw it; observations never left out are ignored.
    """
    yy = np.asarray(y, dtype=np.float64).reshape(-1)
    mask = result.out_of_bag() & ~result.failed.reshape(1, -1)
    counts = mask.sum(axis=1)
    use = counts > 0
    if int(use.sum()) < 2:
        return float("nan")
    preds = np.where(mask, result.predictions, 0.0).sum(axis=1)
    preds = preds[use] / counts[use]
    y_use = yy[use]
    sst = float(np.sum((y_use - y_use.mean()) ** 2))
    if sst <= 0.0:
        return float("nan")
    return 1.0 - float(np.sum((y_use - preds) ** 2)) / sst
