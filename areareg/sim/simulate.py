"""Synthetic area-level datasets.

Small generators used by the tests and the demo: a plain linear dataset, a
dataset with duplicated covariates, and a regional dataset with a fine ->
super-region mapping and region-specific effects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

__all__ = [
    "DEFAULT_REGIONS",
    "simulate_area_data",
    "simulate_duplicate_covariates",
    "simulate_linear",
]

DEFAULT_REGIONS: dict[str, str] = {
    "r01": "north",
    "r02": "north",
    "r03": "north",
    "r04": "south",
    "r05": "south",
    "r06": "south",
    "r07": "east",
    "r08": "east",
}


def simulate_linear(
    n_obs: int = 200,
    coefs: Sequence[float] = (0.5, -0.3),
    *,
    intercept: float = 0.4,
    noise: float = 0.01,
    seed: int | None = 42,
) -> pd.DataFrame:
    """Outcome = intercept + X @ coefs + N(0, noise^2), covariates ``x1..xk``.

    Covariates are uniform on [0, 1] like census proportions.
    """
    rng = np.random.default_rng(seed)
    beta = np.asarray(coefs, dtype=np.float64)
    X = rng.random((int(n_obs), beta.size))
    y = intercept + X @ beta + noise * rng.standard_normal(int(n_obs))
    frame = pd.DataFrame(X, columns=[f"x{j + 1}" for j in range(beta.size)])
    frame.insert(0, "outcome", y)
    frame.insert(0, "unit_id", [f"u{i:04d}" for i in range(int(n_obs))])
    return frame


def simulate_duplicate_covariates(
    n_obs: int = 200, *, noise: float = 0.05, seed: int | None = 7,
) -> pd.DataFrame:
    """Two identical covariates ``x1 == x2`` plus an independent ``x3``."""
    rng = np.random.default_rng(seed)
    x1 = rng.random(int(n_obs))
    x3 = rng.random(int(n_obs))
    y = 0.2 + 0.8 * x1 - 0.4 * x3 + noise * rng.standard_normal(int(n_obs))
    return pd.DataFrame(
        {
            "unit_id": np.arange(int(n_obs)),
            "outcome": y,
            "x1": x1,
            "x2": x1.copy(),
            "x3": x3,
        },
    )


def simulate_area_data(  # noqa: PLR0913
    n_per_region: int | Mapping[str, int] = 40,
    *,
    mapping: Mapping[str, str] | None = None,
    effects: Mapping[str, Sequence[float]] | None = None,
    noise: float = 0.05,
    with_category: bool = True,
    seed: int | None = 2024,
) -> tuple[pd.DataFrame, dict[str, str]]:
    """Regional dataset and its fine -> super-region mapping.

    Parameters
    ----------
    n_per_region : int or mapping
        Units per fine region; a mapping sets counts individually (regions it
        does not list get none).
    mapping : mapping, optional
        Fine -> super-region table; :data:`DEFAULT_REGIONS` when omitted.
    effects : mapping, optional
        Coefficients of ``(pct_degree, pct_over65, pct_renter)`` per
        super-region. Defaults give each super-region a different profile.
    noise : float
        Outcome noise standard deviation.
    with_category : bool
        Add a categorical ``settlement`` field (``urban``/``suburban``/``rural``)
        with a small additive effect.
    seed : int, optional
        Seed of the generator.

    Returns
    -------
    (pd.DataFrame, dict)
        Observation table with columns ``unit_id``, ``outcome``, ``region``,
        the covariates (and ``settlement``), plus the mapping used.

    """
    rng = np.random.default_rng(seed)
    table = dict(mapping) if mapping is not None else dict(DEFAULT_REGIONS)
    supers = list(dict.fromkeys(table.values()))
    if effects is None:
        base = np.array([0.6, -0.2, 0.0])
        effects = {s: tuple(base + 0.15 * k * np.array([-1.0, 1.0, 0.5])) for k, s in enumerate(supers)}
    cat_effect = {"urban": 0.05, "suburban": 0.0, "rural": -0.05}

    frames = []
    for region, sup in table.items():
        n = int(n_per_region.get(region, 0)) if hasattr(n_per_region, "get") else int(n_per_region)
        if n <= 0:
            continue
        X = rng.random((n, 3))
        y = 0.3 + X @ np.asarray(effects[sup], dtype=np.float64)
        part = pd.DataFrame(X, columns=["pct_degree", "pct_over65", "pct_renter"])
        if with_category:
            settle = rng.choice(list(cat_effect), size=n)
            y = y + np.array([cat_effect[s] for s in settle])
            part["settlement"] = settle
        part.insert(0, "region", region)
        part.insert(0, "outcome", y + noise * rng.standard_normal(n))
        frames.append(part)
    frame = pd.concat(frames, ignore_index=True)
    frame.insert(0, "unit_id", [f"{r}-{i:04d}" for i, r in enumerate(frame["region"])])
    return frame, table
