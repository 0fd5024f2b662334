"""Pipeline configuration.

Frozen dataclasses validated on construction. Worker counts default to the
``AREAREG_N_JOBS`` environment variable (serial when unset).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from areareg.errors import ConfigurationError
from areareg.estimators.base import BootConfig, default_n_jobs
from areareg.estimators.cv import (
    DEFAULT_LAMBDA_MIN_RATIO,
    DEFAULT_N_FOLDS,
    DEFAULT_N_LAMBDAS,
)
from areareg.estimators.lasso import DEFAULT_LAMBDA_FLOOR_RATIO

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["PipelineConfig", "TableSchema"]


@dataclass(frozen=True)
class TableSchema:
    """Column names of the observation table."""

    unit_id: str = "unit_id"
    outcome: str = "outcome"
    region: str = "region"
    super_region: str = "super_region"

    def __post_init__(self) -> None:
        cols = [self.unit_id, self.outcome, self.region, self.super_region]
        if len(set(cols)) != len(cols):
            raise ConfigurationError(f"schema column names must be distinct; got {cols}")


@dataclass(frozen=True)
class PipelineConfig:
    """Settings for one full partitioned run.

    Parameters
    ----------
    covariates : sequence of str
        Numeric covariate columns, in output order.
    categorical : sequence of str
        Fields expanded into indicator columns (levels taken from the full
        observation table).
    schema : TableSchema
        Input column names.
    min_samples : int
        Minimum observations per partition after merging.
    n_folds, n_lambdas, lambda_min_ratio : int, int, float
        Cross-validation settings.
    tol, max_iter : float, int
        Solver settings.
    lambda_floor_ratio : float
        Penalty floor for rank-deficient designs at penalty 0.
    cv_seed : int, optional
        Seed for fold assignment.
    boot : BootConfig
        Bootstrap settings.
    n_jobs : int, optional
        Worker threads for partitions, folds and replicates.
    global_name : str
        Label of the unpartitioned run.

    """

    covariates: Sequence[str] = ()
    categorical: Sequence[str] = ()
    schema: TableSchema = field(default_factory=TableSchema)
    min_samples: int = 30
    n_folds: int = DEFAULT_N_FOLDS
    n_lambdas: int = DEFAULT_N_LAMBDAS
    lambda_min_ratio: float = DEFAULT_LAMBDA_MIN_RATIO
    tol: float = 1e-7
    max_iter: int = 10_000
    lambda_floor_ratio: float = DEFAULT_LAMBDA_FLOOR_RATIO
    cv_seed: int | None = None
    boot: BootConfig = field(default_factory=BootConfig)
    n_jobs: int | None = None
    global_name: str = "global"

    def __post_init__(self) -> None:
        object.__setattr__(self, "covariates", tuple(str(c) for c in self.covariates))
        object.__setattr__(self, "categorical", tuple(str(c) for c in self.categorical))
        if not self.covariates and not self.categorical:
            raise ConfigurationError("at least one covariate or categorical field is required.")
        overlap = set(self.covariates) & set(self.categorical)
        if overlap:
            raise ConfigurationError(f"fields listed as both numeric and categorical: {sorted(overlap)}")
        reserved = {self.schema.unit_id, self.schema.outcome, self.schema.region, self.schema.super_region}
        clash = reserved & (set(self.covariates) | set(self.categorical))
        if clash:
            raise ConfigurationError(f"covariates clash with schema columns: {sorted(clash)}")
        if int(self.min_samples) < 2:
            raise ConfigurationError("min_samples must be at least 2.")
        if int(self.n_folds) < 2:
            raise ConfigurationError("n_folds must be at least 2.")
        if int(self.n_lambdas) < 2:
            raise ConfigurationError("n_lambdas must be at least 2.")
        if not (0.0 < float(self.lambda_min_ratio) < 1.0):
            raise ConfigurationError("lambda_min_ratio must lie in (0, 1).")
        if not (float(self.tol) > 0.0) or int(self.max_iter) < 1:
            raise ConfigurationError("tol must be positive and max_iter at least 1.")
        if self.n_jobs is not None and int(self.n_jobs) < 1:
            raise ConfigurationError("n_jobs must be a positive integer or None.")

    @property
    def workers(self) -> int:
        return int(self.n_jobs) if self.n_jobs is not None else default_n_jobs()
