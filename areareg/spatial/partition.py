"""Region partitioning and per-partition pipelines.

Fine regions are merged into super-regions through an explicit mapping table;
each resulting partition (plus the unpartitioned global sample) runs its own
design -> cross-validation -> fit -> bootstrap pipeline. Partitions are
treated as independent, non-spatial subsets.
"""

from __future__ import annotations

import concurrent.futures as cf
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from areareg.config import PipelineConfig, TableSchema
from areareg.core import bootstrap as bt
from areareg.core import inference as inf
from areareg.errors import ConfigurationError, DataError, NumericalError, PartitionSizeError
from areareg.estimators.cv import CVResult, cross_validate, penalty_grid
from areareg.estimators.lasso import Lasso
from areareg.utils.design import DesignMatrix, build_design_matrix, categorical_levels

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterable, Mapping

    from areareg.estimators.base import EstimationResult

__all__ = [
    "Partition",
    "PartitionResult",
    "RegionMapping",
    "RegionPartitioner",
    "assign_super_regions",
    "check_exhaustive",
    "check_partition_size",
    "partition_observations",
    "run_pipeline",
]

LOGGER = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_OMITTED = "omitted"


# ---------------------------------------------------------------------
# Region mapping
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RegionMapping:
    """Explicit fine-region -> super-region table.

    The mapping is required configuration; it is never inferred and regions
    missing from it are an error, not silently dropped.
    """

    table: Mapping[Any, str]

    def __post_init__(self) -> None:
        if not self.table:
            raise ConfigurationError("region mapping is empty.")
        cleaned = {k: str(v) for k, v in dict(self.table).items()}
        object.__setattr__(self, "table", cleaned)

    @classmethod
    def from_dict(cls, table: Mapping[Any, str]) -> RegionMapping:
        return cls(dict(table))

    @classmethod
    def from_frame(
        cls, frame: pd.DataFrame, *, region: str = "region", super_region: str = "super_region",
    ) -> RegionMapping:
        """Build from a two-column table; a region mapped twice is an error."""
        missing = [c for c in (region, super_region) if c not in frame.columns]
        if missing:
            raise ConfigurationError(f"mapping table lacks columns {missing}")
        sub = frame[[region, super_region]].drop_duplicates()
        dup = sub[region][sub[region].duplicated()].tolist()
        if dup:
            raise ConfigurationError(f"regions mapped to more than one super-region: {dup}")
        return cls(dict(zip(sub[region], sub[super_region])))

    @property
    def super_regions(self) -> list[str]:
        """Super-region names in order of first appearance in the table."""
        return list(dict.fromkeys(self.table.values()))

    def regions_of(self, super_region: str) -> list[Any]:
        return [k for k, v in self.table.items() if v == super_region]

    def lookup(self, regions: Iterable[Any]) -> list[str]:
        """Map each region; raises ConfigurationError listing unmapped regions."""
        regs = list(regions)
        unmapped = sorted({str(r) for r in regs if r not in self.table})
        if unmapped:
            raise ConfigurationError(f"regions missing from the region mapping: {unmapped}")
        return [self.table[r] for r in regs]


@dataclass(frozen=True)
class Partition:
    """Named, non-overlapping subset of the observation table."""

    name: str
    frame: pd.DataFrame
    regions: tuple[Any, ...]

    @property
    def n_obs(self) -> int:
        return int(self.frame.shape[0])


def assign_super_regions(
    frame: pd.DataFrame, mapping: RegionMapping, schema: TableSchema | None = None,
) -> pd.DataFrame:
    """Return a copy of ``frame`` with the derived super-region column added."""
    sc = schema or TableSchema()
    if sc.region not in frame.columns:
        raise DataError(f"observations lack the region column '{sc.region}'.")
    out = frame.copy()
    out[sc.super_region] = mapping.lookup(frame[sc.region].tolist())
    return out


def partition_observations(
    frame: pd.DataFrame, mapping: RegionMapping, schema: TableSchema | None = None,
) -> dict[str, Partition]:
    """Split observations into one partition per super-region.

    Every super-region of the mapping gets a partition, possibly empty, so an
    undersized super-region is reported rather than silently missing.
    """
    sc = schema or TableSchema()
    labelled = assign_super_regions(frame, mapping, sc)
    out: dict[str, Partition] = {}
    for name in mapping.super_regions:
        mask = (labelled[sc.super_region] == name).to_numpy()
        out[name] = Partition(
            name=name,
            frame=labelled.loc[mask].copy(),
            regions=tuple(mapping.regions_of(name)),
        )
    return out


def check_exhaustive(
    frame: pd.DataFrame, partitions: Mapping[str, Partition], schema: TableSchema | None = None,
) -> None:
    """Verify partitions are pairwise disjoint and cover every observation."""
    sc = schema or TableSchema()
    seen: dict[Any, str] = {}
    for name, part in partitions.items():
        for uid in part.frame[sc.unit_id].tolist():
            if uid in seen:
                raise ConfigurationError(
                    f"unit {uid!r} appears in partitions {seen[uid]!r} and {name!r}",
                )
            seen[uid] = name
    all_ids = frame[sc.unit_id].tolist()
    if len(set(all_ids)) != len(all_ids):
        raise DataError(f"column '{sc.unit_id}' has duplicate unit identifiers.")
    missing = set(all_ids) - set(seen)
    if missing:
        raise ConfigurationError(f"{len(missing)} observations belong to no partition.")


def check_partition_size(partition: Partition, min_samples: int) -> None:
    """Raise PartitionSizeError when the partition is below ``min_samples``."""
    if partition.n_obs < int(min_samples):
        raise PartitionSizeError(partition.name, partition.n_obs, min_samples)


# ---------------------------------------------------------------------
# Per-partition pipeline
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PartitionResult:
    """Everything one partition's pipeline produced (or why it did not)."""

    name: str
    status: str
    n_obs: int
    regions: tuple[Any, ...] = ()
    message: str | None = None
    design: DesignMatrix | None = None
    cv: CVResult | None = None
    model: EstimationResult | None = None
    bootstrap: bt.BootstrapResult | None = None
    estimates: pd.DataFrame | None = None
    predictions: pd.DataFrame | None = None
    r_squared: float = float("nan")
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def omitted(self) -> bool:
        return self.status == STATUS_OMITTED


def _omitted(name: str, n_obs: int, regions: tuple[Any, ...], exc: Exception) -> PartitionResult:
    LOGGER.warning("partition %s omitted: %s", name, exc)
    return PartitionResult(
        name=name,
        status=STATUS_OMITTED,
        n_obs=int(n_obs),
        regions=regions,
        message=f"{type(exc).__name__}: {exc}",
    )


def run_pipeline(
    design: DesignMatrix,
    config: PipelineConfig,
    *,
    n_jobs: int | None = None,
    cancel_event: threading.Event | None = None,
) -> PartitionResult:
    """Cross-validate, fit and bootstrap one design.

    Raises NumericalError for degenerate designs; the caller turns it into an
    omitted partition.
    """
    workers = config.workers if n_jobs is None else int(n_jobs)
    grid = penalty_grid(
        design, n_lambdas=config.n_lambdas, lambda_min_ratio=config.lambda_min_ratio,
    )
    cv = cross_validate(
        design,
        grid,
        n_folds=config.n_folds,
        seed=config.cv_seed,
        tol=config.tol,
        max_iter=config.max_iter,
        n_jobs=workers,
    )
    model = Lasso(design).fit(
        cv.selected_lambda,
        tol=config.tol,
        max_iter=config.max_iter,
        lambda_floor_ratio=config.lambda_floor_ratio,
    )
    boot_cfg = replace(config.boot, n_jobs=workers)
    boot = bt.pairs_bootstrap(
        design,
        model.penalty,
        boot_cfg,
        tol=config.tol,
        max_iter=config.max_iter,
        cancel_event=cancel_event,
    )
    alpha = boot_cfg.alpha
    estimates = inf.coefficient_estimates(model, boot, alpha=alpha, partition=design.scope)
    pi = inf.prediction_intervals(boot, alpha)
    y = np.asarray(design.y, dtype=np.float64)
    predictions = pd.DataFrame(
        {
            "unit_id": np.asarray(design.unit_ids),
            "partition": design.scope,
            "observed": y,
            "fitted": np.asarray(model.fitted),
            "residual": np.asarray(model.residuals),
            "prediction_lower": pi["prediction_lower"].to_numpy(),
            "prediction_upper": pi["prediction_upper"].to_numpy(),
        },
    )
    status = STATUS_OK
    if (not model.converged) or boot.reduced_replicates or model.model_info.get("lambda_floor_applied"):
        status = STATUS_WARNING
    return PartitionResult(
        name=design.scope,
        status=status,
        n_obs=design.n_obs,
        message=estimates["warning"].iloc[0] if len(estimates) else None,
        design=design,
        cv=cv,
        model=model,
        bootstrap=boot,
        estimates=estimates,
        predictions=predictions,
        r_squared=bt.oob_r_squared(boot, y),
        extra={"r_squared_in_sample": model.r_squared(y)},
    )


class RegionPartitioner:
    """Drive one independent pipeline per super-region plus a global run.

    Parameters
    ----------
    observations : pd.DataFrame
        Observation table (not modified).
    mapping : RegionMapping or mapping
        Fine-region -> super-region table.
    config : PipelineConfig
        Covariates, thresholds, CV and bootstrap settings.

    Examples
    --------
    >>> part = RegionPartitioner(df, {"a": "north", "b": "north", "c": "south"}, cfg)
    >>> results = part.run()
    >>> from areareg.output.summary import aggregate
    >>> tables = aggregate(results)

    """

    def __init__(
        self,
        observations: pd.DataFrame,
        mapping: RegionMapping | Mapping[Any, str],
        config: PipelineConfig,
    ) -> None:
        self.config = config
        self.mapping = mapping if isinstance(mapping, RegionMapping) else RegionMapping(mapping)
        self.observations = observations
        sc = config.schema
        self.partitions = partition_observations(observations, self.mapping, sc)
        check_exhaustive(observations, self.partitions, sc)
        self.levels = (
            categorical_levels(observations, list(config.categorical))
            if config.categorical
            else {}
        )
        sizes = {k: p.n_obs for k, p in self.partitions.items()}
        LOGGER.info("partitions (n_obs): %s", sizes)

    def _build(self, frame: pd.DataFrame, scope: str) -> DesignMatrix:
        sc = self.config.schema
        return build_design_matrix(
            frame,
            list(self.config.covariates),
            outcome=sc.outcome,
            unit_id=sc.unit_id,
            categorical=list(self.config.categorical),
            levels=self.levels,
            scope=scope,
        )

    def run_one(
        self,
        partition: Partition,
        *,
        n_jobs: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> PartitionResult:
        """Run the pipeline for one partition; failures become omitted results."""
        try:
            check_partition_size(partition, self.config.min_samples)
            design = self._build(partition.frame, partition.name)
            res = run_pipeline(design, self.config, n_jobs=n_jobs, cancel_event=cancel_event)
        except (DataError, PartitionSizeError, NumericalError) as exc:
            return _omitted(partition.name, partition.n_obs, partition.regions, exc)
        return replace(res, regions=partition.regions)

    def run(self, *, cancel_event: threading.Event | None = None) -> list[PartitionResult]:
        """Run the global model and every partition.

        Returns results with the global run first, then partitions in mapping
        order. All runs complete (or are recorded as omitted) before this
        returns.
        """
        global_part = Partition(
            name=self.config.global_name,
            frame=self.observations,
            regions=tuple(self.mapping.table),
        )
        todo = [global_part, *self.partitions.values()]
        workers = self.config.workers
        if workers > 1 and len(todo) > 1:
            # Stages inside each partition run serially to keep the pool bounded.
            with cf.ThreadPoolExecutor(max_workers=min(workers, len(todo))) as ex:
                results = list(
                    ex.map(lambda p: self.run_one(p, n_jobs=1, cancel_event=cancel_event), todo),
                )
        else:
            results = [self.run_one(p, cancel_event=cancel_event) for p in todo]
        n_omitted = sum(r.omitted for r in results)
        LOGGER.info("%d runs complete, %d omitted", len(results), n_omitted)
        return results
