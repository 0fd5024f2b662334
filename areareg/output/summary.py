"""Aggregated result tables and text/LaTeX summaries.

Merges per-partition results into rectangular tables keyed by
``(partition, variable)`` and renders them with :mod:`tabulate`.
"""

from __future__ import annotations

import logging
import re
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, cast

import numpy as np
import pandas as pd
from tabulate import tabulate

from areareg.utils.helpers import collect_variable_index as _collect_variable_index
from areareg.utils.helpers import escape_latex as _escape_latex
from areareg.utils.helpers import filter_variables as _filter_variables
from areareg.utils.helpers import format_number as _format_number
from areareg.utils.helpers import hline_placeholder as _hline_placeholder
from areareg.utils.helpers import pretty_term as _pretty_term

if TYPE_CHECKING:
    from collections.abc import Sequence

    from areareg.spatial.partition import PartitionResult

__all__ = [
    "COEFFICIENT_COLUMNS",
    "FIT_COLUMNS",
    "RESIDUAL_COLUMNS",
    "AggregatedResults",
    "aggregate",
    "coefficient_table",
    "fit_summary",
    "modelsummary",
    "residual_table",
    "variable_order",
]

LOGGER = logging.getLogger(__name__)

COEFFICIENT_COLUMNS = [
    "partition",
    "variable",
    "observed",
    "lower",
    "upper",
    "sign",
    "uncertainty",
    "converged",
    "warning",
    "status",
]
FIT_COLUMNS = [
    "partition",
    "r_squared",
    "r_squared_in_sample",
    "r_squared_cv",
    "selected_lambda",
    "lambda_min",
    "n_obs",
    "n_boot",
    "n_boot_effective",
    "status",
    "message",
]
RESIDUAL_COLUMNS = [
    "unit_id",
    "partition",
    "observed",
    "fitted",
    "residual",
    "prediction_lower",
    "prediction_upper",
]


def _variables(results: Sequence[PartitionResult]) -> list[str]:
    return _collect_variable_index(
        [r.estimates["variable"].tolist() for r in results if r.estimates is not None],
    )


def _partition_rows(res: PartitionResult, variables: list[str]) -> pd.DataFrame:
    if res.estimates is None:
        nan = np.full(len(variables), np.nan)
        return pd.DataFrame(
            {
                "partition": res.name,
                "variable": variables,
                "observed": nan,
                "lower": nan,
                "upper": nan,
                "sign": "omitted",
                "uncertainty": nan,
                "converged": False,
                "warning": res.message,
                "status": res.status,
            },
            columns=COEFFICIENT_COLUMNS,
        )
    est = res.estimates.set_index("variable")
    absent = [v for v in variables if v not in est.index]
    if absent:
        # A variable never entering this partition's design is a zero estimate.
        fill = pd.DataFrame(
            {
                "partition": res.name,
                "observed": 0.0,
                "lower": 0.0,
                "upper": 0.0,
                "sign": "zero",
                "uncertainty": 0.0,
                "converged": bool(est["converged"].iloc[0]) if len(est) else True,
                "warning": est["warning"].iloc[0] if len(est) else None,
            },
            index=pd.Index(absent, name="variable"),
        )
        est = pd.concat([est, fill])
    out = est.loc[variables].reset_index().rename(columns={"index": "variable"})
    out["status"] = res.status
    return out[COEFFICIENT_COLUMNS]


def coefficient_table(
    results: Sequence[PartitionResult], *, variables: Sequence[str] | None = None,
) -> pd.DataFrame:
    """One row per ``(partition, variable)`` over a shared variable list.

    Every partition spans the same variables: a variable a partition's fit
    dropped is an explicit zero row, and an omitted partition contributes
    rows with ``status='omitted'``, NaN values and its failure message.
    """
    vars_ = list(variables) if variables is not None else _variables(results)
    if not results:
        return pd.DataFrame(columns=COEFFICIENT_COLUMNS)
    frames = [_partition_rows(r, vars_) for r in results]
    table = pd.concat(frames, ignore_index=True)
    table["warning"] = table["warning"].astype(object).where(table["warning"].notna(), None)
    return table


def fit_summary(results: Sequence[PartitionResult]) -> pd.DataFrame:
    """Per-partition fit statistics; ``r_squared`` is the out-of-bag R^2."""
    rows = []
    for r in results:
        boot = r.bootstrap
        rows.append(
            {
                "partition": r.name,
                "r_squared": r.r_squared,
                "r_squared_in_sample": r.extra.get("r_squared_in_sample", np.nan),
                "r_squared_cv": r.cv.cv_r2 if r.cv is not None else np.nan,
                "selected_lambda": r.model.penalty if r.model is not None else np.nan,
                "lambda_min": r.cv.lambda_min if r.cv is not None else np.nan,
                "n_obs": r.n_obs,
                "n_boot": boot.n_boot if boot is not None else 0,
                "n_boot_effective": boot.n_effective if boot is not None else 0,
                "status": r.status,
                "message": r.message,
            },
        )
    return pd.DataFrame(rows, columns=FIT_COLUMNS)


def residual_table(results: Sequence[PartitionResult]) -> pd.DataFrame:
    """Observed, fitted, residual and prediction bounds per unit and partition."""
    frames = [r.predictions for r in results if r.predictions is not None]
    if not frames:
        return pd.DataFrame(columns=RESIDUAL_COLUMNS)
    return pd.concat(frames, ignore_index=True)[RESIDUAL_COLUMNS]


def variable_order(
    table: pd.DataFrame, partition: str | None = None, *, descending: bool = True,
) -> list[str]:
    """Variables ranked by absolute observed coefficient in one partition.

    Presentation metadata only; ``table`` is not modified. Defaults to the
    first partition in the table. Ties keep the table's order.
    """
    if table.empty:
        return []
    name = partition if partition is not None else table["partition"].iloc[0]
    sub = table.loc[table["partition"] == name, ["variable", "observed"]]
    if sub.empty:
        raise KeyError(f"partition {name!r} not in table")
    mag = sub["observed"].abs().fillna(-np.inf if descending else np.inf)
    order = mag.sort_values(ascending=not descending, kind="mergesort").index
    return sub.loc[order, "variable"].tolist()


@dataclass(frozen=True)
class AggregatedResults:
    """Merged output tables of one partitioned run."""

    coefficients: pd.DataFrame
    fit: pd.DataFrame
    residuals: pd.DataFrame
    order: list[str]

    @property
    def partitions(self) -> list[str]:
        return self.fit["partition"].tolist()

    @property
    def omitted(self) -> list[str]:
        return self.fit.loc[self.fit["status"] == "omitted", "partition"].tolist()

    def summary(self, **kwargs: object) -> str:
        return modelsummary(self, **kwargs)  # type: ignore[arg-type]


def aggregate(
    results: Sequence[PartitionResult], *, order_by: str | None = None,
) -> AggregatedResults:
    """Merge every partition's result into an :class:`AggregatedResults`.

    ``order_by`` names the partition used for :func:`variable_order`; the
    first partition (normally the global run) is used when omitted.
    """
    coef = coefficient_table(results)
    fit = fit_summary(results)
    resid = residual_table(results)
    ref = order_by
    if ref is None:
        ok = [r.name for r in results if not r.omitted]
        ref = ok[0] if ok else None
    order = variable_order(coef, ref) if ref is not None and not coef.empty else []
    n_om = int((fit["status"] == "omitted").sum())
    if n_om:
        LOGGER.warning("%d partition(s) omitted from the aggregated tables", n_om)
    return AggregatedResults(coefficients=coef, fit=fit, residuals=resid, order=order)


def _cell(row: pd.Series, coef_format: str, *, show_ci: bool) -> str:
    if row["status"] == "omitted":
        return "omitted"
    text = _format_number(row["observed"], coef_format)
    if show_ci:
        lo = _format_number(row["lower"], coef_format)
        hi = _format_number(row["upper"], coef_format)
        if lo and hi:
            text = f"{text} [{lo}, {hi}]"
    return text


def _truncate_text(s: str, n: int) -> str:
    return s if len(s) <= n else s[: max(n - 1, 1)] + "…"


def modelsummary(  # noqa: PLR0913
    results: AggregatedResults | Sequence[PartitionResult],
    *,
    partitions: Sequence[str] | None = None,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
    sort: Literal["magnitude", "none"] = "magnitude",
    coef_format: str = ".3f",
    show_ci: bool = True,
    col_width: int = 24,
    output: str = "text",
    latex_booktabs: bool = True,
    escape_latex: bool = True,
    name_style: str = "paper",
) -> str:
    """Render partitions side by side: one column per partition.

    Cells show the observed coefficient and, with ``show_ci``, the bootstrap
    percentile interval. The footer carries the selected penalty, R^2 values,
    observation counts and effective replicate counts. No analytic p-values
    are reported.
    """
    agg = results if isinstance(results, AggregatedResults) else aggregate(results)
    coef = agg.coefficients
    cols = list(partitions) if partitions is not None else agg.partitions
    unknown = [c for c in cols if c not in agg.partitions]
    if unknown:
        raise KeyError(f"unknown partitions: {unknown}")
    if output not in {"text", "latex"}:
        raise ValueError("output must be 'text' or 'latex'")

    pool = agg.order if (sort == "magnitude" and agg.order) else coef["variable"].drop_duplicates().tolist()
    variables = _filter_variables(pool, include=include, exclude=exclude)

    def _lab(v: object) -> str:
        s = _pretty_term(v, style=name_style)
        return _escape_latex(s) if (output == "latex" and escape_latex) else s

    indexed = coef.set_index(["partition", "variable"])
    body = []
    for v in variables:
        row = [_lab(v)]
        for p in cols:
            row.append(_cell(indexed.loc[(p, v)], coef_format, show_ci=show_ci))
        body.append(row)

    fit = agg.fit.set_index("partition")
    footer_spec = [
        ("selected_lambda", "Penalty", ".4g"),
        ("r_squared", "R2 (OOB)", ".3f"),
        ("r_squared_in_sample", "R2 (in-sample)", ".3f"),
        ("r_squared_cv", "R2 (CV)", ".3f"),
        ("n_obs", "N", "d"),
        ("n_boot_effective", "Bootstrap reps", "d"),
    ]
    footer = []
    for key, label, fmt in footer_spec:
        vals = []
        for p in cols:
            val = fit.loc[p, key]
            if fmt == "d":
                vals.append(str(int(val)) if pd.notna(val) else "")
            else:
                vals.append(_format_number(val, fmt))
        footer.append([label, *vals])

    headers = ["", *(_lab(c) if output == "latex" else str(c) for c in cols)]
    headers = [headers[0]] + [_truncate_text(h, col_width) for h in headers[1:]]
    if output == "latex":
        # Cells are escaped above; latex_raw keeps tabulate from escaping again.
        table_all = [*body, _hline_placeholder(len(cols)), *footer]
        table = cast(
            "str",
            tabulate(
                table_all, headers=headers, stralign="center", tablefmt="latex_raw",
                disable_numparse=True,
            ),
        )
        lines = [
            r"\midrule" if ln.strip().startswith("MSMIDRULE") else ln
            for ln in table.splitlines()
        ]
        if latex_booktabs:
            rules = [i for i, ln in enumerate(lines) if ln.strip() == r"\hline"]
            for i, rule in zip(rules[:2], (r"\toprule", r"\midrule")):
                lines[i] = rule
            if len(rules) > 2:
                lines[rules[-1]] = r"\bottomrule"
        table = "\n".join(lines)
        with suppress(re.error):
            repl = "\\1" + "l" + ("c" * len(cols)) + "}"
            table = re.sub(r"(\\begin\{tabular\}\{)([^}]*)\}", repl, table, count=1)
        return table
    sep = ["" for _ in headers]
    return cast(
        "str", tabulate(
            [*body, sep, *footer], headers=headers, stralign="center", disable_numparse=True,
        ),
    )
