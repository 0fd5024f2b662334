"""Design matrix construction.

Assembles the outcome vector and covariate matrix from an observation table,
expanding categorical fields into treatment-coded indicator columns with
Patsy. Missing values are a hard failure: nothing is imputed and no row is
dropped, so the caller must pre-clean.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
import patsy

from areareg.errors import DataError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from numpy.typing import NDArray

__all__ = [
    "DesignMatrix",
    "build_design_matrix",
    "categorical_levels",
    "indicator_name",
]


def indicator_name(field: str, level: Any) -> str:
    """Column name for the indicator of ``field == level``."""
    return f"{field}[T.{level}]"


def _readonly(a: NDArray[Any]) -> NDArray[Any]:
    a = np.array(a, copy=True)
    a.setflags(write=False)
    return a


@dataclass(frozen=True)
class DesignMatrix:
    """Outcome vector and covariate matrix with a fixed, ordered variable list.

    Arrays are read-only; derive new matrices with :meth:`take` or
    :meth:`reorder` rather than editing in place.
    """

    y: NDArray[np.float64]
    X: NDArray[np.float64]
    var_names: tuple[str, ...]
    unit_ids: NDArray[Any]
    scope: str = "global"

    def __post_init__(self) -> None:
        y = np.asarray(self.y, dtype=np.float64).reshape(-1)
        X = np.asarray(self.X, dtype=np.float64)
        if X.ndim != 2:
            raise DataError(f"X must be 2D; got shape {X.shape}.")
        if X.shape[0] != y.shape[0]:
            raise DataError(f"X has {X.shape[0]} rows but y has {y.shape[0]}.")
        if X.shape[1] != len(self.var_names):
            raise DataError(
                f"X has {X.shape[1]} columns but {len(self.var_names)} names were given.",
            )
        ids = np.asarray(self.unit_ids)
        if ids.shape[0] != y.shape[0]:
            raise DataError("unit_ids must have one entry per observation.")
        object.__setattr__(self, "y", _readonly(y))
        object.__setattr__(self, "X", _readonly(X))
        object.__setattr__(self, "unit_ids", _readonly(ids))
        object.__setattr__(self, "var_names", tuple(str(v) for v in self.var_names))

    @property
    def n_obs(self) -> int:
        return int(self.y.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.X.shape[1])

    def take(self, indices: Sequence[int] | NDArray[np.int64]) -> DesignMatrix:
        """Return a new design made of rows ``indices`` (repeats allowed)."""
        idx = np.asarray(indices, dtype=np.int64)
        return DesignMatrix(
            y=self.y[idx],
            X=self.X[idx, :],
            var_names=self.var_names,
            unit_ids=self.unit_ids[idx],
            scope=self.scope,
        )

    def reorder(self, var_names: Sequence[str]) -> DesignMatrix:
        """Return a new design with columns permuted to ``var_names``."""
        names = [str(v) for v in var_names]
        if sorted(names) != sorted(self.var_names):
            raise DataError("reorder requires a permutation of the existing variable names.")
        pos = [self.var_names.index(v) for v in names]
        return DesignMatrix(
            y=self.y, X=self.X[:, pos], var_names=tuple(names),
            unit_ids=self.unit_ids, scope=self.scope,
        )


# ---------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------


def _validate_unique_names(names: Sequence[str]) -> None:
    """Ensure all variable names are unique."""
    seen: set[str] = set()
    for nm in names:
        if nm in seen:
            raise DataError(
                f"Duplicate variable name: '{nm}'. Provide unique names.",
            )
        seen.add(nm)


def _require_columns(frame: pd.DataFrame, cols: Sequence[str], what: str) -> None:
    missing = [c for c in cols if c not in frame.columns]
    if missing:
        raise DataError(f"{what} missing from observations: {missing}")


def _numeric_column(frame: pd.DataFrame, col: str) -> NDArray[np.float64]:
    """Coerce one column to float64, failing on anything non-numeric or missing."""
    try:
        values = pd.to_numeric(frame[col], errors="raise").to_numpy(dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise DataError(f"column '{col}' contains non-numeric values") from exc
    bad = ~np.isfinite(values)
    if bad.any():
        rows = list(frame.index[bad][:10])
        raise DataError(
            f"column '{col}' has {int(bad.sum())} missing/non-finite values "
            f"(first rows: {rows}); clean rows before modelling.",
        )
    return values


def categorical_levels(
    frame: pd.DataFrame, fields: Sequence[str],
) -> dict[str, list[Any]]:
    """Sorted level list per categorical field, computed over ``frame``.

    Use the levels of the full observation table when building per-partition
    designs so that every partition shares the same indicator columns. Missing
    values are ignored here; :func:`build_design_matrix` rejects them for the
    scope that contains them.
    """
    _require_columns(frame, list(fields), "categorical fields")
    out: dict[str, list[Any]] = {}
    for f in fields:
        col = frame[f].dropna()
        levels = sorted(pd.unique(col), key=lambda v: (str(type(v)), v))
        if not levels:
            raise DataError(f"categorical field '{f}' has an empty value set.")
        out[f] = list(levels)
    return out


def _expand_categorical(
    values: pd.Series, field: str, levels: Sequence[Any],
) -> tuple[NDArray[np.float64], list[str]]:
    """Treatment-coded indicators for ``values`` with ``levels[0]`` as reference."""
    if len(levels) == 0:
        raise DataError(f"categorical field '{field}' has an empty value set.")
    unknown = sorted({str(v) for v in pd.unique(values)} - {str(v) for v in levels})
    if unknown:
        raise DataError(f"categorical field '{field}' has values outside its levels: {unknown}")
    n = int(values.shape[0])
    if len(levels) == 1 or n == 0:
        return np.zeros((n, 0), dtype=np.float64), []
    # Intercept is kept so Patsy drops the reference level; it is discarded below.
    design = patsy.dmatrix(
        "C(_cat, levels=_levels)",
        {"_cat": values.to_numpy(dtype=object), "_levels": list(levels)},
        NA_action=patsy.NAAction(NA_types=[]),
        return_type="dataframe",
    )
    mat = design.to_numpy(dtype=np.float64)[:, 1:]
    names = [indicator_name(field, lvl) for lvl in levels[1:]]
    return mat, names


def build_design_matrix(  # noqa: PLR0913
    frame: pd.DataFrame,
    covariates: Sequence[str],
    *,
    outcome: str = "outcome",
    unit_id: str = "unit_id",
    categorical: Sequence[str] | None = None,
    levels: Mapping[str, Sequence[Any]] | None = None,
    scope: str = "global",
) -> DesignMatrix:
    """Build a :class:`DesignMatrix` from an observation table.

    Parameters
    ----------
    frame : pd.DataFrame
        One row per spatial unit. Not modified.
    covariates : sequence of str
        Numeric covariate columns, in the order they should appear.
    outcome, unit_id : str
        Outcome and identifier column names.
    categorical : sequence of str, optional
        Fields expanded into 0/1 indicators (reference level implicit),
        appended after the numeric covariates.
    levels : mapping, optional
        Fixed level lists per categorical field (see
        :func:`categorical_levels`). Computed from ``frame`` when omitted.
    scope : str
        Label of the partition the design belongs to.

    Raises
    ------
    DataError
        A required column is missing, a value is missing or non-numeric, or a
        categorical field has no levels.

    """
    cov = [str(c) for c in covariates]
    cats = [str(c) for c in (categorical or [])]
    _validate_unique_names(cov + cats)
    if frame.shape[0] == 0:
        raise DataError(f"no observations in scope '{scope}'.")
    _require_columns(frame, [outcome, unit_id], "outcome/unit_id columns")
    _require_columns(frame, cov, "covariates")
    _require_columns(frame, cats, "categorical fields")

    y = _numeric_column(frame, outcome)
    blocks: list[NDArray[np.float64]] = []
    names: list[str] = []
    if cov:
        blocks.append(np.column_stack([_numeric_column(frame, c) for c in cov]))
        names.extend(cov)

    lv = dict(levels) if levels is not None else {}
    missing_lv = [f for f in cats if f not in lv]
    if missing_lv:
        lv.update(categorical_levels(frame, missing_lv))
    for f in cats:
        if frame[f].isna().any():
            raise DataError(f"categorical field '{f}' has missing values.")
        mat, ind_names = _expand_categorical(frame[f], f, list(lv[f]))
        blocks.append(mat)
        names.extend(ind_names)

    _validate_unique_names(names)
    X = np.hstack(blocks) if blocks else np.zeros((frame.shape[0], 0), dtype=np.float64)
    return DesignMatrix(
        y=y,
        X=X,
        var_names=tuple(names),
        unit_ids=frame[unit_id].to_numpy(),
        scope=scope,
    )
