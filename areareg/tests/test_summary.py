import pytest
import numpy as np
import pandas as pd
from areareg.config import PipelineConfig
from areareg.estimators.base import BootConfig
from areareg.output.summary import (
    COEFFICIENT_COLUMNS,
    FIT_COLUMNS,
    RESIDUAL_COLUMNS,
    AggregatedResults,
    aggregate,
    coefficient_table,
    fit_summary,
    modelsummary,
    residual_table,
    variable_order,
)
from areareg.sim.simulate import simulate_area_data
from areareg.spatial.partition import PartitionResult, RegionPartitioner
from areareg.utils.helpers import collect_variable_index, escape_latex, pretty_term

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

def _estimates(partition, variables, observed):
    obs = np.asarray(observed, dtype=float)
    return pd.DataFrame(
        {
            "partition": partition,
            "variable": variables,
            "observed": obs,
            "lower": obs - 0.1,
            "upper": obs + 0.1,
            "sign": ["positive" if o > 0.1 else "negative" if o < -0.1 else "ambiguous" for o in obs],
            "uncertainty": 0.2,
            "converged": True,
            "warning": None,
        },
    )

@pytest.fixture
def manual_results():
    full = PartitionResult(
        name="global",
        status="ok",
        n_obs=100,
        estimates=_estimates("global", ["a", "b", "c"], [0.5, -0.8, 0.0]),
        r_squared=0.8,
    )
    narrow = PartitionResult(
        name="north",
        status="ok",
        n_obs=60,
        estimates=_estimates("north", ["a", "b"], [0.3, -0.2]),
        r_squared=0.7,
    )
    omitted = PartitionResult(
        name="east",
        status="omitted",
        n_obs=8,
        message="PartitionSizeError: partition 'east' has 8 observations after merging",
    )
    return [full, narrow, omitted]

@pytest.fixture(scope="module")
def pipeline_results():
    counts = {"r01": 30, "r02": 30, "r03": 30, "r04": 30, "r05": 30, "r06": 30, "r07": 5, "r08": 5}
    df, table = simulate_area_data(counts, seed=5)
    cfg = PipelineConfig(
        covariates=["pct_degree", "pct_over65", "pct_renter"],
        categorical=["settlement"],
        min_samples=30,
        n_folds=5,
        n_lambdas=20,
        cv_seed=3,
        boot=BootConfig(n_boot=40, seed=8),
        n_jobs=1,
    )
    return RegionPartitioner(df, table, cfg).run()

# ---------------------------------------------------------------------
# Coefficient table
# ---------------------------------------------------------------------

def test_coefficient_table_shared_axis(manual_results):
    tbl = coefficient_table(manual_results)
    assert list(tbl.columns) == COEFFICIENT_COLUMNS
    per_part = tbl.groupby("partition", sort=False)["variable"].apply(list)
    assert list(per_part.index) == ["global", "north", "east"]
    for names in per_part:
        assert names == ["a", "b", "c"]

def test_missing_variable_gets_explicit_zero_row(manual_results):
    tbl = coefficient_table(manual_results)
    row = tbl[(tbl["partition"] == "north") & (tbl["variable"] == "c")].iloc[0]
    assert row["observed"] == 0.0
    assert row["lower"] == 0.0
    assert row["upper"] == 0.0
    assert row["uncertainty"] == 0.0
    assert row["sign"] == "zero"
    assert row["status"] == "ok"

def test_omitted_partition_rows(manual_results):
    tbl = coefficient_table(manual_results)
    east = tbl[tbl["partition"] == "east"]
    assert len(east) == 3
    assert (east["status"] == "omitted").all()
    assert (east["sign"] == "omitted").all()
    assert east["observed"].isna().all()
    assert east["warning"].str.startswith("PartitionSizeError").all()

def test_coefficient_table_explicit_variables(manual_results):
    tbl = coefficient_table(manual_results, variables=["b", "a"])
    assert tbl[tbl["partition"] == "global"]["variable"].tolist() == ["b", "a"]

def test_coefficient_table_empty():
    assert list(coefficient_table([]).columns) == COEFFICIENT_COLUMNS

# ---------------------------------------------------------------------
# Fit summary and residuals
# ---------------------------------------------------------------------

def test_fit_summary_manual(manual_results):
    fit = fit_summary(manual_results)
    assert list(fit.columns) == FIT_COLUMNS
    east = fit.set_index("partition").loc["east"]
    assert np.isnan(east["r_squared"])
    assert np.isnan(east["selected_lambda"])
    assert east["n_boot"] == 0
    assert east["status"] == "omitted"

def test_fit_summary_pipeline(pipeline_results):
    fit = fit_summary(pipeline_results).set_index("partition")
    for name in ["global", "north", "south"]:
        row = fit.loc[name]
        assert row["selected_lambda"] >= row["lambda_min"]
        assert 0.0 < row["r_squared"] < 1.0
        assert row["r_squared"] <= row["r_squared_in_sample"] + 0.05
        assert row["n_boot"] == 40
    assert fit.loc["east", "status"] == "omitted"

def test_residual_table(pipeline_results):
    res = residual_table(pipeline_results)
    assert list(res.columns) == RESIDUAL_COLUMNS
    ok = [r for r in pipeline_results if not r.omitted]
    assert len(res) == sum(r.n_obs for r in ok)
    assert np.allclose(res["residual"], res["observed"] - res["fitted"])
    assert (res["prediction_lower"] <= res["prediction_upper"]).all()
    assert set(res["partition"]) == {"global", "north", "south"}

# ---------------------------------------------------------------------
# Ordering and aggregation
# ---------------------------------------------------------------------

def test_variable_order_by_magnitude(manual_results):
    tbl = coefficient_table(manual_results)
    before = tbl.copy()
    assert variable_order(tbl, "global") == ["b", "a", "c"]
    assert variable_order(tbl, "north") == ["a", "b", "c"]
    assert variable_order(tbl, "global", descending=False) == ["c", "a", "b"]
    pd.testing.assert_frame_equal(tbl, before)
    with pytest.raises(KeyError):
        variable_order(tbl, "nowhere")

def test_aggregate_bundle(manual_results):
    agg = aggregate(manual_results)
    assert isinstance(agg, AggregatedResults)
    assert agg.partitions == ["global", "north", "east"]
    assert agg.omitted == ["east"]
    assert agg.order == ["b", "a", "c"]
    assert agg.residuals.empty

def test_aggregate_pipeline_identical_variable_sets(pipeline_results):
    agg = aggregate(pipeline_results)
    sets = agg.coefficients.groupby("partition")["variable"].apply(tuple)
    assert len(set(sets)) == 1
    assert len(sets.iloc[0]) == 5

# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------

def test_modelsummary_text(manual_results):
    out = modelsummary(manual_results)
    assert "global" in out
    assert "north" in out
    assert "omitted" in out
    assert "R2 (OOB)" in out
    assert "[0.400, 0.600]" in out

def test_modelsummary_latex(manual_results):
    out = modelsummary(aggregate(manual_results), output="latex", partitions=["global", "north"])
    assert "\\begin{tabular}{lcc}" in out
    assert "\\midrule" in out
    assert "MSMIDRULE" not in out

def test_modelsummary_filters(manual_results):
    out = modelsummary(manual_results, include=["^a$"], show_ci=False)
    assert "0.500" in out
    assert "-0.800" not in out
    with pytest.raises(KeyError):
        modelsummary(manual_results, partitions=["west"])
    with pytest.raises(ValueError):
        modelsummary(manual_results, output="html")

def test_modelsummary_pipeline(pipeline_results):
    out = aggregate(pipeline_results).summary()
    assert "settlement: urban" in out
    assert "pct degree" in out

# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def test_collect_variable_index():
    lists = [["a", "b"], ["b", "c"], ["b"]]
    assert collect_variable_index(lists) == ["a", "b", "c"]

def test_pretty_term_and_escape():
    assert pretty_term("settlement[T.urban]") == "settlement: urban"
    assert pretty_term("pct_degree") == "pct degree"
    assert pretty_term("pct_degree", style="raw") == "pct_degree"
    assert escape_latex("a_b & 5%") == r"a\_b \& 5\%"
