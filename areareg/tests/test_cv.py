import pytest
import numpy as np
from areareg.estimators.cv import (
    _one_standard_error,
    cross_validate,
    kfold_indices,
    penalty_grid,
)
from areareg.estimators.lasso import Lasso
from areareg.sim.simulate import simulate_linear
from areareg.utils.design import build_design_matrix

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def scenario_a():
    df = simulate_linear(200, (0.5, -0.3), noise=0.01, seed=42)
    return build_design_matrix(df, ["x1", "x2"])

@pytest.fixture
def small_design():
    df = simulate_linear(60, (0.5, -0.3, 0.0), noise=0.05, seed=9)
    return build_design_matrix(df, ["x1", "x2", "x3"])

# ---------------------------------------------------------------------
# Penalty grid
# ---------------------------------------------------------------------

def test_penalty_grid_shape(scenario_a):
    grid = penalty_grid(scenario_a)
    assert grid.shape == (100,)
    assert np.all(np.diff(grid) < 0.0)
    assert np.isclose(grid[0], Lasso(scenario_a).lambda_max)
    assert np.isclose(grid[-1], grid[0] * 1e-4)
    # log-spaced
    ratios = grid[1:] / grid[:-1]
    assert np.allclose(ratios, ratios[0])

def test_penalty_grid_validation(scenario_a):
    with pytest.raises(ValueError):
        penalty_grid(scenario_a, n_lambdas=1)
    with pytest.raises(ValueError):
        penalty_grid(scenario_a, lambda_min_ratio=1.5)

# ---------------------------------------------------------------------
# Folds
# ---------------------------------------------------------------------

def test_kfold_disjoint_and_exhaustive():
    folds = kfold_indices(53, 10, seed=0)
    assert len(folds) == 10
    flat = np.concatenate(folds)
    assert np.array_equal(np.sort(flat), np.arange(53))
    sizes = [f.size for f in folds]
    assert max(sizes) - min(sizes) <= 1

def test_kfold_seeded():
    a = kfold_indices(40, 5, seed=3)
    b = kfold_indices(40, 5, seed=3)
    c = kfold_indices(40, 5, seed=4)
    assert all(np.array_equal(x, y) for x, y in zip(a, b))
    assert not all(np.array_equal(x, y) for x, y in zip(a, c))

def test_kfold_validation():
    with pytest.raises(ValueError):
        kfold_indices(3, 5)
    with pytest.raises(ValueError):
        kfold_indices(10, 1)

# ---------------------------------------------------------------------
# One-standard-error rule
# ---------------------------------------------------------------------

def test_one_standard_error_rule():
    grid = np.array([4.0, 3.0, 2.0, 1.0])
    mean = np.array([5.0, 2.1, 2.0, 3.0])
    se = np.array([0.1, 0.1, 0.2, 0.1])
    lam_1se, lam_min = _one_standard_error(grid, mean, se)
    assert lam_min == 2.0
    assert lam_1se == 3.0

def test_one_standard_error_at_least_lambda_min(small_design):
    cv = cross_validate(small_design, n_folds=5, seed=1)
    assert cv.selected_lambda >= cv.lambda_min
    curve = cv.curve.set_index("lambda")
    i_min = curve["mean_mse"].idxmin()
    threshold = curve.loc[i_min, "mean_mse"] + curve.loc[i_min, "se_mse"]
    assert curve.loc[cv.selected_lambda, "mean_mse"] <= threshold
    # No larger penalty qualifies
    larger = curve[curve.index > cv.selected_lambda]
    assert np.all(larger["mean_mse"] > threshold)

# ---------------------------------------------------------------------
# Cross-validation
# ---------------------------------------------------------------------

def test_scenario_a_recovers_coefficients(scenario_a):
    cv = cross_validate(scenario_a, seed=0)
    grid = cv.grid
    # Selection sits at the low end of the grid.
    assert cv.selected_lambda <= 0.05 * grid.max()
    res = Lasso(scenario_a).fit(cv.selected_lambda)
    assert np.allclose(res.coef, [0.5, -0.3], atol=0.03)
    assert cv.cv_r2 > 0.95

def test_cv_result_shapes(small_design):
    grid = penalty_grid(small_design, n_lambdas=15)
    cv = cross_validate(small_design, grid, n_folds=4, seed=2)
    assert cv.fold_mse.shape == (4, 15)
    assert list(cv.curve.columns) == ["lambda", "mean_mse", "se_mse"]
    assert np.array_equal(cv.grid, grid)
    assert cv.n_folds == 4
    assert cv.selected_lambda in set(grid)

def test_cv_unsorted_grid_is_sorted(small_design):
    grid = penalty_grid(small_design, n_lambdas=8)
    a = cross_validate(small_design, grid, n_folds=4, seed=2)
    b = cross_validate(small_design, grid[::-1], n_folds=4, seed=2)
    assert np.array_equal(a.grid, b.grid)
    assert a.selected_lambda == b.selected_lambda

def test_cv_deterministic_and_thread_independent(small_design):
    grid = penalty_grid(small_design, n_lambdas=20)
    serial = cross_validate(small_design, grid, n_folds=5, seed=11, n_jobs=1)
    again = cross_validate(small_design, grid, n_folds=5, seed=11, n_jobs=1)
    threaded = cross_validate(small_design, grid, n_folds=5, seed=11, n_jobs=3)
    assert np.array_equal(serial.fold_mse, again.fold_mse)
    assert np.allclose(serial.fold_mse, threaded.fold_mse, rtol=0.0, atol=1e-12)
    assert serial.selected_lambda == threaded.selected_lambda

def test_cv_independent_fits_match_warm_start(small_design):
    grid = penalty_grid(small_design, n_lambdas=10)
    warm = cross_validate(small_design, grid, n_folds=3, seed=5, tol=1e-12)
    cold = cross_validate(small_design, grid, n_folds=3, seed=5, tol=1e-12, warm_start=False)
    assert np.allclose(warm.fold_mse, cold.fold_mse, rtol=1e-8, atol=1e-12)

def test_cv_folds_clipped_to_sample_size():
    df = simulate_linear(6, (0.5,), noise=0.05, seed=1)
    d = build_design_matrix(df, ["x1"])
    cv = cross_validate(d, n_folds=10, seed=0)
    assert cv.n_folds == 6

def test_cv_rejects_bad_grid(small_design):
    with pytest.raises(ValueError):
        cross_validate(small_design, np.array([1.0, -1.0]))
    with pytest.raises(ValueError):
        cross_validate(small_design, np.array([]))
