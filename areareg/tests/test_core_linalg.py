import pytest
import numpy as np
from areareg.core import linalg as la
from areareg.errors import NumericalError

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def rng():
    return np.random.default_rng(42)

@pytest.fixture
def data_dense(rng):
    X = rng.standard_normal((100, 4))
    y = X @ np.array([1.0, -0.5, 0.0, 2.0]) + rng.standard_normal(100)
    return X, y

@pytest.fixture
def data_rank_deficient(rng):
    X = rng.standard_normal((100, 3))
    X = np.column_stack([X, X[:, 0] + X[:, 1]]) # 4th col is lin comb
    y = rng.standard_normal(100)
    return X, y

# ---------------------------------------------------------------------
# Unit Tests: Finite Checks
# ---------------------------------------------------------------------

def test_assert_all_finite():
    with pytest.raises(NumericalError, match="NaN/Inf"):
        la._assert_all_finite(np.array([1.0, np.nan]))
    with pytest.raises(NumericalError):
        la._assert_all_finite(np.ones(3), np.array([[1.0, np.inf]]))
    # Should pass
    la._assert_all_finite(np.array([1.0, 2.0]), None)

# ---------------------------------------------------------------------
# Unit Tests: Standardization and Gram
# ---------------------------------------------------------------------

def test_standardize_moments(data_dense):
    X, _ = data_dense
    Z, center, scale = la.standardize(X)
    assert np.allclose(Z.mean(axis=0), 0.0, atol=1e-12)
    assert np.allclose(Z.std(axis=0), 1.0)  # population std
    assert np.allclose(center, X.mean(axis=0))
    assert np.allclose(Z * scale + center, X)

def test_standardize_constant_column(rng):
    X = np.column_stack([rng.standard_normal(30), np.full(30, 3.0)])
    Z, center, scale = la.standardize(X)
    assert scale[1] == 0.0
    assert center[1] == 3.0
    assert np.all(Z[:, 1] == 0.0)

def test_gram_diag_is_one(data_dense):
    X, y = data_dense
    Z, _, _ = la.standardize(X)
    G, c = la.gram(Z, y - y.mean())
    assert G.shape == (4, 4)
    assert c.shape == (4,)
    assert np.allclose(np.diag(G), 1.0)
    assert np.allclose(G, G.T)

def test_lambda_max_zeroes_everything(data_dense):
    X, y = data_dense
    Z, _, _ = la.standardize(X)
    yc = y - y.mean()
    G, c = la.gram(Z, yc)
    lmax = la.lambda_max(Z, yc)
    assert np.isclose(lmax, np.max(np.abs(c)))
    state = la.coordinate_descent(G, c, lmax)
    assert state.converged
    assert np.all(state.beta == 0.0)
    # Just below lambda_max one coefficient enters
    state = la.coordinate_descent(G, c, 0.9 * lmax)
    assert np.count_nonzero(state.beta) >= 1

# ---------------------------------------------------------------------
# Unit Tests: Rank
# ---------------------------------------------------------------------

def test_numerical_rank(data_dense, data_rank_deficient):
    X, _ = data_dense
    assert la.numerical_rank(X) == 4
    Xd, _ = data_rank_deficient
    assert la.numerical_rank(Xd) == 3
    assert la.numerical_rank(np.zeros((5, 0))) == 0

# ---------------------------------------------------------------------
# Unit Tests: Soft threshold and coordinate descent
# ---------------------------------------------------------------------

def test_soft_threshold():
    assert la.soft_threshold(3.0, 1.0) == 2.0
    assert la.soft_threshold(-3.0, 1.0) == -2.0
    assert la.soft_threshold(0.5, 1.0) == 0.0
    assert la.soft_threshold(-1.0, 1.0) == 0.0
    assert la.soft_threshold(2.0, 0.0) == 2.0

def test_coordinate_descent_orthogonal():
    # With G = I the solution is the soft-thresholded c.
    G = np.eye(3)
    c = np.array([0.5, -2.0, 1.5])
    state = la.coordinate_descent(G, c, 1.0)
    assert state.converged
    assert np.array_equal(state.beta, np.array([0.0, -1.0, 0.5]))
    assert state.n_iter == 2

def test_coordinate_descent_matches_least_squares(data_dense):
    X, y = data_dense
    Z, _, _ = la.standardize(X)
    G, c = la.gram(Z, y - y.mean())
    state = la.coordinate_descent(G, c, 0.0, tol=1e-13, max_iter=100_000)
    assert state.converged
    assert np.allclose(state.beta, np.linalg.solve(G, c), atol=1e-9)

def test_coordinate_descent_inactive_held_at_zero():
    G = np.eye(2)
    c = np.array([3.0, 3.0])
    state = la.coordinate_descent(
        G, c, 0.5, beta0=np.array([1.0, 1.0]), active=np.array([True, False]),
    )
    assert state.beta[1] == 0.0
    assert state.beta[0] == 2.5

def test_coordinate_descent_iteration_cap():
    G = np.array([[1.0, 0.9], [0.9, 1.0]])
    c = np.array([1.0, 0.5])
    state = la.coordinate_descent(G, c, 0.0, tol=1e-12, max_iter=1)
    assert not state.converged
    assert state.n_iter == 1
    assert state.max_delta > 1e-12

def test_coordinate_descent_rejects_negative_penalty():
    with pytest.raises(ValueError):
        la.coordinate_descent(np.eye(2), np.ones(2), -1.0)
