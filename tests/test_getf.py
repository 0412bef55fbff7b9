"""
Test the permutation statistics engine.

Every statistic is checked against an independent computation with
NumPy least squares on the explicitly permuted matrix.
"""

import pytest
import numpy as np

from pypermutest import (
    get_f, qr_decomposition, qr_resid, qr_fitted, sum_ev,
    shuffle_set, identity_permutation,
    SVDError, ValidationError, DimensionError,
)
from pypermutest._backends import CPUBackendFP64


def projection(M, Y):
    """Fitted values of Y on M by least squares."""
    coef = np.linalg.lstsq(M, Y, rcond=None)[0]
    return M @ coef


@pytest.fixture
def model():
    """Centred response, constraints, and conditions for 25 sites."""
    np.random.seed(42)
    n = 25
    Z = np.random.randn(n, 2)
    X = np.random.randn(n, 3)
    Y = X @ np.random.randn(3, 6) + Z @ np.random.randn(2, 6) + np.random.randn(n, 6)
    center = lambda A: A - A.mean(axis=0)
    return center(Y), center(X), center(Z)


class TestScenario:
    """Small hand-checkable cases."""

    def test_identity_factor(self):
        """Identity model: fitted = input, statistic = sum of squares."""
        np.random.seed(42)
        E = np.random.randn(4, 2)
        Q = qr_decomposition(np.eye(4))
        assert Q.rank == 4

        result = get_f([[1, 2, 3, 4], [4, 3, 2, 1]], E, Q)

        assert result.shape == (2, 2)
        np.testing.assert_allclose(result[0, 0], np.sum(E**2), rtol=1e-12)
        np.testing.assert_allclose(result[1, 0], np.sum(E[::-1]**2), rtol=1e-12)
        # Residual column is filler without partial or first
        assert np.all(np.isnan(result[:, 1]))

    def test_one_based_indices(self):
        """Row [3, 1, 2] reads source rows 2, 0, 1."""
        E = np.array([[10.0], [20.0], [30.0]])
        # Model picks out the first row of the permuted matrix
        Q = qr_decomposition(np.array([[1.0], [0.0], [0.0]]))

        result = get_f([[3, 1, 2], [1, 2, 3], [2, 3, 1]], E, Q)

        np.testing.assert_allclose(result[:, 0], [900.0, 100.0, 400.0])

    def test_single_row_as_vector(self):
        E = np.array([[10.0], [20.0], [30.0]])
        Q = qr_decomposition(np.array([[1.0], [0.0], [0.0]]))
        result = get_f(np.array([2, 1, 3]), E, Q)
        assert result.shape == (1, 2)
        np.testing.assert_allclose(result[0, 0], 400.0)

    def test_no_permutations(self, model):
        E, X, _ = model
        result = get_f(np.empty((0, 25), dtype=int), E, qr_decomposition(X))
        assert result.shape == (0, 2)


class TestStatistics:
    """Agreement with explicit least squares."""

    def test_sum_of_eigenvalues(self, model):
        E, X, _ = model
        perms = shuffle_set(25, 10, seed=1)

        result = get_f(perms, E, qr_decomposition(X))

        for k, perm in enumerate(perms):
            Y = E[perm - 1]
            assert result[k, 0] == pytest.approx(np.sum(projection(X, Y)**2), rel=1e-10)

    def test_first_eigenvalue(self, model):
        E, X, _ = model
        perms = shuffle_set(25, 10, seed=2)

        result = get_f(perms, E, qr_decomposition(X), first=True)

        for k, perm in enumerate(perms):
            Y = E[perm - 1]
            fitted = projection(X, Y)
            sigma = np.linalg.svd(fitted, compute_uv=False)
            assert result[k, 0] == pytest.approx(sigma[0]**2, rel=1e-10)
            assert result[k, 1] == pytest.approx(np.sum((Y - fitted)**2), rel=1e-10)

    def test_partial_model(self, model):
        E, X, Z = model
        M = np.column_stack([Z, X])
        perms = shuffle_set(25, 10, seed=3)

        result = get_f(perms, E, qr_decomposition(M), qr_decomposition(Z))

        for k, perm in enumerate(perms):
            Y = E[perm - 1]
            Y = Y - projection(Z, Y)
            fitted = projection(M, Y)
            assert result[k, 0] == pytest.approx(np.sum(fitted**2), rel=1e-10)
            assert result[k, 1] == pytest.approx(np.sum((Y - fitted)**2), rel=1e-10)

    def test_partial_first(self, model):
        E, X, Z = model
        M = np.column_stack([Z, X])
        perms = shuffle_set(25, 5, seed=4)

        result = get_f(perms, E, qr_decomposition(M), qr_decomposition(Z), first=True)

        for k, perm in enumerate(perms):
            Y = E[perm - 1]
            Y = Y - projection(Z, Y)
            sigma = np.linalg.svd(projection(M, Y), compute_uv=False)
            assert result[k, 0] == pytest.approx(sigma[0]**2, rel=1e-10)

    def test_identity_permutation_reproduces_fit(self, model):
        E, X, _ = model
        Q = qr_decomposition(X)
        perms = shuffle_set(25, 4, seed=5)
        perms[2] = identity_permutation(25)[0]

        batch = get_f(perms, E, Q)
        single = get_f(identity_permutation(25), E, Q)

        assert batch[2, 0] == pytest.approx(single[0, 0], rel=1e-14)
        assert single[0, 0] == pytest.approx(sum_ev(qr_fitted(Q, E)), rel=1e-12)

    def test_conservation_with_rank_one_model(self, model):
        """With one constraint, first eigenvalue + residual = total."""
        E, X, _ = model
        result = get_f(shuffle_set(25, 6, seed=6), E, qr_decomposition(X[:, :1]), first=True)
        np.testing.assert_allclose(result.sum(axis=1), np.sum(E**2), rtol=1e-10)

    def test_partial_residuals_idempotent(self, model):
        E, _, Z = model
        QZ = qr_decomposition(Z)
        once = qr_resid(QZ, E[::-1])
        twice = qr_resid(QZ, once)
        np.testing.assert_allclose(twice, once, atol=1e-12)


class TestInputHandling:
    """Validation, immutability, and argument contracts."""

    def test_permutations_not_modified(self, model):
        E, X, _ = model
        perms = shuffle_set(25, 5, seed=7)
        perms_orig = perms.copy()
        E_orig = E.copy()

        get_f(perms, E, qr_decomposition(X))

        np.testing.assert_array_equal(perms, perms_orig)
        np.testing.assert_array_equal(E, E_orig)

    def test_wrong_width_raises(self, model):
        E, X, _ = model
        with pytest.raises(DimensionError):
            get_f(shuffle_set(24, 3), E, qr_decomposition(X))

    def test_zero_based_indices_rejected(self, model):
        E, X, _ = model
        perms = shuffle_set(25, 3) - 1
        with pytest.raises(ValidationError):
            get_f(perms, E, qr_decomposition(X))

    def test_repeated_index_rejected(self, model):
        E, X, _ = model
        perms = shuffle_set(25, 3, seed=8)
        perms[1, 0] = perms[1, 1]
        with pytest.raises(ValidationError, match="row 2"):
            get_f(perms, E, qr_decomposition(X))

    def test_unvalidated_malformed_row_runs(self, model):
        """Without validation a non-bijective row is not an error."""
        E, X, _ = model
        perms = np.ones((1, 25), dtype=int)
        result = get_f(perms, E, qr_decomposition(X), validate=False)
        assert np.isfinite(result[0, 0])

    def test_factor_row_mismatch(self, model):
        E, X, _ = model
        with pytest.raises(DimensionError):
            get_f(shuffle_set(25, 2), E, qr_decomposition(X[:20]))

    def test_partial_without_conditions(self, model):
        E, X, _ = model
        with pytest.raises(ValueError):
            get_f(shuffle_set(25, 2), E, qr_decomposition(X), is_partial=True)

    def test_conditions_ignored_when_not_partial(self, model):
        E, X, Z = model
        perms = shuffle_set(25, 3, seed=9)
        Q = qr_decomposition(X)
        plain = get_f(perms, E, Q)
        ignored = get_f(perms, E, Q, qr_decomposition(Z), is_partial=False)
        np.testing.assert_allclose(plain, ignored, rtol=1e-14)


class TestExecution:
    """Parallel blocks, backends, and failure policy."""

    def test_parallel_matches_serial(self, model):
        E, X, Z = model
        M = np.column_stack([Z, X])
        perms = shuffle_set(25, 37, seed=10)
        Q, QZ = qr_decomposition(M), qr_decomposition(Z)

        serial = get_f(perms, E, Q, QZ, first=True, n_jobs=1)
        parallel = get_f(perms, E, Q, QZ, first=True, n_jobs=3)

        np.testing.assert_allclose(parallel, serial, rtol=1e-14)

    def test_reference_backend_agrees(self, model):
        E, X, Z = model
        M = np.column_stack([Z, X])
        perms = shuffle_set(25, 5, seed=11)
        Q, QZ = qr_decomposition(M), qr_decomposition(Z)

        cpu = get_f(perms, E, Q, QZ, backend='cpu')
        ref = get_f(perms, E, Q, QZ, backend='reference')

        np.testing.assert_allclose(ref, cpu, rtol=1e-10)

    def test_failure_aborts_batch(self, model):
        E, X, _ = model

        class FailingBackend(CPUBackendFP64):
            def __init__(self, fail_at):
                super().__init__()
                self.calls = 0
                self.fail_at = fail_at

            def svd_first(self, x):
                self.calls += 1
                if self.calls >= self.fail_at:
                    raise SVDError(7)
                return super().svd_first(x)

        backend = FailingBackend(fail_at=3)
        with pytest.raises(SVDError, match="status=7"):
            get_f(shuffle_set(25, 10), E, qr_decomposition(X), first=True, backend=backend)
        assert backend.calls == 3

        with pytest.raises(SVDError):
            get_f(shuffle_set(25, 10), E, qr_decomposition(X), first=True,
                  backend=FailingBackend(fail_at=1), n_jobs=2)
