"""
tests/test_operators.py
=======================
Tests for the circular split operator (_operators.py).

Validation layers
-----------------
1. Explicit matrix  (TestAgainstExplicitSplits)
   calc_ax on a single unit split must separate exactly the position pairs
   the split separates.
2. Algebra  (TestAdjoint, TestInverse)
   <A x, d> = <x, A' d> over the upper triangle, and A^-1 A x = x.
3. Backend agreement  (TestBackendAgreement)
   python and cpu-parallel agree to rounding on random inputs.
"""

import logging

import numpy as np
import pytest

from circnet._backend import get_available_backends
from circnet._context import use_backend
from circnet._operators import CircularOperator, calc_ainvx, calc_atx, calc_ax

from examples_distances import explicit_matrix, random_weights


_AVAILABLE = get_available_backends()

cpu_parallel_skip = pytest.mark.skipif(
    "cpu-parallel" not in _AVAILABLE,
    reason="cpu-parallel backend not available",
)


def _upper_dot(a, b):
    return float(np.sum(np.triu(a, 1) * np.triu(b, 1)))


def _random_symmetric(n, rng):
    a = np.triu(rng.normal(size=(n, n)), 1)
    return a + a.T


@pytest.fixture(scope="module")
def rng():
    return np.random.default_rng(20231)


class TestAgainstExplicitSplits:
    """calc_ax on unit splits reproduces the split's separation pattern."""

    @pytest.mark.parametrize("n", [2, 3, 5, 7])
    def test_unit_split_separates_arc(self, n):
        """Each unit split (i, j) separates exactly the pairs across its arc."""
        for i in range(n):
            for j in range(i + 1, n):
                x = np.zeros((n, n))
                x[i, j] = x[j, i] = 1.0
                y = calc_ax(x, backend="python")
                inside = np.zeros(n, dtype=bool)
                inside[i:j] = True
                expected = (inside[:, None] != inside[None, :]).astype(float)
                np.testing.assert_array_equal(y, expected)

    def test_explicit_matrix_is_invertible(self):
        """The dense operator has full rank for n = 5."""
        A = explicit_matrix(5)
        assert np.linalg.matrix_rank(A) == A.shape[0]

    def test_output_symmetric_zero_diagonal(self, rng):
        """A x is symmetric with a zero diagonal."""
        y = calc_ax(random_weights(6, rng), backend="python")
        np.testing.assert_allclose(y, y.T)
        np.testing.assert_array_equal(np.diag(y), 0.0)

    def test_single_taxon_and_empty(self):
        """n = 0 and n = 1 give empty and zero matrices."""
        assert calc_ax(np.zeros((0, 0))).shape == (0, 0)
        np.testing.assert_array_equal(calc_ax(np.zeros((1, 1))), np.zeros((1, 1)))


class TestAdjoint:
    """calc_atx is the adjoint of calc_ax over the strict upper triangle."""

    @pytest.mark.parametrize("n", [3, 4, 8, 13])
    def test_inner_products_match(self, n, rng):
        """<A x, d> == <x, A' d> for random symmetric x and d."""
        for backend in _AVAILABLE:
            x = _random_symmetric(n, rng)
            d = _random_symmetric(n, rng)
            lhs = _upper_dot(calc_ax(x, backend), d)
            rhs = _upper_dot(x, calc_atx(d, backend))
            assert lhs == pytest.approx(rhs, rel=1e-10, abs=1e-10)

    def test_matches_explicit_transpose(self, rng):
        """A' d equals the dense transpose applied to d."""
        n = 5
        iu = np.triu_indices(n, 1)
        A = explicit_matrix(n)
        d = _random_symmetric(n, rng)
        np.testing.assert_allclose(calc_atx(d, "python")[iu], A.T @ d[iu], atol=1e-12)


class TestInverse:
    """calc_ainvx inverts calc_ax."""

    @pytest.mark.parametrize("n", [3, 4, 6, 11])
    def test_round_trip_recovers_weights(self, n, rng):
        """A^-1 (A w) == w for non-negative weights."""
        w = random_weights(n, rng)
        for backend in _AVAILABLE:
            x = calc_ainvx(calc_ax(w, backend), backend)
            np.testing.assert_allclose(x, w, atol=1e-10)

    def test_inverse_of_arbitrary_distances(self, rng):
        """A (A^-1 d) == d for any symmetric d, even when weights go negative."""
        d = _random_symmetric(7, rng)
        np.fill_diagonal(d, 0.0)
        np.testing.assert_allclose(calc_ax(calc_ainvx(d, "python"), "python"), d, atol=1e-10)

    def test_two_taxa(self):
        """For two taxa the single split weight is the distance."""
        d = np.array([[0.0, 3.0], [3.0, 0.0]])
        x = calc_ainvx(d, "python")
        assert x[0, 1] == pytest.approx(3.0)


class TestCircularOperator:
    """Backend resolution and shape checks on CircularOperator."""

    def test_python_backend_resolves(self):
        """An explicit python backend is kept."""
        op = CircularOperator(4, backend="python")
        assert op.backend == "python"
        assert "python" in repr(op)

    def test_unknown_backend_falls_back(self, caplog):
        """An unknown backend logs a warning and uses the best backend."""
        with caplog.at_level(logging.WARNING, logger="circnet"):
            op = CircularOperator(4, backend="cuda")
        assert op.backend == _AVAILABLE[-1]
        assert any("not available" in r.message for r in caplog.records)

    def test_use_backend_overrides_argument(self):
        """use_backend() takes precedence over the backend argument."""
        with use_backend("python"):
            op = CircularOperator(4, backend="best")
        assert op.backend == "python"

    def test_wrong_shape_raises(self):
        """Inputs must match the operator size."""
        op = CircularOperator(4, backend="python")
        with pytest.raises(ValueError, match="shape"):
            op.apply(np.zeros((3, 3)))

    def test_negative_size_raises(self):
        with pytest.raises(ValueError):
            CircularOperator(-1)

    def test_sum_squares_upper_only(self):
        """sum_squares ignores the diagonal and lower triangle."""
        a = np.array([[5.0, 1.0, 2.0], [1.0, 5.0, 3.0], [2.0, 3.0, 5.0]])
        op = CircularOperator(3, backend="python")
        assert op.sum_squares(a) == pytest.approx(14.0)


@cpu_parallel_skip
class TestBackendAgreement:
    """python and cpu-parallel kernels agree."""

    @pytest.mark.parametrize("n", [2, 3, 9, 40])
    def test_all_operations_agree(self, n, rng):
        """apply, adjoint, inverse and sum_squares match across backends."""
        x = _random_symmetric(n, rng)
        py = CircularOperator(n, "python")
        cpu = CircularOperator(n, "cpu-parallel")
        np.testing.assert_allclose(cpu.apply(x), py.apply(x), rtol=1e-12, atol=1e-10)
        np.testing.assert_allclose(cpu.adjoint(x), py.adjoint(x), rtol=1e-12, atol=1e-10)
        np.testing.assert_allclose(cpu.inverse(x), py.inverse(x), rtol=1e-12, atol=1e-10)
        assert cpu.sum_squares(x) == pytest.approx(py.sum_squares(x), rel=1e-12)

    def test_first_call_logs_compile_notice(self, caplog):
        """The first cpu-parallel call of a kernel logs a compile notice."""
        from circnet import _operators

        _operators._kernel_first_call["cpu-parallel-ax"] = True
        with caplog.at_level(logging.INFO, logger="circnet"):
            CircularOperator(3, "cpu-parallel").apply(np.zeros((3, 3)))
        assert any("Compiling cpu-parallel-ax" in r.message for r in caplog.records)
        assert _operators._kernel_first_call["cpu-parallel-ax"] is False
