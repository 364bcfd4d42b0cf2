"""
test_cpu_kernels.py
===================
Tests for CPU kernels (_cpu_kernels.py).

These tests verify that the kernel module separation works correctly:
- Modules can be imported
- Functions exist and have the caller-allocated-output signature
- Kernels write into the output array in place

Numerical agreement with the numpy reference implementations is covered by
TestBackendAgreement in test_operators.py.
"""

import inspect

import numpy as np
import pytest

try:
    from circnet._cpu_kernels import (
        _calc_ax_njit,
        _calc_atx_njit,
        _calc_ainvx_njit,
        _sum_squares_upper_njit,
    )
    KERNELS_AVAILABLE = True
except ImportError:
    KERNELS_AVAILABLE = False

# Skip all tests if kernels not available
pytestmark = pytest.mark.skipif(
    not KERNELS_AVAILABLE,
    reason="CPU kernels module not available"
)


class TestKernelImports:
    """Test that kernel imports work correctly."""

    def test_module_imports_successfully(self):
        """Test that _cpu_kernels module can be imported."""
        import circnet._cpu_kernels as _cpu_kernels
        assert _cpu_kernels is not None

    def test_backend_helper_returns_kernels(self):
        """import_cpu_kernels() hands back the same four functions."""
        from circnet._backend import import_cpu_kernels

        ok, ax, atx, ainvx, sumsq = import_cpu_kernels()
        assert ok is True
        assert ax is _calc_ax_njit
        assert atx is _calc_atx_njit
        assert ainvx is _calc_ainvx_njit
        assert sumsq is _sum_squares_upper_njit


class TestKernelSignatures:
    """Operator kernels take (input, output); the reduction returns a float."""

    @pytest.mark.parametrize(
        "name", ["_calc_ax_njit", "_calc_atx_njit", "_calc_ainvx_njit"]
    )
    def test_operator_kernels_take_two_arrays(self, name):
        """Each operator kernel is callable with two parameters."""
        fn = globals()[name]
        assert callable(fn)
        assert fn.__name__ == name
        assert len(inspect.signature(fn).parameters) == 2

    def test_sum_squares_takes_one_array(self):
        """Test that the reduction kernel has one parameter."""
        assert len(inspect.signature(_sum_squares_upper_njit).parameters) == 1


class TestKernelOutputs:
    """Kernels overwrite the whole output array, including the diagonal."""

    def test_ax_overwrites_garbage(self):
        """Pre-filled output is fully overwritten."""
        x = np.zeros((4, 4))
        x[0, 2] = x[2, 0] = 1.5
        y = np.full((4, 4), np.nan)
        _calc_ax_njit(x, y)
        assert np.all(np.isfinite(y))
        np.testing.assert_array_equal(np.diag(y), 0.0)
        # positions 0, 1 inside the split; 2, 3 outside
        assert y[0, 2] == pytest.approx(1.5)
        assert y[0, 1] == pytest.approx(0.0)

    def test_atx_trivial_split_is_row_sum(self):
        """p[i, i+1] is the sum of row i (the split {i})."""
        d = np.array([[0.0, 1.0, 2.0], [1.0, 0.0, 4.0], [2.0, 4.0, 0.0]])
        p = np.empty_like(d)
        _calc_atx_njit(d, p)
        assert p[0, 1] == pytest.approx(3.0)
        assert p[1, 2] == pytest.approx(5.0)

    def test_ainvx_symmetric(self):
        """The inverse kernel writes a symmetric matrix."""
        d = np.array([[0.0, 3.0, 4.0], [3.0, 0.0, 5.0], [4.0, 5.0, 0.0]])
        x = np.empty_like(d)
        _calc_ainvx_njit(d, x)
        np.testing.assert_allclose(x, x.T)
        # Three taxa: pendant weights are (d01 + d02 - d12) / 2 etc.
        assert x[0, 1] == pytest.approx(1.0)

    def test_sum_squares_upper(self):
        a = np.array([[9.0, 1.0], [7.0, 9.0]])
        assert _sum_squares_upper_njit(a) == pytest.approx(1.0)
