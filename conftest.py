"""
conftest.py
===========
Session-level pytest configuration for the circnet test suite.

Custom marks
------------
slow
    Applied to tests that solve larger problems (tens of taxa with several
    strategies) or brute-force small ones.  Deselect with ``-m "not slow"``.

    Registration here suppresses PytestUnknownMarkWarning and makes the mark
    visible in ``pytest --markers``.

Warning filters
---------------
NumbaPerformanceWarning messages are filtered out during tests.  Small test
matrices leave most of the parallel loops idle, which numba reports but which
says nothing about correctness.
"""

import pytest
import warnings


def pytest_configure(config):
    """
    Configure pytest before test collection begins.

    This runs before any test modules are imported, which is when the numba
    kernels get compiled.
    """
    config.addinivalue_line(
        "markers",
        "slow: larger solves or brute-force checks (deselect with -m 'not slow')",
    )

    try:
        from numba.core.errors import NumbaPerformanceWarning
        warnings.filterwarnings('ignore', category=NumbaPerformanceWarning)
    except ImportError:
        # Numba not available, no warnings to suppress
        pass


def pytest_unconfigure(config):
    """Restore default warning behavior."""
    warnings.resetwarnings()
