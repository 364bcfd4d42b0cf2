"""
_backend.py
===========
Backend detection and selection for the circular-split operators.

This module detects available execution backends (pure numpy reference,
CPU-parallel via numba) and provides functions to query and select the best
backend.

Functions in this module have NO side effects - they only query system state.
Logging is done by the calling code, not here.
"""

from typing import List, Tuple, Optional


# ============================================================================ #
# Backend Detection (No Side Effects)
# ============================================================================ #


def check_numba_available() -> bool:
    """
    Check if numba is available for CPU parallelization.

    Returns
    -------
    bool
        True if numba can be imported, False otherwise.
    """
    try:
        import numba  # noqa: F401

        return True
    except ImportError:
        return False


def get_available_backends() -> List[str]:
    """
    Get list of available execution backends.

    Returns
    -------
    list[str]
        List of available backends in preference order.
        Always includes 'python'.
        Includes 'cpu-parallel' if numba and the compiled kernels import.

    Examples
    --------
    >>> get_available_backends()
    ['python', 'cpu-parallel']
    """
    backends = ["python"]  # Always available

    if check_numba_available():
        kernels_ok, _, _, _, _ = import_cpu_kernels()
        if kernels_ok:
            backends.append("cpu-parallel")

    return backends


def get_best_backend() -> str:
    """
    Get the most optimized available backend.

    Returns
    -------
    str
        Best available backend in preference order:
        'cpu-parallel' > 'python'
    """
    backends = get_available_backends()
    # List is in preference order, last is best
    return backends[-1]


def resolve_backend(backend: str) -> str:
    """
    Resolve a requested backend name to an actual backend.

    Parameters
    ----------
    backend : str
        Requested backend:
        - 'best': Use the best available backend
        - 'python', 'cpu-parallel': Use specific backend

    Returns
    -------
    str
        Resolved backend name.

    Raises
    ------
    ValueError
        If requested backend is not available.

    Examples
    --------
    >>> resolve_backend('best')
    'cpu-parallel'

    >>> resolve_backend('cuda')
    ValueError  # not a circnet backend
    """
    if backend == "best":
        return get_best_backend()

    available = get_available_backends()
    if backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    return backend


# ============================================================================ #
# Kernel Import Helpers
# ============================================================================ #


def import_cpu_kernels() -> Tuple[
    bool, Optional[object], Optional[object], Optional[object], Optional[object]
]:
    """
    Try to import CPU kernels from _cpu_kernels module.

    Returns
    -------
    tuple
        (success, ax_kernel, atx_kernel, ainvx_kernel, sumsq_kernel)
        - success: Whether import succeeded
        - ax_kernel: _calc_ax_njit function or None
        - atx_kernel: _calc_atx_njit function or None
        - ainvx_kernel: _calc_ainvx_njit function or None
        - sumsq_kernel: _sum_squares_upper_njit function or None
    """
    try:
        from circnet._cpu_kernels import (
            _calc_ax_njit,
            _calc_atx_njit,
            _calc_ainvx_njit,
            _sum_squares_upper_njit,
        )

        return (
            True,
            _calc_ax_njit,
            _calc_atx_njit,
            _calc_ainvx_njit,
            _sum_squares_upper_njit,
        )
    except ImportError:
        return (False, None, None, None, None)


# ============================================================================ #
# Module-Level State Query (Read-Only)
# ============================================================================ #


def get_backend_info() -> dict:
    """
    Get comprehensive backend information.

    Returns
    -------
    dict
        Dictionary with keys:
        - 'numba_available': bool
        - 'backends': list[str]
        - 'best_backend': str
        - 'cpu_kernels_available': bool
        - 'num_threads': int (numba worker threads, 1 without numba)

    Examples
    --------
    >>> info = get_backend_info()
    >>> info['best_backend']
    'cpu-parallel'
    >>> info['backends']
    ['python', 'cpu-parallel']
    """
    numba_available = check_numba_available()
    cpu_kernels_ok, _, _, _, _ = import_cpu_kernels()

    num_threads = 1
    if numba_available:
        import numba

        num_threads = numba.get_num_threads()

    return {
        "numba_available": numba_available,
        "backends": get_available_backends(),
        "best_backend": get_best_backend(),
        "cpu_kernels_available": cpu_kernels_ok,
        "num_threads": num_threads,
    }
