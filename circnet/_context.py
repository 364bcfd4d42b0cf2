"""
_context.py
===========
Context managers for circnet.

Provides clean, Pythonic context managers for temporarily changing state:
- Logging control (suppress/change levels)
- Warning control (suppress specific warnings)
- Backend selection (force specific backend)
- Thread count for the numba kernels

All context managers properly restore state on exit, even if exceptions occur.
"""

import logging
import warnings
from contextlib import contextmanager
from typing import Optional, Type


# Module-level state for backend override
_backend_override = None


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Useful for suppressing verbose output from specific modules during
    bulk operations.

    Parameters
    ----------
    logger_name : str
        Name of the logger to suppress (e.g., 'circnet._solver')
    level : int, default logging.CRITICAL
        Temporary logging level.

    Yields
    ------
    None
        Control is yielded back to the with-block.

    Examples
    --------
    >>> # Hide per-call operator dispatch messages only
    >>> with suppress_logger('circnet._operators'):
    ...     net = neighbor_net(d)

    Notes
    -----
    - Exception-safe: Logger level restored even if exception raised
    - Nesting-safe: Can nest multiple suppress_logger contexts
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all circnet logging.

    Every module logs to a child of the 'circnet' logger, so raising the
    parent's level silences the whole package.

    Parameters
    ----------
    level : int, default logging.CRITICAL
        Temporary logging level.

    Examples
    --------
    >>> with quiet():
    ...     net = neighbor_net(d)

    >>> # Show only warnings (e.g. convergence failures)
    >>> with quiet(logging.WARNING):
    ...     net = neighbor_net(d)
    """
    with suppress_logger("circnet", level):
        yield


# ============================================================================ #
# Warning Context Managers
# ============================================================================ #


@contextmanager
def suppress_warnings(category: Optional[Type[Warning]] = None):
    """
    Temporarily suppress warnings.

    Parameters
    ----------
    category : Type[Warning] or None, default None
        Warning category to suppress. If None, suppresses all warnings.
        Common categories:
        - NNLSConvergenceWarning: solver hit its iteration cap
        - NumbaPerformanceWarning: Numba optimization warnings

    Examples
    --------
    >>> from circnet import NNLSConvergenceWarning
    >>> with suppress_warnings(NNLSConvergenceWarning):
    ...     weights = split_weights(d, cycle, NNLSParams(max_outer_iterations=5))
    """
    with warnings.catch_warnings():
        if category is None:
            warnings.simplefilter("ignore")
        else:
            warnings.filterwarnings("ignore", category=category)
        yield


# ============================================================================ #
# Backend Context Managers
# ============================================================================ #


@contextmanager
def use_backend(backend: str):
    """
    Temporarily force a specific backend for the circular operators.

    Parameters
    ----------
    backend : str
        Backend to use. Valid options:
        - 'python': numpy reference (always available)
        - 'cpu-parallel': Numba parallel (requires numba)
        - 'best': Use best available (default behavior)

    Raises
    ------
    ValueError
        If requested backend is not available.

    Examples
    --------
    >>> with use_backend('python'):
    ...     net = neighbor_net(d)

    Notes
    -----
    - **Not thread-safe**: Uses module-level state
    - Backend availability checked when context entered
    - Original 'best' behavior restored on exit
    """
    global _backend_override

    from ._backend import get_available_backends

    available = get_available_backends()

    if backend != "best" and backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    original_override = _backend_override

    try:
        _backend_override = backend
        yield
    finally:
        _backend_override = original_override


def get_backend_override() -> Optional[str]:
    """
    Get the current backend override, if any.

    Used internally by CircularOperator to check whether use_backend() is
    active.

    Returns
    -------
    str or None
        Current backend override, or None if no override active.
    """
    return _backend_override


@contextmanager
def num_threads(n: int):
    """
    Temporarily limit the number of threads used by the numba kernels.

    Parameters
    ----------
    n : int
        Thread count, between 1 and numba.config.NUMBA_NUM_THREADS.

    Raises
    ------
    ValueError
        If numba is not installed or n is out of range.

    Examples
    --------
    >>> with num_threads(1):
    ...     net = neighbor_net(d)   # serial operator kernels
    """
    from ._backend import check_numba_available

    if not check_numba_available():
        raise ValueError("num_threads() requires numba")

    import numba

    limit = numba.config.NUMBA_NUM_THREADS
    if not 1 <= n <= limit:
        raise ValueError(f"Thread count must be between 1 and {limit}, got {n}")

    original = numba.get_num_threads()
    try:
        numba.set_num_threads(n)
        yield
    finally:
        numba.set_num_threads(original)


# ============================================================================ #
# Combined Context Managers
# ============================================================================ #


@contextmanager
def silent_benchmark(backend: str = "best"):
    """
    Suppress logging and warnings while forcing a specific backend.

    Convenience context manager combining quiet() + use_backend() for
    clean benchmarking code.

    Examples
    --------
    >>> for backend in ['python', 'cpu-parallel']:
    ...     with silent_benchmark(backend):
    ...         start = time.time()
    ...         net = neighbor_net(d)
    ...         print(f"{backend}: {time.time() - start:.3f}s")
    """
    with quiet():
        with use_backend(backend):
            with suppress_warnings():
                yield
