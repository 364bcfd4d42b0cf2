"""
_distances.py
=============
DistanceMatrix: validated, read-only pairwise distances over n taxa.

Taxa are identified by 1-based integer ids throughout circnet; the wrapped
array itself is 0-based, so taxon t lives in row t-1.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from circnet._exceptions import DistanceMatrixError
from circnet._logging import log_distance_matrix_summary
from circnet._utils import validate_cycle


logger = logging.getLogger(__name__)


class DistanceMatrix:
    """
    A symmetric matrix of non-negative distances with a zero diagonal.

    The matrix is copied on construction and the copy is marked read-only,
    so a DistanceMatrix can be shared between solves.

    Parameters
    ----------
    data : array_like, shape (n, n)
        Pairwise distances.
    ntax : int or None
        Expected number of taxa.  If given, must equal the matrix size.
    labels : sequence of str or None
        Taxon names, one per row.  Defaults to "1", "2", ...
    atol : float, default 1e-12
        Absolute tolerance for the symmetry and zero-diagonal checks.

    Raises
    ------
    DistanceMatrixError
        If the input is not 2-D and square, contains NaN/inf or negative
        values, is not symmetric, has a non-zero diagonal, or disagrees with
        ``ntax`` or ``labels``.

    Examples
    --------
    >>> dm = DistanceMatrix([[0, 2, 4], [2, 0, 4], [4, 4, 0]])
    >>> dm.ntax
    3
    >>> dm.get(1, 3)
    4.0
    """

    def __init__(
        self,
        data,
        ntax: Optional[int] = None,
        labels: Optional[Sequence[str]] = None,
        atol: float = 1e-12,
    ):
        arr = np.array(data, dtype=np.float64)

        if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
            raise DistanceMatrixError(
                f"Distance matrix must be square and 2-D, got shape {arr.shape}"
            )
        n = arr.shape[0]
        if ntax is not None and ntax != n:
            raise DistanceMatrixError(
                f"ntax={ntax} does not match matrix size {n}"
            )
        if not np.all(np.isfinite(arr)):
            raise DistanceMatrixError("Distance matrix contains NaN or infinite values")
        if np.any(arr < 0):
            i, j = np.argwhere(arr < 0)[0]
            raise DistanceMatrixError(
                f"Distance matrix contains negative value {arr[i, j]} "
                f"at taxa ({i + 1}, {j + 1})"
            )
        if not np.allclose(arr, arr.T, rtol=0.0, atol=atol):
            i, j = np.argwhere(~np.isclose(arr, arr.T, rtol=0.0, atol=atol))[0]
            raise DistanceMatrixError(
                f"Distance matrix is not symmetric: d({i + 1},{j + 1})={arr[i, j]} "
                f"but d({j + 1},{i + 1})={arr[j, i]}"
            )
        diag = np.abs(np.diag(arr))
        if np.any(diag > atol):
            i = int(np.argmax(diag))
            raise DistanceMatrixError(
                f"Distance matrix diagonal must be zero, got d({i + 1},{i + 1})={arr[i, i]}"
            )

        if labels is None:
            labels = [str(t) for t in range(1, n + 1)]
        else:
            labels = [str(label) for label in labels]
            if len(labels) != n:
                raise DistanceMatrixError(
                    f"Got {len(labels)} labels for {n} taxa"
                )
            if len(set(labels)) != n:
                raise DistanceMatrixError("Taxon labels must be unique")

        # Exact symmetry and diagonal after the tolerance checks
        arr = 0.5 * (arr + arr.T)
        np.fill_diagonal(arr, 0.0)
        arr.setflags(write=False)

        self._data = arr
        self._labels = labels

    # ------------------------------------------------------------------ #
    # Accessors                                                           #
    # ------------------------------------------------------------------ #

    @property
    def ntax(self) -> int:
        """Number of taxa."""
        return self._data.shape[0]

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    @property
    def values(self) -> np.ndarray:
        """The read-only (n, n) float64 array, indexed by taxon id - 1."""
        return self._data

    def __len__(self) -> int:
        return self.ntax

    def __repr__(self) -> str:
        return f"DistanceMatrix(ntax={self.ntax})"

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self._data.copy()
        return self._data.astype(dtype)

    def get(self, i: int, j: int) -> float:
        """Distance between taxa i and j (1-based ids)."""
        n = self.ntax
        if not (1 <= i <= n and 1 <= j <= n):
            raise IndexError(f"Taxon ids must be in 1..{n}, got ({i}, {j})")
        return float(self._data[i - 1, j - 1])

    def index_of(self, label: str) -> int:
        """1-based taxon id for a label."""
        try:
            return self._labels.index(label) + 1
        except ValueError:
            raise KeyError(f"Unknown taxon label {label!r}") from None

    def in_cycle_order(self, cycle: Sequence[int]) -> np.ndarray:
        """
        Permute the matrix into cycle-position order.

        Parameters
        ----------
        cycle : sequence of int
            1-based taxon ids.

        Returns
        -------
        np.ndarray
            A writable (n, n) copy with ``out[p, q] = d(cycle[p], cycle[q])``.
        """
        idx = validate_cycle(cycle, self.ntax) - 1
        return self._data[np.ix_(idx, idx)].copy()

    def log_summary(self) -> None:
        """Emit the INFO-level summary of this matrix."""
        n = self.ntax
        if n < 2:
            log_distance_matrix_summary(n, 0.0, 0.0, 0)
            return
        iu = np.triu_indices(n, 1)
        upper = self._data[iu]
        log_distance_matrix_summary(
            n, float(upper.max()), float(upper.mean()), int(np.sum(upper == 0.0))
        )


def as_distance_matrix(
    distances, ntax: Optional[int] = None, labels: Optional[Sequence[str]] = None
) -> DistanceMatrix:
    """
    Coerce an array-like to a DistanceMatrix, validating it.

    A DistanceMatrix passes through unchanged unless ``ntax`` or ``labels``
    disagree with it.
    """
    if isinstance(distances, DistanceMatrix):
        if ntax is not None and ntax != distances.ntax:
            raise DistanceMatrixError(
                f"ntax={ntax} does not match matrix size {distances.ntax}"
            )
        if labels is not None:
            return DistanceMatrix(distances.values, labels=labels)
        return distances
    return DistanceMatrix(distances, ntax=ntax, labels=labels)
