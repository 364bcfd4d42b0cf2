"""
tests/test_distances.py
=======================
Tests for DistanceMatrix validation and accessors (_distances.py).
"""

import logging

import numpy as np
import pytest

from circnet._distances import DistanceMatrix, as_distance_matrix
from circnet._exceptions import DistanceMatrixError

from examples_distances import SCENARIO_A


class TestValidation:
    """Every precondition has its own message."""

    @pytest.mark.parametrize(
        "data, match",
        [
            ([1.0, 2.0], "square"),
            ([[0.0, 1.0, 2.0], [1.0, 0.0, 3.0]], "square"),
            ([[0.0, np.inf], [np.inf, 0.0]], "NaN or infinite"),
            ([[0.0, -1.0], [-1.0, 0.0]], "negative"),
            ([[0.0, 1.0], [1.5, 0.0]], "not symmetric"),
            ([[0.5, 1.0], [1.0, 0.0]], "diagonal"),
        ],
    )
    def test_rejected(self, data, match):
        with pytest.raises(DistanceMatrixError, match=match):
            DistanceMatrix(data)

    def test_ntax_mismatch(self):
        with pytest.raises(DistanceMatrixError, match="ntax=3"):
            DistanceMatrix(SCENARIO_A, ntax=3)

    def test_labels_must_match_and_be_unique(self):
        with pytest.raises(DistanceMatrixError, match="labels"):
            DistanceMatrix(SCENARIO_A, labels=["a", "b", "c"])
        with pytest.raises(DistanceMatrixError, match="unique"):
            DistanceMatrix(SCENARIO_A, labels=["a", "b", "c", "a"])

    def test_tiny_asymmetry_tolerated(self):
        """Asymmetry within atol is averaged away."""
        d = SCENARIO_A.copy()
        d[0, 1] += 1e-14
        dm = DistanceMatrix(d)
        assert dm.values[0, 1] == dm.values[1, 0]


class TestAccessors:
    """Read-only data, 1-based lookups and permutation."""

    @pytest.fixture(scope="class")
    def dm(self):
        return DistanceMatrix(SCENARIO_A, labels=["a", "b", "c", "d"])

    def test_values_read_only(self, dm):
        with pytest.raises(ValueError):
            dm.values[0, 1] = 9.0

    def test_copy_on_construction(self):
        data = SCENARIO_A.copy()
        dm = DistanceMatrix(data)
        data[0, 1] = 100.0
        assert dm.get(1, 2) == 2.0

    def test_get_is_one_based(self, dm):
        assert dm.get(1, 2) == 2.0
        assert dm.get(2, 4) == 4.0
        with pytest.raises(IndexError):
            dm.get(0, 1)
        with pytest.raises(IndexError):
            dm.get(1, 5)

    def test_labels(self, dm):
        assert dm.labels == ["a", "b", "c", "d"]
        assert dm.index_of("c") == 3
        with pytest.raises(KeyError):
            dm.index_of("z")

    def test_default_labels(self):
        assert DistanceMatrix(SCENARIO_A).labels == ["1", "2", "3", "4"]

    def test_len_and_array(self, dm):
        assert len(dm) == 4
        np.testing.assert_array_equal(np.asarray(dm), SCENARIO_A)

    def test_in_cycle_order(self, dm):
        d = dm.in_cycle_order([1, 3, 4, 2])
        assert d[0, 1] == 4.0  # taxa 1, 3
        assert d[1, 2] == 2.0  # taxa 3, 4
        assert d[0, 3] == 2.0  # taxa 1, 2
        d[0, 1] = 0.0  # writable copy
        assert dm.get(1, 3) == 4.0

    def test_in_cycle_order_validates(self, dm):
        with pytest.raises(ValueError):
            dm.in_cycle_order([1, 2, 3])

    def test_log_summary_warns_on_zero_pairs(self, caplog):
        d = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, 1.0], [1.0, 1.0, 0.0]])
        with caplog.at_level(logging.INFO, logger="circnet"):
            DistanceMatrix(d).log_summary()
        assert any("3 taxa" in r.message for r in caplog.records)
        assert any(
            r.levelno == logging.WARNING and "distance zero" in r.message
            for r in caplog.records
        )


class TestAsDistanceMatrix:
    """Coercion helper."""

    def test_passthrough(self):
        dm = DistanceMatrix(SCENARIO_A)
        assert as_distance_matrix(dm) is dm

    def test_array_is_validated(self):
        with pytest.raises(DistanceMatrixError):
            as_distance_matrix([[0, 1], [2, 0]])

    def test_passthrough_checks_ntax(self):
        with pytest.raises(DistanceMatrixError):
            as_distance_matrix(DistanceMatrix(SCENARIO_A), ntax=5)
