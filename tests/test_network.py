"""
tests/test_network.py
=====================
End-to-end tests for neighbor_net() and split_weights() (_network.py).

Scenario A
    Ultrametric quartet ((1,2),(3,4)).  Exactly five splits: four trivial
    of weight 1 and {1,2}|{3,4} of weight 2, fit 100.
Scenario B
    Constant distance c.  Only the n trivial splits, each c/2.
"""

import logging
import threading

import numpy as np
import pytest

from circnet import (
    ASplit,
    ComputationCancelled,
    DistanceMatrix,
    DistanceMatrixError,
    NNLSParams,
    SplitNetwork,
    Strategy,
    extract_splits,
    least_squares_fit,
    neighbor_net,
    quiet,
    split_weights,
)

from examples_distances import (
    NON_CIRCULAR_4,
    SCENARIO_A,
    circular_distances,
    constant_distances,
    dense_nnls,
    random_distances,
    random_weights,
)


ALL_STRATEGIES = list(Strategy)


def _by_side(splits):
    """Map each split's canonical side (the one without taxon 1) to its weight."""
    out = {}
    for s in splits:
        side = s.side if 1 not in s.side else s.other_side()
        out[frozenset(side)] = s.weight
    return out


@pytest.fixture(scope="module")
def scenario_a_network():
    with quiet():
        return neighbor_net(SCENARIO_A, labels=["a", "b", "c", "d"])


class TestScenarioA:
    """The ultrametric quartet is reproduced exactly."""

    def test_five_splits(self, scenario_a_network):
        net = scenario_a_network
        assert isinstance(net, SplitNetwork)
        assert len(net) == 5
        assert sum(s.is_trivial() for s in net.splits) == 4

    def test_weights(self, scenario_a_network):
        weights = _by_side(scenario_a_network.splits)
        for t in (2, 3, 4):
            assert weights[frozenset({t})] == pytest.approx(1.0)
        assert weights[frozenset({2, 3, 4})] == pytest.approx(1.0)
        assert weights[frozenset({3, 4})] == pytest.approx(2.0)

    def test_fit_and_convergence(self, scenario_a_network):
        net = scenario_a_network
        assert net.fit == pytest.approx(100.0)
        assert net.converged
        assert net.iterations == 0
        assert net.total_weight == pytest.approx(6.0)
        np.testing.assert_allclose(net.distances(), SCENARIO_A, atol=1e-12)

    def test_labels_and_cycle(self, scenario_a_network):
        net = scenario_a_network
        assert net.labels == ["a", "b", "c", "d"]
        assert net.ntax == 4
        assert sorted(net.cycle.tolist()) == [1, 2, 3, 4]
        assert len(net.labelled_cycle()) == 4
        assert [str(s) for s in net.nontrivial()] == ["3 4 | 1 2 (2)"]

    @pytest.mark.parametrize("method", ["agglomerative", "components"])
    @pytest.mark.parametrize("strategy", ALL_STRATEGIES)
    def test_every_method_and_strategy(self, method, strategy):
        """Circular input never reaches the solver, so all combinations agree."""
        net = neighbor_net(SCENARIO_A, method=method, params=NNLSParams(strategy=strategy))
        assert net.strategy is strategy
        assert _by_side(net.splits)[frozenset({3, 4})] == pytest.approx(2.0)


class TestScenarioB:
    """Constant distances give a star."""

    @pytest.mark.parametrize("n", [3, 4, 6, 9])
    def test_only_trivial_splits(self, n):
        c = 3.0
        with quiet():
            net = neighbor_net(constant_distances(n, c))
        assert len(net.splits) == n
        assert all(s.is_trivial() for s in net.splits)
        for s in net.splits:
            assert s.weight == pytest.approx(c / 2)


class TestSmallN:
    """n <= 2 bypasses ordering and solver."""

    def test_single_taxon(self):
        net = neighbor_net([[0.0]])
        assert net.splits == []
        np.testing.assert_array_equal(net.cycle, [1])

    def test_two_taxa(self):
        net = neighbor_net([[0.0, 2.5], [2.5, 0.0]])
        assert len(net.splits) == 1
        assert net.splits[0].side == frozenset({1})
        assert net.splits[0].weight == pytest.approx(2.5)
        assert net.fit == pytest.approx(100.0)

    def test_two_identical_taxa(self):
        assert split_weights(np.zeros((2, 2)), [1, 2]) == []


class TestSplitWeights:
    """The weight fit on a given cycle."""

    def test_circular_metric_exact(self):
        rng = np.random.default_rng(17)
        cycle = rng.permutation(np.arange(1, 8))
        w = random_weights(7, rng)
        d = circular_distances(w, cycle)
        splits = split_weights(d, cycle)
        assert len(splits) == 7 * 6 // 2
        assert least_squares_fit(d, splits) == pytest.approx(100.0)

    @pytest.mark.parametrize("strategy", ALL_STRATEGIES)
    def test_non_circular_quartet(self, strategy):
        """Only the four trivial splits, each 5/3, survive."""
        with quiet(logging.ERROR):
            params = NNLSParams(strategy=strategy, tolerance=1e-10, cg_epsilon=1e-10)
            splits = split_weights(NON_CIRCULAR_4, [1, 2, 3, 4], params)
        assert len(splits) == 4
        for s in splits:
            assert s.is_trivial()
            assert s.weight == pytest.approx(5.0 / 3.0, abs=1e-3)

    def test_warm_start_off(self):
        params = NNLSParams(strategy="active-set", warm_start=False)
        splits = split_weights(NON_CIRCULAR_4, [1, 2, 3, 4], params)
        assert len(splits) == 4

    def test_regularization_shrinks_total(self):
        rng = np.random.default_rng(23)
        d = random_distances(8, rng)
        cycle = list(range(1, 9))
        with quiet():
            plain = split_weights(d, cycle)
            shrunk = split_weights(d, cycle, NNLSParams(regularization=0.5))
        assert sum(s.weight for s in shrunk) < sum(s.weight for s in plain)

    def test_cycle_validated(self):
        with pytest.raises(ValueError, match="permutation"):
            split_weights(SCENARIO_A, [1, 2, 2, 4])

    def test_logs_strategy_and_backend(self, caplog):
        with caplog.at_level(logging.INFO, logger="circnet"):
            split_weights(SCENARIO_A, [1, 2, 3, 4], backend="python")
        assert any(
            "split_weights(strategy='gradient-projection', backend='python')" in r.message
            for r in caplog.records
        )


class TestRandomInput:
    """General metrics run through the full pipeline."""

    @pytest.mark.parametrize("strategy", [Strategy.GRADIENT_PROJECTION, Strategy.BLOCK_PIVOT])
    def test_deterministic(self, strategy):
        d = random_distances(12, np.random.default_rng(3))
        params = NNLSParams(strategy=strategy)
        with quiet():
            a = neighbor_net(d, params=params, backend="python")
            b = neighbor_net(d, params=params, backend="python")
        np.testing.assert_array_equal(a.cycle, b.cycle)
        assert a.splits == b.splits

    @pytest.mark.slow
    def test_larger_problem(self):
        d = random_distances(40, np.random.default_rng(40))
        with quiet():
            net = neighbor_net(d)
        assert 0.0 < net.fit <= 100.0
        assert sum(s.is_trivial() for s in net.splits) == 40
        assert all(s.weight >= 0 for s in net.splits)

    @pytest.mark.slow
    @pytest.mark.parametrize(
        "strategy",
        [Strategy.ACTIVE_SET, Strategy.GRADIENT_PROJECTION, Strategy.BLOCK_PIVOT],
    )
    def test_weights_match_dense_nnls(self, strategy):
        """Default parameters give the exact NNLS weights for the chosen cycle."""
        d = random_distances(40, np.random.default_rng(40))
        with quiet():
            net = neighbor_net(d, params=NNLSParams(strategy=strategy))
        idx = net.cycle - 1
        x_opt = dense_nnls(d[np.ix_(idx, idx)])
        expected = _by_side(extract_splits(x_opt, net.cycle, 1e-4))
        got = _by_side(net.splits)

        assert net.converged
        for side in set(got) | set(expected):
            assert got.get(side, 0.0) == pytest.approx(expected.get(side, 0.0), abs=1e-4)
        assert {s for s, w in got.items() if w > 1e-3} == {
            s for s, w in expected.items() if w > 1e-3
        }

    def test_circular_input_recovered(self):
        """A fully weighted circular metric comes back with every split."""
        rng = np.random.default_rng(8)
        cycle = rng.permutation(np.arange(1, 7))
        d = circular_distances(random_weights(6, rng), cycle)
        with quiet():
            net = neighbor_net(d)
        assert len(net.splits) == 15
        assert net.fit == pytest.approx(100.0)


class TestErrors:
    """Invalid input is rejected before any work."""

    @pytest.mark.parametrize(
        "data",
        [
            [[0, 1], [1, 0], [1, 1]],
            [[0, -1], [-1, 0]],
            [[0, 1], [2, 0]],
            [[1, 1], [1, 0]],
            [[0, np.nan], [np.nan, 0]],
        ],
    )
    def test_bad_matrices(self, data):
        with pytest.raises(DistanceMatrixError):
            neighbor_net(data)

    def test_ntax_mismatch(self):
        with pytest.raises(DistanceMatrixError, match="ntax"):
            neighbor_net(SCENARIO_A, ntax=5)

    def test_label_count(self):
        with pytest.raises(DistanceMatrixError):
            neighbor_net(SCENARIO_A, labels=["a", "b"])

    def test_distance_matrix_error_is_value_error(self):
        with pytest.raises(ValueError):
            neighbor_net([[0, 1], [2, 0]])

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown ordering method"):
            neighbor_net(SCENARIO_A, method="nj")

    def test_cancel(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ComputationCancelled):
            neighbor_net(random_distances(10, np.random.default_rng(1)), cancel=cancel)

    def test_accepts_distance_matrix(self):
        dm = DistanceMatrix(SCENARIO_A, labels=["w", "x", "y", "z"])
        net = neighbor_net(dm)
        assert net.labels == ["w", "x", "y", "z"]
        assert ASplit({1, 2}, 2.0, 4).same_bipartition(net.nontrivial()[0])
