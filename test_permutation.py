"""
Tests for the Monte Carlo permutation tester.
"""

import numpy as np
import pytest
from shapely.geometry import box

from happiness_analysis import (
    ConfigurationError, UndefinedStatisticError, build_neighbors, build_weights,
    empirical_p_value, morans_i_statistic, permutation_test
)
from conftest import halves_values, make_grid

# ten entities on a 2 x 5 grid
VALUES_10 = np.array([3.1, 4.5, 6.2, 5.0, 7.7, 2.2, 4.8, 6.9, 5.5, 8.1])


@pytest.fixture
def weights_10():
    return build_weights(build_neighbors(make_grid(2, 5)))


def test_seed_42_reproducible(weights_10):
    first = permutation_test(VALUES_10, weights_10, n_sims=999, seed=42)
    second = permutation_test(VALUES_10, weights_10, n_sims=999, seed=42)

    assert first.p_empirical == second.p_empirical
    np.testing.assert_array_equal(first.simulated, second.simulated)
    assert first.rank == second.rank
    assert len(first.simulated) == 999


def test_parallel_blocks_match_sequential(weights_10):
    sequential = permutation_test(VALUES_10, weights_10, n_sims=999, seed=42, n_jobs=1)
    threaded = permutation_test(VALUES_10, weights_10, n_sims=999, seed=42, n_jobs=3)

    np.testing.assert_array_equal(sequential.simulated, threaded.simulated)
    assert sequential.p_empirical == threaded.p_empirical


def test_different_seeds_differ(weights_10):
    a = permutation_test(VALUES_10, weights_10, n_sims=199, seed=1)
    b = permutation_test(VALUES_10, weights_10, n_sims=199, seed=2)

    assert not np.array_equal(a.simulated, b.simulated)


def test_observed_matches_statistic(weights_10):
    result = permutation_test(VALUES_10, weights_10, n_sims=99, seed=0)

    assert result.observed == pytest.approx(morans_i_statistic(VALUES_10, weights_10))
    assert 1 <= result.rank <= 100
    assert 1 / 100 <= result.p_empirical <= 1


def test_clustered_blocks_significant():
    w = build_weights(build_neighbors(make_grid(4, 4)))
    result = permutation_test(halves_values(4, 4), w, n_sims=999, seed=42,
                              alternative='greater')

    assert result.p_empirical < 0.05
    assert result.rank > 950
    assert result.z_sim > 0


def test_empirical_p_value_formulas():
    simulated = np.arange(1.0, 10.0)

    assert empirical_p_value(10.0, simulated, 'greater') == pytest.approx(0.1)
    assert empirical_p_value(10.0, simulated, 'less') == pytest.approx(1.0)
    assert empirical_p_value(10.0, simulated, 'two-sided') == pytest.approx(0.2)
    assert empirical_p_value(5.0, simulated, 'two-sided') == pytest.approx(1.0)


def test_custom_statistic(weights_10):
    # the maximum is invariant under permutation, so every draw ties the observation
    result = permutation_test(VALUES_10, weights_10,
                              statistic_fn=lambda y, w: float(np.max(y)),
                              n_sims=50, seed=0, alternative='greater')

    assert result.p_empirical == pytest.approx(1.0)


def test_block_size_does_not_change_count(weights_10):
    result = permutation_test(VALUES_10, weights_10, n_sims=101, seed=9, block_size=25)

    assert result.n_sims == 101
    assert len(result.simulated) == 101


@pytest.mark.parametrize("n_sims", [0, -5, 2.5])
def test_invalid_n_sims(weights_10, n_sims):
    with pytest.raises(ConfigurationError):
        permutation_test(VALUES_10, weights_10, n_sims=n_sims)


def test_invalid_alternative(weights_10):
    with pytest.raises(ConfigurationError):
        permutation_test(VALUES_10, weights_10, n_sims=10, alternative='both')


def test_no_links_raises_typed_error():
    squares = [box(3 * i, 0, 3 * i + 1, 1) for i in range(5)]
    with pytest.warns(UserWarning):
        w = build_weights(build_neighbors(squares))

    with pytest.raises(UndefinedStatisticError):
        permutation_test([1.0, 2.0, 3.0, 4.0, 5.0], w, n_sims=9, seed=1)
