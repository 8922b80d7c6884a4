"""
Tests for global and local Moran's I.
"""

import numpy as np
import pytest
from shapely.geometry import box

from happiness_analysis import (
    ConfigurationError, DimensionMismatchError, UndefinedStatisticError,
    adjust_pvalues, build_neighbors, build_weights, global_morans_i,
    local_morans_i, local_results_to_frame, morans_i_statistic
)
from conftest import checkerboard_values, halves_values, make_grid


def queen_weights(nrows, ncols, style='W'):
    return build_weights(build_neighbors(make_grid(nrows, ncols)), style=style)


def test_constant_values_undefined():
    w = queen_weights(4, 4)
    with pytest.raises(UndefinedStatisticError):
        global_morans_i(np.full(16, 5.0), w)


def test_contiguous_blocks_strongly_positive():
    w = queen_weights(4, 4)
    result = global_morans_i(halves_values(4, 4), w)

    # each half is one contiguous block: I = 9.8 / 16
    assert result.I == pytest.approx(0.6125)
    assert result.I > 0.5
    assert result.z > 0
    assert result.p < 0.05


def test_checkerboard_negative():
    w = queen_weights(4, 4)
    result = global_morans_i(checkerboard_values(4, 4), w)

    assert result.I < 0
    assert result.I < result.expected


def test_checkerboard_larger_grid_negative():
    w = queen_weights(6, 6)
    result = global_morans_i(checkerboard_values(6, 6), w, alternative='less')

    assert result.I < result.expected
    assert result.z < 0
    assert result.p < 0.5


def test_two_by_two_queen_grid_is_complete_graph():
    # all four cells share at least a corner, so I = -1/(n-1) whatever the values
    w = queen_weights(2, 2)
    assert all(len(nb) == 3 for nb in w.neighbors)
    assert morans_i_statistic([1, 1, 10, 10], w) == pytest.approx(-1 / 3)
    assert morans_i_statistic([1, 10, 1, 10], w) == pytest.approx(-1 / 3)


def test_expected_value_and_result_fields():
    w = queen_weights(4, 4)
    result = global_morans_i(halves_values(4, 4), w)

    assert result.expected == pytest.approx(-1 / 15)
    assert result.variance > 0
    assert result.n == 16
    assert result.z == pytest.approx((result.I - result.expected) / np.sqrt(result.variance))
    assert result.significant
    assert result.p_sim is None


def test_alternatives_are_consistent():
    w = queen_weights(4, 4)
    values = halves_values(4, 4)
    two = global_morans_i(values, w, alternative='two-sided')
    greater = global_morans_i(values, w, alternative='greater')
    less = global_morans_i(values, w, alternative='less')

    assert greater.p + less.p == pytest.approx(1.0)
    assert two.p == pytest.approx(2 * min(greater.p, less.p))


def test_unknown_alternative():
    w = queen_weights(4, 4)
    with pytest.raises(ConfigurationError):
        global_morans_i(halves_values(4, 4), w, alternative='bigger')


def test_length_mismatch():
    w = queen_weights(4, 4)
    with pytest.raises(DimensionMismatchError):
        global_morans_i(np.arange(10.0), w)


def test_too_few_entities():
    w = queen_weights(1, 3)
    with pytest.raises(UndefinedStatisticError):
        global_morans_i([1.0, 2.0, 3.0], w)


def test_statistic_matches_full_computation():
    w = queen_weights(5, 5)
    values = np.random.default_rng(7).normal(size=25)

    assert morans_i_statistic(values, w) == pytest.approx(global_morans_i(values, w).I)


def test_binary_style_same_sign():
    values = halves_values(4, 4)
    result_b = global_morans_i(values, queen_weights(4, 4, style='B'))

    assert result_b.I > 0


def test_global_with_permutations_reports_p_sim():
    w = queen_weights(4, 4)
    result = global_morans_i(halves_values(4, 4), w, permutations=99, seed=1)

    assert result.p_sim is not None
    assert 0 < result.p_sim <= 1


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_local_sum_decomposes_global(seed):
    w = queen_weights(5, 4)
    values = np.random.default_rng(seed).normal(10, 2, size=20)

    local = local_morans_i(values, w, permutations=0)
    total = sum(r.I_i for r in local)

    assert total == pytest.approx(w.s0 * global_morans_i(values, w).I, rel=1e-9)


def test_local_decomposition_knn_weights():
    rng = np.random.default_rng(11)
    points = rng.random((15, 2))
    values = rng.normal(size=15)
    w = build_weights(build_neighbors(points, mode='knn', k=3))

    total = sum(r.I_i for r in local_morans_i(values, w, permutations=0))
    assert total == pytest.approx(w.s0 * morans_i_statistic(values, w), rel=1e-9)


def test_local_quadrants_for_blocks():
    w = queen_weights(4, 4)
    local = local_morans_i(halves_values(4, 4), w, permutations=0)

    assert local[0].quadrant == 'LL'
    assert local[15].quadrant == 'HH'
    assert local[0].I_i > 0
    assert all(r.computable for r in local)


def test_local_outlier_negative():
    values = np.ones(9)
    values[4] = 10.0          # high centre among low neighbours
    w = queen_weights(3, 3)
    local = local_morans_i(values, w, permutations=0)

    assert local[4].I_i < 0
    assert local[4].quadrant == 'HL'


def test_local_permutation_reproducible():
    w = queen_weights(4, 4)
    values = np.random.default_rng(5).normal(size=16)

    first = local_morans_i(values, w, permutations=199, seed=42)
    second = local_morans_i(values, w, permutations=199, seed=42)

    assert [r.p_sim for r in first] == [r.p_sim for r in second]
    assert all(1 / 200 <= r.p_sim <= 1 for r in first)


def test_local_isolate_not_computable(grid_with_island):
    with pytest.warns(UserWarning):
        w = build_weights(build_neighbors(grid_with_island))
    values = np.arange(10.0)

    local = local_morans_i(values, w, permutations=49)

    assert not local[9].computable
    assert np.isnan(local[9].I_i)
    assert local[9].quadrant is None
    assert all(r.computable for r in local[:9])


def test_local_frame_and_fdr():
    w = queen_weights(4, 4)
    local = local_morans_i(halves_values(4, 4), w, permutations=99, seed=3)
    frame = local_results_to_frame(local)
    adjusted = adjust_pvalues(local)

    assert list(frame.index[:2]) == ['cell_0_0', 'cell_0_1']
    assert {'I_i', 'z', 'p', 'p_sim', 'quadrant'} <= set(frame.columns)
    assert np.all(adjusted >= frame['p_sim'].to_numpy() - 1e-12)


def test_local_constant_values_undefined():
    w = queen_weights(3, 3)
    with pytest.raises(UndefinedStatisticError):
        local_morans_i(np.ones(9), w)


def test_statistic_undefined_without_links():
    squares = [box(3 * i, 0, 3 * i + 1, 1) for i in range(5)]
    with pytest.warns(UserWarning):
        w = build_weights(build_neighbors(squares))

    assert w.s0 == 0
    with pytest.raises(UndefinedStatisticError, match="no entity has any neighbour"):
        morans_i_statistic([1.0, 2.0, 3.0, 4.0, 5.0], w)


def test_small_scale_values_not_treated_as_constant():
    w = queen_weights(4, 4)
    # e.g. a density in people per square metre
    values = halves_values(4, 4) * 1e-10

    assert global_morans_i(values, w).I == pytest.approx(0.6125)
    assert morans_i_statistic(values, w) == pytest.approx(0.6125)
    local = local_morans_i(values, w, permutations=0)
    assert local[15].quadrant == 'HH'


def test_local_permutation_flags_hot_core():
    values = np.ones(25)
    values[[6, 7, 8, 11, 12, 13, 16, 17, 18]] = 10.0
    w = queen_weights(5, 5)

    local = local_morans_i(values, w, permutations=999, seed=42)

    # all 8 neighbours of the centre are high; a random draw of 8 from the
    # other 24 entities matches that about once in C(24, 8) tries
    assert local[12].quadrant == 'HH'
    assert local[12].p_sim < 0.05


def _local_p_by_loop(values, w, i, permutations, seed):
    """Bounds on p_sim for entity i, redrawing neighbours from everyone except i."""
    y = np.asarray(values, dtype=float)
    n = len(y)
    z = y - y.mean()
    m2 = (z @ z) / n
    nb = list(w.neighbors[i])
    row = w.sparse[i, nb].toarray().ravel()
    observed = abs(z[i] * (row @ z[nb]) / m2)

    rng = np.random.default_rng(seed)
    max_k = max(len(s) for s in w.neighbors)
    draws = rng.random((permutations, n - 1)).argsort(axis=1)[:, :max_k]
    others = np.delete(np.arange(n), i)

    sims = np.array([abs(z[i] * (row @ z[others[d[:len(nb)]]]) / m2) for d in draws])
    strict = (sims > observed + 1e-9).sum()
    loose = (sims >= observed - 1e-9).sum()
    return (strict + 1) / (permutations + 1), (loose + 1) / (permutations + 1)


@pytest.mark.parametrize("i", [0, 5, 15])
def test_local_permutation_matches_loop(i):
    w = queen_weights(4, 4)
    values = np.random.default_rng(13).normal(5, 2, size=16)

    local = local_morans_i(values, w, permutations=199, seed=7)
    low, high = _local_p_by_loop(values, w, i, permutations=199, seed=7)

    assert low <= local[i].p_sim <= high
