"""
Tests for Getis-Ord Gi* hot spot detection.
"""

import math

import numpy as np
import pytest

from happiness_analysis import (
    UndefinedStatisticError, build_neighbors, build_weights,
    classify_hotspots, local_getis_ord
)
from conftest import halves_values, make_grid


def test_gi_star_definition_on_strip():
    w = build_weights(build_neighbors(make_grid(1, 3)))
    gi = local_getis_ord([1.0, 2.0, 3.0], w)

    # entity 0 with itself and entity 1, weights 1/2 each
    assert gi[0].G_i == pytest.approx(1.5 / 6.0)
    assert gi[0].z == pytest.approx(-math.sqrt(1.5))
    assert gi[2].z == pytest.approx(math.sqrt(1.5))
    # entity 1 neighbours everyone: no variance left to standardise by
    assert math.isnan(gi[1].z)


def test_hot_and_cold_blocks():
    w = build_weights(build_neighbors(make_grid(4, 4)))
    gi = local_getis_ord(halves_values(4, 4), w)

    right_edge = [r * 4 + 3 for r in range(4)]
    left_edge = [r * 4 for r in range(4)]
    assert all(gi[i].z > 0 for i in right_edge)
    assert all(gi[i].z < 0 for i in left_edge)


def test_strong_hotspot_labelled():
    values = np.ones(25)
    values[[6, 7, 8, 11, 12, 13, 16, 17, 18]] = 10.0
    w = build_weights(build_neighbors(make_grid(5, 5)))
    gi = local_getis_ord(values, w)
    labels = classify_hotspots(gi)

    assert labels[12].startswith('Hot Spot')
    assert gi[12].p < 0.05
    assert set(labels) <= {
        'Hot Spot 99%', 'Hot Spot 95%', 'Hot Spot 90%',
        'Cold Spot 99%', 'Cold Spot 95%', 'Cold Spot 90%',
        'Not Significant', 'Not Computable'
    }


def test_isolate_not_computable(grid_with_island):
    with pytest.warns(UserWarning):
        w = build_weights(build_neighbors(grid_with_island))
    gi = local_getis_ord(np.arange(1.0, 11.0), w)

    assert not gi[9].computable
    assert np.isnan(gi[9].z)
    assert classify_hotspots(gi)[9] == 'Not Computable'
    assert all(r.computable for r in gi[:9])


def test_constant_values_undefined():
    w = build_weights(build_neighbors(make_grid(3, 3)))
    with pytest.raises(UndefinedStatisticError):
        local_getis_ord(np.full(9, 3.0), w)


def test_binary_style_same_direction():
    values = halves_values(4, 4)
    w_b = build_weights(build_neighbors(make_grid(4, 4)), style='B')
    gi = local_getis_ord(values, w_b)

    assert gi[3].z > 0
    assert gi[0].z < 0


def test_small_scale_values_computable():
    w = build_weights(build_neighbors(make_grid(4, 4)))
    reference = local_getis_ord(halves_values(4, 4), w)
    tiny = local_getis_ord(halves_values(4, 4) * 1e-10, w)

    np.testing.assert_allclose([r.z for r in tiny], [r.z for r in reference], rtol=1e-9)


def test_z_scores_unchanged_by_shift():
    w = build_weights(build_neighbors(make_grid(4, 4)))
    values = halves_values(4, 4)
    base = local_getis_ord(values, w)
    shifted = local_getis_ord(values + 1e8, w)

    np.testing.assert_allclose([r.z for r in shifted], [r.z for r in base], rtol=1e-6)
