"""
Tests for the case-table pipeline and the full-analysis driver.
"""

import numpy as np
import pandas as pd
import pytest
from geopandas.testing import assert_geodataframe_equal

from happiness_analysis import AnalysisCase, default_cases, run_case, run_cases
from happiness_analysis.main import run_full_analysis
from conftest import make_grid


@pytest.fixture
def entities():
    """5x5 grid: happiness rises to the east, coastal column 0, three climate rows."""
    gdf = make_grid(5, 5)
    rows = np.repeat(np.arange(5), 5)
    cols = np.tile(np.arange(5), 5)
    gdf['happiness_score'] = cols + 0.5 * rows
    gdf['pop_density'] = np.random.default_rng(3).gamma(2.0, 50.0, size=25)
    gdf['is_coastal'] = cols == 0
    gdf['climate_zone'] = np.where(rows == 0, 'tropical',
                                   np.where(rows == 4, 'polar', 'temperate'))
    return gdf


def test_default_cases_follow_columns(entities):
    names = [c.name for c in default_cases(entities[['name', 'happiness_score', 'geometry']])]
    assert names == ['happiness_all']

    names = [c.name for c in default_cases(entities)]
    assert names[:3] == ['happiness_all', 'happiness_coastal', 'happiness_inland']
    assert 'happiness_polar' in names
    assert 'density_all' in names
    assert 'delivery_all' not in names


def test_default_cases_knn_gets_default_k(entities):
    cases = default_cases(entities, mode='knn')
    assert all(c.mode == 'knn' and c.k == 4 for c in cases)


def test_run_case_outputs(entities):
    result = run_case(entities, AnalysisCase('happiness_all', 'happiness_score'),
                      permutations=99, seed=1)

    assert set(result) == {'case', 'n', 'n_dropped', 'neighbors', 'weights', 'global',
                           'permutation', 'local', 'getis_ord'}
    assert result['n'] == 25
    assert result['n_dropped'] == 0
    assert result['global'].I > 0
    assert result['permutation'].n_sims == 99
    assert 'p_fdr' in result['local'].columns
    assert 'hotspot' in result['getis_ord'].columns
    assert result['local'].index[0] == 'cell_0_0'


def test_run_case_subsets(entities):
    coastal = run_case(entities, AnalysisCase('c', 'happiness_score', subset=('is_coastal', True)),
                       permutations=19)
    assert coastal['n'] == 5

    dense = AnalysisCase('d', 'happiness_score',
                         subset=lambda df: df['pop_density'] > df['pop_density'].median())
    assert len(dense.select(entities)) == 12


def test_run_case_without_permutations(entities):
    result = run_case(entities, AnalysisCase('h', 'happiness_score'), permutations=0)

    local = result['local']
    assert result['permutation'] is None
    assert local['p_sim'].isna().all()
    # FDR falls back to the analytic p-values
    defined = local['p'].notna()
    assert defined.any()
    assert local.loc[defined, 'p_fdr'].notna().all()
    assert (local.loc[defined, 'p_fdr'] >= local.loc[defined, 'p'] - 1e-12).all()


def test_missing_values_dropped(entities):
    gappy = entities.copy()
    gappy.loc['cell_2_2', 'happiness_score'] = np.nan

    with pytest.warns(UserWarning, match="dropped 1"):
        result = run_case(gappy, AnalysisCase('h', 'happiness_score'), permutations=19)
    assert result['n'] == 24


def test_run_cases_records_failures(entities):
    cases = default_cases(entities)
    cases.append(AnalysisCase('polar_knn', 'happiness_score',
                              subset=('climate_zone', 'polar'), mode='knn', k=6))

    with pytest.warns(UserWarning, match="skipped"):
        summary, details = run_cases(entities, cases, permutations=19, verbose=False)

    summary = summary.set_index('case')
    assert len(summary) == len(cases)
    assert pd.isna(summary.loc['happiness_all', 'error'])
    assert '0 entities' in summary.loc['happiness_subtropical', 'error']
    assert 'k must satisfy' in summary.loc['polar_knn', 'error']
    assert 'happiness_subtropical' not in details
    assert summary.loc['happiness_all', 'n'] == 25
    assert summary.loc['happiness_all', 'I'] > 0


def test_run_cases_reproducible(entities):
    cases = [AnalysisCase('h', 'happiness_score'), AnalysisCase('d', 'pop_density')]

    first, _ = run_cases(entities, cases, permutations=49, seed=42, verbose=False)
    second, _ = run_cases(entities, cases, permutations=49, seed=42, verbose=False)

    pd.testing.assert_frame_equal(first, second)


def test_input_not_modified(entities):
    before = entities.copy()
    run_case(entities, AnalysisCase('h', 'happiness_score', subset=('climate_zone', 'temperate')),
             permutations=19)

    assert_geodataframe_equal(entities, before)


def test_select_missing_column(entities):
    with pytest.raises(ValueError, match="not found"):
        AnalysisCase('x', 'life_expectancy').select(entities)
    with pytest.raises(ValueError, match="not found"):
        AnalysisCase('x', 'happiness_score', subset=('continent', 'Europe')).select(entities)


def test_full_analysis_single_column(entities):
    results = run_full_analysis(entities, permutations=19, value_col='happiness_score')

    assert list(results['summary']['case']) == ['happiness_score_all']
    assert {'coastal', 'climate', 'density_class'} <= set(results['descriptive'])
    assert 'density_quartile' in results['entities'].columns
    assert 'density_quartile' not in entities.columns
