"""
Autocorrelation Pipeline
========================

One parameterised pipeline for every (entity subset, attribute) pair the
reports examine: happiness across all countries, across coastal countries
only, within each climate zone, population density, delivery quality...

Each case runs the same chain of stages, and every stage returns a new
structure:

    subset -> neighbour graph -> weights -> global Moran's I
           -> permutation test -> local Moran's I -> Getis-Ord Gi*

Usage:
    >>> cases = default_cases(entities)
    >>> summary, details = run_cases(entities, cases, seed=42)
    >>> summary[['case', 'n', 'I', 'p_sim']]
"""

import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import (
    COLS, CLIMATE_ZONE_LABELS, DEFAULT_ALTERNATIVE, DEFAULT_K, DEFAULT_MODE,
    DEFAULT_STYLE, FDR_METHOD, MIN_ENTITIES, PERMUTATIONS, RANDOM_SEED,
    SIGNIFICANCE_LEVEL, ZERO_POLICY
)
from .exceptions import SpatialAnalysisError, UndefinedStatisticError
from .getis_ord import classify_hotspots, local_getis_ord
from .moran import adjust_pvalues, global_morans_i, local_morans_i, local_results_to_frame
from .neighbors import build_neighbors
from .permutation import permutation_test
from .weights import build_weights

SubsetFilter = Union[None, Tuple[str, Any], Callable[[pd.DataFrame], pd.Series]]


@dataclass(frozen=True)
class AnalysisCase:
    """
    One row of the analysis table.

    Attributes
    ----------
    name : str
        Case label used in summaries
    value_col : str
        Attribute under test
    subset : None, (column, value) or callable
        Entity filter; a callable receives the frame and returns a boolean mask
    mode, k, style, zero_policy :
        Neighbour graph and weights configuration
    """

    name: str
    value_col: str
    subset: SubsetFilter = None
    mode: str = DEFAULT_MODE
    k: Optional[int] = None
    style: str = DEFAULT_STYLE
    zero_policy: bool = ZERO_POLICY

    def select(self, df):
        """Return the entities this case applies to (a copy)."""
        if self.value_col not in df.columns:
            raise ValueError(f"Column '{self.value_col}' not found. Available: {list(df.columns)}")
        if self.subset is None:
            return df.copy()
        if callable(self.subset):
            mask = self.subset(df)
        else:
            column, value = self.subset
            if column not in df.columns:
                raise ValueError(f"Column '{column}' not found. Available: {list(df.columns)}")
            mask = df[column] == value
        return df[np.asarray(mask, dtype=bool)].copy()


def default_cases(df, mode: str = DEFAULT_MODE, k: Optional[int] = None) -> List[AnalysisCase]:
    """
    The standard case table, restricted to columns present in df.

    Happiness is tested for all entities, coastal vs. inland, and per
    climate zone; population density and delivery quality for all
    entities.
    """
    if mode == 'knn' and k is None:
        k = DEFAULT_K
    common = dict(mode=mode, k=k)
    happiness = COLS['happiness']
    cases = []

    if happiness in df.columns:
        cases.append(AnalysisCase('happiness_all', happiness, **common))
        if COLS['coastal'] in df.columns:
            cases.append(AnalysisCase('happiness_coastal', happiness,
                                      subset=(COLS['coastal'], True), **common))
            cases.append(AnalysisCase('happiness_inland', happiness,
                                      subset=(COLS['coastal'], False), **common))
        if COLS['climate'] in df.columns:
            for zone in CLIMATE_ZONE_LABELS:
                cases.append(AnalysisCase(f'happiness_{zone}', happiness,
                                          subset=(COLS['climate'], zone), **common))

    for key in ('density', 'delivery'):
        if COLS[key] in df.columns:
            cases.append(AnalysisCase(f'{key}_all', COLS[key], **common))

    return cases


def run_case(
    df,
    case: AnalysisCase,
    permutations: int = PERMUTATIONS,
    seed: Optional[int] = RANDOM_SEED,
    alternative: str = DEFAULT_ALTERNATIVE,
    n_jobs: int = 1,
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Run the full autocorrelation chain for one case.

    Parameters
    ----------
    df : GeoDataFrame
        Entities with polygon geometry and the case's attribute
    case : AnalysisCase
    permutations : int
        Permutations for the global test and for local p_sim; 0 skips
        both and leaves 'permutation' as None
    seed : int, optional
        Seed threaded through every stochastic step
    alternative : str
        Alternative hypothesis for all tests
    n_jobs : int
        Threads for the global permutation test
    verbose : bool
        Print each stage's report

    Returns
    -------
    dict
        'case', 'n', 'n_dropped', 'neighbors', 'weights', 'global',
        'permutation', 'local' (DataFrame), 'getis_ord' (DataFrame)

    Raises
    ------
    SpatialAnalysisError
        From any stage (bad k, isolates under strict policy, zero variance)
    """
    entities = case.select(df)
    n_before = len(entities)
    entities = entities[entities[case.value_col].notna()]
    n_dropped = n_before - len(entities)
    if n_dropped:
        warnings.warn(f"Case '{case.name}': dropped {n_dropped} entities with missing {case.value_col}")
    if len(entities) < MIN_ENTITIES:
        raise UndefinedStatisticError(
            f"Case '{case.name}' has {len(entities)} entities; at least {MIN_ENTITIES} are needed"
        )

    if verbose:
        print("\n" + "-" * 60)
        print(f"CASE: {case.name} ({case.value_col}, n = {len(entities)})")
        print("-" * 60)

    values = entities[case.value_col].to_numpy(dtype=float)
    relation = build_neighbors(entities, mode=case.mode, k=case.k, verbose=verbose)
    weights = build_weights(relation, style=case.style, zero_policy=case.zero_policy,
                            verbose=verbose)

    global_result = global_morans_i(values, weights, alternative=alternative, verbose=verbose)
    perm = None
    if permutations:
        perm = permutation_test(values, weights, n_sims=permutations, seed=seed,
                                alternative=alternative, n_jobs=n_jobs, verbose=verbose)

    local = local_morans_i(values, weights, permutations=permutations, seed=seed,
                           alternative=alternative, verbose=verbose)
    local_frame = local_results_to_frame(local)
    p_column = 'p_sim' if permutations else 'p'
    local_frame['p_fdr'] = adjust_pvalues(local, method=FDR_METHOD, column=p_column)

    gi = local_getis_ord(values, weights, alternative=alternative, verbose=verbose)
    gi_frame = local_results_to_frame(gi)
    gi_frame['hotspot'] = classify_hotspots(gi)

    return {
        'case': case,
        'n': len(entities),
        'n_dropped': n_dropped,
        'neighbors': relation,
        'weights': weights,
        'global': global_result,
        'permutation': perm,
        'local': local_frame,
        'getis_ord': gi_frame,
    }


def _summary_row(case: AnalysisCase, result: Optional[Dict], error: Optional[str],
                 alpha: float) -> Dict[str, Any]:
    row = {'case': case.name, 'value_col': case.value_col, 'mode': case.mode,
           'n': np.nan, 'I': np.nan, 'expected': np.nan, 'z': np.nan,
           'p_norm': np.nan, 'p_sim': np.nan, 'n_HH': 0, 'n_LL': 0,
           'n_HL': 0, 'n_LH': 0, 'n_hot': 0, 'n_cold': 0, 'error': error}
    if result is None:
        return row

    g = result['global']
    perm = result['permutation']
    row.update(n=result['n'], I=g.I, expected=g.expected, z=g.z, p_norm=g.p,
               p_sim=perm.p_empirical if perm is not None else np.nan)

    local = result['local']
    p_col = 'p_sim' if local['p_sim'].notna().any() else 'p'
    sig = local[local[p_col] < alpha]
    for quad in ('HH', 'LL', 'HL', 'LH'):
        row[f'n_{quad}'] = int((sig['quadrant'] == quad).sum())

    hotspot = result['getis_ord']['hotspot']
    row['n_hot'] = int(hotspot.str.startswith('Hot').sum())
    row['n_cold'] = int(hotspot.str.startswith('Cold').sum())
    return row


def run_cases(
    df,
    cases: List[AnalysisCase],
    permutations: int = PERMUTATIONS,
    seed: Optional[int] = RANDOM_SEED,
    alternative: str = DEFAULT_ALTERNATIVE,
    n_jobs: int = 1,
    alpha: float = SIGNIFICANCE_LEVEL,
    verbose: bool = True
) -> Tuple[pd.DataFrame, Dict[str, Dict]]:
    """
    Run a table of cases and collect a summary.

    A case that fails with a SpatialAnalysisError (too few entities in a
    climate zone, all-isolated subset, constant values...) is recorded in
    the 'error' column and the remaining cases still run.

    Returns
    -------
    summary : DataFrame
        One row per case
    details : dict
        case name -> run_case() output, for cases that succeeded
    """
    rows = []
    details = {}

    for case in cases:
        try:
            result = run_case(df, case, permutations=permutations, seed=seed,
                              alternative=alternative, n_jobs=n_jobs, verbose=verbose)
        except SpatialAnalysisError as e:
            warnings.warn(f"Case '{case.name}' skipped: {e}")
            rows.append(_summary_row(case, None, str(e), alpha))
            continue
        details[case.name] = result
        rows.append(_summary_row(case, result, None, alpha))

    summary = pd.DataFrame(rows)

    if verbose:
        print("\n" + "=" * 70)
        print("AUTOCORRELATION SUMMARY")
        print("=" * 70)
        cols = ['case', 'n', 'I', 'z', 'p_norm', 'p_sim', 'n_hot', 'n_cold']
        print(summary[cols].to_string(index=False, float_format=lambda v: f"{v:.4f}"))
        failed = summary[summary['error'].notna()]
        for _, row in failed.iterrows():
            print(f"  ✗ {row['case']}: {row['error']}")

    return summary, details
