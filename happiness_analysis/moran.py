"""
Moran's I Module
================

Global and local Moran's I for testing whether happiness (or any other
attribute) is spatially clustered across neighbouring countries/states.

**Global Moran's I**

    I = (n / S0) * sum_ij w_ij z_i z_j / sum_i z_i^2,   z = x - mean(x)

I > E[I] = -1/(n-1) indicates clustering of similar values, I < E[I]
indicates dispersion (neighbours dissimilar). Significance uses the
variance under the randomisation assumption (Cliff & Ord 1981), which
corrects for the kurtosis of x.

**Local Moran's I (LISA)**

    I_i = (z_i / m2) * sum_j w_ij z_j,   m2 = sum_k z_k^2 / n

Positive I_i: entity sits among similar values (HH or LL cluster).
Negative I_i: spatial outlier (HL or LH). The local values decompose the
global statistic: sum_i I_i = S0 * I.

References
----------
Moran, P. A. P. (1950). Notes on continuous stochastic phenomena.
Biometrika, 37(1/2), 17-23.

Anselin, L. (1995). Local indicators of spatial association - LISA.
Geographical Analysis, 27(2), 93-115.

Sokal, R. R., Oden, N. L., & Thomson, B. A. (1998). Local spatial
autocorrelation in a biological model. Geographical Analysis, 30(4), 331-354.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from .config import (
    ALTERNATIVES, DEFAULT_ALTERNATIVE, FDR_METHOD, MIN_ENTITIES,
    PERMUTATIONS, RANDOM_SEED, SIGNIFICANCE_LEVEL
)
from .exceptions import ConfigurationError, UndefinedStatisticError
from .weights import SpatialWeights


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True)
class GlobalResult:
    """Global Moran's I with normal-theory (randomisation) inference."""

    I: float
    expected: float
    variance: float
    z: float
    p: float
    alternative: str
    n: int
    p_sim: Optional[float] = None

    @property
    def significant(self) -> bool:
        p = self.p_sim if self.p_sim is not None else self.p
        return bool(p < SIGNIFICANCE_LEVEL)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LocalResult:
    """
    Local Moran's I for one entity.

    Isolated entities have computable=False and NaN statistics.
    """

    index: int
    id: Any
    I_i: float
    expected: float
    variance: float
    z: float
    p: float
    p_sim: float
    quadrant: Optional[str]
    computable: bool = True


# ============================================================================
# SHARED HELPERS
# ============================================================================

def check_alternative(alternative: str) -> str:
    """Validate an alternative hypothesis name."""
    if alternative not in ALTERNATIVES:
        raise ConfigurationError(
            f"Unknown alternative: {alternative!r}. Available: {list(ALTERNATIVES)}"
        )
    return alternative


def normal_p_value(z, alternative: str = DEFAULT_ALTERNATIVE):
    """
    P-value of a z-score under the standard normal.

    'greater' tests for clustering (z > 0), 'less' for dispersion,
    'two-sided' for either.
    """
    check_alternative(alternative)
    if alternative == 'greater':
        return stats.norm.sf(z)
    if alternative == 'less':
        return stats.norm.cdf(z)
    return 2.0 * stats.norm.sf(np.abs(z))


def _centered(values: np.ndarray, what: str = "Moran's I") -> np.ndarray:
    if np.ptp(values) == 0:
        raise UndefinedStatisticError(
            f"{what} is undefined: all {len(values)} values are equal (zero variance)"
        )
    return values - values.mean()


def morans_i_statistic(values, weights: SpatialWeights) -> float:
    """
    Global Moran's I point estimate only.

    This is the default statistic_fn of permutation_test(): it is called
    once per permutation, so it skips the moment calculations.
    """
    y = np.asarray(values, dtype=float)
    s0 = weights.s0
    if s0 == 0:
        raise UndefinedStatisticError("Moran's I is undefined: no entity has any neighbour")
    z = _centered(y)
    z2ss = z @ z
    return float(len(y) / s0 * (z @ weights.spatial_lag(z)) / z2ss)


# ============================================================================
# GLOBAL MORAN'S I
# ============================================================================

def global_morans_i(
    values,
    weights: SpatialWeights,
    alternative: str = DEFAULT_ALTERNATIVE,
    permutations: int = 0,
    seed: Optional[int] = RANDOM_SEED,
    verbose: bool = False
) -> GlobalResult:
    """
    Compute global Moran's I and its analytic z-test.

    Parameters
    ----------
    values : array-like (n,)
        Attribute under test (e.g., happiness score), aligned with weights
    weights : SpatialWeights
        Output from build_weights()
    alternative : str
        'two-sided', 'greater' (clustering) or 'less' (dispersion)
    permutations : int
        If > 0, also run permutation_test() and report p_sim
    seed : int, optional
        Seed for the permutation test
    verbose : bool
        Print results

    Returns
    -------
    GlobalResult
        I, expected, variance, z, p (and p_sim when permutations > 0)

    Raises
    ------
    DimensionMismatchError
        len(values) != number of entities
    UndefinedStatisticError
        Constant values, fewer than 4 entities, or no links at all

    Examples
    --------
    >>> w = build_weights(build_neighbors(states_gdf))
    >>> res = global_morans_i(states_gdf['happiness_score'], w)
    >>> print(f"Moran's I = {res.I:.3f}, p = {res.p:.4f}")
    """
    check_alternative(alternative)
    y = weights.check_values(values)
    n = len(y)

    if n < MIN_ENTITIES:
        raise UndefinedStatisticError(
            f"Moran's I needs at least {MIN_ENTITIES} entities for its variance, got {n}"
        )
    s0 = weights.s0
    if s0 == 0:
        raise UndefinedStatisticError("Moran's I is undefined: no entity has any neighbour")

    z = _centered(y)
    z2ss = z @ z
    I = n / s0 * (z @ weights.spatial_lag(z)) / z2ss

    # Moments under randomisation
    expected = -1.0 / (n - 1)
    s1, s2 = weights.s1, weights.s2
    s02 = s0 * s0
    n2 = n * n
    b2 = n * (z ** 4).sum() / z2ss ** 2
    A = n * ((n2 - 3 * n + 3) * s1 - n * s2 + 3 * s02)
    B = b2 * ((n2 - n) * s1 - 2 * n * s2 + 6 * s02)
    C = (n - 1) * (n - 2) * (n - 3) * s02
    variance = (A - B) / C - expected ** 2

    if variance <= 0:
        raise UndefinedStatisticError(
            f"Randomisation variance of Moran's I is not positive ({variance:.3g}); "
            f"the neighbour graph is too small or degenerate for a z-test"
        )

    z_score = (I - expected) / np.sqrt(variance)
    p = float(normal_p_value(z_score, alternative))

    p_sim = None
    if permutations:
        from .permutation import permutation_test
        perm = permutation_test(
            y, weights, n_sims=permutations, seed=seed, alternative=alternative
        )
        p_sim = perm.p_empirical

    result = GlobalResult(
        I=float(I),
        expected=float(expected),
        variance=float(variance),
        z=float(z_score),
        p=p,
        alternative=alternative,
        n=n,
        p_sim=p_sim,
    )

    if verbose:
        print("\n" + "=" * 60)
        print("MORAN'S I SPATIAL AUTOCORRELATION TEST")
        print("=" * 60)
        print(f"\nSample size: n = {n}")
        print(f"Moran's I: {result.I:.4f}")
        print(f"Expected I (under H0): {result.expected:.4f}")
        print(f"Z-score: {result.z:.3f}")
        print(f"P-value (normal, {alternative}): {result.p:.4f}")
        if p_sim is not None:
            print(f"P-value ({permutations} permutations): {p_sim:.4f}")
        print(f"\nInterpretation: {interpret_morans_i(result)}")

    return result


def interpret_morans_i(result: GlobalResult, alpha: float = SIGNIFICANCE_LEVEL) -> str:
    """Interpret Moran's I statistic."""
    p = result.p_sim if result.p_sim is not None else result.p
    if p >= alpha:
        return "No significant spatial pattern (random)"
    elif result.I > result.expected:
        return "Positive autocorrelation (clustering): similar values cluster spatially"
    else:
        return "Negative autocorrelation (dispersion): dissimilar values neighbor each other"


# ============================================================================
# LOCAL MORAN'S I
# ============================================================================

def _quadrant(z_i: float, lag_i: float) -> str:
    if z_i > 0:
        return 'HH' if lag_i > 0 else 'HL'
    return 'LH' if lag_i > 0 else 'LL'


def _local_permutation_p(
    z: np.ndarray,
    weights: SpatialWeights,
    observed: np.ndarray,
    m2: float,
    permutations: int,
    seed: Optional[int],
    alternative: str
) -> np.ndarray:
    """
    Conditional permutation p-values for local Moran's I.

    For each entity i the value z_i stays in place and |N(i)| values are
    drawn without replacement from the other n-1 entities. One random
    draw matrix is shared by all entities; draws are mapped onto "all
    indices except i" by shifting indices >= i up by one.
    """
    n = len(z)
    rng = np.random.default_rng(seed)
    max_k = int(weights.relation.cardinalities.max())
    draws = rng.random((permutations, n - 1)).argsort(axis=1)[:, :max_k]

    p_sim = np.full(n, np.nan)
    W = weights.sparse
    for i in range(n):
        row = W.getrow(i)
        k_i = row.nnz
        if k_i == 0:
            continue
        idx = draws[:, :k_i]
        idx = idx + (idx >= i)
        sim = (z[i] / m2) * (z[idx] @ row.data)

        if alternative == 'greater':
            extreme = (sim >= observed[i]).sum()
        elif alternative == 'less':
            extreme = (sim <= observed[i]).sum()
        else:
            extreme = (np.abs(sim) >= np.abs(observed[i])).sum()
        p_sim[i] = (extreme + 1.0) / (permutations + 1.0)

    return p_sim


def local_morans_i(
    values,
    weights: SpatialWeights,
    permutations: int = PERMUTATIONS,
    seed: Optional[int] = RANDOM_SEED,
    alternative: str = DEFAULT_ALTERNATIVE,
    verbose: bool = False
) -> List[LocalResult]:
    """
    Compute local Moran's I for every entity.

    Parameters
    ----------
    values : array-like (n,)
        Attribute under test
    weights : SpatialWeights
        Output from build_weights()
    permutations : int
        Conditional permutations per entity for p_sim (0 to skip)
    seed : int, optional
        Seed for the permutation draws
    alternative : str
        Applies to both the analytic p and p_sim
    verbose : bool
        Print cluster counts

    Returns
    -------
    list of LocalResult
        One record per entity, in input order. Analytic inference uses the
        conditional randomisation moments of Sokal et al. (1998).
        Isolated entities are returned with computable=False.
    """
    check_alternative(alternative)
    y = weights.check_values(values)
    n = len(y)
    if n < 3:
        raise UndefinedStatisticError(f"Local Moran's I needs at least 3 entities, got {n}")

    z = _centered(y, what="Local Moran's I")
    m2 = (z @ z) / n
    lag = weights.spatial_lag(z)
    Is = z * lag / m2

    # Conditional randomisation moments (Sokal et al. 1998, eqs. A7-A8)
    W = weights.sparse
    wi = weights.row_sums
    wi2 = np.asarray(W.multiply(W).sum(axis=1)).flatten()
    expected = -(z ** 2 * wi) / ((n - 1) * m2)
    variance = ((z / m2) ** 2 * (n / (n - 2))
                * (wi2 - wi ** 2 / (n - 1))
                * (m2 - z ** 2 / (n - 1)))

    with np.errstate(divide='ignore', invalid='ignore'):
        z_scores = np.where(variance > 0, (Is - expected) / np.sqrt(variance), np.nan)
    p_values = np.where(np.isnan(z_scores), np.nan, normal_p_value(z_scores, alternative))

    if permutations:
        p_sim = _local_permutation_p(z, weights, Is, m2, permutations, seed, alternative)
    else:
        p_sim = np.full(n, np.nan)

    isolated = set(weights.islands)
    results = []
    for i in range(n):
        if i in isolated:
            results.append(LocalResult(
                index=i, id=weights.ids[i], I_i=np.nan, expected=np.nan,
                variance=np.nan, z=np.nan, p=np.nan, p_sim=np.nan,
                quadrant=None, computable=False,
            ))
            continue
        results.append(LocalResult(
            index=i,
            id=weights.ids[i],
            I_i=float(Is[i]),
            expected=float(expected[i]),
            variance=float(variance[i]),
            z=float(z_scores[i]),
            p=float(p_values[i]),
            p_sim=float(p_sim[i]),
            quadrant=_quadrant(z[i], lag[i]),
        ))

    if verbose:
        frame = local_results_to_frame(results)
        p_col = 'p_sim' if permutations else 'p'
        sig = frame[frame[p_col] < SIGNIFICANCE_LEVEL]
        print("\n" + "=" * 60)
        print("LOCAL MORAN'S I (LISA)")
        print("=" * 60)
        print(f"Entities: {n} ({len(isolated)} not computable)")
        print(f"Significant at {SIGNIFICANCE_LEVEL} ({p_col}): {len(sig)}")
        for quad in ['HH', 'LL', 'HL', 'LH']:
            print(f"  {quad}: {(sig['quadrant'] == quad).sum()}")

    return results


def local_results_to_frame(results) -> pd.DataFrame:
    """Convert LocalResult / GiResult records into a DataFrame indexed by entity id."""
    frame = pd.DataFrame([asdict(r) for r in results])
    if len(frame):
        frame = frame.set_index('id')
    return frame


def adjust_pvalues(results, method: str = FDR_METHOD, column: str = 'p_sim',
                   alpha: float = SIGNIFICANCE_LEVEL) -> np.ndarray:
    """
    Multiple testing correction of local p-values.

    Testing every entity inflates false positives; Benjamini-Hochberg FDR
    is the default. Entities without a p-value stay NaN.

    Parameters
    ----------
    results : list of LocalResult or GiResult
    method : str
        Any method accepted by statsmodels multipletests
    column : str
        'p_sim' or 'p'
    alpha : float
        Family-wise / FDR level passed to multipletests

    Returns
    -------
    ndarray
        Corrected p-values aligned with results
    """
    p = np.array([getattr(r, column) for r in results], dtype=float)
    adjusted = np.full(len(p), np.nan)
    valid = ~np.isnan(p)
    if valid.any():
        _, p_corrected, _, _ = multipletests(p[valid], alpha=alpha, method=method)
        adjusted[valid] = p_corrected
    return adjusted
