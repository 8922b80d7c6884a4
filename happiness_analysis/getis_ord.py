"""
Getis-Ord Gi* Hot Spot Module

Identifies hot spots (groups of neighbouring entities with high values,
e.g. a block of very happy countries) and cold spots (neighbouring low
values).

    G*_i = sum_j w*_ij x_j / sum_j x_j

where w* is the weights matrix with each entity added to its own
neighbour set. The standardised form used for inference is

    z_i = (sum_j w*_ij x_j - xbar * W*_i) / (s * sqrt((n * S*_1i - W*_i^2) / (n - 1)))

with W*_i = sum_j w*_ij, S*_1i = sum_j w*_ij^2, and xbar, s the global
mean and standard deviation of x.

References
----------
Ord, J. K., & Getis, A. (1995). Local spatial autocorrelation statistics:
distributional issues and an application. Geographical Analysis, 27(4), 286-306.
"""

from dataclasses import dataclass
from typing import Any, List, Sequence

import numpy as np

from .config import DEFAULT_ALTERNATIVE, HOTSPOT_LEVELS
from .exceptions import UndefinedStatisticError
from .moran import check_alternative, normal_p_value
from .weights import SpatialWeights


@dataclass(frozen=True)
class GiResult:
    """Getis-Ord Gi* for one entity; isolates have computable=False."""

    index: int
    id: Any
    G_i: float
    z: float
    p: float
    computable: bool = True


def local_getis_ord(
    values,
    weights: SpatialWeights,
    alternative: str = DEFAULT_ALTERNATIVE,
    verbose: bool = False
) -> List[GiResult]:
    """
    Compute local Getis-Ord Gi* (self-inclusive) for every entity.

    Parameters
    ----------
    values : array-like (n,)
        Attribute under test. Gi* is meant for non-negative values
        (scores, densities); G_i itself is undefined when sum(x) == 0.
    weights : SpatialWeights
        Output from build_weights(); the self link is added internally
    alternative : str
        'two-sided', 'greater' (hot spots) or 'less' (cold spots)
    verbose : bool
        Print hot/cold spot counts

    Returns
    -------
    list of GiResult
        One record per entity in input order. High positive z marks a hot
        spot, high negative z a cold spot.

    Raises
    ------
    UndefinedStatisticError
        All values equal (no variance to standardise by)
    """
    check_alternative(alternative)
    x = weights.check_values(values)
    n = len(x)
    if n < 3:
        raise UndefinedStatisticError(f"Getis-Ord Gi* needs at least 3 entities, got {n}")

    if np.ptp(x) == 0:
        raise UndefinedStatisticError(
            f"Getis-Ord Gi* is undefined: all {n} values are equal (zero variance)"
        )

    xbar = x.mean()
    s = x.std()

    w_star = weights.with_self()
    W = w_star.sparse
    lag = W @ x
    wi = w_star.row_sums
    s1i = np.asarray(W.multiply(W).sum(axis=1)).flatten()

    total = x.sum()
    # zero when an entity's self-inclusive set covers every entity
    spread = (n * s1i - wi ** 2) / (n - 1)
    spread[np.isclose(spread, 0.0, atol=1e-12)] = 0.0
    with np.errstate(divide='ignore', invalid='ignore'):
        G = lag / total if total != 0 else np.full(n, np.nan)
        denom = s * np.sqrt(spread)
        z = np.where(denom > 0, (lag - xbar * wi) / denom, np.nan)
    p = np.where(np.isnan(z), np.nan, normal_p_value(z, alternative))

    isolated = set(weights.islands)
    results = []
    for i in range(n):
        if i in isolated:
            results.append(GiResult(index=i, id=weights.ids[i], G_i=np.nan,
                                    z=np.nan, p=np.nan, computable=False))
        else:
            results.append(GiResult(index=i, id=weights.ids[i], G_i=float(G[i]),
                                    z=float(z[i]), p=float(p[i])))

    if verbose:
        labels = classify_hotspots(results)
        print("\n" + "=" * 60)
        print("GETIS-ORD Gi* HOT SPOT ANALYSIS")
        print("=" * 60)
        print(f"Entities: {n} ({len(isolated)} not computable)")
        for label in sorted(set(labels)):
            print(f"  {label:<20}: {labels.count(label)}")

    return results


def classify_hotspots(results: Sequence[GiResult],
                      levels: Sequence[float] = HOTSPOT_LEVELS) -> List[str]:
    """
    Label each Gi* result by confidence bin.

    Returns labels like 'Hot Spot 99%', 'Cold Spot 95%', 'Not Significant'
    or 'Not Computable' for isolates. A two-sided p-value is assumed.
    """
    levels = sorted(levels)
    labels = []
    for r in results:
        if not r.computable or np.isnan(r.p):
            labels.append('Not Computable')
            continue
        label = 'Not Significant'
        for level in levels:
            if r.p < level:
                kind = 'Hot Spot' if r.z > 0 else 'Cold Spot'
                label = f"{kind} {round((1 - level) * 100)}%"
                break
        labels.append(label)
    return labels
