"""
Spatial Weights Module
======================

Converts a NeighborRelation into a sparse weights matrix W.

Styles:
    - 'W' : row-standardised, w_ij = 1 / |N(i)|, so every row with at
            least one neighbour sums to 1
    - 'B' : binary, w_ij = 1 for every neighbour pair

Entities with no neighbours keep an all-zero row when zero_policy is on:
they add nothing to S0 and their spatial lag is 0. With zero_policy off
they abort the build with ZeroNeighborError.

W is stored as scipy.sparse CSR so country-level (~200) and finer
tessellations stay cheap in memory.
"""

import warnings
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
from scipy.sparse import csr_matrix

from .config import DEFAULT_STYLE, WEIGHT_STYLES, ZERO_POLICY
from .exceptions import ConfigurationError, DimensionMismatchError, ZeroNeighborError
from .neighbors import NeighborRelation


@dataclass(frozen=True, eq=False)
class SpatialWeights:
    """
    Sparse spatial weights.

    Attributes
    ----------
    sparse : csr_matrix (n, n)
        Weights; row i holds the outgoing weights of entity i
    style : str
        'W' or 'B'
    zero_policy : bool
        Whether isolated entities were accepted
    relation : NeighborRelation
        The neighbour relation the weights were built from
    """

    sparse: csr_matrix
    style: str
    zero_policy: bool
    relation: NeighborRelation

    @property
    def n(self) -> int:
        return self.sparse.shape[0]

    @property
    def ids(self) -> Tuple:
        return self.relation.ids

    @property
    def neighbors(self) -> Tuple[Tuple[int, ...], ...]:
        return self.relation.neighbors

    @property
    def islands(self) -> List[int]:
        return self.relation.islands

    @property
    def row_sums(self) -> np.ndarray:
        return np.asarray(self.sparse.sum(axis=1)).flatten()

    @property
    def col_sums(self) -> np.ndarray:
        return np.asarray(self.sparse.sum(axis=0)).flatten()

    @property
    def s0(self) -> float:
        """Sum of all weights."""
        return float(self.sparse.sum())

    @property
    def s1(self) -> float:
        """0.5 * sum over (i, j) of (w_ij + w_ji)^2."""
        w_sym = self.sparse + self.sparse.T
        return 0.5 * float(w_sym.multiply(w_sym).sum())

    @property
    def s2(self) -> float:
        """Sum over i of (row sum + column sum)^2."""
        return float(((self.row_sums + self.col_sums) ** 2).sum())

    def check_values(self, values) -> np.ndarray:
        """
        Validate an attribute vector against these weights.

        Returns a float copy. Raises DimensionMismatchError on a length
        mismatch and ValueError if any value is missing or infinite.
        """
        y = np.array(values, dtype=float).flatten()
        if len(y) != self.n:
            raise DimensionMismatchError(self.n, len(y))
        missing = np.flatnonzero(~np.isfinite(y))
        if len(missing):
            names = [self.ids[i] for i in missing[:5]]
            raise ValueError(
                f"{len(missing)} missing or infinite values (first: {names}). "
                f"Drop or impute them before building the neighbour graph."
            )
        return y

    def spatial_lag(self, y) -> np.ndarray:
        """
        Compute spatial lag Wy.

        Parameters
        ----------
        y : array-like (n,)

        Returns
        -------
        ndarray (n,)
            Weighted neighbour average ('W') or sum ('B'); 0 for isolates
        """
        y = np.asarray(y, dtype=float)
        if y.shape != (self.n,):
            raise DimensionMismatchError(self.n, len(y))
        return self.sparse @ y

    def with_self(self) -> 'SpatialWeights':
        """
        Return weights whose neighbour sets include the entity itself.

        Used by Getis-Ord Gi*. The style is re-applied over the enlarged
        sets, so 'W' rows still sum to 1.
        """
        augmented = tuple(
            tuple(sorted(set(nb) | {i})) for i, nb in enumerate(self.neighbors)
        )
        relation = NeighborRelation(
            neighbors=augmented,
            ids=self.relation.ids,
            mode=self.relation.mode,
            k=self.relation.k,
        )
        return SpatialWeights(
            sparse=_weights_matrix(relation, self.style),
            style=self.style,
            zero_policy=self.zero_policy,
            relation=relation,
        )

    def summary(self) -> Dict:
        """Weights summary statistics."""
        card = self.relation.cardinalities
        nnz = self.sparse.nnz
        return {
            'n_entities': self.n,
            'style': self.style,
            'zero_policy': self.zero_policy,
            'total_links': int(nnz),
            'avg_neighbors': float(card.mean()) if self.n else 0.0,
            'min_neighbors': int(card.min()) if self.n else 0,
            'max_neighbors': int(card.max()) if self.n else 0,
            'isolated_entities': len(self.islands),
            's0': self.s0,
            'sparsity': float(1.0 - nnz / (self.n * self.n)) if self.n else 0.0,
        }


def _weights_matrix(relation: NeighborRelation, style: str) -> csr_matrix:
    n = relation.n
    rows, cols, data = [], [], []
    for i, nb in enumerate(relation.neighbors):
        if not nb:
            continue
        w = 1.0 / len(nb) if style == 'W' else 1.0
        rows.extend([i] * len(nb))
        cols.extend(nb)
        data.extend([w] * len(nb))
    return csr_matrix((data, (rows, cols)), shape=(n, n), dtype=np.float64)


def build_weights(
    neighbors: NeighborRelation,
    style: str = DEFAULT_STYLE,
    zero_policy: bool = ZERO_POLICY,
    verbose: bool = False
) -> SpatialWeights:
    """
    Build spatial weights from a neighbour relation.

    Parameters
    ----------
    neighbors : NeighborRelation
        Output from build_neighbors()
    style : str
        'W' (row-standardised) or 'B' (binary)
    zero_policy : bool
        If True, isolated entities keep an all-zero row (with a warning).
        If False, the first isolated entity raises ZeroNeighborError.
    verbose : bool
        Print weights summary

    Returns
    -------
    SpatialWeights

    Raises
    ------
    ConfigurationError
        Unknown style
    ZeroNeighborError
        Isolated entity under a strict zero policy
    """
    if style not in WEIGHT_STYLES:
        raise ConfigurationError(f"Unknown weight style: {style!r}. Available: {list(WEIGHT_STYLES)}")

    islands = neighbors.islands
    if islands:
        if not zero_policy:
            i = islands[0]
            raise ZeroNeighborError(i, neighbors.ids[i])
        names = [neighbors.ids[i] for i in islands]
        warnings.warn(
            f"{len(islands)} entities have no neighbours and get all-zero weight rows: {names}"
        )

    weights = SpatialWeights(
        sparse=_weights_matrix(neighbors, style),
        style=style,
        zero_policy=zero_policy,
        relation=neighbors,
    )

    if verbose:
        summary = weights.summary()
        print("\nSpatial weights:")
        print(f"  Entities: {summary['n_entities']}")
        print(f"  Style: {summary['style']}")
        print(f"  Average neighbours: {summary['avg_neighbors']:.1f}")
        print(f"  Isolated entities: {summary['isolated_entities']}")

    return weights
