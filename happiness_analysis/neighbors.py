"""
Neighbour Graph Module
======================

Builds the adjacency relation between spatial entities (countries or U.S.
states) that every autocorrelation statistic in this package is computed
over.

Two graph types are supported:

- queen : polygons are neighbours when their boundaries share at least
          one point (a common edge OR a single common vertex)
- knn   : each entity is reduced to its centroid and linked to its k
          nearest other centroids (Euclidean distance in the CRS units)

Isolated entities (islands such as Iceland, Hawaii) are a valid result,
not an error. How they are weighted is decided later by build_weights().
"""

import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import geopandas as gpd
from scipy.spatial.distance import cdist
from shapely.strtree import STRtree

from .config import DEFAULT_MODE
from .exceptions import ConfigurationError, DimensionMismatchError

MODES = ('queen', 'knn')


@dataclass(frozen=True)
class NeighborRelation:
    """
    Neighbour sets for n entities.

    Attributes
    ----------
    neighbors : tuple of tuple of int
        neighbors[i] holds the indices of the entities adjacent to i,
        in ascending order (queen) or nearest-first order (knn)
    ids : tuple
        Entity labels, aligned with neighbors
    mode : str
        'queen' or 'knn'
    k : int or None
        Number of neighbours for knn graphs
    """

    neighbors: Tuple[Tuple[int, ...], ...]
    ids: Tuple
    mode: str
    k: Optional[int] = None

    @property
    def n(self) -> int:
        return len(self.neighbors)

    @property
    def cardinalities(self) -> np.ndarray:
        """Number of neighbours per entity."""
        return np.array([len(nb) for nb in self.neighbors], dtype=int)

    @property
    def islands(self) -> List[int]:
        """Indices of entities with no neighbours."""
        return [i for i, nb in enumerate(self.neighbors) if len(nb) == 0]

    def is_symmetric(self) -> bool:
        """True if j in N(i) implies i in N(j) for every pair."""
        sets = [set(nb) for nb in self.neighbors]
        return all(i in sets[j] for i, nb in enumerate(self.neighbors) for j in nb)

    def to_dict(self) -> Dict:
        """Map entity label -> list of neighbour labels."""
        return {
            self.ids[i]: [self.ids[j] for j in nb]
            for i, nb in enumerate(self.neighbors)
        }

    def summary(self) -> Dict:
        card = self.cardinalities
        return {
            'n_entities': self.n,
            'mode': self.mode,
            'k': self.k,
            'total_links': int(card.sum()),
            'avg_neighbors': float(card.mean()) if self.n else 0.0,
            'min_neighbors': int(card.min()) if self.n else 0,
            'max_neighbors': int(card.max()) if self.n else 0,
            'isolated_entities': len(self.islands),
            'symmetric': self.is_symmetric(),
        }


def _resolve_ids(data, ids, n):
    if ids is None:
        if isinstance(data, (gpd.GeoDataFrame, gpd.GeoSeries)):
            return tuple(data.index)
        return tuple(range(n))
    ids = tuple(ids)
    if len(ids) != n:
        raise DimensionMismatchError(n, len(ids), what="ids")
    return ids


def _as_geometry_array(data):
    """Return geometries as a numpy object array."""
    if isinstance(data, gpd.GeoDataFrame):
        return np.asarray(data.geometry.values, dtype=object)
    if isinstance(data, gpd.GeoSeries):
        return np.asarray(data.values, dtype=object)
    return np.asarray(list(data), dtype=object)


def _centroid_coordinates(data) -> np.ndarray:
    """
    Reduce entities to representative points.

    Accepts an (n, 2) coordinate array, a GeoSeries/GeoDataFrame or a
    sequence of shapely geometries (polygons are reduced to centroids).
    """
    if isinstance(data, np.ndarray) and data.dtype != object:
        coords = np.asarray(data, dtype=float)
        if coords.ndim != 2 or coords.shape[1] != 2:
            raise ConfigurationError(
                f"Point coordinates must have shape (n, 2), got {coords.shape}"
            )
        return coords

    if isinstance(data, (gpd.GeoDataFrame, gpd.GeoSeries)):
        crs = data.crs
        if crs is not None and crs.is_geographic:
            warnings.warn(
                f"Input CRS {crs} is geographic: k-nearest-neighbour distances "
                f"will be measured in degrees. Reproject to a projected CRS first."
            )

    geoms = _as_geometry_array(data)
    return np.array([[g.centroid.x, g.centroid.y] for g in geoms], dtype=float)


def queen_neighbors(geometries, ids: Optional[Sequence] = None) -> NeighborRelation:
    """
    Queen contiguity: neighbours share at least one boundary point.

    Candidate pairs are found with an STRtree and the 'intersects'
    predicate, which is true for polygons touching along an edge or at a
    single vertex. Self pairs are dropped.

    Parameters
    ----------
    geometries : GeoSeries, GeoDataFrame or sequence of shapely polygons
    ids : sequence, optional
        Entity labels (defaults to the input index)

    Returns
    -------
    NeighborRelation
        Symmetric relation; isolated polygons get empty neighbour sets
    """
    geoms = _as_geometry_array(geometries)
    n = len(geoms)
    ids = _resolve_ids(geometries, ids, n)

    tree = STRtree(geoms)
    left, right = tree.query(geoms, predicate='intersects')
    mask = left != right
    left, right = left[mask], right[mask]

    sets = [set() for _ in range(n)]
    for i, j in zip(left, right):
        sets[int(i)].add(int(j))
        sets[int(j)].add(int(i))

    neighbors = tuple(tuple(sorted(s)) for s in sets)
    return NeighborRelation(neighbors=neighbors, ids=ids, mode='queen')


def knn_neighbors(points, k: int, ids: Optional[Sequence] = None) -> NeighborRelation:
    """
    k-nearest-neighbour graph on entity centroids.

    Ties at the k-th distance are broken by original entity order, so the
    graph is deterministic. The relation is generally NOT symmetric.

    Parameters
    ----------
    points : ndarray (n, 2), GeoSeries, GeoDataFrame or sequence of geometries
    k : int
        Number of neighbours, 1 <= k < n
    ids : sequence, optional
        Entity labels

    Raises
    ------
    ConfigurationError
        If k is not an integer in [1, n-1]
    """
    coords = _centroid_coordinates(points)
    n = len(coords)
    ids = _resolve_ids(points, ids, n)

    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise ConfigurationError(f"k must be an integer, got {k!r}")
    if k < 1 or k >= n:
        raise ConfigurationError(f"k must satisfy 1 <= k < n (n={n}), got k={k}")

    dist = cdist(coords, coords)
    np.fill_diagonal(dist, np.inf)

    neighbors = []
    for i in range(n):
        # stable sort keeps lower index first among equal distances
        order = np.argsort(dist[i], kind='stable')[:k]
        neighbors.append(tuple(int(j) for j in order))

    return NeighborRelation(neighbors=tuple(neighbors), ids=ids, mode='knn', k=int(k))


def build_neighbors(
    data,
    mode: str = DEFAULT_MODE,
    k: Optional[int] = None,
    ids: Optional[Sequence] = None,
    verbose: bool = False
) -> NeighborRelation:
    """
    Build the neighbour relation for a set of spatial entities.

    Parameters
    ----------
    data : GeoDataFrame, GeoSeries, sequence of geometries or ndarray (n, 2)
        Polygons for 'queen'; polygons or points for 'knn'
    mode : str
        'queen' or 'knn'
    k : int, optional
        Required for 'knn'
    ids : sequence, optional
        Entity labels used in error messages and summaries
    verbose : bool
        Print a short summary of the graph

    Returns
    -------
    NeighborRelation

    Examples
    --------
    >>> nb = build_neighbors(states_gdf, mode='queen')
    >>> nb.islands            # Alaska and Hawaii
    [1, 10]
    """
    if mode == 'queen':
        relation = queen_neighbors(data, ids=ids)
    elif mode == 'knn':
        if k is None:
            raise ConfigurationError("mode='knn' requires k")
        relation = knn_neighbors(data, k, ids=ids)
    else:
        raise ConfigurationError(f"Unknown neighbour mode: {mode!r}. Available: {list(MODES)}")

    if verbose:
        summary = relation.summary()
        print(f"  Neighbour graph ({summary['mode']}): {summary['n_entities']} entities, "
              f"{summary['avg_neighbors']:.1f} neighbours on average")
        if summary['isolated_entities']:
            names = [relation.ids[i] for i in relation.islands]
            print(f"  Isolated entities: {names}")

    return relation
