"""
Happiness Spatial Analysis Package
===================================

A Python package for testing whether self-reported happiness, and the
geographic factors it is compared with (coastal proximity, climate zone,
population density, delivery-infrastructure quality), are spatially
autocorrelated across countries and U.S. states.

Core chain: neighbour graph -> spatial weights -> global Moran's I /
local Moran's I / Getis-Ord Gi* -> permutation significance.

Modules:
    config          - Configuration settings, column names, class breaks
    exceptions      - Error types of the statistical core
    neighbors       - Queen contiguity and k-nearest-neighbour graphs
    weights         - Row-standardised / binary sparse weights
    moran           - Global and local Moran's I
    getis_ord       - Getis-Ord Gi* hot spots
    permutation     - Seeded Monte Carlo significance
    classification  - Entity join, category binning, descriptive statistics
    pipeline        - Case-table driven analysis
    main            - Orchestration and command line entry point

Quick Start:
    >>> from happiness_analysis import build_neighbors, build_weights, global_morans_i
    >>> w = build_weights(build_neighbors(countries_gdf, mode='queen'))
    >>> result = global_morans_i(countries_gdf['happiness_score'], w)
"""

__version__ = '0.1.0'

from .config import (
    COLS, PERMUTATIONS, RANDOM_SEED, print_config_summary
)

from .exceptions import (
    SpatialAnalysisError,
    ConfigurationError,
    ZeroNeighborError,
    UndefinedStatisticError,
    DimensionMismatchError
)

from .neighbors import (
    NeighborRelation,
    build_neighbors,
    queen_neighbors,
    knn_neighbors
)

from .weights import (
    SpatialWeights,
    build_weights
)

from .moran import (
    GlobalResult,
    LocalResult,
    global_morans_i,
    local_morans_i,
    morans_i_statistic,
    local_results_to_frame,
    adjust_pvalues
)

from .getis_ord import (
    GiResult,
    local_getis_ord,
    classify_hotspots
)

from .permutation import (
    PermResult,
    permutation_test,
    empirical_p_value
)

from .classification import (
    join_attributes,
    classify_by_breaks,
    classify_by_quantiles,
    classify_climate_zone,
    classify_coastal,
    describe_by_category
)

from .pipeline import (
    AnalysisCase,
    default_cases,
    run_case,
    run_cases
)
