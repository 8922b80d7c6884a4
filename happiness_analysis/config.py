"""
Configuration settings for Happiness Spatial Analysis
======================================================

This module contains all paths, parameters, and constants for the analysis.
Users should modify the PATHS section for their specific system.

Every statistical function takes these values as keyword defaults, so a
script can override any of them per call without editing this file.

Project: Geographic Correlates of Happiness - Spatial Autocorrelation
"""

import os
from pathlib import Path

# ============================================================================
# PATHS - USER MODIFIES THESE FOR THEIR SYSTEM
# ============================================================================

# Happiness tables (one row per country / U.S. state)
WORLD_HAPPINESS_PATH = os.environ.get(
    "HAPPINESS_WORLD_PATH", "data/world_happiness.csv"
)
STATE_HAPPINESS_PATH = os.environ.get(
    "HAPPINESS_STATE_PATH", "data/state_happiness.csv"
)

# Polygon layers readable by geopandas.read_file
WORLD_BOUNDARIES_PATH = os.environ.get(
    "HAPPINESS_WORLD_BOUNDARIES", "data/world_countries.gpkg"
)
STATE_BOUNDARIES_PATH = os.environ.get(
    "HAPPINESS_STATE_BOUNDARIES", "data/us_states.gpkg"
)

# Output directory (will be created if it doesn't exist)
OUTPUT_DIR = os.environ.get("HAPPINESS_OUTPUT_DIR", "outputs")

# ============================================================================
# COLUMN NAME MAPPING
# ============================================================================
# Logical name -> column name in the joined entity table

COLS = {
    'name': 'name',                    # Country or state name (join key)
    'happiness': 'happiness_score',    # Self-reported happiness score
    'density': 'pop_density',          # Population per km²
    'delivery': 'delivery_index',      # Delivery-infrastructure quality index
    'lat': 'latitude',                 # Centroid latitude (degrees)
    'coast_km': 'coast_distance_km',   # Distance to nearest coastline (km)
    'climate': 'climate_zone',         # Derived: climate zone label
    'density_class': 'density_quartile',  # Derived: density quartile label
    'coastal': 'is_coastal',           # Derived: coastal flag
}

# ============================================================================
# ANALYSIS PARAMETERS
# ============================================================================

# Number of Monte Carlo permutations for empirical p-values
PERMUTATIONS = 999

# Default k for k-nearest-neighbour graphs on centroids
DEFAULT_K = 4

# Default neighbour graph ('queen' for polygons, 'knn' for centroids)
DEFAULT_MODE = 'queen'

# Weight styles: 'W' row-standardised, 'B' binary
WEIGHT_STYLES = ('W', 'B')
DEFAULT_STYLE = 'W'

# Keep isolated entities (islands) as all-zero weight rows
ZERO_POLICY = True

# Alternative hypotheses accepted by every test
ALTERNATIVES = ('two-sided', 'greater', 'less')
DEFAULT_ALTERNATIVE = 'two-sided'

# Significance level for interpretation and cluster labels
SIGNIFICANCE_LEVEL = 0.05

# Hot/cold spot confidence bins (p-value thresholds)
HOTSPOT_LEVELS = (0.01, 0.05, 0.10)

# Multiple testing correction applied to local p-values
FDR_METHOD = 'fdr_bh'

# Permutations per block in the Monte Carlo tester. Blocks are the unit of
# seeding and of parallel work, so results do not depend on n_jobs.
PERMUTATION_BLOCK_SIZE = 250

# ============================================================================
# CLASSIFICATION PARAMETERS
# ============================================================================
# These boundaries come from the exploratory reports and are configuration,
# not part of the statistical core. Override per call as needed.

# Climate zones by absolute latitude (degrees)
CLIMATE_ZONE_BREAKS = [0, 23.5, 35, 66.5, 90]
CLIMATE_ZONE_LABELS = ['tropical', 'subtropical', 'temperate', 'polar']

# Population density quartiles
DENSITY_QUANTILES = 4
DENSITY_LABELS = ['low', 'medium_low', 'medium_high', 'high']

# Entities within this distance of the coastline count as coastal
COASTAL_DISTANCE_KM = 100.0

# ============================================================================
# PROCESSING PARAMETERS
# ============================================================================

# Random seed for reproducibility
RANDOM_SEED = 42

# Target CRS for distance-based work (World Equidistant Cylindrical, meters)
# For U.S. states, EPSG:5070 (NAD83 / Conus Albers) is a better choice.
TARGET_CRS = "EPSG:4087"

# Minimum entities for the randomisation variance of Moran's I
MIN_ENTITIES = 4


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def ensure_output_dir():
    """Create output directory if it doesn't exist."""
    Path(OUTPUT_DIR).mkdir(parents=True, exist_ok=True)
    return OUTPUT_DIR


def print_config_summary():
    """Print summary of current configuration."""
    print("=" * 60)
    print("HAPPINESS SPATIAL ANALYSIS - Configuration Summary")
    print("=" * 60)
    print("\nInput Data:")
    for label, path in [('World happiness', WORLD_HAPPINESS_PATH),
                        ('State happiness', STATE_HAPPINESS_PATH),
                        ('World boundaries', WORLD_BOUNDARIES_PATH),
                        ('State boundaries', STATE_BOUNDARIES_PATH)]:
        exists = "✓" if os.path.exists(path) else "✗"
        print(f"  [{exists}] {label}: {path}")
    print(f"\nNeighbour graph: {DEFAULT_MODE} (k={DEFAULT_K} for knn)")
    print(f"Weight style: {DEFAULT_STYLE}, zero policy: {ZERO_POLICY}")
    print(f"Permutations: {PERMUTATIONS}, seed: {RANDOM_SEED}")
    print(f"Target CRS: {TARGET_CRS}")
    print(f"Output Directory: {OUTPUT_DIR}")
    print("=" * 60)


if __name__ == "__main__":
    print_config_summary()
