"""
Shared fixtures: small regular grids of unit squares.

Cells are numbered row-major, index = row * ncols + col, and stored in a
projected CRS so no geographic-distance warnings are raised.
"""

import numpy as np
import pandas as pd
import geopandas as gpd
import pytest
from shapely.geometry import box


def make_grid(nrows, ncols, values=None, crs="EPSG:3857"):
    cells = [box(c, r, c + 1, r + 1) for r in range(nrows) for c in range(ncols)]
    ids = [f"cell_{r}_{c}" for r in range(nrows) for c in range(ncols)]
    gdf = gpd.GeoDataFrame({'name': ids}, geometry=cells, crs=crs, index=ids)
    if values is not None:
        gdf['happiness_score'] = np.asarray(values, dtype=float)
    return gdf


def halves_values(nrows, ncols, low=1.0, high=10.0):
    """Left half of the columns low, right half high (two contiguous blocks)."""
    return np.array([low if c < ncols // 2 else high
                     for r in range(nrows) for c in range(ncols)])


def checkerboard_values(nrows, ncols, low=1.0, high=10.0):
    return np.array([low if (r + c) % 2 == 0 else high
                     for r in range(nrows) for c in range(ncols)])


@pytest.fixture
def grid_4x4():
    return make_grid(4, 4)


@pytest.fixture
def grid_with_island():
    """3x3 grid plus one detached square (index 9)."""
    gdf = make_grid(3, 3)
    island = gpd.GeoDataFrame({'name': ['island']}, geometry=[box(10, 10, 11, 11)],
                              crs=gdf.crs, index=['island'])
    return gpd.GeoDataFrame(pd.concat([gdf, island]), geometry='geometry', crs=gdf.crs)
