"""
Classification Module for Happiness Spatial Analysis
=====================================================

Builds the entity table the statistics run on and splits it into the
categories the reports compare:

- coastal vs. inland entities
- climate zones (absolute-latitude bands)
- population-density quartiles
- any other caller-defined bins

Category boundaries are configuration (see config.py), not part of the
statistical core: every function takes its breaks/labels as arguments.

All functions return a NEW (Geo)DataFrame; inputs are never modified.
"""

import warnings
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import geopandas as gpd
from scipy import stats
from shapely.ops import unary_union

from .config import (
    COLS, CLIMATE_ZONE_BREAKS, CLIMATE_ZONE_LABELS, COASTAL_DISTANCE_KM,
    DENSITY_LABELS, DENSITY_QUANTILES
)


def _require_columns(df, columns):
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"Column(s) {missing} not found. Available: {list(df.columns)}")


# ============================================================================
# ENTITY CONSTRUCTION
# ============================================================================

def join_attributes(attributes: pd.DataFrame, geometries: gpd.GeoDataFrame,
                    on: Optional[str] = None, verbose: bool = True) -> gpd.GeoDataFrame:
    """
    Join a happiness table to polygon geometries by entity name.

    Parameters
    ----------
    attributes : DataFrame
        One row per country/state with the numeric attributes
    geometries : GeoDataFrame
        Polygon layer with the same name column
    on : str, optional
        Join column (default COLS['name'])
    verbose : bool
        Print match summary

    Returns
    -------
    GeoDataFrame
        Inner join, indexed by entity name, CRS of `geometries`.
        Names present on only one side are dropped with a warning.
    """
    on = on or COLS['name']
    _require_columns(attributes, [on])
    _require_columns(geometries, [on])

    dup = attributes[on][attributes[on].duplicated()].tolist()
    if dup:
        raise ValueError(f"Duplicate entity names in attribute table: {dup[:5]}")

    attr_names = set(attributes[on])
    geom_names = set(geometries[on])
    unmatched_attr = sorted(attr_names - geom_names)
    unmatched_geom = sorted(geom_names - attr_names)
    if unmatched_attr:
        warnings.warn(f"{len(unmatched_attr)} names have no geometry: {unmatched_attr[:10]}")

    merged = geometries[[on, geometries.geometry.name]].merge(attributes, on=on, how='inner')
    result = gpd.GeoDataFrame(merged, geometry=geometries.geometry.name, crs=geometries.crs)
    result = result.set_index(on, drop=False)
    result.index.name = None

    if verbose:
        print(f"\nJoined {len(result)} entities "
              f"({len(unmatched_attr)} attribute rows and {len(unmatched_geom)} "
              f"geometries unmatched)")

    return result


# ============================================================================
# CATEGORICAL BINNING
# ============================================================================

def classify_by_breaks(df, column: str, breaks: Sequence[float],
                       labels: Optional[Sequence[str]] = None,
                       new_column: Optional[str] = None):
    """
    Bin a numeric column at fixed break points.

    Parameters
    ----------
    df : DataFrame or GeoDataFrame
    column : str
        Column to bin
    breaks : list
        Bin edges (len(labels) + 1 values)
    labels : list of str, optional
        Category labels
    new_column : str, optional
        Output column (default '<column>_class')

    Returns
    -------
    Copy of df with the new categorical column
    """
    _require_columns(df, [column])
    if labels is not None and len(labels) != len(breaks) - 1:
        raise ValueError(f"Need {len(breaks) - 1} labels for {len(breaks)} breaks, got {len(labels)}")

    result = df.copy()
    result[new_column or f"{column}_class"] = pd.cut(
        result[column], bins=list(breaks), labels=labels,
        include_lowest=True, right=True
    )
    return result


def classify_by_quantiles(df, column: str, q: int = DENSITY_QUANTILES,
                          labels: Optional[Sequence[str]] = DENSITY_LABELS,
                          new_column: Optional[str] = None):
    """
    Bin a numeric column into equal-count quantile classes.

    Default: population-density quartiles labelled low .. high.
    """
    _require_columns(df, [column])
    if labels is not None and len(labels) != q:
        raise ValueError(f"Need {q} labels for {q} quantiles, got {len(labels)}")

    result = df.copy()
    result[new_column or COLS['density_class']] = pd.qcut(result[column], q=q, labels=labels)
    return result


def classify_climate_zone(df, lat_col: Optional[str] = None,
                          breaks: Sequence[float] = CLIMATE_ZONE_BREAKS,
                          labels: Sequence[str] = CLIMATE_ZONE_LABELS,
                          new_column: Optional[str] = None):
    """
    Assign climate zones by absolute latitude band.

    Parameters
    ----------
    df : DataFrame or GeoDataFrame
    lat_col : str, optional
        Latitude column (default COLS['lat']). If absent and df is a
        GeoDataFrame in a geographic CRS, centroid latitudes are used.
    breaks, labels :
        Absolute-latitude edges and zone names
    """
    lat_col = lat_col or COLS['lat']
    result = df.copy()

    if lat_col in result.columns:
        abs_lat = result[lat_col].abs()
    elif isinstance(result, gpd.GeoDataFrame) and result.crs is not None and result.crs.is_geographic:
        with warnings.catch_warnings():
            # centroid of lon/lat polygons is only used for a coarse band here
            warnings.simplefilter("ignore", UserWarning)
            abs_lat = result.geometry.centroid.y.abs()
    else:
        raise ValueError(
            f"Column '{lat_col}' not found and no geographic geometry to derive it from. "
            f"Available: {list(result.columns)}"
        )

    # bands are [lo, hi); the top edge is nudged up so |lat| == 90 stays in the last band
    edges = [float(b) for b in breaks]
    edges[-1] = np.nextafter(edges[-1], np.inf)
    result[new_column or COLS['climate']] = pd.cut(
        abs_lat, bins=edges, labels=list(labels), right=False
    )
    return result


def classify_coastal(df, coastline=None, distance_km: float = COASTAL_DISTANCE_KM,
                     distance_col: Optional[str] = None,
                     new_column: Optional[str] = None):
    """
    Flag entities within distance_km of the coast.

    Either pass a coastline (shapely geometry, GeoSeries or GeoDataFrame in
    the same projected CRS as df, units of meters), or a column holding a
    precomputed distance in km (default COLS['coast_km']).
    """
    out_col = new_column or COLS['coastal']
    result = df.copy()

    if coastline is not None:
        if not isinstance(result, gpd.GeoDataFrame):
            raise ValueError("classify_coastal with a coastline requires a GeoDataFrame")
        if result.crs is not None and result.crs.is_geographic:
            raise ValueError(
                f"CRS {result.crs} is geographic; reproject to a metric CRS before "
                f"measuring coastal distance"
            )
        if isinstance(coastline, (gpd.GeoDataFrame, gpd.GeoSeries)):
            if coastline.crs is not None and result.crs is not None and coastline.crs != result.crs:
                raise ValueError(f"Coastline CRS {coastline.crs} differs from entity CRS {result.crs}")
            coast_geom = unary_union(list(coastline.geometry if isinstance(coastline, gpd.GeoDataFrame)
                                          else coastline))
        else:
            coast_geom = coastline
        distance_m = result.geometry.distance(coast_geom)
        result[out_col] = (distance_m <= distance_km * 1000.0).to_numpy()
        return result

    distance_col = distance_col or COLS['coast_km']
    _require_columns(result, [distance_col])
    result[out_col] = (result[distance_col] <= distance_km).to_numpy()
    return result


# ============================================================================
# DESCRIPTIVE STATISTICS
# ============================================================================

def describe_by_category(df, value_col: str, category_col: str,
                         verbose: bool = True) -> Dict:
    """
    Summarise an attribute per category and test for group differences.

    Parameters
    ----------
    df : DataFrame
    value_col : str
        Numeric attribute (e.g., happiness score)
    category_col : str
        Categorical column (e.g., climate zone)
    verbose : bool
        Print summary table

    Returns
    -------
    dict
        'summary': DataFrame (count, mean, std, median, min, max per category)
        'anova_f', 'anova_p': one-way ANOVA
        'kruskal_h', 'kruskal_p': Kruskal-Wallis H test
        NaN test values when fewer than two categories have >= 2 members.
    """
    _require_columns(df, [value_col, category_col])
    valid = df[[value_col, category_col]].dropna()

    summary = (valid.groupby(category_col, observed=True)[value_col]
               .agg(['count', 'mean', 'std', 'median', 'min', 'max']))

    groups: List[np.ndarray] = [
        g[value_col].to_numpy(dtype=float)
        for _, g in valid.groupby(category_col, observed=True)
        if len(g) >= 2
    ]

    results = {
        'summary': summary,
        'n_groups': len(summary),
        'anova_f': np.nan,
        'anova_p': np.nan,
        'kruskal_h': np.nan,
        'kruskal_p': np.nan,
    }

    if len(groups) >= 2 and not all(np.ptp(g) == 0 for g in groups):
        f_stat, f_p = stats.f_oneway(*groups)
        h_stat, h_p = stats.kruskal(*groups)
        results.update(anova_f=float(f_stat), anova_p=float(f_p),
                       kruskal_h=float(h_stat), kruskal_p=float(h_p))

    if verbose:
        print(f"\n{value_col} by {category_col}:")
        print(summary.round(3).to_string())
        print(f"  ANOVA: F = {results['anova_f']:.3f}, p = {results['anova_p']:.4f}")
        print(f"  Kruskal-Wallis: H = {results['kruskal_h']:.3f}, p = {results['kruskal_p']:.4f}")

    return results
