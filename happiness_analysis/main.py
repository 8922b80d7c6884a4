"""
Happiness Spatial Analysis - Main Orchestration Script
=======================================================

This script provides the main entry point for running the spatial
autocorrelation analysis. It can be run directly or individual functions
can be called interactively in Spyder/IPython/Jupyter.

Usage:
    # Run full analysis on a joined entity layer
    python -m happiness_analysis.main data/world_happiness.gpkg --seed 42

    # Or import and run specific steps:
    from happiness_analysis.main import *
    entities = load_entities('data/world_happiness.csv', 'data/world_countries.gpkg')
    results = run_full_analysis(entities)

Questions examined:
    Q1: Is happiness spatially clustered (global Moran's I)?
    Q2: Does the pattern differ for coastal vs. inland entities?
    Q3: Does it differ within climate zones?
    Q4: Are population density and delivery quality clustered as well?
    Q5: Where are the local clusters, outliers, hot spots and cold spots?
"""

import time
from contextlib import contextmanager
from datetime import timedelta

import pandas as pd
import geopandas as gpd

from .config import (
    COLS, DEFAULT_K, DEFAULT_MODE, OUTPUT_DIR, PERMUTATIONS, RANDOM_SEED,
    ensure_output_dir, print_config_summary
)
from .classification import (
    classify_climate_zone, classify_coastal, classify_by_quantiles,
    describe_by_category, join_attributes
)
from .pipeline import AnalysisCase, default_cases, run_cases


# ============================================================================
# RUNTIME TRACKING
# ============================================================================

class AnalysisTimer:
    """
    Track runtime for analysis steps with formatted output.

    Usage:
        timer = AnalysisTimer()
        timer.start("Global Moran's I")
        # ... do work ...
        timer.stop()
        timer.summary()
    """

    def __init__(self):
        self.steps = []
        self.current_step = None
        self.start_time = None
        self.overall_start = None

    def start(self, step_name):
        """Start timing a new step."""
        if self.overall_start is None:
            self.overall_start = time.time()

        self.current_step = step_name
        self.start_time = time.time()

    def stop(self):
        """Stop timing current step and record."""
        if self.start_time is None:
            return None

        elapsed = time.time() - self.start_time
        self.steps.append({
            'step': self.current_step,
            'duration': elapsed,
        })
        self.start_time = None
        self.current_step = None
        return elapsed

    @staticmethod
    def elapsed_str(seconds):
        """Format seconds as human-readable string."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            return f"{seconds/60:.1f}min"
        return str(timedelta(seconds=int(seconds)))

    def summary(self):
        """Print summary of all step timings."""
        if not self.steps:
            print("\nNo timing data recorded.")
            return None

        total = sum(s['duration'] for s in self.steps)
        overall = time.time() - self.overall_start if self.overall_start else total

        print("\n" + "=" * 60)
        print("RUNTIME SUMMARY")
        print("=" * 60)
        print(f"{'Step':<40} {'Duration':>15}")
        print("-" * 60)
        for step in self.steps:
            pct = (step['duration'] / total) * 100 if total > 0 else 0
            print(f"{step['step']:<40} {self.elapsed_str(step['duration']):>10} ({pct:>4.1f}%)")
        print("-" * 60)
        print(f"{'Overall runtime':<40} {self.elapsed_str(overall):>15}")
        print("=" * 60)

        return {
            'steps': list(self.steps),
            'total': total,
            'overall': overall,
        }


@contextmanager
def timed_step(timer, step_name):
    """Context manager for timing analysis steps."""
    timer.start(step_name)
    try:
        yield
    finally:
        elapsed = timer.stop()
        if elapsed is not None:
            print(f"  [DONE] {step_name} completed in {timer.elapsed_str(elapsed)}")


def print_step_header(step_num, total_steps, title):
    """Print a formatted step header with progress."""
    bar_width = 30
    filled = int(bar_width * step_num / total_steps)
    bar = "█" * filled + "░" * (bar_width - filled)

    print(f"\n[{bar}] Step {step_num}/{total_steps}")
    print("-" * 60)
    print(f"  {title}")
    print("-" * 60)


# ============================================================================
# DATA PREPARATION
# ============================================================================

def load_entities(attributes_path, boundaries_path, on=None):
    """
    Load a happiness table and polygon layer and join them.

    Reading is delegated to pandas (CSV) and geopandas (any vector format
    it supports); reprojection is left to the caller.
    """
    attributes = pd.read_csv(attributes_path)
    boundaries = gpd.read_file(boundaries_path)
    return join_attributes(attributes, boundaries, on=on)


def add_categories(entities, coastline=None):
    """
    Add the categorical columns the default cases split on.

    Each classification is applied only when its source column (or a
    coastline) is available.
    """
    result = entities
    if COLS['lat'] in result.columns or (result.crs is not None and result.crs.is_geographic):
        result = classify_climate_zone(result)
    if coastline is not None or COLS['coast_km'] in result.columns:
        result = classify_coastal(result, coastline=coastline)
    if COLS['density'] in result.columns:
        result = classify_by_quantiles(result, COLS['density'])
    return result


# ============================================================================
# FULL PIPELINE
# ============================================================================

def run_full_analysis(entities, mode=DEFAULT_MODE, k=None, permutations=PERMUTATIONS,
                      seed=RANDOM_SEED, n_jobs=1, coastline=None, value_col=None,
                      save_results=False):
    """
    Run the complete analysis for one entity layer.

    Parameters
    ----------
    entities : GeoDataFrame
        Joined happiness attributes + polygons (see load_entities)
    mode : str
        'queen' or 'knn'
    k : int, optional
        Neighbours for 'knn'
    permutations : int
        Monte Carlo permutations per test
    seed : int
        Seed threaded through every stochastic step
    n_jobs : int
        Threads for the global permutation test
    coastline : geometry, optional
        Coastline for coastal classification
    value_col : str, optional
        Test only this column across all entities instead of the default cases
    save_results : bool
        Write summary and per-case local tables as CSV to OUTPUT_DIR

    Returns
    -------
    dict
        'entities', 'descriptive', 'summary', 'details', 'timing'
    """
    timer = AnalysisTimer()
    total_steps = 3

    print("\n" + "=" * 70)
    print("HAPPINESS SPATIAL ANALYSIS - FULL PIPELINE")
    print("=" * 70)
    print(f"Started at: {time.strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Entities: {len(entities)}, graph: {mode}, permutations: {permutations}, seed: {seed}")
    print("=" * 70)

    results = {}

    print_step_header(1, total_steps, "Classifying entities")
    with timed_step(timer, "Classification"):
        classified = add_categories(entities, coastline=coastline)
        results['entities'] = classified

    print_step_header(2, total_steps, "Descriptive statistics by category")
    with timed_step(timer, "Descriptive statistics"):
        descriptive = {}
        happiness = COLS['happiness']
        if happiness in classified.columns:
            for key in ('coastal', 'climate', 'density_class'):
                if COLS[key] in classified.columns:
                    descriptive[key] = describe_by_category(classified, happiness, COLS[key])
        results['descriptive'] = descriptive

    print_step_header(3, total_steps, "Spatial autocorrelation cases")
    with timed_step(timer, "Autocorrelation"):
        if value_col:
            if mode == 'knn' and k is None:
                k = DEFAULT_K
            cases = [AnalysisCase(f'{value_col}_all', value_col, mode=mode, k=k)]
        else:
            cases = default_cases(classified, mode=mode, k=k)
        summary, details = run_cases(classified, cases, permutations=permutations,
                                     seed=seed, n_jobs=n_jobs)
        results['summary'] = summary
        results['details'] = details

    if save_results:
        out = ensure_output_dir()
        summary.to_csv(f"{out}/autocorrelation_summary.csv", index=False)
        for name, detail in details.items():
            detail['local'].to_csv(f"{out}/{name}_local_moran.csv")
            detail['getis_ord'].to_csv(f"{out}/{name}_getis_ord.csv")
        print(f"\nResults saved to: {OUTPUT_DIR}")

    results['timing'] = timer.summary()
    return results


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Happiness Spatial Autocorrelation Analysis')
    parser.add_argument('entities', nargs='?',
                        help='Vector file with joined attributes and polygons')
    parser.add_argument('--attributes', help='CSV of attributes to join to the vector file')
    parser.add_argument('--check', action='store_true',
                        help='Print configuration and exit')
    parser.add_argument('--value', help='Single attribute column to test (default: case table)')
    parser.add_argument('--mode', choices=['queen', 'knn'], default=DEFAULT_MODE)
    parser.add_argument('--k', type=int, default=None)
    parser.add_argument('--permutations', type=int, default=PERMUTATIONS)
    parser.add_argument('--seed', type=int, default=RANDOM_SEED)
    parser.add_argument('--jobs', type=int, default=1)
    parser.add_argument('--save', action='store_true', help='Write CSV outputs')

    args = parser.parse_args()

    if args.check or not args.entities:
        print_config_summary()
    else:
        if args.attributes:
            gdf = load_entities(args.attributes, args.entities)
        else:
            gdf = gpd.read_file(args.entities)
        run_full_analysis(gdf, mode=args.mode, k=args.k, permutations=args.permutations,
                          seed=args.seed, n_jobs=args.jobs, value_col=args.value,
                          save_results=args.save)
