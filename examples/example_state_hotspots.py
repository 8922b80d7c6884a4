"""
U.S. State Happiness: Queen vs. k-Nearest-Neighbour Graphs
===========================================================

Alaska and Hawaii share no border with any other state, so under queen
contiguity they are isolates: their weight rows are all zero and their
local statistics are reported as not computable. A k-nearest-neighbour
graph on state centroids gives every state exactly k neighbours.

This example runs the happiness test under both graphs and compares the
global statistic and the hot/cold spot counts.

Usage:
    python examples/example_state_hotspots.py

Requirements:
    - STATE_HAPPINESS_PATH and STATE_BOUNDARIES_PATH in config.py (or the
      HAPPINESS_STATE_PATH / HAPPINESS_STATE_BOUNDARIES environment variables)
    - Boundaries in (or reprojected to) a metric CRS for centroid distances
"""

import pandas as pd

from happiness_analysis import AnalysisCase, COLS, run_cases
from happiness_analysis.config import (
    STATE_BOUNDARIES_PATH, STATE_HAPPINESS_PATH, TARGET_CRS
)
from happiness_analysis.main import load_entities

print("\n" + "=" * 70)
print("STATE HAPPINESS: QUEEN VS. KNN NEIGHBOUR GRAPHS")
print("=" * 70)

# Step 1: Load and join
print("\n[STEP 1/2] Loading state happiness and boundaries...")
states = load_entities(STATE_HAPPINESS_PATH, STATE_BOUNDARIES_PATH)
states = states.to_crs(TARGET_CRS)
print(f"  Joined {len(states)} states")

# Step 2: Same attribute, two graphs
print("\n[STEP 2/2] Running both graphs (999 permutations, seed 42)...")
cases = [
    AnalysisCase('happiness_queen', COLS['happiness'], mode='queen'),
    AnalysisCase('happiness_knn4', COLS['happiness'], mode='knn', k=4),
    AnalysisCase('happiness_knn6', COLS['happiness'], mode='knn', k=6),
]
summary, details = run_cases(states, cases, permutations=999, seed=42, verbose=False)

print("\n" + "=" * 70)
print("COMPARISON")
print("=" * 70)
print(f"\n{'Case':<18} | {'I':>7} | {'z':>6} | {'p_sim':>6} | {'Hot':>4} | {'Cold':>4} | Isolates")
print("-" * 70)
for _, row in summary.iterrows():
    if pd.notna(row['error']):
        print(f"{row['case']:<18} | failed: {row['error']}")
        continue
    isolates = len(details[row['case']]['neighbors'].islands)
    print(f"{row['case']:<18} | {row['I']:>7.3f} | {row['z']:>6.2f} | {row['p_sim']:>6.3f} | "
          f"{row['n_hot']:>4} | {row['n_cold']:>4} | {isolates}")

print("\nInterpretation:")
print("  - Similar I across graphs means the clustering is not an artefact of the graph")
print("  - Queen isolates (AK, HI) drop out of the local tests; knn keeps them")

print("\n" + "=" * 70)
