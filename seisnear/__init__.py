"""
Nearest-Match Spatial Index for Seismic Trace Geometry

This package finds, for each trace coordinate, the nearest record of an
auxiliary point table (static tables, near-surface models, CDP
profiles) and aggregates traces by exact key combination.

Main modules:
- data_models: Point sets, extents, match results and search options
- geometry: KD-tree, adaptive radius search and batch assignment
- tables: Ordered unique-key table
- stacking: Stacking traces by key combination
- synthetic_data: Survey-like test point sets and CSV helpers
- perf: Timing utilities for benchmarks
"""

__version__ = "1.0.0"
__author__ = "Course Project Team"
