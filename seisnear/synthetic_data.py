"""
Synthetic Data Generator for Nearest-Match Testing

This module generates survey-like point sets synthetically. There is no
external dataset: acquisition lines, crooked profiles and scattered
points are created programmatically for tests and benchmarks.

Key Features:
- Straight acquisition lines in acquisition order (the sorted input that
  makes a naively built tree degenerate)
- Crooked 2D profiles that curve back over themselves, with a station
  number as third coordinate
- Uniform scatter, optionally quantised so exact distance ties occur
- Reproducible results via random seed control
- CSV export/import for the command line tool

Example Usage:
    >>> from seisnear.synthetic_data import generate_survey_lines
    >>> points = generate_survey_lines(num_lines=4, stations_per_line=100, seed=42)
    >>> points.shape
    (400, 2)
"""

import csv
from typing import List, Dict, Optional, Sequence
import numpy as np


def generate_survey_lines(
    num_lines: int = 10,
    stations_per_line: int = 100,
    station_spacing: float = 25.0,
    line_spacing: float = 200.0,
    jitter: float = 0.0,
    seed: Optional[int] = None
) -> np.ndarray:
    """
    Generate receiver positions along parallel lines.

    Points come out in acquisition order: line by line, station by
    station, which is sorted in both coordinates.

    Args:
        num_lines: Number of parallel lines
        stations_per_line: Stations on each line
        station_spacing: Distance between stations along a line (x)
        line_spacing: Distance between lines (y)
        jitter: Standard deviation of Gaussian position noise
        seed: Random seed for reproducibility

    Returns:
        (num_lines * stations_per_line, 2) array of (x, y)

    Complexity:
        Time: O(num_lines × stations_per_line)
    """
    if seed is not None:
        np.random.seed(seed)

    line_idx, station_idx = np.meshgrid(
        np.arange(num_lines), np.arange(stations_per_line), indexing='ij'
    )
    x = station_idx.ravel() * station_spacing
    y = line_idx.ravel() * line_spacing
    points = np.column_stack([x, y]).astype(np.float64)

    if jitter > 0:
        points += np.random.normal(0.0, jitter, size=points.shape)

    return points


def generate_crooked_profile(
    num_points: int = 500,
    station_spacing: float = 25.0,
    turns: float = 1.5,
    radius: float = 1000.0,
    seed: Optional[int] = None
) -> np.ndarray:
    """
    Generate a crooked 2D profile that curls back over itself.

    The third coordinate is the station number, so a search restricted
    in that dimension finds points from the same stretch of profile even
    where the curve passes close to an earlier part of itself.

    Args:
        num_points: Number of stations
        station_spacing: Approximate distance between stations
        turns: Number of loops the profile makes
        radius: Loop radius
        seed: Random seed for reproducibility

    Returns:
        (num_points, 3) array of (x, y, station)
    """
    if seed is not None:
        np.random.seed(seed)

    station = np.arange(num_points, dtype=np.float64)
    total_angle = 2.0 * np.pi * turns
    angle = np.linspace(0.0, total_angle, num_points)
    # Drift along x so successive loops overlap without coinciding.
    drift = station * station_spacing * 0.25
    x = radius * np.cos(angle) + drift
    y = radius * np.sin(angle)
    x += np.random.normal(0.0, station_spacing * 0.05, size=num_points)
    y += np.random.normal(0.0, station_spacing * 0.05, size=num_points)

    return np.column_stack([x, y, station])


def generate_scatter(
    num_points: int = 1000,
    num_dimensions: int = 2,
    low: float = 0.0,
    high: float = 1000.0,
    quantum: Optional[float] = None,
    seed: Optional[int] = None
) -> np.ndarray:
    """
    Generate uniformly scattered points.

    Args:
        num_points: Number of points
        num_dimensions: Coordinates per point
        low: Lower coordinate bound
        high: Upper coordinate bound
        quantum: If set, round coordinates to multiples of it so that
            duplicate points and equal distances occur
        seed: Random seed for reproducibility

    Returns:
        (num_points, num_dimensions) array
    """
    if seed is not None:
        np.random.seed(seed)

    points = np.random.uniform(low, high, size=(num_points, num_dimensions))
    if quantum is not None:
        points = np.round(points / quantum) * quantum
    return points


def save_points_to_csv(
    points: np.ndarray,
    filepath: str,
    column_names: Optional[Sequence[str]] = None,
    values: Optional[np.ndarray] = None,
    value_name: str = "value"
) -> None:
    """
    Export points (and an optional value column) to CSV with a header row.

    Args:
        points: (N, D) array
        filepath: Output CSV path
        column_names: D names, default x, y, z, then d3, d4, ...
        values: Optional length-N payload column
        value_name: Header of the payload column
    """
    points = np.asarray(points, dtype=np.float64)
    if points.ndim == 1:
        points = points.reshape(-1, 1)
    if column_names is None:
        default = ['x', 'y', 'z']
        column_names = [default[i] if i < 3 else f"d{i}" for i in range(points.shape[1])]

    header = list(column_names)
    if values is not None:
        header.append(value_name)

    with open(filepath, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for i, row in enumerate(points):
            record = [repr(float(v)) for v in row]
            if values is not None:
                record.append(repr(float(values[i])))
            writer.writerow(record)


def load_csv_columns(filepath: str) -> Dict[str, np.ndarray]:
    """
    Read a CSV file with a header row into float64 columns.

    Returns:
        Mapping of column name to array, in header order

    Raises:
        ValueError: If a row has the wrong number of fields or a
            non-numeric value
    """
    with open(filepath, 'r', newline='') as f:
        reader = csv.reader(f)
        try:
            header = [name.strip() for name in next(reader)]
        except StopIteration:
            raise ValueError(f"{filepath}: empty file")
        rows: List[List[float]] = []
        for line_no, row in enumerate(reader, start=2):
            if not row:
                continue
            if len(row) != len(header):
                raise ValueError(
                    f"{filepath}:{line_no}: expected {len(header)} fields, got {len(row)}"
                )
            try:
                rows.append([float(v) for v in row])
            except ValueError:
                raise ValueError(f"{filepath}:{line_no}: non-numeric value in {row}")

    data = np.array(rows, dtype=np.float64).reshape(-1, len(header))
    return {name: data[:, i] for i, name in enumerate(header)}
