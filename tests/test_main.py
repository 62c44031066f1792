"""
Tests for the Command Line Interface

Smoke tests running main() on temporary CSV files.

Run with: pytest tests/test_main.py -v
"""

import csv
import json

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from seisnear.main import main, build_parser, build_config
from seisnear.synthetic_data import save_points_to_csv, generate_survey_lines


@pytest.fixture
def survey_files(tmp_path):
    records = generate_survey_lines(4, 10, station_spacing=25.0, line_spacing=100.0)
    statics = np.arange(len(records), dtype=float) * 0.5
    targets = records + 2.0

    points_path = tmp_path / "points.csv"
    targets_path = tmp_path / "targets.csv"
    save_points_to_csv(records, str(points_path), values=statics, value_name="static")
    save_points_to_csv(targets, str(targets_path))
    return points_path, targets_path, statics


def _read_rows(path):
    with open(path, newline='') as f:
        return list(csv.DictReader(f))


class TestMatching:

    def test_writes_matches(self, survey_files, tmp_path, capsys):
        points_path, targets_path, statics = survey_files
        out = tmp_path / "out.csv"

        code = main(["--points", str(points_path), "--targets", str(targets_path),
                     "--values-column", "static", "--output", str(out)])

        assert code == 0
        rows = _read_rows(out)
        assert len(rows) == len(statics)
        assert [int(r["near_index"]) for r in rows] == list(range(len(statics)))
        assert float(rows[3]["value"]) == statics[3]
        assert float(rows[0]["near_distance"]) == pytest.approx(np.sqrt(8.0))
        assert "Number of queries=40" in capsys.readouterr().out

    def test_distance_limit_and_fallback(self, survey_files, tmp_path):
        points_path, targets_path, _ = survey_files
        out = tmp_path / "out.csv"

        code = main(["--points", str(points_path), "--targets", str(targets_path),
                     "--values-column", "static", "--dlimit", "1.0",
                     "--fallback", "-9", "--output", str(out), "--quiet"])

        assert code == 0
        rows = _read_rows(out)
        assert all(int(r["near_index"]) == -1 for r in rows)
        assert all(float(r["value"]) == -9.0 for r in rows)

    def test_check_mode(self, survey_files, capsys):
        points_path, targets_path, _ = survey_files
        code = main(["--points", str(points_path), "--targets", str(targets_path),
                     "--sdist=-5", "--check"])
        assert code == 0
        assert "0 disagreement(s)" in capsys.readouterr().out

    def test_check_mode_ties_on_box_edge(self, tmp_path, capsys):
        points_path = tmp_path / "pair.csv"
        targets_path = tmp_path / "origin.csv"
        save_points_to_csv(np.array([[-2.0, 0.0], [2.0, 0.0]]), str(points_path))
        save_points_to_csv(np.array([[0.0, 0.0]]), str(targets_path))
        out = tmp_path / "out.csv"

        code = main(["--points", str(points_path), "--targets", str(targets_path),
                     "--sdist=-2", "--check", "--output", str(out)])

        assert code == 0
        assert "0 disagreement(s)" in capsys.readouterr().out
        row = _read_rows(out)[0]
        assert (int(row["near_index"]), int(row["tie_count"])) == (1, 2)

    def test_missing_point_error(self, survey_files, capsys):
        points_path, targets_path, _ = survey_files
        code = main(["--points", str(points_path), "--targets", str(targets_path),
                     "--min", "5000,5000", "--max", "6000,6000",
                     "--nopoint", "error", "--quiet"])
        assert code == 1
        assert "Error" in capsys.readouterr().err

    def test_missing_column(self, survey_files):
        points_path, targets_path, _ = survey_files
        code = main(["--points", str(points_path), "--targets", str(targets_path),
                     "--dims", "x,depth", "--quiet"])
        assert code == 1

    def test_config_file(self, survey_files, tmp_path):
        points_path, targets_path, _ = survey_files
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"distance_limit": 1.0}))
        out = tmp_path / "out.csv"

        code = main(["--points", str(points_path), "--targets", str(targets_path),
                     "--config", str(config_path), "--output", str(out), "--quiet"])

        assert code == 0
        assert all(int(r["near_index"]) == -1 for r in _read_rows(out))

    def test_requires_targets(self, survey_files):
        points_path, _, _ = survey_files
        with pytest.raises(SystemExit):
            main(["--points", str(points_path)])


class TestBuildConfig:

    def test_flags(self):
        args = build_parser().parse_args([
            "--points", "p.csv", "--targets", "t.csv", "--dims", "x,y,station",
            "--sdist=-20", "--smult", "3", "--inactive-dims", "station",
            "--min=-inf,-inf,0", "--max", "inf,inf,500"
        ])
        config = build_config(args, ["x", "y", "station"])

        assert config.search_distance == -20.0
        assert config.growth_factor == 3.0
        assert config.active_dims == [True, True, False]
        assert config.global_min == [-np.inf, -np.inf, 0.0]
        assert config.global_max == [np.inf, np.inf, 500.0]

    def test_unknown_inactive_dim(self):
        args = build_parser().parse_args(["--points", "p.csv", "--targets", "t.csv",
                                          "--inactive-dims", "z"])
        with pytest.raises(ValueError):
            build_config(args, ["x", "y"])

    def test_wrong_bound_count(self):
        args = build_parser().parse_args(["--points", "p.csv", "--targets", "t.csv",
                                          "--min", "0"])
        with pytest.raises(ValueError):
            build_config(args, ["x", "y"])


class TestBenchmark:

    def test_small_benchmark(self, capsys):
        code = main(["--benchmark", "--sizes", "100", "--trials", "1", "--quiet"])
        assert code == 0
        out = capsys.readouterr().out
        assert "kdtree_hop" in out
        assert "brute_force" in out


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
