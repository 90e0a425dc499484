#!/usr/bin/env python3
"""
End-to-end tests of the command line pipeline and the consistency checker.
"""

import importlib.util

import matplotlib
matplotlib.use("Agg")

import pytest
import pandas as pd
import yaml
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main as cli

ROOT = Path(__file__).parent.parent


def load_checker():
    spec = importlib.util.spec_from_file_location(
        "check_consistency", ROOT / "scripts" / "check_consistency.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def config_path(data_dir, analysis_config):
    path = data_dir / "analysis.yaml"
    path.write_text(yaml.safe_dump(analysis_config))
    return path


class TestCommandLine:

    def test_full_run(self, config_path, tmp_path, monkeypatch):
        out = tmp_path / "results"
        monkeypatch.setattr(sys, "argv", [
            "main.py", "--config", str(config_path), "--output-dir", str(out), "--plot",
        ])

        assert cli.main() == 0

        report = yaml.safe_load((out / "analysis_report.yaml").read_text())
        assert report["n_records_estimated"] == 3
        assert report["outcomes"] == ["sex", "income"]
        assert report["results_summary"]["n_records"] == 3

        records = pd.read_csv(out / "tables" / "record_risk.csv")
        assert len(records) == 3
        assert (out / "figures" / "random_guess.png").exists()

        # The exports agree with each other
        monkeypatch.setattr(sys, "argv", ["check_consistency.py", str(out)])
        assert load_checker().main() == 0

    def test_sample_and_iterations(self, config_path, tmp_path, monkeypatch):
        out = tmp_path / "results"
        monkeypatch.setattr(sys, "argv", [
            "main.py", "--config", str(config_path), "--output-dir", str(out),
            "--sample-size", "2", "--iterations", "1", "--seed", "7",
        ])

        assert cli.main() == 0

        report = yaml.safe_load((out / "analysis_report.yaml").read_text())
        assert report["n_records_estimated"] == 2
        assert report["risk_config"]["iterations"] == 1
        assert not (out / "figures").exists()

    def test_failure_returns_one(self, data_dir, analysis_config, tmp_path, monkeypatch):
        analysis_config["steps"][0]["family"] = "gamma"
        path = data_dir / "broken.yaml"
        path.write_text(yaml.safe_dump(analysis_config))

        monkeypatch.setattr(sys, "argv", [
            "main.py", "--config", str(path), "--output-dir", str(tmp_path / "results"),
        ])

        assert cli.main() == 1


class TestConsistencyChecker:

    def test_detects_tampered_table(self, config_path, tmp_path, monkeypatch):
        out = tmp_path / "results"
        monkeypatch.setattr(sys, "argv", [
            "main.py", "--config", str(config_path), "--output-dir", str(out),
        ])
        assert cli.main() == 0

        records_path = out / "tables" / "record_risk.csv"
        records = pd.read_csv(records_path)
        records.loc[0, "top_prob"] = 2.0
        records.to_csv(records_path, index=False)

        monkeypatch.setattr(sys, "argv", ["check_consistency.py", str(out)])
        assert load_checker().main() == 1

    def test_missing_results(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["check_consistency.py", str(tmp_path / "none")])
        assert load_checker().main() == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
