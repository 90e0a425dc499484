"""
Shared fixtures for the test suite.

In-memory scenarios return (steps, confidential, synthetic) built from small
frames with hand-picked posterior draws; ``data_dir`` writes the same kind of
bundle to disk for the loader and CLI tests.
"""

import sys
from pathlib import Path

import pandas as pd
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from attrisk.steps import SynthesisStep


@pytest.fixture
def normal_scenario():
    """One normal step, intercept-only, three varied draws around 0."""
    confidential = pd.DataFrame({"y": [-1.0, 0.0, 1.0]})
    synthetic = [confidential.copy()]
    draws = pd.DataFrame({
        "(Intercept)": [-1.0, 0.0, 1.0],
        "sigma": [1.0, 1.0, 1.0],
    })
    steps = [SynthesisStep.from_formula("y ~ 1", "normal", draws)]
    return steps, confidential, synthetic


@pytest.fixture
def single_draw_scenario():
    """One normal step with a single draw equal to the generating parameters."""
    confidential = pd.DataFrame({"y": [-1.0, 0.0, 1.0]})
    synthetic = [confidential.copy()]
    draws = pd.DataFrame({"(Intercept)": [0.0], "sigma": [1.0]})
    steps = [SynthesisStep.from_formula("y ~ 1", "normal", draws)]
    return steps, confidential, synthetic


@pytest.fixture
def binomial_scenario():
    """One binomial step whose likely draw favours the observed class."""
    confidential = pd.DataFrame({"smoker": [1, 1, 0, 1]})
    synthetic = [pd.DataFrame({"smoker": [1, 1, 1, 1, 1]})]
    draws = pd.DataFrame({"(Intercept)": [10.0, -10.0]})
    steps = [SynthesisStep.from_formula("smoker ~ 1", "binomial", draws, categorical=True)]
    return steps, confidential, synthetic


@pytest.fixture
def two_step_scenario():
    """x is synthesized first, then y is regressed on the synthesized x."""
    confidential = pd.DataFrame(
        {"x": [0.0, 1.0, 2.0], "y": [1.0, 2.0, 3.0]},
        index=["a", "b", "c"],
    )
    synthetic = [
        pd.DataFrame({"x": [0.5, 1.5], "y": [1.5, 2.5]}),
        pd.DataFrame({"x": [0.0, 2.0], "y": [1.0, 3.5]}),
    ]
    draws_x = pd.DataFrame({
        "(Intercept)": [0.5, 1.0, 1.5],
        "sigma": [1.0, 1.0, 1.0],
    })
    draws_y = pd.DataFrame({
        "(Intercept)": [1.0, 0.9, 1.1],
        "x": [1.0, 1.0, 0.9],
        "sigma": [0.5, 0.5, 0.5],
    })
    steps = [
        SynthesisStep.from_formula("x ~ 1", "normal", draws_x),
        SynthesisStep.from_formula("y ~ x", "normal", draws_y),
    ]
    return steps, confidential, synthetic


@pytest.fixture
def data_dir(tmp_path):
    """Write a small confidential/synthetic/draws bundle to disk."""
    pd.DataFrame({
        "age": [40, 25, 35],
        "sex": ["M", "F", "M"],
        "income": [50000.0, 30000.0, 40000.0],
    }).to_csv(tmp_path / "confidential.csv", index=False)

    pd.DataFrame({
        "age": [40, 25, 35, 60],
        "sex": ["F", "F", "M", "M"],
        "income": [48000.0, 31000.0, 42000.0, 55000.0],
    }).to_csv(tmp_path / "synthetic_1.csv", index=False)

    pd.DataFrame({
        "age": [41, 26],
        "sex": ["M", "X"],
        "income": [47000.0, 29000.0],
    }).to_csv(tmp_path / "synthetic_2.csv", index=False)

    pd.DataFrame({"(Intercept)": [0.2, -0.1]}).to_csv(tmp_path / "draws_sex.csv", index=False)
    pd.DataFrame({
        "(Intercept)": [20000.0, 21000.0],
        "age": [600.0, 590.0],
        "sexM": [2000.0, 2100.0],
        "sigma": [5000.0, 5200.0],
    }).to_csv(tmp_path / "draws_income.csv", index=False)

    return tmp_path


@pytest.fixture
def analysis_config():
    return {
        "data": {
            "confidential": "confidential.csv",
            "synthetic": ["synthetic_1.csv"],
            "categorical_columns": ["sex"],
        },
        "steps": [
            {"formula": "sex ~ 1", "family": "binomial", "draws": "draws_sex.csv",
             "categorical": True},
            {"formula": "income ~ age + sex", "family": "normal", "draws": "draws_income.csv"},
        ],
        "risk": {"iterations": 2, "guess_count": 3},
    }
