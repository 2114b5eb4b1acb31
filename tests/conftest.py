# tests/conftest.py
"""Shared fixtures for layerplot tests."""
from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest


def pytest_configure() -> None:
    # Ensure layerplot package is importable when running tests from repo root.
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    if src_dir.exists() and str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


@pytest.fixture
def formant_df() -> pd.DataFrame:
    """Three vowels, four tokens each, in order i, a, u."""
    return pd.DataFrame({
        "vowel": ["i"] * 4 + ["a"] * 4 + ["u"] * 4,
        "word": ["heed", "heed", "heed", "heed", "had", "had", "had", "had", "who'd", "who'd", "who'd", "who'd"],
        "F1": [280.0, 300.0, 290.0, 310.0, 700.0, 720.0, 690.0, 730.0, 310.0, 330.0, 300.0, 320.0],
        "F2": [2250.0, 2200.0, 2300.0, 2280.0, 1100.0, 1150.0, 1080.0, 1120.0, 870.0, 900.0, 850.0, 880.0],
    })


@pytest.fixture
def ten_group_df() -> pd.DataFrame:
    """Groups A..J, 50 records each, values strictly positive."""
    rows = []
    for g, name in enumerate("ABCDEFGHIJ"):
        for k in range(50):
            rows.append({
                "group": name,
                "x": 100.0 + 10.0 * g + (k % 7),
                "y": 50.0 + 5.0 * g + (k % 5) + 0.1 * (k % 3),
            })
    return pd.DataFrame(rows)
