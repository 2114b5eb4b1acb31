"""Synthetic vowel formant data for demos and the viewer app.

Each vowel gets a bivariate normal cloud around typical adult F1/F2 values
(Hz). Output is deterministic for a given seed.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

# vowel -> (F1 mean, F2 mean, F1 sd, F2 sd, correlation, example word)
FORMANT_TARGETS: dict[str, tuple[float, float, float, float, float, str]] = {
    "i": (280.0, 2250.0, 30.0, 150.0, -0.3, "heed"),
    "ɪ": (400.0, 1920.0, 35.0, 140.0, -0.2, "hid"),
    "e": (450.0, 2050.0, 35.0, 140.0, -0.2, "hayed"),
    "ɛ": (550.0, 1770.0, 45.0, 130.0, -0.1, "head"),
    "æ": (690.0, 1660.0, 60.0, 120.0, 0.1, "had"),
    "ɑ": (710.0, 1100.0, 55.0, 90.0, 0.4, "hod"),
    "ɔ": (590.0, 880.0, 45.0, 80.0, 0.4, "hawed"),
    "o": (450.0, 880.0, 35.0, 90.0, 0.3, "hoed"),
    "ʊ": (450.0, 1030.0, 35.0, 110.0, 0.2, "hood"),
    "u": (310.0, 870.0, 30.0, 120.0, 0.2, "who'd"),
}


def make_formant_dataset(
    groups: Optional[Sequence[str]] = None,
    n_per_group: int = 30,
    seed: int = 0,
) -> pd.DataFrame:
    """Generate a long-format vowel table with columns vowel, word, F1, F2.

    Args:
        groups: Vowels to include, in output order; default all of FORMANT_TARGETS.
        n_per_group: Tokens per vowel.
        seed: Seed for numpy's default_rng.

    Raises:
        KeyError: A requested vowel has no formant target.
        ValueError: ``n_per_group`` is negative.
    """
    if n_per_group < 0:
        raise ValueError(f"n_per_group must be >= 0, got {n_per_group}")
    groups = list(FORMANT_TARGETS) if groups is None else list(groups)
    rng = np.random.default_rng(seed)

    frames = []
    for vowel in groups:
        f1, f2, sd1, sd2, rho, word = FORMANT_TARGETS[vowel]
        cov = np.array([[sd1 ** 2, rho * sd1 * sd2], [rho * sd1 * sd2, sd2 ** 2]])
        xy = rng.multivariate_normal([f1, f2], cov, size=n_per_group)
        frames.append(pd.DataFrame({
            "vowel": vowel,
            "word": word,
            "F1": np.round(xy[:, 0], 1),
            "F2": np.round(xy[:, 1], 1),
        }))
    if not frames:
        return pd.DataFrame(columns=["vowel", "word", "F1", "F2"])
    return pd.concat(frames, ignore_index=True)
