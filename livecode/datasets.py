"""Inline reference datasets used when seaborn cannot fetch its own copies.

The frames are small excerpts of the seaborn sample datasets, enough for the
lecture snippets (bar, box, heatmap and count plots) to run offline.
"""

from __future__ import annotations

FALLBACK_DATASETS: dict[str, dict[str, list]] = {
    "tips": {
        "total_bill": [16.99, 10.34, 21.01, 23.68, 24.59, 25.29, 8.77, 26.88],
        "tip": [1.01, 1.66, 3.50, 3.31, 3.61, 4.71, 2.00, 3.12],
        "sex": ["Female", "Male", "Male", "Male", "Female", "Male", "Female", "Male"],
        "day": ["Sun", "Sun", "Sun", "Sun", "Sun", "Sun", "Sat", "Sat"],
    },
    "titanic": {
        "survived": [0, 1, 1, 0, 1, 0, 1, 0],
        "pclass": [3, 1, 3, 1, 2, 3, 2, 1],
        "sex": ["male", "female", "female", "male", "female", "male", "female", "male"],
        "age": [22, 38, 26, 35, 27, 28, 14, 54],
        "fare": [7.25, 71.28, 7.92, 53.10, 10.50, 8.05, 30.07, 51.86],
        "class": ["Third", "First", "Third", "First", "Second", "Third", "Second", "First"],
    },
}


def fallback_columns(names: list[str]) -> dict[str, dict[str, list]]:
    """Return the inline frames for the requested dataset names that have one."""
    return {name: FALLBACK_DATASETS[name] for name in names if name in FALLBACK_DATASETS}
