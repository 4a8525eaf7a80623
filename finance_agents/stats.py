from typing import Sequence

import numpy as np

INCREASING = "increasing"
STABLE = "stable"
DECREASING = "decreasing"


def mean(xs: Sequence[float]) -> float:
    if len(xs) == 0:
        return 0.0
    return float(np.mean(xs))


def stddev(xs: Sequence[float]) -> float:
    # population standard deviation (divide by N)
    if len(xs) == 0:
        return 0.0
    return float(np.std(xs))


def coefficient_of_variation(xs: Sequence[float]) -> float:
    m = mean(xs)
    if m == 0:
        return 0.0
    return stddev(xs) / m


def trend_slope(xs: Sequence[float]) -> float:
    """Ordinary least-squares slope of xs against index 0..n-1."""
    n = len(xs)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=float)
    y = np.asarray(xs, dtype=float)
    x_centered = x - x.mean()
    return float(np.dot(x_centered, y - y.mean()) / np.dot(x_centered, x_centered))


def normalized_trend(xs: Sequence[float]) -> float:
    m = mean(xs)
    if m <= 0:
        return 0.0
    return trend_slope(xs) / m * 100


def classify_trend(xs: Sequence[float], threshold: float = 5.0) -> str:
    if len(xs) < 2:
        return STABLE
    value = normalized_trend(xs)
    if value > threshold:
        return INCREASING
    if value < -threshold:
        return DECREASING
    return STABLE
