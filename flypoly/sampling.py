"""Weighted random choice over a finite set of labelled weights.

Callers routinely pass raw probabilities, counts, or products of scores,
so weights are normalized here by their sum before the draw.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar("T")


class EmptyOrZeroWeightError(ValueError):
    """No item has a positive weight (empty list, all zero, or all NaN)."""


def _weight_array(items: Sequence[Tuple[T, float]]) -> np.ndarray:
    """Weights as a float array; NaN counts as zero."""
    weights = np.array([w for _, w in items], dtype=np.float64)
    weights[np.isnan(weights)] = 0.0
    bad = (weights < 0.0) | np.isinf(weights)
    if bad.any():
        raise ValueError(
            f"Sampling weights must be finite and >= 0, got {weights[bad].tolist()}"
        )
    return weights


def choose_weighted(
    items: Sequence[Tuple[T, float]],
    rng: Optional[np.random.Generator] = None,
) -> T:
    """Draw one value with probability proportional to its weight.

    Args:
        items: Ordered (value, weight) pairs. Weights need not sum to 1.
            NaN weights count as zero.
        rng: NumPy random Generator. A fresh unseeded one is used if None.

    Returns:
        The chosen value.

    Raises:
        EmptyOrZeroWeightError: If no item has a positive weight.
        ValueError: If any weight is negative or infinite.
    """
    weights = _weight_array(items)
    total = weights.sum()
    if len(items) == 0 or total <= 0.0:
        raise EmptyOrZeroWeightError(
            f"Cannot sample from {len(items)} items with total weight {total}"
        )
    if rng is None:
        rng = np.random.default_rng()

    idx = rng.choice(len(items), p=weights / total)
    return items[int(idx)][0]
