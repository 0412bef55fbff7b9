"""
Permutation tables in the 1-based layout the engine expects.
"""

import numpy as np
from typing import Optional


def shuffle_set(n: int, nperm: int, seed: Optional[int] = None) -> np.ndarray:
    """
    Free random row permutations.

    Parameters
    ----------
    n : int
        Number of observations
    nperm : int
        Number of permutations
    seed : int or numpy Generator, optional
        Random seed

    Returns
    -------
    ndarray of int64, shape (nperm, n)
        One 1-based permutation per row
    """
    if n < 1:
        raise ValueError(f"n must be positive, got {n}")
    if nperm < 0:
        raise ValueError(f"nperm must be non-negative, got {nperm}")
    rng = np.random.default_rng(seed)
    base = np.broadcast_to(np.arange(1, n + 1, dtype=np.int64), (nperm, n))
    return rng.permuted(base, axis=1)


def identity_permutation(n: int) -> np.ndarray:
    """The unpermuted order as a one-row table."""
    return np.arange(1, n + 1, dtype=np.int64)[np.newaxis, :]
