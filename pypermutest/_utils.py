"""
Utility functions.
"""

import numpy as np

from ._exceptions import DimensionError, ValidationError


def check_array(X, name='X', dtype=np.float64):
    """Validate array input."""
    X = np.asarray(X, dtype=dtype)
    if X.ndim == 1:
        X = X[:, np.newaxis]
    if X.ndim != 2:
        raise DimensionError(f"{name} must be 2-dimensional, got {X.ndim}D")
    if not np.all(np.isfinite(X)):
        raise ValidationError(f"{name} contains NaN or Inf")
    return X


def check_permutations(perms, n, validate=True):
    """
    Validate a 1-based permutation table and return a 0-based copy.

    Parameters
    ----------
    perms : array-like of int, shape (nperm, n) or (n,)
        Row-permutation indices, 1-based. A single row may be given as
        a vector.
    n : int
        Number of rows of the permuted matrix
    validate : bool
        If False only the conversion is done. Rows that are not
        bijections then yield meaningless statistics, and indices
        outside ``1..n`` fail in NumPy indexing.

    Returns
    -------
    ndarray of intp, shape (nperm, n)
        Private 0-based copy; the caller's array is never modified.
    """
    perms = np.asarray(perms)
    if perms.ndim == 1:
        perms = perms[np.newaxis, :]
    if perms.ndim != 2:
        raise DimensionError(
            f"permutations must be 2-dimensional, got {perms.ndim}D"
        )

    if validate:
        if perms.size and not np.issubdtype(perms.dtype, np.integer):
            if not np.all(np.equal(np.mod(perms, 1), 0)):
                raise ValidationError("permutations must contain integers")
        if perms.shape[1] != n:
            raise DimensionError(
                f"permutations have {perms.shape[1]} columns but the "
                f"response matrix has {n} rows"
            )
        if perms.size and (perms.min() < 1 or perms.max() > n):
            raise ValidationError(
                f"permutation indices must lie in 1..{n} (1-based)"
            )

    index = perms.astype(np.intp) - 1

    if validate and index.size:
        expected = np.arange(n)
        bad = np.flatnonzero(
            ~np.all(np.sort(index, axis=1) == expected, axis=1)
        )
        if bad.size:
            raise ValidationError(
                f"permutation row {bad[0] + 1} is not a permutation of 1..{n} "
                f"({bad.size} invalid row(s))"
            )

    return index
