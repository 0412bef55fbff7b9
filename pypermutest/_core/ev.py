"""
Eigenvalue reductions of fitted and residual matrices.

The eigenvalues of a constrained ordination are the squared singular
values of its fitted matrix, so the total inertia is a plain sum of
squares and the first eigenvalue is the first singular value squared.
"""

import numpy as np


def sum_ev(x: np.ndarray, is_db: bool = False) -> float:
    """
    Sum of all eigenvalues of x'x.

    Parameters
    ----------
    x : ndarray, shape (n, m)
        Fitted or residual matrix
    is_db : bool
        If True, x is a square (distance-based) matrix and only its
        diagonal contributes

    Returns
    -------
    float
        Sum of squared entries (or squared diagonal entries)
    """
    x = np.asarray(x, dtype=np.float64)
    if is_db:
        if x.ndim != 2 or x.shape[0] != x.shape[1]:
            raise ValueError(
                f"is_db=True needs a square matrix, got shape {x.shape}"
            )
        d = np.diagonal(x)
        return float(np.dot(d, d))
    x = x.ravel()
    return float(np.dot(x, x))


def svd_first(x: np.ndarray, backend=None) -> float:
    """
    Largest singular value of x (not squared).

    Parameters
    ----------
    x : ndarray, shape (n, m)
        Matrix to decompose (not modified)
    backend : Backend or str, optional
        Computational backend

    Returns
    -------
    float
        First singular value; 0.0 for an empty matrix

    Raises
    ------
    SVDError
        If the decomposition reports a nonzero status
    """
    from .._backends import resolve_backend
    return resolve_backend(backend).svd_first(x)
