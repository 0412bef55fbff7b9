"""
Permutation statistics for constrained ordination.

For every row permutation of the response matrix this computes the
constrained eigenvalue statistic (first column) and the residual
inertia (second column) from which a permutation F-ratio is formed.

Parallelism
-----------
Permutations are independent. They are cut into contiguous blocks,
each block owning its working buffer; blocks run with
``joblib.Parallel(prefer="threads")`` because the LAPACK calls release
the GIL. QR factors and the response matrix are shared read-only and
each block writes disjoint result rows.

Filler column
-------------
Without a partial model and without ``first``, residual inertia is
total inertia minus the constrained one, and total inertia is invariant
under row permutation. The residuals are therefore not computed and the
second column is left as NaN for the caller to fill.
"""

import logging
import numpy as np
from joblib import Parallel, delayed, effective_n_jobs

from .qr import FIT, RESID, QRFactor, check_factor
from .ev import sum_ev
from .._utils import check_array, check_permutations

logger = logging.getLogger(__name__)


def get_f(
    permutations,
    E,
    qr: QRFactor,
    qz: QRFactor = None,
    first: bool = False,
    is_partial: bool = None,
    backend=None,
    n_jobs: int = 1,
    validate: bool = True,
) -> np.ndarray:
    """
    Eigenvalue statistics of permuted data.

    Parameters
    ----------
    permutations : array-like of int, shape (nperm, nr)
        1-based row permutations, one per row
    E : ndarray, shape (nr, nc)
        Response matrix to be permuted
    qr : QRFactor
        Factor of the model matrix (conditions and constraints)
    qz : QRFactor, optional
        Factor of the conditions matrix of a partial model
    first : bool
        Use the first eigenvalue instead of the sum of all
    is_partial : bool, optional
        Remove the conditions from each permuted matrix first.
        Defaults to ``qz is not None``.
    backend : Backend or str, optional
        Computational backend
    n_jobs : int
        Number of parallel workers (joblib convention, -1 for all cores)
    validate : bool
        Check permutations and shapes. With False, rows that are not
        bijections give meaningless statistics instead of an error.

    Returns
    -------
    ndarray, shape (nperm, 2)
        Column 0: first eigenvalue (``first``) or sum of constrained
        eigenvalues. Column 1: residual inertia when partial or first,
        else NaN filler.

    Raises
    ------
    QRApplyError, SVDError
        A numeric primitive failed; no results are returned
    ValidationError
        Malformed input (only when validate=True)

    Examples
    --------
    >>> Q = qr_decomposition(X)
    >>> stats = get_f(shuffle_set(len(E), 99), E, Q)
    """
    from .._backends import resolve_backend
    backend = resolve_backend(backend)

    if validate:
        E = check_array(E, name='E')
    else:
        E = np.asarray(E, dtype=np.float64)
        if E.ndim == 1:
            E = E[:, np.newaxis]
    nr, nc = E.shape

    if is_partial is None:
        is_partial = qz is not None
    if is_partial and qz is None:
        raise ValueError("is_partial=True requires the conditions factor qz")

    check_factor(qr, nr, 'qr')
    if is_partial:
        check_factor(qz, nr, 'qz')

    index = check_permutations(permutations, nr, validate=validate)
    nperm = index.shape[0]

    out = np.full((nperm, 2), np.nan)
    if nperm == 0:
        return out

    blocks = _split_blocks(nperm, n_jobs)
    logger.debug(
        "get_f: nperm=%d nr=%d nc=%d first=%s partial=%s backend=%s blocks=%d",
        nperm, nr, nc, first, is_partial, backend.name, len(blocks)
    )

    if len(blocks) == 1:
        results = [_evaluate_block(index, E, qr, qz, first, is_partial, backend)]
    else:
        results = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_evaluate_block)(
                index[block], E, qr, qz, first, is_partial, backend
            )
            for block in blocks
        )

    for block, result in zip(blocks, results):
        out[block] = result
    return out


def _split_blocks(nperm: int, n_jobs: int) -> list:
    """Contiguous slices, one per worker."""
    n_workers = max(1, min(nperm, effective_n_jobs(n_jobs)))
    edges = np.linspace(0, nperm, n_workers + 1).astype(int)
    return [slice(lo, hi) for lo, hi in zip(edges[:-1], edges[1:]) if hi > lo]


def _evaluate_block(index, E, qr, qz, first, is_partial, backend) -> np.ndarray:
    """Sequential loop over one block of permutations (0-based index)."""
    nb = index.shape[0]
    result = np.full((nb, 2), np.nan)
    Y = np.empty_like(E)

    # Residuals are only needed for the second column
    want_resid = is_partial or first
    job = FIT + RESID if want_resid else FIT

    for k in range(nb):
        np.take(E, index[k], axis=0, out=Y)

        if is_partial:
            Y[...] = backend.qr_apply(qz, Y, RESID).resid

        fit = backend.qr_apply(qr, Y, job)

        if first:
            ev1 = backend.svd_first(fit.fitted)
            result[k, 0] = ev1 * ev1
        else:
            result[k, 0] = sum_ev(fit.fitted)
        if want_resid:
            result[k, 1] = sum_ev(fit.resid)

    return result
