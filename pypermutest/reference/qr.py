"""
QR decomposition with column pivoting, and its application.

Replicates R's dqrdc2.f and LINPACK's dqrsl.f with plain loops.
Slow, but each step can be compared line by line with the Fortran.
"""

import numpy as np
from typing import Tuple


def dqrdc2(
    X: np.ndarray,
    tol: float = 1e-7,
) -> Tuple[np.ndarray, int, np.ndarray, np.ndarray]:
    """
    QR decomposition with limited column pivoting.

    Replicates R's dqrdc2.f (Householder transformations).

    Parameters
    ----------
    X : ndarray, shape (n, p)
        Matrix to decompose (a copy is modified, X is left alone)
    tol : float, default=1e-7
        Tolerance for rank determination

    Returns
    -------
    qr : ndarray, shape (n, p)
        R in the upper triangle, Householder vectors below it
    rank : int
        Number of columns judged linearly independent
    qraux : ndarray, shape (p,)
        Auxiliary information for recovering Q
    pivot : ndarray, shape (p,)
        Pivot indices (0-indexed)

    Notes
    -----
    Columns whose norm falls below ``tol`` times their original norm are
    moved to the right-hand edge, so sequential one degree-of-freedom
    effects come out in their natural order.

    Reference:
    R source: src/appl/dqrdc2.f
    """
    x = np.array(X, dtype=np.float64, copy=True)
    n, p = x.shape
    qraux = np.zeros(p)
    work = np.zeros((p, 2))
    jpvt = np.arange(p)

    # Column norms
    if n > 0:
        for j in range(p):
            qraux[j] = np.linalg.norm(x[:, j])
            work[j, 0] = qraux[j]
            work[j, 1] = qraux[j]
            if work[j, 1] == 0.0:
                work[j, 1] = 1.0

    lup = min(n, p)
    k = p + 1

    for l in range(lup):
        # Cycle negligible columns to the right edge; l + 1 < k avoids
        # infinite cycling
        while l + 1 < k and qraux[l] < work[l, 1] * tol:
            x[:, l:] = np.roll(x[:, l:], -1, axis=1)
            jpvt[l:] = np.roll(jpvt[l:], -1)
            qraux[l:] = np.roll(qraux[l:], -1)
            work[l:, :] = np.roll(work[l:, :], -1, axis=0)
            k -= 1

        if l + 1 == n:
            continue

        # Householder transformation for column l
        nrmxl = np.linalg.norm(x[l:, l])
        if nrmxl == 0.0:
            continue
        if x[l, l] != 0.0:
            nrmxl = np.copysign(nrmxl, x[l, l])
        x[l:, l] /= nrmxl
        x[l, l] = 1.0 + x[l, l]

        # Apply to the remaining columns, updating the norms
        for j in range(l + 1, p):
            t = -np.dot(x[l:, l], x[l:, j]) / x[l, l]
            x[l:, j] += t * x[l:, l]
            if qraux[j] == 0.0:
                continue
            tt = 1.0 - (abs(x[l, j]) / qraux[j]) ** 2
            tt = max(tt, 0.0)
            # Re-compute norms if there is large reduction
            if abs(tt) < 1e-6:
                qraux[j] = np.linalg.norm(x[l + 1:, j])
                work[j, 0] = qraux[j]
            else:
                qraux[j] = qraux[j] * np.sqrt(tt)

        # Save the transformation
        qraux[l] = x[l, l]
        x[l, l] = -nrmxl

    k = min(k - 1, n)
    return x, k, qraux, jpvt


def dqrsl(
    qr: np.ndarray,
    k: int,
    qraux: np.ndarray,
    y: np.ndarray,
    job: int,
):
    """
    Apply the output of dqrdc2 to one vector.

    Parameters
    ----------
    qr, qraux : ndarray
        Output of dqrdc2
    k : int
        Number of columns of the model (the rank)
    y : ndarray, shape (n,)
        Vector to manipulate (not modified)
    job : int
        Decimal code abcde: a -> qy, b/c/d/e -> qty, c -> b,
        d -> rsd, e -> xb

    Returns
    -------
    qy, qty, b, rsd, xb : ndarray or None
        Requested quantities
    info : int
        Nonzero (1-based index of the zero diagonal of R) when b was
        requested and R is exactly singular

    Reference:
    LINPACK dqrsl.f (08/14/78, G.W. Stewart)
    """
    n = qr.shape[0]
    y = np.asarray(y, dtype=np.float64)
    info = 0

    cqy = job // 10000 != 0
    cqty = job % 10000 != 0
    cb = job % 1000 // 100 != 0
    cr = job % 100 // 10 != 0
    cxb = job % 10 != 0
    ju = min(k, n - 1)

    qy = qty = b = rsd = xb = None

    def householder(j, v):
        col = qr[j:, j].copy()
        col[0] = qraux[j]
        t = -np.dot(col, v[j:]) / col[0]
        v[j:] = v[j:] + t * col

    # Special action when n == 1
    if ju == 0:
        if cqy:
            qy = y.copy()
        if cqty:
            qty = y.copy()
        if cxb:
            xb = y.copy()
        if cb:
            if k == 0 or qr[0, 0] == 0.0:
                info = 1
            else:
                b = y[:1] / qr[0, 0]
        if cr:
            rsd = np.zeros(n)
        return qy, qty, b, rsd, xb, info

    if cqy:
        qy = y.copy()
        for j in range(ju - 1, -1, -1):
            if qraux[j] != 0.0:
                householder(j, qy)

    if cqty:
        qty = y.copy()
        for j in range(ju):
            if qraux[j] != 0.0:
                householder(j, qty)

    if cb:
        b = qty[:k].copy()
    if cr:
        rsd = np.zeros(n)
        rsd[k:] = qty[k:]
    if cxb:
        xb = qty.copy()
        xb[k:] = 0.0

    if cb:
        # Back substitution
        for jj in range(k - 1, -1, -1):
            if qr[jj, jj] == 0.0:
                info = jj + 1
                break
            b[jj] = b[jj] / qr[jj, jj]
            if jj > 0:
                b[:jj] -= b[jj] * qr[:jj, jj]

    if cr or cxb:
        for j in range(ju - 1, -1, -1):
            if qraux[j] == 0.0:
                continue
            if cr:
                householder(j, rsd)
            if cxb:
                householder(j, xb)

    return qy, qty, b, rsd, xb, info
