"""
QR factor objects and the LINPACK dqrsl request protocol.

A factor is kept in LINPACK compact form, the form R's ``qr()`` returns:
R on and above the diagonal of ``qr``, the Householder vectors below it,
and the leading element of each Householder vector in ``qraux``.
Backends apply factors; this module only describes them.
"""

import numpy as np
from typing import Optional, NamedTuple
from dataclasses import dataclass, field

from .._exceptions import DimensionError

# dqrsl request codes (decimal digits of the ``job`` argument)
FIT = 1
RESID = 10
COEF = 100
QTY = 1000
QY = 10000


@dataclass(frozen=True)
class QRFactor:
    """Result of a QR decomposition in LINPACK form."""
    qr: np.ndarray      # R on/above diagonal, Householder vectors below
    rank: int           # Number of columns used by the model
    qraux: np.ndarray   # Leading Householder elements
    pivot: np.ndarray = field(default=None)  # Pivot indices (1-indexed, R convention)
    tol: float = 1e-7   # Tolerance used for the rank

    def __post_init__(self):
        qr = np.asarray(self.qr, dtype=np.float64)
        if qr.ndim == 1:
            qr = qr[:, np.newaxis]
        if qr.ndim != 2:
            raise DimensionError(f"qr must be 2-dimensional, got {qr.ndim}D")
        n, p = qr.shape
        qraux = np.asarray(self.qraux, dtype=np.float64).ravel()
        if qraux.shape[0] < min(n, p):
            raise DimensionError(
                f"qraux has length {qraux.shape[0]}, need at least {min(n, p)}"
            )
        rank = int(self.rank)
        if rank < 0 or rank > min(n, p):
            raise DimensionError(
                f"rank {rank} outside 0..min(n, p) = {min(n, p)}"
            )
        pivot = self.pivot
        if pivot is None:
            pivot = np.arange(1, p + 1, dtype=np.int64)

        # Factors are shared read-only across permutation workers
        qr = qr.copy()
        qr.setflags(write=False)
        qraux = qraux.copy()
        qraux.setflags(write=False)
        pivot = np.asarray(pivot, dtype=np.int64).copy()
        pivot.setflags(write=False)

        object.__setattr__(self, 'qr', qr)
        object.__setattr__(self, 'qraux', qraux)
        object.__setattr__(self, 'rank', rank)
        object.__setattr__(self, 'pivot', pivot)

    @property
    def n(self) -> int:
        """Number of observations (rows)."""
        return self.qr.shape[0]

    @property
    def p(self) -> int:
        """Number of model columns."""
        return self.qr.shape[1]

    @property
    def R(self) -> np.ndarray:
        """Upper triangular factor, shape (min(n, p), p)."""
        return np.triu(self.qr[:min(self.n, self.p), :])

    @classmethod
    def from_arrays(cls, qr, rank, qraux, pivot=None, tol=1e-7) -> 'QRFactor':
        """
        Wrap an externally computed LINPACK factor.

        Parameters
        ----------
        qr : ndarray, shape (n, p)
            Compact QR matrix, e.g. ``qr(X)$qr`` from R
        rank : int
            Rank, e.g. ``qr(X)$rank``
        qraux : ndarray, shape (p,)
            Auxiliary vector, e.g. ``qr(X)$qraux``
        """
        return cls(qr=qr, rank=rank, qraux=qraux, pivot=pivot, tol=tol)

    @classmethod
    def from_lapack(cls, a, tau, rank, pivot=None, tol=1e-7) -> 'QRFactor':
        """
        Convert a LAPACK ``geqrf``/``geqp3`` factor into LINPACK form.

        LAPACK stores H_j = I - tau_j v v' with v[0] = 1 implicit.
        LINPACK stores u = tau_j v and applies H_j = I - u u' / u[0],
        so ``qraux[j] = tau[j]`` and the stored subdiagonal is scaled
        by ``tau[j]``.
        """
        a = np.array(a, dtype=np.float64, copy=True)
        if a.ndim != 2:
            raise DimensionError(f"a must be 2-dimensional, got {a.ndim}D")
        n, p = a.shape
        tau = np.asarray(tau, dtype=np.float64).ravel()
        k = min(n, p)

        qraux = np.zeros(p, dtype=np.float64)
        qraux[:tau.shape[0]] = tau[:p]
        for j in range(k):
            a[j + 1:, j] *= qraux[j]

        if pivot is not None:
            pivot = np.asarray(pivot, dtype=np.int64) + 1

        return cls(qr=a, rank=rank, qraux=qraux, pivot=pivot, tol=tol)


class JobFlags(NamedTuple):
    """Decoded dqrsl request."""
    qy: bool
    qty: bool
    coef: bool
    resid: bool
    fitted: bool


def decode_job(job: int) -> JobFlags:
    """
    Decode a dqrsl request code.

    A request for coefficients, residuals or fitted values implies
    computing Q'y, as in LINPACK.
    """
    job = int(job)
    if job <= 0:
        raise ValueError(f"Invalid dqrsl job code: {job}")
    return JobFlags(
        qy=job // QY != 0,
        qty=job % QY != 0,
        coef=job % QTY // COEF != 0,
        resid=job % COEF // RESID != 0,
        fitted=job % RESID != 0,
    )


@dataclass
class QRApplyResult:
    """Quantities derived from a QR factor; unrequested ones are None."""
    qy: Optional[np.ndarray] = None
    qty: Optional[np.ndarray] = None
    coef: Optional[np.ndarray] = None
    resid: Optional[np.ndarray] = None
    fitted: Optional[np.ndarray] = None
    info: int = 0


def check_factor(factor: QRFactor, n: int, name: str = 'qr') -> None:
    """Raise DimensionError if factor does not belong to n observations."""
    if not isinstance(factor, QRFactor):
        raise TypeError(
            f"{name} must be a QRFactor, got {type(factor).__name__}"
        )
    if factor.n != n:
        raise DimensionError(
            f"{name} was computed for {factor.n} observations, "
            f"but the response matrix has {n} rows"
        )


def qr_decomposition(
    X: np.ndarray,
    tol: float = 1e-7,
    backend=None,
) -> QRFactor:
    """
    QR decomposition with column pivoting.

    Delegates to backend-specific implementation.

    Parameters
    ----------
    X : ndarray, shape (n, p)
        Matrix to decompose
    tol : float, default=1e-7
        Tolerance for rank determination (R's default)
    backend : Backend or str, optional
        Computational backend

    Returns
    -------
    result : QRFactor
        Factor in LINPACK form
    """
    from .._backends import resolve_backend
    backend = resolve_backend(backend)
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X[:, np.newaxis]
    return backend.qr_decomposition(X, tol=tol)


def qr_fitted(factor: QRFactor, y, backend=None) -> np.ndarray:
    """Projection of y onto the column space (R's ``qr.fitted``)."""
    from .._backends import resolve_backend
    return resolve_backend(backend).qr_apply(factor, y, FIT).fitted


def qr_resid(factor: QRFactor, y, backend=None) -> np.ndarray:
    """Projection of y onto the orthogonal complement (R's ``qr.resid``)."""
    from .._backends import resolve_backend
    return resolve_backend(backend).qr_apply(factor, y, RESID).resid


def qr_coef(factor: QRFactor, y, backend=None) -> np.ndarray:
    """
    Least squares coefficients in original column order (R's ``qr.coef``).

    Coefficients of aliased columns (beyond the rank) are NaN.
    """
    from .._backends import resolve_backend
    result = resolve_backend(backend).qr_apply(factor, y, COEF)
    b = result.coef
    out_shape = (factor.p,) + b.shape[1:]
    coef = np.full(out_shape, np.nan)
    coef[factor.pivot[:factor.rank] - 1] = b[:factor.rank]
    return coef
