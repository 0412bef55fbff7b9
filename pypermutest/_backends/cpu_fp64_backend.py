"""
CPU backend using NumPy + SciPy.

Householder reflections are applied to all columns of a matrix at once,
which is equivalent to calling dqrsl column by column.
"""

import numpy as np
from scipy.linalg import lapack, qr as scipy_qr, solve_triangular

from .base import CPUBackend
from .._core.qr import QRFactor, QRApplyResult, decode_job
from .._exceptions import DimensionError, QRApplyError, SVDError


def _reflect(qr: np.ndarray, qraux: np.ndarray, Y: np.ndarray, order) -> None:
    """Apply Householder reflections H_j (j in order) to Y in place."""
    for j in order:
        if qraux[j] == 0.0:
            continue
        u = qr[j:, j].copy()
        u[0] = qraux[j]
        t = -(u @ Y[j:]) / u[0]
        Y[j:] += np.outer(u, t)


class CPUBackendFP64(CPUBackend):
    """
    CPU backend using NumPy + SciPy.

    Default backend. Always uses FP64 precision.
    """

    def __init__(self):
        self.name = "cpu_fp64"
        self.precision = "fp64"

    def qr_decomposition(self, X: np.ndarray, tol: float = 1e-7) -> QRFactor:
        """
        Pivoted Householder QR via LAPACK geqp3, converted to LINPACK form.

        Pivoting is full (largest remaining norm first), unlike R's
        dqrdc2, so pivots may differ from R; fitted values and
        residuals do not.
        """
        X = np.asarray(X, dtype=np.float64)
        n, p = X.shape
        if n == 0 or p == 0:
            return QRFactor(qr=X.copy(), rank=0, qraux=np.zeros(p), tol=tol)

        (a, tau), _, piv = scipy_qr(X, mode='raw', pivoting=True)

        # Determine rank
        R_diag = np.abs(np.diag(a))
        if R_diag[0] == 0:
            rank = 0
        else:
            rank = int(np.sum(R_diag >= tol * R_diag[0]))

        return QRFactor.from_lapack(a, tau, rank, pivot=piv, tol=tol)

    def qr_apply(self, factor: QRFactor, y: np.ndarray, job: int) -> QRApplyResult:
        """Apply factor to y, all columns at once."""
        flags = decode_job(job)
        y = np.asarray(y, dtype=np.float64)
        vector = y.ndim == 1
        Y = y[:, np.newaxis] if vector else y
        if Y.shape[0] != factor.n:
            raise DimensionError(
                f"y has {Y.shape[0]} rows but the QR factor has {factor.n}"
            )

        n, k = factor.n, factor.rank
        qr, qraux = factor.qr, factor.qraux
        result = QRApplyResult()

        # Only the first min(k, n - 1) reflections carry the model
        ju = min(k, n - 1)
        forward = range(ju)
        backward = range(ju - 1, -1, -1)

        if flags.qy:
            qy = Y.copy()
            _reflect(qr, qraux, qy, backward)
            result.qy = qy

        qty = Y.copy()
        if flags.qty:
            _reflect(qr, qraux, qty, forward)
            result.qty = qty

        if flags.coef:
            diag = np.diag(qr)[:k]
            zero = np.flatnonzero(diag == 0.0)
            if zero.size:
                raise QRApplyError(int(zero[0]) + 1)
            if k > 0:
                result.coef = solve_triangular(qr[:k, :k], qty[:k], lower=False)
            else:
                result.coef = np.zeros((0, Y.shape[1]))

        if flags.resid:
            resid = np.zeros_like(qty)
            resid[k:] = qty[k:]
            _reflect(qr, qraux, resid, backward)
            result.resid = resid

        if flags.fitted:
            fitted = qty.copy()
            fitted[k:] = 0.0
            _reflect(qr, qraux, fitted, backward)
            result.fitted = fitted

        if vector:
            for name in ('qy', 'qty', 'coef', 'resid', 'fitted'):
                value = getattr(result, name)
                if value is not None:
                    setattr(result, name, value[:, 0])
        return result

    def svd_first(self, x: np.ndarray) -> float:
        """
        Largest singular value via LAPACK dgesdd (jobz='N').

        dgesdd destroys its input, so it works on a Fortran-ordered copy.
        Workspace size comes from a query call first.
        """
        x = np.asarray(x, dtype=np.float64)
        if x.ndim == 1:
            x = x[:, np.newaxis]
        m, n = x.shape
        if min(m, n) == 0:
            return 0.0

        xwork = np.array(x, order='F', copy=True)

        work, info = lapack.dgesdd_lwork(m, n, compute_uv=0)
        if info != 0:
            raise SVDError(int(info), primitive='dgesdd (workspace query)')
        lwork = max(int(np.real(work)), 1)

        _, sigma, _, info = lapack.dgesdd(
            xwork, compute_uv=0, lwork=lwork, overwrite_a=1
        )
        if info != 0:
            raise SVDError(int(info))
        return float(sigma[0])

    def get_device_info(self) -> dict:
        """Get backend information."""
        import scipy
        return {
            'backend': 'cpu',
            'precision': 'fp64',
            'library': f'NumPy {np.__version__}, SciPy {scipy.__version__}',
        }
