"""
Reference backend built on the plain-loop LINPACK ports.

Slow. Used to validate the CPU and GPU backends, and to reproduce R's
pivoting and rank decisions exactly.
"""

import numpy as np

from .base import CPUBackend
from .._core.qr import QRFactor, QRApplyResult, decode_job
from .._exceptions import DimensionError, QRApplyError, SVDError
from ..reference.qr import dqrdc2, dqrsl


class ReferenceBackend(CPUBackend):
    """Column-by-column dqrsl and numpy.linalg.svd."""

    def __init__(self):
        self.name = "reference"
        self.precision = "fp64"

    def qr_decomposition(self, X: np.ndarray, tol: float = 1e-7) -> QRFactor:
        """R's qr(X, tol) via dqrdc2."""
        qr, rank, qraux, pivot = dqrdc2(X, tol=tol)
        return QRFactor(qr=qr, rank=rank, qraux=qraux, pivot=pivot + 1, tol=tol)

    def qr_apply(self, factor: QRFactor, y: np.ndarray, job: int) -> QRApplyResult:
        """Call dqrsl once per column."""
        flags = decode_job(job)
        y = np.asarray(y, dtype=np.float64)
        vector = y.ndim == 1
        Y = y[:, np.newaxis] if vector else y
        if Y.shape[0] != factor.n:
            raise DimensionError(
                f"y has {Y.shape[0]} rows but the QR factor has {factor.n}"
            )
        n, m = Y.shape
        k = factor.rank

        columns = {name: [] for name in JOB_FIELDS}
        for i in range(m):
            if k == 0:
                # dqrsl treats k = 0 like n = 1; an empty model fits nothing
                out = _empty_model(Y[:, i], flags)
            else:
                *out, info = dqrsl(factor.qr, k, factor.qraux, Y[:, i], job)
                if info != 0:
                    raise QRApplyError(info)
            for name, value in zip(JOB_FIELDS, out):
                columns[name].append(value)

        result = QRApplyResult()
        for name, wanted in zip(JOB_FIELDS, flags):
            if not wanted:
                continue
            if m == 0:
                rows = k if name == 'coef' else n
                value = np.zeros((rows, 0))
            else:
                value = np.column_stack(columns[name])
            setattr(result, name, value[:, 0] if vector else value)
        return result

    def svd_first(self, x: np.ndarray) -> float:
        """Largest singular value via numpy.linalg.svd."""
        x = np.asarray(x, dtype=np.float64)
        if x.ndim == 1:
            x = x[:, np.newaxis]
        if min(x.shape) == 0:
            return 0.0
        try:
            sigma = np.linalg.svd(x.copy(), compute_uv=False)
        except np.linalg.LinAlgError as e:
            raise SVDError(1, primitive='numpy.linalg.svd') from e
        return float(sigma[0])

    def get_device_info(self) -> dict:
        """Get backend information."""
        return {
            'backend': 'reference',
            'precision': 'fp64',
            'library': f'NumPy {np.__version__} (LINPACK loops)',
        }


# Order of dqrsl outputs, matching JobFlags
JOB_FIELDS = ('qy', 'qty', 'coef', 'resid', 'fitted')


def _empty_model(y, flags):
    """dqrsl outputs for a rank 0 factor: Q = I, nothing fitted."""
    return (
        y.copy() if flags.qy else None,
        y.copy() if flags.qty else None,
        np.zeros(0) if flags.coef else None,
        y.copy() if flags.resid else None,
        np.zeros_like(y) if flags.fitted else None,
    )
