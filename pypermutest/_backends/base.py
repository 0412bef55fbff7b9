"""
Abstract base classes for backends.

Defines the narrow numeric interface the permutation engine needs:
building a QR factor, applying it, and taking the leading singular value.
"""

from abc import ABC, abstractmethod
import numpy as np

from .._core.qr import QRFactor, QRApplyResult


class BackendBase(ABC):
    """Abstract base class for all backends."""

    name: str = "base"
    precision: str = "fp64"

    @abstractmethod
    def qr_decomposition(self, X: np.ndarray, tol: float = 1e-7) -> QRFactor:
        """
        QR decomposition with column pivoting.

        Parameters
        ----------
        X : ndarray, shape (n, p)
            Matrix to decompose (not modified)
        tol : float
            Tolerance for rank determination

        Returns
        -------
        QRFactor
            Factor in LINPACK form
        """
        pass

    @abstractmethod
    def qr_apply(self, factor: QRFactor, y: np.ndarray, job: int) -> QRApplyResult:
        """
        Apply a QR factor to y (LINPACK dqrsl semantics).

        Parameters
        ----------
        factor : QRFactor
            Factor of the model matrix (never modified)
        y : ndarray, shape (n,) or (n, m)
            Vector or matrix; columns are processed independently
        job : int
            Sum of request codes FIT, RESID, COEF, QTY, QY

        Returns
        -------
        QRApplyResult
            Requested quantities as NumPy arrays shaped like y
            (coefficients have factor.rank rows)

        Raises
        ------
        QRApplyError
            If coefficients are requested and R is exactly singular
        """
        pass

    @abstractmethod
    def svd_first(self, x: np.ndarray) -> float:
        """
        Largest singular value of x (values only, no vectors).

        Raises
        ------
        SVDError
            If the decomposition reports a nonzero status
        """
        pass

    @abstractmethod
    def get_device_info(self) -> dict:
        """Get backend information."""
        pass

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"


class CPUBackend(BackendBase):
    """CPU backend base class (always FP64)."""
    pass


class GPUBackendFP32(BackendBase):
    """GPU backend base class for FP32."""
    pass


class GPUBackendFP64(BackendBase):
    """GPU backend base class for FP64."""
    pass
