"""
GPU backend using PyTorch with FP32 precision.

NVIDIA CUDA and Apple Metal (MPS) GPUs.
"""

import numpy as np
import warnings
from typing import Optional, Any

from .base import GPUBackendFP32
from .._core.qr import QRFactor, QRApplyResult, decode_job
from .._exceptions import DimensionError, QRApplyError, SVDError

# Partial models alternate between the conditions and model factors
_FACTOR_CACHE_SIZE = 8


class PyTorchBackendFP32(GPUBackendFP32):
    """
    PyTorch GPU backend with FP32 precision.

    Keeps all computation on GPU using torch tensors.
    Only converts at entry (numpy -> torch) and exit (torch -> numpy).

    Requirements:
    - NVIDIA GPU with CUDA support, or Apple Silicon with MPS
    - PyTorch with the matching accelerator enabled
    """

    def __init__(self, device: Optional[str] = None):
        """Initialize PyTorch FP32 backend."""
        self.name = "pytorch_fp32"
        self.precision = "fp32"

        try:
            import torch
            self.torch = torch
        except ImportError:
            raise ImportError(
                "PyTorch required for GPU backend. "
                "Install: pip install torch"
            )

        self.dtype = torch.float32
        self.device = self._select_device(device)
        self._factor_cache = {}

    def _select_device(self, requested: Optional[str]) -> Any:
        """Select GPU device. Fails if no accelerator is available."""
        torch = self.torch

        if requested:
            return torch.device(requested)

        if torch.cuda.is_available():
            return torch.device('cuda')
        if hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
            return torch.device('mps')

        raise RuntimeError(
            "PyTorch backend requires a CUDA or MPS GPU.\n"
            "Options:\n"
            "  1. Use get_backend('cpu') for CPU (FP64)\n"
            "  2. Install CUDA-enabled PyTorch"
        )

    def _to_tensor(self, x: np.ndarray):
        return self.torch.as_tensor(
            np.ascontiguousarray(x), dtype=self.dtype, device=self.device
        )

    def _factor_tensors(self, factor: QRFactor):
        """Move a factor to the device once per factor object."""
        # Entries hold the factor itself so its id stays unique while cached
        cached = self._factor_cache.get(id(factor))
        if cached is not None and cached[0] is factor:
            return cached[1], cached[2]
        if len(self._factor_cache) >= _FACTOR_CACHE_SIZE:
            self._factor_cache.clear()
        qr = self._to_tensor(factor.qr)
        qraux = self._to_tensor(factor.qraux)
        self._factor_cache[id(factor)] = (factor, qr, qraux)
        return qr, qraux

    def _reflect(self, qr, qraux, qraux_host, Y, order) -> None:
        """Apply Householder reflections H_j (j in order) to Y in place."""
        torch = self.torch
        for j in order:
            if qraux_host[j] == 0.0:
                continue
            u = qr[j:, j].clone()
            u[0] = qraux[j]
            t = -(u @ Y[j:]) / u[0]
            Y[j:] += torch.outer(u, t)

    def qr_decomposition(self, X: np.ndarray, tol: float = 1e-7) -> QRFactor:
        """
        Householder QR on GPU via torch.geqrf.

        geqrf does not pivot. A rank-deficient X is handed to the
        pivoted CPU decomposition instead, since an unpivoted factor
        cannot put the independent columns first.
        """
        torch = self.torch
        X = np.asarray(X, dtype=np.float64)
        n, p = X.shape
        if n == 0 or p == 0:
            return QRFactor(qr=X.copy(), rank=0, qraux=np.zeros(p), tol=tol)

        a, tau = torch.geqrf(self._to_tensor(X))

        # Rounding in the working precision bounds the smallest
        # meaningful diagonal element; scale by p, not n
        eps = torch.finfo(self.dtype).eps
        norm_X = float(np.linalg.norm(X))
        R_diag = torch.abs(torch.diagonal(a))
        top = float(torch.max(R_diag).item())
        threshold = max(tol * top, p * eps * norm_X)
        rank = 0 if top == 0 else int(torch.sum(R_diag >= threshold).item())

        if rank < min(n, p):
            warnings.warn(
                f"Model matrix is rank deficient (rank {rank} < {min(n, p)}); "
                f"using pivoted QR on CPU",
                UserWarning
            )
            from .cpu_fp64_backend import CPUBackendFP64
            return CPUBackendFP64().qr_decomposition(X, tol=tol)

        return QRFactor.from_lapack(
            a.cpu().double().numpy(), tau.cpu().double().numpy(), rank, tol=tol
        )

    def qr_apply(self, factor: QRFactor, y: np.ndarray, job: int) -> QRApplyResult:
        """
        Apply factor to y on GPU.

        ALL computation happens on GPU with torch tensors.
        Only convert at boundaries (entry/exit).
        """
        torch = self.torch
        flags = decode_job(job)
        y = np.asarray(y, dtype=np.float64)
        vector = y.ndim == 1
        Y_host = y[:, np.newaxis] if vector else y
        if Y_host.shape[0] != factor.n:
            raise DimensionError(
                f"y has {Y_host.shape[0]} rows but the QR factor has {factor.n}"
            )

        n, k = factor.n, factor.rank
        qr, qraux = self._factor_tensors(factor)
        qraux_host = factor.qraux
        Y = self._to_tensor(Y_host)

        ju = min(k, n - 1)
        forward = range(ju)
        backward = range(ju - 1, -1, -1)
        out = {}

        if flags.qy:
            qy = Y.clone()
            self._reflect(qr, qraux, qraux_host, qy, backward)
            out['qy'] = qy

        qty = Y.clone()
        if flags.qty:
            self._reflect(qr, qraux, qraux_host, qty, forward)
            out['qty'] = qty

        if flags.coef:
            diag = np.diag(factor.qr)[:k]
            zero = np.flatnonzero(diag == 0.0)
            if zero.size:
                raise QRApplyError(int(zero[0]) + 1)
            out['coef'] = torch.linalg.solve_triangular(
                torch.triu(qr[:k, :k]), qty[:k], upper=True
            )

        if flags.resid:
            resid = torch.zeros_like(qty)
            resid[k:] = qty[k:]
            self._reflect(qr, qraux, qraux_host, resid, backward)
            out['resid'] = resid

        if flags.fitted:
            fitted = qty.clone()
            fitted[k:] = 0.0
            self._reflect(qr, qraux, qraux_host, fitted, backward)
            out['fitted'] = fitted

        # Convert ONCE at exit
        result = QRApplyResult()
        for name, value in out.items():
            value = value.cpu().double().numpy()
            setattr(result, name, value[:, 0] if vector else value)
        return result

    def svd_first(self, x: np.ndarray) -> float:
        """Largest singular value via torch.linalg.svdvals."""
        torch = self.torch
        x = np.asarray(x, dtype=np.float64)
        if x.ndim == 1:
            x = x[:, np.newaxis]
        if min(x.shape) == 0:
            return 0.0
        try:
            sigma = torch.linalg.svdvals(self._to_tensor(x))
        except RuntimeError as e:
            raise SVDError(1, primitive='torch.linalg.svdvals') from e
        first = float(sigma[0].item())
        if not np.isfinite(first):
            raise SVDError(1, primitive='torch.linalg.svdvals')
        return first

    def get_device_info(self) -> dict:
        """Get backend information."""
        return {
            'backend': 'gpu',
            'precision': self.precision,
            'device': str(self.device),
            'library': f'PyTorch {self.torch.__version__}',
        }
