"""
GPU backend using PyTorch with FP64 precision.

For data center GPUs: A100, H100, V100.
"""

import warnings
from typing import Optional

from .gpu_fp32_backend import PyTorchBackendFP32
from .base import GPUBackendFP64


class PyTorchBackendFP64(PyTorchBackendFP32, GPUBackendFP64):
    """
    PyTorch GPU backend with FP64 precision.

    Same as FP32 but uses float64 precision.
    Only recommended for data center GPUs with full FP64 support.
    Falls back to the CPU device when no CUDA GPU is present.
    """

    def __init__(self, device: Optional[str] = None):
        """Initialize PyTorch FP64 backend."""
        super().__init__(device=device)
        self.name = "pytorch_fp64"
        self.precision = "fp64"
        self.dtype = self.torch.float64

    def _select_device(self, requested):
        torch = self.torch

        # Device selection (no Metal for FP64)
        if requested == 'mps':
            raise RuntimeError(
                "FP64 not supported on Apple Metal. "
                "Use FP32 backend or CPU."
            )

        if requested is None:
            if torch.cuda.is_available():
                requested = 'cuda'
            else:
                warnings.warn("No CUDA GPU available, using CPU")
                requested = 'cpu'

        if requested == 'cuda':
            from .precision_detector import detect_gpu_capabilities, PrecisionSupport
            caps = detect_gpu_capabilities()
            if caps.fp64_support == PrecisionSupport.GIMPED_FP64:
                warnings.warn(
                    f"Using FP64 on {caps.gpu_name} with gimped FP64 support. "
                    f"This will be ~{int(1/caps.fp64_throughput_ratio)}x slower than FP32.",
                    UserWarning
                )

        return torch.device(requested)
