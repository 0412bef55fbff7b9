"""
Backend selection and management.

Provides a unified interface for CPU (NumPy/SciPy), the LINPACK reference
loops, and GPUs through PyTorch (NVIDIA CUDA, Apple Silicon MPS).
"""

import importlib.util
import logging
from typing import Optional, Union

from .base import BackendBase
from .precision_detector import (
    detect_gpu_capabilities,
    recommend_precision,
    GPUCapabilities,
)
from .cpu_fp64_backend import CPUBackendFP64
from .reference_backend import ReferenceBackend
from .gpu_fp32_backend import PyTorchBackendFP32
from .gpu_fp64_backend import PyTorchBackendFP64
from .. import _config

logger = logging.getLogger(__name__)

# CPU and reference backends only need NumPy/SciPy
CPU_AVAILABLE = True
TORCH_AVAILABLE = importlib.util.find_spec("torch") is not None

_VALID_NAMES = ('auto', 'cpu', 'reference', 'gpu', 'pytorch')


def get_backend(backend: str = 'auto', use_fp64: Optional[bool] = None) -> BackendBase:
    """
    Get computational backend.

    Parameters
    ----------
    backend : str
        Backend selection:
        - 'auto': Auto-select based on hardware
        - 'cpu': CPU with NumPy/SciPy (FP64)
        - 'reference': LINPACK loop ports (FP64, slow, R-exact pivoting)
        - 'gpu' / 'pytorch': PyTorch on CUDA or MPS

    use_fp64 : bool or None
        Precision preference:
        - None: Auto-detect
        - True: Force FP64 (CPU or professional NVIDIA GPU)
        - False: Allow FP32 (consumer GPU or MPS)

    Returns
    -------
    BackendBase
        Backend instance

    Examples
    --------
    >>> backend = get_backend('cpu')
    >>> backend = get_backend('auto', use_fp64=True)
    """
    name = backend.strip().lower()

    if name == 'cpu':
        return CPUBackendFP64()

    if name == 'reference':
        return ReferenceBackend()

    if name == 'auto':
        caps = detect_gpu_capabilities()
        use_fp64_final = recommend_precision(caps, use_fp64)

        if caps.has_gpu and TORCH_AVAILABLE:
            if use_fp64_final and caps.recommended_fp64:
                logger.debug("auto backend: pytorch_fp64 on %s", caps.gpu_name)
                return PyTorchBackendFP64()
            if not use_fp64_final:
                logger.debug("auto backend: pytorch_fp32 on %s", caps.gpu_name)
                return PyTorchBackendFP32()

        logger.debug("auto backend: cpu_fp64")
        return CPUBackendFP64()

    if name in ('gpu', 'pytorch'):
        if not TORCH_AVAILABLE:
            raise RuntimeError(
                "PyTorch backend unavailable.\n"
                "Install: pip install torch"
            )
        caps = detect_gpu_capabilities()
        if not caps.has_gpu:
            raise ValueError(
                "No GPU detected.\n"
                "Options:\n"
                "  - Use backend='cpu'\n"
                "  - Install PyTorch with CUDA for NVIDIA\n"
                "  - Install PyTorch with MPS for Apple Silicon"
            )
        if recommend_precision(caps, use_fp64):
            return PyTorchBackendFP64()
        return PyTorchBackendFP32()

    raise ValueError(
        f"Unknown backend: '{backend}'\n"
        f"Valid options: {', '.join(repr(v) for v in _VALID_NAMES)}"
    )


def resolve_backend(backend: Union[None, str, BackendBase] = None) -> BackendBase:
    """
    Turn a backend argument into a backend instance.

    None selects the configured default (see ``pypermutest.set_backend``),
    a string is passed to :func:`get_backend`, an instance is returned as is.
    """
    if backend is None:
        backend = _config.get_backend()
    if isinstance(backend, str):
        return get_backend(backend)
    if not isinstance(backend, BackendBase):
        raise TypeError(
            f"backend must be a name or a BackendBase, got {type(backend).__name__}"
        )
    return backend


def list_available_backends() -> list:
    """List names of available backends."""
    backends = ['cpu', 'reference']
    if TORCH_AVAILABLE and detect_gpu_capabilities().has_gpu:
        backends.append('pytorch')
    return backends


def print_backend_info():
    """Print detailed backend information (diagnostic)."""
    caps = detect_gpu_capabilities()

    print("pypermutest Backend Status")
    print("=" * 50)
    print("\nAvailable Backends:")
    print(f"  CPU (FP64):          {'yes' if CPU_AVAILABLE else 'no'} - SciPy LAPACK (dgesdd)")
    print("  Reference (FP64):    yes - LINPACK loops (dqrdc2/dqrsl)")
    print(f"  PyTorch:             {'yes' if TORCH_AVAILABLE else 'no'} - torch.linalg")

    print("\nHardware Detection:")
    if caps.has_gpu:
        print(f"  GPU Type: {caps.gpu_type}")
        print(f"  GPU Name: {caps.gpu_name}")
        print(f"  FP64 Support: {caps.fp64_support.value}")
    else:
        print("  No GPU detected")

    print("\nConfigured Default:")
    print(f"  {_config.get_backend()}")
    print("=" * 50)


__all__ = [
    'get_backend',
    'resolve_backend',
    'list_available_backends',
    'print_backend_info',
    'BackendBase',
    'CPUBackendFP64',
    'ReferenceBackend',
    'PyTorchBackendFP32',
    'PyTorchBackendFP64',
    'GPUCapabilities',
    'detect_gpu_capabilities',
    'CPU_AVAILABLE',
    'TORCH_AVAILABLE',
]


if __name__ == "__main__":
    print_backend_info()
