"""
Hardware precision capability detection.

Decides whether permutation statistics may be computed in FP32 on the
available GPU or should stay in FP64.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Optional
from enum import Enum

logger = logging.getLogger(__name__)


class PrecisionSupport(Enum):
    """FP64 support level for hardware."""
    NO_GPU = "no_gpu"            # No GPU available
    NO_FP64 = "no_fp64"          # GPU exists but no FP64 (Apple Metal)
    GIMPED_FP64 = "gimped_fp64"  # FP64 exists but slow (consumer NVIDIA)
    FULL_FP64 = "full_fp64"      # Full-speed FP64 (A100, H100)


@dataclass
class GPUCapabilities:
    """
    GPU capability information.

    Attributes
    ----------
    has_gpu : bool
        Whether any GPU is available
    gpu_name : str
        Human-readable GPU name
    gpu_type : str
        'cuda', 'mps', or 'none'
    fp64_support : PrecisionSupport
        Level of FP64 support
    fp64_throughput_ratio : float
        Ratio of FP64 to FP32 throughput
    recommended_fp64 : bool
        Whether FP64 is recommended
    """
    has_gpu: bool
    gpu_name: str
    gpu_type: str
    fp64_support: PrecisionSupport
    fp64_throughput_ratio: float
    recommended_fp64: bool


CPU_ONLY = GPUCapabilities(
    has_gpu=False,
    gpu_name="CPU only",
    gpu_type="none",
    fp64_support=PrecisionSupport.NO_GPU,
    fp64_throughput_ratio=1.0,
    recommended_fp64=True,
)

# Data center GPUs with full-rate FP64
_FULL_FP64_MODELS = ('A100', 'A800', 'H100', 'H800', 'V100', 'P100')

# Consumer series and their FP64/FP32 throughput ratio
_GIMPED_SERIES = (
    ('RTX 50', 1 / 64),
    ('RTX 40', 1 / 64),
    ('RTX 30', 1 / 64),
    ('RTX 20', 1 / 32),
    ('GTX', 1 / 32),
)


def detect_gpu_capabilities() -> GPUCapabilities:
    """
    Detect GPU hardware and FP64 capabilities.

    Returns
    -------
    GPUCapabilities
        CUDA first, then Metal, else CPU_ONLY
    """
    try:
        import torch
    except ImportError:
        logger.debug("torch not importable; assuming CPU only")
        return CPU_ONLY

    if torch.cuda.is_available():
        gpu_name = torch.cuda.get_device_name(0)
        support, ratio, recommended = classify_nvidia_gpu(gpu_name)
        return GPUCapabilities(
            has_gpu=True,
            gpu_name=gpu_name,
            gpu_type="cuda",
            fp64_support=support,
            fp64_throughput_ratio=ratio,
            recommended_fp64=recommended,
        )

    if hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
        return GPUCapabilities(
            has_gpu=True,
            gpu_name="Apple Metal GPU",
            gpu_type="mps",
            fp64_support=PrecisionSupport.NO_FP64,
            fp64_throughput_ratio=0.0,
            recommended_fp64=False,
        )

    return CPU_ONLY


def classify_nvidia_gpu(gpu_name: str) -> tuple:
    """
    Classify NVIDIA GPU FP64 capabilities.

    Returns
    -------
    (support_level, throughput_ratio, recommended)
    """
    gpu_upper = gpu_name.upper()

    if any(model in gpu_upper for model in _FULL_FP64_MODELS):
        return PrecisionSupport.FULL_FP64, 0.5, True

    for series, ratio in _GIMPED_SERIES:
        if series in gpu_upper:
            return PrecisionSupport.GIMPED_FP64, ratio, False

    warnings.warn(
        f"Unknown NVIDIA GPU '{gpu_name}'. Assuming gimped FP64."
    )
    return PrecisionSupport.GIMPED_FP64, 1 / 32, False


def recommend_precision(capabilities: GPUCapabilities,
                        user_preference: Optional[bool]) -> bool:
    """
    Recommend FP64 vs FP32 based on hardware.

    Parameters
    ----------
    capabilities : GPUCapabilities
        Detected hardware
    user_preference : Optional[bool]
        User's preference (None for auto)

    Returns
    -------
    bool
        True for FP64, False for FP32

    Raises
    ------
    RuntimeError
        If FP64 is requested on a GPU without FP64 and no CPU fallback
        applies (Apple Metal)
    """
    if user_preference is None:
        return capabilities.recommended_fp64

    if user_preference and capabilities.fp64_support == PrecisionSupport.NO_FP64:
        raise RuntimeError(
            f"FP64 requested but not supported on {capabilities.gpu_name}. "
            f"Use FP32 (use_fp64=False) or the CPU backend."
        )
    if user_preference and capabilities.fp64_support == PrecisionSupport.GIMPED_FP64:
        warnings.warn(
            f"FP64 requested on {capabilities.gpu_name} with gimped FP64 "
            f"(ratio: {capabilities.fp64_throughput_ratio:.3f}). "
            f"Consider FP32 or the CPU backend.",
            UserWarning
        )
    return user_preference
