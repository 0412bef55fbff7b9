"""
Core algorithms (backend-agnostic).
"""

from .qr import (
    QRFactor,
    QRApplyResult,
    FIT, RESID, COEF, QTY, QY,
    decode_job,
    qr_decomposition,
    qr_fitted,
    qr_resid,
    qr_coef,
)
from .ev import sum_ev, svd_first
from .getf import get_f

__all__ = [
    "QRFactor",
    "QRApplyResult",
    "FIT", "RESID", "COEF", "QTY", "QY",
    "decode_job",
    "qr_decomposition",
    "qr_fitted",
    "qr_resid",
    "qr_coef",
    "sum_ev",
    "svd_first",
    "get_f",
]
