"""
Reference implementation (NumPy loops) with R compatibility.

Numerically equivalent to R's LINPACK routines within machine precision.
"""

from .qr import dqrdc2, dqrsl

__all__ = [
    "dqrdc2",
    "dqrsl",
]
