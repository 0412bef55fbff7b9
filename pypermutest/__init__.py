"""
pypermutest: permutation F-tests for constrained ordination with R-compatible numerics.

Copyright (C) 2024 SGCX
Licensed under GPL-3.0
"""

__version__ = "1.0.0"

# Import main user-facing API
from .permutest import permutest, PermutationTest
from .permutations import shuffle_set, identity_permutation

# Permutation statistics engine and its numeric primitives
from ._core import (
    get_f,
    sum_ev,
    svd_first,
    QRFactor,
    qr_decomposition,
    qr_fitted,
    qr_resid,
    qr_coef,
    FIT, RESID, COEF, QTY, QY,
)
from ._exceptions import (
    PermutestError,
    ValidationError,
    DimensionError,
    NumericalError,
    QRApplyError,
    SVDError,
)

# Import backend utilities (for advanced users)
from ._backends import get_backend, list_available_backends
from ._config import set_backend

__all__ = [
    'permutest',
    'PermutationTest',
    'shuffle_set',
    'identity_permutation',
    'get_f',
    'sum_ev',
    'svd_first',
    'QRFactor',
    'qr_decomposition',
    'qr_fitted',
    'qr_resid',
    'qr_coef',
    'FIT', 'RESID', 'COEF', 'QTY', 'QY',
    'PermutestError',
    'ValidationError',
    'DimensionError',
    'NumericalError',
    'QRApplyError',
    'SVDError',
    'get_backend',
    'list_available_backends',
    'set_backend',
]
