"""
Exception hierarchy.

Numerical failures carry the name of the failing primitive and its
status code so a caller can tell which step of a permutation batch broke.
"""

from typing import Optional


class PermutestError(Exception):
    """Base exception for all pypermutest errors."""
    pass


class ValidationError(PermutestError, ValueError):
    """Input validation failed."""
    pass


class DimensionError(ValidationError):
    """Array shapes are wrong or inconsistent with each other."""
    pass


class NumericalError(PermutestError, RuntimeError):
    """
    A numeric primitive reported failure.

    Attributes
    ----------
    primitive : str
        Name of the primitive (e.g. 'dqrsl', 'dgesdd')
    status : int or None
        Status code reported by the primitive
    """

    def __init__(self, message: str, primitive: Optional[str] = None,
                 status: Optional[int] = None):
        super().__init__(message)
        self.primitive = primitive
        self.status = status


class QRApplyError(NumericalError):
    """Applying a QR factorization failed (singular R in a coefficient solve)."""

    def __init__(self, status: int, primitive: str = 'dqrsl'):
        super().__init__(
            f"error applying QR decomposition ({primitive}), status={status}: "
            f"R has an exact zero on diagonal element {status}",
            primitive=primitive,
            status=status,
        )


class SVDError(NumericalError):
    """Singular value decomposition did not converge or got bad input."""

    def __init__(self, status: int, primitive: str = 'dgesdd'):
        super().__init__(
            f"error computing singular value decomposition, status={status}",
            primitive=primitive,
            status=status,
        )
