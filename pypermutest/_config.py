"""
Default backend configuration.

Resolution order (first match wins):
    1. Programmatic override via :func:`set_backend`.
    2. The ``PYPERMUTEST_BACKEND`` environment variable.
    3. ``"cpu"``.

Examples
--------
Run every permutation test on the LINPACK reference loops::

    export PYPERMUTEST_BACKEND=reference

or programmatically::

    import pypermutest
    pypermutest.set_backend("reference")
    pypermutest.set_backend("default")  # back to env var / cpu
"""

import os
from typing import Optional

_VALID_BACKENDS = {"auto", "cpu", "reference", "gpu", "pytorch"}

ENV_VAR = "PYPERMUTEST_BACKEND"
DEFAULT_BACKEND = "cpu"

_backend_override: Optional[str] = None


def get_backend() -> str:
    """Return the configured default backend name."""
    if _backend_override is not None:
        return _backend_override

    env = os.environ.get(ENV_VAR, "").strip().lower()
    if env in _VALID_BACKENDS:
        return env

    return DEFAULT_BACKEND


def set_backend(name: str) -> None:
    """
    Override the default backend.

    Parameters
    ----------
    name : str
        One of 'auto', 'cpu', 'reference', 'gpu', 'pytorch', or
        'default' to clear the override.

    Raises
    ------
    ValueError
        If name is not a known backend
    """
    global _backend_override
    normalised = name.strip().lower()
    if normalised == "default":
        _backend_override = None
        return
    if normalised not in _VALID_BACKENDS:
        raise ValueError(
            f"Unknown backend '{name}'. Choose from: {sorted(_VALID_BACKENDS)}"
        )
    _backend_override = normalised
