"""
Permutation F-test for redundancy analysis with an R-style interface.

This is the user-facing API: it builds the QR factors, runs the
permutation statistics engine, and turns its output into F-ratios and a
permutation p-value (like vegan's permutest.cca).

The response is centred and divided by sqrt(n - 1), so eigenvalues and
the reported Variance are inertias in the units vegan's rda uses.

For partial models ``model="reduced"`` (the default, as in vegan)
permutes the response after the conditions have been removed;
``model="direct"`` permutes the centred response itself. The engine
removes the conditions again after each permutation in both cases.
"""

import logging
import numpy as np
import pandas as pd
from typing import Optional, Union, List

from ._backends import resolve_backend
from ._core.qr import qr_decomposition, qr_resid
from ._core.ev import sum_ev
from ._core.getf import get_f
from ._exceptions import DimensionError
from ._utils import check_array
from .permutations import shuffle_set, identity_permutation

logger = logging.getLogger(__name__)

# Observed and permuted F are compared with this slack
EPS = np.sqrt(np.finfo(np.float64).eps)


def _resolve(values, data, name):
    """Column names in data, a DataFrame, or a plain array -> (array, names)."""
    if values is None:
        return None, []
    if isinstance(values, str):
        values = [values]
    if isinstance(values, list) and all(isinstance(v, str) for v in values):
        if data is None:
            raise ValueError(f"Must provide data when {name} is given as column names")
        return data[values].values, list(values)
    if isinstance(values, pd.Series):
        return values.values, [str(values.name)]
    if isinstance(values, pd.DataFrame):
        return values.values, [str(c) for c in values.columns]
    array = np.asarray(values)
    ncol = 1 if array.ndim == 1 else array.shape[1]
    return array, [f'{name}{i}' for i in range(ncol)]


class PermutationTest:
    """
    Permutation test of a (partial) redundancy analysis.

    The response is centred by column and divided by sqrt(n - 1) to
    give E. Constraints X and conditions Z are centred too; the model
    factor is QR(cbind(Z, X)) and, for partial models, the conditions
    factor is QR(Z).

    Examples
    --------
    >>> from pypermutest import permutest
    >>> test = permutest(Y=species, X=['pH', 'moisture'], Z=['site'],
    ...                  data=env, permutations=999, seed=1)
    >>> test.summary()
    >>> test.pvalue
    >>> test.to_frame()
    """

    def __init__(
        self,
        Y,
        X: Union[List[str], np.ndarray],
        Z: Optional[Union[List[str], np.ndarray]] = None,
        data: Optional[pd.DataFrame] = None,
        permutations: Union[int, np.ndarray] = 999,
        first: bool = False,
        model: str = "reduced",
        seed: Optional[int] = None,
        backend=None,
        n_jobs: int = 1,
    ):
        """
        Run the permutation test.

        Parameters
        ----------
        Y : array, DataFrame, or list of str
            Response matrix (observations x variables)
        X : array, DataFrame, or list of str
            Constraints
        Z : array, DataFrame, or list of str, optional
            Conditions; makes the test partial
        data : DataFrame, optional
            Dataset holding the named columns
        permutations : int or array
            Number of random permutations, or an explicit 1-based
            table (nperm x n)
        first : bool
            Test the first constrained eigenvalue instead of all
        model : {"reduced", "direct"}
            What is permuted in a partial model: the response with the
            conditions removed, or the centred response
        seed : int, optional
            Random seed when permutations is a number
        backend : str or Backend, optional
            Computational backend
        n_jobs : int
            Parallel workers for the permutation loop
        """
        Y, self.response_names = _resolve(Y, data, 'y')
        X, self.constraint_names = _resolve(X, data, 'x')
        Z, self.condition_names = _resolve(Z, data, 'z')

        Y = check_array(Y, name='Y')
        X = check_array(X, name='X')
        n = Y.shape[0]
        if X.shape[0] != n:
            raise DimensionError(f"Y has {n} rows but X has {X.shape[0]}")
        if Z is not None:
            Z = check_array(Z, name='Z')
            if Z.shape[0] != n:
                raise DimensionError(f"Y has {n} rows but Z has {Z.shape[0]}")

        if model not in ("reduced", "direct"):
            raise ValueError(f"model must be 'reduced' or 'direct', got {model!r}")

        self.n_obs = n
        self.model = model
        self.first = first
        self.is_partial = Z is not None
        self.backend = resolve_backend(backend)

        Xc = X - X.mean(axis=0)
        if self.is_partial:
            Zc = Z - Z.mean(axis=0)
            self.qz = qr_decomposition(Zc, backend=self.backend)
            self.qr = qr_decomposition(np.column_stack([Zc, Xc]), backend=self.backend)
        else:
            self.qz = None
            self.qr = qr_decomposition(Xc, backend=self.backend)

        self._set_degrees_of_freedom()

        # Centred response scaled to inertia units (n > 1 once r > 0)
        E = (Y - Y.mean(axis=0)) / np.sqrt(n - 1)

        # Total inertia after removing conditions
        if self.is_partial:
            E_reduced = qr_resid(self.qz, E, backend=self.backend)
            self.tot_chi = sum_ev(E_reduced)
            if model == "reduced":
                E = E_reduced
        else:
            self.tot_chi = sum_ev(E)
        self.E = E

        if np.isscalar(permutations):
            self.permutations = shuffle_set(n, int(permutations), seed=seed)
        else:
            self.permutations = np.asarray(permutations)

        engine_args = dict(
            qr=self.qr, qz=self.qz, first=first, is_partial=self.is_partial,
            backend=self.backend,
        )
        observed = get_f(identity_permutation(n), self.E, **engine_args)
        self.num, self.den = self._fill(observed)[0]
        self.statistic = self._f_ratio(self.num, self.den)

        logger.debug(
            "permutest: n=%d q=%d r=%d nperm=%d backend=%s",
            n, self.df_model, self.df_residual, len(self.permutations),
            self.backend.name
        )

        stats = self._fill(
            get_f(self.permutations, self.E, n_jobs=n_jobs, **engine_args)
        )
        self.num_perm = stats[:, 0]
        self.den_perm = stats[:, 1]
        self.f_perm = self._f_ratio(self.num_perm, self.den_perm)
        self.nperm = len(self.f_perm)
        self.pvalue = (np.sum(self.f_perm >= self.statistic - EPS) + 1) / (self.nperm + 1)

    def _set_degrees_of_freedom(self):
        rank_z = self.qz.rank if self.is_partial else 0
        q = self.qr.rank - rank_z
        if q <= 0:
            raise ValueError(
                "Constraints have no component independent of the conditions"
            )
        r = self.n_obs - self.qr.rank - 1
        if r <= 0:
            raise ValueError(
                f"No residual degrees of freedom: n={self.n_obs}, "
                f"model rank={self.qr.rank}"
            )
        self.rank_constraints = q
        self.df_model = 1 if self.first else q
        self.df_residual = r

    def _fill(self, stats: np.ndarray) -> np.ndarray:
        """Fill the residual column the engine leaves as NaN."""
        if not (self.is_partial or self.first):
            stats = stats.copy()
            stats[:, 1] = self.tot_chi - stats[:, 0]
        return stats

    def _f_ratio(self, num, den):
        with np.errstate(divide='ignore', invalid='ignore'):
            return (num / self.df_model) / (den / self.df_residual)

    def to_frame(self) -> pd.DataFrame:
        """
        ANOVA-style table (like R's anova.cca).

        Returns
        -------
        DataFrame
            Rows 'Model' (or 'First') and 'Residual'; columns
            'Df', 'Variance', 'F', 'Pr(>F)'
        """
        label = 'First' if self.first else 'Model'
        return pd.DataFrame({
            'Df': [self.df_model, self.df_residual],
            'Variance': [self.num, self.den],
            'F': [self.statistic, np.nan],
            'Pr(>F)': [self.pvalue, np.nan],
        }, index=[label, 'Residual'])

    def summary(self):
        """Print the permutation test table."""
        print()
        print("="*80)
        print("PERMUTATION TEST FOR " + ("PARTIAL " if self.is_partial else "") + "RDA")
        print("="*80)
        print()
        print(f"Number of observations: {self.n_obs}")
        print(f"Permutations: free, number of permutations: {self.nperm}")
        print(f"Constraints: {', '.join(self.constraint_names)}")
        if self.is_partial:
            print(f"Conditions:  {', '.join(self.condition_names)}")
            print(f"Permutation model: {self.model}")
        print()

        table = self.to_frame()
        print(f"{'':<12} {'Df':>6} {'Variance':>12} {'F':>10} {'Pr(>F)':>10}")
        print("-"*80)
        for name, row in table.iterrows():
            f_str = '' if np.isnan(row['F']) else f"{row['F']:.4f}"
            p = row['Pr(>F)']
            if np.isnan(p):
                p_str, sig = '', ''
            else:
                p_str = f"{p:.3f}"
                if p < 0.001:
                    sig = ' ***'
                elif p < 0.01:
                    sig = ' **'
                elif p < 0.05:
                    sig = ' *'
                elif p < 0.1:
                    sig = ' .'
                else:
                    sig = ''
            print(f"{name:<12} {int(row['Df']):>6} {row['Variance']:>12.4f} "
                  f"{f_str:>10} {p_str:>10}{sig}")
        print("-"*80)
        print("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")
        print()
        print(f"Backend: {self.backend.name}")
        print("="*80)
        print()

    def __repr__(self):
        return (f"PermutationTest(n={self.n_obs}, F={self.statistic:.4f}, "
                f"p={self.pvalue:.4f}, nperm={self.nperm})")


def permutest(Y, X, Z=None, data=None, **kwargs) -> PermutationTest:
    """
    Permutation F-test of constraints X on response Y (convenience function).

    Parameters
    ----------
    Y : array, DataFrame, or list of str
        Response matrix
    X : array, DataFrame, or list of str
        Constraints
    Z : array, DataFrame, or list of str, optional
        Conditions for a partial test
    data : DataFrame, optional
        Dataset
    **kwargs
        Additional arguments passed to PermutationTest

    Returns
    -------
    PermutationTest
        Completed test

    Examples
    --------
    >>> test = permutest(Y, X, permutations=199, seed=42)
    >>> test.to_frame()
    """
    return PermutationTest(Y, X, Z=Z, data=data, **kwargs)
