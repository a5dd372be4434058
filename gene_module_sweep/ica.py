"""
ICA Kernel

Thin wrapper around scikit-learn's FastICA that takes the sweep's parameter names and
returns the source matrix ``S`` (genes x components) and the mixing matrix ``A``
(components x samples), so that ``X ~ S @ A``.
"""

import logging
import warnings
from typing import Any, Mapping, Optional, Tuple

import numpy as np
from sklearn.decomposition import FastICA
from sklearn.exceptions import ConvergenceWarning

from .parameter_grid import PARAMETER_DEFAULTS

logger = logging.getLogger(__name__)


class ICAError(Exception):
    """Raised when the decomposition cannot be computed or did not converge."""
    pass


def _row_normalize(values: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(values, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return values / norms


def predict(matrix: Any,
            n_comp: int,
            params: Optional[Mapping[str, Any]] = None,
            random_state: Optional[np.random.RandomState] = None,
            strict: bool = True) -> Tuple[np.ndarray, np.ndarray]:
    """Decompose ``matrix`` into ``n_comp`` independent components.

    Args:
        matrix: Genes x samples expression values.
        n_comp: Number of components to extract.
        params: Remaining kernel parameters (``alg_typ``, ``fun``, ``alpha``,
            ``row_norm``, ``maxit``, ``tol``); missing keys take their defaults.
        random_state: Per-job random context used to initialize the unmixing matrix.
        strict: Treat a convergence warning as a failure.

    Returns:
        Tuple of (S, A).
    """
    params = dict(params or {})
    values = np.asarray(matrix, dtype=float)

    if values.ndim != 2:
        raise ICAError(f"Expected a 2-dimensional matrix, got shape {values.shape}")
    if not np.isfinite(values).all():
        raise ICAError("Input matrix contains non-finite values")
    if n_comp > min(values.shape):
        raise ICAError(f"n_comp={n_comp} exceeds the matrix rank bound {min(values.shape)}")

    if params.get('row_norm', PARAMETER_DEFAULTS['row_norm']):
        values = _row_normalize(values)

    fun = params.get('fun', PARAMETER_DEFAULTS['fun'])
    fun_args = {'alpha': params.get('alpha', PARAMETER_DEFAULTS['alpha'])} if fun == 'logcosh' else None

    ica = FastICA(
        n_components=n_comp,
        algorithm=params.get('alg_typ', PARAMETER_DEFAULTS['alg_typ']),
        whiten='unit-variance',
        fun=fun,
        fun_args=fun_args,
        max_iter=params.get('maxit', PARAMETER_DEFAULTS['maxit']),
        tol=params.get('tol', PARAMETER_DEFAULTS['tol']),
        random_state=random_state,
    )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always', ConvergenceWarning)
        sources = ica.fit_transform(values)

    for warning in caught:
        if issubclass(warning.category, ConvergenceWarning):
            if strict:
                raise ICAError(f"FastICA did not converge: {warning.message}")
            logger.warning(f"FastICA did not converge: {warning.message}")
        else:
            logger.warning(f"FastICA: {warning.message}")

    mixing = ica.mixing_.T
    if not (np.isfinite(sources).all() and np.isfinite(mixing).all()):
        raise ICAError("FastICA produced non-finite values")

    logger.debug(f"FastICA extracted {sources.shape[1]} components in {ica.n_iter_} iterations")
    return sources, mixing
