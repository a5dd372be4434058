"""
Module Partitioning

Turns continuous ICA source weights into discrete module membership. Each component
yields two hemi-modules: the genes in its positive tail and the genes in its negative
tail.

Two thresholding procedures are available:

- ``fixed``: a gene belongs to a component's module when its standardized weight is
  at least ``threshold`` standard deviations from the component mean.
- ``ann``: a variable, per-component cutoff. Every gene is scored by its mean
  distance to its nearest neighbours in weight space; genes whose score is more than
  ``threshold`` robust deviations above the component's median score are members.
  Sparse tails therefore set their own cutoff instead of sharing one global value.
"""

import logging
from typing import Dict, Optional, Sequence

import numpy as np
from sklearn.neighbors import NearestNeighbors

logger = logging.getLogger(__name__)

PARTITION_METHODS = ('fixed', 'ann')

# Scales the median absolute deviation to a normal standard deviation
MAD_SCALE = 1.4826


def _as_sources(sources) -> np.ndarray:
    values = np.asarray(sources, dtype=float)
    if values.ndim != 2:
        raise ValueError(f"Source matrix must be 2-dimensional, got shape {values.shape}")
    return values


def fixed_threshold(sources, threshold: float = 3.0) -> np.ndarray:
    """Signed membership (-1, 0, +1) from per-component z-scores."""
    values = _as_sources(sources)
    std = values.std(axis=0)
    std[std == 0] = np.inf
    z = (values - values.mean(axis=0)) / std

    membership = np.zeros(values.shape, dtype=np.int8)
    membership[z >= threshold] = 1
    membership[z <= -threshold] = -1
    return membership


def ann_threshold(sources, threshold: float = 3.0, n_neighbors: int = 10) -> np.ndarray:
    """Signed membership from nearest-neighbour outlier scores, one cutoff per component."""
    values = _as_sources(sources)
    n_genes, n_components = values.shape
    membership = np.zeros(values.shape, dtype=np.int8)
    if n_genes < 3:
        return membership

    k = max(1, min(n_neighbors, n_genes - 1))
    for component in range(n_components):
        weights = values[:, component].reshape(-1, 1)
        distances, _ = NearestNeighbors(n_neighbors=k + 1).fit(weights).kneighbors(weights)
        # Column 0 is each gene's distance to itself
        scores = distances[:, 1:].mean(axis=1)

        median = np.median(scores)
        spread = MAD_SCALE * np.median(np.abs(scores - median))
        if spread == 0:
            continue
        outliers = scores > median + threshold * spread

        direction = np.sign(weights[:, 0] - np.median(weights[:, 0])).astype(np.int8)
        membership[outliers, component] = direction[outliers]

    return membership


def partition(sources, method: str = 'fixed', threshold: float = 3.0,
              n_neighbors: int = 10) -> np.ndarray:
    """Apply the configured partition method to ``sources``."""
    if method == 'fixed':
        membership = fixed_threshold(sources, threshold)
    elif method == 'ann':
        membership = ann_threshold(sources, threshold, n_neighbors)
    else:
        raise ValueError(f"Unknown partition method '{method}', expected one of {list(PARTITION_METHODS)}")

    logger.debug(f"Partitioned {membership.shape[1]} components ({method}): "
                 f"{int(np.count_nonzero(membership))} memberships")
    return membership


def split_hemi_modules(membership: np.ndarray,
                       component_names: Optional[Sequence[str]] = None) -> Dict[str, np.ndarray]:
    """Split signed membership into boolean gene indicators per hemi-module.

    Keys are ``<component>+`` and ``<component>-`` in component order.
    """
    membership = np.asarray(membership)
    n_components = membership.shape[1]
    if component_names is None:
        component_names = [f"IC{i + 1}" for i in range(n_components)]
    if len(component_names) != n_components:
        raise ValueError("component_names must name every component")

    hemi_modules: Dict[str, np.ndarray] = {}
    for column, name in enumerate(component_names):
        hemi_modules[f"{name}+"] = membership[:, column] > 0
        hemi_modules[f"{name}-"] = membership[:, column] < 0
    return hemi_modules
