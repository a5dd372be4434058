"""
Module Enrichment

Scores hemi-modules against a binary annotation matrix with a right-tail
hypergeometric test, then applies Benjamini-Hochberg FDR correction across every
tested (annotation x hemi-module) pair.
"""

import logging
from typing import Any, Dict, Mapping, Sequence

import numpy as np
import pandas as pd
from scipy.stats import hypergeom

logger = logging.getLogger(__name__)

TABLE_COLUMNS = [
    'module', 'component', 'annotation', 'overlap',
    'module_size', 'annotation_size', 'p_value', 'q_value'
]


def bh_fdr(pvals) -> np.ndarray:
    """Benjamini-Hochberg adjusted p-values; non-finite inputs stay NaN."""
    p = np.asarray(pvals, float)
    q = np.full_like(p, np.nan, float)
    finite = np.isfinite(p)
    m = finite.sum()
    if m == 0:
        return q

    order = np.argsort(p[finite])
    ranked = p[finite][order] * m / np.arange(1, m + 1)
    ranked = np.minimum.accumulate(ranked[::-1])[::-1]
    adjusted = np.empty(m, float)
    adjusted[order] = np.clip(ranked, 0.0, 1.0)
    q[finite] = adjusted
    return q


def hypergeom_pvalue(k, M: int, n, N) -> Any:
    """P(X >= k) for overlap ``k``, universe ``M``, annotation size ``n``, module size ``N``."""
    return hypergeom.sf(np.asarray(k) - 1, M, n, N)


def align_annotations(annotations: Any, genes: Sequence[Any]) -> pd.DataFrame:
    """Reorder annotation rows to ``genes``; genes without annotations get zeros."""
    if not isinstance(annotations, pd.DataFrame):
        annotations = pd.DataFrame(np.asarray(annotations))
    return annotations.reindex(pd.Index(genes), fill_value=0)


def _component_of(module_name: str) -> str:
    return module_name[:-1] if module_name[-1:] in ('+', '-') else module_name


def evaluate(hemi_modules: Mapping[str, np.ndarray],
             annotations: Any,
             fdr_alpha: float = 0.05) -> Dict[str, Any]:
    """Test every non-empty hemi-module against every non-empty annotation.

    Args:
        hemi_modules: Hemi-module name to boolean gene indicator, rows aligned with
            ``annotations``.
        annotations: Genes x annotations binary matrix.
        fdr_alpha: Adjusted p-value cutoff for significance.

    Returns:
        Dictionary with the per-pair ``table`` (including ``q_value``), the number of
        significant annotations ``anns_signif``, significant components
        ``mods_signif`` and significant hemi-modules ``hemi_mods_signif``.
    """
    if isinstance(annotations, pd.DataFrame):
        annotation_names = [str(c) for c in annotations.columns]
    else:
        annotation_names = [str(i) for i in range(np.asarray(annotations).shape[1])]
    ann = np.asarray(annotations, dtype=float) > 0
    n_genes = ann.shape[0]
    annotation_sizes = ann.sum(axis=0)
    tested = annotation_sizes > 0

    frames = []
    for module_name, members in hemi_modules.items():
        members = np.asarray(members, dtype=bool)
        if members.shape[0] != n_genes:
            raise ValueError(
                f"Hemi-module '{module_name}' covers {members.shape[0]} genes, annotations cover {n_genes}"
            )
        module_size = int(members.sum())
        if module_size == 0 or not tested.any():
            continue

        overlaps = ann[members][:, tested].sum(axis=0)
        frames.append(pd.DataFrame({
            'module': module_name,
            'component': _component_of(module_name),
            'annotation': np.asarray(annotation_names)[tested],
            'overlap': overlaps,
            'module_size': module_size,
            'annotation_size': annotation_sizes[tested],
            'p_value': hypergeom_pvalue(overlaps, n_genes, annotation_sizes[tested], module_size),
        }))

    if frames:
        table = pd.concat(frames, ignore_index=True)
        table['q_value'] = bh_fdr(table['p_value'].to_numpy())
    else:
        table = pd.DataFrame(columns=TABLE_COLUMNS)

    significant = table[table['q_value'] < fdr_alpha]
    result = {
        'table': table,
        'anns_signif': int(significant['annotation'].nunique()),
        'mods_signif': int(significant['component'].nunique()),
        'hemi_mods_signif': int(significant['module'].nunique()),
    }
    logger.debug(f"Tested {len(table)} pairs: {result['anns_signif']} annotations, "
                 f"{result['mods_signif']} modules significant at FDR {fdr_alpha}")
    return result
