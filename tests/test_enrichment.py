import sys
from math import comb
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from gene_module_sweep.enrichment import align_annotations, bh_fdr, evaluate, hypergeom_pvalue


def test_bh_fdr_matches_hand_computed_values():
    q = bh_fdr([0.01, 0.04, 0.03, 0.2])

    np.testing.assert_allclose(q, [0.04, 0.16 / 3, 0.16 / 3, 0.2])


def test_bh_fdr_keeps_nan_and_caps_at_one():
    q = bh_fdr([0.5, np.nan, 0.9])

    assert np.isnan(q[1])
    assert np.all(q[[0, 2]] <= 1.0)
    np.testing.assert_allclose(q[[0, 2]], [0.9, 0.9])


def test_bh_fdr_empty_input():
    assert bh_fdr([]).shape == (0,)


def test_hypergeom_pvalue_right_tail():
    assert hypergeom_pvalue(3, 10, 3, 3) == pytest.approx(1 / comb(10, 3))
    assert hypergeom_pvalue(0, 10, 3, 3) == pytest.approx(1.0)


def _annotations(n_genes=100):
    ann = pd.DataFrame(0, index=[f"g{i}" for i in range(n_genes)], columns=['A', 'B', 'C'])
    ann.iloc[0:10, 0] = 1
    ann.iloc[50:60, 1] = 1
    return ann


def _modules(n_genes=100):
    def indicator(rows):
        members = np.zeros(n_genes, dtype=bool)
        members[list(rows)] = True
        return members

    return {
        'IC1+': indicator(range(0, 10)),
        'IC1-': indicator(range(90, 95)),
        'IC2+': indicator([]),
        'IC2-': indicator(range(50, 60)),
    }


def test_evaluate_counts_significant_annotations_and_modules():
    result = evaluate(_modules(), _annotations(), fdr_alpha=0.05)
    table = result['table']

    # 3 non-empty hemi-modules x 2 non-empty annotations
    assert len(table) == 6
    assert set(table['annotation']) == {'A', 'B'}
    assert 'IC2+' not in set(table['module'])

    assert result['anns_signif'] == 2
    assert result['mods_signif'] == 2
    assert result['hemi_mods_signif'] == 2

    hit = table[(table['module'] == 'IC1+') & (table['annotation'] == 'A')].iloc[0]
    assert hit['overlap'] == 10
    assert hit['p_value'] == pytest.approx(1 / comb(100, 10))
    miss = table[(table['module'] == 'IC1-') & (table['annotation'] == 'A')].iloc[0]
    assert miss['p_value'] == pytest.approx(1.0)


def test_evaluate_with_no_members_reports_zero():
    empty = {'IC1+': np.zeros(100, dtype=bool), 'IC1-': np.zeros(100, dtype=bool)}

    result = evaluate(empty, _annotations())

    assert result['table'].empty
    assert result['anns_signif'] == 0
    assert result['mods_signif'] == 0


def test_evaluate_rejects_misaligned_modules():
    with pytest.raises(ValueError):
        evaluate({'IC1+': np.ones(5, dtype=bool)}, _annotations())


def test_align_annotations_reorders_and_fills_missing_genes():
    ann = pd.DataFrame({'A': [1, 0]}, index=['g1', 'g2'])

    aligned = align_annotations(ann, ['g2', 'g3', 'g1'])

    assert list(aligned.index) == ['g2', 'g3', 'g1']
    assert aligned['A'].tolist() == [0, 0, 1]
