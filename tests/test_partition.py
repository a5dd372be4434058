import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from gene_module_sweep.partition import (
    ann_threshold,
    fixed_threshold,
    partition,
    split_hemi_modules,
)


@pytest.fixture
def sources():
    rng = np.random.default_rng(0)
    values = rng.normal(size=(200, 2))
    values[0, 0] = 10.0
    values[1, 0] = -10.0
    values[2, 1] = 12.0
    return values


def test_fixed_threshold_marks_planted_tails(sources):
    membership = fixed_threshold(sources, threshold=3.0)

    assert membership.shape == sources.shape
    assert membership[0, 0] == 1
    assert membership[1, 0] == -1
    assert membership[2, 1] == 1
    assert set(np.unique(membership)) <= {-1, 0, 1}


def test_fixed_threshold_constant_component_has_no_members():
    membership = fixed_threshold(np.ones((20, 2)))

    assert not membership.any()


def test_ann_threshold_marks_planted_tails(sources):
    membership = ann_threshold(sources, threshold=3.0, n_neighbors=10)

    assert membership[0, 0] == 1
    assert membership[1, 0] == -1
    assert membership[2, 1] == 1
    # Most genes sit in the dense bulk
    assert np.count_nonzero(membership[:, 0]) < 50


def test_ann_threshold_skips_degenerate_inputs():
    assert not ann_threshold(np.ones((20, 2))).any()
    assert not ann_threshold(np.array([[1.0], [2.0]])).any()


def test_partition_dispatches_and_rejects_unknown_method(sources):
    np.testing.assert_array_equal(partition(sources, 'fixed', 3.0), fixed_threshold(sources, 3.0))
    np.testing.assert_array_equal(partition(sources, 'ann', 3.0, 5), ann_threshold(sources, 3.0, 5))

    with pytest.raises(ValueError):
        partition(sources, method='kmeans')


def test_hemi_modules_are_disjoint_and_ordered(sources):
    hemi = split_hemi_modules(fixed_threshold(sources))

    assert list(hemi) == ['IC1+', 'IC1-', 'IC2+', 'IC2-']
    assert not np.any(hemi['IC1+'] & hemi['IC1-'])
    assert hemi['IC1+'][0]
    assert hemi['IC1-'][1]


def test_hemi_modules_use_given_component_names():
    membership = np.array([[1, 0], [-1, 1]], dtype=np.int8)

    hemi = split_hemi_modules(membership, ['a', 'b'])

    assert list(hemi) == ['a+', 'a-', 'b+', 'b-']
    with pytest.raises(ValueError):
        split_hemi_modules(membership, ['a'])
