import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from gene_module_sweep.parameter_grid import (
    PARAMETER_DEFAULTS,
    PARAMETER_ORDER,
    Axis,
    GridTooLarge,
    InvalidAxis,
    ParameterGrid,
    normalize_parameter_name,
)


def test_count_is_product_of_axis_sizes():
    grid = ParameterGrid.build({
        'n_comp': list(range(5, 105, 5)),
        'center_cols': [True, False],
        'scale_cols': [True, False],
    })

    assert grid.count() == 80
    assert grid.count() == int(np.prod([len(axis) for axis in grid.axes]))


def test_missing_axes_take_single_defaults():
    grid = ParameterGrid.build({'n_comp': [10, 20]}, rng=np.random.default_rng(0))

    assert grid.axis_order() == PARAMETER_ORDER
    assert tuple(axis.name for axis in grid.axes) == PARAMETER_ORDER
    for name, default in PARAMETER_DEFAULTS.items():
        if name != 'n_comp':
            assert grid.axis(name).values == (default,)


def test_default_seed_is_drawn_once_and_stored():
    grid = ParameterGrid.build({}, rng=np.random.default_rng(123))

    assert grid.default_seed is not None
    assert grid.axis('w_init').values == (grid.default_seed,)
    assert grid.count() == 1


def test_default_seed_follows_supplied_random_source():
    first = ParameterGrid.build({}, rng=np.random.default_rng(7))
    second = ParameterGrid.build({}, rng=np.random.default_rng(7))

    assert first.default_seed == second.default_seed


def test_explicit_w_init_does_not_draw_a_seed():
    grid = ParameterGrid.build({'w_init': [1, 2, 3, 4, 5]})

    assert grid.default_seed is None
    assert grid.axis('w_init').values == (1, 2, 3, 4, 5)


def test_single_value_w_init_does_not_multiply_count():
    base = ParameterGrid.build({'center_cols': [True, False], 'w_init': [42]})
    replicated = ParameterGrid.build({'center_cols': [True, False], 'w_init': [1, 2, 3]})

    assert base.count() == 2
    assert replicated.count() == 3 * base.count()


def test_r_style_names_are_normalized():
    grid = ParameterGrid.build({'n.comp': [5, 10], 'center.cols': [False], 'w.init': 9})

    assert grid.axis('n_comp').values == (5, 10)
    assert grid.axis('center_cols').values == (False,)
    assert grid.axis('w.init').values == (9,)
    assert normalize_parameter_name('row.norm') == 'row_norm'
    assert normalize_parameter_name('max_iter') == 'maxit'


def test_scalar_override_is_a_single_value_axis():
    grid = ParameterGrid.build({'n_comp': 50, 'fun': 'exp', 'w_init': 1})

    assert grid.axis('n_comp').values == (50,)
    assert grid.axis('fun').values == ('exp',)


def test_empty_axis_is_rejected():
    with pytest.raises(InvalidAxis):
        ParameterGrid.build({'n_comp': []})


def test_unrecognized_parameter_is_rejected():
    with pytest.raises(InvalidAxis, match='Unrecognized'):
        ParameterGrid.build({'n_components_typo': [5]})


def test_duplicate_spellings_are_rejected():
    with pytest.raises(InvalidAxis, match='more than once'):
        ParameterGrid.build({'n.comp': [5], 'n_comp': [10]})


@pytest.mark.parametrize('name, values', [
    ('center_cols', [1, 0]),
    ('n_comp', [0]),
    ('n_comp', [2.5]),
    ('maxit', [True]),
    ('tol', [0.0]),
    ('alpha', [0.5]),
    ('alg_typ', ['sequential']),
    ('fun', ['cube']),
    ('w_init', [-1]),
    ('n_comp', [5, 5]),
])
def test_invalid_values_are_rejected(name, values):
    with pytest.raises(InvalidAxis):
        ParameterGrid.build({name: values, 'w_init': [1]} if name != 'w_init' else {name: values})


def test_grid_too_large_is_rejected():
    with pytest.raises(GridTooLarge):
        ParameterGrid.build(
            {'n_comp': list(range(1, 101)), 'w_init': list(range(1, 101))},
            max_combinations=1000,
        )


def test_axis_requires_values():
    with pytest.raises(InvalidAxis):
        Axis('n_comp', ())


def test_axis_index_distinguishes_bool_from_int():
    axis = Axis('w_init', (0, 1))

    assert axis.index(1) == 1
    with pytest.raises(ValueError):
        axis.index(True)


def test_to_dict_round_trip_keeps_default_seed():
    grid = ParameterGrid.build({'n_comp': [5, 10], 'tol': [1e-3, 1e-4]}, rng=np.random.default_rng(1))

    restored = ParameterGrid.from_dict(grid.to_dict())

    assert restored == grid
    assert restored.default_seed == grid.default_seed


def test_grid_is_immutable():
    grid = ParameterGrid.build({'w_init': [1]})

    with pytest.raises(AttributeError):
        grid.axes = ()
