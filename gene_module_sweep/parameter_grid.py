"""
Parameter Grid for ICA Sweeps

Defines the candidate values of every parameter accepted by the ICA kernel and the
preprocessing step, and normalizes user overrides into a complete, immutable grid.
"""

import logging
import math
import numbers
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

import numpy as np

from .config.settings import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

# Canonical axis order. Job ids are decoded in this order, so it must never change.
PARAMETER_ORDER = (
    'n_comp',
    'center_cols',
    'scale_cols',
    'w_init',
    'alg_typ',
    'fun',
    'alpha',
    'row_norm',
    'maxit',
    'tol',
)

PARAMETER_DEFAULTS = {
    'n_comp': 50,
    'center_cols': True,
    'scale_cols': False,
    'alg_typ': 'parallel',
    'fun': 'logcosh',
    'alpha': 1.0,
    'row_norm': False,
    'maxit': 200,
    'tol': 1e-4,
}

PARAMETER_ALIASES = {
    'ncomp': 'n_comp',
    'n_components': 'n_comp',
    'center': 'center_cols',
    'scale': 'scale_cols',
    'winit': 'w_init',
    'seed': 'w_init',
    'algorithm': 'alg_typ',
    'algtyp': 'alg_typ',
    'rownorm': 'row_norm',
    'max_iter': 'maxit',
}

ALGORITHM_TYPES = ('parallel', 'deflation')
CONTRAST_FUNCTIONS = ('logcosh', 'exp')

# numpy RandomState accepts seeds in [0, 2**32 - 1]; stay within int32 for portability
MAX_SEED = 2**31 - 1


class InvalidAxis(Exception):
    """Raised when a grid override is unrecognized or has no usable values."""
    pass


class GridTooLarge(Exception):
    """Raised when the number of combinations exceeds the configured bound."""
    pass


def normalize_parameter_name(name: str) -> str:
    """Map R-style or aliased names (``n.comp``, ``w.init``) onto canonical names."""
    normalized = re.sub(r'[^a-z0-9]+', '_', str(name).strip().lower()).strip('_')
    return PARAMETER_ALIASES.get(normalized, normalized)


def draw_seed(rng: Optional[np.random.Generator] = None) -> int:
    """Draw one ``w_init`` seed from the process-level random source."""
    rng = rng if rng is not None else np.random.default_rng()
    return int(rng.integers(1, MAX_SEED))


def _is_bool(value: Any) -> bool:
    return isinstance(value, (bool, np.bool_))


def _as_bool(name: str, value: Any) -> bool:
    if not _is_bool(value):
        raise InvalidAxis(f"'{name}' values must be booleans, got {value!r}")
    return bool(value)


def _as_integer(name: str, value: Any, minimum: int, maximum: Optional[int] = None) -> int:
    if _is_bool(value) or not isinstance(value, numbers.Integral):
        raise InvalidAxis(f"'{name}' values must be integers, got {value!r}")
    value = int(value)
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"in [{minimum}, {maximum}]"
        raise InvalidAxis(f"'{name}' values must be {bounds}, got {value}")
    return value


def _as_real(name: str, value: Any) -> float:
    if _is_bool(value) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise InvalidAxis(f"'{name}' values must be finite numbers, got {value!r}")
    return float(value)


def _as_choice(choices: Tuple[str, ...]) -> Callable[[str, Any], str]:
    def coerce(name: str, value: Any) -> str:
        if not isinstance(value, str) or value.lower() not in choices:
            raise InvalidAxis(f"'{name}' values must be one of {list(choices)}, got {value!r}")
        return value.lower()
    return coerce


def _as_alpha(name: str, value: Any) -> float:
    value = _as_real(name, value)
    if not 1.0 <= value <= 2.0:
        raise InvalidAxis(f"'{name}' values must be in [1, 2], got {value}")
    return value


def _as_tolerance(name: str, value: Any) -> float:
    value = _as_real(name, value)
    if value <= 0:
        raise InvalidAxis(f"'{name}' values must be positive, got {value}")
    return value


_COERCERS: Dict[str, Callable[[str, Any], Any]] = {
    'n_comp': lambda name, value: _as_integer(name, value, 1),
    'center_cols': _as_bool,
    'scale_cols': _as_bool,
    'w_init': lambda name, value: _as_integer(name, value, 0, MAX_SEED),
    'alg_typ': _as_choice(ALGORITHM_TYPES),
    'fun': _as_choice(CONTRAST_FUNCTIONS),
    'alpha': _as_alpha,
    'row_norm': _as_bool,
    'maxit': lambda name, value: _as_integer(name, value, 1),
    'tol': _as_tolerance,
}


def _coerce_axis_values(name: str, raw_values: Any) -> Tuple[Any, ...]:
    if isinstance(raw_values, np.ndarray):
        raw_values = raw_values.tolist()
    if isinstance(raw_values, (str, bytes)) or not isinstance(raw_values, Iterable):
        raw_values = [raw_values]

    values = tuple(_COERCERS[name](name, value) for value in raw_values)
    if not values:
        raise InvalidAxis(f"Axis '{name}' must have at least one value")
    if len(set(values)) != len(values):
        raise InvalidAxis(f"Axis '{name}' contains duplicate values: {list(values)}")
    return values


@dataclass(frozen=True)
class Axis:
    """One tunable dimension of the sweep with its ordered candidate values."""
    name: str
    values: Tuple[Any, ...]

    def __post_init__(self):
        if len(self.values) == 0:
            raise InvalidAxis(f"Axis '{self.name}' must have at least one value")

    def __len__(self) -> int:
        return len(self.values)

    def index(self, value: Any) -> int:
        """Position of ``value`` on this axis; ``ValueError`` if absent."""
        for position, candidate in enumerate(self.values):
            if type(candidate) is type(value) and candidate == value:
                return position
        raise ValueError(f"{value!r} is not a value of axis '{self.name}'")


@dataclass(frozen=True)
class ParameterGrid:
    """Complete grid over every recognized parameter.

    Instances are normally created through :meth:`build`, which fills unspecified
    parameters with their canonical default and, when ``w_init`` is not given, draws
    one seed that is stored on the grid as ``default_seed``.
    """
    axes: Tuple[Axis, ...]
    default_seed: Optional[int] = None

    def __post_init__(self):
        names = tuple(axis.name for axis in self.axes)
        if names != PARAMETER_ORDER:
            raise InvalidAxis(f"Grid axes must be exactly {list(PARAMETER_ORDER)}, got {list(names)}")

    @classmethod
    def build(cls,
              overrides: Optional[Mapping[str, Any]] = None,
              rng: Optional[np.random.Generator] = None,
              max_combinations: Optional[int] = None) -> 'ParameterGrid':
        """Normalize ``overrides`` into a complete grid.

        Args:
            overrides: Mapping of parameter name to candidate values. Scalars are
                treated as single-value axes.
            rng: Random source for the default ``w_init`` seed.
            max_combinations: Upper bound on ``count()``.

        Raises:
            InvalidAxis: Unknown parameter, empty axis, or invalid value.
            GridTooLarge: The combination count exceeds the bound.
        """
        resolved: Dict[str, Tuple[Any, ...]] = {}
        for raw_name, raw_values in (overrides or {}).items():
            name = normalize_parameter_name(raw_name)
            if name not in _COERCERS:
                raise InvalidAxis(f"Unrecognized parameter '{raw_name}'")
            if name in resolved:
                raise InvalidAxis(f"Parameter '{name}' was given more than once")
            resolved[name] = _coerce_axis_values(name, raw_values)

        default_seed = None
        if 'w_init' not in resolved:
            default_seed = draw_seed(rng)
            resolved['w_init'] = (default_seed,)
            logger.info(f"No w_init given; drew default seed {default_seed}")

        axes = tuple(
            Axis(name, resolved.get(name, (PARAMETER_DEFAULTS.get(name),)))
            for name in PARAMETER_ORDER
        )
        grid = cls(axes=axes, default_seed=default_seed)

        limit = max_combinations or DEFAULT_CONFIG['grid']['max_combinations']
        if grid.count() > limit:
            raise GridTooLarge(f"Grid has {grid.count()} combinations, limit is {limit}")

        logger.info(f"Built parameter grid with {grid.count()} combinations: {grid.sizes()}")
        return grid

    def axis_order(self) -> Tuple[str, ...]:
        return PARAMETER_ORDER

    def axis(self, name: str) -> Axis:
        name = normalize_parameter_name(name)
        for axis in self.axes:
            if axis.name == name:
                return axis
        raise KeyError(name)

    def sizes(self) -> Dict[str, int]:
        return {axis.name: len(axis) for axis in self.axes}

    def count(self) -> int:
        return math.prod(len(axis) for axis in self.axes)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly description that :meth:`from_dict` reconstructs exactly."""
        return {
            'axes': {axis.name: list(axis.values) for axis in self.axes},
            'default_seed': self.default_seed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any],
                  max_combinations: Optional[int] = None) -> 'ParameterGrid':
        axes = data.get('axes', {})
        if 'w_init' not in axes:
            raise InvalidAxis("Serialized grid is missing the 'w_init' axis")
        grid = cls.build(axes, max_combinations=max_combinations)
        return replace(grid, default_seed=data.get('default_seed'))
