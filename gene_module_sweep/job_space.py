"""
Job Space

Composes the compendia, the annotation sets and the parameter grid into one
addressable space of jobs. Job ids are read as mixed-radix numbers whose radixes are
``[|compendia|, |annmats|, |axis_1|, ..., |axis_k|]``, so any worker can recover its
full configuration from the integer alone without materializing the combination list.
"""

import logging
import numbers
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .config.settings import DEFAULT_CONFIG
from .parameter_grid import GridTooLarge, ParameterGrid

logger = logging.getLogger(__name__)


class JobIdOutOfRange(Exception):
    """Raised when a job id falls outside ``[1, total]``."""
    pass


@dataclass(frozen=True)
class Job:
    """A fully resolved job: input selection plus one value for every parameter."""
    job_id: int
    compendium: str
    annmat: str
    parameters: Tuple[Tuple[str, Any], ...]

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self.parameters)

    @property
    def seed(self) -> int:
        return self.params['w_init']

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job_id': self.job_id,
            'compendium': self.compendium,
            'annmat': self.annmat,
            'parameters': self.params,
        }


def _check_names(kind: str, names: Sequence[str]) -> Tuple[str, ...]:
    names = tuple(str(name) for name in names)
    if not names:
        raise ValueError(f"At least one {kind} is required")
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate {kind} names: {duplicates}")
    return names


@dataclass(frozen=True)
class JobSpace:
    """Bijection between job ids ``1..total`` and (compendium, annmat, combination)."""
    compendia: Tuple[str, ...]
    annmats: Tuple[str, ...]
    grid: ParameterGrid
    max_jobs: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'compendia', _check_names('compendium', self.compendia))
        object.__setattr__(self, 'annmats', _check_names('annotation set', self.annmats))

        limit = self.max_jobs or DEFAULT_CONFIG['grid']['max_combinations']
        if self.total() > limit:
            raise GridTooLarge(f"Job space has {self.total()} jobs, limit is {limit}")

    def radixes(self) -> List[int]:
        """Radixes in canonical order: compendia outermost, then annmats, then grid axes."""
        return [len(self.compendia), len(self.annmats)] + [len(axis) for axis in self.grid.axes]

    def total(self) -> int:
        return len(self.compendia) * len(self.annmats) * self.grid.count()

    def _check_job_id(self, job_id: Any) -> int:
        if isinstance(job_id, bool) or not isinstance(job_id, numbers.Integral):
            raise JobIdOutOfRange(f"Job id must be an integer, got {job_id!r}")
        job_id = int(job_id)
        if not 1 <= job_id <= self.total():
            raise JobIdOutOfRange(f"Job id {job_id} is outside [1, {self.total()}]")
        return job_id

    def digits(self, job_id: int) -> List[int]:
        """Zero-based index along every dimension for ``job_id``."""
        idx = self._check_job_id(job_id) - 1
        digits = []
        for radix in reversed(self.radixes()):
            idx, digit = divmod(idx, radix)
            digits.append(digit)
        digits.reverse()
        return digits

    def decode(self, job_id: int) -> Job:
        digits = self.digits(job_id)
        parameters = tuple(
            (axis.name, axis.values[digit])
            for axis, digit in zip(self.grid.axes, digits[2:])
        )
        return Job(
            job_id=int(job_id),
            compendium=self.compendia[digits[0]],
            annmat=self.annmats[digits[1]],
            parameters=parameters,
        )

    def encode(self, job: Job) -> int:
        """Inverse of :meth:`decode` by Horner accumulation over the same order."""
        try:
            digits = [self.compendia.index(job.compendium), self.annmats.index(job.annmat)]
        except ValueError:
            raise ValueError(f"Job inputs ({job.compendium}, {job.annmat}) are not part of this space")

        params = job.params
        if set(params) != set(self.grid.axis_order()):
            raise ValueError(f"Job parameters {sorted(params)} do not match the grid axes")
        for axis in self.grid.axes:
            digits.append(axis.index(params[axis.name]))

        idx = 0
        for radix, digit in zip(self.radixes(), digits):
            idx = idx * radix + digit
        return idx + 1

    def iter_jobs(self, start: int = 1, stop: Optional[int] = None) -> Iterator[Job]:
        """Lazily decode ids ``start..stop`` (inclusive, defaults to the whole space)."""
        stop = self.total() if stop is None else stop
        for job_id in range(start, stop + 1):
            yield self.decode(job_id)

    def describe(self) -> Dict[str, Any]:
        return {
            'compendia': list(self.compendia),
            'annmats': list(self.annmats),
            'grid': self.grid.to_dict(),
            'total_jobs': self.total(),
        }
