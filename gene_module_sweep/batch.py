"""
Batch Handle

Bundles the input compendia, the annotation sets, the parameter grid, the pipeline
settings and the output target of one sweep. A handle is built once by an operator,
saved with joblib and loaded by each worker, which then runs exactly the job id it
was given by the cluster scheduler.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import joblib
import numpy as np
import pandas as pd

from .job_executor import JobExecutor, PipelineSettings
from .job_space import Job, JobSpace
from .matrix_io import validate_annotations, validate_compendium
from .parameter_grid import ParameterGrid
from .result_sink import ResultSink

logger = logging.getLogger(__name__)

NamedMatrices = Union[Mapping[str, Any], Sequence[Tuple[str, Any]], pd.DataFrame, np.ndarray]


def _named_collection(kind: str, matrices: NamedMatrices) -> Dict[str, Any]:
    """Ordered name -> matrix mapping; a bare matrix is named after ``kind``."""
    if isinstance(matrices, (pd.DataFrame, np.ndarray)):
        return {kind: matrices}
    items = list(matrices.items()) if isinstance(matrices, Mapping) else list(matrices)
    if not items:
        raise ValueError(f"At least one {kind} is required")

    collection: Dict[str, Any] = {}
    for name, matrix in items:
        name = str(name)
        if name in collection:
            raise ValueError(f"Duplicate {kind} name '{name}'")
        collection[name] = matrix
    return collection


class BatchHandle:
    """Immutable description of a sweep; ``run_job`` is its only side effect."""

    def __init__(self,
                 compendia: Dict[str, pd.DataFrame],
                 annmats: Dict[str, pd.DataFrame],
                 space: JobSpace,
                 output: Union[str, Path],
                 settings: Optional[PipelineSettings] = None):
        if tuple(compendia) != space.compendia or tuple(annmats) != space.annmats:
            raise ValueError("Job space names do not match the supplied matrices")
        self._compendia = dict(compendia)
        self._annmats = dict(annmats)
        self._space = space
        self._output = str(output)
        self._settings = settings or PipelineSettings()

    @classmethod
    def create(cls,
               compendia: NamedMatrices,
               annmats: NamedMatrices,
               grid: Union[ParameterGrid, Mapping[str, Any], None] = None,
               output: Union[str, Path] = 'results.jsonl',
               settings: Optional[PipelineSettings] = None,
               rng: Optional[np.random.Generator] = None,
               max_combinations: Optional[int] = None) -> 'BatchHandle':
        """Validate the inputs, build the grid once, and compose the job space.

        Raises:
            InvalidMatrix: A compendium or annotation matrix is unusable.
            InvalidAxis, GridTooLarge: The grid overrides are invalid.
        """
        compendia = {
            name: validate_compendium(name, matrix)
            for name, matrix in _named_collection('compendium', compendia).items()
        }
        annmats = {
            name: validate_annotations(name, matrix, compendia.values())
            for name, matrix in _named_collection('annotations', annmats).items()
        }

        if not isinstance(grid, ParameterGrid):
            grid = ParameterGrid.build(grid, rng=rng, max_combinations=max_combinations)

        space = JobSpace(tuple(compendia), tuple(annmats), grid, max_jobs=max_combinations)
        handle = cls(compendia, annmats, space, output, settings)
        logger.info(f"Created batch with {len(compendia)} compendia, {len(annmats)} annotation sets "
                    f"and {space.total()} jobs; results go to {handle.output}")
        return handle

    @property
    def space(self) -> JobSpace:
        return self._space

    @property
    def grid(self) -> ParameterGrid:
        return self._space.grid

    @property
    def output(self) -> str:
        return self._output

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    @property
    def compendia(self) -> Dict[str, pd.DataFrame]:
        return dict(self._compendia)

    @property
    def annmats(self) -> Dict[str, pd.DataFrame]:
        return dict(self._annmats)

    def with_output(self, output: Union[str, Path]) -> 'BatchHandle':
        """Same batch writing to a different target."""
        return BatchHandle(self._compendia, self._annmats, self._space, output, self._settings)

    def count_jobs(self) -> int:
        return self._space.total()

    def describe_job(self, job_id: int) -> Job:
        return self._space.decode(job_id)

    def run_job(self, job_id: int, executor: Optional[JobExecutor] = None) -> None:
        """Decode, execute and append the result of one job.

        Raises:
            JobIdOutOfRange: Before any work is done or anything is written.
        """
        job = self._space.decode(job_id)
        executor = executor or JobExecutor(self._settings)
        result = executor.execute(job, self._compendia[job.compendium], self._annmats[job.annmat])
        ResultSink(self._output).append(result)
        logger.info(f"Job {job.job_id} recorded with status '{result.status}' in {self._output}")

    def save(self, path: Union[str, Path]) -> Path:
        """Serialize the handle for distribution to workers."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(self, path, compress=3)
        logger.info(f"Saved batch handle ({self.count_jobs()} jobs) to {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'BatchHandle':
        handle = joblib.load(Path(path))
        if not isinstance(handle, cls):
            raise TypeError(f"{path} does not contain a {cls.__name__}")
        logger.info(f"Loaded batch handle with {handle.count_jobs()} jobs from {path}")
        return handle
