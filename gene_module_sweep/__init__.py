"""
Gene Module Sweep

Predicts co-expressed gene modules from expression compendia with independent
component analysis and explores the ICA parameter space as an addressable set of
independent cluster jobs.
"""

__version__ = "1.0.0"

from .parameter_grid import Axis, ParameterGrid, InvalidAxis, GridTooLarge, PARAMETER_ORDER
from .job_space import Job, JobSpace, JobIdOutOfRange
from .job_executor import JobExecutor, JobResult, PipelineSettings, PipelineStage, StageFailure
from .result_sink import ResultSink, read_records, load_results
from .batch import BatchHandle
from .matrix_io import InvalidMatrix, load_matrix

__all__ = [
    'Axis',
    'ParameterGrid',
    'InvalidAxis',
    'GridTooLarge',
    'PARAMETER_ORDER',
    'Job',
    'JobSpace',
    'JobIdOutOfRange',
    'JobExecutor',
    'JobResult',
    'PipelineSettings',
    'PipelineStage',
    'StageFailure',
    'ResultSink',
    'read_records',
    'load_results',
    'BatchHandle',
    'InvalidMatrix',
    'load_matrix'
]
