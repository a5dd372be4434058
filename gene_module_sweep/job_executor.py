"""
Job Executor

Runs one decoded job through the fixed pipeline

    preprocessing -> predicting -> partitioning -> evaluating -> done

and reports the outcome as a JobResult. A failure in any stage is recorded on the
result instead of being raised, so one bad combination never stops a sweep.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import numpy as np
import pandas as pd

from .config.settings import get_evaluation_config, get_ica_config, get_partition_config
from .enrichment import align_annotations, evaluate
from .ica import predict
from .job_space import Job
from .partition import PARTITION_METHODS, partition, split_hemi_modules
from .preprocessing import preprocess

logger = logging.getLogger(__name__)

ICA_KERNEL_PARAMETERS = ('alg_typ', 'fun', 'alpha', 'row_norm', 'maxit', 'tol')


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PipelineStage(str, Enum):
    PREPROCESSING = 'preprocessing'
    PREDICTING = 'predicting'
    PARTITIONING = 'partitioning'
    EVALUATING = 'evaluating'
    DONE = 'done'


class StageFailure(Exception):
    """A single job's pipeline failure, tagged with the stage it happened in."""

    def __init__(self, stage: PipelineStage, reason: str):
        super().__init__(f"{stage.value}: {reason}")
        self.stage = stage
        self.reason = reason


@dataclass(frozen=True)
class PipelineSettings:
    """Batch-wide settings for the partition and evaluation stages."""
    partition_method: str = 'fixed'
    partition_threshold: float = 3.0
    n_neighbors: int = 10
    fdr_alpha: float = 0.05
    fail_on_nonconvergence: bool = True

    def __post_init__(self):
        if self.partition_method not in PARTITION_METHODS:
            raise ValueError(f"partition_method must be one of {list(PARTITION_METHODS)}, "
                             f"got {self.partition_method!r}")
        if not self.partition_threshold > 0:
            raise ValueError(f"partition_threshold must be positive, got {self.partition_threshold}")
        if self.n_neighbors < 1:
            raise ValueError(f"n_neighbors must be at least 1, got {self.n_neighbors}")
        if not 0 < self.fdr_alpha < 1:
            raise ValueError(f"fdr_alpha must be in (0, 1), got {self.fdr_alpha}")

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> 'PipelineSettings':
        partition_cfg = get_partition_config(config)
        evaluation_cfg = get_evaluation_config(config)
        ica_cfg = get_ica_config(config)
        return cls(
            partition_method=partition_cfg.get('method', 'fixed'),
            partition_threshold=float(partition_cfg.get('threshold', 3.0)),
            n_neighbors=int(partition_cfg.get('n_neighbors', 10)),
            fdr_alpha=float(evaluation_cfg.get('fdr_alpha', 0.05)),
            fail_on_nonconvergence=bool(ica_cfg.get('fail_on_nonconvergence', True)),
        )


@dataclass
class JobResult:
    """Outcome of one job. Carries enough to reconstruct the run, never S or A."""
    job: Job
    status: str
    stage: str
    reason: Optional[str] = None
    anns_signif: Optional[int] = None
    mods_signif: Optional[int] = None
    module_count: Optional[int] = None
    module_sizes: Optional[Dict[str, int]] = None
    elapsed_seconds: float = 0.0
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def ok(self) -> bool:
        return self.status == 'ok'

    def to_record(self) -> Dict[str, Any]:
        record = {
            'job_id': self.job.job_id,
            'compendium': self.job.compendium,
            'annmat': self.job.annmat,
            'parameters': self.job.params,
            'seed': self.job.seed,
            'status': self.status,
            'stage': self.stage,
        }
        if self.ok:
            record.update({
                'anns_signif': self.anns_signif,
                'mods_signif': self.mods_signif,
                'module_count': self.module_count,
                'module_sizes': self.module_sizes,
            })
        else:
            record['reason'] = self.reason
        record['elapsed_seconds'] = round(self.elapsed_seconds, 3)
        record['timestamp'] = self.timestamp
        return record


class JobExecutor:
    """Executes jobs with injectable collaborators for each pipeline stage."""

    def __init__(self,
                 settings: Optional[PipelineSettings] = None,
                 preprocess_fn: Callable[..., Any] = preprocess,
                 predict_fn: Callable[..., Any] = predict,
                 partition_fn: Callable[..., Any] = partition,
                 evaluate_fn: Callable[..., Any] = evaluate):
        self.settings = settings or PipelineSettings()
        self.preprocess_fn = preprocess_fn
        self.predict_fn = predict_fn
        self.partition_fn = partition_fn
        self.evaluate_fn = evaluate_fn

    def _run_stage(self, job: Job, stage: PipelineStage, fn: Callable[..., Any], *args, **kwargs) -> Any:
        logger.debug(f"Job {job.job_id}: {stage.value}")
        try:
            return fn(*args, **kwargs)
        except Exception as e:  # noqa: BLE001
            raise StageFailure(stage, f"{type(e).__name__}: {e}") from e

    def _partition(self, sources: np.ndarray) -> Dict[str, np.ndarray]:
        membership = self.partition_fn(
            sources,
            method=self.settings.partition_method,
            threshold=self.settings.partition_threshold,
            n_neighbors=self.settings.n_neighbors,
        )
        return split_hemi_modules(membership)

    def _evaluate(self, hemi_modules: Dict[str, np.ndarray], compendium: Any, annotations: Any) -> Dict[str, Any]:
        genes = compendium.index if isinstance(compendium, pd.DataFrame) else range(np.shape(compendium)[0])
        aligned = align_annotations(annotations, genes)
        return self.evaluate_fn(hemi_modules, aligned, self.settings.fdr_alpha)

    def execute(self, job: Job, compendium: Any, annotations: Any) -> JobResult:
        """Run ``job`` against its compendium and annotation matrix."""
        params = job.params
        started = time.perf_counter()
        logger.info(f"Job {job.job_id}: {job.compendium} x {job.annmat}, "
                    f"n_comp={params['n_comp']}, seed={job.seed}")

        try:
            data = self._run_stage(job, PipelineStage.PREPROCESSING, self.preprocess_fn,
                                   compendium, params['center_cols'], params['scale_cols'])

            # Job-local random context; the global numpy state is never touched
            random_state = np.random.RandomState(job.seed)
            kernel_params = {name: params[name] for name in ICA_KERNEL_PARAMETERS}
            sources, _mixing = self._run_stage(job, PipelineStage.PREDICTING, self.predict_fn,
                                               data, params['n_comp'], kernel_params, random_state,
                                               strict=self.settings.fail_on_nonconvergence)

            hemi_modules = self._run_stage(job, PipelineStage.PARTITIONING, self._partition, sources)

            evaluation = self._run_stage(job, PipelineStage.EVALUATING, self._evaluate,
                                         hemi_modules, compendium, annotations)
        except StageFailure as failure:
            logger.error(f"Job {job.job_id} failed during {failure.stage.value}: {failure.reason}")
            return JobResult(
                job=job,
                status='failed',
                stage=failure.stage.value,
                reason=failure.reason,
                elapsed_seconds=time.perf_counter() - started,
            )

        module_sizes = {name: int(np.count_nonzero(members)) for name, members in hemi_modules.items()}
        result = JobResult(
            job=job,
            status='ok',
            stage=PipelineStage.DONE.value,
            anns_signif=int(evaluation['anns_signif']),
            mods_signif=int(evaluation['mods_signif']),
            module_count=sum(1 for size in module_sizes.values() if size > 0),
            module_sizes=module_sizes,
            elapsed_seconds=time.perf_counter() - started,
        )
        logger.info(f"Job {job.job_id} done: {result.anns_signif} annotations and "
                    f"{result.mods_signif} modules significant")
        return result
