#!/usr/bin/env python3
"""
Gene Module Sweep - Main Entry Point

Command-line interface for building a sweep, counting its jobs, running one job per
worker invocation, and summarizing the shared result stream.

Typical cluster use:

    gene-module-sweep build -c expr=expr.csv -a go=go.csv --grid grid.json \
        --output results.jsonl --handle batch.joblib
    gene-module-sweep count --handle batch.joblib
    sbatch --array=1-<count> --wrap "gene-module-sweep run --handle batch.joblib"
    gene-module-sweep summarize --results results.jsonl --output summary.csv
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .batch import BatchHandle
from .config.settings import get_dispatch_config, get_grid_config, load_config
from .job_executor import PipelineSettings
from .job_space import JobIdOutOfRange
from .matrix_io import InvalidMatrix, load_matrix
from .parameter_grid import GridTooLarge, InvalidAxis, normalize_parameter_name
from .result_sink import load_results

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None, level_name: str = 'INFO') -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else getattr(logging, str(level_name).upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


def parse_named_path(value: str) -> tuple:
    """Parse ``NAME=PATH``; a bare path is named after its file stem."""
    if '=' in value:
        name, path = value.split('=', 1)
    else:
        name, path = Path(value).stem, value
    if not name or not path:
        raise argparse.ArgumentTypeError(f"Expected NAME=PATH, got '{value}'")
    return name, path


def _parse_value(token: str) -> Any:
    try:
        return json.loads(token)
    except ValueError:
        return token


def parse_param(value: str) -> tuple:
    """Parse ``NAME=V1,V2,...`` into a parameter name and its candidate values."""
    if '=' not in value:
        raise argparse.ArgumentTypeError(f"Expected NAME=V1,V2,..., got '{value}'")
    name, raw = value.split('=', 1)
    values = [_parse_value(token.strip()) for token in raw.split(',') if token.strip()]
    return name.strip(), values


def load_grid_overrides(grid_path: Optional[str], params: Sequence[tuple]) -> Dict[str, Any]:
    """Grid overrides from a JSON file, with ``--param`` entries taking precedence."""
    overrides: Dict[str, Any] = {}
    if grid_path:
        with open(grid_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Grid file {grid_path} must contain a JSON object")
        for name, values in data.get('axes', data).items():
            overrides[normalize_parameter_name(name)] = values
    for name, values in params:
        overrides[normalize_parameter_name(name)] = values
    return overrides


def resolve_job_id(job_id: Optional[int],
                   env_vars: Sequence[str],
                   environ: Optional[Mapping[str, str]] = None) -> int:
    """Job id from the command line, else from the first set scheduler variable."""
    if job_id is not None:
        return job_id

    environ = os.environ if environ is None else environ
    for name in env_vars:
        value = environ.get(name)
        if value not in (None, '', 'undefined'):
            try:
                return int(value)
            except ValueError:
                raise ValueError(f"Environment variable {name}={value!r} is not an integer job id")
    raise ValueError(f"No --job-id given and none of {list(env_vars)} is set")


def run_build(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    compendia = [(name, load_matrix(path)) for name, path in args.compendium]
    annmats = [(name, load_matrix(path)) for name, path in args.annotations]
    overrides = load_grid_overrides(args.grid, args.param or [])

    settings = PipelineSettings.from_config(config)
    handle = BatchHandle.create(
        compendia,
        annmats,
        overrides,
        output=args.output,
        settings=settings,
        max_combinations=get_grid_config(config).get('max_combinations'),
    )
    handle.save(args.handle)

    if args.describe:
        with open(args.describe, 'w', encoding='utf-8') as f:
            json.dump(handle.space.describe(), f, indent=2)
        logger.info(f"Job space description written to {args.describe}")

    print(handle.count_jobs())
    return 0


def run_count(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    print(BatchHandle.load(args.handle).count_jobs())
    return 0


def run_describe(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    job = BatchHandle.load(args.handle).describe_job(args.job_id)
    print(json.dumps(job.to_dict(), indent=2))
    return 0


def run_worker(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    handle = BatchHandle.load(args.handle)
    if args.output:
        handle = handle.with_output(args.output)

    env_vars = get_dispatch_config(config).get('job_id_env_vars', [])
    job_id = resolve_job_id(args.job_id, env_vars) + args.offset
    handle.run_job(job_id)
    return 0


def run_summarize(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    results = load_results(args.results)
    if results.empty:
        logger.warning(f"No records found in {args.results}")
        return 0

    Path(args.output).parent.mkdir(parents=True, exist_ok=True)
    results.to_csv(args.output, index=False)

    n_ok = int((results['status'] == 'ok').sum())
    logger.info(f"{len(results)} records ({n_ok} ok, {len(results) - n_ok} failed), "
                f"{results['job_id'].nunique()} distinct jobs; table saved to {args.output}")

    if n_ok and 'anns_signif' in results.columns:
        best = results[results['status'] == 'ok'].sort_values('anns_signif', ascending=False).iloc[0]
        logger.info(f"Best job {int(best['job_id'])}: {int(best['anns_signif'])} significant annotations")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Gene Module Sweep - ICA gene module prediction over parameter grids'
    )
    parser.add_argument('--config', help='Configuration file path (JSON)')
    parser.add_argument('--log-file', help='Also write logs to this file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    build = subparsers.add_parser('build', help='Build and save a batch handle')
    build.add_argument('--compendium', '-c', action='append', required=True, type=parse_named_path,
                       metavar='NAME=PATH', help='Expression compendium (genes x samples); repeatable')
    build.add_argument('--annotations', '-a', action='append', required=True, type=parse_named_path,
                       metavar='NAME=PATH', help='Binary annotation matrix (genes x annotations); repeatable')
    build.add_argument('--grid', help='JSON object mapping parameter names to candidate values')
    build.add_argument('--param', '-p', action='append', type=parse_param, metavar='NAME=V1,V2',
                       help='Parameter axis override; repeatable, wins over --grid')
    build.add_argument('--output', '-o', required=True, help='Shared result stream (JSON Lines)')
    build.add_argument('--handle', required=True, help='Where to save the batch handle')
    build.add_argument('--describe', help='Also write the job space description as JSON')

    count = subparsers.add_parser('count', help='Print the number of jobs')
    count.add_argument('--handle', required=True)

    describe = subparsers.add_parser('describe', help='Print the configuration of one job')
    describe.add_argument('--handle', required=True)
    describe.add_argument('--job-id', type=int, required=True)

    run = subparsers.add_parser('run', help='Run one job and append its result')
    run.add_argument('--handle', required=True)
    run.add_argument('--job-id', type=int, help='Job id; defaults to the scheduler array index')
    run.add_argument('--offset', type=int, default=0,
                     help='Added to the job id (for 0-based array indices use 1)')
    run.add_argument('--output', '-o', help='Override the handle output target')

    summarize = subparsers.add_parser('summarize', help='Tabulate a result stream as CSV')
    summarize.add_argument('--results', required=True)
    summarize.add_argument('--output', '-o', required=True)

    return parser


COMMANDS = {
    'build': run_build,
    'count': run_count,
    'describe': run_describe,
    'run': run_worker,
    'summarize': run_summarize,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function to handle command-line arguments and dispatch commands."""
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    system = config.get('system', {})
    setup_logging(args.verbose, args.log_file or system.get('log_file'), system.get('log_level', 'INFO'))

    try:
        return COMMANDS[args.command](args, config)
    except (InvalidAxis, GridTooLarge, InvalidMatrix, JobIdOutOfRange) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 2
    except (OSError, ValueError, TypeError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
