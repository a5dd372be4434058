"""
Result Sink

Append-only JSON Lines stream of job results. Every record is a single line written
with one ``O_APPEND`` write, so concurrent workers never interleave within a record.
Records are self-describing; consumers sort and group after the fact.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
import pandas as pd

from .job_executor import JobResult

logger = logging.getLogger(__name__)

if os.name == 'posix':
    import fcntl
else:  # pragma: no cover
    fcntl = None


def _json_default(obj: Any) -> Any:
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_record(record: Dict[str, Any]) -> bytes:
    line = json.dumps(record, default=_json_default, ensure_ascii=False)
    return (line + '\n').encode('utf-8')


class ResultSink:
    """Appends one JSON record per job to ``target``."""

    def __init__(self, target: Union[str, Path]):
        self.target = Path(target)

    def append(self, result: Union[JobResult, Dict[str, Any]]) -> None:
        record = result.to_record() if isinstance(result, JobResult) else result
        payload = encode_record(record)

        self.target.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.target, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            if fcntl is not None:
                fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                written = 0
                while written < len(payload):
                    written += os.write(fd, payload[written:])
            finally:
                if fcntl is not None:
                    fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

        logger.debug(f"Appended job {record.get('job_id')} to {self.target}")


def read_records(target: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read every well-formed record from a result stream."""
    path = Path(target)
    if not path.exists():
        return []

    records: List[Dict[str, Any]] = []
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed record on line {line_number} of {path}")
    return records


def load_results(target: Union[str, Path]) -> pd.DataFrame:
    """Result stream as a table, one row per record, parameters as ``param_<name>`` columns."""
    rows = []
    for record in read_records(target):
        row = {key: value for key, value in record.items() if key != 'parameters'}
        for name, value in (record.get('parameters') or {}).items():
            row[f"param_{name}"] = value
        rows.append(row)

    frame = pd.DataFrame(rows)
    if not frame.empty:
        frame = frame.sort_values('job_id', kind='stable').reset_index(drop=True)
    return frame
