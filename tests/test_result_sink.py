import json
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from gene_module_sweep.job_executor import JobResult
from gene_module_sweep.job_space import Job
from gene_module_sweep.result_sink import ResultSink, encode_record, load_results, read_records


def _job(job_id):
    return Job(job_id=job_id, compendium='expr', annmat='go',
               parameters=(('n_comp', 5), ('w_init', 11)))


def test_append_writes_one_line_per_result(tmp_path):
    target = tmp_path / 'out' / 'results.jsonl'
    sink = ResultSink(target)

    sink.append(JobResult(job=_job(1), status='ok', stage='done', anns_signif=3, mods_signif=2,
                          module_count=4, module_sizes={'IC1+': 5}))
    sink.append(JobResult(job=_job(2), status='failed', stage='predicting', reason='ICAError: boom'))

    lines = target.read_text(encoding='utf-8').splitlines()
    assert len(lines) == 2
    ok, failed = (json.loads(line) for line in lines)
    assert ok['anns_signif'] == 3
    assert ok['parameters'] == {'n_comp': 5, 'w_init': 11}
    assert ok['seed'] == 11
    assert 'reason' not in ok
    assert failed['stage'] == 'predicting'
    assert failed['reason'] == 'ICAError: boom'
    assert 'anns_signif' not in failed


def test_encode_record_handles_numpy_values():
    line = encode_record({'job_id': np.int64(4), 'score': np.float32(0.5), 'flag': np.bool_(True)})

    assert line.endswith(b'\n')
    assert json.loads(line) == {'job_id': 4, 'score': 0.5, 'flag': True}


def test_concurrent_appends_never_interleave(tmp_path):
    target = tmp_path / 'results.jsonl'
    padding = 'x' * 4096

    def write(job_id):
        ResultSink(target).append({'job_id': job_id, 'status': 'ok', 'padding': padding})

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(write, range(1, 401)))

    records = read_records(target)
    assert len(records) == 400
    assert sorted(record['job_id'] for record in records) == list(range(1, 401))
    assert all(record['padding'] == padding for record in records)


def test_read_records_skips_malformed_lines(tmp_path, caplog):
    target = tmp_path / 'results.jsonl'
    target.write_text('{"job_id": 2, "status": "ok"}\n{"job_id": 3, "sta\n\n{"job_id": 1, "status": "ok"}\n',
                      encoding='utf-8')

    records = read_records(target)

    assert [record['job_id'] for record in records] == [2, 1]
    assert 'malformed' in caplog.text


def test_read_records_missing_file(tmp_path):
    assert read_records(tmp_path / 'missing.jsonl') == []
    assert load_results(tmp_path / 'missing.jsonl').empty


def test_load_results_flattens_parameters_and_sorts(tmp_path):
    sink = ResultSink(tmp_path / 'results.jsonl')
    sink.append(JobResult(job=_job(7), status='ok', stage='done', anns_signif=1))
    sink.append(JobResult(job=_job(2), status='ok', stage='done', anns_signif=4))
    sink.append(JobResult(job=_job(7), status='ok', stage='done', anns_signif=1))

    table = load_results(tmp_path / 'results.jsonl')

    assert table['job_id'].tolist() == [2, 7, 7]
    assert 'param_n_comp' in table.columns
    assert 'parameters' not in table.columns
    assert table['param_w_init'].tolist() == [11, 11, 11]
