# src/bamsummarize/engine.py
"""
Local partitioned engine.

Runs a job as map tasks (one per input split) and reduce tasks (one per
partition) on process pools:

  map:     pairs_fn(split) -> (key, values); route key with the job's
           partition file; spill a TSV row per pair to part-<p>.tsv
  reduce:  read every map task's part-<p>.tsv, stable-sort by key, hand
           the pairs to reduce_fn in ascending key order

The partition file is the only thing tasks share.
"""
from __future__ import annotations
import csv
import os
import shutil
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import pandas as pd
import typer

from .errors import JobExecutionError
from .partition import PartitionBoundaries
from .reducers import ReduceContext
from .sentinels import fingerprint, job_sentinel_path, make_payload, write_sentinel

_LOG_LOCK = Lock()


def _log(msg: str, verbose: bool = True) -> None:
    if not verbose:
        return
    with _LOG_LOCK:
        typer.echo(msg)


@dataclass
class Job:
    name: str
    splits: List[Any]
    map_fn: Callable[[Any], Iterable[Tuple[int, tuple]]]
    reduce_fn: Callable[[ReduceContext, Iterable[Tuple[int, tuple]]], Dict[str, int]]
    partition_file: Path
    workdir: Path
    output_name: str
    value_columns: List[str]
    value_dtypes: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    inputs: List[Path] = field(default_factory=list)
    threads: int = 1
    phase: str = "summarize"
    level: Optional[int] = None
    verbose: bool = True

    def spill_dir(self) -> Path:
        return Path(self.workdir) / "_tmp" / self.name

    def tag(self) -> str:
        return f"[{self.phase}]" if self.level is None else f"[{self.phase}:{self.level}]"


def _spill_path(job: Job, task_id: int, partition: int) -> Path:
    return job.spill_dir() / f"map-{task_id:05d}" / f"part-{partition:06d}.tsv"


def _run_map_task(job: Job, task_id: int, split: Any) -> Dict[int, int]:
    boundaries = PartitionBoundaries.load(job.partition_file)
    handles: Dict[int, Any] = {}
    writers: Dict[int, Any] = {}
    counts: Dict[int, int] = {}
    try:
        for key, values in job.map_fn(split):
            p = boundaries.route(key)
            w = writers.get(p)
            if w is None:
                path = _spill_path(job, task_id, p)
                path.parent.mkdir(parents=True, exist_ok=True)
                handles[p] = open(path, "w", newline="")
                w = writers[p] = csv.writer(handles[p], delimiter="\t")
            w.writerow([key, *values])
            counts[p] = counts.get(p, 0) + 1
    finally:
        for h in handles.values():
            h.close()
    return counts


def _iter_sorted_pairs(job: Job, partition: int) -> Iterator[Tuple[int, tuple]]:
    paths = sorted(job.spill_dir().glob(f"map-*/part-{partition:06d}.tsv"))
    names = ["key", *job.value_columns]
    dtypes = {"key": "int64", **job.value_dtypes}
    dfs = [
        pd.read_csv(p, sep="\t", header=None, names=names, dtype=dtypes, keep_default_na=False)
        for p in paths if p.stat().st_size > 0
    ]
    if not dfs:
        return
    df = pd.concat(dfs, ignore_index=True).sort_values("key", kind="stable")
    for row in df.itertuples(index=False, name=None):
        yield int(row[0]), tuple(row[1:])


def _run_reduce_task(job: Job, partition: int) -> Dict[str, int]:
    ctx = ReduceContext(partition=partition, workdir=Path(job.workdir),
                        output_name=job.output_name, params=job.params)
    return job.reduce_fn(ctx, _iter_sorted_pairs(job, partition))


def run_job(job: Job) -> Dict[str, Any]:
    """Run ``job`` to completion; returns its completion record."""
    started = time.time()
    spill = job.spill_dir()
    if spill.exists():
        shutil.rmtree(spill)
    spill.mkdir(parents=True, exist_ok=True)

    try:
        n_parts = PartitionBoundaries.load(job.partition_file).n_partitions
    except (OSError, ValueError) as e:
        raise JobExecutionError(f"{job.name}: cannot load partition file {job.partition_file}",
                                phase=job.phase, level=job.level) from e

    # ---- map ----
    mapped: Dict[int, int] = {}
    if job.splits:
        max_workers = max(1, min(job.threads, len(job.splits)))
        _log(f"{job.tag()} {job.name}: map (n_splits={len(job.splits)}, procs={max_workers})", job.verbose)
        with ProcessPoolExecutor(max_workers=max_workers) as ex:
            futs = {ex.submit(_run_map_task, job, i, s): s for i, s in enumerate(job.splits)}
            done = 0
            for fut in as_completed(futs):
                split = futs[fut]
                label = getattr(split, "label", str(split))
                try:
                    for p, n in fut.result().items():
                        mapped[p] = mapped.get(p, 0) + n
                except Exception as e:
                    raise JobExecutionError(f"{job.name}: map task {label} failed",
                                            phase=job.phase, level=job.level) from e
                done += 1
                if done % 50 == 0 or done == len(futs):
                    _log(f"{job.tag()}   map {done}/{len(futs)}", job.verbose)

    # ---- reduce ----
    written: Dict[str, int] = {}
    max_workers = max(1, min(job.threads, n_parts))
    _log(f"{job.tag()} {job.name}: reduce (n_parts={n_parts}, procs={max_workers})", job.verbose)
    with ProcessPoolExecutor(max_workers=max_workers) as ex:
        futs = {ex.submit(_run_reduce_task, job, p): p for p in range(n_parts)}
        done = 0
        for fut in as_completed(futs):
            p = futs[fut]
            try:
                for name, n in fut.result().items():
                    written[name] = written.get(name, 0) + n
            except Exception as e:
                raise JobExecutionError(f"{job.name}: reduce task for partition {p} failed",
                                        phase=job.phase, level=job.level) from e
            done += 1
            if done % 50 == 0 or done == len(futs):
                _log(f"{job.tag()}   reduce {done}/{len(futs)}", job.verbose)

    shutil.rmtree(spill, ignore_errors=True)

    outputs = sorted(Path(job.workdir).glob(f"{job.output_name}-*"))
    counters = {
        "pairs_mapped": sum(mapped.values()),
        "pairs_per_partition": {str(p): n for p, n in sorted(mapped.items())},
        "lines_written": written,
    }
    payload = make_payload(job.name, fingerprint(job.params, job.inputs), job.inputs, outputs,
                           os.getpid(), started, counters=counters)
    write_sentinel(job_sentinel_path(job.workdir, job.name), payload)
    return payload
