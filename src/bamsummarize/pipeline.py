# src/bamsummarize/pipeline.py
"""
Two-pass driver.

  summarize: sample alignment keys -> partition file -> summarize job ->
             one part per (level, partition)
  merge:     per level, concatenate parts in partition order
  sort:      (optional) per level, re-key merged lines by leftmost
             position, sample, partition, passthrough job; levels run
             concurrently
"""
from __future__ import annotations
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Dict, List

import typer

from .config import SummarizeConfig
from .engine import Job, run_job
from .errors import JobExecutionError
from .keys import alignment_pairs, summary_line_pairs
from .merge import merge_levels
from .partition import boundaries_from_sample, sample_keys
from .reducers import passthrough_partition, summarize_partition
from .splits import plan_alignment_splits, plan_text_splits


def _sample_and_partition(cfg: SummarizeConfig, splits: List, pairs_fn, name: str,
                          phase: str, level: int | None = None) -> Path:
    tag = f"[{phase}]" if level is None else f"[{phase}:{level}]"
    typer.echo(f"{tag} Sampling...")
    t0 = time.time()
    keys = sample_keys(splits, pairs_fn, max_samples=cfg.sample_size,
                       max_splits=cfg.sample_splits, seed=cfg.seed, phase=phase)
    bounds = boundaries_from_sample(keys, cfg.reducers)
    pfile = cfg.partition_file(name)
    bounds.write(pfile)
    typer.echo(f"{tag} Sampling complete in {time.time() - t0:.3f} s "
               f"({len(keys)} keys, {len(bounds.keys) + 1} key ranges).")
    return pfile


def run_summary(cfg: SummarizeConfig) -> Dict:
    """Pass 1: one summary part file per (level, partition) in the work directory."""
    bam = Path(cfg.input_path)
    try:
        splits = plan_alignment_splits(bam)
    except (OSError, ValueError) as e:
        raise JobExecutionError(f"cannot open {bam}", phase="summarize") from e

    pfile = _sample_and_partition(cfg, splits, alignment_pairs, cfg.input_name(), phase="summarize")
    job = Job(
        name=f"summarize-{cfg.input_name()}",
        splits=splits,
        map_fn=alignment_pairs,
        reduce_fn=summarize_partition,
        partition_file=pfile,
        workdir=cfg.dir_work(),
        output_name=cfg.input_name(),
        value_columns=["begin", "end"],
        value_dtypes={"begin": "int64", "end": "int64"},
        params={"levels": list(cfg.levels)},
        inputs=[bam],
        threads=cfg.threads,
        phase="summarize",
        verbose=cfg.verbose,
    )
    typer.echo("[summarize] Waiting for job completion...")
    t0 = time.time()
    payload = run_job(job)
    typer.echo(f"[summarize] Job complete in {time.time() - t0:.3f} s.")
    return payload


def _sort_job(cfg: SummarizeConfig, level: int, merged: Path) -> Job:
    splits = plan_text_splits(merged, cfg.split_bytes)
    pairs_fn = partial(summary_line_pairs, max_line_length=cfg.max_line_length)
    pfile = _sample_and_partition(cfg, splits, pairs_fn, merged.name, phase="sort", level=level)
    return Job(
        name=f"sort-{merged.name}",
        splits=splits,
        map_fn=pairs_fn,
        reduce_fn=passthrough_partition,
        partition_file=pfile,
        workdir=cfg.dir_work(),
        output_name=merged.name,
        value_columns=["line"],
        value_dtypes={"line": str},
        inputs=[merged],
        threads=cfg.threads,
        phase="sort",
        level=level,
        verbose=cfg.verbose,
    )


def do_sorting(cfg: SummarizeConfig, merged: Dict[int, Path]) -> List[int]:
    """
    Pass 2: one sort job per level (sampling included), all submitted before
    any is awaited.
    Returns the levels confirmed, in the order they were confirmed.
    """
    def sort_level(lvl: int) -> Dict:
        return run_job(_sort_job(cfg, lvl, merged[lvl]))

    typer.echo("[sort] Waiting for jobs' completion...")
    t0 = time.time()
    confirmed: List[int] = []
    with ThreadPoolExecutor(max_workers=len(cfg.levels)) as ex:
        futs = {lvl: ex.submit(sort_level, lvl) for lvl in cfg.levels}
        # Reverse order: later levels are usually coarser, so their smaller files finish first.
        for lvl in reversed(cfg.levels):
            try:
                futs[lvl].result()
            except Exception as e:
                typer.secho(f"[sort] Job for level {lvl} failed.", err=True, fg="red")
                for f in futs.values():
                    f.cancel()
                if isinstance(e, JobExecutionError):
                    raise
                raise JobExecutionError(f"sort job for level {lvl} failed", phase="sort", level=lvl) from e
            typer.echo(f"[sort] Job for level {lvl} complete.")
            confirmed.append(lvl)
            tmp = merged[lvl]
            try:
                tmp.unlink()
            except OSError:
                typer.secho(f"[sort] Warning: couldn't delete '{tmp}'", err=True, fg="yellow")
    typer.echo(f"[sort] Jobs complete in {time.time() - t0:.3f} s.")
    return confirmed


def run_pipeline(cfg: SummarizeConfig) -> Dict[str, object]:
    """
    Execute the whole summarize (+ optional sort) run.

    Returns {"summary": job record, "merged": {level: path}, "sorted": [levels]}.
    """
    cfg.validate()
    cfg.ensure_dirs()
    out_dir = cfg.dir_output()
    result: Dict[str, object] = {"merged": {}, "sorted": []}

    typer.echo(f"[summarize] input={cfg.input_path} levels={','.join(map(str, cfg.levels))} "
               f"reducers={cfg.reducers} threads={cfg.threads} sort={'on' if cfg.sort else 'off'}")
    result["summary"] = run_summary(cfg)

    names = cfg.summary_names()
    if cfg.sort:
        merged = merge_levels(cfg.dir_work(), names, cfg.sort_tmp_dir(), phase="merge")
        result["sorted"] = do_sorting(cfg, merged)
        if out_dir is not None:
            result["merged"] = merge_levels(cfg.dir_work(), names, out_dir, phase="merge-sorted")
    elif out_dir is not None:
        result["merged"] = merge_levels(cfg.dir_work(), names, out_dir, phase="merge")

    return result
