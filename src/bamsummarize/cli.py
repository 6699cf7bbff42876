#!/usr/bin/env python3
from __future__ import annotations
from pathlib import Path
from typing import Optional

import typer

from . import __version__
from .config import SummarizeConfig, parse_levels, resolve_output_dir
from .errors import BamSummarizeError, ConfigurationError

app = typer.Typer(help="bamsummarize: multi-resolution positional summaries of BAM files",
                  add_completion=False)


def _fail(e: BamSummarizeError) -> None:
    typer.secho(f"summarize :: {e}", err=True, fg="red")
    if isinstance(e.__cause__, Exception):
        typer.secho(f"summarize ::   caused by {type(e.__cause__).__name__}: {e.__cause__}", err=True, fg="red")
    raise typer.Exit(code=e.exit_code)


def _missing(what: str) -> None:
    _fail(ConfigurationError(f"{what} not given."))


@app.command(context_settings={"ignore_unknown_options": True})
def summarize(
    workdir: Optional[Path] = typer.Argument(None, metavar="WORKDIR",
        help="Directory for per-partition parts and intermediate files"),
    levels: Optional[str] = typer.Argument(None, metavar="LEVELS",
        help="Comma-separated positive integers; alignments averaged per summary record"),
    path: Optional[Path] = typer.Argument(None, metavar="PATH", help="Input BAM"),
    sort: bool = typer.Option(False, "--sort", "-s", help="Sort created summaries by position"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o",
        help="Write complete summary files to this directory, removing the parts from WORKDIR"),
    output_local_dir: Optional[str] = typer.Option(None, "--output-local-dir", "-O",
        help="Like --output-dir, but PATH always refers to the local filesystem"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", exists=True, readable=True,
        help="JSON with tuning keys (reducers, threads, sample_size, ...)"),
    reducers: Optional[int] = typer.Option(None, "--reducers", "-r", help="Number of key partitions"),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Worker processes per job"),
    sample_size: Optional[int] = typer.Option(None, "--sample-size", help="Max keys sampled per pass"),
    sample_splits: Optional[int] = typer.Option(None, "--sample-splits", help="Max splits sampled per pass"),
    split_bytes: Optional[int] = typer.Option(None, "--split-bytes",
        help="Compressed bytes per split when sorting merged summaries"),
    max_line_length: Optional[int] = typer.Option(None, "--max-line-length",
        help="Truncate summary lines longer than this when sorting"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Sampler seed"),
    verbose: bool = typer.Option(True, "--verbose/--quiet", help="Print per-task progress"),
):
    """
    Outputs, for each level in LEVELS, a summary file describing the average
    position of groups of consecutive alignments in the BAM file PATH.
    The summary files are placed in parts in WORKDIR unless an output
    directory is given (or --sort merges them).
    """
    from .pipeline import run_pipeline

    if workdir is None: _missing("WORKDIR")
    if levels is None: _missing("LEVELS")
    if path is None: _missing("PATH")

    try:
        out = resolve_output_dir(output_dir, output_local_dir)
        lvls = parse_levels(levels)
        overrides = dict(reducers=reducers, threads=threads, sample_size=sample_size,
                         sample_splits=sample_splits, split_bytes=split_bytes,
                         max_line_length=max_line_length, seed=seed)
        base = dict(workdir=str(workdir), levels=lvls, input_path=str(path), sort=sort,
                    output_dir=out, verbose=verbose)
        if config is not None:
            cfg = SummarizeConfig.load(config, **base, **overrides)
        else:
            cfg = SummarizeConfig(**base, **{k: v for k, v in overrides.items() if v is not None})
        cfg.validate()
    except BamSummarizeError as e:
        _fail(e)

    try:
        result = run_pipeline(cfg)
    except BamSummarizeError as e:
        _fail(e)

    for lvl, p in result["merged"].items():
        typer.echo(f"[summarize] level {lvl}: {p}")
    typer.echo("[summarize] done")


@app.command()
def version():
    """Print the version."""
    typer.echo(__version__)


if __name__ == "__main__":
    app()
