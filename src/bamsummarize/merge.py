# src/bamsummarize/merge.py
from __future__ import annotations
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import typer

from .bgzf import BGZF_EOF
from .errors import MergeError

_COPY_CHUNK = 1 << 20


def part_paths(src_dir: str | Path, name: str) -> List[Path]:
    """Per-partition parts of ``name`` in partition order."""
    return sorted(Path(src_dir).glob(f"{name}-[0-9][0-9][0-9][0-9][0-9][0-9]*"))


def _copy_payload(part: Path, out) -> None:
    """Copy ``part`` into ``out`` minus its own trailing EOF marker, if any."""
    size = part.stat().st_size
    with open(part, "rb") as ins:
        if size >= len(BGZF_EOF):
            ins.seek(size - len(BGZF_EOF))
            if ins.read() == BGZF_EOF:
                size -= len(BGZF_EOF)
            ins.seek(0)
        remaining = size
        while remaining > 0:
            buf = ins.read(min(_COPY_CHUNK, remaining))
            if not buf:
                break
            out.write(buf)
            remaining -= len(buf)


def merge_parts(src_dir: str | Path, name: str, out_path: str | Path,
                phase: str = "merge", level: Optional[int] = None) -> int:
    """
    Concatenate the parts of ``name`` into one BGZF file at ``out_path``,
    terminate it with the BGZF EOF marker, then delete the parts.
    Returns the number of parts merged.
    """
    out_path = Path(out_path)
    parts = part_paths(src_dir, name)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "wb") as outs:
            for part in parts:
                _copy_payload(part, outs)
            outs.write(BGZF_EOF)
        for part in parts:
            part.unlink()
    except OSError as e:
        raise MergeError(f"merging {name} into {out_path} failed", path=out_path,
                         phase=phase, level=level) from e
    return len(parts)


def merge_levels(src_dir: str | Path, names: Dict[int, str], out_dir: str | Path,
                 phase: str = "merge") -> Dict[int, Path]:
    """Merge each level's parts into ``out_dir/<name>``; returns level -> merged path."""
    typer.echo(f"[{phase}] Merging output...")
    t0 = time.time()
    out: Dict[int, Path] = {}
    for lvl, name in names.items():
        tl = time.time()
        target = Path(out_dir) / name
        n = merge_parts(src_dir, name, target, phase=phase, level=lvl)
        out[lvl] = target
        typer.echo(f"[{phase}] Merged level {lvl} ({n} parts) in {time.time() - tl:.3f} s.")
    typer.echo(f"[{phase}] Merging complete in {time.time() - t0:.3f} s.")
    return out
