# src/bamsummarize/splits.py
from __future__ import annotations
from bisect import bisect_left
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pysam

from .bgzf import iter_block_starts


@dataclass(frozen=True)
class TextSplit:
    """Byte range [start, end) of a BGZF text file, in compressed-file coordinates."""
    path: str
    start: int
    end: int

    @property
    def label(self) -> str:
        return f"{Path(self.path).name}:{self.start}+{self.end - self.start}"


@dataclass(frozen=True)
class AlignmentSplit:
    """One contig of an indexed BAM, or the whole file when ``contig`` is None."""
    path: str
    contig: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{Path(self.path).name}:{self.contig or '*'}"


def plan_text_splits(path: str | Path, split_bytes: int) -> List[TextSplit]:
    """
    Cut ``path`` every ``split_bytes`` compressed bytes, moving each cut
    forward onto the next BGZF block start. Empty ranges are dropped; the
    last split always ends at the file size.
    """
    if split_bytes <= 0:
        raise ValueError(f"split_bytes must be positive, got {split_bytes}")
    path = str(path)
    size = Path(path).stat().st_size
    if size == 0:
        return []
    blocks = list(iter_block_starts(path))

    cuts = [0]
    raw = split_bytes
    while raw < size:
        i = bisect_left(blocks, raw)
        if i == len(blocks):
            break
        if blocks[i] > cuts[-1]:
            cuts.append(blocks[i])
        raw += split_bytes
    cuts.append(size)
    return [TextSplit(path, a, b) for a, b in zip(cuts, cuts[1:]) if b > a]


def plan_alignment_splits(path: str | Path) -> List[AlignmentSplit]:
    path = str(path)
    with pysam.AlignmentFile(path, "rb") as bam:
        if not bam.has_index():
            return [AlignmentSplit(path)]
        stats = bam.get_index_statistics()
        return [AlignmentSplit(path, s.contig) for s in stats if s.mapped > 0]
