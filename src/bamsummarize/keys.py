# src/bamsummarize/keys.py
"""
Key derivation for both passes.

Pass 1 keys alignments by (reference, centre of mass); pass 2 re-keys the
emitted summary lines by (reference, leftmost position) for a true sort.
Both pack the reference ID into the high 32 bits so that keys order by
reference first.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import pysam

from .errors import ExtractionError
from .linereader import SplitLineReader
from .splits import AlignmentSplit, TextSplit

_U32 = 0xFFFFFFFF


@dataclass(frozen=True)
class PositionRange:
    """1-based inclusive alignment extent."""
    begin: int
    end: int

    @property
    def centre_of_mass(self) -> int:
        return (self.begin + self.end) // 2


def pack_key(reference_id: int, low: int) -> int:
    return (reference_id << 32) | (low & _U32)


def order_key(reference_id: int, rng: PositionRange) -> int:
    return pack_key(reference_id, rng.centre_of_mass)


def reference_id_of(key: int) -> int:
    return key >> 32


def range_from_alignment(aln: "pysam.AlignedSegment") -> PositionRange:
    # pysam coordinates are 0-based half-open
    return PositionRange(aln.reference_start + 1, aln.reference_end)


def alignment_pairs(split: AlignmentSplit) -> Iterator[Tuple[int, Tuple[int, int]]]:
    """(OrderKey, (begin, end)) for every mapped alignment of ``split``."""
    with pysam.AlignmentFile(split.path, "rb") as bam:
        it = bam.fetch(split.contig) if split.contig else bam.fetch(until_eof=True)
        for aln in it:
            if aln.is_unmapped:
                continue
            if aln.reference_end is None:
                raise ExtractionError(
                    f"mapped alignment {aln.query_name!r} in {split.label} has no alignment end")
            rng = range_from_alignment(aln)
            yield order_key(aln.reference_id, rng), (rng.begin, rng.end)


def key_from_summary_line(line: str) -> int:
    """``rid << 32 | begin`` from a ``rid\\tbegin\\tend\\tcount`` line."""
    fields = line.split("\t", 2)
    if len(fields) < 2:
        raise ExtractionError(f"summary line has fewer than two fields: {line!r}")
    try:
        rid, begin = int(fields[0]), int(fields[1])
    except ValueError as e:
        raise ExtractionError(f"malformed summary line {line!r}") from e
    return pack_key(rid, begin)


def summary_line_pairs(split: TextSplit, max_line_length: Optional[int] = None) -> Iterator[Tuple[int, Tuple[str]]]:
    with SplitLineReader.for_split(split, max_line_length=max_line_length) as reader:
        for line in reader:
            yield key_from_summary_line(line), (line,)
