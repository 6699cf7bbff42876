# src/bamsummarize/aggregate.py
"""
Streaming multi-level aggregation.

Consumes (OrderKey, PositionRange) pairs in ascending key order and, for
every configured level, emits the truncated mean begin/end of each run of
``level`` consecutive ranges. A group never spans two reference
sequences: a reference change flushes every non-empty group, and so does
the end of input.
"""
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

import pysam

from .keys import PositionRange, reference_id_of

# Any value is safe here: every group is empty until the first range arrives.
INITIAL_REFERENCE_ID = 0


@dataclass(frozen=True)
class SummaryRecord:
    reference_id: int
    range: PositionRange
    count: int

    def to_line(self) -> str:
        # Tabix-compatible column order; not necessarily sorted by begin.
        return f"{self.reference_id}\t{self.range.begin}\t{self.range.end}\t{self.count}"


@dataclass
class AggregationGroup:
    level: int
    out_name: str
    count: int = 0
    sum_begin: int = 0
    sum_end: int = 0

    def add(self, rng: PositionRange) -> bool:
        """Accumulate ``rng``; True once the group is full."""
        self.sum_begin += rng.begin
        self.sum_end += rng.end
        self.count += 1
        return self.count == self.level

    def reset(self) -> None:
        self.count = 0
        self.sum_begin = self.sum_end = 0


def summary_output_name(level: int) -> str:
    return f"summary{level}"


Emit = Callable[[str, SummaryRecord], None]


class LevelAggregator:
    def __init__(self, levels: Sequence[int], emit: Emit):
        self.groups: List[AggregationGroup] = [
            AggregationGroup(int(lvl), summary_output_name(int(lvl))) for lvl in levels
        ]
        self.emit = emit
        self.current_reference_id = INITIAL_REFERENCE_ID

    def add(self, key: int, rng: PositionRange) -> None:
        reference_id = reference_id_of(key)
        if reference_id != self.current_reference_id:
            self._flush_all()
            self.current_reference_id = reference_id
        for group in self.groups:
            if group.add(rng):
                self._flush(group)

    def consume(self, pairs: Iterable[Tuple[int, PositionRange]]) -> None:
        for key, rng in pairs:
            self.add(key, rng)

    def finish(self) -> None:
        self._flush_all()

    def _flush_all(self) -> None:
        for group in self.groups:
            if group.count > 0:
                self._flush(group)

    def _flush(self, group: AggregationGroup) -> None:
        rec = SummaryRecord(
            reference_id=self.current_reference_id,
            range=PositionRange(group.sum_begin // group.count, group.sum_end // group.count),
            count=group.count,
        )
        self.emit(group.out_name, rec)
        group.reset()


class SinkRegistry:
    """
    Named BGZF text sinks, one file per name, opened together on enter and
    closed together on exit.
    """

    def __init__(self, paths: Dict[str, Path]):
        self.paths = {name: Path(p) for name, p in paths.items()}
        self._sinks: Dict[str, "pysam.BGZFile"] = {}
        self.lines: Dict[str, int] = {name: 0 for name in self.paths}

    def __enter__(self) -> "SinkRegistry":
        try:
            for name, p in self.paths.items():
                p.parent.mkdir(parents=True, exist_ok=True)
                self._sinks[name] = pysam.BGZFile(str(p), "wb")
        except BaseException:
            self.close()
            raise
        return self

    def write_line(self, name: str, line: str) -> None:
        self._sinks[name].write((line + "\n").encode())
        self.lines[name] += 1

    def write(self, name: str, record: SummaryRecord) -> None:
        self.write_line(name, record.to_line())

    def close(self) -> None:
        sinks, self._sinks = self._sinks, {}
        for s in sinks.values():
            s.close()

    def __exit__(self, *exc) -> None:
        self.close()
