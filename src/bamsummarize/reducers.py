# src/bamsummarize/reducers.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Tuple

from .aggregate import LevelAggregator, SinkRegistry, summary_output_name
from .keys import PositionRange


@dataclass
class ReduceContext:
    partition: int
    workdir: Path
    output_name: str
    params: Dict[str, Any] = field(default_factory=dict)

    def part_path(self, name: str) -> Path:
        return self.workdir / f"{name}-{self.partition:06d}"


def summarize_partition(ctx: ReduceContext, pairs: Iterable[Tuple[int, tuple]]) -> Dict[str, int]:
    """
    Reducer for the summarize job. ``ctx.output_name`` is the input base
    name; one part file per level: ``<base>-summary<level>-<partition>``.
    """
    levels = ctx.params["levels"]
    paths = {summary_output_name(lvl): ctx.part_path(f"{ctx.output_name}-{summary_output_name(lvl)}")
             for lvl in levels}
    with SinkRegistry(paths) as sinks:
        agg = LevelAggregator(levels, emit=sinks.write)
        agg.consume((key, PositionRange(int(b), int(e))) for key, (b, e) in pairs)
        agg.finish()
        return dict(sinks.lines)


def passthrough_partition(ctx: ReduceContext, pairs: Iterable[Tuple[int, tuple]]) -> Dict[str, int]:
    """Identity reducer: lines come out in shuffle (key) order, which is the sort."""
    name = ctx.output_name
    with SinkRegistry({name: ctx.part_path(name)}) as sinks:
        for _, (line,) in pairs:
            sinks.write_line(name, line)
        return dict(sinks.lines)
