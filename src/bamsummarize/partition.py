# src/bamsummarize/partition.py
"""
Total-order partitioning from a key sample.

Boundaries b[0] < b[1] < ... route key k to partition ``bisect_right(b, k)``,
so partition i receives exactly the keys in [b[i-1], b[i]). Concatenating
per-partition outputs in partition order therefore yields a global order
without any reducer seeing another's data.
"""
from __future__ import annotations
import random
from bisect import bisect_right
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Sequence, Tuple

from .errors import ExtractionError, SamplingError


@dataclass(frozen=True)
class PartitionBoundaries:
    keys: Tuple[int, ...]
    n_partitions: int

    def __post_init__(self):
        if self.n_partitions < 1:
            raise ValueError("n_partitions must be >= 1")
        if len(self.keys) > self.n_partitions - 1:
            raise ValueError(f"{len(self.keys)} boundaries for {self.n_partitions} partitions")
        if any(a >= b for a, b in zip(self.keys, self.keys[1:])):
            raise ValueError("partition boundaries must be strictly ascending")

    def route(self, key: int) -> int:
        return bisect_right(self.keys, key)

    def write(self, path: str | Path) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w") as f:
            f.write(f"# partitions={self.n_partitions}\n")
            for k in self.keys:
                f.write(f"{k}\n")

    @classmethod
    def load(cls, path: str | Path) -> "PartitionBoundaries":
        n = None
        keys: List[int] = []
        with open(path, "r") as f:
            for raw in f:
                line = raw.strip()
                if not line:
                    continue
                if line.startswith("# partitions="):
                    n = int(line.split("=", 1)[1])
                    continue
                keys.append(int(line))
        if n is None:
            n = len(keys) + 1
        return cls(tuple(keys), n)


def boundaries_from_sample(sample: Iterable[int], n_partitions: int) -> PartitionBoundaries:
    """
    Evenly spaced cut points over the sorted sample. Runs of equal keys are
    stepped over so the cuts are strictly ascending; a sample too small or
    too uniform simply gives fewer cuts (some partitions stay empty).
    """
    keys = sorted(sample)
    cuts: List[int] = []
    if n_partitions > 1 and keys:
        step = len(keys) / float(n_partitions)
        for i in range(1, n_partitions):
            k = int(round(step * i))
            while k < len(keys) and cuts and keys[k] <= cuts[-1]:
                k += 1
            if k >= len(keys):
                break
            cuts.append(keys[k])
    return PartitionBoundaries(tuple(cuts), n_partitions)


def sample_keys(
    splits: Sequence,
    pairs_fn: Callable[[object], Iterable[Tuple[int, tuple]]],
    max_samples: int = 1 << 16,
    max_splits: int = 10,
    seed: int = 0,
    phase: str = "summarize",
) -> List[int]:
    """
    Uniform sample of at most ``max_samples`` keys drawn from up to
    ``max_splits`` splits chosen pseudo-randomly (read in file order once
    chosen). Every key of a chosen split is visited and kept by reservoir
    sampling, so a split that is a whole contig or a whole file contributes
    keys from its full extent rather than from its first records.
    """
    if not splits or max_samples < 1:
        return []
    rng = random.Random(seed)
    n = min(max_splits, len(splits))
    chosen = sorted(rng.sample(range(len(splits)), n))
    reservoir: List[int] = []
    seen = 0
    for i in chosen:
        split = splits[i]
        try:
            pairs = iter(pairs_fn(split))
            try:
                for k, _ in pairs:
                    if seen < max_samples:
                        reservoir.append(k)
                    else:
                        j = rng.randrange(seen + 1)
                        if j < max_samples:
                            reservoir[j] = k
                    seen += 1
            finally:
                if hasattr(pairs, "close"):
                    pairs.close()
        except (OSError, ValueError, ExtractionError) as e:
            label = getattr(split, "label", split)
            raise SamplingError(f"sampling {label} failed", phase=phase) from e
    return reservoir
