# src/bamsummarize/config.py
from __future__ import annotations
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional
import json
import os

from .aggregate import summary_output_name
from .errors import ConfigurationError


def default_reducers() -> int:
    return max(1, (os.cpu_count() or 1) * 9 // 10)


def parse_levels(s: str) -> List[int]:
    """'2,3,10' -> [2, 3, 10]; every level must be a distinct positive integer."""
    levels: List[int] = []
    for raw in (s or "").split(","):
        tok = raw.strip()
        try:
            lvl = int(tok)
        except ValueError:
            raise ConfigurationError(f"summary level '{tok}' is not an integer!")
        if lvl <= 0:
            raise ConfigurationError(f"summary level '{lvl}' is not positive!")
        if lvl in levels:
            raise ConfigurationError(f"summary level '{lvl}' given twice!")
        levels.append(lvl)
    return levels


@dataclass
class SummarizeConfig:
    workdir: str
    levels: List[int]
    input_path: str
    sort: bool = False
    output_dir: Optional[str] = None
    reducers: int = field(default_factory=default_reducers)
    threads: int = field(default_factory=lambda: os.cpu_count() or 1)
    sample_size: int = 1 << 16
    sample_splits: int = 10
    split_bytes: int = 64 << 20
    max_line_length: Optional[int] = None
    seed: int = 0
    verbose: bool = True

    @classmethod
    def load(cls, path: str | Path, **overrides) -> "SummarizeConfig":
        try:
            d = json.loads(Path(path).read_text())
        except ValueError as e:
            raise ConfigurationError(f"cannot parse config {path}") from e
        d.update({k: v for k, v in overrides.items() if v is not None})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ConfigurationError(f"unknown config keys: {', '.join(unknown)}")
        try:
            return cls(**d)
        except TypeError as e:
            raise ConfigurationError(f"bad config {path}: {e}") from e

    def validate(self) -> "SummarizeConfig":
        if not self.levels:
            raise ConfigurationError("LEVELS not given.")
        for lvl in self.levels:
            if not isinstance(lvl, int) or lvl <= 0:
                raise ConfigurationError(f"summary level '{lvl}' is not positive!")
        if len(set(self.levels)) != len(self.levels):
            raise ConfigurationError("summary levels must be distinct")
        if not Path(self.input_path).exists():
            raise ConfigurationError(f"input not found: {self.input_path}")
        for k in ("reducers", "threads", "sample_size", "sample_splits", "split_bytes"):
            if int(getattr(self, k)) < 1:
                raise ConfigurationError(f"{k} must be >= 1")
        if self.max_line_length is not None and self.max_line_length < 1:
            raise ConfigurationError("max_line_length must be >= 1")
        return self

    # convenient names and paths
    def input_name(self) -> str: return Path(self.input_path).name
    def dir_work(self) -> Path: return Path(self.workdir)
    def sort_tmp_dir(self) -> Path: return self.dir_work() / "sort.tmp"
    def dir_output(self) -> Optional[Path]:
        return Path(self.output_dir).expanduser() if self.output_dir else None

    def summary_name(self, level: int) -> str:
        return f"{self.input_name()}-{summary_output_name(level)}"

    def summary_names(self) -> dict:
        return {lvl: self.summary_name(lvl) for lvl in self.levels}

    def partition_file(self, name: str) -> Path:
        return self.dir_work() / f"_partitioning{name}"

    def ensure_dirs(self) -> None:
        self.dir_work().mkdir(parents=True, exist_ok=True)


def resolve_output_dir(output_dir: Optional[str], output_local_dir: Optional[str]):
    """Output directory from the two mutually exclusive output flags; both are local paths here."""
    if output_dir is not None and output_local_dir is not None:
        raise ConfigurationError("cannot accept both --output-dir and --output-local-dir!")
    return output_dir if output_dir is not None else output_local_dir
