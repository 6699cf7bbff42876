# src/bamsummarize/linereader.py
"""
Split-aware line reader for BGZF text files.

A scheduler divides a file on compressed-byte granularity, oblivious to
where lines begin. Each reader therefore:

  * treats its [start, end) byte range as virtual offsets ``start << 16``
    and ``end << 16``;
  * when ``start != 0``, discards the first (possibly partial) line, which
    belongs to the previous split;
  * keeps reading while the next line starts at or before ``end``, so the
    line that straddles ``end`` is read here and skipped by the next split.

Together the splits of a file produce every line exactly once.
"""
from __future__ import annotations
import sys
from pathlib import Path
from typing import Iterator, Optional

import pysam

from .splits import TextSplit
from .voffset import VirtualOffset


class SplitLineReader:
    def __init__(self, path: str | Path, start: int, end: int,
                 max_line_length: Optional[int] = None):
        self.path = str(path)
        self.max_line_length = max_line_length or sys.maxsize
        self.start = VirtualOffset.from_split_boundary(start).pack()
        self.end = VirtualOffset.from_split_boundary(end).pack()
        self._bin = pysam.BGZFile(self.path, "rb")
        self._eof = False

        if self.start != 0:
            try:
                self._bin.seek(self.start)
                self._read_raw()  # partial line owned by the previous split
                self.start = self._bin.tell()
            except Exception:
                self._bin.close()
                raise
        self.pos = self.start

    @classmethod
    def for_split(cls, split: TextSplit, max_line_length: Optional[int] = None) -> "SplitLineReader":
        return cls(split.path, split.start, split.end, max_line_length=max_line_length)

    def _read_raw(self) -> Optional[bytes]:
        # pysam returns b"" both at EOF and (in some releases) for an empty
        # line; only the former leaves the position unchanged.
        before = self._bin.tell()
        raw = self._bin.readline()
        if not raw and self._bin.tell() == before:
            self._eof = True
            return None
        return raw.rstrip(b"\n").rstrip(b"\r")

    def readline(self) -> Optional[str]:
        """Next line of this split without its delimiter, or None when done."""
        if self._eof or self.pos > self.end:
            return None
        raw = self._read_raw()
        if raw is None:
            return None
        self.pos = self._bin.tell()
        if len(raw) > self.max_line_length:
            raw = raw[:self.max_line_length]
        return raw.decode()

    def __iter__(self) -> Iterator[str]:
        while True:
            line = self.readline()
            if line is None:
                return
            yield line

    def progress(self) -> float:
        if self.start == self.end:
            return 0.0
        return min(1.0, (self.pos - self.start) / float(self.end - self.start))

    def close(self) -> None:
        self._bin.close()

    def __enter__(self) -> "SplitLineReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
