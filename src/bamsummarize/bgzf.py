# src/bamsummarize/bgzf.py
"""
BGZF container helpers that pysam does not expose: block walking and the
end-of-stream marker. Reading and writing the payload itself goes through
``pysam.BGZFile``.
"""
from __future__ import annotations
import struct
from pathlib import Path
from typing import Iterator

# Empty BGZF block that terminates every well-formed BGZF stream.
BGZF_EOF = (
    b"\x1f\x8b\x08\x04\x00\x00\x00\x00\x00\xff\x06\x00\x42\x43"
    b"\x02\x00\x1b\x00\x03\x00\x00\x00\x00\x00\x00\x00\x00\x00"
)

_GZIP_MAGIC = b"\x1f\x8b\x08\x04"
_FIXED_HEADER = 12  # magic(4) mtime(4) xfl(1) os(1) xlen(2)


class BgzfFormatError(IOError):
    pass


def _block_size(fh, addr: int) -> int:
    """Total compressed size of the block starting at ``addr`` (BSIZE + 1)."""
    head = fh.read(_FIXED_HEADER)
    if len(head) < _FIXED_HEADER:
        raise BgzfFormatError(f"truncated BGZF header at byte {addr}")
    if head[:4] != _GZIP_MAGIC:
        raise BgzfFormatError(f"not a BGZF block at byte {addr}")
    (xlen,) = struct.unpack("<H", head[10:12])
    extra = fh.read(xlen)
    i = 0
    while i + 4 <= len(extra):
        si1, si2, slen = extra[i], extra[i + 1], struct.unpack("<H", extra[i + 2:i + 4])[0]
        if si1 == 66 and si2 == 67 and slen == 2:  # 'B','C'
            (bsize,) = struct.unpack("<H", extra[i + 4:i + 6])
            return bsize + 1
        i += 4 + slen
    raise BgzfFormatError(f"gzip member without BC subfield at byte {addr}")


def iter_block_starts(path: str | Path) -> Iterator[int]:
    """Yield the compressed byte address of every BGZF block in ``path``."""
    size = Path(path).stat().st_size
    with open(path, "rb") as fh:
        addr = 0
        while addr < size:
            yield addr
            fh.seek(addr)
            addr += _block_size(fh, addr)


def has_eof_marker(path: str | Path) -> bool:
    p = Path(path)
    if p.stat().st_size < len(BGZF_EOF):
        return False
    with open(p, "rb") as fh:
        fh.seek(-len(BGZF_EOF), 2)
        return fh.read() == BGZF_EOF
