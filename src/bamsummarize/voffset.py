# src/bamsummarize/voffset.py
"""
BGZF virtual offsets.

A virtual offset packs the compressed byte address of a BGZF block (high
48 bits) with a byte offset into that block's decompressed data (low 16
bits). This is the same layout htslib/pysam return from ``tell()``, so
split boundaries built here compare directly against stream positions.
"""
from __future__ import annotations
from dataclasses import dataclass

WITHIN_BLOCK_BITS = 16
WITHIN_BLOCK_MASK = (1 << WITHIN_BLOCK_BITS) - 1
MAX_BLOCK_START = (1 << 48) - 1


def make_virtual_offset(block_start: int, within_block: int) -> int:
    if not 0 <= within_block <= WITHIN_BLOCK_MASK:
        raise ValueError(f"within-block offset out of range: {within_block}")
    if not 0 <= block_start <= MAX_BLOCK_START:
        raise ValueError(f"block start out of range: {block_start}")
    return (block_start << WITHIN_BLOCK_BITS) | within_block


def block_start(voffset: int) -> int:
    return voffset >> WITHIN_BLOCK_BITS


def within_block_offset(voffset: int) -> int:
    return voffset & WITHIN_BLOCK_MASK


@dataclass(frozen=True, order=True)
class VirtualOffset:
    """Named view over a packed virtual offset. Orders like the packed int."""

    block_start: int
    within_block: int = 0

    def __post_init__(self):
        # validates both halves
        make_virtual_offset(self.block_start, self.within_block)

    def pack(self) -> int:
        return make_virtual_offset(self.block_start, self.within_block)

    def __int__(self) -> int:
        return self.pack()

    @classmethod
    def from_int(cls, voffset: int) -> "VirtualOffset":
        return cls(block_start(voffset), within_block_offset(voffset))

    @classmethod
    def from_split_boundary(cls, byte: int) -> "VirtualOffset":
        """A scheduler split boundary is a compressed byte address at intra-block offset 0."""
        return cls(byte, 0)

    def __str__(self) -> str:
        return f"{self.block_start}:{self.within_block}"
