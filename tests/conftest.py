import random
from pathlib import Path

import pysam
import pytest

REFERENCES = (("chr1", 200_000), ("chr2", 150_000), ("chr3", 100_000))


def write_bam(path: Path, alignments, n_unmapped: int = 0, index: bool = False,
              references=REFERENCES) -> Path:
    """alignments: iterable of (reference_id, 0-based start, length)."""
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": name, "LN": length} for name, length in references],
    }
    with pysam.AlignmentFile(str(path), "wb", header=header) as out:
        for i, (rid, start, length) in enumerate(sorted(alignments)):
            a = pysam.AlignedSegment()
            a.query_name = f"read{i}"
            a.query_sequence = "A" * length
            a.flag = 0
            a.reference_id = rid
            a.reference_start = start
            a.mapping_quality = 60
            a.cigar = [(0, length)]
            a.query_qualities = pysam.qualitystring_to_array("I" * length)
            out.write(a)
        for i in range(n_unmapped):
            a = pysam.AlignedSegment()
            a.query_name = f"unmapped{i}"
            a.query_sequence = "C" * 30
            a.flag = 4
            a.reference_id = -1
            a.reference_start = -1
            a.query_qualities = pysam.qualitystring_to_array("I" * 30)
            out.write(a)
    if index:
        pysam.index(str(path))
    return path


def random_alignments(n: int, seed: int = 7, n_refs: int = 3):
    rng = random.Random(seed)
    out = []
    for _ in range(n):
        rid = rng.randrange(n_refs)
        out.append((rid, rng.randrange(0, 90_000), rng.randrange(20, 150)))
    return out


def read_bgzf_lines(path: Path):
    from bamsummarize.linereader import SplitLineReader
    with SplitLineReader(path, 0, Path(path).stat().st_size) as r:
        return list(r)


@pytest.fixture
def small_bam(tmp_path):
    alns = random_alignments(400)
    return write_bam(tmp_path / "small.bam", alns, n_unmapped=5), alns


@pytest.fixture
def indexed_bam(tmp_path):
    alns = random_alignments(400)
    return write_bam(tmp_path / "indexed.bam", alns, n_unmapped=5, index=True), alns
