import pysam
import pytest

from bamsummarize.bgzf import BGZF_EOF, has_eof_marker
from bamsummarize.errors import MergeError
from bamsummarize.merge import merge_levels, merge_parts, part_paths

from conftest import read_bgzf_lines


def _part(path, lines):
    with pysam.BGZFile(str(path), "wb") as out:
        for line in lines:
            out.write((line + "\n").encode())


def test_parts_merged_in_partition_order_with_single_eof(tmp_path):
    _part(tmp_path / "x.bam-summary2-000001", ["0\t3\t4\t2"])
    _part(tmp_path / "x.bam-summary2-000000", ["0\t1\t2\t2"])
    _part(tmp_path / "x.bam-summary2-000002", [])
    _part(tmp_path / "x.bam-summary20-000000", ["9\t9\t9\t9"])
    out = tmp_path / "out" / "x.bam-summary2"
    n = merge_parts(tmp_path, "x.bam-summary2", out)
    assert n == 3
    assert read_bgzf_lines(out) == ["0\t1\t2\t2", "0\t3\t4\t2"]
    data = out.read_bytes()
    assert data.endswith(BGZF_EOF)
    assert data.count(BGZF_EOF) == 1
    assert part_paths(tmp_path, "x.bam-summary2") == []
    assert part_paths(tmp_path, "x.bam-summary20") != []


def test_no_parts_gives_empty_terminated_file(tmp_path):
    out = tmp_path / "empty"
    assert merge_parts(tmp_path, "nothing", out) == 0
    assert out.read_bytes() == BGZF_EOF
    assert has_eof_marker(out)
    assert read_bgzf_lines(out) == []


def test_merge_failure_names_target(tmp_path):
    _part(tmp_path / "y-000000", ["1\t1\t1\t1"])
    target = tmp_path / "is_a_dir"
    target.mkdir()
    with pytest.raises(MergeError) as ei:
        merge_parts(tmp_path, "y", target, phase="merge-sorted", level=4)
    assert ei.value.path == target
    assert ei.value.exit_code == 7
    assert "level 4" in str(ei.value)


def test_merge_levels(tmp_path):
    for lvl in (1, 5):
        _part(tmp_path / f"b-summary{lvl}-000000", [f"0\t{lvl}\t{lvl}\t{lvl}"])
    out = merge_levels(tmp_path, {1: "b-summary1", 5: "b-summary5"}, tmp_path / "final")
    assert sorted(out) == [1, 5]
    assert read_bgzf_lines(out[5]) == ["0\t5\t5\t5"]
