import json
from collections import Counter

import pysam
import pytest

from bamsummarize.config import SummarizeConfig
from bamsummarize.errors import JobExecutionError
from bamsummarize.merge import part_paths
from bamsummarize.pipeline import do_sorting, run_pipeline

from conftest import read_bgzf_lines, write_bam

LEVELS = [1, 4, 10]


def _cfg(tmp_path, bam, **kw):
    base = dict(workdir=str(tmp_path / "work"), levels=list(LEVELS), input_path=str(bam),
                reducers=3, threads=2, split_bytes=256, sample_size=64, verbose=False)
    base.update(kw)
    return SummarizeConfig(**base)


def _rows(path):
    return [tuple(int(x) for x in line.split("\t")) for line in read_bgzf_lines(path)]


def _expected_level1(alns):
    return Counter((rid, start + 1, start + length, 1) for rid, start, length in alns)


def test_summarize_merge_without_sort_is_ordered_by_centre_of_mass(tmp_path, small_bam):
    bam, alns = small_bam
    out = tmp_path / "out"
    res = run_pipeline(_cfg(tmp_path, bam, output_dir=str(out)))

    rows = _rows(out / "small.bam-summary1")
    assert Counter(rows) == _expected_level1(alns)
    keys = [(rid, (b + e) // 2) for rid, b, e, _ in rows]
    assert keys == sorted(keys)

    for lvl in LEVELS:
        lvl_rows = _rows(out / f"small.bam-summary{lvl}")
        assert sum(c for *_, c in lvl_rows) == len(alns)
        assert all(1 <= c <= lvl for *_, c in lvl_rows)
        assert part_paths(tmp_path / "work", f"small.bam-summary{lvl}") == []

    assert res["summary"]["counters"]["pairs_mapped"] == len(alns)
    assert sorted(res["merged"]) == LEVELS
    assert res["sorted"] == []


def test_sorted_output_is_ordered_by_leftmost_position(tmp_path, small_bam):
    bam, alns = small_bam
    out = tmp_path / "out"
    res = run_pipeline(_cfg(tmp_path, bam, output_dir=str(out), sort=True))

    assert res["sorted"] == list(reversed(LEVELS))
    for lvl in LEVELS:
        rows = _rows(out / f"small.bam-summary{lvl}")
        starts = [(rid, b) for rid, b, _, _ in rows]
        assert starts == sorted(starts)
        assert sum(c for *_, c in rows) == len(alns)
        assert not (tmp_path / "work" / "sort.tmp" / f"small.bam-summary{lvl}").exists()
    assert Counter(_rows(out / "small.bam-summary1")) == _expected_level1(alns)

    jobs = tmp_path / "work" / "_jobs"
    assert (jobs / "summarize-small.bam.ok.json").exists()
    rec = json.loads((jobs / "sort-small.bam-summary4.ok.json").read_text())
    assert rec["status"] == "ok"
    assert (tmp_path / "work" / "_partitioningsmall.bam-summary4").exists()


def test_parts_stay_in_workdir_without_output_dir(tmp_path, small_bam):
    bam, alns = small_bam
    cfg = _cfg(tmp_path, bam)
    res = run_pipeline(cfg)
    assert res["merged"] == {}
    parts = part_paths(cfg.dir_work(), "small.bam-summary1")
    assert len(parts) == cfg.reducers
    rows = [r for p in parts for r in _rows(p)]
    assert Counter(rows) == _expected_level1(alns)


def test_indexed_input_is_split_per_contig(tmp_path, indexed_bam):
    bam, alns = indexed_bam
    out = tmp_path / "out"
    run_pipeline(_cfg(tmp_path, bam, output_dir=str(out), threads=3))
    assert Counter(_rows(out / "indexed.bam-summary1")) == _expected_level1(alns)


def test_single_reducer_groups_match_a_plain_sort(tmp_path, small_bam):
    bam, alns = small_bam
    out = tmp_path / "out"
    run_pipeline(_cfg(tmp_path, bam, output_dir=str(out), reducers=1, levels=[4]))

    # one unindexed split: map order is BAM order, kept stable for equal keys
    bam_order = [(rid, (s + 1 + s + n) // 2, (s + 1, s + n)) for rid, s, n in sorted(alns)]
    ranges = [((rid, com), rng) for rid, com, rng in sorted(bam_order, key=lambda t: (t[0], t[1]))]
    expected = []
    group = []
    last_rid = None
    for (rid, _), rng in ranges:
        if last_rid is not None and rid != last_rid and group:
            expected.append((last_rid, group))
            group = []
        last_rid = rid
        group.append(rng)
        if len(group) == 4:
            expected.append((rid, group))
            group = []
    if group:
        expected.append((last_rid, group))

    rows = _rows(out / "small.bam-summary4")
    assert len(rows) == len(expected)
    for (rid, b, e, c), (erid, grp) in zip(rows, expected):
        assert (rid, c) == (erid, len(grp))
        assert b == sum(x for x, _ in grp) // c
        assert e == sum(y for _, y in grp) // c


def _bgzf(path, lines):
    with pysam.BGZFile(str(path), "wb") as out:
        for line in lines:
            out.write((line + "\n").encode())


def test_failed_sort_level_stops_waiting_but_keeps_finished_levels(tmp_path, small_bam):
    bam, _ = small_bam
    cfg = _cfg(tmp_path, bam, levels=[1, 2], sort=True, sample_size=2, split_bytes=1 << 20)
    cfg.ensure_dirs()
    tmp = cfg.sort_tmp_dir()
    tmp.mkdir(parents=True)
    good, bad = tmp / "small.bam-summary2", tmp / "small.bam-summary1"
    _bgzf(good, ["0\t9\t12\t2", "0\t3\t5\t2"])
    _bgzf(bad, ["0\t1\t2\t1", "0\t4\t6\t1", "0\tnot-a-number\t7\t1"])

    with pytest.raises(JobExecutionError) as ei:
        do_sorting(cfg, {1: bad, 2: good})
    assert ei.value.phase == "sort"
    assert ei.value.level == 1
    assert ei.value.exit_code == 6

    assert not good.exists()
    assert bad.exists()
    assert [r for p in part_paths(cfg.dir_work(), good.name) for r in read_bgzf_lines(p)] == \
        ["0\t3\t5\t2", "0\t9\t12\t2"]


@pytest.mark.parametrize("index", [True, False])
def test_single_contig_load_is_spread_across_reducers(tmp_path, index):
    n = 8000
    alns = [(0, i * 20, 50) for i in range(n)]
    bam = write_bam(tmp_path / "one.bam", alns, index=index, references=(("chr1", 200_000),))
    res = run_pipeline(_cfg(tmp_path, bam, levels=[1], reducers=4, sample_size=1000))

    sizes = res["summary"]["counters"]["pairs_per_partition"]
    assert sum(sizes.values()) == n
    assert len(sizes) == 4
    assert max(sizes.values()) < 0.4 * n
