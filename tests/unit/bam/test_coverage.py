import gzip
import os

import pytest

from xenoseq.bam import coverage
from xenoseq.pipeline import datadict as dd


def _fake_mosdepth(cmd, *args, **kwargs):
    prefix = cmd[-2]
    with gzip.open(prefix + ".regions.bed.gz", "wt") as out_handle:
        out_handle.write("graft\t0\t1\t3\ngraft\t1\t2\t5\nchr1\t0\t1\t9\n")


def test_run_mosdepth(run_config, mocker, touch):
    run = mocker.patch("xenoseq.bam.coverage.do.run", side_effect=_fake_mosdepth)
    sorted_bam = touch(os.path.join(run_config.outdir, "HISAT2", "aligned_sorted", "S1.sorted.bam"))
    data = dd.set_sorted_bam(dd.new_sample("S1", "S1.bam"), sorted_bam)
    data = coverage.run_mosdepth(data, run_config)
    expected = os.path.join(run_config.outdir, "viz", "S1", "S1.regions.bed.gz")
    assert dd.get_coverage_bed(data) == expected
    cmd = [str(x) for x in run.call_args[0][0]]
    assert cmd[:6] == ["mosdepth", "-t", "2", "-n", "--by", "1"]
    assert cmd[-1] == sorted_bam
    df = coverage.read_regions(expected, "graft")
    assert df["depth"].tolist() == [3, 5]
    assert len(coverage.read_regions(expected)) == 3
