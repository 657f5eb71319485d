"""Pytest fixtures shared by unit tests"""
import os

import pytest

from xenoseq.pipeline import config_utils


def _touch(fname, content="x\n"):
    dname = os.path.dirname(fname)
    if dname and not os.path.exists(dname):
        os.makedirs(dname)
    with open(fname, "w") as out_handle:
        out_handle.write(content)
    return fname


@pytest.fixture
def touch():
    return _touch


@pytest.fixture
def reference_files(tmpdir):
    ref_dir = str(tmpdir.mkdir("ref"))
    fasta = _touch(os.path.join(ref_dir, "graft.fa"), ">graft\nACGTACGT\n")
    gtf = _touch(os.path.join(ref_dir, "graft.gtf"),
                 'graft\tsrc\texon\t1\t8\t.\t+\t.\tgene_id "G1"; transcript_id "T1";\n')
    return fasta, gtf


@pytest.fixture
def make_config(tmpdir, reference_files):
    """Build run configurations rooted in the test temporary directory."""
    def _make(**overrides):
        params = {"fasta": reference_files[0],
                  "gtf": reference_files[1],
                  "xeno": "graft",
                  "outdir": os.path.join(str(tmpdir), "results"),
                  "max_cpus": 2}
        params.update(overrides)
        return config_utils.load_run_config(overrides=params, work_dir=str(tmpdir))
    return _make


@pytest.fixture
def run_config(make_config):
    return make_config()
