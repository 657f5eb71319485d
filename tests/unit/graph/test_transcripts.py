import gzip
import os

from xenoseq.graph import transcripts
from xenoseq.pipeline import datadict as dd


def _write_inputs(tmpdir):
    cov = str(tmpdir.join("S1.regions.bed.gz"))
    with gzip.open(cov, "wt") as out_handle:
        for i in range(0, 600, 50):
            out_handle.write("graft\t%s\t%s\t%s\n" % (i, i + 50, i % 7))
    ref = str(tmpdir.join("S1_reference.tsv"))
    with open(ref, "w") as out_handle:
        out_handle.write("chrom\tstart\tend\tstrand\tnum_exons\tgene_name\n")
        out_handle.write("graft\t10\t300\t+\t2\tGENE1\n")
        out_handle.write("graft\t100\t500\t-\t3\tGENE2\n")
    asm = str(tmpdir.join("S1_assembled.tsv"))
    with open(asm, "w") as out_handle:
        out_handle.write("chrom\tstart\tend\tstrand\tnum_exons\treference_id\tref_gene_id\tref_gene_name\tFPKM\n")
        out_handle.write("graft\t12\t290\t+\t2\tT1\tG1\tGENE1\t12.5\n")
    return cov, ref, asm


def test_stack_rows():
    import pandas as pd
    df = pd.DataFrame({"start": [1, 5, 20, 8], "end": [10, 15, 30, 9]})
    assert transcripts._stack_rows(df) == [0, 1, 0, 2]


def test_plot_comparison(tmpdir, run_config):
    cov, ref, asm = _write_inputs(tmpdir)
    out_file = str(tmpdir.join("S1_transcripts.pdf"))
    transcripts.plot_comparison(cov, ref, asm, ["graft", "missing_contig"], out_file, run_config)
    with open(out_file, "rb") as in_handle:
        assert in_handle.read(4) == b"%PDF"


def test_visualize(run_config, mocker, tmpdir):
    cov, ref, asm = _write_inputs(tmpdir)
    mocker.patch("xenoseq.graph.transcripts.gtf.tabulate_assembled", return_value=asm)
    mocker.patch("xenoseq.graph.transcripts.gtf.tabulate_reference", return_value=ref)
    cov_data = dd.set_coverage_bed(dd.new_sample("S1", "S1.bam"), cov)
    quant_data = dd.set_assembled_gtf(dd.new_sample("S1", "S1.bam"), "S1_transcripts.gtf")
    data = transcripts.visualize(cov_data, quant_data, run_config)
    expected = os.path.join(run_config.outdir, "viz", "S1", "S1_transcripts.pdf")
    assert dd.get_transcript_plot(data) == expected
    assert os.path.exists(expected)
    assert dd.get_coverage_bed(data) == cov
    assert dd.get_assembled_gtf(data) == "S1_transcripts.gtf"
    transcripts.gtf.tabulate_reference.assert_called_once_with(
        run_config.gtf, run_config.xeno, os.path.join(run_config.outdir, "viz", "S1", "S1_reference.tsv"),
        run_config)
