"""Plot read coverage, reference and assembled transcripts along xeno contigs.
"""
import os

import matplotlib
matplotlib.use("Agg", force=True)
from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.figure import Figure
import numpy as np

from xenoseq import utils
from xenoseq.bam import coverage
from xenoseq.distributed.transaction import file_transaction
from xenoseq.log import logger
from xenoseq.pipeline import datadict as dd
from xenoseq.rnaseq import gtf

FIGSIZE = (11.0, 8.5)

def _stack_rows(df):
    """Assign non-overlapping rows to intervals, first fit by start position.
    """
    ends = []
    rows = []
    for start, end in zip(df["start"], df["end"]):
        for i, last_end in enumerate(ends):
            if start > last_end:
                ends[i] = end
                rows.append(i)
                break
        else:
            ends.append(end)
            rows.append(len(ends) - 1)
    return rows

def _plot_transcripts(ax, df, label_col, title, color_col=None):
    ax.set_title(title, loc="left", fontsize=10)
    ax.set_yticks([])
    if len(df) == 0:
        ax.text(0.5, 0.5, "No transcripts", ha="center", va="center", transform=ax.transAxes)
        return
    df = df.sort_values(["start", "end"])
    rows = _stack_rows(df)
    if color_col and color_col in df.columns:
        vals = np.log1p(df[color_col].fillna(0).astype(float).values)
        colors = matplotlib.colormaps["viridis"](vals / vals.max() if vals.max() > 0 else vals)
    else:
        colors = ["#4d4d4d"] * len(df)
    for (_, feat), row, color in zip(df.iterrows(), rows, colors):
        ax.hlines(row, feat["start"], feat["end"], colors=[color], linewidth=6)
        label = feat.get(label_col)
        if isinstance(label, str) and label != ".":
            ax.text(feat["start"], row + 0.35, label, fontsize=6)
    ax.set_ylim(-0.5, max(rows) + 1)
    ax.invert_yaxis()

def _plot_coverage(ax, df):
    ax.set_title("Coverage", loc="left", fontsize=10)
    ax.set_ylabel("Depth")
    if len(df) == 0:
        ax.text(0.5, 0.5, "No coverage", ha="center", va="center", transform=ax.transAxes)
        return
    ax.fill_between(df["start"].values, df["depth"].values, step="post", color="#2b8cbe")

def plot_comparison(coverage_bed, reference_table, assembled_table, contigs, out_file, config=None):
    """Write a PDF with one page per contig: coverage, reference and assembled tracks.
    """
    if utils.file_exists(out_file):
        return out_file
    reference = gtf.read_table(reference_table)
    assembled = gtf.read_table(assembled_table)
    with file_transaction(config, out_file) as tx_out_file:
        with PdfPages(tx_out_file) as pdf:
            for contig in contigs:
                cov = coverage.read_regions(coverage_bed, contig)
                cur_ref = reference[reference["chrom"] == contig]
                cur_asm = assembled[assembled["chrom"] == contig]
                fig = Figure(figsize=FIGSIZE)
                axes = fig.subplots(3, 1, sharex=True, gridspec_kw={"height_ratios": [2, 1, 1]})
                fig.suptitle(contig)
                _plot_coverage(axes[0], cov)
                _plot_transcripts(axes[1], cur_ref, "gene_name", "Reference transcripts")
                _plot_transcripts(axes[2], cur_asm, "ref_gene_name", "Assembled transcripts", "FPKM")
                axes[2].set_xlabel("%s position" % contig)
                pdf.savefig(fig)
    return out_file

def visualize(cov_data, quant_data, config):
    """Tabulate transcripts and plot them against coverage for one sample.
    """
    sample_name = dd.get_sample_name(cov_data)
    out_dir = utils.safe_makedir(os.path.join(config.outdir, "viz", sample_name))
    assembled_table = gtf.tabulate_assembled(dd.get_assembled_gtf(quant_data),
                                             os.path.join(out_dir, "%s_assembled.tsv" % sample_name), config)
    reference_table = gtf.tabulate_reference(config.gtf, config.xeno,
                                             os.path.join(out_dir, "%s_reference.tsv" % sample_name), config)
    plot_file = plot_comparison(dd.get_coverage_bed(cov_data), reference_table, assembled_table,
                                config.xeno, os.path.join(out_dir, "%s_transcripts.pdf" % sample_name),
                                config)
    logger.debug("Transcript plot for %s: %s" % (sample_name, plot_file))
    data = quant_data
    data = dd.set_coverage_bed(data, dd.get_coverage_bed(cov_data))
    data = dd.set_assembled_table(data, assembled_table)
    data = dd.set_reference_table(data, reference_table)
    return dd.set_transcript_plot(data, plot_file)
