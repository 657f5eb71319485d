"""Per-base read depth over the xeno contigs with mosdepth.
"""
import collections
import os

import pandas as pd

from xenoseq import utils
from xenoseq.distributed.transaction import file_transaction
from xenoseq.pipeline import config_utils
from xenoseq.pipeline import datadict as dd
from xenoseq.provenance import do

REGION_COLUMNS = ["chrom", "start", "end", "depth"]
# window size, in bases, for the coverage track
WINDOW = 1

MosdepthCov = collections.namedtuple("MosdepthCov", ("prefix", "regions"))

def get_output_files(sample_name, config):
    prefix = os.path.join(config.outdir, "viz", sample_name, sample_name)
    return MosdepthCov(prefix, "%s.regions.bed.gz" % prefix)

def run_mosdepth(data, config):
    """Run mosdepth generating windowed region depth for a sorted BAM.
    """
    bam_file = dd.get_sorted_bam(data)
    out = get_output_files(dd.get_sample_name(data), config)
    if not utils.file_uptodate(out.regions, bam_file):
        utils.safe_makedir(os.path.dirname(out.regions))
        mosdepth = config_utils.get_program("mosdepth", config)
        num_cores = config_utils.get_cores("mosdepth", config)
        with file_transaction(config, out.regions) as tx_out_file:
            tx_prefix = os.path.join(os.path.dirname(tx_out_file), os.path.basename(out.prefix))
            cmd = [mosdepth, "-t", num_cores, "-n", "--by", WINDOW, tx_prefix, bam_file]
            do.run(cmd, "Calculating coverage", data)
    return dd.set_coverage_bed(data, out.regions)

def read_regions(in_file, contig=None):
    """Load mosdepth region depths, optionally restricted to one contig.
    """
    df = pd.read_csv(in_file, sep="\t", header=None, names=REGION_COLUMNS,
                     dtype={"chrom": str}, compression="gzip")
    if contig is not None:
        df = df[df["chrom"] == contig]
    return df
