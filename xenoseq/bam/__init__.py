"""Functionality to query, sort and index aligned BAM files.
"""
import os

import pysam

from xenoseq import utils
from xenoseq.distributed import resources
from xenoseq.distributed.transaction import file_transaction
from xenoseq.log import logger
from xenoseq.pipeline import config_utils
from xenoseq.pipeline import datadict as dd
from xenoseq.provenance import do

def is_bam(in_file):
    _, ext = os.path.splitext(in_file)
    return ext == ".bam"

def index(in_bam, config, check_timestamp=True):
    """Index a BAM file, skipping if index present.
    """
    assert is_bam(in_bam), "%s in not a BAM file" % in_bam
    index_file = "%s.bai" % in_bam
    alt_index_file = "%s.bai" % os.path.splitext(in_bam)[0]
    if check_timestamp:
        bai_exists = utils.file_uptodate(index_file, in_bam) or utils.file_uptodate(alt_index_file, in_bam)
    else:
        bai_exists = utils.file_exists(index_file) or utils.file_exists(alt_index_file)
    if not bai_exists:
        # Remove old index files and re-run to prevent linking into tx directory
        for fname in [index_file, alt_index_file]:
            utils.remove_safe(fname)
        samtools = config_utils.get_program("samtools", config)
        num_cores = config_utils.get_cores("samtools", config)
        with file_transaction(config, index_file) as tx_index_file:
            do.run([samtools, "index", "-@", num_cores, in_bam, tx_index_file],
                   "Index BAM file: %s" % os.path.basename(in_bam))
    return index_file if utils.file_exists(index_file) else alt_index_file

def sort(in_bam, out_file, config, order="coordinate"):
    """Sort a BAM file into out_file, skipping if already present.
    """
    assert is_bam(in_bam), "%s in not a BAM file" % in_bam
    if not utils.file_exists(out_file):
        utils.safe_makedir(os.path.dirname(out_file))
        samtools = config_utils.get_program("samtools", config)
        cores = config_utils.get_cores("samtools", config)
        mem = resources.memory_per_core(config, cores)
        with file_transaction(config, out_file) as tx_out_file:
            tx_sort_stem = os.path.splitext(tx_out_file)[0]
            cmd = [samtools, "sort", "-@", cores, "-m", mem, "-O", "BAM"]
            if order == "queryname":
                cmd += ["-n"]
            cmd += ["-T", tx_sort_stem + "-sort", "-o", tx_out_file, in_bam]
            do.run(cmd, "Sort BAM file %s: %s to %s" %
                   (order, os.path.basename(in_bam), os.path.basename(out_file)))
    return out_file

def get_contigs(in_bam):
    """Reference sequence names declared in the BAM header.
    """
    with pysam.AlignmentFile(in_bam, "rb") as bam_handle:
        return list(bam_handle.references)

def sort_and_index(data, config):
    """Coordinate sort and index aligned reads for quantification and coverage.
    """
    sample_name = dd.get_sample_name(data)
    out_dir = os.path.join(config.outdir, "HISAT2", "aligned_sorted")
    out_file = os.path.join(out_dir, "%s.sorted.bam" % sample_name)
    sort(dd.get_work_bam(data), out_file, config)
    index(out_file, config)
    logger.debug("Sorted alignments for %s: %s" % (sample_name, out_file))
    return dd.set_sorted_bam(data, out_file)
