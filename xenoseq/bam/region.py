"""Extract reads aligned to xeno contigs from host alignments.
"""
import os

from xenoseq import bam, utils
from xenoseq.bam import fastq
from xenoseq.distributed.transaction import file_transaction, tx_tmpdir
from xenoseq.log import logger
from xenoseq.pipeline import config_utils
from xenoseq.pipeline import datadict as dd
from xenoseq.pipeline.errors import StageToolError
from xenoseq.provenance import do

STAGE = "extract_reads"

def get_index_dir(sample_name, config):
    return os.path.join(config.work_dir, "input_index", sample_name)

def ensure_index(in_bam, index_dir, config):
    """Use an index next to the input alignments, otherwise index into index_dir.

    Input directories may be read only, so nothing is written beside the input.
    """
    for index_file in ["%s.bai" % in_bam, "%s.bai" % os.path.splitext(in_bam)[0], "%s.csi" % in_bam]:
        if utils.file_exists(index_file):
            return index_file
    index_file = os.path.join(utils.safe_makedir(index_dir), "%s.bai" % os.path.basename(in_bam))
    if not utils.file_uptodate(index_file, in_bam):
        samtools = config_utils.get_program("samtools", config)
        num_cores = config_utils.get_cores("samtools", config)
        with file_transaction(config, index_file) as tx_index_file:
            do.run([samtools, "index", "-@", num_cores, in_bam, tx_index_file],
                   "Index input BAM file: %s" % os.path.basename(in_bam))
    return index_file

def check_contigs(in_bam, xeno, sample_name):
    """Return the xeno contigs present in the BAM header, failing when there are none.
    """
    contigs = bam.get_contigs(in_bam)
    found = [c for c in xeno if c in contigs]
    missing = [c for c in xeno if c not in contigs]
    if missing:
        logger.warning("Xeno contigs not found in %s: %s" % (os.path.basename(in_bam), ", ".join(missing)))
    if not found:
        raise StageToolError(sample_name, STAGE, "None of the xeno contigs %s are present in %s"
                             % (", ".join(xeno), in_bam))
    return found

def subset(in_bam, index_file, contigs, out_file, config, data=None):
    """Keep alignments on the selected contigs, using an explicitly located index.
    """
    if not utils.file_exists(out_file):
        samtools = config_utils.get_program("samtools", config)
        num_cores = config_utils.get_cores("samtools", config)
        with file_transaction(config, out_file) as tx_out_file:
            cmd = [samtools, "view", "-@", num_cores, "-b", "-o", tx_out_file,
                   "-X", in_bam, index_file] + list(contigs)
            do.run(cmd, "Extract %s from %s" % (", ".join(contigs), os.path.basename(in_bam)), data)
    return out_file

def extract_reads(data, config):
    """Pull xeno region reads out of an input BAM as FASTQ.
    """
    sample_name = dd.get_sample_name(data)
    in_bam = dd.get_input_file(data)
    out_dir = utils.safe_makedir(os.path.join(config.outdir, sample_name))
    out_files = fastq.get_output_files(sample_name, out_dir, not config.single_end)
    if not all(utils.file_exists(f) for f in out_files):
        index_file = ensure_index(in_bam, get_index_dir(sample_name, config), config)
        data = dd.set_input_index(data, index_file)
        contigs = check_contigs(in_bam, config.xeno, sample_name)
        with tx_tmpdir(config) as work_dir:
            region_bam = subset(in_bam, index_file, contigs,
                                os.path.join(work_dir, "%s-xeno.bam" % sample_name), config, data)
            collated_bam = bam.sort(region_bam, os.path.join(work_dir, "%s-xeno-namesort.bam" % sample_name),
                                    config, order="queryname")
            fastq.bam_to_fastq(collated_bam, out_files, config, data)
    return dd.set_fastq_files(data, out_files)
