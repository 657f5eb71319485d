"""Convert name collated alignments back into FASTQ reads.
"""
import os

from xenoseq import utils
from xenoseq.distributed.transaction import file_transaction
from xenoseq.pipeline import config_utils
from xenoseq.provenance import do

# unmapped, secondary and supplementary records
EXCLUDE_FLAGS = "0x904"

def get_output_files(sample_name, out_dir, paired):
    if paired:
        return [os.path.join(out_dir, "%s_%s.fastq.gz" % (sample_name, i)) for i in [1, 2]]
    return [os.path.join(out_dir, "%s.fastq.gz" % sample_name)]

def bam_to_fastq(in_bam, out_files, config, data=None):
    """Write reads from a name collated BAM to one (single end) or two (paired) FASTQs.

    Reads without a mate are dropped for paired libraries so both outputs stay in sync.
    """
    if all(utils.file_exists(f) for f in out_files):
        return out_files
    samtools = config_utils.get_program("samtools", config)
    num_cores = config_utils.get_cores("samtools", config)
    with file_transaction(config, out_files) as tx_out_files:
        if isinstance(tx_out_files, str):
            tx_out_files = [tx_out_files]
        cmd = [samtools, "fastq", "-@", num_cores, "-F", EXCLUDE_FLAGS]
        if len(tx_out_files) == 2:
            cmd += ["-1", tx_out_files[0], "-2", tx_out_files[1],
                    "-0", "/dev/null", "-s", "/dev/null", "-n", in_bam]
            do.run(cmd, "Convert BAM to paired FASTQ: %s" % os.path.basename(in_bam), data)
        else:
            cmd += ["-0", tx_out_files[0], "-n", in_bam]
            do.run(cmd, "Convert BAM to FASTQ: %s" % os.path.basename(in_bam), data)
    return out_files
