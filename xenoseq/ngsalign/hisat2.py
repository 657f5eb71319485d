"""Build HISAT2 indexes and align extracted xeno reads.

http://daehwankimlab.github.io/hisat2/
"""
import glob
import os

from xenoseq import utils
from xenoseq.distributed.transaction import file_transaction
from xenoseq.pipeline import config_utils
from xenoseq.pipeline import datadict as dd
from xenoseq.provenance import do

INDEX_NAME = "hisat2"
SPLICESITES_NAME = "splicesites.txt"
EXONS_NAME = "exons.txt"

def extract_splice_sites(gtf_file, out_dir, config):
    """Known splice sites from the annotation, used at build time and at every alignment.
    """
    out_file = os.path.join(out_dir, SPLICESITES_NAME)
    if not utils.file_exists(out_file):
        utils.safe_makedir(out_dir)
        hisat2_ss = config_utils.get_program("hisat2_extract_splice_sites.py", config)
        with file_transaction(config, out_file) as tx_out_file:
            do.run([hisat2_ss, gtf_file], "Creating hisat2 splicesites file from %s" % gtf_file,
                   stdout_file=tx_out_file)
    return out_file

def extract_exons(gtf_file, out_dir, config):
    out_file = os.path.join(out_dir, EXONS_NAME)
    if not utils.file_exists(out_file):
        utils.safe_makedir(out_dir)
        hisat2_exons = config_utils.get_program("hisat2_extract_exons.py", config)
        with file_transaction(config, out_file) as tx_out_file:
            do.run([hisat2_exons, gtf_file], "Creating hisat2 exons file from %s" % gtf_file,
                   stdout_file=tx_out_file)
    return out_file

def index_files(index_base):
    return sorted(glob.glob(index_base + ".*.ht2"))

def build_index(fasta_file, splicesites, exons, out_dir, config):
    """Build a splice aware HISAT2 index, returning the index base name.
    """
    index_dir = os.path.join(out_dir, INDEX_NAME)
    index_base = os.path.join(index_dir, utils.splitext_plus(os.path.basename(fasta_file))[0])
    if index_files(index_base):
        return index_base
    hisat2_build = config_utils.get_program("hisat2-build", config)
    num_cores = config_utils.get_cores("hisat2-build", config)
    with file_transaction(config, index_dir) as tx_index_dir:
        utils.safe_makedir(tx_index_dir)
        tx_base = os.path.join(tx_index_dir, os.path.basename(index_base))
        cmd = [hisat2_build, "-p", num_cores, "--ss", splicesites, "--exon", exons,
               fasta_file, tx_base]
        do.run(cmd, "Building hisat2 index from %s" % fasta_file)
    return index_base

def get_stranded_flag(strandedness, paired):
    """hisat2 library type for a strandedness setting; none for unstranded libraries.
    """
    flags = {("forward", True): "FR", ("forward", False): "F",
             ("reverse", True): "RF", ("reverse", False): "R"}
    flag = flags.get((strandedness, paired))
    return ["--rna-strandness", flag] if flag else []

def _get_options_from_config(config):
    opts = []
    resources = config_utils.get_resources("hisat2", config)
    if resources.get("options"):
        opts += [str(x) for x in resources["options"]]
    return opts

def get_unaligned_files(sample_name, config):
    out_dir = os.path.join(config.outdir, "HISAT2", "unaligned")
    if config.single_end:
        return [os.path.join(out_dir, "%s.unaligned.fastq.gz" % sample_name)]
    return [os.path.join(out_dir, "%s.unaligned_%s.fastq.gz" % (sample_name, i)) for i in [1, 2]]

def _unaligned_flags(tx_files, paired):
    if paired:
        return ["--un-conc-gz", tx_files[0].replace(".unaligned_1.fastq.gz", ".unaligned_%.fastq.gz")]
    return ["--un-gz", tx_files[0]]

def align(data, index, config):
    """Align extracted reads against the xenograft index.

    Secondary alignments are dropped while converting to BAM.
    """
    sample_name = dd.get_sample_name(data)
    fastq_files = dd.get_fastq_files(data)
    paired = len(fastq_files) > 1
    align_dir = utils.safe_makedir(os.path.join(config.outdir, "HISAT2"))
    out_file = os.path.join(align_dir, "%s.bam" % sample_name)
    summary_file = os.path.join(align_dir, "%s.hisat2_summary.txt" % sample_name)
    unaligned = get_unaligned_files(sample_name, config) if config.save_unaligned else []
    if not utils.file_exists(out_file):
        hisat2 = config_utils.get_program("hisat2", config)
        samtools = config_utils.get_program("samtools", config)
        num_cores = config_utils.get_cores("hisat2", config)
        with file_transaction(config, out_file, summary_file, unaligned) as tx_files:
            tx_out_file, tx_summary_file = tx_files[:2]
            tx_sam = tx_out_file.replace(".bam", ".sam")
            cmd = [hisat2, "-x", index["index_base"]]
            if paired:
                cmd += ["-1", fastq_files[0], "-2", fastq_files[1]]
            else:
                cmd += ["-U", fastq_files[0]]
            cmd += ["--known-splicesite-infile", index["splicesites"], "-p", num_cores,
                    "--new-summary", "--summary-file", tx_summary_file,
                    "--no-mixed", "--no-discordant", "--no-unal"]
            cmd += get_stranded_flag(config.strandedness, paired)
            if unaligned:
                cmd += _unaligned_flags(list(tx_files[2:]), paired)
            cmd += _get_options_from_config(config)
            cmd += ["-S", tx_sam]
            do.run(cmd, "Aligning %s with hisat2" % ", ".join(fastq_files), data,
                   checks=[do.file_nonempty(tx_sam)])
            do.run([samtools, "view", "-@", num_cores, "-b", "-F", "0x100", "-o", tx_out_file, tx_sam],
                   "Converting hisat2 alignments to BAM", data)
            utils.remove_safe(tx_sam)
    data = dd.set_work_bam(data, out_file)
    data = dd.set_align_summary(data, summary_file)
    if unaligned:
        data = dd.set_unaligned_files(data, unaligned)
    return data

def parse_summary(in_file):
    """Overall alignment rate, as a percentage, from a `--new-summary` report.
    """
    with open(in_file) as in_handle:
        for line in in_handle:
            if line.strip().startswith("Overall alignment rate"):
                return float(line.split(":")[-1].strip().rstrip("%"))
    return None
