"""
assemble and quantify transcripts from xeno alignments with StringTie
http://ccb.jhu.edu/software/stringtie/
"""
import os

from xenoseq import utils
from xenoseq.distributed.transaction import file_transaction
from xenoseq.pipeline import config_utils
from xenoseq.pipeline import datadict as dd
from xenoseq.provenance import do
from xenoseq.rnaseq import gtf

# stripped from alignment file names, in order, to name StringTie outputs
OUTPUT_BASE_SUFFIXES = [".bam", ".sorted"]

def output_base(bam_file):
    """Sample level output name for an alignment file: S1.sorted.bam -> S1
    """
    base = os.path.basename(bam_file)
    for suffix in OUTPUT_BASE_SUFFIXES:
        if base.endswith(suffix):
            base = base[:-len(suffix)]
    return base

def get_output_files(bam_file, config):
    name = output_base(bam_file)
    out_dir = os.path.join(config.outdir, "stringtieFPKM")
    return {"transcripts": os.path.join(out_dir, "transcripts", "%s_transcripts.gtf" % name),
            "merged": os.path.join(out_dir, "transcripts", "%s_merged.gtf" % name),
            "abundance": os.path.join(out_dir, "%s.gene_abund.txt" % name),
            "cov_refs": os.path.join(out_dir, "cov_refs", "%s.cov_refs.gtf" % name),
            "fasta": os.path.join(out_dir, "fasta", "%s_transcripts.fa" % name)}

def get_stranded_flag(strandedness):
    return {"forward": ["--fr"], "reverse": ["--rf"]}.get(strandedness, [])

def assemble(bam_file, gtf_file, out_files, config, data=None):
    """Reference guided assembly with gene abundances and fully covered reference transcripts.
    """
    out_keys = ["transcripts", "abundance", "cov_refs"]
    if all(utils.file_exists(out_files[k]) for k in out_keys):
        return out_files
    for k in out_keys:
        utils.safe_makedir(os.path.dirname(out_files[k]))
    stringtie = config_utils.get_program("stringtie", config)
    num_cores = config_utils.get_cores("stringtie", config)
    with file_transaction(config, [out_files[k] for k in out_keys]) as \
            (tx_out_gtf, tx_abundance, tx_cov_refs):
        cmd = [stringtie, bam_file, "-G", gtf_file, "-o", tx_out_gtf, "-A", tx_abundance,
               "-C", tx_cov_refs, "-p", num_cores] + get_stranded_flag(config.strandedness)
        do.run(cmd, "Assembling transcripts with StringTie", data)
    return out_files

def merge(to_merge, gtf_file, out_file, config, data=None):
    if not utils.file_exists(out_file):
        stringtie = config_utils.get_program("stringtie", config)
        with file_transaction(config, out_file) as tx_merged_file:
            cmd = [stringtie, "--merge", "-G", gtf_file, "-o", tx_merged_file] + list(to_merge)
            do.run(cmd, "Merging transcriptome assemblies with StringTie", data)
    return out_file

def quantify(data, reference, config):
    """Assemble, merge and extract transcript sequences for one sample.
    """
    bam_file = dd.get_sorted_bam(data)
    out_files = get_output_files(bam_file, config)
    assemble(bam_file, reference["gtf"], out_files, config, data)
    merge([out_files["transcripts"]], reference["gtf"], out_files["merged"], config, data)
    utils.safe_makedir(os.path.dirname(out_files["fasta"]))
    gtf.gtf_to_fasta(out_files["transcripts"], reference["fasta"], out_files["fasta"], config)
    data = dd.set_assembled_gtf(data, out_files["transcripts"])
    data = dd.set_merged_gtf(data, out_files["merged"])
    data = dd.set_gene_abundance(data, out_files["abundance"])
    data = dd.set_cov_refs(data, out_files["cov_refs"])
    data = dd.set_transcript_fasta(data, out_files["fasta"])
    return data
