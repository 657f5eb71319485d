import os

import pandas as pd

from xenoseq import utils
from xenoseq.distributed.transaction import file_transaction, tx_tmpdir
from xenoseq.log import logger
from xenoseq.pipeline import config_utils
from xenoseq.provenance import do

ASSEMBLED_FIELDS = ["@chr", "@start", "@end", "@strand", "@numexons",
                    "reference_id", "ref_gene_id", "ref_gene_name", "FPKM"]
ASSEMBLED_COLUMNS = ["chrom", "start", "end", "strand", "num_exons",
                     "reference_id", "ref_gene_id", "ref_gene_name", "FPKM"]
REFERENCE_FIELDS = ["@chr", "@start", "@end", "@strand", "@numexons", "gene_name"]
REFERENCE_COLUMNS = ["chrom", "start", "end", "strand", "num_exons", "gene_name"]

def gtf_to_fasta(gtf_file, ref_fasta, out_file, config):
    """
    convert a GTF to transcript sequences in FASTA format
    handles malformed FASTA files where a single transcript is repeated multiple
    times by just using the first one
    """
    if utils.file_exists(out_file):
        return out_file
    gffread = config_utils.get_program("gffread", config)
    with tx_tmpdir(config) as tmp_dir:
        tmp_file = os.path.join(tmp_dir, os.path.basename(out_file))
        do.run([gffread, "-g", ref_fasta, "-w", tmp_file, gtf_file],
               "Converting %s to FASTA format." % os.path.basename(gtf_file))
        transcript = ""
        skipping = False
        with file_transaction(config, out_file) as tx_out_file:
            with open(tmp_file) as in_handle, open(tx_out_file, "w") as out_handle:
                for line in in_handle:
                    if line.startswith(">"):
                        cur_transcript = line.split(" ")[0][1:].strip()
                        if transcript == cur_transcript:
                            logger.info("Transcript %s has already been seen, skipping this "
                                        "version." % cur_transcript)
                            skipping = True
                        else:
                            transcript = cur_transcript
                            skipping = False
                        line = ">" + transcript + "\n"
                    if not skipping:
                        out_handle.write(line)
    return out_file

def _gffread_table(gtf_file, fields, columns, config):
    gffread = config_utils.get_program("gffread", config)
    with tx_tmpdir(config) as tmp_dir:
        tmp_file = os.path.join(tmp_dir, "table.tsv")
        do.run([gffread, "--table", ",".join(fields), "-o", tmp_file, gtf_file],
               "Tabulating transcripts from %s" % os.path.basename(gtf_file))
        if not utils.file_exists(tmp_file):
            return pd.DataFrame(columns=columns)
        return pd.read_csv(tmp_file, sep="\t", header=None, names=columns, dtype={"chrom": str})

def _write_table(df, out_file, config):
    utils.safe_makedir(os.path.dirname(out_file))
    with file_transaction(config, out_file) as tx_out_file:
        df.to_csv(tx_out_file, sep="\t", index=False)
    return out_file

def tabulate_assembled(gtf_file, out_file, config):
    """One row per assembled transcript with its matched reference and FPKM.
    """
    if not utils.file_exists(out_file):
        df = _gffread_table(gtf_file, ASSEMBLED_FIELDS, ASSEMBLED_COLUMNS, config)
        _write_table(df, out_file, config)
    return out_file

def tabulate_reference(gtf_file, contigs, out_file, config):
    """Reference transcripts on the selected contigs.
    """
    if not utils.file_exists(out_file):
        df = _gffread_table(gtf_file, REFERENCE_FIELDS, REFERENCE_COLUMNS, config)
        df = df[df["chrom"].isin(list(contigs))]
        _write_table(df, out_file, config)
    return out_file

def read_table(in_file):
    return pd.read_csv(in_file, sep="\t", header=0, dtype={"chrom": str})
