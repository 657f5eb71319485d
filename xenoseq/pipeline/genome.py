"""Prepare the xenograft reference: splice sites, exons and the HISAT2 index.

Runs once per run, whatever the number of samples, and is shared by every
alignment.
"""
import os

from xenoseq import utils
from xenoseq.ngsalign import hisat2
from xenoseq.provenance import profile

def get_reference_dir(config):
    """Keep reference artifacts with results when requested, otherwise in the work directory.
    """
    base_dir = config.outdir if config.save_reference else config.work_dir
    return utils.safe_makedir(os.path.join(base_dir, "reference_genome"))

def reference_bundle(config):
    return {"fasta": config.fasta, "gtf": config.gtf, "xeno": list(config.xeno)}

def prep_splice_sites(reference, config):
    with profile.report("hisat2 splice sites"):
        return {"splicesites": hisat2.extract_splice_sites(reference["gtf"], get_reference_dir(config),
                                                           config)}

def prep_exons(reference, config):
    with profile.report("hisat2 exons"):
        return {"exons": hisat2.extract_exons(reference["gtf"], get_reference_dir(config), config)}

def prep_index(artifacts, reference, config):
    """Build the index from collected splice site and exon files.
    """
    parts = {}
    for x in artifacts:
        parts.update(x)
    with profile.report("hisat2 index"):
        index_base = hisat2.build_index(reference["fasta"], parts["splicesites"], parts["exons"],
                                        get_reference_dir(config), config)
    return {"index_base": index_base, "splicesites": parts["splicesites"]}
