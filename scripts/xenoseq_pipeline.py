#!/usr/bin/env python
"""Extract, realign and quantify xenograft reads from host RNA-seq alignments.

Reads aligned to foreign (xeno) contigs are pulled out of each input BAM,
realigned with HISAT2 against the xenograft reference, assembled and
quantified with StringTie and plotted against the reference annotation.

The <config file> is a YAML file with run parameters: inputs, reference
files, xeno contigs and resources. Any parameter can also be given, and
overridden, on the command line.

Usage:
  xenoseq_pipeline.py [<config_file>] --input '/path/to/*.bam' --fasta ref.fa --gtf ref.gtf --xeno chrX_graft
     -n total number of cores to use
     --workdir directory for intermediate files and logs
"""
import argparse
import os
import sys

from xenoseq.log import logger
from xenoseq.pipeline.errors import ConfigurationError, ReferenceBuildError
from xenoseq.pipeline.main import run_main

OVERRIDES = ["input", "fasta", "gtf", "xeno", "forward_stranded", "reverse_stranded", "unstranded",
             "single_end", "outdir", "save_reference", "save_unaligned", "max_memory", "max_cpus",
             "max_time", "name", "email", "max_multiqc_email_size", "profile", "tmp_dir"]

def parse_cl_args(in_args):
    """Parse input commandline arguments.

    Returns the config file, the parameter overrides and remaining options.
    """
    description = "Xenograft RNA-seq read extraction, realignment and quantification."
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("config_file", nargs="?",
                        help="YAML configuration file with run parameters")
    parser.add_argument("--input", help="Glob of input BAM files, or a CSV/TSV sample sheet")
    parser.add_argument("--fasta", help="Xenograft reference FASTA")
    parser.add_argument("--gtf", help="Xenograft reference annotation GTF")
    parser.add_argument("--xeno", help="Comma separated xeno contig names to extract reads from")
    strand = parser.add_mutually_exclusive_group()
    strand.add_argument("--forward_stranded", "--forwardStranded", action="store_true", default=None,
                        help="Forward stranded library")
    strand.add_argument("--reverse_stranded", "--reverseStranded", action="store_true", default=None,
                        help="Reverse stranded library")
    strand.add_argument("--unstranded", "--unStranded", action="store_true", default=None,
                        help="Unstranded library (default)")
    parser.add_argument("--single_end", "--singleEnd", action="store_true", default=None,
                        help="Input reads are single end")
    parser.add_argument("--outdir", help="Directory for results")
    parser.add_argument("--save_reference", "--saveReference", action="store_true", default=None,
                        help="Keep the built reference index with the results")
    parser.add_argument("--save_unaligned", "--saveUnaligned", action="store_true", default=None,
                        help="Keep reads that failed to realign")
    parser.add_argument("-n", "--numcores", "--max_cpus", dest="max_cpus", type=int,
                        help="Total cores to use for processing")
    parser.add_argument("--max_memory", help="Maximum memory for a single task, like 8G")
    parser.add_argument("--max_time", help="Maximum time for a single task, like 240h")
    parser.add_argument("--name", help="Run name used in reports")
    parser.add_argument("--email", help="Address to send the run summary to")
    parser.add_argument("--max_multiqc_email_size", "--maxMultiqcEmailFileSize",
                        help="Largest MultiQC report to attach to the summary e-mail")
    parser.add_argument("--profile", help="Execution profile name")
    parser.add_argument("--tmp_dir", help="Directory for transactional temporary files")
    parser.add_argument("--workdir",
                        help="Directory to process in. Defaults to `work_dir` from the configuration, "
                             "then the current working directory")
    parser.add_argument("--debug", action="store_true", default=False,
                        help="Log debugging output to the terminal")
    args = parser.parse_args(in_args)
    overrides = dict((k, getattr(args, k)) for k in OVERRIDES if getattr(args, k) is not None)
    return args.config_file, overrides, {"work_dir": os.path.abspath(args.workdir) if args.workdir else None,
                                      "debug": args.debug}

def main(in_args):
    """Run the pipeline, returning the process exit status.
    """
    config_file, overrides, kwargs = parse_cl_args(in_args)
    try:
        summary = run_main(config_file, overrides, **kwargs)
    except ConfigurationError as e:
        logger.error("Configuration error: %s" % e)
        return 1
    except ReferenceBuildError as e:
        logger.error("Reference preparation failed: %s" % e)
        return 1
    return 0 if summary.success else 1

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
