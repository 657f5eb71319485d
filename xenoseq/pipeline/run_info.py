"""Retrieve run information describing files to process in a pipeline.

Samples come from one of two sources: an explicit table of sample names and
alignment files (`read_paths` in the YAML configuration, or a CSV/TSV sample
sheet) or a glob pattern, where sample names are derived from file names.
"""
import collections
import csv
import glob
import os

from xenoseq import utils
from xenoseq.log import logger
from xenoseq.pipeline.errors import ConfigurationError, MissingReferenceError

# Suffixes stripped from input file names to recover the sample name. Groups
# are applied in order and repeatedly until the name stops changing, so the
# result does not depend on which combination of markers a file carries.
# Bump the version whenever the table changes: it alters sample names.
SAMPLE_ID_SUFFIXES_VERSION = 1
SAMPLE_ID_SUFFIXES = [
    ("compression", [".gz", ".bz2"]),
    ("alignment", [".bam", ".sam", ".cram", ".fastq", ".fq"]),
    ("sort", [".Aligned.sortedByCoord.out", ".Aligned.out", ".sorted", "_sorted"]),
    ("trimmed", ["_trimmed", ".trimmed"]),
    ("mate", ["_val_1", "_val_2", "_R1", "_R2", ".R1", ".R2"]),
]

SHEET_EXTS = {".csv": ",", ".tsv": "\t", ".txt": "\t"}
SHEET_HEADERS = set(["sample", "sample_id", "id", "name"])

def derive_sample_id(fname):
    """Strip directory and known suffixes from an input file name.

    S1_R1.bam, S1.Aligned.sortedByCoord.out.bam and S1_val_1.bam all map to S1.
    """
    name = os.path.basename(fname)
    changed = True
    while changed:
        changed = False
        for _, suffixes in SAMPLE_ID_SUFFIXES:
            for suffix in suffixes:
                if name.endswith(suffix) and len(name) > len(suffix):
                    name = name[:-len(suffix)]
                    changed = True
    return name

def _check_for_duplicates(pairs, source):
    """Identify and raise errors on samples sharing a name.
    """
    counts = collections.defaultdict(list)
    for sample, fname in pairs:
        counts[sample].append(fname)
    dups = sorted([(s, fs) for s, fs in counts.items() if len(fs) > 1])
    if dups:
        raise ConfigurationError("Duplicate sample names found in %s:\n%s" %
                                 (source, "\n".join("%s: %s" % (s, ", ".join(fs)) for s, fs in dups)))

def samples_from_glob(pattern):
    """Find input alignment files matching a glob pattern, naming samples from file names.
    """
    fnames = sorted(glob.glob(os.path.expanduser(pattern)))
    if not fnames:
        raise ConfigurationError("Cannot find any input files matching: %s\n"
                                 "NB: Path needs to be enclosed in quotes on the command line." % pattern)
    pairs = [(derive_sample_id(f), os.path.abspath(f)) for f in fnames]
    _check_for_duplicates(pairs, pattern)
    return pairs

def samples_from_table(rows, base_dir=None):
    """Validate explicit `[sample, path]` rows.
    """
    if not rows:
        raise ConfigurationError("Sample table is empty: need at least one [sample, path] row")
    pairs = []
    for i, row in enumerate(rows):
        if isinstance(row, dict):
            row = [row.get("sample"), row.get("path")]
        if not isinstance(row, (list, tuple)) or len(row) != 2 or not all(row):
            raise ConfigurationError("Malformed sample table row %s: %s\n"
                                     "Expected a sample name and a file path" % (i + 1, row))
        sample, fname = [str(x).strip() for x in row]
        fname = utils.get_abspath(os.path.expanduser(fname), base_dir)
        if not os.path.exists(fname):
            raise ConfigurationError("Input file for sample %s not found: %s" % (sample, fname))
        pairs.append((sample, fname))
    _check_for_duplicates(pairs, "sample table")
    return pairs

def read_sample_sheet(in_file):
    """Read `sample, path` rows from a CSV or TSV file, skipping an optional header.
    """
    delimiter = SHEET_EXTS.get(os.path.splitext(in_file)[-1].lower(), ",")
    rows = []
    with open(in_file) as in_handle:
        for i, row in enumerate(csv.reader(in_handle, delimiter=delimiter)):
            row = [x.strip() for x in row]
            if not any(row) or row[0].startswith("#"):
                continue
            if i == 0 and row[0].lower() in SHEET_HEADERS:
                continue
            rows.append([x for x in row if x])
    return rows

def _is_sample_sheet(in_file):
    return os.path.splitext(in_file)[-1].lower() in SHEET_EXTS and os.path.isfile(in_file)

def organize(config):
    """Resolve configured inputs into sorted `(sample, file)` pairs.
    """
    if config.read_paths:
        logger.info("Using %s input files from read_paths" % len(config.read_paths))
        pairs = samples_from_table(config.read_paths)
    elif config.input and _is_sample_sheet(config.input):
        logger.info("Using input sample sheet: %s" % config.input)
        pairs = samples_from_table(read_sample_sheet(config.input),
                                   os.path.dirname(os.path.abspath(config.input)))
    elif config.input:
        pairs = samples_from_glob(config.input)
    else:
        raise ConfigurationError("No input specified: set `input` to a glob or sample sheet, "
                                 "or list `read_paths`")
    return sorted(pairs)

def check_reference(config):
    """Ensure the reference FASTA and GTF are present before starting work.
    """
    problems = []
    for name, fname in [("fasta", config.fasta), ("gtf", config.gtf)]:
        if not os.path.exists(fname):
            problems.append("%s file not found: %s" % (name, fname))
        elif not utils.file_exists(fname):
            problems.append("%s file is empty: %s" % (name, fname))
    if problems:
        raise MissingReferenceError("Problems with input reference files:\n" + "\n".join(problems))
