"""Identify program versions used for analysis, reporting in structured table.
"""
import contextlib
import os
import re
import subprocess

from xenoseq import utils
from xenoseq.log import logger
from xenoseq.pipeline import config_utils

_cl_progs = [{"cmd": "samtools", "args": ["--version"]},
             {"cmd": "hisat2", "args": ["--version"], "stdout_flag": "version"},
             {"cmd": "stringtie", "args": ["--version"]},
             {"cmd": "gffread", "args": ["--version"]},
             {"cmd": "mosdepth", "args": ["--version"]}]

_VERSION_RE = re.compile(r"(\d+(?:\.\d+)+[\w.-]*)")

def _parse_version(lines, stdout_flag=None):
    """Pull a version number from tool output, from the first matching line.
    """
    for line in lines:
        if stdout_flag and stdout_flag not in line:
            continue
        m = _VERSION_RE.search(line)
        if m:
            return m.group(1).rstrip(".")
    return ""

def _get_cl_version(p, config):
    """Retrieve version of a single commandline program.
    """
    prog = config_utils.get_program(p["cmd"], config)
    try:
        subp = subprocess.Popen([prog] + p.get("args", []), stdout=subprocess.PIPE,
                                stderr=subprocess.STDOUT)
    except OSError:
        logger.debug("Could not run %s to retrieve version" % prog)
        return ""
    with contextlib.closing(subp.stdout) as stdout:
        lines = [l.decode("utf-8", errors="replace").strip() for l in stdout]
    subp.wait()
    return _parse_version([l for l in lines if l], p.get("stdout_flag"))

def get_versions(config):
    """Retrieve details on all external programs used by the pipeline.
    """
    out = []
    for p in _cl_progs:
        out.append({"program": p["cmd"], "version": _get_cl_version(p, config)})
    out.sort(key=lambda x: x["program"])
    return out

def write_versions(out_dir, config, versions=None):
    """Write tab separated file with versions used in analysis pipeline.
    """
    out_file = os.path.join(utils.safe_makedir(out_dir), "software_versions.tsv")
    versions = versions if versions is not None else get_versions(config)
    with open(out_file, "w") as out_handle:
        out_handle.write("program\tversion\n")
        for p in versions:
            out_handle.write("{program}\t{version}\n".format(**p))
    return out_file
