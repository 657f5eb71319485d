"""Centralize running of external commands, providing logging and tracking.

Commands are always argument lists built by the per-tool command builders;
nothing is passed through a shell. Tools that write their result to standard
output get it redirected to a file with `stdout_file`.
"""
import collections
import os
import subprocess

from xenoseq import utils
from xenoseq.log import logger, logger_cl, logger_stdout
from xenoseq.pipeline import datadict as dd


def run(cmd, descr=None, data=None, checks=None, log_error=True,
        log_stdout=False, env=None, stdout_file=None):
    """Run the provided command, logging details and checking for errors.
    """
    if descr:
        descr = _descr_str(descr, data)
        logger.debug(descr)
    cmd = [str(x) for x in cmd]
    try:
        logger_cl.debug(" ".join(cmd) + (" > %s" % stdout_file if stdout_file else ""))
        _do_run(cmd, checks, log_stdout, env=env, stdout_file=stdout_file)
    except (subprocess.CalledProcessError, IOError, OSError):
        if log_error:
            logger.exception()
        raise

def _descr_str(descr, data):
    """Add additional useful information from data to description string.
    """
    if data:
        name = dd.get_sample_name(data)
        if name:
            descr = "{0} : {1}".format(descr, name)
    return descr

def _do_run(cmd, checks, log_stdout=False, env=None, stdout_file=None):
    """Perform running and check results, raising errors for issues.
    """
    if stdout_file:
        with open(stdout_file, "w") as out_handle:
            s = subprocess.Popen(cmd, stdout=out_handle, stderr=subprocess.PIPE,
                                 close_fds=True, env=env)
            exitcode, debug_stdout = _follow_output(s, s.stderr, log_stdout)
    else:
        s = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                             close_fds=True, env=env)
        exitcode, debug_stdout = _follow_output(s, s.stdout, log_stdout)
    if exitcode != 0:
        error_msg = " ".join(cmd)
        error_msg += "\n"
        error_msg += "".join(debug_stdout)
        raise subprocess.CalledProcessError(exitcode, error_msg)
    # Check for problems not identified by return codes
    if checks:
        for check in checks:
            if not check():
                raise IOError("External command failed: %s" % " ".join(cmd))

def _follow_output(s, handle, log_stdout):
    """Stream tool output into the log, keeping the tail for error reports.
    """
    debug_stdout = collections.deque(maxlen=100)
    for line in iter(handle.readline, b""):
        line = line.decode("utf-8", errors="replace")
        if line.rstrip():
            debug_stdout.append(line)
            if log_stdout:
                logger_stdout.debug(line.rstrip())
            else:
                logger.debug(line.rstrip())
    handle.close()
    return s.wait(), debug_stdout

# checks for validating run completed successfully

def file_nonempty(target_file):
    def check():
        ok = utils.file_exists(target_file)
        if not ok:
            logger.info("Did not find non-empty output file {0}".format(target_file))
        return ok
    return check

