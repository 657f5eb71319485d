"""Estimate and bound resources requested by individual tasks.

Every per-task request (cores, memory, wall time) is clamped to the run
ceilings `max_cpus`, `max_memory` and `max_time`.
"""
import math
import re

from xenoseq.log import logger

_MEM_UNITS = {"K": 1.0 / 1024, "M": 1.0, "G": 1024.0, "T": 1024.0 * 1024}
_TIME_UNITS = {"s": 1.0 / 60, "m": 1.0, "h": 60.0, "d": 60.0 * 24}

def parse_memory(val):
    """Convert a memory specification like 8G, 8.GB or 500 MB into megabytes.
    """
    m = re.match(r"^\s*([\d.]+)\s*\.?\s*([KMGT])B?\s*$", str(val), re.IGNORECASE)
    if not m:
        raise ValueError("Could not parse memory specification: %s" % val)
    return int(math.floor(float(m.group(1)) * _MEM_UNITS[m.group(2).upper()]))

def parse_time(val):
    """Convert a time specification like 240h, 10.d or 30m into minutes.
    """
    m = re.match(r"^\s*([\d.]+)\s*\.?\s*([smhd])\s*$", str(val), re.IGNORECASE)
    if not m:
        raise ValueError("Could not parse time specification: %s" % val)
    return int(math.ceil(float(m.group(1)) * _TIME_UNITS[m.group(2).lower()]))

def check_max(value, kind, config):
    """Clamp a requested resource to the maximum allowed for the run.

    kind is one of `cpus`, `memory` or `time`. Memory is returned as a
    samtools style string in megabytes, time in minutes.
    """
    if kind == "cpus":
        out = max(1, min(int(value), int(config.max_cpus)))
        if out < int(value):
            logger.debug("Reducing requested cores %s to run maximum %s" % (value, out))
        return out
    elif kind == "memory":
        want = parse_memory(value)
        return "%sM" % min(want, parse_memory(config.max_memory))
    elif kind == "time":
        return min(parse_time(value), parse_time(config.max_time))
    else:
        raise ValueError("Unexpected resource type: %s" % kind)

def memory_per_core(config, cores, default="2G"):
    """Split the configured samtools memory across threads, as `sort -m` expects.
    """
    from xenoseq.pipeline import config_utils
    mem = config_utils.get_resources("samtools", config).get("memory", default)
    total = parse_memory(check_max(mem, "memory", config))
    return "%sM" % max(1, int(total / float(max(1, cores))))
