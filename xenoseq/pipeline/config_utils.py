"""Loads configurations from .yaml files and expands environment variables.

The loaded dictionary is turned once into an immutable `RunConfig` that every
pipeline stage receives explicitly.
"""
import collections
import copy
import os
import socket

import toolz as tz
import yaml

from xenoseq.distributed import resources
from xenoseq.log import logger
from xenoseq.pipeline.errors import ConfigurationError


STRANDEDNESS = ("forward", "reverse", "unstranded")

# camelCase parameter names accepted for compatibility with existing run files
PARAM_REMAPS = {"readPaths": "read_paths",
                "forwardStranded": "forward_stranded",
                "reverseStranded": "reverse_stranded",
                "unStranded": "unstranded",
                "singleEnd": "single_end",
                "saveReference": "save_reference",
                "saveUnaligned": "save_unaligned",
                "maxMultiqcEmailFileSize": "max_multiqc_email_size",
                "max_multiqc_email_file_size": "max_multiqc_email_size"}

DEFAULTS = {"name": None,
            "input": None,
            "read_paths": None,
            "xeno": [],
            "single_end": False,
            "outdir": "results",
            "work_dir": None,
            "tmp_dir": None,
            "save_reference": False,
            "save_unaligned": False,
            "max_cpus": 2,
            "max_memory": "8G",
            "max_time": "240h",
            "email": None,
            "max_multiqc_email_size": "25M",
            "profile": "standard",
            "hostnames": {},
            "log_dir": None}

RunConfig = collections.namedtuple(
    "RunConfig",
    ["name", "input", "read_paths", "fasta", "gtf", "xeno", "strandedness",
     "single_end", "outdir", "work_dir", "tmp_dir", "save_reference",
     "save_unaligned", "max_cpus", "max_memory", "max_time", "email",
     "max_multiqc_email_size", "profile", "hostnames", "resources", "log_dir"])

# ## Retrieval functions

def load_config(config_file):
    """Load YAML config file, replacing environmental variables.
    """
    with open(config_file) as in_handle:
        config = yaml.safe_load(in_handle) or {}
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration file %s does not contain a mapping of parameters"
                                 % config_file)
    config = _expand_paths(config)
    if 'resources' not in config:
        config['resources'] = {}
    # lowercase resource names, the preferred way to specify
    newr = {}
    for k, v in config["resources"].items():
        if k.lower() != k:
            newr[k.lower()] = v
    config["resources"].update(newr)
    return config

def _expand_paths(config):
    for field, setting in config.items():
        if isinstance(config[field], dict):
            config[field] = _expand_paths(config[field])
        elif isinstance(config[field], list):
            config[field] = [expand_path(x) if not isinstance(x, list) else [expand_path(y) for y in x]
                             for x in setting]
        else:
            config[field] = expand_path(setting)
    return config

def expand_path(path):
    """ Combines os.path.expandvars with replacing ~ with $HOME.
    """
    try:
        return os.path.expandvars(path.replace("~", "$HOME"))
    except AttributeError:
        return path

def get_resources(name, config):
    """Retrieve resources for a program, pulling from multiple config sources.
    """
    return tz.get_in([name], _resource_dict(config),
                     tz.get_in(["default"], _resource_dict(config), {}))

def _resource_dict(config):
    if isinstance(config, dict):
        return config.get("resources", {})
    return config.resources or {}

def get_program(name, config, default=None):
    """Retrieve the command line for a program from the configuration.

    Programs are configured under `resources` as either a plain string with
    the executable or a dictionary with a `cmd` key.
    """
    try:
        pconfig = _resource_dict(config)[name]
    except KeyError:
        pconfig = None
    if pconfig is None:
        return default or name
    elif isinstance(pconfig, str):
        return pconfig
    elif "cmd" in pconfig:
        return pconfig["cmd"]
    elif default is not None:
        return default
    else:
        return name

def get_cores(name, config):
    """Cores to use for a program, bounded by the run maximum.
    """
    cores = get_resources(name, config).get("cores", config.max_cpus)
    return resources.check_max(cores, "cpus", config)

# ## Run configuration

def _normalize_params(config):
    out = {}
    for k, v in config.items():
        out[PARAM_REMAPS.get(k, k)] = v
    return out

def resolve_strandedness(config):
    """Resolve the mutually exclusive strand flags into a single library type.
    """
    selected = [name for name, key in zip(STRANDEDNESS, ["forward_stranded", "reverse_stranded", "unstranded"])
                if config.get(key)]
    if len(selected) > 1:
        raise ConfigurationError("Strandedness options are mutually exclusive, found: %s"
                                 % ", ".join(selected))
    return selected[0] if selected else "unstranded"

def _as_tuple(xs):
    if not xs:
        return ()
    elif isinstance(xs, str):
        return tuple(x.strip() for x in xs.split(",") if x.strip())
    else:
        return tuple(str(x) for x in xs)

def load_run_config(config_file=None, overrides=None, work_dir=None):
    """Build the immutable run configuration from a YAML file and command line overrides.
    """
    config = copy.deepcopy(DEFAULTS)
    config["resources"] = {}
    if config_file:
        config.update(_normalize_params(load_config(config_file)))
    for k, v in _normalize_params(overrides or {}).items():
        if v is not None:
            config[k] = v
    for required in ["fasta", "gtf"]:
        if not config.get(required):
            raise ConfigurationError("Missing required parameter: %s" % required)
    xeno = _as_tuple(config.get("xeno"))
    if not xeno:
        raise ConfigurationError("Need at least one xeno contig name to extract reads from")
    # an explicit work directory, from the command line, wins over the file
    work_dir = os.path.abspath(work_dir or config.get("work_dir") or os.getcwd())
    outdir = os.path.abspath(config["outdir"])
    try:
        max_cpus = int(config["max_cpus"])
        resources.parse_memory(config["max_memory"])
        resources.parse_time(config["max_time"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError("Invalid resource limits: %s" % e) from e
    if max_cpus < 1:
        raise ConfigurationError("max_cpus must be at least 1, got %s" % max_cpus)
    return RunConfig(name=config.get("name") or os.path.basename(work_dir),
                     input=config.get("input"),
                     read_paths=config.get("read_paths"),
                     fasta=os.path.abspath(config["fasta"]),
                     gtf=os.path.abspath(config["gtf"]),
                     xeno=xeno,
                     strandedness=resolve_strandedness(config),
                     single_end=bool(config["single_end"]),
                     outdir=outdir,
                     work_dir=work_dir,
                     tmp_dir=config.get("tmp_dir"),
                     save_reference=bool(config["save_reference"]),
                     save_unaligned=bool(config["save_unaligned"]),
                     max_cpus=max_cpus,
                     max_memory=str(config["max_memory"]),
                     max_time=str(config["max_time"]),
                     email=config.get("email"),
                     max_multiqc_email_size=str(config["max_multiqc_email_size"]),
                     profile=config.get("profile") or "standard",
                     hostnames=config.get("hostnames") or {},
                     resources=config["resources"],
                     log_dir=config.get("log_dir") or os.path.join(work_dir, "log"))

def check_hostnames(config, hostname=None):
    """Warn when running on a known cluster without its matching profile.

    Advisory only; returns the profiles that would have matched.
    """
    hostname = hostname or socket.gethostname()
    matched = []
    for profile, hnames in config.hostnames.items():
        if isinstance(hnames, str):
            hnames = [hnames]
        if any(h in hostname for h in hnames) and profile not in config.profile.split(","):
            matched.append(profile)
            logger.warning("You are running with `profile: %s` but your machine hostname is '%s'. "
                           "You should probably use `profile: %s`" % (config.profile, hostname, profile))
    return matched
