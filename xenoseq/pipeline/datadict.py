"""
functions to access the per-sample data dictionary in a clearer way
"""

import toolz as tz

LOOKUPS = {
    "sample_name": {"keys": ["sample"]},
    "input_file": {"keys": ["files", "input"]},
    "input_index": {"keys": ["files", "input_index"]},
    "fastq_files": {"keys": ["fastq"], "default": [], "always_list": True},
    "work_bam": {"keys": ["work_bam"]},
    "align_summary": {"keys": ["align_summary"]},
    "unaligned_files": {"keys": ["unaligned"], "default": [], "always_list": True},
    "sorted_bam": {"keys": ["sorted_bam"]},
    "assembled_gtf": {"keys": ["stringtie", "transcripts"]},
    "merged_gtf": {"keys": ["stringtie", "merged"]},
    "gene_abundance": {"keys": ["stringtie", "abundance"]},
    "cov_refs": {"keys": ["stringtie", "cov_refs"]},
    "transcript_fasta": {"keys": ["stringtie", "fasta"]},
    "coverage_bed": {"keys": ["viz", "coverage"]},
    "assembled_table": {"keys": ["viz", "assembled_table"]},
    "reference_table": {"keys": ["viz", "reference_table"]},
    "transcript_plot": {"keys": ["viz", "plot"]},
}

def getter(keys, global_default=None, always_list=False):
    def lookup(data, default=None):
        default = global_default if not default else default
        val = tz.get_in(keys, data, default)
        if always_list:
            if not val:
                val = []
            elif not isinstance(val, (list, tuple)): val = [val]
        return val
    return lookup

def setter(keys):
    def update(data, value):
        return tz.update_in(data, keys, lambda x: value, default=value)
    return update

def is_setter(keys):
    def present(data):
        value = tz.get_in(keys, data)
        return True if value else False
    return present

"""
generate the getter and setter functions but don't override any explicitly
defined
"""
_g = globals()
for k, v in LOOKUPS.items():
    keys = v['keys']
    getter_fn = 'get_' + k
    if getter_fn not in _g:
        _g["get_" + k] = getter(keys, v.get('default', None), v.get("always_list", False))
    setter_fn = 'set_' + k
    if setter_fn not in _g:
        _g["set_" + k] = setter(keys)
    is_setter_fn = "is_set_" + k
    if is_setter_fn not in _g:
        _g["is_set_" + k] = is_setter(keys)

def new_sample(sample_name, input_file):
    """Starting data dictionary for a sample entering the pipeline.
    """
    return {"sample": sample_name, "files": {"input": input_file}}

