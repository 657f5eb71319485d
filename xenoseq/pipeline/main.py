"""Main entry point for xenograft RNA-seq runs.

Handles wiring the processing stages into a task graph, running it and
reporting on the result.
"""
import datetime
import os
import resource

from xenoseq import log, utils
from xenoseq.bam import coverage, region
from xenoseq.bam import sort_and_index
from xenoseq.distributed.channels import Barrier, Broadcast, Channel
from xenoseq.distributed.dataflow import Stage, TaskGraph
from xenoseq.graph import transcripts
from xenoseq.log import logger
from xenoseq.ngsalign import hisat2
from xenoseq.pipeline import config_utils, genome, report, run_info
from xenoseq.pipeline import datadict as dd
from xenoseq.provenance import profile
from xenoseq.rnaseq import stringtie

def run_main(config_file=None, overrides=None, work_dir=None, debug=False):
    """Run a full analysis, returning the summary of the task graph.

    Configuration problems raise before any task starts.
    """
    config = config_utils.load_run_config(config_file, overrides, work_dir)
    utils.safe_makedir(config.work_dir)
    handler = log.setup_local_logging({"log_dir": config.log_dir, "debug": debug})
    try:
        if config_file:
            logger.info("Run configuration: %s" % os.path.abspath(config_file))
        config_utils.check_hostnames(config)
        samples = run_info.organize(config)
        run_info.check_reference(config)
        logger.info("Found %s samples: %s" % (len(samples), ", ".join(s for s, _ in samples)))
        _setup_resources()
        return run_graph(config, samples)
    finally:
        handler.pop_application()
        handler.close()

def _setup_resources():
    """Attempt to increase open file limits up to hard limits.
    """
    target_hdls = 10240
    cur_hdls, max_hdls = resource.getrlimit(resource.RLIMIT_NOFILE)
    target_hdls = min(max_hdls, target_hdls) if max_hdls > 0 else target_hdls
    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (max(cur_hdls, target_hdls), max_hdls))
    except ValueError:
        logger.debug("Could not raise open file limit above %s" % cur_hdls)

def run_graph(config, samples):
    """Run the task graph for resolved samples, then write the run report once.
    """
    graph, channels = build_graph(config, samples)
    started = datetime.datetime.now()
    summary = None
    error = None
    try:
        with profile.report("xenoseq pipeline"):
            summary = graph.run()
    except Exception as e:
        error = e
        raise
    finally:
        metrics = channels["metrics"].get()["metrics"] if channels["metrics"].is_ready() else []
        report.finalize(config, summary, metrics, started, error=error)
    return summary

def build_graph(config, samples):
    """Connect processing stages for a set of `(sample, input_file)` pairs.

    The reference is prepared once and broadcast to every sample branch.
    """
    ch = {"inputs": Channel("inputs"),
          "reference": Broadcast("reference"),
          "reference_parts": Barrier("reference_parts", 2),
          "index": Broadcast("index"),
          "fastq": Channel("fastq"),
          "aligned": Channel("aligned"),
          "sample_metrics": Barrier("sample_metrics", len(samples)),
          "metrics": Broadcast("metrics"),
          "sorted": Channel("sorted"),
          "quantified": Channel("quantified"),
          "coverage": Channel("coverage"),
          "visualized": Channel("visualized")}
    graph = TaskGraph(config.max_cpus)
    graph.seed(ch["inputs"], [(sample, dd.new_sample(sample, fname)) for sample, fname in samples])
    ch["reference"].put(None, genome.reference_bundle(config))

    graph.add_stage(Stage("hisat2_splice_sites", genome.prep_splice_sites, [ch["reference"]],
                          ch["reference_parts"], config, fatal=True))
    graph.add_stage(Stage("hisat2_exons", genome.prep_exons, [ch["reference"]],
                          ch["reference_parts"], config, fatal=True))
    graph.add_stage(Stage("hisat2_build", genome.prep_index, [ch["reference_parts"], ch["reference"]],
                          ch["index"], config, cpus=config_utils.get_cores("hisat2-build", config),
                          fatal=True))

    graph.add_stage(Stage("extract_reads", region.extract_reads, [ch["inputs"]], ch["fastq"], config,
                          cpus=config_utils.get_cores("samtools", config)))
    graph.add_stage(Stage("hisat2_align", hisat2.align, [ch["fastq"], ch["index"]], ch["aligned"], config,
                          cpus=config_utils.get_cores("hisat2", config)))
    graph.add_stage(Stage("alignment_metrics", report.alignment_metrics, [ch["aligned"]],
                          ch["sample_metrics"], config, reporting=True))
    graph.add_stage(Stage("collect_metrics", report.collect_metrics, [ch["sample_metrics"]],
                          ch["metrics"], config, reporting=True))
    graph.add_stage(Stage("sort_index", sort_and_index, [ch["aligned"]], ch["sorted"], config,
                          cpus=config_utils.get_cores("samtools", config)))
    graph.add_stage(Stage("stringtie", stringtie.quantify, [ch["sorted"], ch["reference"]],
                          ch["quantified"], config, cpus=config_utils.get_cores("stringtie", config)))
    graph.add_stage(Stage("mosdepth", coverage.run_mosdepth, [ch["sorted"]], ch["coverage"], config,
                          cpus=config_utils.get_cores("mosdepth", config)))
    graph.add_stage(Stage("visualize", transcripts.visualize, [ch["coverage"], ch["quantified"]],
                          ch["visualized"], config))
    return graph, ch
