import subprocess
import threading
import time

import pytest

from xenoseq.distributed.channels import Barrier, Broadcast, Channel
from xenoseq.distributed.dataflow import Stage, TaskGraph
from xenoseq.pipeline.errors import ReferenceBuildError, StageToolError


def _samples(n):
    return [("S%s" % i, {"sample": "S%s" % i}) for i in range(1, n + 1)]


def _tool_error(name):
    raise subprocess.CalledProcessError(1, "tool %s" % name)


class Recorder(object):
    """Thread safe call log for stage functions."""
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def add(self, name, key):
        with self._lock:
            self.calls.append((name, key))

    def count(self, name):
        return len([c for c in self.calls if c[0] == name])


def _linear_graph(samples, recorder, fail=None, max_cpus=4):
    """Reference built once, broadcast to a per-sample align then summarize."""
    inputs, index, aligned = Channel("inputs"), Broadcast("index"), Channel("aligned")
    metrics = Barrier("metrics", len(samples))
    report = Broadcast("report")

    def build():
        recorder.add("build", None)
        return {"index": "graft"}

    def align(data, idx):
        recorder.add("align", data["sample"])
        if fail and data["sample"] in fail:
            _tool_error("align")
        data["index"] = idx["index"]
        return data

    def summarize(items):
        recorder.add("summarize", None)
        return sorted(x["sample"] for x in items)

    graph = TaskGraph(max_cpus)
    graph.seed(inputs, samples)
    graph.add_stage(Stage("build", build, [], index, fatal=True))
    graph.add_stage(Stage("align", align, [inputs, index], aligned))
    graph.add_stage(Stage("summarize", summarize, [metrics], report))
    graph.add_stage(Stage("collect", lambda d: d, [aligned], metrics))
    return graph, report


@pytest.mark.parametrize("num_samples", [1, 50])
def test_reference_built_once(num_samples):
    recorder = Recorder()
    graph, report = _linear_graph(_samples(num_samples), recorder)
    summary = graph.run()
    assert recorder.count("build") == 1
    assert recorder.count("align") == num_samples
    assert recorder.count("summarize") == 1
    assert len(summary.succeeded) == num_samples
    assert report.get() == sorted(s for s, _ in _samples(num_samples))


def test_failing_sample_does_not_stop_others():
    recorder = Recorder()
    graph, report = _linear_graph(_samples(3), recorder, fail=["S2"])
    summary = graph.run()
    assert summary.succeeded == ["S1", "S3"]
    assert list(summary.failed.keys()) == ["S2"]
    assert "align failed for S2" in summary.failed["S2"]
    assert summary.success
    assert summary.tasks_failed == 1
    # barrier released once the failed producer is abandoned
    assert report.get() == ["S1", "S3"]


def test_all_samples_failing_is_unsuccessful():
    recorder = Recorder()
    graph, report = _linear_graph(_samples(2), recorder, fail=["S1", "S2"])
    summary = graph.run()
    assert summary.succeeded == []
    assert not summary.success
    assert report.get() == []


def test_downstream_of_failed_key_never_scheduled():
    recorder = Recorder()
    inputs, extracted, sorted_ch = Channel("inputs"), Channel("extracted"), Channel("sorted")

    def extract(data):
        if data["sample"] == "S1":
            raise StageToolError("S1", "extract", "no xeno reads")
        return data

    def sort(data):
        recorder.add("sort", data["sample"])
        return data

    graph = TaskGraph(2)
    graph.seed(inputs, _samples(2))
    graph.add_stage(Stage("extract", extract, [inputs], extracted))
    graph.add_stage(Stage("sort", sort, [extracted], sorted_ch))
    summary = graph.run()
    assert recorder.calls == [("sort", "S2")]
    assert summary.failed["S1"] == "extract failed for S1: no xeno reads"


def test_fatal_stage_failure_raises():
    recorder = Recorder()
    inputs, index, aligned = Channel("inputs"), Broadcast("index"), Channel("aligned")

    def build():
        _tool_error("hisat2-build")

    def align(data, idx):
        recorder.add("align", data["sample"])
        return data

    graph = TaskGraph(2)
    graph.seed(inputs, _samples(2))
    graph.add_stage(Stage("build", build, [], index, fatal=True))
    graph.add_stage(Stage("align", align, [inputs, index], aligned))
    with pytest.raises(ReferenceBuildError):
        graph.run()
    assert recorder.calls == []


def test_fan_out_consumers_see_identical_input():
    seen = {}
    lock = threading.Lock()
    inputs, sorted_ch = Channel("inputs"), Channel("sorted")
    quant, cov = Channel("quant"), Channel("cov")

    def sort(data):
        data["sorted_bam"] = "%s.sorted.bam" % data["sample"]
        return data

    def consumer(name):
        def run(data):
            with lock:
                seen.setdefault(data["sample"], {})[name] = dict(data)
            data["touched_by"] = name
            return data
        return run

    graph = TaskGraph(4)
    graph.seed(inputs, _samples(3))
    graph.add_stage(Stage("sort", sort, [inputs], sorted_ch))
    graph.add_stage(Stage("quantify", consumer("quantify"), [sorted_ch], quant))
    graph.add_stage(Stage("coverage", consumer("coverage"), [sorted_ch], cov))
    graph.run()
    for sample, views in seen.items():
        assert views["quantify"] == views["coverage"]
        assert "touched_by" not in views["quantify"]
    assert sorted_ch.get("S1") == {"sample": "S1", "sorted_bam": "S1.sorted.bam"}


def test_join_waits_for_both_inputs():
    inputs, left, right, joined = Channel("inputs"), Channel("left"), Channel("right"), Channel("joined")
    graph = TaskGraph(2)
    graph.seed(inputs, _samples(2))
    graph.add_stage(Stage("left", lambda d: dict(d, left=True), [inputs], left))
    graph.add_stage(Stage("right", lambda d: dict(d, right=True), [inputs], right))
    graph.add_stage(Stage("join", lambda a, b: dict(a, **b), [left, right], joined))
    summary = graph.run()
    assert summary.succeeded == ["S1", "S2"]
    assert joined.get("S2") == {"sample": "S2", "left": True, "right": True}


def test_config_passed_to_every_stage():
    seen = []
    inputs, out = Channel("inputs"), Channel("out")
    config = ("run", "config")

    def fn(data, cfg):
        seen.append(cfg)
        return data

    graph = TaskGraph(1)
    graph.seed(inputs, _samples(3))
    graph.add_stage(Stage("fn", fn, [inputs], out, config))
    graph.run()
    assert seen == [config] * 3


def test_cpu_budget_respected():
    state = {"running": 0, "peak": 0}
    lock = threading.Lock()
    inputs, out = Channel("inputs"), Channel("out")

    def work(data):
        with lock:
            state["running"] += 2
            state["peak"] = max(state["peak"], state["running"])
        time.sleep(0.05)
        with lock:
            state["running"] -= 2
        return data

    graph = TaskGraph(4)
    graph.seed(inputs, _samples(6))
    graph.add_stage(Stage("work", work, [inputs], out, cpus=2))
    summary = graph.run()
    assert len(summary.succeeded) == 6
    assert 2 <= state["peak"] <= 4


def test_duplicate_stage_names_rejected():
    graph = TaskGraph(1)
    graph.add_stage(Stage("a", lambda: 1, []))
    with pytest.raises(ValueError):
        graph.add_stage(Stage("a", lambda: 2, []))


def test_unexpected_error_stays_with_its_sample():
    inputs, aligned = Channel("inputs"), Channel("aligned")
    metrics = Barrier("metrics", 4)
    collected = Broadcast("collected")

    def align(data):
        if data["sample"] == "S3":
            raise ValueError("corrupt input for S3")
        return data

    graph = TaskGraph(2)
    graph.seed(inputs, _samples(4))
    graph.add_stage(Stage("align", align, [inputs], aligned))
    graph.add_stage(Stage("metrics", lambda d: d["sample"], [aligned], metrics))
    graph.add_stage(Stage("collect", lambda xs: xs, [metrics], collected))
    summary = graph.run()
    assert summary.succeeded == ["S1", "S2", "S4"]
    assert summary.failed["S3"] == "align failed for S3: corrupt input for S3"
    assert collected.get() == ["S1", "S2", "S4"]


def test_fatal_stage_unexpected_error_raises():
    inputs, index, aligned = Channel("inputs"), Broadcast("index"), Channel("aligned")

    def build():
        raise KeyError("splicesites")

    graph = TaskGraph(2)
    graph.seed(inputs, _samples(2))
    graph.add_stage(Stage("build", build, [], index, fatal=True))
    graph.add_stage(Stage("align", lambda d, idx: d, [inputs, index], aligned))
    with pytest.raises(ReferenceBuildError):
        graph.run()


class TestReportingStages(object):

    def _graph(self, metric_fn, collect_fn):
        inputs, aligned = Channel("inputs"), Channel("aligned")
        metrics, report = Barrier("metrics", 2), Broadcast("report")
        graph = TaskGraph(2)
        graph.seed(inputs, _samples(2))
        graph.add_stage(Stage("align", lambda d: d, [inputs], aligned))
        graph.add_stage(Stage("metrics", metric_fn, [aligned], metrics, reporting=True))
        graph.add_stage(Stage("collect", collect_fn, [metrics], report, reporting=True))
        return graph, report

    def test_per_sample_metric_failure_keeps_sample(self, mocker):
        error = mocker.patch("xenoseq.distributed.dataflow.logger.error")

        def metric(data):
            if data["sample"] == "S1":
                raise IOError("summary file missing")
            return data["sample"]

        graph, report = self._graph(metric, lambda xs: xs)
        summary = graph.run()
        assert summary.succeeded == ["S1", "S2"]
        assert not summary.failed
        assert report.get() == ["S2"]
        assert "metrics failed for S1: summary file missing" in error.call_args[0][0]

    def test_collect_failure_not_a_failed_sample(self):
        def collect(xs):
            raise ValueError("bad table")

        graph, report = self._graph(lambda d: d["sample"], collect)
        summary = graph.run()
        assert summary.succeeded == ["S1", "S2"]
        assert "collect" not in summary.failed
        assert summary.success
        assert not report.is_ready()
