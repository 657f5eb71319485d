"""Run a graph of pipeline stages connected by typed channels.

Stages are scheduled from a ready queue: a `(stage, key)` task is runnable
as soon as all of its inputs hold data for the key. Runnable tasks execute
concurrently on a thread pool while the sum of their CPU hints fits within
the run maximum.

A failing per-sample task, whatever the exception, removes only that
sample from the rest of the graph. A failing fatal stage stops all
scheduling and raises `ReferenceBuildError` once running tasks have
finished.
"""
import collections
from concurrent import futures

from xenoseq.log import logger
from xenoseq.pipeline.errors import ReferenceBuildError, ReportingError, StageToolError


class Stage(object):
    """One processing step, instantiated once per key of its keyed inputs.

    fn is called as `fn(*inputs, config)` with one argument per input
    channel, in order. Stages with only broadcast or barrier inputs run a
    single time under the key None. Reporting stages summarize other
    results: their failures are logged and never mark a sample failed.
    """
    def __init__(self, name, fn, inputs, output=None, config=None, cpus=1, fatal=False,
                 reporting=False):
        self.name = name
        self.fn = fn
        self.inputs = list(inputs)
        self.output = output
        self.config = config
        self.cpus = max(1, int(cpus))
        self.fatal = fatal
        self.reporting = reporting

    @property
    def is_keyed(self):
        return any(ch.kind == "item" for ch in self.inputs)

    def ready_keys(self):
        if not all(ch.is_ready() for ch in self.inputs if ch.kind != "item"):
            return []
        keyed = [ch for ch in self.inputs if ch.kind == "item"]
        if not keyed:
            return [None]
        keys = set(keyed[0].keys())
        for ch in keyed[1:]:
            keys &= set(ch.keys())
        return sorted(keys, key=str)

    def collect(self, key):
        return [ch.get(key) if ch.kind == "item" else ch.get() for ch in self.inputs]

    def run(self, key, args):
        logger.debug("Running %s%s" % (self.name, " for %s" % key if key is not None else ""))
        if self.config is not None:
            args = list(args) + [self.config]
        return self.fn(*args)

    def __repr__(self):
        return "<Stage %s>" % self.name


class RunSummary(collections.namedtuple("RunSummary", ["succeeded", "failed", "tasks_succeeded",
                                                       "tasks_failed"])):
    """Terminal state of a graph run.

    succeeded is the sorted list of keys finishing every keyed stage; failed
    maps the remaining keys to the error that stopped them.
    """
    @property
    def success(self):
        return len(self.succeeded) > 0


class TaskGraph(object):
    def __init__(self, max_cpus=1):
        self.max_cpus = max(1, int(max_cpus))
        self.stages = []
        self._seeded = collections.OrderedDict()

    def add_stage(self, stage):
        if stage.name in [s.name for s in self.stages]:
            raise ValueError("Duplicate stage name: %s" % stage.name)
        self.stages.append(stage)
        return stage

    def seed(self, channel, items):
        """Place initial `(key, payload)` items in a channel before running.
        """
        for key, payload in items:
            channel.put(key, payload)
            self._seeded[key] = True

    def consumers(self, channel):
        return [s for s in self.stages if any(ch is channel for ch in s.inputs)]

    def downstream(self, stage):
        """All stages reachable from the output of a stage.
        """
        out = []
        queue = [stage]
        while queue:
            cur = queue.pop(0)
            if cur.output is None:
                continue
            for nxt in self.consumers(cur.output):
                if nxt not in out:
                    out.append(nxt)
                    queue.append(nxt)
        return out

    def _abandon(self, stage, key):
        """Release barriers waiting on output that a failed key will never produce.
        """
        for cur in [stage] + self.downstream(stage):
            if cur.output is not None and cur.output.kind == "barrier" and cur.is_keyed:
                cur.output.abandon(key)

    def _ready(self, submitted):
        out = []
        for stage in self.stages:
            for key in stage.ready_keys():
                if (stage.name, key) not in submitted:
                    out.append((stage, key))
        return out

    def run(self):
        submitted = set()
        completed = set()
        failed = collections.OrderedDict()
        running = {}
        used_cpus = 0
        abort = None
        with futures.ThreadPoolExecutor(max_workers=self.max_cpus) as executor:
            while True:
                if abort is None:
                    for stage, key in self._ready(submitted):
                        if running and used_cpus + stage.cpus > self.max_cpus:
                            continue
                        submitted.add((stage.name, key))
                        fut = executor.submit(stage.run, key, stage.collect(key))
                        running[fut] = (stage, key)
                        used_cpus += stage.cpus
                if not running:
                    break
                finished, _ = futures.wait(list(running), return_when=futures.FIRST_COMPLETED)
                for fut in finished:
                    stage, key = running.pop(fut)
                    used_cpus -= stage.cpus
                    try:
                        payload = fut.result()
                    # any error, not only tool failures, stays within its branch
                    except Exception as e:
                        if stage.fatal:
                            logger.error("Fatal failure in %s: %s" % (stage.name, e))
                            if abort is None:
                                abort = (stage, e)
                        elif stage.reporting:
                            logger.error(str(ReportingError("%s failed%s: %s" % (
                                stage.name, " for %s" % key if key is not None else "", e))))
                            self._abandon(stage, key)
                        else:
                            err = e if isinstance(e, StageToolError) else StageToolError(key, stage.name, str(e))
                            logger.error(str(err))
                            failed.setdefault(key if key is not None else stage.name, str(err))
                            self._abandon(stage, key)
                    else:
                        completed.add((stage.name, key))
                        if stage.output is not None:
                            stage.output.put(key if key is not None else stage.name, payload)
        if abort is not None:
            stage, e = abort
            raise ReferenceBuildError("%s failed: %s" % (stage.name, e)) from e
        return self._summarize(completed, failed, submitted)

    def _summarize(self, completed, failed, submitted):
        keyed = [s.name for s in self.stages if s.is_keyed and not s.reporting]
        succeeded = []
        out_failed = collections.OrderedDict()
        for key in sorted(self._seeded, key=str):
            if all((name, key) in completed for name in keyed):
                succeeded.append(key)
            else:
                out_failed[key] = failed.get(key, "Incomplete: upstream inputs unavailable")
        for key, err in failed.items():
            if key not in self._seeded:
                out_failed[key] = err
        return RunSummary(succeeded, out_failed, len(completed), len(submitted) - len(completed))
