"""Exceptions raised while configuring and running the pipeline.
"""


class XenoseqError(Exception):
    pass


class ConfigurationError(XenoseqError):
    """Missing, empty or contradictory run inputs; raised before any task runs.
    """
    pass


class MissingReferenceError(ConfigurationError):
    pass


class ReferenceBuildError(XenoseqError):
    """A reference preparation tool failed; nothing downstream can proceed.
    """
    pass


class StageToolError(XenoseqError):
    """An external tool failed for one sample branch.
    """
    def __init__(self, sample, stage, msg):
        self.sample = sample
        self.stage = stage
        super(StageToolError, self).__init__("%s failed for %s: %s" % (stage, sample, msg))


class ReportingError(XenoseqError):
    pass
