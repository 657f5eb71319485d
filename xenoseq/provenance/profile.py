"""Timing of pipeline steps, logged for later inspection of run behavior.
"""
import contextlib
import time

from xenoseq.log import logger

@contextlib.contextmanager
def report(label):
    """Log timing information for a labelled section of work."""
    logger.info("Timing: %s" % label)
    start = time.time()
    try:
        yield None
    finally:
        logger.debug("Timing: %s finished in %.1fs" % (label, time.time() - start))
