"""
Interface for tracing important events of the task lifecycle

Currently, the export is handled just by logging, assuming to be parsed later. We log at debug
level since this is assumed to be high level tracing
"""

import logging
import threading
import time
from enum import Enum

logger = logging.getLogger(__name__)

# NOTE thread local because the in-process universe runs every rank as a thread
_local = threading.local()


class TaskLifecycle(str, Enum):
    staged = "staged"  # input written to its record by the universe
    claimed = "claimed"  # handed out by the coordinator
    loaded = "loaded"  # input reconstructed in the sub-world
    computed = "computed"
    published = "published"  # result written to its record
    completed = "completed"  # coordinator notified
    collected = "collected"  # result reconstructed in the universe


def _labels(labels: dict) -> str:
    return ";".join(f"{k}={v.value if isinstance(v, Enum) else v}" for k, v in labels.items())


def label(key: str, value: str) -> None:
    """Makes all subsequent marks of this rank contain this KV"""
    if not hasattr(_local, "d"):
        _local.d = {}
    _local.d[key] = value


def mark(labels: dict) -> None:
    at = time.perf_counter_ns()
    event = _labels({**getattr(_local, "d", {}), **labels})
    logger.debug(f"{event};{at=}")
