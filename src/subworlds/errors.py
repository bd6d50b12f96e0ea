"""
Classification of everything that can go wrong during a run

Every error carries its `ErrorKind`, so that the embedding caller decides about retry vs abort
per kind instead of per exception type. Within this package, only `payload_execution` is ever
retried (see `Config.payload_retries`); the remaining kinds are fatal for the whole universe.
"""

from enum import Enum


class ErrorKind(str, Enum):
    configuration = "configuration"
    invariant = "invariant"
    payload_execution = "payload_execution"
    serialization = "serialization"


class SubworldsError(Exception):
    kind: ErrorKind

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.payload_execution


class ConfigurationError(SubworldsError):
    """Raised before any work starts, eg more sub-worlds requested than there are processes"""

    kind = ErrorKind.configuration


class SchedulingInvariantError(SubworldsError):
    """The task queue was built or drained incorrectly -- a logic bug, not a runtime condition"""

    kind = ErrorKind.invariant


class SerializationMismatchError(SubworldsError):
    """A staged record does not reconstruct into what its consumer expects"""

    kind = ErrorKind.serialization


class PayloadExecutionError(SubworldsError):
    kind = ErrorKind.payload_execution

    def __init__(self, index: int, detail: str) -> None:
        super().__init__(f"task {index} failed: {detail}")
        self.index = index
        self.detail = detail


class UniverseAborted(RuntimeError):
    """Raised in a rank blocked on a collective or on the coordinator after another rank aborted"""
