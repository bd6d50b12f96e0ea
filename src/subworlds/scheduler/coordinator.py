"""
The coordinator -- a service on universe rank 0 that is the sole owner and mutator of the task queue

Other processes hold only a `CoordinatorClient`, through which they send requests over a zmq
REQ/REP pair. The service runs in its own thread, so that rank 0 can meanwhile execute tasks in its
own sub-world. Requests from different sub-worlds are serialized by the zmq socket and the queue lock.
"""

import logging
import socket as pysocket
import threading
import uuid
from collections import Counter
from typing import Callable

import zmq

from subworlds.config import Config
from subworlds.errors import SchedulingInvariantError, UniverseAborted
from subworlds.func import assert_never
from subworlds.scheduler.msg import (
    ClaimNextRequest,
    ClaimNextResponse,
    MarkCompleteRequest,
    MarkCompleteResponse,
    OkResponse,
    QueueStatusRequest,
    QueueStatusResponse,
    Request,
    Response,
    ShutdownCommand,
    deserialize,
    serialize,
)
from subworlds.scheduler.queue import TaskQueue
from subworlds.task import TaskStatus

logger = logging.getLogger(__name__)
poll_interval_ms = 100


def get_context() -> zmq.Context:
    # NOTE a single context per process, as inproc transports only work within one context
    return zmq.Context.instance()


def coordinator_address(intraprocess: bool, config: Config) -> str:
    """Address to bind the coordinator at. For tcp with port 0, the port is decided at bind time"""
    if intraprocess:
        return f"inproc://subworlds-coordinator-{uuid.uuid4().hex}"
    return f"tcp://*:{config.coordinator_port}"


class Coordinator:
    def __init__(self, queue: TaskQueue, config: Config, intraprocess: bool) -> None:
        self.queue = queue
        self.socket = get_context().socket(zmq.REP)
        self.socket.set(zmq.LINGER, 0)
        bind = coordinator_address(intraprocess, config)
        if bind.startswith("tcp://") and config.coordinator_port == 0:
            port = self.socket.bind_to_random_port("tcp://*")
        else:
            self.socket.bind(bind)
            port = config.coordinator_port
        if bind.startswith("tcp://"):
            host = config.coordinator_host or pysocket.gethostname()
            self.address = f"tcp://{host}:{port}"
        else:
            self.address = bind
        self.served: Counter[str] = Counter()
        self.stopping = threading.Event()
        self.thread = threading.Thread(target=self.serve, name="coordinator", daemon=True)
        logger.debug(f"coordinator bound at {self.address}")

    def start(self) -> "Coordinator":
        self.thread.start()
        return self

    def handle(self, m: Request) -> Response:
        self.served[type(m).__name__] += 1
        try:
            if isinstance(m, ClaimNextRequest):
                return ClaimNextResponse(index=self.queue.claim_next())
            elif isinstance(m, MarkCompleteRequest):
                self.queue.mark_complete(m.index)
                return MarkCompleteResponse()
            elif isinstance(m, QueueStatusRequest):
                return QueueStatusResponse(statuses=self.queue.statuses())
            elif isinstance(m, ShutdownCommand):
                self.stopping.set()
                return OkResponse()
            else:
                assert_never(m)
        except Exception as e:
            logger.exception(f"failed to handle {type(m).__name__}")
            if isinstance(m, ClaimNextRequest):
                return ClaimNextResponse(index=None, error=repr(e))
            elif isinstance(m, MarkCompleteRequest):
                return MarkCompleteResponse(error=repr(e))
            elif isinstance(m, QueueStatusRequest):
                return QueueStatusResponse(statuses=[], error=repr(e))
            return OkResponse(error=repr(e))

    def serve(self) -> None:
        poller = zmq.Poller()
        poller.register(self.socket, flags=zmq.POLLIN)
        try:
            while not self.stopping.is_set():
                if not poller.poll(poll_interval_ms):
                    continue
                raw = self.socket.recv()
                try:
                    m = deserialize(raw)
                except Exception as e:
                    logger.exception(f"failed to parse message: {raw[:32]!r}")
                    self.socket.send(serialize(OkResponse(error=repr(e))))
                    continue
                self.socket.send(serialize(self.handle(m)))
        finally:
            self.socket.close()
            logger.debug(f"coordinator stopped after serving {dict(self.served)}")

    def shutdown(self) -> None:
        self.stopping.set()
        if self.thread.ident is None:
            self.socket.close()
        else:
            self.thread.join()


class CoordinatorClient:
    def __init__(self, address: str, should_stop: Callable[[], bool] | None = None) -> None:
        self.address = address
        self.should_stop = should_stop
        self.socket = get_context().socket(zmq.REQ)
        self.socket.set(zmq.LINGER, 0)
        self.socket.connect(address)

    def _request(self, m: Request) -> Response:
        self.socket.send(serialize(m))
        while not self.socket.poll(poll_interval_ms, zmq.POLLIN):
            if self.should_stop is not None and self.should_stop():
                raise UniverseAborted(f"gave up on {type(m).__name__} to {self.address}")
        response = deserialize(self.socket.recv())
        if (error := getattr(response, "error", None)) is not None:
            raise SchedulingInvariantError(f"coordinator failed {type(m).__name__}: {error}")
        return response  # type: ignore[return-value]

    def claim_next(self) -> int | None:
        response = self._request(ClaimNextRequest())
        if not isinstance(response, ClaimNextResponse):
            raise TypeError(response)
        return response.index

    def mark_complete(self, index: int) -> None:
        response = self._request(MarkCompleteRequest(index=index))
        if not isinstance(response, MarkCompleteResponse):
            raise TypeError(response)

    def queue_status(self) -> list[TaskStatus]:
        response = self._request(QueueStatusRequest())
        if not isinstance(response, QueueStatusResponse):
            raise TypeError(response)
        return response.statuses

    def shutdown_coordinator(self) -> None:
        self._request(ShutdownCommand())

    def close(self) -> None:
        self.socket.close()
