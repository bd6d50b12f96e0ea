"""
Request/response messages of the coordinator, and their serde

Every request has exactly one response. Failures inside the coordinator are not raised there but
reported back in the `error` field, so that the service outlives any single bad request.
"""

from typing import Type

import orjson
from pydantic import BaseModel

from subworlds.task import TaskStatus


class ClaimNextRequest(BaseModel):
    pass


class ClaimNextResponse(BaseModel):
    index: int | None  # None means no more work
    error: str | None = None


class MarkCompleteRequest(BaseModel):
    index: int


class MarkCompleteResponse(BaseModel):
    error: str | None = None


class QueueStatusRequest(BaseModel):
    pass


class QueueStatusResponse(BaseModel):
    statuses: list[TaskStatus]
    error: str | None = None


class ShutdownCommand(BaseModel):
    pass


class OkResponse(BaseModel):
    error: str | None = None


Request = ClaimNextRequest | MarkCompleteRequest | QueueStatusRequest | ShutdownCommand
Response = ClaimNextResponse | MarkCompleteResponse | QueueStatusResponse | OkResponse
Message = Request | Response

b2m: dict[bytes, Type[Message]] = {
    b"\x01": ClaimNextRequest,
    b"\x02": ClaimNextResponse,
    b"\x03": MarkCompleteRequest,
    b"\x04": MarkCompleteResponse,
    b"\x05": QueueStatusRequest,
    b"\x06": QueueStatusResponse,
    b"\x07": ShutdownCommand,
    b"\x08": OkResponse,
}
m2b: dict[Type[Message], bytes] = {v: k for k, v in b2m.items()}


def serialize(message: Message) -> bytes:
    return m2b[message.__class__] + orjson.dumps(message.model_dump())


def deserialize(b: bytes) -> Message:
    clazz = b2m.get(b[:1])
    if clazz is None:
        raise ValueError(f"unknown message tag {b[:1]!r}")
    return clazz(**orjson.loads(b[1:]))
