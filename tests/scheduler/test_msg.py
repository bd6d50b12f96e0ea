from typing import TypeVar

import pytest

from subworlds.scheduler.msg import (
    ClaimNextRequest,
    ClaimNextResponse,
    MarkCompleteRequest,
    MarkCompleteResponse,
    Message,
    OkResponse,
    QueueStatusRequest,
    QueueStatusResponse,
    ShutdownCommand,
    deserialize,
    serialize,
)
from subworlds.task import TaskStatus

M = TypeVar("M", bound=Message)


def there_and_back_again(m: M) -> None:
    s = serialize(m)
    r = deserialize(s)
    assert type(m) is type(r)
    assert m == r


def test_serde():
    there_and_back_again(ClaimNextRequest())
    there_and_back_again(ClaimNextResponse(index=3))
    there_and_back_again(ClaimNextResponse(index=None))
    there_and_back_again(ClaimNextResponse(index=None, error="broken"))
    there_and_back_again(MarkCompleteRequest(index=0))
    there_and_back_again(MarkCompleteResponse())
    there_and_back_again(QueueStatusRequest())
    there_and_back_again(QueueStatusResponse(statuses=[TaskStatus.waiting, TaskStatus.complete]))
    there_and_back_again(ShutdownCommand())
    there_and_back_again(OkResponse(error="x"))


def test_unknown_tag():
    with pytest.raises(ValueError):
        deserialize(b"\xff{}")
