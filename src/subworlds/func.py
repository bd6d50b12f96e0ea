from typing import Any, NoReturn


def assert_never(v: Any) -> NoReturn:
    """For exhaustive enumm checks etc"""
    raise TypeError(v)


def ser_str(s: str) -> bytes:
    return len(s).to_bytes(4, "big") + s.encode("ascii")


def deser_str(b: bytes) -> tuple[str, bytes]:
    l = int.from_bytes(b[:4], "big")
    if len(b) < 4 + l:
        raise ValueError(f"truncated string: expected {l} bytes, gotten {len(b) - 4}")
    return b[4 : 4 + l].decode("ascii"), b[4 + l :]
